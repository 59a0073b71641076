"""Deployment of the finished target branch."""

from agent_pipeline.deploy.client import DeployClient

__all__ = ["DeployClient"]
