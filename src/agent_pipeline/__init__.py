"""Agent pipeline: drives a fixed sequence of background coding agents.

This package provides:
- A retrying HTTP transport shared by every service client
- A generic async job poller and a partial-failure fan-out group
- Human-in-the-loop approvals over chat or the terminal
- The phase orchestrator, from run preparation through deploy and PR
- Pipeline events, Prometheus metrics and an agent status webhook
"""
