"""Pipeline configuration using pydantic-settings.

PipelineSettings reads configuration from environment variables with the
PIPELINE_ prefix (and an optional .env file). One instance is built at
process start and passed to every component; nothing else reads the
environment.

Required:
- cursor_api_key: agent service credential
- github_token: GitHub API token
- github_owner: owner (user or organization) of project repositories

Optional capabilities (absence downgrades the dependent step to skipped):
- vercel_token: deployment of the final branch
- slack_bot_token / slack_user_id: chat channel and chat approvals
- nanobanana_api_key: design variant and brand asset images
- v0_api_key: code scaffold from the approved mockup
"""

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MissingCapability(Exception):
    """Raised when an optional external capability is not configured.

    Attributes:
        capability: Name of the missing capability (e.g. "deploy").
        setting: Environment variable that would enable it.
    """

    def __init__(self, capability: str, setting: str):
        self.capability = capability
        self.setting = setting
        super().__init__(f"{capability} unavailable: {setting} is not set")


class PipelineSettings(BaseSettings):
    """Agent pipeline configuration from environment variables.

    All environment variables are prefixed with PIPELINE_ (e.g.,
    PIPELINE_GITHUB_TOKEN).
    """

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Agent service
    # -------------------------------------------------------------------------
    cursor_api_key: str
    cursor_base_url: str = "https://api.cursor.com"

    # -------------------------------------------------------------------------
    # GitHub
    # -------------------------------------------------------------------------
    github_token: str
    github_owner: str
    github_base_url: str = "https://api.github.com"
    default_branch: str = "main"

    # -------------------------------------------------------------------------
    # Optional capabilities
    # -------------------------------------------------------------------------
    vercel_token: Optional[str] = None
    vercel_base_url: str = "https://api.vercel.com"

    slack_bot_token: Optional[str] = None
    slack_user_id: Optional[str] = None
    slack_base_url: str = "https://slack.com/api"

    nanobanana_api_key: Optional[str] = None
    nanobanana_base_url: str = "https://api.nanobananaapi.ai"

    v0_api_key: Optional[str] = None
    v0_base_url: str = "https://api.v0.dev"

    # -------------------------------------------------------------------------
    # Retry / backoff
    # -------------------------------------------------------------------------
    max_retries: int = 3
    retry_base_delay: float = 2.0
    request_timeout: float = 60.0

    # -------------------------------------------------------------------------
    # Job polling
    # -------------------------------------------------------------------------
    job_poll_interval: float = 15.0
    job_max_polls: int = 480

    image_poll_interval: float = 3.0
    image_max_polls: int = 120

    deploy_poll_interval: float = 10.0
    deploy_max_polls: int = 40

    # -------------------------------------------------------------------------
    # Human-in-the-loop
    # -------------------------------------------------------------------------
    approval_poll_interval: float = 5.0
    approval_timeout: float = 900.0
    selection_timeout: float = 1800.0

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------
    metrics_textfile: Optional[str] = None

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("cursor_api_key", "github_token", "github_owner")
    @classmethod
    def validate_required(cls, v: str) -> str:
        """Validate that required credentials are not blank."""
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v

    @field_validator(
        "cursor_base_url",
        "github_base_url",
        "vercel_base_url",
        "slack_base_url",
        "nanobanana_base_url",
        "v0_base_url",
    )
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate that service URLs are http(s)."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator(
        "vercel_token",
        "slack_bot_token",
        "slack_user_id",
        "nanobanana_api_key",
        "v0_api_key",
    )
    @classmethod
    def blank_as_missing(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank optional credentials as absent."""
        if v is None or not v.strip():
            return None
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate that the retry count is not negative."""
        if v < 0:
            raise ValueError("max_retries cannot be negative")
        return v

    @field_validator(
        "retry_base_delay",
        "request_timeout",
        "job_poll_interval",
        "image_poll_interval",
        "deploy_poll_interval",
        "approval_poll_interval",
        "approval_timeout",
        "selection_timeout",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Validate that durations are positive."""
        if v <= 0:
            raise ValueError("duration must be positive")
        return v

    @field_validator("job_max_polls", "image_max_polls", "deploy_max_polls")
    @classmethod
    def validate_poll_ceiling(cls, v: int) -> int:
        """Validate that poll ceilings allow at least one poll."""
        if v < 1:
            raise ValueError("poll ceiling must be at least 1")
        return v

    # -------------------------------------------------------------------------
    # Capabilities
    # -------------------------------------------------------------------------
    @property
    def deploy_enabled(self) -> bool:
        return self.vercel_token is not None

    @property
    def chat_enabled(self) -> bool:
        return self.slack_bot_token is not None

    @property
    def image_generation_enabled(self) -> bool:
        return self.nanobanana_api_key is not None

    @property
    def scaffold_enabled(self) -> bool:
        return self.v0_api_key is not None

    def capability_warnings(self) -> List[str]:
        """Describe each optional capability that is switched off."""
        warnings = []
        if not self.deploy_enabled:
            warnings.append("PIPELINE_VERCEL_TOKEN missing: final deploy will be skipped")
        if not self.image_generation_enabled:
            warnings.append("PIPELINE_NANOBANANA_API_KEY missing: design mockups will be skipped")
        if not self.chat_enabled:
            warnings.append("PIPELINE_SLACK_BOT_TOKEN missing: approvals use the terminal")
        if not self.scaffold_enabled:
            warnings.append("PIPELINE_V0_API_KEY missing: code scaffold will be skipped")
        return warnings


class WebhookSettings(BaseSettings):
    """Configuration for the agent status webhook receiver.

    Environment variables are prefixed with PIPELINE_WEBHOOK_.
    """

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_WEBHOOK_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # Empty secret disables signature verification
    secret: str = ""

    host: str = "0.0.0.0"

    port: int = 3847

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def get_settings() -> PipelineSettings:
    """Create and return a PipelineSettings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return PipelineSettings()


def get_webhook_settings() -> WebhookSettings:
    """Create and return a WebhookSettings instance."""
    return WebhookSettings()
