"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_GAME_DOMAIN = "skyrimspecialedition"
MAX_RETRY_WORKERS = 4


class BridgeConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Authentication & API
    api_key: str = ""
    game_domain: str = DEFAULT_GAME_DOMAIN

    # Worker pools
    max_workers: int = 0
    download_retries: int = 3
    retry_backoff: float = 2.0
    retry_workers: int = 4

    # Behaviour
    auto_continue: bool = False
    profile: str = "Default"

    # Load order fusion weights
    weight_depth_first: float = 2.0
    weight_kahn: float = 2.0
    weight_position: float = 1.5
    weight_manifest: float = 0.5

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)
    log_dir: str | None = Field(None, repr=False)

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of workers. Zero means auto-detect."""
        if v < 0 or v > 64:
            raise ValueError("Max workers must be between 0 (auto) and 64.")
        return v

    @field_validator("retry_workers")
    @classmethod
    def validate_retry_workers(cls, v: int) -> int:
        """Retry passes never use more than four threads."""
        if v < 1 or v > MAX_RETRY_WORKERS:
            raise ValueError(f"Retry workers must be between 1 and {MAX_RETRY_WORKERS}.")
        return v

    @field_validator("download_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0 or v > 10:
            raise ValueError("Download retries must be between 0 and 10.")
        return v

    @field_validator("retry_backoff")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Retry backoff cannot be negative.")
        return v

    @field_validator("profile")
    @classmethod
    def validate_profile(cls, v: str) -> str:
        """Profile names become a directory under 'profiles/'."""
        if not v:
            raise ValueError("Profile name cannot be empty.")
        if ".." in v or "/" in v or "\\" in v:
            raise ValueError("Profile name cannot contain path separators or '..'.")
        return v

    @model_validator(mode="after")
    def validate_weights(self) -> "BridgeConfig":
        """Checks that the fusion weights can be normalized."""
        weights = self.fusion_weights()
        if any(w < 0 for w in weights.values()):
            raise ValueError("Fusion weights cannot be negative.")
        if sum(weights.values()) <= 0:
            raise ValueError("At least one fusion weight must be positive.")
        return self

    def fusion_weights(self) -> dict[str, float]:
        """Returns the ranking weights keyed by ranker name."""
        return {
            "depth_first": self.weight_depth_first,
            "kahn": self.weight_kahn,
            "position": self.weight_position,
            "manifest": self.weight_manifest,
        }

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path", "log_dir"}
        return {key for key in cls.model_fields if key not in internal_fields}
