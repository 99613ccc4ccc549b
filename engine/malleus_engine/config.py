"""
Configuration management for the Malleus load/chaos engine.

Uses pydantic-settings for type-safe environment variable handling.
All values are parsed once, before any conference run starts.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    The injector token uses SecretStr to prevent accidental logging.
    """

    model_config = SettingsConfigDict(
        env_prefix="MALLEUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Test matrix
    conferences: int = Field(default=1, ge=1, description="Number of concurrent conferences")
    participants: int = Field(default=1, ge=1, description="Participants per conference")
    senders: int | None = Field(
        default=None,
        ge=0,
        description="Participants sending video (default: all participants)",
    )
    audio_senders: int | None = Field(
        default=None,
        ge=0,
        description="Participants sending audio (default: all participants)",
    )
    enable_p2p: bool = Field(default=True, description="Enable peer-to-peer mode")
    duration_s: int = Field(
        default=60,
        ge=1,
        alias="MALLEUS_DURATION",
        description="Run duration in seconds",
    )
    room_name_prefix: str = Field(default="anvil-", description="Room name prefix")
    regions: str | None = Field(
        default=None,
        description="Comma-separated regions assigned round-robin to participants",
    )
    use_node_types: bool = Field(
        default=False,
        description="Tag sessions as malleusSender/malleusReceiver for node placement",
    )
    max_disrupted_bridges_pct: float = Field(
        default=0.0,
        ge=0,
        le=100,
        description="Maximum percentage of bridges to disrupt mid-run",
    )
    use_load_test: bool = Field(
        default=False,
        description="Use lightweight load-test participants instead of full sessions",
    )

    # Conference server
    base_url: str = Field(
        default="https://meet.example.com",
        description="Conference server base URL",
    )

    # Health monitoring
    health_check_interval_ms: int = Field(
        default=5000,
        ge=100,
        le=60000,
        description="Connectivity poll interval in milliseconds",
    )
    reconnect_timeout_s: float = Field(
        default=20.0,
        gt=0,
        le=300,
        description="Bounded wait for a session to reconnect after a lost poll",
    )

    # Fault injection
    fault_injector_url: str | None = Field(
        default=None,
        description="Base URL of the external bridge fault-injection service",
    )
    fault_injector_token: SecretStr | None = Field(
        default=None,
        description="Bearer token for the fault-injection service",
    )
    fault_injector_timeout_s: float = Field(
        default=30.0,
        ge=1,
        le=600,
        description="Request timeout on top of the disruption window",
    )

    # Artefacts / logging
    data_dir: Path = Field(default=Path("./data"), description="Root directory for run artefacts")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator(
        "senders",
        "audio_senders",
        "regions",
        "fault_injector_url",
        mode="before",
    )
    @classmethod
    def empty_as_unset(cls, v: Any) -> Any:
        """Treat empty strings from the environment as unset."""
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    @field_validator("max_disrupted_bridges_pct", mode="before")
    @classmethod
    def empty_as_no_disruption(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and v.strip() == ""):
            return 0.0
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    @model_validator(mode="after")
    def default_sender_counts(self) -> "Settings":
        if self.senders is None:
            self.senders = self.participants
        if self.audio_senders is None:
            self.audio_senders = self.participants
        return self

    @property
    def region_list(self) -> list[str] | None:
        """Parsed region list, or None when no regions are configured."""
        if not self.regions:
            return None
        regions = [r.strip() for r in self.regions.split(",") if r.strip()]
        return regions or None

    @property
    def duration_ms(self) -> int:
        """Run duration in milliseconds."""
        return self.duration_s * 1000

    @property
    def has_fault_injector(self) -> bool:
        """Check if an external fault injector is configured."""
        return self.fault_injector_url is not None

    def get_redacted_config(self) -> dict[str, Any]:
        """
        Get configuration dict with sensitive values redacted.
        Safe for logging and artefacts.
        """
        return {
            "conferences": self.conferences,
            "participants": self.participants,
            "senders": self.senders,
            "audio_senders": self.audio_senders,
            "enable_p2p": self.enable_p2p,
            "duration_s": self.duration_s,
            "room_name_prefix": self.room_name_prefix,
            "regions": self.region_list,
            "use_node_types": self.use_node_types,
            "max_disrupted_bridges_pct": self.max_disrupted_bridges_pct,
            "use_load_test": self.use_load_test,
            "base_url": self.base_url,
            "fault_injector_configured": self.has_fault_injector,
            "data_dir": str(self.data_dir),
            "log_level": self.log_level,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure single instance throughout the process.
    """
    return Settings()
