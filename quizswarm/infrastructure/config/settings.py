"""
Unified Configuration Settings - Single Source of Truth
=======================
All application configuration using Pydantic Settings.
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator
from typing import Dict
from enum import Enum


class LogLevel(str, Enum):
    """Logging levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# === HUB CONFIGURATION ===

class HubSettings(BaseSettings):
    """Remote quiz hub endpoints and per-session protocol timings"""
    origin: str = Field(default="https://play.panquiz.com", description="Origin/Referer sent with HTTP requests")
    negotiate_url: str = Field(
        default="https://play.panquiz.com/api/v1/playHub/negotiate?negotiateVersion=1",
        description="First negotiation endpoint"
    )
    pin_validation_url: str = Field(default="https://play.panquiz.com/api/v1/player/pin")
    hub_name: str = Field(default="playhub")
    hub_operation: str = Field(default="/v1/playHub", description="asrs.op query value of the second negotiation")
    user_agent: str = Field(default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/134.0.0.0 Safari/537.36")
    signalr_user_agent: str = Field(default="Microsoft SignalR/6.0 (6.0.7; Unknown OS; Browser; Unknown Runtime Version)")

    http_timeout_seconds: float = Field(default=10.0)
    http_connect_timeout_seconds: float = Field(default=5.0)
    socket_open_timeout_seconds: float = Field(default=10.0)
    socket_close_timeout_seconds: float = Field(default=5.0)

    answer_latency_ms: int = Field(default=500, description="Reported answer latency sent with every answer")
    disconnect_grace_seconds: float = Field(default=10.0, description="Delay before closing after PlayerDisconnected, lets trailing medals arrive")
    keepalive_interval_seconds: float = Field(default=15.0, description="Hub ping interval, 0 disables")
    restart_settle_delay_seconds: float = Field(default=2.0, description="Wait before reconnecting after PlayAgain")

    # Observed traffic: 0 = third place, 1 = second, 2 = first. Not confirmed by the service.
    medal_places: Dict[int, int] = Field(default_factory=lambda: {0: 3, 1: 2, 2: 1})

    @field_validator('answer_latency_ms')
    @classmethod
    def validate_latency(cls, v):
        if v < 0:
            raise ValueError("answer_latency_ms must be >= 0")
        return v

    class Config:
        env_prefix = "HUB_"


# === REGISTRY CONFIGURATION ===

class RegistrySettings(BaseSettings):
    """Session registry eviction windows"""
    closed_retention_seconds: float = Field(default=30.0, description="How long closed sessions stay queryable")
    inactivity_timeout_seconds: float = Field(default=300.0, description="Idle sessions are force-closed after this")
    sweep_interval_seconds: float = Field(default=60.0)

    class Config:
        env_prefix = "REGISTRY_"


# === PROBE CONFIGURATION ===

class ProbeSettings(BaseSettings):
    """PIN prober configuration"""
    batch_size: int = Field(default=50, description="Validation requests issued concurrently per batch")
    space_min: int = Field(default=0)
    space_max: int = Field(default=999999)
    pin_width: int = Field(default=6, description="PINs are zero-padded to this many digits")
    liveness_timeout_seconds: float = Field(default=1.0, description="Window for QuizAlreadyStarted during the sub-probe")
    decoy_display_name: str = Field(default="guest")
    log_max_entries: int = Field(default=100)
    finished_retention_seconds: float = Field(default=3600.0, description="How long found/stopped jobs stay queryable")

    # Random search mode
    random_range_min: int = Field(default=100000, description="Default lowest PIN drawn by the random finder, clamped to the space")
    random_max_attempts: int = Field(default=50)
    random_max_attempts_limit: int = Field(default=500, description="Upper bound accepted from callers")
    random_attempt_delay_seconds: float = Field(default=0.1, description="Pause between random attempts")

    @model_validator(mode='after')
    def validate_space(self):
        if self.batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        if self.space_min < 0 or self.space_max < self.space_min:
            raise ValueError(f"Invalid PIN space [{self.space_min}, {self.space_max}]")
        if self.log_max_entries <= 0:
            raise ValueError("log_max_entries must be > 0")
        if self.random_max_attempts <= 0 or self.random_max_attempts_limit < self.random_max_attempts:
            raise ValueError("random_max_attempts must be in (0, random_max_attempts_limit]")
        return self

    class Config:
        env_prefix = "PROBE_"


# === LOGGING CONFIGURATION ===

class LoggingSettings(BaseSettings):
    """Logging configuration"""
    level: LogLevel = Field(default=LogLevel.INFO)
    file_enabled: bool = Field(default=False)
    console_enabled: bool = Field(default=True)
    structured_logging: bool = Field(default=True)
    log_dir: str = Field(default="logs")
    max_file_size_mb: int = Field(default=100)
    backup_count: int = Field(default=5)

    class Config:
        env_prefix = "LOG_"


# === API CONFIGURATION ===

class ApiSettings(BaseSettings):
    """HTTP control surface"""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    cors_origins: list = Field(default_factory=lambda: ["*"])
    max_bulk_join: int = Field(default=50, description="Upper bound on bots per bulk join request")

    class Config:
        env_prefix = "API_"


# === MAIN APPLICATION SETTINGS ===

class AppSettings(BaseSettings):
    """Main application settings - Single Source of Truth"""

    app_name: str = Field(default="quizswarm")
    version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    hub: HubSettings = Field(default_factory=HubSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    probe: ProbeSettings = Field(default_factory=ProbeSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    class Config:
        env_file = ".env"
        env_nested_delimiter = "__"  # Allows PROBE__BATCH_SIZE=25
        case_sensitive = False
        extra = "ignore"
