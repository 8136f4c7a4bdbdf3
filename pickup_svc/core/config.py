from __future__ import annotations
from pydantic_settings import BaseSettings
from pydantic import Field

from ..schemas import School


def default_schools() -> list[School]:
    return [
        School.model_validate({
            "id": "school-1",
            "name": "Mashburn Elementary",
            "address": "3777 Samples Rd, Cumming, GA 30041",
            "geofence": {"latitude": 34.168494, "longitude": -84.106414, "radius": 200},
            "pickupTimes": [
                {"start": "14:30", "end": "15:30", "label": "Regular Pickup"},
                {"start": "12:00", "end": "12:30", "label": "Early Dismissal"},
            ],
        })
    ]


class Settings(BaseSettings):
    database_url: str = Field("sqlite+aiosqlite:///./pickup.db", alias="DATABASE_URL")

    # Identity
    use_mock_mode: bool = Field(default=True, alias="USE_MOCK_MODE")
    auth_jwks_url: str = Field("http://localhost:8001/.well-known/jwks.json", alias="AUTH_JWKS_URL")
    auth_base_url: str = Field("http://localhost:8001", alias="AUTH_BASE_URL")
    token_issuer: str = Field("authentication-svc", alias="TOKEN_ISSUER")

    # Pickup tokens
    deep_link_scheme: str = Field("geofenceschool", alias="DEEP_LINK_SCHEME")
    token_ttl_minutes: int = Field(default=15, alias="TOKEN_TTL_MINUTES")
    enforce_pickup_windows: bool = Field(default=False, alias="ENFORCE_PICKUP_WINDOWS")
    replay_guard_enabled: bool = Field(default=False, alias="REPLAY_GUARD_ENABLED")

    # Board + stats
    on_time_threshold_minutes: int = Field(default=10, alias="ON_TIME_THRESHOLD_MINUTES")
    board_retention_minutes: int = Field(default=60, alias="BOARD_RETENTION_MINUTES")
    stats_timezone: str = Field("UTC", alias="STATS_TIMEZONE")
    stats_max_days: int = Field(default=366, alias="STATS_MAX_DAYS")

    # Redis
    redis_url: str = Field("redis://127.0.0.1:6379/0", alias="REDIS_URL")
    rl_enabled: bool = Field(default=True, alias="RL_ENABLED")
    rl_window_seconds: int = Field(default=60, alias="RL_WINDOW_SECONDS")
    rl_max_reqs: int = Field(default=60, alias="RL_MAX_REQS")

    # NATS
    nats_urls: str = Field("nats://127.0.0.1:4222", alias="NATS_URLS")
    nats_subject_notifications: str = Field("pickup.notifications", alias="NATS_SUBJECT_NOTIFICATIONS")
    use_nats_notifications: bool = Field(default=True, alias="USE_NATS_NOTIFICATIONS")

    # Schools / geofences (JSON list in env)
    schools: list[School] = Field(default_factory=default_schools, alias="SCHOOLS")
    geofence_poll_seconds: int = Field(default=30, alias="GEOFENCE_POLL_SECONDS")

    # "text" (manual entry) or "camera" (decode uploaded frames)
    scan_input: str = Field("text", alias="SCAN_INPUT")

    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, alias="LOG_FILE")

    cors_origins: str = Field(
        "http://localhost:8081,http://127.0.0.1:8081,http://localhost:19006",
        alias="CORS_ORIGINS",
    )

    class Config:
        env_file = ".env"
        env_prefix = ""
        case_sensitive = False
        populate_by_name = True

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def school_by_id(self, school_id: str) -> School | None:
        for school in self.schools:
            if school.id == school_id:
                return school
        return None

_settings: Settings | None = None
def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
