"""
Olytics Content Archive — Configuration via environment variables.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """All settings read from env / .env file."""

    # Relational store (aggregation enablement settings)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./olytics.db",
        description="Async SQLAlchemy DB URL",
    )

    # MongoDB (archives)
    mongo_url: str = Field(default="mongodb://localhost:27017")
    mongo_server_selection_timeout_ms: int = Field(
        default=5000, description="Fail fast when no server is reachable"
    )
    mongo_socket_timeout_ms: int = Field(default=10000)

    # Archive layout
    session_archive_db: str = Field(default="content_session_archive")
    traffic_archive_db: str = Field(default="content_traffic_archive")
    session_archive_ttl_days: int = Field(
        default=45, description="Session records expire this long after lastAccessed"
    )

    # Cache "already ensured" collections per process
    index_cache_enabled: bool = Field(default=False)

    # Aggregations are off for an account/group until switched on
    aggregation_default_enabled: bool = Field(default=False)

    log_level: str = Field(default="INFO")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
