"""Configuration management for the White Duck gateway."""

from pydantic_settings import BaseSettings
from typing import List

DEFAULT_JWT_SECRET = "dev-secret-change-in-production"
DEFAULT_API_KEY = "dev-api-key-change-in-production"
DEFAULT_PASSWORD = "admin123"


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # Server
    server_host: str = "0.0.0.0"
    server_port: int = 3000
    server_reload: bool = False
    environment: str = "development"
    cors_origins: str = ""  # Comma-separated; empty means the local dev origins
    api_prefix: str = "/api"

    # DuckDB
    duckdb_mode: str = "file"  # "file" or "memory"
    duckdb_path: str = "/data/db.duckdb"

    # Authentication
    auth_enabled: bool = True
    jwt_secret_key: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    token_ttl_seconds: int = 24 * 60 * 60
    api_key: str = DEFAULT_API_KEY

    # Single principal seeded at startup
    default_user: str = "admin"
    default_password: str = DEFAULT_PASSWORD

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def database_path(self) -> str:
        """Path handed to DuckDB; ``:memory:`` in memory mode."""
        if self.duckdb_mode.lower() == "memory":
            return ":memory:"
        return self.duckdb_path

    @property
    def cors_origins_list(self) -> List[str]:
        """Return allowed CORS origins as a list."""
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        if origins:
            return origins
        if self.is_production:
            raise ValueError("CORS_ORIGINS must be set when ENVIRONMENT=production")
        return [
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:3000",
        ]


def get_settings() -> Settings:
    """Load settings from the environment."""
    return Settings()
