# clubdesk/config.py
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # --- Database ---
    database_url: str = "sqlite:///clubdesk/clubdesk_dev.db"

    # --- Security / JWT ---
    # Tokens are issued by the hosted auth platform; we only verify them.
    jwt_secret: str = "dev-secret-please-change"
    jwt_algorithm: str = "HS256"
    jwt_audience: str | None = None

    # --- CORS ---
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # --- Logging ---
    log_level: str = "INFO"
    log_json: bool = True

    # --- Billing ---
    club_timezone: str = "America/Sao_Paulo"
    default_payment_day: int = 10
    default_plan_type: str = "monthly"
    sweep_on_read: bool = True

    @property
    def cors_allow_origins(self) -> List[str]:
        return [origin.rstrip("/") for origin in self.cors_origins]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

# Ensure path directory exists (for SQLite)
if settings.database_url.startswith("sqlite:///"):
    db_path = Path(settings.database_url.replace("sqlite:///", ""))
    db_path.parent.mkdir(parents=True, exist_ok=True)

# --- SQLAlchemy setup ---
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
