"""Application configuration read from the environment"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from domain.catalog import RoomCatalog, DEFAULT_CATALOG
from domain.repositories import ReservationRepository
from infrastructure.repositories.in_memory_repositories import InMemoryReservationRepository
from infrastructure.repositories.sqlite_repository import SQLiteReservationRepository

logger = logging.getLogger(__name__)

MEMORY_DATABASE_URL = "memory://"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseModel):
    """Runtime settings"""
    database_url: str = MEMORY_DATABASE_URL
    room_catalog_file: Optional[str] = None
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=30, gt=0)
    log_level: str = "INFO"

    class Config:
        frozen = True

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        env = os.environ
        values = {
            "database_url": env.get("HOTEL_DATABASE_URL"),
            "room_catalog_file": env.get("HOTEL_ROOM_CATALOG_FILE"),
            "secret_key": env.get("HOTEL_SECRET_KEY"),
            "access_token_expire_minutes": env.get("HOTEL_TOKEN_EXPIRE_MINUTES"),
            "log_level": env.get("HOTEL_LOG_LEVEL"),
        }
        return cls(**{k: v for k, v in values.items() if v})

    def load_catalog(self) -> RoomCatalog:
        if self.room_catalog_file:
            logger.info(f"Loading room catalog from {self.room_catalog_file}")
            return RoomCatalog.from_json_file(self.room_catalog_file)
        return DEFAULT_CATALOG


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def create_repository(settings: Settings) -> ReservationRepository:
    """Build the reservation store named by the database URL"""
    if settings.database_url == MEMORY_DATABASE_URL:
        logger.info("Using in-memory reservation store")
        return InMemoryReservationRepository()
    if settings.database_url.startswith("sqlite:///"):
        repository = SQLiteReservationRepository(settings.database_url)
        repository.init()
        return repository
    raise ValueError(f"Unsupported database URL: {settings.database_url}")
