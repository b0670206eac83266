from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    # host:port, empty host listens on all interfaces
    INGEST_ADDR: str = ":7070"
    DB_PATH: str = "../data/telemetry.db"
    LOG_JSON: bool = True
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    # Deadlines (seconds)
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    HEALTH_TIMEOUT_SECONDS: float = 2.0
    BOOTSTRAP_TIMEOUT_SECONDS: float = 3.0
    # Request body limits
    MAX_EVENT_BYTES: int = 1 << 20
    MAX_BATCH_BYTES: int = 5 << 20

    @field_validator("DB_PATH")
    @classmethod
    def refuse_local_db_path(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("DB_PATH must not be empty")
        if value.startswith("./") or value.startswith("telemetry.db"):
            raise ValueError("Refusing local DB path. Use ../data/telemetry.db")
        return value

    @field_validator("INGEST_ADDR")
    @classmethod
    def check_listen_addr(cls, value: str) -> str:
        value = value.strip()
        _, sep, port = value.rpartition(":")
        if not sep or not port.isdigit() or not 0 < int(port) < 65536:
            raise ValueError(f"INGEST_ADDR must look like host:port, got {value!r}")
        return value

    @property
    def listen_host(self) -> str:
        host = self.INGEST_ADDR.rpartition(":")[0]
        return host.strip("[]") or "0.0.0.0"

    @property
    def listen_port(self) -> int:
        return int(self.INGEST_ADDR.rpartition(":")[2])


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
