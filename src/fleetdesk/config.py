from __future__ import annotations

import logging
import os
from dataclasses import dataclass


def _env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name, default)
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    storage_backend: str = "memory"
    bus_relay: str = "none"
    kafka_bootstrap_servers: str = "127.0.0.1:9092"
    kafka_client_id: str = "fleetdesk-producer"
    slack_webhook_url: str | None = None
    accounting_api_key: str | None = None
    accounting_base_url: str | None = None
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ("http://localhost:5173", "http://127.0.0.1:5173")

    @classmethod
    def from_env(cls) -> Settings:
        raw_origins = _env("FLEETDESK_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173") or ""
        origins = tuple(origin.strip() for origin in raw_origins.split(",") if origin.strip())
        return cls(
            storage_backend=(_env("FLEETDESK_STORAGE_BACKEND", "memory") or "memory").lower(),
            bus_relay=(_env("FLEETDESK_BUS_RELAY", "none") or "none").lower(),
            kafka_bootstrap_servers=_env("FLEETDESK_KAFKA_BOOTSTRAP_SERVERS", "127.0.0.1:9092") or "127.0.0.1:9092",
            kafka_client_id=_env("FLEETDESK_KAFKA_CLIENT_ID", "fleetdesk-producer") or "fleetdesk-producer",
            slack_webhook_url=_env("SLACK_WEBHOOK_URL"),
            accounting_api_key=_env("ACCOUNTING_API_KEY"),
            accounting_base_url=_env("ACCOUNTING_BASE_URL"),
            log_level=(_env("FLEETDESK_LOG_LEVEL", "INFO") or "INFO").upper(),
            cors_origins=("*",) if "*" in origins else origins,
        )

    @property
    def accounting_enabled(self) -> bool:
        return bool(self.accounting_api_key and self.accounting_base_url)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
