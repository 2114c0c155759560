"""Configuration helpers for backend runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class BackendSettings:
    server_salt: str
    database_url: str | None
    host: str
    port: int
    session_ttl_hours: int
    log_level: str


def load_settings() -> BackendSettings:
    port_raw = os.getenv("COMBATTRACKER_PORT", "8000")
    ttl_raw = os.getenv("COMBATTRACKER_SESSION_TTL_HOURS", "24")
    return BackendSettings(
        server_salt=os.getenv("COMBATTRACKER_SERVER_SALT", "dev-salt"),
        database_url=os.getenv("COMBATTRACKER_DATABASE_URL") or None,
        host=os.getenv("COMBATTRACKER_HOST", "127.0.0.1"),
        port=int(port_raw),
        session_ttl_hours=int(ttl_raw),
        log_level=os.getenv("COMBATTRACKER_LOG_LEVEL", "INFO").upper(),
    )
