"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    extra_person_charge_name: str
    extra_person_default_rate: Decimal
    max_guests_per_room: int
    max_guest_count: int
    max_charge_quantity: int
    max_charge_description_length: int
    pricing_clamp_negative_total: bool
    seed_demo_data: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests override with `dataclasses.replace`."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Reservation Engine"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(
            os.getenv("DATABASE_PATH", str(PROJECT_ROOT / "data" / "reservations.db"))
        ),
        extra_person_charge_name=os.getenv("EXTRA_PERSON_CHARGE_NAME", "Extra Person"),
        extra_person_default_rate=Decimal(os.getenv("EXTRA_PERSON_DEFAULT_RATE", "300")),
        max_guests_per_room=_env_int("MAX_GUESTS_PER_ROOM", 20),
        max_guest_count=_env_int("MAX_GUEST_COUNT", 100),
        max_charge_quantity=_env_int("MAX_CHARGE_QUANTITY", 1000),
        max_charge_description_length=_env_int("MAX_CHARGE_DESCRIPTION_LENGTH", 500),
        pricing_clamp_negative_total=_env_bool("PRICING_CLAMP_NEGATIVE_TOTAL", True),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
    )
