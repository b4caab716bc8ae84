"""Runtime configuration read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from .errors import ValidationError


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _decimal(env: Mapping[str, str], name: str, default: str) -> Decimal:
    raw = env.get(name) or default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValidationError(f"{name} must be a decimal, got {raw!r}")
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass
class Settings:
    """Engine, storage and server settings"""

    currency: str = "BHD"
    currency_symbol: str = "BD"
    chart_cap: int = 37
    anomaly_window_months: int = 3
    anomaly_low: Decimal = Decimal("1.5")
    anomaly_medium: Decimal = Decimal("2.0")
    anomaly_high: Decimal = Decimal("3.0")
    analytics_months: int = 6
    store_backend: str = "memory"
    db_params: Dict[str, Any] = field(default_factory=dict)
    host: str = "127.0.0.1"
    port: int = 8000
    log_dir: str = "/var/log/pathwise"
    log_level: str = "INFO"

    @classmethod
    def from_environment(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        settings = cls(
            currency=env.get("PATHWISE_CURRENCY", "BHD"),
            currency_symbol=env.get("PATHWISE_CURRENCY_SYMBOL", "BD"),
            chart_cap=_int(env, "PATHWISE_CHART_CAP", 37),
            anomaly_window_months=_int(env, "ANOMALY_WINDOW_MONTHS", 3, minimum=2),
            anomaly_low=_decimal(env, "ANOMALY_LOW", "1.5"),
            anomaly_medium=_decimal(env, "ANOMALY_MEDIUM", "2.0"),
            anomaly_high=_decimal(env, "ANOMALY_HIGH", "3.0"),
            analytics_months=_int(env, "ANALYTICS_MONTHS", 6),
            store_backend=env.get("PATHWISE_STORE", "memory").lower(),
            db_params={
                "host": env.get("DB_HOST", "db"),
                "port": _int(env, "DB_PORT", 5432),
                "database": env.get("DB_NAME", "pathwise"),
                "user": env.get("DB_USER", "pathwise"),
                "password": env.get("DB_PASSWORD", ""),
            },
            host=env.get("PATHWISE_HOST", "127.0.0.1"),
            port=_int(env, "PATHWISE_PORT", 8000),
            log_dir=env.get("LOG_DIR", "/var/log/pathwise"),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
        if not settings.anomaly_low < settings.anomaly_medium < settings.anomaly_high:
            raise ValidationError("anomaly thresholds must satisfy LOW < MEDIUM < HIGH")
        if settings.store_backend not in ("memory", "postgres"):
            raise ValidationError(f"PATHWISE_STORE must be 'memory' or 'postgres', got {settings.store_backend!r}")
        return settings
