import pytest
from decimal import Decimal

from pathwise.api import build_service
from pathwise.config import Settings
from pathwise.errors import ValidationError
from pathwise.store import InMemoryStore


def test_defaults_from_empty_environment():
    settings = Settings.from_environment({})

    assert settings.currency == "BHD"
    assert settings.currency_symbol == "BD"
    assert settings.chart_cap == 37
    assert settings.anomaly_window_months == 3
    assert (settings.anomaly_low, settings.anomaly_medium, settings.anomaly_high) == (
        Decimal("1.5"), Decimal("2.0"), Decimal("3.0"))
    assert settings.store_backend == "memory"
    assert settings.db_params["port"] == 5432


def test_overrides():
    settings = Settings.from_environment({
        "PATHWISE_CURRENCY_SYMBOL": "KD",
        "PATHWISE_CHART_CAP": "12",
        "ANOMALY_WINDOW_MONTHS": "6",
        "ANOMALY_HIGH": "4",
        "PATHWISE_STORE": "Postgres",
        "DB_HOST": "localhost",
        "LOG_LEVEL": "debug",
    })

    assert settings.currency_symbol == "KD"
    assert settings.chart_cap == 12
    assert settings.anomaly_window_months == 6
    assert settings.anomaly_high == Decimal("4")
    assert settings.store_backend == "postgres"
    assert settings.db_params["host"] == "localhost"
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("env", [
    {"PATHWISE_CHART_CAP": "many"},
    {"PATHWISE_CHART_CAP": "0"},
    {"ANOMALY_WINDOW_MONTHS": "1"},
    {"ANOMALY_LOW": "abc"},
    {"ANOMALY_MEDIUM": "-1"},
    {"ANOMALY_LOW": "2.5"},
    {"PATHWISE_STORE": "redis"},
])
def test_invalid_environment(env):
    with pytest.raises(ValidationError):
        Settings.from_environment(env)


def test_settings_flow_into_service():
    service = build_service(Settings(chart_cap=5, anomaly_window_months=4, currency_symbol="KD"))

    assert isinstance(service.store, InMemoryStore)
    assert service.projector.chart_cap == 5
    assert service.detector.window_months == 4
    assert service.simulator.currency_symbol == "KD"
