import logging

from fintrack.config import Settings
from fintrack.logging_setup import _parse_level


def test_defaults():
    s = Settings(_env_file=None)
    assert s.load_timeout_seconds == 5.0
    assert s.currency == "INR"
    assert s.trend_months == 6
    assert s.demo_user_id == "demo-user"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("FINTRACK_LOAD_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("FINTRACK_CURRENCY", "USD")
    s = Settings(_env_file=None)
    assert s.load_timeout_seconds == 2.5
    assert s.currency == "USD"


def test_parse_level(monkeypatch):
    assert _parse_level("debug") == logging.DEBUG
    assert _parse_level("30") == 30
    assert _parse_level("nonsense") == logging.INFO
    monkeypatch.setenv("FINTRACK_LOG_LEVEL", "ERROR")
    assert _parse_level(None) == logging.ERROR
