"""
Tests for settings validation.
"""
import pytest
from pydantic import ValidationError

from pastry_publishing.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.BOUNCE_TIME_THRESHOLD_SECONDS == 15
    assert settings.BOUNCE_SCROLL_THRESHOLD_PERCENT == 25
    assert settings.ANALYTICS_DEFAULT_WINDOW_DAYS == 30
    assert settings.enrichment_enabled is False


@pytest.mark.parametrize(
    "overrides",
    [
        {"MONGODB_URL": "  "},
        {"STORAGE_OPERATION_TIMEOUT_SECONDS": 0},
        {"ENRICHMENT_TIMEOUT_SECONDS": 301},
        {"ANALYTICS_MAX_WINDOW_DAYS": -1},
        {"BOUNCE_SCROLL_THRESHOLD_PERCENT": 120},
    ],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_enrichment_enabled_requires_url():
    assert Settings(_env_file=None, ENRICHMENT_URL="https://enrich.test").enrichment_enabled is True
    assert Settings(_env_file=None, ENRICHMENT_URL=" ").enrichment_enabled is False
