"""Tests for engine configuration."""

from decimal import Decimal

import pytest

from rcm_engine.config import DEFAULT_CONFIG, EngineConfig
from rcm_engine.errors import ValidationError


def test_defaults():
    assert DEFAULT_CONFIG.due_day == 20
    assert DEFAULT_CONFIG.self_invoice_days == 30
    assert DEFAULT_CONFIG.interest_rate == Decimal("18")
    assert DEFAULT_CONFIG.minimum_penalty == Decimal("10000")


def test_from_env_overrides():
    config = EngineConfig.from_env(
        {"RCM_ENGINE_INTEREST_RATE": "24", "RCM_ENGINE_SELF_INVOICE_DAYS": "45"}
    )
    assert config.interest_rate == Decimal("24")
    assert config.self_invoice_days == 45
    assert config.due_day == 20


def test_from_env_ignores_blank_values():
    config = EngineConfig.from_env({"RCM_ENGINE_DUE_DAY": "  "})
    assert config.due_day == 20


def test_from_env_rejects_garbage():
    with pytest.raises(ValidationError):
        EngineConfig.from_env({"RCM_ENGINE_DUE_DAY": "twentieth"})


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        EngineConfig(due_day=31)
    with pytest.raises(ValidationError):
        EngineConfig(self_invoice_days=0)
    with pytest.raises(ValidationError):
        EngineConfig(interest_rate=Decimal("0"))
