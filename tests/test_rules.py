"""Tests for the notified RCM rule registry."""

from datetime import date
from decimal import Decimal

import pytest

from rcm_engine.errors import NotFoundError, ValidationError
from rcm_engine.rules import (
    CodeType,
    NotifiedRule,
    NotifiedRuleRegistry,
    RuleType,
    code_type,
    default_registry,
    normalize_code,
)


@pytest.fixture
def registry() -> NotifiedRuleRegistry:
    return default_registry()


def _rule(rule_id: str = "r1", **overrides) -> NotifiedRule:
    data = dict(
        id=rule_id,
        rule_type=RuleType.SERVICE,
        hsn_sac_codes=("9982",),
        description="Legal services",
        gst_rate=Decimal("18"),
        effective_from=date(2017, 7, 1),
    )
    data.update(overrides)
    return NotifiedRule(**data)


# ── Code handling ────────────────────────────────────────────────────


def test_normalize_strips_separators():
    assert normalize_code(" 99 82-11 ") == "998211"
    assert normalize_code("0801.10") == "080110"


def test_normalize_empty_input():
    assert normalize_code(None) == ""
    assert normalize_code("") == ""


def test_code_type_partitions_vocabulary():
    assert code_type("9982") == CodeType.SAC
    assert code_type("998211") == CodeType.SAC
    assert code_type("0801") == CodeType.HSN
    assert code_type("500400") == CodeType.HSN
    assert code_type("99901200") == CodeType.HSN


def test_code_type_rejects_malformed_codes():
    assert code_type("123") == CodeType.INVALID
    assert code_type("12345") == CodeType.INVALID
    assert code_type("99AB") == CodeType.INVALID
    assert code_type("") == CodeType.INVALID


# ── Rule validation ──────────────────────────────────────────────────


def test_rule_codes_are_normalized():
    rule = _rule(hsn_sac_codes=("99 82", "9982-11"))
    assert rule.hsn_sac_codes == ("9982", "998211")


def test_rule_requires_positive_rate():
    with pytest.raises(ValidationError):
        _rule(gst_rate=Decimal("0"))


def test_rule_requires_codes():
    with pytest.raises(ValidationError):
        _rule(hsn_sac_codes=())


def test_rule_effective_window_is_half_open():
    rule = _rule(effective_from=date(2024, 1, 1), effective_to=date(2024, 4, 1))
    assert rule.is_applicable(date(2023, 12, 31)) is False
    assert rule.is_applicable(date(2024, 1, 1)) is True
    assert rule.is_applicable(date(2024, 3, 31)) is True
    assert rule.is_applicable(date(2024, 4, 1)) is False


def test_rule_effective_to_must_follow_from():
    with pytest.raises(ValidationError):
        _rule(effective_from=date(2024, 1, 1), effective_to=date(2024, 1, 1))


def test_inactive_rule_never_applies():
    rule = _rule(is_active=False)
    assert rule.is_applicable(date(2024, 6, 1)) is False


# ── Registry ─────────────────────────────────────────────────────────


def test_default_registry_contents(registry: NotifiedRuleRegistry):
    assert len(registry) == 19
    assert len(registry.by_type(RuleType.SERVICE)) == 10
    assert len(registry.by_type(RuleType.GOODS)) == 9


def test_default_registry_is_cached():
    assert default_registry() is default_registry()


def test_registry_get(registry: NotifiedRuleRegistry):
    rule = registry.get("notified-legal-services")
    assert rule.gst_rate == Decimal("18")
    assert "998211" in rule.hsn_sac_codes


def test_registry_get_unknown_raises(registry: NotifiedRuleRegistry):
    with pytest.raises(NotFoundError):
        registry.get("no-such-rule")


def test_registry_rejects_duplicate_ids():
    with pytest.raises(ValidationError):
        NotifiedRuleRegistry([_rule("dup"), _rule("dup")])


def test_registry_effective_on(registry: NotifiedRuleRegistry):
    assert registry.effective_on(date(2017, 6, 30)) == ()
    assert len(registry.effective_on(date(2024, 1, 1))) == 19


def test_registry_from_records():
    registry = NotifiedRuleRegistry.from_records(
        [
            {
                "id": "custom",
                "type": RuleType.GOODS,
                "codes": ["5201"],
                "description": "Raw cotton",
                "rate": "5",
            }
        ]
    )
    rule = registry.get("custom")
    assert rule.priority == 10
    assert rule.effective_from == date(2017, 7, 1)
