"""Tests for HSN/SAC matching and RCM applicability."""

from datetime import date
from decimal import Decimal

import pytest

from rcm_engine.classifier import (
    OUTSIDE_INDIA,
    RCMType,
    TaxType,
    detect_rcm,
    is_valid_gstin,
    match_notified_item,
)
from rcm_engine.errors import ValidationError
from rcm_engine.rules import NotifiedRule, NotifiedRuleRegistry, RuleType

AS_OF = date(2024, 6, 15)
RECIPIENT = "27AAPFU0939F1ZV"
VENDOR = "27AABCU9603R1ZM"


def _detect(**overrides):
    data = dict(
        recipient_gstin=RECIPIENT,
        recipient_state="27",
        place_of_supply="27",
        taxable_amount=Decimal("10000"),
        as_of=AS_OF,
    )
    data.update(overrides)
    return detect_rcm(**data)


# ── Notified item matching ──────────────────────────────────────────


def test_match_legal_services():
    match = match_notified_item("998211", None, AS_OF)
    assert match is not None
    assert match.rule.id == "notified-legal-services"
    assert match.matched_prefix == "998211"


def test_match_longest_prefix_wins():
    # 9954 is director services; 995421 is the longer works contract entry
    match = match_notified_item("995421", None, AS_OF)
    assert match.rule.id == "notified-works-contract-12"


def test_match_normalizes_code():
    match = match_notified_item("9967-12", None, AS_OF)
    assert match.rule.id == "notified-gta-services-12"
    assert match.rule.gst_rate == Decimal("12")


def test_match_goods_by_hsn():
    match = match_notified_item("08011000", None, AS_OF)
    assert match.rule.id == "notified-cashew-nuts"
    assert "8/2017" in match.reason


def test_lottery_reachable_by_eight_digit_hsn():
    match = match_notified_item("99901200", None, AS_OF)
    assert match.rule.id == "notified-lottery-28"
    assert match.rule.gst_rate == Decimal("28")


def test_six_digit_99_code_is_not_goods():
    # 999012 is read as a SAC code, so the goods lottery entry cannot match
    assert match_notified_item("999012", None, AS_OF) is None


def test_no_match_for_unlisted_code():
    assert match_notified_item("998599", None, AS_OF) is None


def test_no_match_for_invalid_code():
    assert match_notified_item("12", None, AS_OF) is None
    assert match_notified_item(None, None, AS_OF) is None


def test_match_ignores_counterparty_registration():
    assert match_notified_item("9982", VENDOR, AS_OF).rule.id == (
        match_notified_item("9982", None, AS_OF).rule.id
    )


def test_match_before_gst_launch_returns_none():
    assert match_notified_item("998211", None, date(2017, 6, 30)) is None


def test_match_is_deterministic():
    first = match_notified_item("996711", None, AS_OF)
    for _ in range(5):
        assert match_notified_item("996711", None, AS_OF) == first


def test_future_rule_never_matches():
    registry = NotifiedRuleRegistry(
        [
            NotifiedRule(
                id="future",
                rule_type=RuleType.SERVICE,
                hsn_sac_codes=("9982",),
                description="Future notification",
                gst_rate=Decimal("18"),
                effective_from=date(2030, 1, 1),
            )
        ]
    )
    assert match_notified_item("9982", None, AS_OF, registry) is None


def test_future_version_does_not_hide_current_rule():
    registry = NotifiedRuleRegistry(
        [
            NotifiedRule("current", RuleType.SERVICE, ("9982",), "Current", Decimal("18"),
                         date(2017, 7, 1)),
            NotifiedRule("next-year", RuleType.SERVICE, ("9982",), "Revised", Decimal("12"),
                         date(2030, 1, 1), priority=50),
        ]
    )
    assert match_notified_item("998211", None, AS_OF, registry).rule.id == "current"
    assert match_notified_item("998211", None, date(2030, 6, 1), registry).rule.id == "next-year"


def test_superseded_rule_applies_within_its_window():
    registry = NotifiedRuleRegistry(
        [
            NotifiedRule("old", RuleType.SERVICE, ("9982",), "Old", Decimal("12"),
                         date(2017, 7, 1), effective_to=date(2023, 1, 1)),
            NotifiedRule("new", RuleType.SERVICE, ("9982",), "New", Decimal("18"),
                         date(2023, 1, 1)),
        ]
    )
    assert match_notified_item("998211", None, date(2020, 6, 1), registry).rule.id == "old"
    assert match_notified_item("998211", None, AS_OF, registry).rule.id == "new"


def test_inactive_longer_prefix_falls_back_to_shorter():
    registry = NotifiedRuleRegistry(
        [
            NotifiedRule("broad", RuleType.SERVICE, ("9982",), "Broad", Decimal("18"),
                         date(2017, 7, 1)),
            NotifiedRule("narrow", RuleType.SERVICE, ("998211",), "Narrow", Decimal("5"),
                         date(2017, 7, 1), is_active=False),
        ]
    )
    assert match_notified_item("998211", None, AS_OF, registry).rule.id == "broad"


def test_priority_breaks_prefix_tie():
    registry = NotifiedRuleRegistry(
        [
            NotifiedRule("low", RuleType.SERVICE, ("9982",), "Low", Decimal("5"),
                         date(2017, 7, 1), priority=5),
            NotifiedRule("high", RuleType.SERVICE, ("9982",), "High", Decimal("18"),
                         date(2017, 7, 1), priority=20),
        ]
    )
    assert match_notified_item("998211", None, AS_OF, registry).rule.id == "high"


def test_newer_rule_breaks_priority_tie():
    registry = NotifiedRuleRegistry(
        [
            NotifiedRule("old", RuleType.SERVICE, ("9982",), "Old", Decimal("12"),
                         date(2017, 7, 1)),
            NotifiedRule("new", RuleType.SERVICE, ("9982",), "New", Decimal("18"),
                         date(2022, 1, 1)),
        ]
    )
    assert match_notified_item("9982", None, AS_OF, registry).rule.id == "new"


# ── GSTIN validation ────────────────────────────────────────────────


def test_valid_gstin():
    assert is_valid_gstin(RECIPIENT) is True
    assert is_valid_gstin(" 27aapfu0939f1zv ") is True


def test_invalid_gstin():
    assert is_valid_gstin(None) is False
    assert is_valid_gstin("") is False
    assert is_valid_gstin("27AAPFU0939F1Z") is False
    assert is_valid_gstin("XXAAPFU0939F1ZV") is False


# ── RCM detection ───────────────────────────────────────────────────


def test_detect_notified_service_intra_state():
    result = _detect(hsn_sac_code="998211", vendor_gstin=VENDOR)
    assert result.is_applicable is True
    assert result.rcm_type == RCMType.NOTIFIED_SERVICE
    assert result.tax_type == TaxType.CGST_SGST
    assert result.gst_rate == Decimal("18")
    assert result.rule.id == "notified-legal-services"


def test_detect_notified_goods_inter_state():
    result = _detect(hsn_sac_code="24011000", place_of_supply="29")
    assert result.rcm_type == RCMType.NOTIFIED_GOODS
    assert result.tax_type == TaxType.IGST
    assert result.gst_rate == Decimal("5")


def test_detect_import_of_services():
    result = _detect(vendor_country="USA", hsn_sac_code="998599")
    assert result.rcm_type == RCMType.IMPORT_SERVICE
    assert result.tax_type == TaxType.IGST
    assert result.gst_rate == Decimal("18")


def test_detect_outside_india_place_of_supply():
    result = _detect(place_of_supply=OUTSIDE_INDIA)
    assert result.rcm_type == RCMType.IMPORT_SERVICE
    assert result.tax_type == TaxType.IGST


def test_notified_takes_precedence_over_import():
    result = _detect(vendor_country="UK", hsn_sac_code="998211")
    assert result.rcm_type == RCMType.NOTIFIED_SERVICE


def test_detect_unregistered_without_gstin():
    result = _detect()
    assert result.rcm_type == RCMType.UNREGISTERED
    assert "no GSTIN" in result.reason


def test_detect_unregistered_with_invalid_gstin():
    result = _detect(vendor_gstin="BADGSTIN")
    assert result.rcm_type == RCMType.UNREGISTERED
    assert "invalid GSTIN" in result.reason


def test_detect_composition_vendor():
    result = _detect(vendor_gstin=VENDOR, is_composition_vendor=True)
    assert result.rcm_type == RCMType.UNREGISTERED
    assert "composition" in result.reason


def test_registered_vendor_is_forward_charge():
    result = _detect(vendor_gstin=VENDOR, hsn_sac_code="998599")
    assert result.is_applicable is False
    assert result.rcm_type is None
    assert result.tax_type is None


def test_detect_requires_recipient_gstin():
    with pytest.raises(ValidationError):
        _detect(recipient_gstin="")


def test_detect_requires_place_of_supply():
    with pytest.raises(ValidationError):
        _detect(place_of_supply=None)


def test_detect_rejects_non_positive_amount():
    with pytest.raises(ValidationError):
        _detect(taxable_amount=0)
    with pytest.raises(ValidationError):
        _detect(taxable_amount="-5")
