"""
Reverse-charge classification.

Handles:
- Matching an HSN/SAC code against the notified list (longest prefix,
  then priority, then newest rule)
- Deciding whether RCM applies to a purchase: notified supplies first,
  then imports, then unregistered or composition suppliers
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from rcm_engine.amounts import to_decimal
from rcm_engine.errors import ValidationError
from rcm_engine.rules import (
    NotifiedRule,
    NotifiedRuleRegistry,
    RuleType,
    default_registry,
    normalize_code,
    rule_type_for,
)

logger = logging.getLogger(__name__)

GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")
OUTSIDE_INDIA = "OUTSIDE_INDIA"
DEFAULT_SERVICE_RATE = Decimal("18")


class RCMType(Enum):
    NOTIFIED_SERVICE = "NOTIFIED_SERVICE"
    NOTIFIED_GOODS = "NOTIFIED_GOODS"
    IMPORT_SERVICE = "IMPORT_SERVICE"
    UNREGISTERED = "UNREGISTERED"


class TaxType(Enum):
    CGST_SGST = "CGST_SGST"  # intra-state
    IGST = "IGST"  # inter-state and imports


@dataclass(frozen=True)
class RuleMatch:
    rule: NotifiedRule
    matched_code: str
    matched_prefix: str
    reason: str


@dataclass(frozen=True)
class RCMDetection:
    """Outcome of an RCM applicability check."""

    is_applicable: bool
    rcm_type: Optional[RCMType]
    tax_type: Optional[TaxType]
    gst_rate: Decimal
    reason: str
    rule: Optional[NotifiedRule] = None


def is_valid_gstin(gstin: Optional[str]) -> bool:
    if not gstin or not gstin.strip():
        return False
    return bool(GSTIN_PATTERN.match(gstin.strip().upper()))


def match_notified_item(
    code: Optional[str],
    counterparty_gstin: Optional[str],
    as_of: date,
    registry: Optional[NotifiedRuleRegistry] = None,
) -> Optional[RuleMatch]:
    """
    Find the notified rule covering ``code`` on ``as_of``.

    Only rules of the code's own vocabulary are considered (SAC codes against
    services, HSN codes against goods). The longest matching prefix wins;
    ties go to the higher priority and then the later effective date. Rules
    not in force on ``as_of`` are skipped before ranking, so a superseded or
    not-yet-effective version never hides the one that applies. Returns None
    for a malformed code or when nothing in force matches.

    Notified-category RCM applies whatever the supplier's registration, so
    ``counterparty_gstin`` never changes the result.
    """
    registry = registry or default_registry()
    normalized = normalize_code(code)
    rule_type = rule_type_for(normalized)
    if rule_type is None:
        logger.debug("Code %r is not a valid HSN/SAC code", code)
        return None

    best: Optional[tuple[tuple[int, int, date], NotifiedRule, str]] = None
    for rule in registry.by_type(rule_type):
        if not rule.is_applicable(as_of):
            continue
        for prefix in rule.hsn_sac_codes:
            if not normalized.startswith(prefix):
                continue
            rank = (len(prefix), rule.priority, rule.effective_from)
            if best is None or rank > best[0]:
                best = (rank, rule, prefix)

    if best is None:
        logger.debug("No notified rule in force on %s for %s", as_of, normalized)
        return None

    _, rule, prefix = best

    kind = "service" if rule.rule_type == RuleType.SERVICE else "goods"
    reason = f"Notified {kind} under RCM: {rule.description}"
    if rule.notification_no:
        reason += f" ({rule.notification_no})"
    logger.debug("Code %s matched rule %s via prefix %s", normalized, rule.id, prefix)
    return RuleMatch(rule=rule, matched_code=normalized, matched_prefix=prefix, reason=reason)


def _tax_type(place_of_supply: str, recipient_state: str) -> TaxType:
    if place_of_supply == OUTSIDE_INDIA:
        return TaxType.IGST
    same = place_of_supply.strip().upper() == recipient_state.strip().upper()
    return TaxType.CGST_SGST if same else TaxType.IGST


def detect_rcm(
    *,
    recipient_gstin: Optional[str],
    recipient_state: str,
    place_of_supply: Optional[str],
    taxable_amount,
    vendor_gstin: Optional[str] = None,
    vendor_country: str = "INDIA",
    hsn_sac_code: Optional[str] = None,
    is_composition_vendor: bool = False,
    as_of: Optional[date] = None,
    registry: Optional[NotifiedRuleRegistry] = None,
) -> RCMDetection:
    """
    Decide whether a purchase falls under reverse charge.

    Priority: notified goods/services, then import of services (always
    IGST), then purchases from unregistered or composition suppliers.
    """
    if not recipient_gstin:
        raise ValidationError("Recipient GSTIN is required", field="recipient_gstin")
    if not place_of_supply:
        raise ValidationError("Place of supply is required", field="place_of_supply")
    amount = to_decimal(taxable_amount, "taxable_amount")
    if amount <= 0:
        raise ValidationError("Taxable amount must be greater than 0", field="taxable_amount")

    as_of = as_of or date.today()

    if hsn_sac_code:
        match = match_notified_item(hsn_sac_code, vendor_gstin, as_of, registry)
        if match is not None:
            rcm_type = (
                RCMType.NOTIFIED_SERVICE
                if match.rule.rule_type == RuleType.SERVICE
                else RCMType.NOTIFIED_GOODS
            )
            return RCMDetection(
                is_applicable=True,
                rcm_type=rcm_type,
                tax_type=_tax_type(place_of_supply, recipient_state),
                gst_rate=match.rule.gst_rate,
                reason=match.reason,
                rule=match.rule,
            )

    if vendor_country.strip().upper() != "INDIA" or place_of_supply == OUTSIDE_INDIA:
        return RCMDetection(
            is_applicable=True,
            rcm_type=RCMType.IMPORT_SERVICE,
            tax_type=TaxType.IGST,
            gst_rate=DEFAULT_SERVICE_RATE,
            reason="RCM applicable for import of services from foreign vendor",
        )

    valid_gstin = is_valid_gstin(vendor_gstin)
    if not valid_gstin or is_composition_vendor:
        if not valid_gstin and vendor_gstin:
            reason = "RCM applicable for unregistered vendor (invalid GSTIN format)"
        elif is_composition_vendor:
            reason = "RCM applicable for composition scheme vendor"
        else:
            reason = "RCM applicable for unregistered vendor (no GSTIN)"
        return RCMDetection(
            is_applicable=True,
            rcm_type=RCMType.UNREGISTERED,
            tax_type=_tax_type(place_of_supply, recipient_state),
            gst_rate=DEFAULT_SERVICE_RATE,
            reason=reason,
        )

    return RCMDetection(
        is_applicable=False,
        rcm_type=None,
        tax_type=None,
        gst_rate=DEFAULT_SERVICE_RATE,
        reason="No RCM applicable for registered vendor with valid GSTIN",
    )
