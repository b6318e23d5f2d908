"""
Registry of goods and services notified under reverse charge.

Covers the Section 9(3) notified lists (Notification 13/2017-CT(Rate) for
services, 8/2017-CT(Rate) for goods) with the HSN/SAC prefixes each entry
applies to. The registry is loaded once and is read-only afterwards; changing
a rule means shipping a new rule set and reloading, never editing in place.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Iterable, Iterator, Optional

from rcm_engine.errors import NotFoundError, ValidationError


class RuleType(Enum):
    SERVICE = "SERVICE"
    GOODS = "GOODS"


class CodeType(Enum):
    HSN = "HSN"  # goods
    SAC = "SAC"  # services
    INVALID = "INVALID"


_SEPARATORS = re.compile(r"[\s\-.]")


def normalize_code(code: Optional[str]) -> str:
    """Strip spaces, dashes and dots from an HSN/SAC code."""
    if not code or not isinstance(code, str):
        return ""
    return _SEPARATORS.sub("", code.strip()).upper()


def code_type(code: Optional[str]) -> CodeType:
    """
    Classify a normalized code into the goods or services vocabulary.

    SAC codes are 4 or 6 digits in chapter 99. Everything else numeric with
    4, 6 or 8 digits is an HSN code. 8-digit codes are always HSN.
    """
    if not code or not code.isdigit():
        return CodeType.INVALID
    if len(code) in (4, 6):
        return CodeType.SAC if code.startswith("99") else CodeType.HSN
    if len(code) == 8:
        return CodeType.HSN
    return CodeType.INVALID


_VOCABULARY = {CodeType.SAC: RuleType.SERVICE, CodeType.HSN: RuleType.GOODS}


def rule_type_for(code: str) -> Optional[RuleType]:
    return _VOCABULARY.get(code_type(code))


@dataclass(frozen=True)
class NotifiedRule:
    """A single notified RCM entry."""

    id: str
    rule_type: RuleType
    hsn_sac_codes: tuple[str, ...]
    description: str
    gst_rate: Decimal  # percent
    effective_from: date
    effective_to: Optional[date] = None  # exclusive
    priority: int = 10
    is_active: bool = True
    notification_no: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("Rule id is required", field="id")
        codes = tuple(normalize_code(c) for c in self.hsn_sac_codes)
        if not codes or any(not c for c in codes):
            raise ValidationError(f"Rule {self.id} has no usable codes", field="hsn_sac_codes")
        object.__setattr__(self, "hsn_sac_codes", codes)
        if not self.description.strip():
            raise ValidationError(f"Rule {self.id} has no description", field="description")
        if self.gst_rate <= 0:
            raise ValidationError(f"Rule {self.id} has a non-positive rate", field="gst_rate")
        if self.effective_to is not None and self.effective_to <= self.effective_from:
            raise ValidationError(
                f"Rule {self.id}: effective_to must be after effective_from",
                field="effective_to",
            )

    def is_applicable(self, as_of: date) -> bool:
        if not self.is_active:
            return False
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of < self.effective_to


# ---------------------------------------------------------------------------
# Notified list
# ---------------------------------------------------------------------------

_GST_LAUNCH = date(2017, 7, 1)

_RULE_DATA: list[dict] = [
    # Services, Notification 13/2017-Central Tax (Rate)
    {
        "id": "notified-legal-services",
        "type": RuleType.SERVICE,
        "codes": ["9982", "998211", "998212", "998213"],
        "description": "Legal services by an advocate or firm of advocates",
        "rate": "18",
        "notification": "13/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-gta-services-5",
        "type": RuleType.SERVICE,
        "codes": ["9967", "996711", "996713", "996714"],
        "description": "Goods Transport Agency services (road transport)",
        "rate": "5",
        "notification": "13/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-gta-services-12",
        "type": RuleType.SERVICE,
        "codes": ["996712", "996715"],
        "description": "Goods Transport Agency services (air/water transport)",
        "rate": "12",
        "priority": 15,
        "notification": "13/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-director-services",
        "type": RuleType.SERVICE,
        "codes": ["9954", "995411", "995412"],
        "description": "Services supplied by a director to the company",
        "rate": "18",
        "notification": "13/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-insurance-agent-services",
        "type": RuleType.SERVICE,
        "codes": ["9971", "997111", "997112"],
        "description": "Services supplied by an insurance agent",
        "rate": "18",
        "notification": "13/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-recovery-agent-services",
        "type": RuleType.SERVICE,
        "codes": ["9983", "998311", "998312"],
        "description": "Services supplied by a recovery agent",
        "rate": "18",
        "notification": "13/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-sponsorship-services",
        "type": RuleType.SERVICE,
        "codes": ["998321", "998322"],
        "description": "Sponsorship services to a body corporate or partnership",
        "rate": "18",
        "priority": 20,
        "notification": "13/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-rent-a-cab-services",
        "type": RuleType.SERVICE,
        "codes": ["9964", "996411", "996412"],
        "description": "Renting of motor vehicles (rent-a-cab)",
        "rate": "5",
        "notification": "13/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-works-contract-12",
        "type": RuleType.SERVICE,
        "codes": ["995421", "995422"],
        "description": "Works contract services - construction",
        "rate": "12",
        "priority": 15,
        "notification": "13/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-works-contract-18",
        "type": RuleType.SERVICE,
        "codes": ["995423", "995424"],
        "description": "Works contract services - specialized construction",
        "rate": "18",
        "priority": 15,
        "notification": "13/2017-Central Tax (Rate)",
    },
    # Goods, Notification 8/2017-Central Tax (Rate)
    {
        "id": "notified-cashew-nuts",
        "type": RuleType.GOODS,
        "codes": ["0801", "080110", "08011000", "08011100"],
        "description": "Cashew nuts, not shelled or peeled",
        "rate": "5",
        "notification": "8/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-bidi-wrapper-leaves",
        "type": RuleType.GOODS,
        "codes": ["1404", "140420", "14042000"],
        "description": "Bidi wrapper leaves (tendu)",
        "rate": "18",
        "notification": "8/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-tobacco-leaves",
        "type": RuleType.GOODS,
        "codes": ["2401", "240110", "24011000", "24012000"],
        "description": "Tobacco leaves (unmanufactured)",
        "rate": "5",
        "notification": "8/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-silk-yarn-5004",
        "type": RuleType.GOODS,
        "codes": ["5004", "500400", "50040000"],
        "description": "Silk yarn, not put up for retail sale",
        "rate": "5",
        "notification": "8/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-silk-yarn-5005",
        "type": RuleType.GOODS,
        "codes": ["5005", "500500", "50050000"],
        "description": "Yarn spun from silk waste, not put up for retail sale",
        "rate": "5",
        "notification": "8/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-silk-yarn-5006",
        "type": RuleType.GOODS,
        "codes": ["5006", "500600", "50060000"],
        "description": "Silk yarn and yarn spun from silk waste, put up for retail sale",
        "rate": "5",
        "notification": "8/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-raw-cotton",
        "type": RuleType.GOODS,
        "codes": ["5201", "520100", "52010000"],
        "description": "Raw cotton, not carded or combed",
        "rate": "5",
        "notification": "8/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-lottery-12",
        "type": RuleType.GOODS,
        "codes": ["9990", "999011", "99901100"],
        "description": "Lottery supplied by a State Government",
        "rate": "12",
        "notification": "8/2017-Central Tax (Rate)",
    },
    {
        "id": "notified-lottery-28",
        "type": RuleType.GOODS,
        "codes": ["999012", "99901200", "99901210"],
        "description": "Lottery supplied by a State Government, higher slab",
        "rate": "28",
        "priority": 15,
        "notification": "8/2017-Central Tax (Rate)",
    },
]


def _build_rule(data: dict) -> NotifiedRule:
    return NotifiedRule(
        id=data["id"],
        rule_type=data["type"],
        hsn_sac_codes=tuple(data["codes"]),
        description=data["description"],
        gst_rate=Decimal(data["rate"]),
        effective_from=data.get("effective_from", _GST_LAUNCH),
        effective_to=data.get("effective_to"),
        priority=data.get("priority", 10),
        is_active=data.get("active", True),
        notification_no=data.get("notification"),
    )


class NotifiedRuleRegistry:
    """
    Immutable, ordered collection of notified rules.

    Rules are kept in load order. Lookups never mutate the collection.
    """

    def __init__(self, rules: Iterable[NotifiedRule]) -> None:
        loaded = tuple(rules)
        seen: set[str] = set()
        for rule in loaded:
            if rule.id in seen:
                raise ValidationError(f"Duplicate rule id: {rule.id}", field="id")
            seen.add(rule.id)
        self._rules = loaded
        self._by_id = {r.id: r for r in loaded}

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "NotifiedRuleRegistry":
        return cls(_build_rule(r) for r in records)

    @property
    def rules(self) -> tuple[NotifiedRule, ...]:
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[NotifiedRule]:
        return iter(self._rules)

    def get(self, rule_id: str) -> NotifiedRule:
        try:
            return self._by_id[rule_id]
        except KeyError:
            raise NotFoundError("Notified rule", rule_id) from None

    def by_type(self, rule_type: RuleType) -> tuple[NotifiedRule, ...]:
        return tuple(r for r in self._rules if r.rule_type == rule_type)

    def effective_on(self, as_of: date) -> tuple[NotifiedRule, ...]:
        return tuple(r for r in self._rules if r.is_applicable(as_of))


@lru_cache(maxsize=1)
def default_registry() -> NotifiedRuleRegistry:
    """The bundled notified list, loaded once per process."""
    return NotifiedRuleRegistry.from_records(_RULE_DATA)
