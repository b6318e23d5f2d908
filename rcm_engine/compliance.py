"""
Reverse-charge compliance timer.

Monitors:
- RCM payment due dates (20th of the month after receipt)
- Overdue classification and interest accrual on late payment
- The 30-day self-invoice window (Rule 47A) and late-issuance penalty
- The ITC claim deadline (30 November after the fiscal year ends)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from rcm_engine.amounts import ZERO, round_rupee, to_decimal
from rcm_engine.config import DEFAULT_CONFIG, EngineConfig
from rcm_engine.errors import ValidationError

logger = logging.getLogger(__name__)


class OverdueCategory(Enum):
    NOT_OVERDUE = "NOT_OVERDUE"
    MINOR = "MINOR"  # 1-30 days
    MAJOR = "MAJOR"  # 31-90 days
    CRITICAL = "CRITICAL"  # more than 90 days


class WarningLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class PaymentState(Enum):
    PENDING = "PENDING"
    OVERDUE = "OVERDUE"


@dataclass(frozen=True)
class OverdueStatus:
    is_overdue: bool
    days_past_due: int
    category: OverdueCategory


@dataclass(frozen=True)
class DueDateStatus:
    """Position of a transaction inside its self-invoice window."""

    days_elapsed: int
    days_remaining: int
    is_within_time: bool
    is_overdue: bool
    days_delayed: int = 0
    warning_level: Optional[WarningLevel] = None


@dataclass(frozen=True)
class PenaltyCalculation:
    days_delayed: int
    interest_rate: Decimal
    interest_amount: Decimal
    penalty_amount: Decimal

    @property
    def total_penalty(self) -> Decimal:
        return self.interest_amount + self.penalty_amount


@dataclass(frozen=True)
class ITCDeadline:
    financial_year: str
    deadline_date: date
    days_remaining: int
    is_expired: bool
    warning_level: Optional[WarningLevel] = None


@dataclass(frozen=True)
class LiabilityStatus:
    """Payment tracking for one RCM liability."""

    state: PaymentState
    due_date: date
    return_period: str  # MM-YYYY
    overdue: OverdueStatus
    interest_amount: Decimal


# -----------------------------------------------------------------------
# Date helpers
# -----------------------------------------------------------------------


def coerce_date(value, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError(f"Invalid {field_name}: {value!r}", field=field_name) from None
    raise ValidationError(f"Invalid {field_name}: {value!r}", field=field_name)


def _add_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:  # 29 February
        return day.replace(year=day.year + years, day=28)


def fiscal_year_for(day: date) -> str:
    """Indian fiscal year label (April-March), e.g. ``"2024-25"``."""
    start = day.year if day.month >= 4 else day.year - 1
    return f"{start}-{(start + 1) % 100:02d}"


def return_period_for(day: date) -> str:
    return f"{day.month:02d}-{day.year}"


# -----------------------------------------------------------------------
# Payment due date and overdue tracking
# -----------------------------------------------------------------------


def due_date(
    receipt_date,
    today: Optional[date] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> date:
    """
    RCM payment due date: the configured day (20th) of the month after receipt.

    Rejects receipt dates more than ``config.future_ceiling_years`` ahead
    of ``today``.
    """
    receipt = coerce_date(receipt_date, "receipt_date")
    ref = today or date.today()
    if receipt > _add_years(ref, config.future_ceiling_years):
        raise ValidationError(
            "Receipt date cannot be too far in the future", field="receipt_date"
        )
    if receipt.month == 12:
        return date(receipt.year + 1, 1, config.due_day)
    return date(receipt.year, receipt.month + 1, config.due_day)


def overdue_status(due: date, now: Optional[date] = None) -> OverdueStatus:
    check = coerce_date(now or date.today(), "now")
    days = max(0, (check - coerce_date(due, "due")).days)
    if days == 0:
        category = OverdueCategory.NOT_OVERDUE
    elif days <= 30:
        category = OverdueCategory.MINOR
    elif days <= 90:
        category = OverdueCategory.MAJOR
    else:
        category = OverdueCategory.CRITICAL
    return OverdueStatus(is_overdue=days > 0, days_past_due=days, category=category)


def interest(principal, days_overdue: int, annual_rate_percent=Decimal("18")) -> Decimal:
    """
    Simple interest on late tax, rounded to the nearest rupee.

    interest = principal x rate/100 x days/365
    """
    amount = to_decimal(principal, "principal")
    rate = to_decimal(annual_rate_percent, "annual_rate_percent")
    if amount < 0:
        raise ValidationError("Principal amount cannot be negative", field="principal")
    if days_overdue < 0:
        raise ValidationError("Days overdue cannot be negative", field="days_overdue")
    if rate <= 0:
        raise ValidationError("Interest rate must be positive", field="annual_rate_percent")
    if days_overdue == 0:
        return ZERO
    return round_rupee(amount * rate * days_overdue / Decimal("36500"))


def track_liability(
    receipt_date,
    tax_amount,
    as_of: Optional[date] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> LiabilityStatus:
    """Payment state of an unpaid RCM liability with accrued interest."""
    receipt = coerce_date(receipt_date, "receipt_date")
    ref = as_of or date.today()
    due = due_date(receipt, today=ref, config=config)
    status = overdue_status(due, ref)
    accrued = (
        interest(tax_amount, status.days_past_due, config.interest_rate)
        if status.is_overdue
        else ZERO
    )
    return LiabilityStatus(
        state=PaymentState.OVERDUE if status.is_overdue else PaymentState.PENDING,
        due_date=due,
        return_period=return_period_for(receipt),
        overdue=status,
        interest_amount=accrued,
    )


# -----------------------------------------------------------------------
# Self-invoice window
# -----------------------------------------------------------------------


def self_invoice_window(
    receipt_date,
    as_of: Optional[date] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> DueDateStatus:
    """
    Where ``as_of`` falls in the self-invoice window opened by a receipt.

    Warning levels step up as the window closes: LOW with 15 days left,
    MEDIUM with 10, HIGH with 5 and CRITICAL with 2.
    """
    receipt = coerce_date(receipt_date, "receipt_date")
    ref = coerce_date(as_of or date.today(), "as_of")
    limit = config.self_invoice_days
    elapsed = abs((ref - receipt).days)
    remaining = limit - elapsed
    overdue = elapsed > limit

    level: Optional[WarningLevel] = None
    if not overdue:
        if remaining <= 2:
            level = WarningLevel.CRITICAL
        elif remaining <= 5:
            level = WarningLevel.HIGH
        elif remaining <= 10:
            level = WarningLevel.MEDIUM
        elif remaining <= 15:
            level = WarningLevel.LOW

    return DueDateStatus(
        days_elapsed=elapsed,
        days_remaining=remaining,
        is_within_time=not overdue,
        is_overdue=overdue,
        days_delayed=elapsed - limit if overdue else 0,
        warning_level=level,
    )


def late_issuance_penalty(
    tax_amount,
    receipt_date,
    issue_date,
    config: EngineConfig = DEFAULT_CONFIG,
) -> PenaltyCalculation:
    """
    Interest and flat penalty for a self-invoice issued after the window.

    Interest runs on the days past the window. The flat penalty is the
    greater of the configured minimum and ``penalty_rate`` percent of the
    tax. Both are whole rupees.
    """
    tax = to_decimal(tax_amount, "tax_amount")
    if tax < 0:
        raise ValidationError("Tax amount cannot be negative", field="tax_amount")
    window = self_invoice_window(receipt_date, issue_date, config)
    if window.days_delayed == 0:
        return PenaltyCalculation(0, ZERO, ZERO, ZERO)

    flat = max(config.minimum_penalty, tax * config.penalty_rate / Decimal("100"))
    result = PenaltyCalculation(
        days_delayed=window.days_delayed,
        interest_rate=config.interest_rate,
        interest_amount=interest(tax, window.days_delayed, config.interest_rate),
        penalty_amount=round_rupee(flat),
    )
    logger.debug(
        "Late self-invoice: %d days delayed, interest %s, penalty %s",
        result.days_delayed,
        result.interest_amount,
        result.penalty_amount,
    )
    return result


# -----------------------------------------------------------------------
# ITC claim deadline
# -----------------------------------------------------------------------


def itc_claim_deadline(
    document_date,
    as_of: Optional[date] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ITCDeadline:
    """Last date to claim ITC on a document: 30 November after its fiscal year."""
    doc = coerce_date(document_date, "document_date")
    ref = as_of or date.today()
    fy_end_year = doc.year + 1 if doc.month >= 4 else doc.year
    deadline = date(fy_end_year, config.itc_deadline_month, config.itc_deadline_day)
    remaining = max(0, (deadline - ref).days)
    expired = ref > deadline

    level: Optional[WarningLevel] = None
    if not expired:
        if remaining <= 30:
            level = WarningLevel.CRITICAL
        elif remaining <= 60:
            level = WarningLevel.HIGH
        elif remaining <= 90:
            level = WarningLevel.MEDIUM
        elif remaining <= 180:
            level = WarningLevel.LOW

    return ITCDeadline(
        financial_year=fiscal_year_for(doc),
        deadline_date=deadline,
        days_remaining=remaining,
        is_expired=expired,
        warning_level=level,
    )
