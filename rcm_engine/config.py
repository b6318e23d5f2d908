"""
Engine configuration.

Statutory constants live here rather than being scattered across modules.
Defaults follow the CGST Act / Rule 47A as applied by the engine; a deployment
can override them through ``RCM_ENGINE_*`` environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from decimal import Decimal
from typing import Mapping, Optional

from rcm_engine.errors import ValidationError


@dataclass(frozen=True)
class EngineConfig:
    due_day: int = 20  # day of month following receipt
    self_invoice_days: int = 30  # Rule 47A window
    interest_rate: Decimal = Decimal("18")  # percent per annum
    minimum_penalty: Decimal = Decimal("10000")
    penalty_rate: Decimal = Decimal("10")  # percent of tax
    future_ceiling_years: int = 2
    itc_deadline_month: int = 11
    itc_deadline_day: int = 30

    def __post_init__(self) -> None:
        if not 1 <= self.due_day <= 28:
            raise ValidationError("due_day must be between 1 and 28", field="due_day")
        if self.self_invoice_days <= 0:
            raise ValidationError(
                "self_invoice_days must be positive", field="self_invoice_days"
            )
        if self.interest_rate <= 0:
            raise ValidationError("interest_rate must be positive", field="interest_rate")
        if self.minimum_penalty < 0 or self.penalty_rate < 0:
            raise ValidationError("penalty settings cannot be negative", field="penalty")
        if self.future_ceiling_years < 0:
            raise ValidationError(
                "future_ceiling_years cannot be negative", field="future_ceiling_years"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build a config from ``RCM_ENGINE_<FIELD>`` variables, e.g.
        ``RCM_ENGINE_INTEREST_RATE=24``. Unset variables keep their default."""
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(f"RCM_ENGINE_{f.name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[f.name] = (
                    Decimal(raw.strip()) if f.type in ("Decimal", Decimal) else int(raw)
                )
            except (ArithmeticError, ValueError):
                raise ValidationError(
                    f"Invalid value for RCM_ENGINE_{f.name.upper()}: {raw!r}",
                    field=f.name,
                ) from None
        return replace(cls(), **overrides)


DEFAULT_CONFIG = EngineConfig()
