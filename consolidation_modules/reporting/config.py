"""
Consolidation Reporting Configuration.

Rounding, display and default-inclusion options for consolidated views.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Self

from consolidation_kernel.logging_config import get_logger

logger = get_logger("modules.reporting.config")


@dataclass
class ConsolidationConfig:
    """
    Configuration schema for consolidated reporting.

    amount_precision drives monthly-spread rounding; ratio_precision the
    margin ratios; drill_down_zero_tolerance hides dust rows in drill-down.
    """

    default_currency: str = "USD"

    organization_name: str = "Organization"

    amount_precision: int = 2

    ratio_precision: int = 4

    drill_down_zero_tolerance: Decimal = Decimal("0.005")

    # When False only master accounts with activity in the period are listed
    include_zero_balances: bool = False

    default_include_allocations: bool = True

    default_include_pro_forma: bool = True

    def __post_init__(self):
        if self.amount_precision < 0:
            raise ValueError("amount_precision cannot be negative")
        if self.ratio_precision < 0:
            raise ValueError("ratio_precision cannot be negative")
        if len(self.default_currency) != 3:
            raise ValueError("default_currency must be a 3-letter ISO 4217 code")
        self.drill_down_zero_tolerance = Decimal(str(self.drill_down_zero_tolerance))
        if self.drill_down_zero_tolerance < 0:
            raise ValueError("drill_down_zero_tolerance cannot be negative")

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        logger.info("consolidation_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary. Unknown keys raise ValueError."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown consolidation config keys: {', '.join(unknown)}")
        logger.info(
            "consolidation_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
