"""Fee schedule: the monthly charge for each enrollment level."""

import logging
from decimal import Decimal
from typing import Any, Dict, Mapping

from ..exceptions import FeeConfigurationError
from .models import MAX_AMOUNT, Level, parse_decimal, parse_level, to_money

logger = logging.getLogger(__name__)

DEFAULT_LEVEL_FEES: Dict[Level, Decimal] = {
    Level.NURSERY: Decimal("50.00"),
    Level.PRESCHOOL: Decimal("65.00"),
    Level.PRIMARY: Decimal("80.00"),
    Level.SECONDARY: Decimal("100.00"),
}


class FeeSchedule:
    """Mapping from enrollment level to a non-negative monthly amount.

    A schedule may be built incomplete (e.g. from a partial remote payload),
    but asking for the fee of a missing level raises
    FeeConfigurationError instead of silently charging zero.
    """

    def __init__(self, fees: Mapping[Level, Any]):
        """Initialize the schedule.

        Args:
            fees: Mapping of Level to amount.

        Raises:
            FeeConfigurationError: If any amount is negative, not a number or above MAX_AMOUNT.
        """
        self._fees: Dict[Level, Decimal] = {}
        for level, amount in fees.items():
            value = parse_decimal(amount)
            if value is None or value < 0 or value > MAX_AMOUNT:
                raise FeeConfigurationError(
                    f"Invalid monthly fee for {Level(level).value}: {amount!r}"
                )
            self._fees[Level(level)] = to_money(value)

    @classmethod
    def default(cls) -> "FeeSchedule":
        return cls(DEFAULT_LEVEL_FEES)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "FeeSchedule":
        """Build a schedule from a loosely keyed mapping.

        Level names are matched ignoring case and accents, amounts may use a
        comma as decimal separator. Unrecognised keys are logged and ignored.

        Args:
            raw: Mapping such as {"Maternal": 50, "primaria": "80,00"}.

        Returns:
            FeeSchedule with the recognised levels.
        """
        fees: Dict[Level, Any] = {}
        for key, amount in raw.items():
            level = parse_level(key)
            if level is None:
                logger.warning(f"Ignoring fee for unknown level {key!r}")
                continue
            fees[level] = amount
        return cls(fees)

    def fee_for(self, level: Level) -> Decimal:
        """Return the monthly fee for a level.

        Raises:
            FeeConfigurationError: If the schedule has no fee for the level.
        """
        try:
            return self._fees[Level(level)]
        except KeyError:
            raise FeeConfigurationError(
                f"No monthly fee configured for level {Level(level).value}"
            ) from None

    def levels(self) -> list:
        """Configured levels, in enrollment order."""
        return [level for level in Level if level in self._fees]

    def missing_levels(self) -> list:
        return [level for level in Level if level not in self._fees]

    def validate(self) -> "FeeSchedule":
        """Check that every enrollment level has a fee.

        Returns:
            The schedule itself, for chaining.

        Raises:
            FeeConfigurationError: If one or more levels are missing.
        """
        missing = self.missing_levels()
        if missing:
            names = ", ".join(level.value for level in missing)
            raise FeeConfigurationError(f"Fee schedule is missing levels: {names}")
        return self

    def with_fee(self, level: Level, amount: Any) -> "FeeSchedule":
        """Return a copy of the schedule with one level's fee changed.

        Raises:
            ValueError: If the amount is negative, not a number or above MAX_AMOUNT.
        """
        value = parse_decimal(amount)
        if value is None or value < 0 or value > MAX_AMOUNT:
            raise ValueError(f"Monthly fee must be a non-negative amount, got {amount!r}")
        fees = dict(self._fees)
        fees[Level(level)] = value
        logger.info(f"Monthly fee for {Level(level).value} set to {to_money(value)}")
        return FeeSchedule(fees)

    def to_dict(self) -> Dict[str, float]:
        """Wire representation keyed by level label."""
        return {level.value: float(amount) for level, amount in self._fees.items()}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FeeSchedule):
            return NotImplemented
        return self._fees == other._fees

    def __repr__(self) -> str:
        items = ", ".join(f"{level.value}={amount}" for level, amount in self._fees.items())
        return f"FeeSchedule({items})"
