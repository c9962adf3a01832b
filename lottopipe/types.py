"""
Draw result types using Pydantic models.
"""

import datetime

from pydantic import BaseModel, ConfigDict

PRIZE_TIERS = (1, 2, 3, 4, 5)


class PrizeTier(BaseModel):
    """Payout and winner count for one prize tier."""

    model_config = ConfigDict(frozen=True)

    amount: int
    winners: int


class DrawResult(BaseModel):
    """Validated outcome of one weekly draw.

    Instances are built by ``services.validator.validate``; anything else
    that constructs one directly bypasses the draw invariants.
    """

    model_config = ConfigDict(frozen=True)

    round: int
    date: datetime.date
    numbers: tuple[int, ...]
    bonus: int
    prize: dict[int, PrizeTier]

    @property
    def sorted_numbers(self) -> list[int]:
        return sorted(self.numbers)
