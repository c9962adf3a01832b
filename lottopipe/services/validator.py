"""
Draw record validation.

Turns raw candidates produced by the page extractor into DrawResult values.
A candidate is either accepted whole or rejected; nothing is repaired or
defaulted. All functions are pure apart from logging.
"""

import datetime
import re
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from loguru import logger

from lottopipe.services.errors import ValidationError
from lottopipe.types import PRIZE_TIERS, DrawResult, PrizeTier

MIN_NUMBER = 1
MAX_NUMBER = 45
NUMBERS_PER_DRAW = 6
MAX_ROUND = 10000  # sanity ceiling
FRESHNESS_HOURS = 168  # one weekly cadence

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_valid_number(num: Any) -> bool:
    """Check a single ball number."""
    return _is_int(num) and MIN_NUMBER <= num <= MAX_NUMBER


def is_valid_number_set(numbers: Any) -> bool:
    """Exactly six valid, distinct numbers."""
    if isinstance(numbers, (str, bytes)) or not isinstance(numbers, Iterable):
        return False
    numbers = list(numbers)
    if len(numbers) != NUMBERS_PER_DRAW:
        return False
    if not all(is_valid_number(n) for n in numbers):
        return False
    return len(set(numbers)) == NUMBERS_PER_DRAW


def is_valid_date(value: Any) -> bool:
    """YYYY-MM-DD that survives a parse/format round trip unchanged."""
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        return False
    try:
        parsed = datetime.datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return False
    return parsed.isoformat() == value


def is_valid_round(round_no: Any) -> bool:
    return _is_int(round_no) and 0 < round_no < MAX_ROUND


def _tier_fields(tier: Any) -> tuple[Any, Any] | None:
    if isinstance(tier, PrizeTier):
        return tier.amount, tier.winners
    if isinstance(tier, Mapping) and "amount" in tier and "winners" in tier:
        return tier["amount"], tier["winners"]
    return None


def _normalize_prize(prize: Any) -> dict[int, PrizeTier] | None:
    if not isinstance(prize, Mapping):
        return None

    tiers: dict[int, PrizeTier] = {}
    for key, tier in prize.items():
        try:
            tier_no = int(key)
        except (TypeError, ValueError):
            return None
        fields = _tier_fields(tier)
        if fields is None:
            return None
        amount, winners = fields
        if not (_is_int(amount) and _is_int(winners)):
            return None
        if amount < 0 or winners < 0:
            return None
        tiers[tier_no] = PrizeTier(amount=amount, winners=winners)

    if set(tiers) != set(PRIZE_TIERS):
        return None
    return tiers


def is_valid_prize(prize: Any) -> bool:
    """All five tiers present with non-negative integer amount and winners."""
    return _normalize_prize(prize) is not None


def validate(candidate: Any) -> DrawResult:
    """
    Validate a raw candidate and build a DrawResult.

    Args:
        candidate: Mapping with round, date, numbers, bonus and prize keys,
            or an existing DrawResult (re-validated as-is)

    Returns:
        The validated DrawResult

    Raises:
        ValidationError: naming the first field that failed
    """
    if isinstance(candidate, DrawResult):
        candidate = candidate.model_dump()
    if not isinstance(candidate, Mapping):
        raise ValidationError("record", "candidate is not a mapping")

    round_no = candidate.get("round")
    if not is_valid_round(round_no):
        raise ValidationError("round", f"{round_no!r}")

    raw_date = candidate.get("date")
    if isinstance(raw_date, datetime.date):
        raw_date = raw_date.isoformat()
    if not is_valid_date(raw_date):
        raise ValidationError("date", f"{raw_date!r}")

    numbers = candidate.get("numbers")
    if not is_valid_number_set(numbers):
        raise ValidationError("numbers", f"{numbers!r}")
    numbers = tuple(numbers)

    bonus = candidate.get("bonus")
    if not is_valid_number(bonus):
        raise ValidationError("bonus", f"{bonus!r}")
    if bonus in numbers:
        raise ValidationError("bonus", f"{bonus} duplicates a winning number")

    prize = _normalize_prize(candidate.get("prize"))
    if prize is None:
        raise ValidationError("prize", "missing tier or negative field")

    return DrawResult(
        round=round_no,
        date=datetime.date.fromisoformat(raw_date),
        numbers=numbers,
        bonus=bonus,
        prize=prize,
    )


def clean_batch(candidates: Iterable[Any]) -> list[DrawResult]:
    """
    Filter, sort and de-duplicate a batch of candidates.

    Invalid entries are logged and dropped. The result is ordered by round,
    newest first, with at most one entry per round (the first one seen after
    sorting wins).
    """
    valid: list[DrawResult] = []
    rejected = 0

    for index, candidate in enumerate(candidates):
        try:
            valid.append(validate(candidate))
        except ValidationError as e:
            rejected += 1
            logger.warning(f"Dropping draw candidate #{index}: {e}")

    if rejected:
        logger.warning(f"Excluded {rejected} invalid draw records")

    valid.sort(key=lambda draw: draw.round, reverse=True)

    seen: set[int] = set()
    unique: list[DrawResult] = []
    for draw in valid:
        if draw.round in seen:
            continue
        seen.add(draw.round)
        unique.append(draw)

    if len(unique) != len(valid):
        logger.warning(f"Removed {len(valid) - len(unique)} duplicate rounds")

    logger.debug(f"Validated {len(unique)} draw records")
    return unique


@dataclass
class FreshnessReport:
    """How old the newest draw in a batch is."""

    is_fresh: bool
    last_update: str | None
    age_hours: float | None


@dataclass
class CompletenessReport:
    """Gaps in the round sequence of a batch."""

    is_complete: bool
    total_rounds: int
    missing_rounds: list[int] = field(default_factory=list)

    @property
    def completeness(self) -> int:
        """Percentage of expected rounds present."""
        if self.total_rounds == 0:
            return 0
        if self.is_complete:
            return 100
        present = self.total_rounds - len(self.missing_rounds)
        return round(present / self.total_rounds * 100)


def check_freshness(
    draws: list[DrawResult], now: datetime.datetime | None = None
) -> FreshnessReport:
    if not draws:
        return FreshnessReport(is_fresh=False, last_update=None, age_hours=None)

    latest = max(draws, key=lambda draw: draw.round)
    now = now or datetime.datetime.now()
    drawn_at = datetime.datetime.combine(latest.date, datetime.time.min)
    age_hours = (now - drawn_at).total_seconds() / 3600

    return FreshnessReport(
        is_fresh=age_hours <= FRESHNESS_HOURS,
        last_update=latest.date.isoformat(),
        age_hours=round(age_hours, 2),
    )


def check_completeness(draws: list[DrawResult]) -> CompletenessReport:
    if not draws:
        return CompletenessReport(is_complete=False, total_rounds=0)

    rounds = {draw.round for draw in draws}
    lowest, highest = min(rounds), max(rounds)
    missing = [r for r in range(lowest, highest + 1) if r not in rounds]

    return CompletenessReport(
        is_complete=not missing,
        total_rounds=highest - lowest + 1,
        missing_rounds=missing,
    )


def quality_check(
    draws: list[DrawResult], now: datetime.datetime | None = None
) -> dict[str, Any]:
    """Freshness and completeness of a batch, as plain data."""
    completeness = check_completeness(draws)
    return {
        "freshness": asdict(check_freshness(draws, now)),
        "completeness": {**asdict(completeness), "completeness": completeness.completeness},
    }
