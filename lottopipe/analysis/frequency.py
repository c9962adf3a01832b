"""
Number frequency analysis over a window of draws.

Three flavours:
- recent: counts and percentages over the newest draws
- overall: recent plus mean/stddev, 2-sigma outliers and a distribution
- comparative: the newest draws against the older draws that precede them
"""

import datetime
import math
from typing import Sequence

from lottopipe.analysis.types import (
    ComparativeAnalysis,
    FrequencyAnalysis,
    FrequencyData,
    FrequencyDistribution,
    FrequencyOutlier,
    FrequencyStatistics,
    FrequencySummary,
    PeriodInfo,
    TrendComparison,
    TrendSummary,
)
from lottopipe.services.validator import MAX_NUMBER, MIN_NUMBER, NUMBERS_PER_DRAW
from lottopipe.types import DrawResult

HOT_PERCENTAGE = 2.5
COLD_DAYS = 14
TREND_THRESHOLD = 0.5  # percentage points
MIN_COMPARISON_DRAWS = 10
OUTLIER_SIGMAS = 2
TOP_N = 10
HOT_COLD_LIMIT = 15

NUMBER_COUNT = MAX_NUMBER - MIN_NUMBER + 1


def _newest_first(draws: Sequence[DrawResult]) -> list[DrawResult]:
    return sorted(draws, key=lambda d: d.round, reverse=True)


def analyze_recent_frequency(
    draws: Sequence[DrawResult], today: datetime.date
) -> FrequencyAnalysis:
    """Count every number over the given draws, most frequent first."""
    draws = _newest_first(draws)
    total_numbers = len(draws) * NUMBERS_PER_DRAW

    counts: dict[int, int] = {}
    last_seen: dict[int, datetime.date] = {}
    for draw in draws:
        for n in draw.numbers:
            counts[n] = counts.get(n, 0) + 1
            last_seen.setdefault(n, draw.date)

    data = []
    for n in range(MIN_NUMBER, MAX_NUMBER + 1):
        count = counts.get(n, 0)
        seen = last_seen.get(n)
        data.append(
            FrequencyData(
                number=n,
                frequency=count,
                percentage=round(count / total_numbers * 100, 2) if total_numbers else 0.0,
                last_appeared=seen,
                days_since_appearance=(today - seen).days if seen else -1,
            )
        )

    by_frequency = sorted(data, key=lambda item: item.frequency, reverse=True)
    return FrequencyAnalysis(
        frequency_data=by_frequency,
        most_frequent=by_frequency[:TOP_N],
        least_frequent=list(reversed(by_frequency[-TOP_N:])),
        hot_numbers=[i for i in by_frequency if i.percentage > HOT_PERCENTAGE][:HOT_COLD_LIMIT],
        cold_numbers=[i for i in by_frequency if i.days_since_appearance > COLD_DAYS][
            :HOT_COLD_LIMIT
        ],
        summary=FrequencySummary(
            total_draws=len(draws),
            average_frequency=round(total_numbers / NUMBER_COUNT, 2),
            expected_percentage=round(100 / NUMBER_COUNT, 2),
        ),
    )


def analyze_overall_frequency(
    draws: Sequence[DrawResult], today: datetime.date
) -> FrequencyAnalysis:
    """Recent analysis plus dispersion statistics over the same draws."""
    base = analyze_recent_frequency(draws, today)

    frequencies = [item.frequency for item in base.frequency_data]
    mean = sum(frequencies) / len(frequencies)
    variance = sum((f - mean) ** 2 for f in frequencies) / len(frequencies)
    std = math.sqrt(variance)

    outliers = [
        FrequencyOutlier(
            number=item.number,
            frequency=item.frequency,
            deviation=round(item.frequency - mean, 2),
        )
        for item in base.frequency_data
        if abs(item.frequency - mean) > std * OUTLIER_SIGMAS
    ]

    return base.model_copy(
        update={
            "kind": "overall",
            "statistics": FrequencyStatistics(
                mean=round(mean, 2),
                standard_deviation=round(std, 2),
                variance=round(variance, 2),
                outliers=outliers,
            ),
            "distribution": FrequencyDistribution(
                high_frequency=sum(1 for f in frequencies if f > mean + std),
                normal_frequency=sum(1 for f in frequencies if mean - std <= f <= mean + std),
                low_frequency=sum(1 for f in frequencies if f < mean - std),
            ),
        }
    )


def analyze_comparative_frequency(
    draws: Sequence[DrawResult], recent_rounds: int, today: datetime.date
) -> FrequencyAnalysis | ComparativeAnalysis:
    """
    Compare the newest `recent_rounds` draws with the rest.

    Falls back to a plain recent analysis when fewer than ten older draws
    are available to compare against.
    """
    draws = _newest_first(draws)
    recent = draws[:recent_rounds]
    older = draws[recent_rounds:]

    if len(older) < MIN_COMPARISON_DRAWS:
        return analyze_recent_frequency(recent, today)

    recent_analysis = analyze_recent_frequency(recent, today)
    older_percentages = {
        item.number: item.percentage
        for item in analyze_recent_frequency(older, today).frequency_data
    }

    comparison = []
    for item in recent_analysis.frequency_data:
        older_percentage = older_percentages.get(item.number, 0.0)
        delta = item.percentage - older_percentage
        if delta > TREND_THRESHOLD:
            trend = "rising"
        elif delta < -TREND_THRESHOLD:
            trend = "falling"
        else:
            trend = "stable"
        comparison.append(
            TrendComparison(
                number=item.number,
                recent_frequency=item.frequency,
                recent_percentage=item.percentage,
                older_percentage=older_percentage,
                trend_value=round(delta, 2),
                trend=trend,
            )
        )

    rising = sorted(
        (c for c in comparison if c.trend == "rising"), key=lambda c: c.trend_value, reverse=True
    )
    falling = sorted((c for c in comparison if c.trend == "falling"), key=lambda c: c.trend_value)

    return ComparativeAnalysis(
        recent=recent_analysis,
        comparison=comparison,
        trends=TrendSummary(
            rising=rising[:TOP_N],
            falling=falling[:TOP_N],
            stable=sum(1 for c in comparison if c.trend == "stable"),
        ),
        recent_period=_period(recent),
        comparison_period=_period(older),
    )


def _period(draws: list[DrawResult]) -> PeriodInfo:
    return PeriodInfo(rounds=len(draws), date_from=draws[-1].date, date_to=draws[0].date)


def analyze_frequency(
    draws: Sequence[DrawResult],
    analysis_type: str,
    rounds: int,
    today: datetime.date | None = None,
) -> FrequencyAnalysis | ComparativeAnalysis:
    """Dispatch on analysis type ('recent', 'overall' or 'comparative')."""
    if not draws:
        raise ValueError("No draws to analyze")
    today = today or datetime.date.today()

    if analysis_type == "recent":
        return analyze_recent_frequency(_newest_first(draws)[:rounds], today)
    if analysis_type == "overall":
        return analyze_overall_frequency(draws, today)
    if analysis_type == "comparative":
        return analyze_comparative_frequency(draws, rounds, today)
    raise ValueError(f"Unknown frequency analysis type: {analysis_type}")
