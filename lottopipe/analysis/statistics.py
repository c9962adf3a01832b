"""
Per-number draw statistics.

Computes, for every number 1..45, how often and how recently it was drawn,
and derives hot/cold/overdue rankings from that.
"""

from typing import Sequence

from lottopipe.analysis.types import (
    Appearance,
    NumberStatistics,
    RecentTrends,
    StatisticsAnalysis,
    StatisticsReport,
)
from lottopipe.services.validator import MAX_NUMBER, MIN_NUMBER
from lottopipe.types import DrawResult

RECENT_APPEARANCES_KEPT = 10
HOT_GAP_RATIO = 0.7
COLD_GAP_RATIO = 1.3
OVERDUE_GAP = 10
TREND_WINDOW = 20
RISING_RATIO = 1.2
FALLING_RATIO = 0.8
TOP_N = 10


def calculate_number_statistics(draws: Sequence[DrawResult]) -> dict[int, NumberStatistics]:
    """
    Frequency, last appearance, average gap and trend for every number.

    The trend compares the gaps between the last three appearances with the
    average gap: clearly shorter is hot, clearly longer is cold.
    """
    stats = {
        n: NumberStatistics(number=n) for n in range(MIN_NUMBER, MAX_NUMBER + 1)
    }

    for draw in sorted(draws, key=lambda d: d.round):
        for n in draw.numbers:
            stat = stats[n]
            stat.frequency += 1
            stat.last_appeared = draw.date
            stat.last_round = draw.round
            stat.recent_appearances.append(Appearance(round=draw.round, date=draw.date))
            del stat.recent_appearances[:-RECENT_APPEARANCES_KEPT]

    for stat in stats.values():
        appearances = stat.recent_appearances
        if len(appearances) < 2:
            continue

        gaps = [b.round - a.round for a, b in zip(appearances, appearances[1:])]
        stat.average_gap = round(sum(gaps) / len(gaps), 2)

        if len(appearances) >= 3:
            recent_gaps = gaps[-2:]
            recent_average = sum(recent_gaps) / len(recent_gaps)
            if recent_average < stat.average_gap * HOT_GAP_RATIO:
                stat.trend = "hot"
            elif recent_average > stat.average_gap * COLD_GAP_RATIO:
                stat.trend = "cold"

    return stats


def perform_statistical_analysis(
    stats: dict[int, NumberStatistics], draws: Sequence[DrawResult]
) -> StatisticsAnalysis:
    """Rankings over the statistics: frequency, trend, overdue and recent movement."""
    numbers = [stats[n] for n in sorted(stats)]
    by_frequency = sorted(numbers, key=lambda s: s.frequency, reverse=True)

    latest_round = max(d.round for d in draws)
    overdue = sorted(
        (s for s in numbers if s.last_round > 0 and latest_round - s.last_round > OVERDUE_GAP),
        key=lambda s: latest_round - s.last_round,
        reverse=True,
    )

    # Count appearances in the newest draws and compare with the overall rate
    newest = sorted(draws, key=lambda d: d.round, reverse=True)[:TREND_WINDOW]
    recent_counts: dict[int, int] = {}
    for draw in newest:
        for n in draw.numbers:
            recent_counts[n] = recent_counts.get(n, 0) + 1

    rising: list[int] = []
    falling: list[int] = []
    for n in sorted(recent_counts):
        expected = stats[n].frequency / len(draws) * len(newest)
        if recent_counts[n] > expected * RISING_RATIO:
            rising.append(n)
        elif recent_counts[n] < expected * FALLING_RATIO:
            falling.append(n)

    return StatisticsAnalysis(
        most_frequent=[s.number for s in by_frequency[:TOP_N]],
        least_frequent=[s.number for s in reversed(by_frequency[-TOP_N:])],
        hot_numbers=[s.number for s in numbers if s.trend == "hot"][:TOP_N],
        cold_numbers=[s.number for s in numbers if s.trend == "cold"][:TOP_N],
        overdue=[s.number for s in overdue[:TOP_N]],
        recent_trends=RecentTrends(rising=rising[:TOP_N], falling=falling[:TOP_N]),
    )


def build_statistics_report(
    draws: Sequence[DrawResult], include_analysis: bool = False
) -> StatisticsReport:
    """Statistics for a non-empty batch of draws, with optional rankings."""
    if not draws:
        raise ValueError("No draws to analyze")

    stats = calculate_number_statistics(draws)
    dates = sorted(d.date for d in draws)
    return StatisticsReport(
        number_statistics=stats,
        analysis=perform_statistical_analysis(stats, draws) if include_analysis else None,
        analyzed_rounds=len(draws),
        date_from=dates[0],
        date_to=dates[-1],
    )
