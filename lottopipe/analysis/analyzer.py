"""
DrawAnalyzer - the analysis entry point used by the cache facade.
"""

from datetime import datetime
from typing import Callable, Sequence

from lottopipe.analysis.frequency import analyze_frequency
from lottopipe.analysis.statistics import build_statistics_report
from lottopipe.analysis.types import ComparativeAnalysis, FrequencyAnalysis, StatisticsReport
from lottopipe.types import DrawResult

COMPARATIVE_MIN_DRAWS = 100


class DrawAnalyzer:
    """
    Computes statistics and frequency reports over validated draws.

    Usage:
        analyzer = DrawAnalyzer()
        rounds_needed = analyzer.draws_needed("comparative", 50)
        report = analyzer.frequency(draws, "comparative", 50)
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock

    def draws_needed(self, analysis_type: str, rounds: int) -> int:
        """How many recent draws to acquire for a frequency analysis."""
        if analysis_type == "comparative":
            return max(rounds * 2, COMPARATIVE_MIN_DRAWS)
        return rounds

    def statistics(
        self, draws: Sequence[DrawResult], include_analysis: bool = False
    ) -> StatisticsReport:
        return build_statistics_report(draws, include_analysis)

    def frequency(
        self, draws: Sequence[DrawResult], analysis_type: str, rounds: int
    ) -> FrequencyAnalysis | ComparativeAnalysis:
        return analyze_frequency(draws, analysis_type, rounds, today=self._clock().date())
