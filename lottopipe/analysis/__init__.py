"""
Draw analysis: per-number statistics and frequency reports.
"""

from lottopipe.analysis.analyzer import DrawAnalyzer
from lottopipe.analysis.frequency import (
    analyze_comparative_frequency,
    analyze_frequency,
    analyze_overall_frequency,
    analyze_recent_frequency,
)
from lottopipe.analysis.statistics import (
    build_statistics_report,
    calculate_number_statistics,
    perform_statistical_analysis,
)
from lottopipe.analysis.types import (
    FREQUENCY_TYPES,
    ComparativeAnalysis,
    FrequencyAnalysis,
    FrequencyData,
    FrequencyReport,
    NumberStatistics,
    StatisticsAnalysis,
    StatisticsReport,
)

__all__ = [
    # Types
    "ComparativeAnalysis",
    "FrequencyAnalysis",
    "FrequencyData",
    "FrequencyReport",
    "NumberStatistics",
    "StatisticsAnalysis",
    "StatisticsReport",
    "FREQUENCY_TYPES",
    # Analyzer
    "DrawAnalyzer",
    # Functions
    "analyze_comparative_frequency",
    "analyze_frequency",
    "analyze_overall_frequency",
    "analyze_recent_frequency",
    "build_statistics_report",
    "calculate_number_statistics",
    "perform_statistical_analysis",
]
