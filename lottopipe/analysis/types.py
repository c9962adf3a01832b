"""
Analysis result types using Pydantic models.

Every result survives a JSON round trip, so the durable cache tiers can hand
back plain dicts that validate into the same models.
"""

import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

FrequencyType = Literal["recent", "overall", "comparative"]
FREQUENCY_TYPES: tuple[str, ...] = ("recent", "overall", "comparative")


class Appearance(BaseModel):
    round: int
    date: datetime.date


class NumberStatistics(BaseModel):
    """Appearance history of one number over the analyzed draws."""

    number: int
    frequency: int = 0
    last_appeared: datetime.date | None = None
    last_round: int = 0
    average_gap: float = 0.0  # rounds between appearances
    trend: Literal["hot", "cold", "neutral"] = "neutral"
    recent_appearances: list[Appearance] = Field(default_factory=list)


class RecentTrends(BaseModel):
    rising: list[int] = Field(default_factory=list)
    falling: list[int] = Field(default_factory=list)


class StatisticsAnalysis(BaseModel):
    """Rankings derived from the per-number statistics."""

    most_frequent: list[int]
    least_frequent: list[int]
    hot_numbers: list[int]
    cold_numbers: list[int]
    overdue: list[int]
    recent_trends: RecentTrends


class StatisticsReport(BaseModel):
    number_statistics: dict[int, NumberStatistics]
    analysis: StatisticsAnalysis | None = None
    analyzed_rounds: int
    date_from: datetime.date
    date_to: datetime.date


class FrequencyData(BaseModel):
    number: int
    frequency: int
    percentage: float
    last_appeared: datetime.date | None = None
    days_since_appearance: int = -1  # -1 when the number never appeared


class FrequencySummary(BaseModel):
    total_draws: int
    average_frequency: float
    expected_percentage: float


class FrequencyOutlier(BaseModel):
    number: int
    frequency: int
    deviation: float


class FrequencyStatistics(BaseModel):
    mean: float
    standard_deviation: float
    variance: float
    outliers: list[FrequencyOutlier] = Field(default_factory=list)


class FrequencyDistribution(BaseModel):
    high_frequency: int
    normal_frequency: int
    low_frequency: int


class FrequencyAnalysis(BaseModel):
    """Per-number frequency over a window of draws, most frequent first."""

    kind: Literal["recent", "overall"] = "recent"
    frequency_data: list[FrequencyData]
    most_frequent: list[FrequencyData]
    least_frequent: list[FrequencyData]
    hot_numbers: list[FrequencyData]
    cold_numbers: list[FrequencyData]
    summary: FrequencySummary
    # Only for overall analysis
    statistics: FrequencyStatistics | None = None
    distribution: FrequencyDistribution | None = None


class TrendComparison(BaseModel):
    number: int
    recent_frequency: int
    recent_percentage: float
    older_percentage: float
    trend_value: float
    trend: Literal["rising", "falling", "stable"]


class TrendSummary(BaseModel):
    rising: list[TrendComparison]
    falling: list[TrendComparison]
    stable: int


class PeriodInfo(BaseModel):
    rounds: int
    date_from: datetime.date
    date_to: datetime.date


class ComparativeAnalysis(BaseModel):
    """Recent window compared against the older draws before it."""

    kind: Literal["comparative"] = "comparative"
    recent: FrequencyAnalysis
    comparison: list[TrendComparison]
    trends: TrendSummary
    recent_period: PeriodInfo
    comparison_period: PeriodInfo


FrequencyReport = Annotated[
    Union[FrequencyAnalysis, ComparativeAnalysis], Field(discriminator="kind")
]
