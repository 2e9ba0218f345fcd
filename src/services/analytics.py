"""Comparative analytics: project a practice score onto a CAT section and classify it."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from config import CAT_SECTIONAL_STATS, COMPARISON_SECTION, TOTAL_MARKS_PER_SECTION, USER_CATEGORY


class Standing(str, Enum):
    ABOVE_RANGE = "above_range"
    ABOVE_AVERAGE = "above_average"
    AROUND_AVERAGE = "around_average"
    BELOW_AVERAGE = "below_average"
    BELOW_RANGE = "below_range"
    NOT_AVAILABLE = "not_available"


@dataclass(frozen=True)
class ComparisonReport:
    standing: Standing
    statement: str
    category: str
    section: str
    score: int
    total_possible_score: int
    projected_score: float | None = None
    mean: float | None = None
    std: float | None = None
    lower_bound: float | None = None
    upper_bound: float | None = None

    @property
    def available(self) -> bool:
        return self.standing != Standing.NOT_AVAILABLE


def _statement(standing: Standing, projected: float, category: str, section: str) -> str:
    prefix = f"Your projected {section} score of {projected}"
    scope = f"the {category} category's {section} section"
    if standing == Standing.ABOVE_RANGE:
        return f"{prefix} is above the typical range for {scope}."
    if standing == Standing.BELOW_RANGE:
        return f"{prefix} is below the typical range for {scope}."
    if standing == Standing.ABOVE_AVERAGE:
        return f"{prefix} is above the average and within the typical range for {scope}."
    if standing == Standing.BELOW_AVERAGE:
        return f"{prefix} is below the average but within the typical range for {scope}."
    return f"{prefix} is around the average for {scope}."


def compare_to_category(
    score: int,
    total_possible_score: int,
    category: str = USER_CATEGORY,
    section: str = COMPARISON_SECTION,
    stats: dict[str, Any] | None = None,
    section_max_marks: int = TOTAL_MARKS_PER_SECTION,
) -> ComparisonReport:
    """
    Project a raw practice score onto a section scale and place it against the
    category's mean ± one standard deviation.

    Raises:
        KeyError: If the category or section is not in the statistics table.
    """
    table = CAT_SECTIONAL_STATS if stats is None else stats
    section_stats = table[category][section]
    if total_possible_score == 0:
        return ComparisonReport(
            standing=Standing.NOT_AVAILABLE,
            statement="Analysis not available as no questions were scored.",
            category=category,
            section=section,
            score=score,
            total_possible_score=total_possible_score,
        )

    mean = float(section_stats["mean"])
    std = float(section_stats["std"])
    projected = round((score / total_possible_score) * section_max_marks, 2)
    lower = round(mean - std, 2)
    upper = round(mean + std, 2)

    if projected > upper:
        standing = Standing.ABOVE_RANGE
    elif projected < lower:
        standing = Standing.BELOW_RANGE
    elif projected > mean:
        standing = Standing.ABOVE_AVERAGE
    elif projected < mean:
        standing = Standing.BELOW_AVERAGE
    else:
        standing = Standing.AROUND_AVERAGE

    return ComparisonReport(
        standing=standing,
        statement=_statement(standing, projected, category, section),
        category=category,
        section=section,
        score=score,
        total_possible_score=total_possible_score,
        projected_score=projected,
        mean=mean,
        std=std,
        lower_bound=lower,
        upper_bound=upper,
    )
