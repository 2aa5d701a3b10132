from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from shorewatch.utils.area import AreaStatistic


@dataclass(frozen=True)
class ChangeReport:
    """Land loss between two epochs. Negative loss means land gain."""
    year_a: Optional[int]
    year_b: Optional[int]
    area_a_m2: float
    area_b_m2: float
    area_loss_m2: float
    area_loss_km2: float
    no_data: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def change_report(stat_a: AreaStatistic, stat_b: AreaStatistic) -> ChangeReport:
    """
    Differences two land-area statistics (``stat_a`` is the earlier epoch).

    Zero areas are valid input; ``no_data`` is carried over when either epoch
    had nothing to measure.
    """
    loss = stat_a.area_m2 - stat_b.area_m2
    return ChangeReport(
        year_a=stat_a.year,
        year_b=stat_b.year,
        area_a_m2=stat_a.area_m2,
        area_b_m2=stat_b.area_m2,
        area_loss_m2=loss,
        area_loss_km2=loss / 1e6,
        no_data=stat_a.no_data or stat_b.no_data,
    )


def format_report(report: ChangeReport) -> str:
    """Text summary of a change report."""
    lines = []
    lines.append("=" * 60)
    lines.append(f"COASTAL LAND CHANGE REPORT: {report.year_a} - {report.year_b}")
    lines.append("=" * 60)
    lines.append(f"Land area {report.year_a} (m²): {report.area_a_m2:,.2f}")
    lines.append(f"Land area {report.year_b} (m²): {report.area_b_m2:,.2f}")
    lines.append(f"Land loss (m²): {report.area_loss_m2:,.2f}")
    lines.append(f"Land loss (km²): {report.area_loss_km2:,.4f}")
    if report.no_data:
        lines.append("⚠️ At least one epoch had no valid observations; loss is not meaningful")
    lines.append("=" * 60)
    return "\n".join(lines)
