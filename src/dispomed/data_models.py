"""Core data structures for the availability engine."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .utils import ValidationError, normalize_text


class Status(str, Enum):
    RUPTURE = "Rupture"
    TENSION = "Tension"
    ARRET = "Arret"
    DISPONIBLE = "Disponible"

    @property
    def priority(self) -> int:
        """Rank among simultaneously active statuses; lower wins."""
        return _PRIORITY[self]

    @classmethod
    def parse(cls, value: str) -> "Status":
        key = normalize_text(value)
        for status in cls:
            if normalize_text(status.value) == key:
                return status
        raise ValidationError(f"unknown status '{value}'")


_PRIORITY = {
    Status.RUPTURE: 0,
    Status.TENSION: 1,
    Status.ARRET: 2,
    Status.DISPONIBLE: 3,
}


@dataclass(frozen=True)
class Incident:
    """One reported period during which a product held a status.

    ``end_date`` is ``None`` while the incident is still open; the
    ``calculated_end_date`` then carries the system-computed upper bound.
    ``atc_code`` and ``molecule`` are optional labels used for filtering.
    """

    product_id: str
    status: Status
    start_date: date
    calculated_end_date: date
    end_date: Optional[date] = None
    atc_code: Optional[str] = None
    molecule: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, Status):
            object.__setattr__(self, "status", Status.parse(self.status))
        if self.start_date is None:
            raise ValidationError(f"incident for product '{self.product_id}' has no start date")
        if self.calculated_end_date is None:
            raise ValidationError(f"incident for product '{self.product_id}' has no calculated end date")
        if self.start_date > self.calculated_end_date:
            raise ValidationError(
                f"incident for product '{self.product_id}' starts {self.start_date.isoformat()} "
                f"after its calculated end {self.calculated_end_date.isoformat()}"
            )
        if self.end_date is not None and self.end_date > self.calculated_end_date:
            raise ValidationError(
                f"incident for product '{self.product_id}' ends {self.end_date.isoformat()} "
                f"after its calculated end {self.calculated_end_date.isoformat()}"
            )

    @property
    def is_open(self) -> bool:
        return self.end_date is None


def group_by_product(incidents: Iterable[Incident]) -> Dict[str, List[Incident]]:
    grouped: Dict[str, List[Incident]] = defaultdict(list)
    for incident in incidents:
        grouped[incident.product_id].append(incident)
    return {
        product_id: sorted(rows, key=lambda i: (i.start_date, i.status.priority, i.calculated_end_date))
        for product_id, rows in sorted(grouped.items())
    }


@dataclass(frozen=True)
class Classification:
    status: Status
    is_active: bool
    since: Optional[date] = None


@dataclass(frozen=True)
class ClippedInterval:
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class StatusDays:
    """Day counts per status over one window; ``disponible`` is derived."""

    rupture: int = 0
    tension: int = 0
    arret: int = 0
    disponible: int = 0
    total: int = 0

    @classmethod
    def from_counts(cls, total: int, rupture: int, tension: int, arret: int) -> "StatusDays":
        return cls(
            rupture=rupture,
            tension=tension,
            arret=arret,
            disponible=total - rupture - tension - arret,
            total=total,
        )

    def as_dict(self) -> Dict[str, int]:
        return {
            "rupture": self.rupture,
            "tension": self.tension,
            "arret": self.arret,
            "disponible": self.disponible,
            "total": self.total,
        }


@dataclass(frozen=True)
class AggregateResult:
    per_year: Dict[int, StatusDays]
    totals: StatusDays
    score: float
    year_scores: Dict[int, float] = field(default_factory=dict)


@dataclass(frozen=True)
class RecentChange:
    kind: str
    status: Status
    date: date


@dataclass(frozen=True)
class MonthlyCount:
    month: date
    rupture: int
    tension: int
    arret: int


@dataclass
class ProductReport:
    product_id: str
    classification: Classification
    aggregate: AggregateResult
    recent_change: Optional[RecentChange] = None

    def as_rows(self) -> List[Dict[str, object]]:
        recent = self.recent_change
        common: Dict[str, object] = {
            "Product_ID": self.product_id,
            "Status": self.classification.status.value,
            "Is_Active": self.classification.is_active,
            "Since": self.classification.since.isoformat() if self.classification.since else "",
            "Recent_Change": recent.kind if recent else "",
            "Recent_Change_Status": recent.status.value if recent else "",
            "Recent_Change_Date": recent.date.isoformat() if recent else "",
        }
        rows: List[Dict[str, object]] = []
        for year, days in self.aggregate.per_year.items():
            rows.append(_bucket_row(common, str(year), days, self.aggregate.year_scores[year]))
        rows.append(_bucket_row(common, "ALL", self.aggregate.totals, self.aggregate.score))
        return rows


def _bucket_row(common: Dict[str, object], year: str, days: StatusDays, score: float) -> Dict[str, object]:
    row = dict(common)
    row.update(
        {
            "Year": year,
            "Rupture_Days": days.rupture,
            "Tension_Days": days.tension,
            "Arret_Days": days.arret,
            "Disponible_Days": days.disponible,
            "Total_Days": days.total,
            "Score": round(score, 4),
        }
    )
    return row
