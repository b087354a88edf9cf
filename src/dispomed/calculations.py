"""Computation primitives for availability status, history and recency."""
from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import ScoreWeights
from .data_models import (
    AggregateResult,
    Classification,
    ClippedInterval,
    Incident,
    MonthlyCount,
    RecentChange,
    Status,
    StatusDays,
    group_by_product,
)
from .utils import ValidationError, add_months, check_window, month_starts, normalize_text, year_windows

Segment = Tuple[ClippedInterval, Status]


def day_count(start: date, end: date) -> int:
    return (end - start).days + 1


def days_since(start: date, as_of: date) -> int:
    return (as_of - start).days


def report_date(incidents: Iterable[Incident]) -> date:
    ends = [incident.calculated_end_date for incident in incidents]
    if not ends:
        raise ValidationError("cannot derive a report date from an empty incident set")
    return max(ends)


def is_active(incident: Incident, as_of: date) -> bool:
    if incident.start_date > as_of:
        return False
    return incident.end_date is None or incident.calculated_end_date >= as_of


def classify(incidents: Iterable[Incident], as_of: date) -> Classification:
    active = [incident for incident in incidents if is_active(incident, as_of)]
    if not active:
        return Classification(status=Status.DISPONIBLE, is_active=False)
    status = min((incident.status for incident in active), key=lambda s: s.priority)
    since = min(incident.start_date for incident in active if incident.status is status)
    return Classification(status=status, is_active=True, since=since)


def effective_end(incident: Incident, as_of: Optional[date] = None) -> date:
    # An open discontinuation runs up to the report date and no further.
    if incident.status is Status.ARRET and incident.is_open:
        if as_of is None:
            raise ValidationError(
                f"open discontinuation of product '{incident.product_id}' needs a report date to be clipped"
            )
        return as_of
    return incident.calculated_end_date


def clip(
    incident: Incident,
    window_start: date,
    window_end: date,
    as_of: Optional[date] = None,
) -> Optional[ClippedInterval]:
    check_window(window_start, window_end)
    end = effective_end(incident, as_of)
    if end < window_start or incident.start_date > window_end or end < incident.start_date:
        return None
    return ClippedInterval(start=max(incident.start_date, window_start), end=min(end, window_end))


def resolve_segments(
    incidents: Iterable[Incident],
    window_start: date,
    window_end: date,
    as_of: date,
) -> List[Segment]:
    """Flatten one product's incidents into non-overlapping status segments.

    Days covered by several incidents go to the highest-priority status.
    ``Disponible`` incidents are skipped: available days are whatever is left.
    """
    clipped: List[Segment] = []
    for incident in incidents:
        if incident.status is Status.DISPONIBLE:
            continue
        interval = clip(incident, window_start, window_end, as_of)
        if interval is not None:
            clipped.append((interval, incident.status))
    bounds = sorted(
        {interval.start for interval, _ in clipped}
        | {interval.end + timedelta(days=1) for interval, _ in clipped}
    )
    segments: List[Segment] = []
    for seg_start, next_start in zip(bounds, bounds[1:]):
        seg_end = next_start - timedelta(days=1)
        covering = [status for interval, status in clipped if interval.start <= seg_start and interval.end >= seg_end]
        if not covering:
            continue
        status = min(covering, key=lambda s: s.priority)
        segments.append((ClippedInterval(seg_start, seg_end), status))
    return segments


def count_days(segments: Sequence[Segment], start: date, end: date) -> StatusDays:
    counts = {Status.RUPTURE: 0, Status.TENSION: 0, Status.ARRET: 0}
    for interval, status in segments:
        lo = max(interval.start, start)
        hi = min(interval.end, end)
        if lo <= hi:
            counts[status] += day_count(lo, hi)
    return StatusDays.from_counts(
        total=day_count(start, end),
        rupture=counts[Status.RUPTURE],
        tension=counts[Status.TENSION],
        arret=counts[Status.ARRET],
    )


def availability_score(days: StatusDays, weights: Optional[ScoreWeights] = None) -> float:
    weights = weights or ScoreWeights()
    if days.total == 0:
        return 100.0
    penalty = weights.penalty(days.rupture, days.tension, days.arret)
    score = 100.0 * (days.total - penalty) / days.total
    return min(100.0, max(0.0, score))


def aggregate(
    incidents: Sequence[Incident],
    window_start: date,
    window_end: date,
    as_of: date,
    year_boundaries: Optional[Sequence[Tuple[int, date, date]]] = None,
    weights: Optional[ScoreWeights] = None,
) -> AggregateResult:
    """Day counts per status for one product, per calendar year and overall.

    ``as_of`` is the report date bounding open discontinuations.
    ``year_boundaries`` defaults to the calendar years covering the window.
    """
    check_window(window_start, window_end)
    segments = resolve_segments(incidents, window_start, window_end, as_of)
    if year_boundaries is None:
        year_boundaries = year_windows(window_start, window_end)
    per_year: Dict[int, StatusDays] = {}
    year_scores: Dict[int, float] = {}
    for year, year_start, year_end in sorted(year_boundaries):
        start = max(year_start, window_start)
        end = min(year_end, window_end)
        if start > end:
            continue
        days = count_days(segments, start, end)
        per_year[year] = days
        year_scores[year] = availability_score(days, weights)
    totals = count_days(segments, window_start, window_end)
    return AggregateResult(
        per_year=per_year,
        totals=totals,
        score=availability_score(totals, weights),
        year_scores=year_scores,
    )


def _latest(candidates: Iterable[Tuple[date, Status]]) -> Optional[Tuple[date, Status]]:
    # Latest date first; on the same day the higher-priority status.
    return max(candidates, key=lambda item: (item[0], -item[1].priority), default=None)


def detect_recent_changes(
    incidents: Iterable[Incident],
    as_of: date,
    window_days: int = 7,
) -> Dict[str, RecentChange]:
    """Products whose status started or ended within ``window_days`` of ``as_of``.

    When a product has both, ``ended`` is reported only if strictly more recent
    than the latest start; a same-day tie is reported as ``started``.
    """
    if window_days < 0:
        raise ValidationError(f"recency window must not be negative, got {window_days}")
    window_start = as_of - timedelta(days=window_days)
    changes: Dict[str, RecentChange] = {}
    for product_id, rows in group_by_product(incidents).items():
        started = _latest(
            (incident.start_date, incident.status)
            for incident in rows
            if window_start <= incident.start_date <= as_of
        )
        ended = _latest(
            (incident.end_date, incident.status)
            for incident in rows
            if incident.end_date is not None and window_start <= incident.end_date <= as_of
        )
        if ended is not None and (started is None or ended[0] > started[0]):
            changes[product_id] = RecentChange(kind="ended", status=ended[1], date=ended[0])
        elif started is not None:
            changes[product_id] = RecentChange(kind="started", status=started[1], date=started[0])
    return changes


def chart_window(as_of: date, months: int = 12) -> Tuple[date, date]:
    """From the first day of the ``months``-th month back up to ``as_of``.

    The window never extends past the report date: later days carry no data.
    """
    if months < 1:
        raise ValidationError(f"months must be at least 1, got {months}")
    return add_months(as_of, -(months - 1)), as_of


def sort_incidents(incidents: Iterable[Incident], as_of: date) -> List[Incident]:
    def _sort_key(incident: Incident) -> Tuple[bool, int, int, str]:
        rank = min(incident.status.priority, Status.ARRET.priority)
        return (
            not is_active(incident, as_of),
            rank,
            -incident.start_date.toordinal(),
            incident.product_id,
        )

    return sorted(incidents, key=_sort_key)


def monthly_summary(
    incidents: Iterable[Incident],
    window_start: date,
    window_end: date,
) -> List[MonthlyCount]:
    """Products per status on the first day of each month of the window."""
    check_window(window_start, window_end)
    products = group_by_product(incidents)
    summary: List[MonthlyCount] = []
    for month in month_starts(window_start, window_end):
        counts = {Status.RUPTURE: 0, Status.TENSION: 0, Status.ARRET: 0, Status.DISPONIBLE: 0}
        for rows in products.values():
            counts[classify(rows, month).status] += 1
        summary.append(
            MonthlyCount(
                month=month,
                rupture=counts[Status.RUPTURE],
                tension=counts[Status.TENSION],
                arret=counts[Status.ARRET],
            )
        )
    return summary


def filter_incidents(
    incidents: Iterable[Incident],
    search: Optional[str] = None,
    atc_code: Optional[str] = None,
) -> List[Incident]:
    """Incidents matching a product/molecule search term and an ATC prefix.

    Matching ignores case and accents. An ATC filter drops incidents that
    carry no ATC code.
    """
    term = normalize_text(search)
    prefix = normalize_text(atc_code)
    selected: List[Incident] = []
    for incident in incidents:
        if term and term not in normalize_text(incident.product_id) and term not in normalize_text(incident.molecule):
            continue
        if prefix and not normalize_text(incident.atc_code).startswith(prefix):
            continue
        selected.append(incident)
    return selected


def molecules_by_atc(incidents: Iterable[Incident]) -> Dict[str, List[str]]:
    grouped: Dict[str, set] = {}
    for incident in incidents:
        if not incident.atc_code:
            continue
        molecules = grouped.setdefault(incident.atc_code, set())
        if incident.molecule:
            molecules.add(incident.molecule)
    return {code: sorted(grouped[code]) for code in sorted(grouped)}
