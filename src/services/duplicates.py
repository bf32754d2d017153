"""Duplicate-report detection for operator triage.

Pending reports of the same emergency type are scored pairwise on
geographic proximity (Haversine distance) and temporal proximity
(submission time), then grouped greedily in input order:

* each report not yet claimed becomes an anchor;
* every other unclaimed report of the same type scoring at least
  :data:`GROUPING_THRESHOLD` against the anchor is claimed as its
  duplicate, ordered by descending score.

Grouping is first-come: a report claimed by an earlier
anchor never becomes an anchor itself, even if it would score higher
against a later report.  Reordering the input can therefore change which
report is the anchor of a group.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Final

from src.models.disaster import DisasterReport
from src.models.enums import DisasterStatus

_EARTH_RADIUS_KM: Final[float] = 6371.0
_SECONDS_PER_HOUR: Final[float] = 3600.0

GROUPING_THRESHOLD: Final[int] = 20

# (upper bound inclusive, points), checked in order
_DISTANCE_BUCKETS_KM: Final[tuple[tuple[float, int], ...]] = (
    (0.5, 50),
    (1.0, 40),
    (2.0, 30),
    (5.0, 20),
    (10.0, 10),
)
_TIME_BUCKETS_HOURS: Final[tuple[tuple[float, int], ...]] = (
    (1.0, 50),
    (3.0, 40),
    (6.0, 30),
    (12.0, 20),
    (24.0, 10),
)
_PROBABILITY_LABELS: Final[tuple[tuple[int, str], ...]] = (
    (80, "Very High"),
    (60, "High"),
    (40, "Medium"),
    (20, "Low"),
)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DuplicateMatch:
    report: DisasterReport
    score: int

    @property
    def probability(self) -> str:
        return probability_label(self.score)


@dataclass(slots=True)
class DuplicateGroup:
    """An anchor report plus the reports claimed as its likely duplicates."""

    main: DisasterReport
    duplicates: list[DuplicateMatch] = field(default_factory=list)

    @property
    def is_duplicate_group(self) -> bool:
        return bool(self.duplicates)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    # Rounding can push ``a`` just past 1 for near-antipodal points.
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return _EARTH_RADIUS_KM * c


def _bucket(value: float, buckets: Iterable[tuple[float, int]]) -> int:
    for limit, points in buckets:
        if value <= limit:
            return points
    return 0


def distance_score(a: DisasterReport, b: DisasterReport) -> int:
    """0-50 points for geographic proximity; 0 when either side lacks coordinates."""
    if not (a.has_coordinates and b.has_coordinates):
        return 0
    km = haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)  # type: ignore[arg-type]
    return _bucket(km, _DISTANCE_BUCKETS_KM)


def time_score(a: DisasterReport, b: DisasterReport) -> int:
    """0-50 points for submission-time proximity; 0 when either timestamp is missing."""
    if a.submitted_time is None or b.submitted_time is None:
        return 0
    hours = abs(a.submitted_time - b.submitted_time) / _SECONDS_PER_HOUR
    return _bucket(hours, _TIME_BUCKETS_HOURS)


def same_type(a: DisasterReport, b: DisasterReport) -> bool:
    return a.emergency_type is not None and a.emergency_type == b.emergency_type


def pair_score(a: DisasterReport, b: DisasterReport) -> int:
    """Total duplicate score in [0, 100]; symmetric in its arguments."""
    return distance_score(a, b) + time_score(a, b)


def probability_label(score: int) -> str:
    for floor, label in _PROBABILITY_LABELS:
        if score >= floor:
            return label
    return "Very Low"


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


def pending_reports(reports: Iterable[DisasterReport]) -> list[DisasterReport]:
    return [r for r in reports if r.status == DisasterStatus.PENDING]


def group_duplicates(
    reports: Sequence[DisasterReport],
    *,
    threshold: int = GROUPING_THRESHOLD,
) -> list[DuplicateGroup]:
    """Greedily cluster *reports* into anchor + duplicates groups, in input order.

    Reports are tracked by position, so records without an ``$id`` are
    handled like any other.  Every report appears in exactly one group.
    """
    claimed: set[int] = set()
    groups: list[DuplicateGroup] = []

    for i, anchor in enumerate(reports):
        if i in claimed:
            continue
        claimed.add(i)

        matches: list[tuple[int, int]] = []
        for j, other in enumerate(reports):
            if j in claimed or not same_type(anchor, other):
                continue
            score = pair_score(anchor, other)
            if score >= threshold:
                matches.append((j, score))

        # stable sort keeps input order among equal scores
        matches.sort(key=lambda m: m[1], reverse=True)
        claimed.update(j for j, _ in matches)

        groups.append(
            DuplicateGroup(
                main=anchor,
                duplicates=[DuplicateMatch(report=reports[j], score=s) for j, s in matches],
            ),
        )

    return groups
