"""Tests for duplicate-report scoring and greedy grouping."""

from __future__ import annotations

import pytest

from src.models.disaster import DisasterReport
from src.services.duplicates import (
    distance_score,
    group_duplicates,
    haversine_km,
    pair_score,
    pending_reports,
    probability_label,
    time_score,
)

BASE_TIME = 1_700_000_000.0
HOUR = 3600.0


def report(
    rid: str,
    *,
    kind: str | None = "flood",
    lat: float | None = 34.0,
    lon: float | None = -118.0,
    at: float | None = BASE_TIME,
    status: str = "pending",
) -> DisasterReport:
    return DisasterReport(
        id=rid, emergency_type=kind, latitude=lat, longitude=lon, submitted_time=at, status=status,
    )


# -----------------------------------------------------------------------
# Scoring
# -----------------------------------------------------------------------


class TestHaversine:
    def test_zero_distance(self) -> None:
        assert haversine_km(34.0, -118.0, 34.0, -118.0) == 0.0

    def test_one_degree_latitude_is_about_111_km(self) -> None:
        assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, abs=0.05)

    def test_symmetric(self) -> None:
        assert haversine_km(10, 20, 11, 22) == pytest.approx(haversine_km(11, 22, 10, 20))

    @pytest.mark.parametrize(
        "points",
        [
            (-78.1263994064304, -115.12349883787206, 78.1263994064304, 64.87650116212794),
            (0.0, 0.0, 0.0, 180.0),
            (90.0, 0.0, -90.0, 0.0),
        ],
    )
    def test_antipodal_points_are_half_the_circumference(self, points: tuple[float, float, float, float]) -> None:
        assert haversine_km(*points) == pytest.approx(20015.09, abs=1.0)


class TestPairScore:
    def test_identical_reports_score_100(self) -> None:
        assert pair_score(report("a"), report("b")) == 100, "same place and time should score the maximum"

    @pytest.mark.parametrize(
        ("dlat", "points"),
        [(0.003, 50), (0.008, 40), (0.015, 30), (0.04, 20), (0.08, 10), (0.2, 0)],
    )
    def test_distance_buckets(self, dlat: float, points: int) -> None:
        # 0.001 degrees of latitude is roughly 0.111 km
        assert distance_score(report("a"), report("b", lat=34.0 + dlat)) == points

    @pytest.mark.parametrize(
        ("hours", "points"),
        [(0.5, 50), (1.0, 50), (2.0, 40), (5.0, 30), (11.0, 20), (23.0, 10), (25.0, 0)],
    )
    def test_time_buckets(self, hours: float, points: int) -> None:
        assert time_score(report("a"), report("b", at=BASE_TIME + hours * HOUR)) == points

    def test_time_difference_is_absolute(self) -> None:
        earlier = report("b", at=BASE_TIME - 2 * HOUR)
        assert time_score(report("a"), earlier) == time_score(earlier, report("a")) == 40

    def test_missing_coordinates_only_drop_distance(self) -> None:
        assert pair_score(report("a"), report("b", lat=None, lon=None)) == 50, "time points still count"

    def test_missing_timestamp_only_drops_time(self) -> None:
        assert pair_score(report("a", at=None), report("b")) == 50, "distance points still count"

    def test_symmetric(self) -> None:
        a = report("a")
        b = report("b", lat=34.01, at=BASE_TIME + 4 * HOUR)
        assert pair_score(a, b) == pair_score(b, a)


class TestProbabilityLabel:
    @pytest.mark.parametrize(
        ("score", "label"),
        [
            (100, "Very High"),
            (80, "Very High"),
            (79, "High"),
            (60, "High"),
            (40, "Medium"),
            (20, "Low"),
            (19, "Very Low"),
            (0, "Very Low"),
        ],
    )
    def test_thresholds(self, score: int, label: str) -> None:
        assert probability_label(score) == label


# -----------------------------------------------------------------------
# Grouping
# -----------------------------------------------------------------------


class TestGroupDuplicates:
    def test_empty_input(self) -> None:
        assert group_duplicates([]) == []

    def test_two_identical_reports_form_one_group(self) -> None:
        a, b = report("a"), report("b")
        groups = group_duplicates([a, b])

        assert len(groups) == 1, "the second report should be claimed by the first"
        assert groups[0].main is a
        assert groups[0].is_duplicate_group is True
        assert [(m.report.id, m.score, m.probability) for m in groups[0].duplicates] == [("b", 100, "Very High")]

    def test_different_types_never_grouped(self) -> None:
        groups = group_duplicates([report("a", kind="flood"), report("b", kind="fire")])
        assert [g.main.id for g in groups] == ["a", "b"]
        assert not any(g.is_duplicate_group for g in groups), "type mismatch must prevent grouping"

    def test_type_comparison_is_exact(self) -> None:
        groups = group_duplicates([report("a", kind="Flood"), report("b", kind="flood")])
        assert len(groups) == 2, "type comparison is case-sensitive"

    def test_missing_type_never_groups(self) -> None:
        groups = group_duplicates([report("a", kind=None), report("b", kind=None)])
        assert len(groups) == 2, "reports without a type cannot be matched"

    def test_antipodal_reports_are_scored_on_time_alone(self) -> None:
        a = report("a", lat=-78.1263994064304, lon=-115.12349883787206)
        b = report("b", lat=78.1263994064304, lon=64.87650116212794)
        groups = group_duplicates([a, b])

        assert len(groups) == 1
        assert [(m.report.id, m.score) for m in groups[0].duplicates] == [("b", 50)], (
            "opposite sides of the globe score no distance points"
        )

    def test_below_threshold_is_singleton(self) -> None:
        far = report("b", lat=35.0, at=BASE_TIME + 2 * HOUR * 24)
        groups = group_duplicates([report("a"), far])
        assert len(groups) == 2
        assert groups[1].main is far
        assert groups[1].duplicates == []

    def test_exactly_threshold_groups(self) -> None:
        # 20 points from time alone (12 hours apart), no coordinates
        a = report("a", lat=None, lon=None)
        b = report("b", lat=None, lon=None, at=BASE_TIME + 12 * HOUR)
        groups = group_duplicates([a, b])
        assert len(groups) == 1, "a score equal to the threshold should group"
        assert groups[0].duplicates[0].score == 20

    def test_duplicates_sorted_by_descending_score(self) -> None:
        anchor = report("a")
        weak = report("weak", lat=34.04, at=BASE_TIME + 5 * HOUR)
        strong = report("strong", lat=34.001)
        groups = group_duplicates([anchor, weak, strong])
        assert [m.report.id for m in groups[0].duplicates] == ["strong", "weak"]

    def test_ties_keep_input_order(self) -> None:
        anchor = report("a")
        groups = group_duplicates([anchor, report("x"), report("y"), report("z")])
        assert [m.report.id for m in groups[0].duplicates] == ["x", "y", "z"]

    def test_greedy_grouping_depends_on_input_order(self) -> None:
        # a-b and b-c are close; a-c are far apart in both space and time
        a = report("a", lat=34.00, at=BASE_TIME)
        b = report("b", lat=34.04, at=BASE_TIME + 13 * HOUR)
        c = report("c", lat=34.08, at=BASE_TIME + 26 * HOUR)
        assert pair_score(a, c) < 20 <= min(pair_score(a, b), pair_score(b, c))

        forward = group_duplicates([a, b, c])
        assert [(g.main.id, [m.report.id for m in g.duplicates]) for g in forward] == [
            ("a", ["b"]),
            ("c", []),
        ]

        middle_first = group_duplicates([b, a, c])
        assert [(g.main.id, [m.report.id for m in g.duplicates]) for g in middle_first] == [
            ("b", ["a", "c"]),
        ]

    def test_every_report_in_exactly_one_group(self) -> None:
        reports = [
            report("a"),
            report("b", kind="fire"),
            report("c", lat=34.002),
            report("d", lat=40.0, at=BASE_TIME + 100 * HOUR),
            report("e", kind="fire", lat=34.001),
        ]
        groups = group_duplicates(reports)
        seen = [g.main.id for g in groups] + [m.report.id for g in groups for m in g.duplicates]
        assert sorted(seen) == ["a", "b", "c", "d", "e"], "each report appears once"

    def test_reports_without_ids_are_tracked_by_position(self) -> None:
        a = report(None)  # type: ignore[arg-type]
        b = report(None)  # type: ignore[arg-type]
        groups = group_duplicates([a, b])
        assert len(groups) == 1
        assert groups[0].duplicates[0].report is b

    def test_custom_threshold(self) -> None:
        a = report("a", lat=None, lon=None)
        b = report("b", lat=None, lon=None, at=BASE_TIME + 12 * HOUR)
        assert len(group_duplicates([a, b], threshold=30)) == 2


class TestPendingReports:
    def test_only_pending_kept_in_order(self) -> None:
        reports = [
            report("a", status="active"),
            report("b"),
            report("c", status="archived"),
            report("d"),
        ]
        assert [r.id for r in pending_reports(reports)] == ["b", "d"]
