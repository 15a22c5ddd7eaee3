"""
tests/test_report_store.py

Report store: uniqueness across callers, aggregation, round trip.
"""

from __future__ import annotations

import threading
from decimal import Decimal

import pytest

from impact_tracker.core.errors import ConflictError
from impact_tracker.services.report_store import ReportStore, submit_single
from impact_tracker.utils.csv_validator import ReportRow, parse_row


def _row(org: str = "NGO-1", period: str = "2024-03", people: int = 10) -> ReportRow:
    return ReportRow(
        organization_id=org,
        period=period,
        people_helped=people,
        events_conducted=2,
        funds_utilized=Decimal("500.50"),
    )


class TestCommit:
    def test_commit_assigns_id_and_timestamp(self, report_store: ReportStore) -> None:
        report = report_store.commit(_row())
        assert report.id
        assert report.submitted_at is not None
        assert report_store.exists("NGO-1", "2024-03")

    def test_exists_is_false_for_unknown_key(self, report_store: ReportStore) -> None:
        report_store.commit(_row())
        assert not report_store.exists("NGO-1", "2024-04")
        assert not report_store.exists("NGO-2", "2024-03")

    def test_duplicate_raises_conflict_without_mutation(self, report_store: ReportStore) -> None:
        report_store.commit(_row(people=10))
        with pytest.raises(ConflictError) as exc:
            report_store.commit(_row(people=99))
        assert exc.value.organization_id == "NGO-1"
        assert exc.value.period == "2024-03"

        reports = report_store.aggregate("2024-03")
        assert len(reports) == 1
        assert reports[0].people_helped == 10

    def test_submit_single_surfaces_conflict(self, report_store: ReportStore) -> None:
        submit_single(report_store, _row())
        with pytest.raises(ConflictError):
            submit_single(report_store, _row())

    def test_funds_are_rounded_to_cents(self, report_store: ReportStore) -> None:
        row = ReportRow("NGO-9", "2024-03", 1, 1, Decimal("10.005"))
        report_store.commit(row)
        assert report_store.aggregate("2024-03")[0].funds_utilized == Decimal("10.01")

    def test_round_trip_from_raw_line(self, report_store: ReportStore) -> None:
        report_store.commit(parse_row("NGO-1, 2024-03, 10, 2, 500.50"))
        stored = report_store.aggregate("2024-03")[0]
        assert stored.organization_id == "NGO-1"
        assert stored.period == "2024-03"
        assert stored.people_helped == 10
        assert stored.events_conducted == 2
        assert stored.funds_utilized == Decimal("500.50")


class TestConcurrentCommits:
    def test_only_one_of_many_racing_writers_wins(self, report_store: ReportStore) -> None:
        writers = 8
        barrier = threading.Barrier(writers)
        outcomes: list[str] = []
        outcome_lock = threading.Lock()

        def write() -> None:
            barrier.wait()
            try:
                report_store.commit(_row())
                result = "ok"
            except ConflictError:
                result = "conflict"
            with outcome_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=write) for _ in range(writers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert outcomes.count("ok") == 1
        assert outcomes.count("conflict") == writers - 1
        assert len(report_store.aggregate("2024-03")) == 1

    def test_unique_index_backs_up_the_guard(self, session_factory, monkeypatch) -> None:
        # Two stores with separate guards behave like two processes
        first = ReportStore(session_factory)
        second = ReportStore(session_factory)
        first.commit(_row())
        monkeypatch.setattr(ReportStore, "_find", staticmethod(lambda *args: None))
        with pytest.raises(ConflictError):
            second.commit(_row())


class TestAggregate:
    def test_query_aggregate_totals(self, report_store: ReportStore) -> None:
        report_store.commit(ReportRow("NGO-1", "2024-03", 10, 2, Decimal("500.50")))
        report_store.commit(ReportRow("NGO-2", "2024-03", 5, 1, Decimal("99.50")))
        report_store.commit(ReportRow("NGO-1", "2024-04", 100, 100, Decimal("1")))

        summary = report_store.query_aggregate("2024-03")
        assert summary.organization_count == 2
        assert summary.total_people_helped == 15
        assert summary.total_events == 3
        assert summary.total_funds == Decimal("600.00")
        assert summary.report_count == 2

    def test_empty_period(self, report_store: ReportStore) -> None:
        summary = report_store.query_aggregate("1999-01")
        assert summary.report_count == 0
        assert summary.organization_count == 0
        assert summary.total_funds == Decimal("0")
