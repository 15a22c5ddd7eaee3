"""
tests/test_api.py

HTTP surface: uploads, job polling and streaming, single submissions,
period listing and stats, health probes.
"""

from __future__ import annotations

import json
import time

import pytest
from fastapi.testclient import TestClient

from impact_tracker.main import create_app

TERMINAL = {"completed", "failed"}


@pytest.fixture()
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def wait_for_job(client: TestClient, job_id: str, timeout: float = 10.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/api/uploads/{job_id}/status").json()
        if body["status"] in TERMINAL or time.monotonic() > deadline:
            return body
        time.sleep(0.01)


def _report(**overrides) -> dict:
    body = {
        "organizationId": "NGO-1",
        "period": "2024-03",
        "peopleHelped": 10,
        "eventsConducted": 2,
        "fundsUtilized": "500.50",
    }
    body.update(overrides)
    return body


class TestUploads:
    def test_csv_upload_is_accepted_and_completes(self, client, make_payload) -> None:
        csv_text = make_payload("NGO-1, 2024-03, 10, 2, 500.50", "NGO-2, 2024-03, 5, 1, 20")
        response = client.post(
            "/api/uploads/",
            files={"file": ("reports.csv", csv_text.encode(), "text/csv")},
        )
        assert response.status_code == 202
        body = response.json()
        assert body["totalRows"] == 2
        assert body["status"] in {"pending", "processing", "completed"}

        final = wait_for_job(client, body["id"])
        assert final["status"] == "completed"
        assert final["processedRows"] == 2
        assert final["successfulRows"] == 2
        assert final["failedRows"] == 0
        assert final["errors"] == []
        assert final["progress"] == 1.0

    def test_text_upload_reports_row_errors(self, client, make_payload) -> None:
        payload = make_payload(
            "NGO-1, 2024-03, 10, 2, 500.50",
            "NGO-2, 2024-03",
            "NGO-1, 2024-03, 1, 1, 1",
        )
        response = client.post("/api/uploads/text", json={"content": payload})
        assert response.status_code == 202

        final = wait_for_job(client, response.json()["id"])
        assert final["successfulRows"] == 1
        assert final["errors"] == [
            "Row 2: invalid column count",
            "Row 3: Duplicate entry for NGO-1 - 2024-03",
        ]

    def test_header_only_upload_is_rejected(self, client, make_payload) -> None:
        response = client.post("/api/uploads/text", json={"content": make_payload()})
        assert response.status_code == 400

    def test_non_csv_file_is_rejected(self, client) -> None:
        response = client.post(
            "/api/uploads/",
            files={"file": ("reports.xlsx", b"h\nrow", "application/octet-stream")},
        )
        assert response.status_code == 400

    def test_undecodable_file_is_rejected(self, client) -> None:
        response = client.post(
            "/api/uploads/",
            files={"file": ("reports.csv", b"\xff\xfe\x00bad", "text/csv")},
        )
        assert response.status_code == 400

    def test_unknown_job_status_is_404(self, client) -> None:
        assert client.get("/api/uploads/nope/status").status_code == 404
        assert client.get("/api/jobs/nope").status_code == 404

    def test_cancel_finished_job_is_404(self, client, make_payload) -> None:
        job_id = client.post(
            "/api/uploads/text", json={"content": make_payload("NGO-1, 2024-03, 1, 1, 1")}
        ).json()["id"]
        wait_for_job(client, job_id)
        assert client.delete(f"/api/uploads/{job_id}").status_code == 404

    def test_cancel_running_job(self, settings, make_payload) -> None:
        slow = settings.model_copy(update={"import_batch_delay_seconds": 30.0})
        with TestClient(create_app(slow)) as client:
            job_id = client.post(
                "/api/uploads/text", json={"content": make_payload("NGO-1, 2024-03, 1, 1, 1")}
            ).json()["id"]

            assert client.delete(f"/api/uploads/{job_id}").status_code == 204
            body = client.get(f"/api/uploads/{job_id}/status").json()

        assert body["status"] == "pending"
        assert body["cancelledAt"] is not None
        assert body["message"] == "Import cancelled after 0/1 rows"


class TestJobs:
    def test_list_and_fetch(self, client, make_payload) -> None:
        job_id = client.post(
            "/api/uploads/text", json={"content": make_payload("NGO-1, 2024-03, 1, 1, 1")}
        ).json()["id"]
        wait_for_job(client, job_id)

        listed = client.get("/api/jobs/", params={"status": "completed"}).json()
        assert [job["id"] for job in listed] == [job_id]
        assert client.get(f"/api/jobs/{job_id}").json()["successfulRows"] == 1

    def test_list_rejects_unknown_status(self, client) -> None:
        assert client.get("/api/jobs/", params={"status": "bogus"}).status_code == 422

    def test_stream_closes_on_completion(self, client, make_payload) -> None:
        job_id = client.post(
            "/api/uploads/text", json={"content": make_payload("NGO-1, 2024-03, 1, 1, 1")}
        ).json()["id"]

        response = client.get(f"/api/jobs/{job_id}/stream")
        assert response.status_code == 200
        events = [chunk for chunk in response.text.split("\n\n") if chunk]
        assert events[-1] == "event: close\ndata: {}"
        last_data = json.loads(events[-2].removeprefix("data: "))
        assert last_data["status"] == "completed"
        assert last_data["processedRows"] == 1


class TestReports:
    def test_single_submission_and_duplicate(self, client) -> None:
        created = client.post("/api/reports/", json=_report())
        assert created.status_code == 201
        body = created.json()
        assert body["organizationId"] == "NGO-1"
        assert body["fundsUtilized"] == "500.50"
        assert body["id"]

        duplicate = client.post("/api/reports/", json=_report(peopleHelped=99))
        assert duplicate.status_code == 409

        listed = client.get("/api/reports/", params={"period": "2024-03"}).json()
        assert len(listed) == 1
        assert listed[0]["peopleHelped"] == 10

    @pytest.mark.parametrize(
        "overrides",
        [
            {"organizationId": "  "},
            {"period": "2024-13"},
            {"peopleHelped": -1},
            {"fundsUtilized": "abc"},
            {"peopleHelped": 2**31},
            {"organizationId": "N" * 129},
            {"fundsUtilized": "1000000000000"},
        ],
    )
    def test_invalid_submission_is_422(self, client, overrides) -> None:
        assert client.post("/api/reports/", json=_report(**overrides)).status_code == 422

    def test_bulk_duplicate_of_single_submission(self, client, make_payload) -> None:
        client.post("/api/reports/", json=_report())
        job_id = client.post(
            "/api/uploads/text", json={"content": make_payload("NGO-1, 2024-03, 3, 3, 3")}
        ).json()["id"]

        final = wait_for_job(client, job_id)
        assert final["status"] == "completed"
        assert final["errors"] == ["Row 1: Duplicate entry for NGO-1 - 2024-03"]


class TestStats:
    def test_period_summary(self, client) -> None:
        client.post("/api/reports/", json=_report())
        client.post("/api/reports/", json=_report(organizationId="NGO-2", fundsUtilized="99.50"))
        client.post("/api/reports/", json=_report(period="2024-04"))

        body = client.get("/api/stats/2024-03").json()
        assert body == {
            "period": "2024-03",
            "organizationCount": 2,
            "totalPeopleHelped": 20,
            "totalEvents": 4,
            "totalFunds": "600.00",
            "reportCount": 2,
        }

    def test_bad_period_is_422(self, client) -> None:
        assert client.get("/api/stats/March").status_code == 422


class TestHealth:
    def test_live(self, client) -> None:
        assert client.get("/health/live").json()["status"] == "ok"

    def test_ready_checks_database(self, client) -> None:
        body = client.get("/health/ready").json()
        assert body["checks"]["database"]["status"] == "healthy"
        assert "redis" not in body["checks"]
