import pytest
from fastapi.testclient import TestClient

from profiler.application import reset_job_service
from profiler.infrastructure import InMemoryScheduler, configure_scheduler
from profiler.workers.progress import ProgressReporter

ALICE = {"X-Remote-User": "alice"}
BOB = {"X-Remote-User": "bob"}


@pytest.fixture()
def scheduler():
    scheduler = InMemoryScheduler()
    configure_scheduler(scheduler)
    yield scheduler
    configure_scheduler(None)


@pytest.fixture()
def client(jobs_root, scheduler, monkeypatch):
    monkeypatch.setenv("JOBDIR", str(jobs_root))
    monkeypatch.setenv("WORKER_COMMAND", "/opt/smtp-profile/smtp-profile.sh")
    reset_job_service()
    from profiler.app import create_app

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
    reset_job_service()


def test_end_to_end_workflow(client, scheduler, jobs_root):
    # 1. submit pasted text
    response = client.post("/api/jobs", json={"content": "example.com\n"}, headers=ALICE)
    assert response.status_code == 200
    job = response.json()
    stem = job["stem"]
    assert job["state"] == "queued"
    assert job["ticket"] == "1"

    root = jobs_root / "alice"
    input_path = root / stem
    assert input_path.read_text(encoding="utf-8") == "example.com\n"

    listing = client.get("/api/jobs", headers=ALICE).json()
    assert [item["stem"] for item in listing["queued"]] == [stem]

    # 2. the facility starts the worker, which publishes progress
    command = scheduler.start(job["ticket"])
    assert str(input_path) in command
    reporter = ProgressReporter(root, stem)
    reporter.update(3, 10)

    listing = client.get("/api/jobs", headers=ALICE).json()
    assert listing["queued"] == []
    assert listing["running"] == [
        {"stem": stem, "state": "running", "progress": {"processed": 3, "total": 10}, "artifacts": []}
    ]

    pending = client.get("/api/jobs/queue/pending", headers=ALICE).json()["items"]
    assert pending[0]["ticket"] == "1"
    assert pending[0]["cancellable"] is False

    # 3. the worker finishes and its input is cleaned up
    reporter.complete(csv_text="domain,result\nexample.com,ok\n", log_text="example.com ok\n", job_source=input_path)
    input_path.unlink()
    scheduler.finish(job["ticket"])

    listing = client.get("/api/jobs", headers=ALICE).json()
    assert listing["running"] == []
    assert listing["completed"] == [
        {
            "stem": stem,
            "state": "completed",
            "progress": None,
            "artifacts": [f"{stem}.csv", f"{stem}.log", f"{stem}.job"],
        }
    ]

    rows = client.get(f"/api/jobs/{stem}/rows", headers=ALICE).json()
    assert rows["items"] == [{"domain": "example.com", "result": "ok"}]

    download = client.get(f"/api/jobs/files/{stem}.log", headers=ALICE)
    assert download.status_code == 200
    assert download.text == "example.com ok\n"

    # 4. other principals cannot see it
    assert client.get("/api/jobs", headers=BOB).json()["completed"] == []
    assert client.get(f"/api/jobs/{stem}", headers=BOB).status_code == 404

    # 5. delete twice
    response = client.request("DELETE", "/api/jobs", json={"stems": [stem]}, headers=ALICE)
    assert sorted(response.json()["removed"]) == [f"{stem}.csv", f"{stem}.job", f"{stem}.log"]
    response = client.request("DELETE", "/api/jobs", json={"stems": [stem]}, headers=ALICE)
    assert response.status_code == 200
    assert response.json() == {"removed": [], "failed": [], "orphaned": []}


def test_upload_submission(client, scheduler, jobs_root):
    response = client.post(
        "/api/jobs/upload",
        files={"file": ("domains.txt", b"example.com\nexample.org\n", "text/plain")},
        headers=ALICE,
    )
    assert response.status_code == 200
    stem = response.json()["stem"]
    assert stem.startswith("domains_")
    assert (jobs_root / "alice" / stem).read_bytes() == b"example.com\nexample.org\n"
    assert len(scheduler.submitted) == 1

    empty = client.post(
        "/api/jobs/upload",
        files={"file": ("empty.txt", b"", "text/plain")},
        headers=ALICE,
    )
    assert empty.status_code == 400


def test_requests_need_a_principal(client):
    assert client.get("/api/jobs").status_code == 401
    assert client.post("/api/jobs", json={"content": "example.com"}).status_code == 401


def test_empty_submission_is_rejected(client, scheduler):
    response = client.post("/api/jobs", json={"content": "  \n"}, headers=ALICE)
    assert response.status_code == 400
    assert scheduler.submitted == []


def test_scheduler_errors_are_shown_verbatim(client, scheduler):
    scheduler.unavailable = True
    response = client.post("/api/jobs", json={"content": "example.com\n"}, headers=ALICE)
    assert response.status_code == 502
    assert response.json()["detail"] == "Can't open /var/run/atd.pid to signal atd. No atd running?"


def test_cancel_pending_ticket(client, scheduler):
    ticket = client.post("/api/jobs", json={"content": "example.com\n"}, headers=ALICE).json()["ticket"]

    response = client.post("/api/jobs/queue/cancel", json={"tickets": [ticket]}, headers=ALICE)
    assert response.status_code == 200
    assert client.get("/api/jobs/queue/pending", headers=ALICE).json()["items"] == []

    response = client.post("/api/jobs/queue/cancel", json={"tickets": [ticket]}, headers=ALICE)
    assert response.status_code == 502
    assert response.json()["detail"] == f"Cannot find jobid {ticket}"


def test_reconcile_endpoint(client, jobs_root):
    root = jobs_root / "alice"
    root.mkdir()
    (root / "orphan.tmp").write_text("", encoding="utf-8")
    (root / "job3.lock").write_text("", encoding="utf-8")

    response = client.post("/api/jobs/reconcile", headers=ALICE)

    assert response.json() == {"removed": ["orphan.tmp"], "failed": [], "orphaned": []}
    assert (root / "job3.lock").exists()


def test_ping_hit_list(client, scheduler, jobs_root):
    root = jobs_root / "alice"
    root.mkdir()
    (root / "spamhaus.txt").write_text("bad.example\nworse.example\n", encoding="utf-8")

    hit_list = client.get("/api/ping/hit-list", headers=ALICE).json()
    assert hit_list["items"] == ["bad.example", "worse.example"]
    assert hit_list["retry"] == 3
    assert hit_list["pause"] == 1000

    response = client.post("/api/ping", json={"domains": ["bad.example"], "retry": 1, "pause": 20}, headers=ALICE)
    assert response.status_code == 200
    assert response.json()["stem"].startswith("ping_")
    assert "-r1 -p20" in scheduler.submitted[0]

    invalid = client.post("/api/ping", json={"domains": ["bad.example"], "retry": 500}, headers=ALICE)
    assert invalid.status_code == 422
