import queue
import sqlite3
import uuid
from datetime import date, datetime, timezone

import pytest

from bisectservice import db
from bisectservice.models import Bisection, BisectStatus, StatusKind
from bisectservice.server import Metrics, create_app, create_metrics_app


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:", check_same_thread=False)
    db.setup(connection)
    yield connection
    connection.close()


@pytest.fixture
def jobs():
    return queue.Queue(maxsize=10)


@pytest.fixture
def metrics():
    return Metrics()


@pytest.fixture
def client(conn, jobs, metrics):
    return create_app(conn, jobs, metrics).test_client()


def _stored(conn):
    bisection = Bisection(
        id=uuid.uuid4(),
        code="fn main() {}",
        time=datetime(2022, 10, 1, 12, 0, tzinfo=timezone.utc),
        status=BisectStatus(StatusKind.SUCCESS, "searched nightlies: x"),
    )
    db.add_bisection(conn, bisection)
    return bisection


def test_metrics_render_format():
    metrics = Metrics()
    metrics.increment("bisections")
    metrics.increment("bisections")
    assert metrics.render() == "# TYPE bisections counter\nbisections 2\n"


def test_metrics_render_empty():
    assert Metrics().render() == ""


def test_post_bisection_queues_job(client, jobs, metrics):
    response = client.post("/bisect?start=2022-01-01&kind=error", data="fn f() {}")
    assert response.status_code == 200
    job_id = uuid.UUID(response.get_json()["job_id"])
    job = jobs.get_nowait()
    assert job.id == job_id
    assert job.code == "fn f() {}"
    assert job.options.start == date(2022, 1, 1)
    assert job.options.kind == "error"
    assert job.options.end is None
    assert "bisections 1" in metrics.render()


def test_post_bisection_without_start_is_rejected(client, jobs, metrics):
    response = client.post("/bisect", data="")
    assert response.status_code == 400
    assert jobs.empty()
    assert metrics.render() == ""


def test_post_bisection_with_full_queue(conn, metrics):
    full = queue.Queue(maxsize=1)
    full.put(object())
    client = create_app(conn, full, metrics).test_client()
    response = client.post("/bisect?start=2022-01-01", data="")
    assert response.status_code == 429
    assert response.get_data(as_text=True) == "Too many jobs in the queue already"


def test_get_bisections_empty(client):
    response = client.get("/bisect")
    assert response.status_code == 200
    assert response.get_json() == []


def test_get_bisections_lists_stored(client, conn):
    bisection = _stored(conn)
    assert client.get("/bisect").get_json() == [bisection.to_json()]


def test_get_bisection_by_id(client, conn):
    bisection = _stored(conn)
    response = client.get(f"/bisect/{bisection.id}")
    assert response.status_code == 200
    assert response.get_json() == bisection.to_json()


def test_get_unknown_bisection_is_null(client):
    response = client.get(f"/bisect/{uuid.uuid4()}")
    assert response.status_code == 200
    assert response.get_data(as_text=True) == "null"


def test_get_bisection_invalid_id(client):
    assert client.get("/bisect/not-a-uuid").status_code == 400


def test_metrics_app_serves_counters(metrics):
    metrics.increment("bisections")
    client = create_metrics_app(metrics).test_client()
    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.get_data(as_text=True) == metrics.render()