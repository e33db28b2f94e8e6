"""HTTP front end of the bisection service and its metrics endpoint."""

from __future__ import annotations

import argparse
import json
import logging
import os
import queue
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any

from flask import Flask, Response, request

from . import db, toolchain
from .bisect import Job, bisect_worker
from .models import OptionsError, parse_options

logger = logging.getLogger(__name__)

QUEUE_SIZE = 10
MAIN_PORT = 4000
METRICS_PORT = 4001


class Metrics:
    """Thread-safe counters rendered in the Prometheus text format."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}
        self._lock = threading.Lock()

    def increment(self, name: str) -> None:
        """Add one to the named counter."""
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + 1

    def render(self) -> str:
        """Return all counters in the Prometheus exposition format."""
        with self._lock:
            counters = sorted(self._counters.items())
        return "".join(
            f"# TYPE {name} counter\n{name} {value}\n" for name, value in counters
        )


def _json(data: Any) -> Response:
    return Response(json.dumps(data), mimetype="application/json")


def create_app(conn: sqlite3.Connection, jobs: queue.Queue, metrics: Metrics) -> Flask:
    """Build the main application serving and accepting bisections."""
    app = Flask(__name__)
    conn_lock = threading.Lock()
    index_path = Path(os.environ.get("INDEX_HTML", "index.html"))

    @app.get("/")
    def index():
        try:
            page = index_path.read_text(encoding="utf-8")
        except OSError:
            return Response("index page not available", status=404)
        return Response(page, mimetype="text/html")

    @app.get("/bisect/<job_id>")
    def get_bisection(job_id: str):
        try:
            parsed = uuid.UUID(job_id)
        except ValueError:
            return Response(f"Invalid URL: invalid job id {job_id!r}", status=400)
        try:
            with conn_lock:
                bisection = db.get_bisection(conn, parsed)
        except db.DatabaseError as err:
            logger.error("error getting bisections: %s", err)
            return Response(str(err), status=500)
        return _json(None if bisection is None else bisection.to_json())

    @app.get("/bisect")
    def get_bisections():
        try:
            with conn_lock:
                bisections = db.get_bisections(conn)
        except db.DatabaseError as err:
            logger.error("error getting bisections: %s", err)
            return Response(str(err), status=500)
        return _json([bisection.to_json() for bisection in bisections])

    @app.post("/bisect")
    def do_bisection():
        try:
            options = parse_options(request.args)
        except OptionsError as err:
            return Response(f"Failed to deserialize query string: {err}", status=400)
        metrics.increment("bisections")
        job_id = uuid.uuid4()
        job = Job(job_id, request.get_data(as_text=True), options)
        try:
            jobs.put_nowait(job)
        except queue.Full:
            return Response("Too many jobs in the queue already", status=429)
        logger.info("Added new job to queue %s", job_id)
        return _json({"job_id": str(job_id)})

    return app


def create_metrics_app(metrics: Metrics) -> Flask:
    """Build the application exposing metrics at ``/metrics``."""
    app = Flask(__name__ + ".metrics")

    @app.get("/metrics")
    def render_metrics():
        return Response(metrics.render(), mimetype="text/plain")

    return app


def main(argv: list[str] | None = None) -> None:
    """Start the bisection worker, the metrics server and the main server."""
    parser = argparse.ArgumentParser(
        description="Serve bisections of submitted code over HTTP. "
        "The database path is taken from SQLITE_DB."
    )
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    sqlite_db = os.environ.get("SQLITE_DB", "bisect.sqlite")
    try:
        main_conn = sqlite3.connect(sqlite_db, check_same_thread=False)
        worker_conn = sqlite3.connect(sqlite_db, check_same_thread=False)
    except sqlite3.Error as err:
        raise db.DatabaseError(
            f"connect to sqlite with file path: {sqlite_db}: {err}"
        ) from err

    db.setup(worker_conn)
    toolchain.clean_toolchains()

    metrics = Metrics()
    jobs: queue.Queue = queue.Queue(maxsize=QUEUE_SIZE)

    metrics_app = create_metrics_app(metrics)
    logger.info("Starting up metrics server on port %d", METRICS_PORT)
    threading.Thread(
        target=metrics_app.run,
        kwargs={"host": "0.0.0.0", "port": METRICS_PORT, "use_reloader": False},
        daemon=True,
    ).start()

    worker = threading.Thread(target=bisect_worker, args=(jobs, worker_conn), daemon=True)
    worker.start()

    app = create_app(main_conn, jobs, metrics)
    logger.info("Starting up server on port %d", MAIN_PORT)
    try:
        app.run(host="0.0.0.0", port=MAIN_PORT, threaded=True, use_reloader=False)
    finally:
        jobs.put(None)