"""Running cargo-bisect-rustc on submitted code and recording the outcome."""

from __future__ import annotations

import enum
import logging
import os
import queue
import sqlite3
import subprocess
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from . import db, toolchain
from .models import Bisection, BisectStatus, Options, StatusKind

logger = logging.getLogger(__name__)

_SUCCESS_MARKER = "searched nightlies:"
_FAILED_TAIL_LINES = 30


class BisectionError(RuntimeError):
    """Raised when a bisection cannot be run or its output cannot be read."""


class JobState(enum.Enum):
    """How the bisection tool exited."""

    FAILED = "error"
    SUCCESS = "success"

    @property
    def status(self) -> str:
        """Short name of the state for logging."""
        return self.value


@dataclass
class Job:
    """A queued request to bisect a piece of code."""

    id: uuid.UUID
    code: str = field(repr=False)
    options: Options


def bisect_worker(jobs: queue.Queue, conn: sqlite3.Connection) -> None:
    """Process jobs from the queue until ``None`` is received."""
    while True:
        job = jobs.get()
        if job is None:
            return
        try:
            process_job(job, conn)
        except Exception:
            logger.exception("error processing bisection")


def process_job(job: Job, conn: sqlite3.Connection) -> None:
    """Run one job, storing its progress and result in the database."""
    logger.info("Starting bisection job %s", job.id)
    bisection = Bisection(
        id=job.id,
        code=job.code,
        time=datetime.now(timezone.utc),
        status=BisectStatus(),
    )
    db.add_bisection(conn, bisection)

    try:
        status = bisect_job(job)
    except Exception:
        logger.exception("error processing bisection %s", job.id)
        status = BisectStatus(StatusKind.ERROR, "Internal error")

    bisection.status = status
    db.update_bisection_status(conn, bisection)
    logger.debug("Finished bisection job %r", bisection)

    toolchain.clean_toolchains()


def bisect_job(job: Job) -> BisectStatus:
    """Run the bisection for a job and turn its output into a status."""
    stderr, state = run_bisect_for_file(job.code, job.options)
    logger.info("Bisection finished with state %s", state.status)
    return process_result(stderr, state)


def process_result(stderr: bytes, state: JobState) -> BisectStatus:
    """Extract the part of the tool's stderr worth reporting."""
    try:
        text = stderr.decode("utf-8")
    except UnicodeDecodeError as err:
        raise BisectionError("cargo-bisect-rustc stderr utf8 validation") from err

    if state is JobState.FAILED:
        output = "\n".join(text.splitlines()[-_FAILED_TAIL_LINES:])
        logger.info("output: %r", output)
        return BisectStatus(StatusKind.ERROR, output)

    cutoff = text.rfind(_SUCCESS_MARKER)
    if cutoff < 0:
        raise BisectionError(
            f"cannot find `{_SUCCESS_MARKER}` in output. output:\n{text}"
        )
    return BisectStatus(StatusKind.SUCCESS, text[cutoff:])


def _bisect_command(options: Options) -> list[str]:
    command = [
        "cargo-bisect-rustc",
        "--preserve",
        "--access",
        "github",
        "--timeout",
        "30",
        "--start",
        options.start.isoformat(),
    ]
    if options.end is not None:
        command += ["--end", options.end.isoformat()]
    command += ["--regress", options.kind if options.kind is not None else "ice"]
    return command


def run_bisect_for_file(code: str, options: Options) -> tuple[bytes, JobState]:
    """Bisect ``code`` in a fresh crate; return the tool's stderr and exit state."""
    with tempfile.TemporaryDirectory(prefix="bisect") as temp_dir:
        try:
            created = subprocess.run(
                ["cargo", "new", "bisect", "--lib"],
                cwd=temp_dir,
                capture_output=True,
            )
        except OSError as err:
            raise BisectionError(f"cargo init: {err}") from err
        if created.returncode != 0:
            message = created.stderr.decode("utf-8", errors="replace")
            raise BisectionError(f"running cargo: {message}")

        cargo_dir = Path(temp_dir) / "bisect"
        try:
            (cargo_dir / "src" / "lib.rs").write_text(code, encoding="utf-8")
        except OSError as err:
            raise BisectionError(f"writing code to lib.rs: {err}") from err

        env = {**os.environ, "RUST_LOG": "error"}
        try:
            result = subprocess.run(
                _bisect_command(options),
                cwd=cargo_dir,
                capture_output=True,
                env=env,
            )
        except OSError as err:
            raise BisectionError(f"spawning cargo-bisect-rustc: {err}") from err

    state = JobState.SUCCESS if result.returncode == 0 else JobState.FAILED
    return result.stderr, state