"""SQLite storage of bisection jobs."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

from .models import Bisection, BisectStatus, StatusKind

logger = logging.getLogger(__name__)

_SELECT = "SELECT job_id, code, status, time, stdout_stderr FROM bisect"


class DatabaseError(Exception):
    """Raised when the bisection database cannot be read or written."""


def setup(conn: sqlite3.Connection) -> None:
    """Create the bisection table if it does not exist yet."""
    try:
        with conn:
            conn.execute(
                """CREATE TABLE IF NOT EXISTS bisect (
                    job_id STRING PRIMARY KEY,
                    code STRING NOT NULL,
                    status INTEGER NOT NULL DEFAULT 0,
                    time TIME NOT NULL,
                    stdout_stderr STRING -- stdout or stderr depending on the status
                )"""
            )
    except sqlite3.Error as err:
        raise DatabaseError(f"setup sqlite table: {err}") from err
    logger.info("Finished db setup")


def _encode_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(sep=" ")


def _decode_time(value: Any) -> datetime:
    moment = datetime.fromisoformat(str(value))
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _decode_id(value: Any) -> uuid.UUID:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return uuid.UUID(bytes=bytes(value))
    return uuid.UUID(str(value))


def _row_to_bisection(row: tuple[Any, ...]) -> Bisection:
    job_id, code, status, time, output = row
    try:
        kind = StatusKind(status)
    except ValueError:
        raise DatabaseError(f"unknown bisection status {status!r}") from None
    try:
        status_value = BisectStatus(kind, None if kind is StatusKind.IN_PROGRESS else output)
        return Bisection(
            id=_decode_id(job_id),
            code=code,
            time=_decode_time(time),
            status=status_value,
        )
    except (ValueError, TypeError) as err:
        raise DatabaseError(f"malformed bisection row: {err}") from err


def add_bisection(conn: sqlite3.Connection, bisection: Bisection) -> None:
    """Insert a new bisection."""
    status = bisection.status
    try:
        with conn:
            conn.execute(
                "INSERT INTO bisect (job_id, code, status, time, stdout_stderr) "
                "VALUES (?1, ?2, ?3, ?4, ?5)",
                (
                    bisection.id.bytes,
                    bisection.code,
                    int(status.kind),
                    _encode_time(bisection.time),
                    status.output,
                ),
            )
    except sqlite3.Error as err:
        raise DatabaseError(f"insert into database: {err}") from err


def update_bisection_status(conn: sqlite3.Connection, bisection: Bisection) -> None:
    """Store the current status and output of an existing bisection."""
    status = bisection.status
    try:
        with conn:
            conn.execute(
                "UPDATE bisect SET status = ?1, stdout_stderr = ?2 WHERE bisect.job_id = ?3",
                (int(status.kind), status.output, bisection.id.bytes),
            )
    except sqlite3.Error as err:
        raise DatabaseError(f"update database: {err}") from err


def get_bisections(conn: sqlite3.Connection) -> list[Bisection]:
    """Return every stored bisection."""
    try:
        rows = conn.execute(_SELECT).fetchall()
    except sqlite3.Error as err:
        raise DatabaseError(f"getting bisections from db: {err}") from err
    return [_row_to_bisection(row) for row in rows]


def get_bisection(conn: sqlite3.Connection, job_id: uuid.UUID) -> Bisection | None:
    """Return the bisection with the given id, or None if there is none."""
    try:
        row = conn.execute(_SELECT + " WHERE job_id = ?1", (job_id.bytes,)).fetchone()
    except sqlite3.Error as err:
        raise DatabaseError(f"getting bisection: {err}") from err
    return None if row is None else _row_to_bisection(row)