"""Data types shared by the bisection service."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Mapping


class StatusKind(enum.IntEnum):
    """The state a bisection is in; the value is its database code."""

    IN_PROGRESS = 0
    ERROR = 1
    SUCCESS = 2

    @property
    def tag(self) -> str:
        """Name used for this state in JSON responses."""
        return _TAGS[self]


_TAGS = {
    StatusKind.IN_PROGRESS: "InProgress",
    StatusKind.ERROR: "Error",
    StatusKind.SUCCESS: "Success",
}


@dataclass(frozen=True)
class BisectStatus:
    """Status of a bisection, with the tool output once it has finished."""

    kind: StatusKind = StatusKind.IN_PROGRESS
    output: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", StatusKind(self.kind))
        if self.kind is StatusKind.IN_PROGRESS:
            if self.output is not None:
                raise ValueError("an in-progress bisection has no output")
        elif self.output is None:
            raise ValueError(f"a {self.kind.tag} status needs an output")

    def to_json(self) -> dict[str, Any]:
        """Return the status as a JSON-ready mapping tagged by ``status``."""
        result: dict[str, Any] = {"status": self.kind.tag}
        if self.output is not None:
            result["output"] = self.output
        return result


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass
class Bisection:
    """One bisection job as stored and reported by the service."""

    id: uuid.UUID
    code: str
    time: datetime
    status: BisectStatus = field(default_factory=BisectStatus)

    def to_json(self) -> dict[str, Any]:
        """Return the bisection as a JSON-ready mapping."""
        stamp = _utc(self.time).isoformat().replace("+00:00", "Z")
        return {
            "id": str(self.id),
            "code": self.code,
            "time": stamp,
            "status": self.status.to_json(),
        }


@dataclass(frozen=True)
class Options:
    """Parameters of a bisection request."""

    start: date
    end: date | None = None
    kind: str | None = None


class OptionsError(ValueError):
    """Raised when bisection request parameters are missing or malformed."""


def _parse_date(name: str, text: str) -> date:
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        raise OptionsError(f"invalid date for `{name}`: {text!r}") from None


def parse_options(query: Mapping[str, str]) -> Options:
    """Build :class:`Options` from query parameters; unknown keys are ignored."""
    start_text = query.get("start")
    if start_text is None:
        raise OptionsError("missing field `start`")
    start = _parse_date("start", start_text)
    end_text = query.get("end")
    end = None if end_text is None else _parse_date("end", end_text)
    return Options(start=start, end=end, kind=query.get("kind"))