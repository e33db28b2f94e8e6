"""Housekeeping of toolchains installed by bisections."""

from __future__ import annotations

import logging
import subprocess
from typing import Iterable, Sequence

logger = logging.getLogger(__name__)

MAX_BISECTOR_TOOLCHAINS = 15


class ToolchainError(RuntimeError):
    """Raised when rustup cannot list or remove toolchains."""


def filter_toolchains_for_removal(toolchains: Iterable[str]) -> list[str]:
    """Return the oldest bisector toolchains beyond the allowed maximum."""
    bisectors = [name for name in toolchains if name.startswith("bisector-")]
    amount = len(bisectors)
    if amount <= MAX_BISECTOR_TOOLCHAINS:
        logger.debug("No toolchains removed (amount=%d)", amount)
        return []
    return bisectors[: amount - MAX_BISECTOR_TOOLCHAINS]


def _run_rustup(args: Sequence[str]) -> subprocess.CompletedProcess:
    description = "rustup " + " ".join(args[:2])
    try:
        result = subprocess.run(["rustup", *args], capture_output=True)
    except OSError as err:
        raise ToolchainError(f"running `{description}`: {err}") from err
    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace")
        raise ToolchainError(f"`{description}` failed: {stderr}")
    return result


def get_toolchains() -> list[str]:
    """Return the names listed by ``rustup toolchain list``."""
    result = _run_rustup(["toolchain", "list"])
    try:
        stdout = result.stdout.decode("utf-8")
    except UnicodeDecodeError as err:
        raise ToolchainError("rustup returned non-utf-8 bytes") from err
    return stdout.splitlines()


def remove_toolchains(toolchains: Sequence[str]) -> None:
    """Uninstall the given toolchains with rustup."""
    logger.debug("Removing toolchains %s", list(toolchains))
    _run_rustup(["toolchain", "remove", *toolchains])


def clean_toolchains() -> None:
    """Remove surplus bisector toolchains, keeping the newest ones."""
    for_removal = filter_toolchains_for_removal(get_toolchains())
    if for_removal:
        remove_toolchains(for_removal)