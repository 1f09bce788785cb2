# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Per-item outcomes collected by best-effort loops.

Backup and restore keep going past individual table or file failures.
Each item's outcome is recorded here, and reports are derived from the
collected list rather than from log output.
"""

from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class ItemResult:
    """Outcome of one table, file or listing."""

    kind: str  # "table", "file" or "listing"
    name: str
    ok: bool
    count: int = 0  # Rows for tables, bytes for files
    error: str | None = None

    @classmethod
    def success(cls, kind: str, name: str, count: int = 0) -> "ItemResult":
        return cls(kind=kind, name=name, ok=True, count=count)

    @classmethod
    def failure(cls, kind: str, name: str, error: Exception | str) -> "ItemResult":
        return cls(kind=kind, name=name, ok=False, error=str(error))

    def describe(self) -> str:
        return f"{self.kind} {self.name}: {self.error}"


def error_messages(results: Iterable[ItemResult]) -> List[str]:
    """Human-readable messages for every failed item."""
    return [r.describe() for r in results if not r.ok]
