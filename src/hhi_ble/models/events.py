"""Events published on the state-change and log feeds."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class StateChange:
    """One field of ConfigState/StatusState changed.

    Attributes:
        register: Register identifier the value came from (None for resets)
        field: Attribute name on ConfigState or StatusState
        value: New application-level value
        source: "read", "notify", "write" or "reset"
    """

    register: int | None
    field: str
    value: Any
    source: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class LogEntry:
    """Diagnostic entry for the log feed."""

    level: int
    message: str
    register: int | None = None
    error: BaseException | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)


@dataclass
class SyncReport:
    """Outcome of an initial read or notification arming pass."""

    succeeded: list[int] = field(default_factory=list)
    failed: dict[int, BaseException] = field(default_factory=dict)
    required_failed: bool = False

    @property
    def complete(self) -> bool:
        """True if every attempted register succeeded."""
        return not self.failed


@dataclass
class SaveReport:
    """Outcome of a batch write."""

    written: list[int] = field(default_factory=list)
    failed: dict[int, BaseException] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed
