"""Progress notifications emitted during an audit run.

Listeners are plain callables handed to ``AuditRun.execute`` and passed
down explicitly; nothing is registered globally.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger(__name__)


class AuditStage(StrEnum):
    PENDING = "pending"
    RESOLVING = "resolving"
    EXECUTING = "executing"
    FINALISING = "finalising"
    COMPLETED = "completed"


@dataclass(frozen=True)
class StageEvent:
    stage: AuditStage


@dataclass(frozen=True)
class EntityResolveEvent:
    policy_name: str
    total: int
    resolved: int


AuditEvent = StageEvent | EntityResolveEvent
AuditListener = Callable[[AuditEvent], None]


class ResolveProgress:
    """Resolve counters of one policy.

    ``resolved`` never decreases and ``total`` never falls below it.
    ``complete`` always reports ``resolved == total``.
    """

    def __init__(self, policy_name: str, listener: AuditListener | None = None) -> None:
        self.policy_name = policy_name
        self.total = 0
        self.resolved = 0
        self._listener = listener

    def update(self, *, total: int | None = None, resolved: int | None = None) -> None:
        if total is not None:
            self.total = max(total, 0)
        if resolved is not None:
            self.resolved = max(self.resolved, resolved)
        self.total = max(self.total, self.resolved)
        self._emit()

    def complete(self, total: int | None = None) -> None:
        if total is not None:
            self.total = total
        self.total = max(self.total, self.resolved)
        self.resolved = self.total
        self._emit()

    def _emit(self) -> None:
        logger.debug(
            "Policy %s resolved %d/%d entities", self.policy_name, self.resolved, self.total
        )
        if self._listener is not None:
            self._listener(
                EntityResolveEvent(
                    policy_name=self.policy_name, total=self.total, resolved=self.resolved
                )
            )
