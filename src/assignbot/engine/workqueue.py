"""Live registry of the pull requests currently assigned to each reviewer."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkqueueSnapshot:
    """Point-in-time assignment counts, keyed by lower-cased username."""

    counts: Mapping[str, int]

    def count(self, username: str) -> int:
        return self.counts.get(username.lower(), 0)


class ReviewerWorkqueue:
    """Thread-safe map of reviewer -> set of assigned PR numbers.

    Readers take one snapshot per resolution pass so that every candidate is
    checked against the same state. Writers (the assignment commit path) hold
    the lock exclusively while mutating. A snapshot may be stale by the time an
    assignment is committed; this can overshoot a capacity by a small amount.
    """

    def __init__(self, assignments: Mapping[str, Iterable[int]] | None = None) -> None:
        self._lock = threading.Lock()
        self._prs: dict[str, set[int]] = {}
        for username, prs in (assignments or {}).items():
            self._prs.setdefault(username.lower(), set()).update(prs)

    def snapshot(self) -> WorkqueueSnapshot:
        with self._lock:
            counts = {username: len(prs) for username, prs in self._prs.items()}
        return WorkqueueSnapshot(MappingProxyType(counts))

    def count(self, username: str) -> int:
        with self._lock:
            return len(self._prs.get(username.lower(), ()))

    def add(self, username: str, pr_number: int) -> None:
        with self._lock:
            self._prs.setdefault(username.lower(), set()).add(pr_number)
        logger.debug("Workqueue add", extra={"username": username, "pr_number": pr_number})

    def remove(self, username: str, pr_number: int) -> None:
        with self._lock:
            prs = self._prs.get(username.lower())
            if prs is not None:
                prs.discard(pr_number)
                if not prs:
                    del self._prs[username.lower()]
        logger.debug("Workqueue remove", extra={"username": username, "pr_number": pr_number})

    def replace_all(self, assignments: Mapping[str, Iterable[int]]) -> None:
        fresh: dict[str, set[int]] = {}
        for username, prs in assignments.items():
            fresh.setdefault(username.lower(), set()).update(prs)
        with self._lock:
            self._prs = fresh
        logger.info("Workqueue reloaded", extra={"reviewers": len(fresh)})
