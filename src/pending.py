"""Pending rule decisions awaiting their session.

A rule is decided when a connection asks for a host, which happens before
the session identity is final. Decisions are kept under the session id when
the connection already carries one, otherwise under the origin address in
arrival order. The address path is a best-effort fallback: entries older
than the TTL are dropped so a stale decision never reaches a later session.
"""

import threading
import time
from collections import deque
from typing import Deque, Dict, Hashable, NamedTuple, Optional, Tuple

from constants import PENDING_TTL_FLOOR_MS, PENDING_TTL_MS
from rules import UNMAPPED, Rule


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class PendingEntry(NamedTuple):
    created_ms: float
    rule: Rule


class _AddressQueue:
    __slots__ = ("lock", "entries", "retired")

    def __init__(self):
        self.lock = threading.Lock()
        self.entries: Deque[PendingEntry] = deque()
        # set once the queue has been unlinked from the store
        self.retired = False


class PendingDecisionStore:
    def __init__(self, ttl_ms: float = PENDING_TTL_MS, clock=monotonic_ms, logger=None, statistics=None):
        self.logger = logger
        self.statistics = statistics
        self._clock = clock
        self._ttl_ms = max(PENDING_TTL_FLOOR_MS, ttl_ms)
        self._by_session: Dict[Hashable, Rule] = {}
        self._by_address: Dict[str, _AddressQueue] = {}

    @property
    def ttl_ms(self) -> float:
        return self._ttl_ms

    @ttl_ms.setter
    def ttl_ms(self, value: float) -> None:
        self._ttl_ms = max(PENDING_TTL_FLOOR_MS, value)

    def record(self, strong_id: Optional[Hashable], weak_id: Optional[str], rule: Rule) -> bool:
        if strong_id is not None:
            # a single dict store; a newer decision for the same session replaces the old one
            self._by_session[strong_id] = rule
            self._count_recorded()
            return True

        if weak_id is None:
            if self.logger:
                self.logger.warning("Decision has no session id and no origin address; cannot correlate, dropping")
            if self.statistics:
                self.statistics.increment_dropped()
            return False

        now = self._clock()
        while True:
            queue = self._by_address.get(weak_id)
            if queue is None:
                queue = self._by_address.setdefault(weak_id, _AddressQueue())
            with queue.lock:
                if queue.retired:
                    continue
                self._prune(queue, now)
                queue.entries.append(PendingEntry(now, rule))
                size = len(queue.entries)
            break

        if self.logger:
            self.logger.log_access(f"Stored pending rule by address '{weak_id}' (queue size={size})")
        self._count_recorded()
        return True

    def resolve(self, strong_id: Optional[Hashable], weak_id: Optional[str]) -> Rule:
        return self.resolve_with_source(strong_id, weak_id)[0]

    def resolve_with_source(self, strong_id: Optional[Hashable], weak_id: Optional[str]) -> Tuple[Rule, str]:
        """Claim the decision for a session.

        The session id wins over the address. Returns the rule together with
        ``"strong"``, ``"weak"`` or ``"none"`` naming where it came from.
        """
        if strong_id is not None:
            rule = self._by_session.pop(strong_id, None)
            if rule is not None:
                return self._resolved(rule, "strong")

        if weak_id is not None:
            entry, remaining = self._poll_address(weak_id)
            if entry is not None:
                if self.logger:
                    self.logger.log_access(
                        f"Matched pending rule by address '{weak_id}' (remaining queue size={remaining})"
                    )
                return self._resolved(entry.rule, "weak")

        return self._resolved(UNMAPPED, "none")

    def discard(self, strong_id: Hashable) -> Optional[Rule]:
        return self._by_session.pop(strong_id, None)

    def sweep(self) -> int:
        """Drop expired address entries everywhere; returns how many went."""
        now = self._clock()
        dropped = 0
        for addr, queue in list(self._by_address.items()):
            with queue.lock:
                if queue.retired:
                    continue
                before = len(queue.entries)
                self._prune(queue, now)
                dropped += before - len(queue.entries)
                if not queue.entries:
                    queue.retired = True
                    self._by_address.pop(addr, None)
        return dropped

    def pending_counts(self) -> Tuple[int, int, int]:
        queues = list(self._by_address.values())
        return len(self._by_session), len(queues), sum(len(q.entries) for q in queues)

    def _poll_address(self, weak_id: str) -> Tuple[Optional[PendingEntry], int]:
        now = self._clock()
        while True:
            queue = self._by_address.get(weak_id)
            if queue is None:
                return None, 0
            with queue.lock:
                if queue.retired:
                    continue
                self._prune(queue, now)
                entry = queue.entries.popleft() if queue.entries else None
                remaining = len(queue.entries)
                if not remaining:
                    queue.retired = True
                    self._by_address.pop(weak_id, None)
                return entry, remaining

    def _prune(self, queue: _AddressQueue, now: float) -> None:
        entries = queue.entries
        while entries and now - entries[0].created_ms > self._ttl_ms:
            entries.popleft()

    def _count_recorded(self) -> None:
        if self.statistics:
            self.statistics.increment_recorded()

    def _resolved(self, rule: Rule, source: str) -> Tuple[Rule, str]:
        if self.statistics:
            self.statistics.increment_resolved(source)
        return rule, source
