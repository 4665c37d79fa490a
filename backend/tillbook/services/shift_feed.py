# Overview: In-process push channel for till balance updates (Server-Sent Events source).

"""
Shift Balance Feed

WHY: A cashier's screen should show the till balance the moment a sale,
cash movement or reconciliation commits, without polling every few seconds.

DESIGN PRINCIPLES:
- Publish only after commit; subscribers never see uncommitted rows
- Each snapshot carries a sequence (highest ledger id it includes)
- Consumers apply snapshots through ShiftBalanceView, which discards
  anything older than what it already shows
- GET /api/shifts/<id>/balance stays available as the polling fallback

The feed is per-process. Multi-worker deployments lose cross-worker pushes;
clients then fall back to polling, which is always correct.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional

from .balance_service import CashBalance, get_balance

logger = logging.getLogger(__name__)

# Per-subscriber buffer; a slow consumer drops its oldest snapshot
SUBSCRIBER_QUEUE_SIZE = 32


@dataclass(frozen=True)
class BalanceSnapshot:
    shift_id: int
    sequence: int
    balance: CashBalance

    def to_dict(self) -> dict:
        return {
            "shift_id": self.shift_id,
            "sequence": self.sequence,
            "balance": self.balance.to_dict(),
        }


class ShiftFeed:
    """Fan-out of BalanceSnapshots to per-shift subscriber queues."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[int, set[queue.Queue]] = defaultdict(set)

    def subscribe(self, shift_id: int) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        with self._lock:
            self._subscribers[shift_id].add(q)
        return q

    def unsubscribe(self, shift_id: int, q: queue.Queue) -> None:
        with self._lock:
            subscribers = self._subscribers.get(shift_id)
            if subscribers is None:
                return
            subscribers.discard(q)
            if not subscribers:
                del self._subscribers[shift_id]

    def subscriber_count(self, shift_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(shift_id, ()))

    def publish(self, snapshot: BalanceSnapshot) -> int:
        """Deliver to every subscriber of the shift. Returns delivery count."""
        with self._lock:
            targets = list(self._subscribers.get(snapshot.shift_id, ()))

        for q in targets:
            try:
                q.put_nowait(snapshot)
            except queue.Full:
                try:
                    q.get_nowait()
                except queue.Empty:
                    pass
                q.put_nowait(snapshot)
        return len(targets)


feed = ShiftFeed()


def snapshot_for(shift_id: int) -> BalanceSnapshot:
    balance = get_balance(shift_id)
    return BalanceSnapshot(shift_id=shift_id, sequence=balance.sequence, balance=balance)


def publish_balance(shift_id: int, snapshot: Optional[BalanceSnapshot] = None) -> BalanceSnapshot:
    """
    Push the shift balance to subscribers. Call after commit.

    Pass a snapshot taken inside the committed transaction to publish
    exactly that state; otherwise the balance is recomputed.
    """
    if snapshot is None:
        snapshot = snapshot_for(shift_id)
    delivered = feed.publish(snapshot)
    if delivered:
        logger.debug("shift %s balance seq=%s pushed to %d subscriber(s)", shift_id, snapshot.sequence, delivered)
    return snapshot


class ShiftBalanceView:
    """
    Client-side holder of the balance currently on screen.

    apply() only moves forward: a snapshot older than the one shown (for
    example a poll that started before a local mutation returned) is ignored.
    """

    def __init__(self, shift_id: int):
        self.shift_id = shift_id
        self.snapshot: Optional[BalanceSnapshot] = None

    @property
    def sequence(self) -> int:
        return self.snapshot.sequence if self.snapshot else -1

    def apply(self, snapshot: BalanceSnapshot) -> bool:
        if snapshot.shift_id != self.shift_id:
            raise ValueError(f"snapshot for shift {snapshot.shift_id} applied to view of shift {self.shift_id}")
        if snapshot.sequence < self.sequence:
            return False
        self.snapshot = snapshot
        return True
