"""Merge extracted batches into the canonical, deduplicated stop list."""

from __future__ import annotations

import re
import threading
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from ..domain.models import DeliveryStop
from ..logging import get_logger

LOG = get_logger("reconcile")

_INTEGER = re.compile(r"[+-]?\d+")

DedupKey = Tuple[str, str]


def dedup_key(stop: DeliveryStop) -> DedupKey:
    return (stop.stop_number, stop.address.strip().lower())


def parse_stop_number(value: str) -> Optional[int]:
    text = (value or "").strip()
    if not _INTEGER.fullmatch(text):
        return None
    try:
        return int(text)
    except ValueError:
        # Beyond the interpreter's int string-conversion digit limit.
        LOG.debug("Stop number too long to parse: %d chars", len(text))
        return None


def sort_key(stop: DeliveryStop) -> int:
    """Integer value of the stop number; unparseable labels count as 0."""
    parsed = parse_stop_number(stop.stop_number)
    return 0 if parsed is None else parsed


def _unparsed_last_key(stop: DeliveryStop) -> Tuple[int, int]:
    parsed = parse_stop_number(stop.stop_number)
    return (1, 0) if parsed is None else (0, parsed)


def merge(
    current: Sequence[DeliveryStop],
    batch: Iterable[DeliveryStop],
    *,
    unparsed_last: bool = False,
) -> List[DeliveryStop]:
    """Return the next canonical list: current + batch, first key wins, sorted.

    The sort is stable, so entries with equal sort keys keep arrival order.
    ``unparsed_last`` moves non-numeric stop labels behind the numeric ones
    instead of treating them as 0.
    """
    seen: Set[DedupKey] = set()
    kept: List[DeliveryStop] = []
    dropped = 0
    for stop in [*current, *batch]:
        key = dedup_key(stop)
        if key in seen:
            dropped += 1
            continue
        seen.add(key)
        kept.append(stop)
    if dropped:
        LOG.debug("Dropped %d duplicate stop(s) during merge", dropped)
    return sorted(kept, key=_unparsed_last_key if unparsed_last else sort_key)


class StopCollection:
    """Canonical stop list with a single writer at a time.

    Every mutation computes a new list and swaps it in under the lock, so
    readers never observe a half-applied merge.
    """

    def __init__(self, stops: Iterable[DeliveryStop] = (), *, unparsed_last: bool = False) -> None:
        self.unparsed_last = unparsed_last
        self._lock = threading.Lock()
        self._stops: List[DeliveryStop] = merge([], stops, unparsed_last=unparsed_last)

    def snapshot(self) -> List[DeliveryStop]:
        return list(self._stops)

    def __len__(self) -> int:
        return len(self._stops)

    def __iter__(self) -> Iterator[DeliveryStop]:
        return iter(self.snapshot())

    def get(self, stop_id: str) -> Optional[DeliveryStop]:
        for stop in self._stops:
            if stop.id == stop_id:
                return stop
        return None

    def merge(self, batch: Iterable[DeliveryStop]) -> List[DeliveryStop]:
        batch = list(batch)
        with self._lock:
            before = len(self._stops)
            merged = merge(self._stops, batch, unparsed_last=self.unparsed_last)
            self._stops = merged
        LOG.info(f"Merged batch of {len(batch)} stop(s): {before} -> {len(merged)} in collection")
        return list(merged)

    def remove(self, stop_id: str) -> bool:
        with self._lock:
            remaining = [s for s in self._stops if s.id != stop_id]
            removed = len(remaining) != len(self._stops)
            self._stops = remaining
        if removed:
            LOG.info(f"Removed stop {stop_id}")
        else:
            LOG.debug(f"Stop {stop_id} not found; nothing removed")
        return removed

    def reset(self) -> None:
        with self._lock:
            self._stops = []
        LOG.info("Stop collection reset")
