"""
Sequence ID generation for platform-wide 64-bit identifiers.

Orders and payment transactions are identified by strictly increasing,
process-wide-unique, roughly time-ordered 64-bit integers.

Layout (most significant first):
    41 bits  milliseconds since 2022-01-01T00:00:00Z
    10 bits  node id (SEQUENCE_NODE_ID, distinct per host)
    12 bits  per-millisecond sequence

Usage:
    from core.sequence import SequenceIdGenerator, get_sequence_generator

    # Injected into services
    generator = get_sequence_generator()
    order_id = generator.next_id()

    # As a model primary-key default
    id = models.BigIntegerField(primary_key=True, default=generate_sequence_id)

    # Tests can pin the clock
    generator = SequenceIdGenerator(node_id=3, clock=lambda: 1_700_000_000_000)
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

from django.conf import settings

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from collections.abc import Callable


EPOCH_MS = 1640995200000
NODE_ID_BITS = 10
SEQUENCE_BITS = 12

MAX_NODE_ID = (1 << NODE_ID_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1

NODE_ID_SHIFT = SEQUENCE_BITS
TIMESTAMP_SHIFT = SEQUENCE_BITS + NODE_ID_BITS


class ClockRegressionError(BaseApplicationError):
    """Raised when the wall clock moves backwards between two id requests."""

    default_error_code: str = "CLOCK_MOVED_BACKWARDS"


def _current_millis() -> int:
    return time.time_ns() // 1_000_000


class SequenceIdGenerator:
    """
    Thread-safe Snowflake-style id generator.

    When more than 4096 ids are requested within one millisecond the
    generator waits for the next millisecond instead of reusing a value.
    """

    def __init__(
        self,
        node_id: int,
        clock: Callable[[], int] | None = None,
    ):
        if not 0 <= node_id <= MAX_NODE_ID:
            raise ValueError(f"node_id must be between 0 and {MAX_NODE_ID}")
        self.node_id = node_id
        self._clock = clock or _current_millis
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def next_id(self) -> int:
        """Return the next identifier."""
        with self._lock:
            now = self._clock()

            if now < self._last_ms:
                raise ClockRegressionError(
                    "Clock moved backwards, refusing to generate id",
                    details={"last_ms": self._last_ms, "now_ms": now},
                )

            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    now = self._wait_next_millis(self._last_ms)
            else:
                self._sequence = 0

            self._last_ms = now
            return (
                ((now - EPOCH_MS) << TIMESTAMP_SHIFT)
                | (self.node_id << NODE_ID_SHIFT)
                | self._sequence
            )

    def _wait_next_millis(self, last_ms: int) -> int:
        now = self._clock()
        while now <= last_ms:
            time.sleep(0.0001)
            now = self._clock()
        return now

    @staticmethod
    def decompose(sequence_id: int) -> dict[str, int]:
        """Split an identifier back into timestamp, node id and sequence."""
        return {
            "timestamp_ms": (sequence_id >> TIMESTAMP_SHIFT) + EPOCH_MS,
            "node_id": (sequence_id >> NODE_ID_SHIFT) & MAX_NODE_ID,
            "sequence": sequence_id & MAX_SEQUENCE,
        }


_default_generator: SequenceIdGenerator | None = None
_default_generator_lock = threading.Lock()


def get_sequence_generator() -> SequenceIdGenerator:
    """Return the generator for this process, built from SEQUENCE_NODE_ID."""
    global _default_generator
    if _default_generator is None:
        with _default_generator_lock:
            if _default_generator is None:
                _default_generator = SequenceIdGenerator(settings.SEQUENCE_NODE_ID)
    return _default_generator


def generate_sequence_id() -> int:
    """Model default for sequence primary keys."""
    return get_sequence_generator().next_id()
