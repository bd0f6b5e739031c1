"""Snowflake identifier generator.

Ids are 64-bit integers laid out as::

    | 41 bits: ms since EPOCH_MS | 10 bits: node id | 12 bits: sequence |

They sort by creation time, so the approximate creation time of any
record can be recovered from its id alone.
"""
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

EPOCH_MS = 1288834974657

NODE_BITS = 10
STEP_BITS = 12

MAX_NODE = (1 << NODE_BITS) - 1
MAX_STEP = (1 << STEP_BITS) - 1

TIME_SHIFT = NODE_BITS + STEP_BITS
NODE_SHIFT = STEP_BITS


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class SnowflakeGenerator:
    """Thread-safe, per-node snowflake id source.

    One instance is created at startup and shared by every request
    handler. All mutable state sits behind ``_lock``.

    Example:
        ```python
        ids = SnowflakeGenerator(node_id=1)
        event_log_id = ids.generate()  # "1798732109471449088"
        ```
    """

    def __init__(self, node_id: int, clock: Optional[Callable[[], int]] = None):
        if not 0 <= node_id <= MAX_NODE:
            raise ValueError(f"node_id must be between 0 and {MAX_NODE}, got {node_id}")

        self.node_id = node_id
        self._clock = clock or _now_ms
        self._lock = threading.Lock()
        self._last_ms = -1
        self._step = 0

    def next_id(self) -> int:
        """Return the next id as an integer.

        Never fails. When 4096 ids have been handed out within the same
        millisecond the call blocks until the clock moves on.
        """
        with self._lock:
            now = self._clock() - EPOCH_MS

            # Wall clock stepped backwards; keep counting from the last tick
            if now < self._last_ms:
                now = self._last_ms

            if now == self._last_ms:
                self._step = (self._step + 1) & MAX_STEP
                if self._step == 0:
                    while now <= self._last_ms:
                        time.sleep(0)
                        now = self._clock() - EPOCH_MS
            else:
                self._step = 0

            self._last_ms = now

            return (now << TIME_SHIFT) | (self.node_id << NODE_SHIFT) | self._step

    def generate(self) -> str:
        """Return the next id in its decimal string form."""
        return str(self.next_id())

    @staticmethod
    def to_datetime(snowflake_id) -> datetime:
        """Recover the creation time (UTC, ms precision) encoded in an id."""
        ms = (int(snowflake_id) >> TIME_SHIFT) + EPOCH_MS
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)

    @staticmethod
    def node_of(snowflake_id) -> int:
        """Return the node id encoded in an id."""
        return (int(snowflake_id) >> NODE_SHIFT) & MAX_NODE
