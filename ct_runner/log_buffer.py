"""Bounded in-memory log ring with blocking pattern waits."""

from __future__ import annotations

import re
import threading
import time
from collections import deque
from dataclasses import dataclass
from itertools import islice
from typing import Deque, List, Optional, Pattern, Union


@dataclass(frozen=True)
class LogMatch:
    """First line of a participant log that matched a pattern."""

    index: int
    line: str
    groups: tuple = ()


@dataclass
class _Waiter:
    regex: Pattern[str]
    start: int
    match: Optional[LogMatch] = None

    def offer(self, index: int, line: str) -> None:
        if self.match is not None or index < self.start:
            return
        found = self.regex.search(line)
        if found:
            self.match = LogMatch(index=index, line=line, groups=found.groups())


class LogBuffer:
    """Ring of the most recent log lines of one process.

    Lines carry absolute indices. Blocked waiters are matched inside
    ``append`` before the ring can evict the line; ``close`` marks the
    stream as fully drained.
    """

    def __init__(self, maxlen: int = 10000) -> None:
        if maxlen <= 0:
            raise ValueError("maxlen must be positive")
        self._lines: Deque[str] = deque(maxlen=maxlen)
        self._total = 0
        self._closed = False
        self._cond = threading.Condition()
        self._waiters: List[_Waiter] = []

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    @property
    def total_lines(self) -> int:
        """Number of lines ever appended, including the ones evicted."""
        with self._cond:
            return self._total

    def append(self, line: str) -> None:
        with self._cond:
            if self._closed:
                return
            for waiter in self._waiters:
                waiter.offer(self._total, line)
            self._lines.append(line)
            self._total += 1
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def lines(self) -> list[str]:
        with self._cond:
            return list(self._lines)

    def tail(self, count: int) -> list[str]:
        with self._cond:
            if count <= 0:
                return []
            start = max(len(self._lines) - count, 0)
            return list(islice(self._lines, start, None))

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._closed, timeout=timeout)

    def wait_for(
        self,
        pattern: Union[str, Pattern[str]],
        timeout: Optional[float] = None,
        start: int = 0,
    ) -> Optional[LogMatch]:
        """Return the first line at or after ``start`` matching ``pattern``.

        Buffered lines are scanned before blocking. After that the waiter is
        registered and tested against each line as it is appended, so a match
        is kept even if the ring evicts the line before the waiter wakes up.
        Returns ``None`` when the timeout elapses or the buffer is closed
        without a match.
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        deadline = None if timeout is None else time.monotonic() + max(timeout, 0.0)
        with self._cond:
            first = self._total - len(self._lines)
            position = max(start, first)
            for offset, line in enumerate(islice(self._lines, position - first, None)):
                found = regex.search(line)
                if found:
                    return LogMatch(index=position + offset, line=line, groups=found.groups())
            if self._closed:
                return None
            waiter = _Waiter(regex, start)
            self._waiters.append(waiter)
            try:
                while waiter.match is None and not self._closed:
                    if deadline is None:
                        self._cond.wait()
                        continue
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                return waiter.match
            finally:
                self._waiters.remove(waiter)
