"""
Pull-based supply of targets over a push-based byte stream.

A byte source pushes chunks in with feed_data()/feed_eof()/feed_error().
The scheduler pulls targets out with next_target(). In between sit a
buffer of complete lines, the range cursor currently being drained, and a
FIFO of pull requests that arrived while nothing was available.
"""
from __future__ import annotations
import asyncio
import logging
from collections import deque
from typing import Deque, Iterable, Iterator, Optional, Protocol

from .parsing import InvalidTargetError, TargetRange, is_skippable, parse_token

HIGH_WATER_MARK = 65535


class ByteSource(Protocol):
    """Flow-control surface of whatever feeds a TargetStream."""

    def pause_reading(self) -> None:
        ...

    def resume_reading(self) -> None:
        ...

    def close(self) -> None:
        ...


class TargetStream:
    """Flattens a stream of tokens into an ordered stream of targets."""

    def __init__(self, high_water_mark: int = HIGH_WATER_MARK):
        if high_water_mark < 1:
            raise ValueError("high_water_mark must be at least 1")
        self.high_water_mark = high_water_mark
        self.error: Optional[BaseException] = None
        self.lines_consumed = 0
        self.invalid_count = 0

        self._byte_source: Optional[ByteSource] = None
        self._partial = b""
        self._tokens: Deque[str] = deque()
        self._lines: Deque[str] = deque()
        self._cursor: Optional[Iterator[str]] = None
        self._returned: Deque[str] = deque()
        self._waiters: Deque[asyncio.Future] = deque()
        self._paused = False
        self._eof = False
        self._closed = False

    @classmethod
    def from_tokens(cls, tokens: Iterable[str], **kwargs) -> "TargetStream":
        """Builds an already-ended stream over in-memory tokens."""
        stream = cls(**kwargs)
        stream.push_tokens(tokens)
        stream.feed_eof()
        return stream

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def buffered_lines(self) -> int:
        return len(self._tokens) + len(self._lines)

    @property
    def pending_requests(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    @property
    def exhausted(self) -> bool:
        """True once no further target can ever be delivered."""
        if self._closed:
            return True
        return (self._eof and not self._tokens and not self._lines
                and self._cursor is None and not self._returned)

    def attach(self, byte_source: ByteSource) -> None:
        """Connects the byte source whose reading this stream throttles."""
        if self._closed:
            byte_source.close()
            return
        self._byte_source = byte_source
        if self._paused:
            byte_source.pause_reading()

    def push_tokens(self, tokens: Iterable[str]) -> None:
        """Queues tokens ahead of every line the byte source delivers."""
        if self._eof or self._closed:
            return
        self._tokens.extend(tokens)
        self._check_high_water()
        self._wake()

    # Push side

    def feed_data(self, data: bytes) -> None:
        if self._eof or self._closed or not data:
            return
        *complete, self._partial = (self._partial + data).split(b"\n")
        for raw in complete:
            self._lines.append(raw.decode("utf-8", errors="replace").rstrip("\r"))
        self._check_high_water()
        self._wake()

    def feed_eof(self) -> None:
        if self._eof or self._closed:
            return
        if self._partial:
            self._lines.append(self._partial.decode("utf-8", errors="replace").rstrip("\r"))
            self._partial = b""
        self._eof = True
        self._byte_source = None
        self._wake()

    def feed_error(self, exc: BaseException) -> None:
        """A read error ends the stream at once; buffered lines are dropped."""
        if self._eof or self._closed:
            return
        logging.error(f"Input stream failed, treating it as exhausted: {exc}")
        self.error = exc
        self._eof = True
        self._byte_source = None
        self._discard_buffered()
        self._release_waiters()

    # Pull side

    async def next_target(self) -> Optional[str]:
        """
        Returns the next target, or None once the stream is exhausted.

        Suspends only when nothing is buffered and the byte source has not
        ended; the source is resumed so the request can be satisfied.
        """
        target = self._take()
        if target is not None or self._eof or self._closed:
            return target

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        self._resume()
        try:
            return await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled() and waiter.result() is not None:
                self._returned.appendleft(waiter.result())
                self._wake()
            raise

    def close(self) -> None:
        """Stops intake for good. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        byte_source, self._byte_source = self._byte_source, None
        if byte_source is not None:
            byte_source.close()
        self._discard_buffered()
        self._release_waiters()

    # Internals

    def _take(self) -> Optional[str]:
        if self._closed:
            return None
        if self._returned:
            return self._returned.popleft()
        while True:
            if self._cursor is not None:
                target = next(self._cursor, None)
                if target is not None:
                    return target
                self._cursor = None

            if self._tokens:
                line = self._tokens.popleft()
                origin = "target"
            elif self._lines:
                line = self._lines.popleft()
                self.lines_consumed += 1
                origin = f"input line {self.lines_consumed}"
            else:
                return None
            if self._paused and self.buffered_lines <= self.high_water_mark:
                self._resume()

            if is_skippable(line):
                continue
            try:
                parsed = parse_token(line)
            except InvalidTargetError as e:
                self.invalid_count += 1
                logging.warning(f"Skipping {origin}: {e}")
                continue
            if isinstance(parsed, TargetRange):
                self._cursor = iter(parsed)
            else:
                return parsed

    def _wake(self) -> None:
        while self._waiters:
            waiter = self._waiters[0]
            if waiter.done():
                self._waiters.popleft()
                continue
            target = self._take()
            if target is None:
                break
            self._waiters.popleft()
            waiter.set_result(target)
        if self.exhausted:
            self._release_waiters()

    def _release_waiters(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

    def _discard_buffered(self) -> None:
        self._tokens.clear()
        self._lines.clear()
        self._partial = b""
        self._cursor = None
        self._returned.clear()

    def _check_high_water(self) -> None:
        if self.buffered_lines > self.high_water_mark:
            self._pause()

    def _pause(self) -> None:
        if self._paused or self._eof or self._closed:
            return
        self._paused = True
        logging.debug(f"Pausing input: {self.buffered_lines} lines buffered")
        if self._byte_source is not None:
            self._byte_source.pause_reading()

    def _resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        logging.debug(f"Resuming input: {self.buffered_lines} lines buffered")
        if self._byte_source is not None:
            self._byte_source.resume_reading()
