"""
Byte sources that feed a TargetStream from files, pipes and standard input.
"""
from __future__ import annotations
import asyncio
import logging
import os
import stat
import sys
from typing import BinaryIO, Optional, Union

from .source import TargetStream

CHUNK_SIZE = 64 * 1024


class FileByteSource:
    """
    Reads a file or device in chunks on the default executor.

    Regular files and devices cannot be watched by the event loop, so a pump
    task reads one chunk at a time and waits while the stream has reading
    paused.
    """

    def __init__(self, fileobj: BinaryIO, consumer: TargetStream, chunk_size: int = CHUNK_SIZE):
        self._file = fileobj
        self._consumer = consumer
        self._chunk_size = chunk_size
        self._flowing = asyncio.Event()
        self._flowing.set()
        self._closed = False
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._pump())

    def pause_reading(self) -> None:
        self._flowing.clear()

    def resume_reading(self) -> None:
        self._flowing.set()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._flowing.set()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task

    async def _pump(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            while not self._closed:
                await self._flowing.wait()
                if self._closed:
                    break
                chunk = await loop.run_in_executor(None, self._file.read, self._chunk_size)
                if self._closed:
                    break
                if not chunk:
                    self._consumer.feed_eof()
                    break
                self._consumer.feed_data(chunk)
        except OSError as e:
            self._consumer.feed_error(e)
        finally:
            self._closed = True
            self._file.close()


class _PipeProtocol(asyncio.Protocol):
    """Forwards pipe events into a TargetStream."""

    def __init__(self, consumer: TargetStream):
        self._consumer = consumer

    def data_received(self, data: bytes) -> None:
        self._consumer.feed_data(data)

    def eof_received(self) -> None:
        self._consumer.feed_eof()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            self._consumer.feed_error(exc)
        else:
            self._consumer.feed_eof()


class PipeByteSource:
    """Event-loop driven reading of a pipe, FIFO, socket or terminal."""

    def __init__(self, transport: asyncio.ReadTransport):
        self._transport = transport

    @classmethod
    async def connect(cls, pipe, consumer: TargetStream) -> "PipeByteSource":
        loop = asyncio.get_running_loop()
        protocol = _PipeProtocol(consumer)
        transport, _ = await loop.connect_read_pipe(lambda: protocol, pipe)
        return cls(transport)

    def pause_reading(self) -> None:
        if not self._transport.is_closing():
            self._transport.pause_reading()

    def resume_reading(self) -> None:
        if not self._transport.is_closing():
            self._transport.resume_reading()

    def close(self) -> None:
        if not self._transport.is_closing():
            self._transport.close()

    async def wait_closed(self) -> None:
        # Read transports close synchronously.
        return None


ByteSourceImpl = Union[FileByteSource, PipeByteSource]


def _is_pollable(fileobj) -> bool:
    """True for pipes, sockets and terminals, the inputs an event loop can watch."""
    try:
        mode = os.fstat(fileobj.fileno()).st_mode
        return stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode) or fileobj.isatty()
    except (OSError, ValueError):
        return False


async def _connect_pipe(pipe, consumer: TargetStream) -> Optional[PipeByteSource]:
    try:
        return await PipeByteSource.connect(pipe, consumer)
    except (OSError, ValueError) as e:
        pipe.close()
        consumer.feed_error(e)
        return None


async def open_byte_source(path: str, consumer: TargetStream) -> Optional[ByteSourceImpl]:
    """
    Opens ``path`` ('-' for standard input) and attaches it to ``consumer``.

    Pipes, sockets and terminals are read by the event loop; everything else,
    including character devices such as /dev/null, is read on the executor.
    Returns None when the loop refused the input, in which case ``consumer``
    has already been ended with the error.

    Raises OSError when the file cannot be opened.
    """
    source: Optional[ByteSourceImpl]
    if path == '-':
        if _is_pollable(sys.stdin):
            logging.debug("Reading targets from standard input pipe")
            source = await _connect_pipe(sys.stdin, consumer)
        else:
            logging.debug("Reading targets from redirected standard input")
            source = FileByteSource(sys.stdin.buffer, consumer)
            source.start()
    else:
        fileobj = open(path, 'rb')
        if _is_pollable(fileobj):
            source = await _connect_pipe(fileobj, consumer)
        else:
            source = FileByteSource(fileobj, consumer)
            source.start()
    if source is not None:
        consumer.attach(source)
    return source
