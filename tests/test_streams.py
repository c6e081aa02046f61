import asyncio
import os

import pytest

from rangescan.source import TargetStream
from rangescan.streams import FileByteSource, PipeByteSource, open_byte_source


async def drain(stream):
    targets = []
    while True:
        target = await stream.next_target()
        if target is None:
            return targets
        targets.append(target)


def test_file_source_feeds_all_lines(tmp_path):
    path = tmp_path / "targets.txt"
    path.write_text("10.0.0.0/30\n# skip me\n10.0.0.5")

    async def scenario():
        stream = TargetStream()
        source = await open_byte_source(str(path), stream)
        assert isinstance(source, FileByteSource)
        targets = await drain(stream)
        await source.wait_closed()
        return targets

    assert asyncio.run(scenario()) == ["10.0.0.0", "10.0.0.1", "10.0.0.2", "10.0.0.3", "10.0.0.5"]


def test_file_source_chunks_split_mid_line(tmp_path):
    path = tmp_path / "targets.txt"
    lines = [f"10.0.{i // 256}.{i % 256}" for i in range(300)]
    path.write_text("\n".join(lines) + "\n")

    async def scenario():
        stream = TargetStream(high_water_mark=16)
        with open(path, 'rb') as f:
            source = FileByteSource(f, stream, chunk_size=7)
            stream.attach(source)
            source.start()
            targets = await drain(stream)
            await source.wait_closed()
        return targets

    assert asyncio.run(scenario()) == lines


def test_closing_stream_stops_file_pump(tmp_path):
    path = tmp_path / "targets.txt"
    path.write_text("10.0.0.1\n" * 1000)

    async def scenario():
        stream = TargetStream(high_water_mark=4)
        source = await open_byte_source(str(path), stream)
        first = await stream.next_target()
        stream.close()
        await asyncio.wait_for(source.wait_closed(), 5)
        return first, await stream.next_target()

    assert asyncio.run(scenario()) == ("10.0.0.1", None)


def test_missing_input_file_raises(tmp_path):
    async def scenario():
        await open_byte_source(str(tmp_path / "missing.txt"), TargetStream())

    with pytest.raises(FileNotFoundError):
        asyncio.run(scenario())


def test_pipe_source_feeds_until_writer_closes():
    read_fd, write_fd = os.pipe()
    os.write(write_fd, b"10.0.0.1\n10.0.0.2-3\n")
    os.close(write_fd)

    async def scenario():
        stream = TargetStream()
        with os.fdopen(read_fd, 'rb') as pipe:
            source = await PipeByteSource.connect(pipe, stream)
            stream.attach(source)
            targets = await drain(stream)
            source.close()
        return targets

    assert asyncio.run(scenario()) == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]


def test_dev_null_is_read_as_an_empty_file():
    async def scenario():
        stream = TargetStream()
        source = await open_byte_source(os.devnull, stream)
        assert isinstance(source, FileByteSource)
        targets = await asyncio.wait_for(drain(stream), 5)
        await source.wait_closed()
        return targets, stream.error

    assert asyncio.run(scenario()) == ([], None)


def test_refused_pipe_ends_the_stream_with_its_error(monkeypatch):
    read_fd, write_fd = os.pipe()
    os.close(write_fd)
    pipe = os.fdopen(read_fd, 'rb')
    monkeypatch.setattr("sys.stdin", pipe)

    async def scenario():
        async def refuse(protocol_factory, pipe):
            raise PermissionError(1, "Operation not permitted")

        monkeypatch.setattr(asyncio.get_running_loop(), "connect_read_pipe", refuse)
        stream = TargetStream()
        source = await open_byte_source('-', stream)
        return source, await asyncio.wait_for(stream.next_target(), 5), stream.error

    source, target, error = asyncio.run(scenario())
    assert source is None
    assert target is None
    assert isinstance(error, PermissionError)
    assert pipe.closed
