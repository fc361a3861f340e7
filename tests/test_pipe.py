"""Tests for the in-memory byte pipe."""

import threading
import time

import pytest
import yaml

from keel.pipe import BytePipe, PipeClosedError, PipeTimeoutError


def _start(target, *args):
    result = {}

    def run():
        try:
            result["value"] = target(*args)
        except BaseException as e:
            result["error"] = e

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread, result


class TestBytePipe:

    def test_transfers_bytes(self):
        pipe = BytePipe(timeout=5)

        def produce():
            pipe.write(b"hello ")
            pipe.write(b"world")
            pipe.close_write()

        thread, _ = _start(produce)
        assert pipe.read() == b"hello world"
        thread.join(5)

    def test_read_respects_size(self):
        pipe = BytePipe(timeout=5)
        thread, result = _start(pipe.write, b"abcdef")
        assert pipe.read(4) == b"abcd"
        assert pipe.read(4) == b"ef"
        thread.join(5)
        assert result["value"] == 6

    def test_write_blocks_until_consumed(self):
        pipe = BytePipe(timeout=5)
        thread, result = _start(pipe.write, b"data")
        time.sleep(0.1)
        assert thread.is_alive()
        assert pipe.read(10) == b"data"
        thread.join(5)
        assert not thread.is_alive()

    def test_eof_after_close_write(self):
        pipe = BytePipe()
        pipe.close_write()
        assert pipe.read(10) == b""
        assert pipe.read() == b""

    def test_write_after_close_write(self):
        pipe = BytePipe()
        pipe.close_write()
        with pytest.raises(PipeClosedError):
            pipe.write(b"x")

    def test_close_read_unblocks_writer(self):
        pipe = BytePipe(timeout=5)
        thread, result = _start(pipe.write, b"never read")
        time.sleep(0.05)
        pipe.close_read()
        thread.join(5)
        assert isinstance(result["error"], PipeClosedError)

    def test_read_after_close_read(self):
        pipe = BytePipe()
        pipe.close_read()
        with pytest.raises(PipeClosedError):
            pipe.read(1)

    def test_empty_write_is_noop(self):
        pipe = BytePipe()
        assert pipe.write(b"") == 0

    def test_reader_times_out(self):
        pipe = BytePipe(timeout=0.1)
        with pytest.raises(PipeTimeoutError):
            pipe.read(1)

    def test_writer_times_out(self):
        pipe = BytePipe(timeout=0.1)
        with pytest.raises(PipeTimeoutError):
            pipe.write(b"nobody reads this")

    def test_yaml_reads_from_pipe(self):
        pipe = BytePipe(timeout=5)

        def produce():
            for line in (b"image: alpine\n", b"command:\n", b"  - make\n"):
                pipe.write(line)
            pipe.close_write()

        thread, _ = _start(produce)
        assert yaml.safe_load(pipe) == {"image": "alpine", "command": ["make"]}
        thread.join(5)
