"""
LogStore - Persist job log output.

A log blob is addressed by id (the job name) and written exactly once:
- place() copies a byte source into the store and returns only at EOF
- read() returns the completed blob; while a placement is still running the
  blob is reported as not found, so readers never see partial output

Placing an id that already exists, or is being placed, raises
AlreadyExistsError. Concurrent placement under one id is not supported.

Storage backends:
- In-memory (for testing)
- File-based (one file per blob, renamed into place on completion)
"""

import io
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO

from keel.errors import AlreadyExistsError, LogNotFoundError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class LogStore(ABC):
    """
    Abstract base class for log storage.
    """

    @abstractmethod
    def place(self, id: str, src: BinaryIO) -> None:
        """
        Place a log in this store.

        Does not return until `src` reaches EOF.

        Raises:
            AlreadyExistsError: If a log with this id exists or is being placed
        """
        pass

    @abstractmethod
    def read(self, id: str) -> BinaryIO:
        """
        Retrieve a log.

        Callers are expected to close the returned reader.

        Raises:
            LogNotFoundError: If no completed log exists under this id,
                including while it is still being written
        """
        pass


class InMemoryLogStore(LogStore):
    """
    In-memory implementation of LogStore for testing.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._logs: dict[str, bytes] = {}
        self._writing: set[str] = set()

    def place(self, id: str, src: BinaryIO) -> None:
        with self._lock:
            if id in self._logs or id in self._writing:
                raise AlreadyExistsError(f"log exists already: {id}")
            self._writing.add(id)

        buffer = io.BytesIO()
        try:
            while True:
                chunk = src.read(CHUNK_SIZE)
                if not chunk:
                    break
                buffer.write(chunk)
        except BaseException:
            with self._lock:
                self._writing.discard(id)
            raise

        with self._lock:
            self._writing.discard(id)
            self._logs[id] = buffer.getvalue()

    def read(self, id: str) -> BinaryIO:
        with self._lock:
            content = self._logs.get(id)
        if content is None:
            raise LogNotFoundError(f"log not found: {id}")
        return io.BytesIO(content)


class FileLogStore(LogStore):
    """
    File-based implementation of LogStore.

    Layout:
        store_dir/
            {id}.log            completed logs
            {id}.log.partial    logs still being placed
    """

    def __init__(self, store_dir: Path | str):
        self._store_dir = Path(store_dir)
        self._store_dir.mkdir(parents=True, exist_ok=True)

    @property
    def store_dir(self) -> Path:
        return self._store_dir

    def _path(self, id: str) -> Path:
        if not id or id in (".", "..") or "/" in id or "\\" in id:
            raise ValueError(f"invalid log id: {id!r}")
        return self._store_dir / f"{id}.log"

    def place(self, id: str, src: BinaryIO) -> None:
        path = self._path(id)
        partial = path.with_name(path.name + ".partial")
        if path.exists():
            raise AlreadyExistsError(f"log exists already: {id}")

        try:
            f = open(partial, "xb")
        except FileExistsError as e:
            raise AlreadyExistsError(f"log is being placed already: {id}") from e

        try:
            with f:
                while True:
                    chunk = src.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    f.write(chunk)
            os.replace(partial, path)
        except BaseException:
            if partial.exists():
                partial.unlink()
            raise

        logger.debug(f"Placed log {id} at {path}")

    def read(self, id: str) -> BinaryIO:
        path = self._path(id)
        try:
            return open(path, "rb")
        except FileNotFoundError as e:
            raise LogNotFoundError(f"log not found: {id}") from e
