"""Progress and lifecycle events emitted by the fetcher and installer."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol


@dataclass(frozen=True)
class FetchStarted:
    url: str
    total_bytes: int | None


@dataclass(frozen=True)
class FetchProgress:
    bytes_done: int
    total_bytes: int | None


@dataclass(frozen=True)
class FetchCompleted:
    url: str
    path: Path


@dataclass(frozen=True)
class FetchFailed:
    url: str
    error: Exception


@dataclass(frozen=True)
class InstallStarted:
    name: str
    version: str


@dataclass(frozen=True)
class ExtractionStarted:
    total_files: int


@dataclass(frozen=True)
class ExtractionUpdated:
    files_extracted: int
    total_files: int


@dataclass(frozen=True)
class RepairStarted:
    total_files: int


@dataclass(frozen=True)
class RepairUpdated:
    processed: int
    total_files: int


@dataclass(frozen=True)
class LinkingStarted:
    total_links: int


@dataclass(frozen=True)
class LinkingUpdated:
    linked: int
    total_links: int


@dataclass(frozen=True)
class InstallCompleted:
    name: str
    version: str
    report: Any = None  # RepairReport


@dataclass(frozen=True)
class InstallFailed:
    name: str
    version: str
    error: Exception


class EventSink(Protocol):
    def emit(self, event: object) -> None: ...


class NullSink:
    """Discards every event."""

    def emit(self, event: object) -> None:
        pass


class RecordingSink:
    """Collects events in order; thread-safe."""

    def __init__(self) -> None:
        self.events: list[object] = []
        self._lock = threading.Lock()

    def emit(self, event: object) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, kind: type) -> list:
        with self._lock:
            return [e for e in self.events if isinstance(e, kind)]


class FetchEmitter:
    """Serialises events for a single fetch.

    Start is emitted once, progress never goes backwards, and exactly one
    terminal event is delivered. Anything after the terminal event is dropped.
    """

    def __init__(self, url: str, sink: EventSink | None) -> None:
        self.url = url
        self.sink = sink or NullSink()
        self.total: int | None = None
        self._done_bytes = 0
        self._started = False
        self._finished = False
        self._lock = threading.Lock()

    def start(self, total_bytes: int | None) -> None:
        with self._lock:
            if self._started or self._finished:
                return
            self._started = True
            self.total = total_bytes
            self.sink.emit(FetchStarted(self.url, total_bytes))

    def advance(self, nbytes: int) -> None:
        with self._lock:
            if not self._started or self._finished or nbytes <= 0:
                return
            self._done_bytes += nbytes
            self.sink.emit(FetchProgress(self._done_bytes, self.total))

    def complete(self, path: Path) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
            self.sink.emit(FetchCompleted(self.url, path))

    def fail(self, error: Exception) -> None:
        with self._lock:
            if self._finished:
                return
            if not self._started:
                self._started = True
                self.sink.emit(FetchStarted(self.url, None))
            self._finished = True
            self.sink.emit(FetchFailed(self.url, error))

    @property
    def bytes_done(self) -> int:
        return self._done_bytes
