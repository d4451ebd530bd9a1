"""Verified archive downloads, split into parallel byte ranges when possible."""

from __future__ import annotations

import math
import os
import re
import shutil
import threading
import time
import uuid
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path

import httpx

from pour.core.checksum import calculate_sha256, normalise_digest
from pour.core.config import PourConfig
from pour.core.errors import (
    ChecksumMismatch,
    NetworkError,
    NotFound,
    OperationCancelled,
    PourError,
    wrap_os_error,
)
from pour.core.events import EventSink, FetchEmitter
from pour.core.logging import get_logger

log = get_logger(__name__)

READ_SIZE = 64 * 1024
CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


@dataclass
class Probe:
    """What the server told us about the archive before the transfer."""

    headers: dict[str, str]
    total_bytes: int | None
    accepts_ranges: bool


def split_ranges(total: int, max_streams: int, chunk_size: int) -> list[tuple[int, int]]:
    """Split [0, total) into contiguous inclusive byte ranges.

    Never more ranges than max_streams, nor more than ceil(total / chunk_size).
    """
    count = max(1, min(max_streams, math.ceil(total / chunk_size)))
    base, extra = divmod(total, count)

    ranges = []
    start = 0
    for i in range(count):
        length = base + (1 if i < extra else 0)
        ranges.append((start, start + length - 1))
        start += length
    return ranges


class ArchiveFetcher:
    """Downloads archives into place only once their digest checks out.

    The fetcher never retries. Wrap calls in retry_on_transient if you want
    that; every failure leaves the destination absent and the tmp dir clean,
    so a repeated call is always safe.
    """

    def __init__(self, config: PourConfig, client: httpx.Client | None = None):
        self.config = config
        self._owns_client = client is None
        self.client = client or httpx.Client(
            follow_redirects=True,
            timeout=config.timeout,
        )

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def fetch(
        self,
        url: str,
        destination: Path,
        expected_sha256: str | None = None,
        sink: EventSink | None = None,
        max_streams: int | None = None,
        chunk_size: int | None = None,
        cancel: threading.Event | None = None,
    ) -> Path:
        """Fetch url into destination and return the destination path.

        Raises NetworkError, NotFound, ChecksumMismatch or OperationCancelled.
        """
        destination = Path(destination)
        max_streams = max(1, max_streams or self.config.max_streams)
        chunk_size = max(1, chunk_size or self.config.chunk_size)

        emitter = FetchEmitter(url, sink)
        token = uuid.uuid4().hex[:12]
        partial = destination.parent / f".{destination.name}.{token}.part"
        segment_dir = self.config.tmp_dir / f"{destination.name}.{token}.segments"

        started = time.monotonic()
        log.info("fetch_start", url=url, path=str(destination))

        completed = False
        try:
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                self._download(
                    url, partial, segment_dir, emitter, max_streams, chunk_size, cancel
                )
                actual = calculate_sha256(partial)
                if expected_sha256:
                    expected = normalise_digest(expected_sha256)
                    if actual != expected:
                        raise ChecksumMismatch(expected, actual, context={"url": url})
                os.replace(partial, destination)
            except httpx.HTTPError as e:
                raise NetworkError(url=url, error=str(e)) from e
            except OSError as e:
                raise wrap_os_error(e, destination) from e
            completed = True
        except PourError as e:
            emitter.fail(e)
            log.warning("fetch_failed", url=url, error=str(e))
            raise
        except Exception as e:
            error = NetworkError(
                f"Unexpected failure while fetching {url}", url=url, error=repr(e)
            )
            emitter.fail(error)
            log.error("fetch_failed", url=url, error=repr(e))
            raise error from e
        finally:
            if not completed:
                partial.unlink(missing_ok=True)
            shutil.rmtree(segment_dir, ignore_errors=True)

        emitter.complete(destination)
        log.info(
            "fetch_complete",
            url=url,
            path=str(destination),
            bytes=emitter.bytes_done,
            sha256=actual,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return destination

    def _download(
        self,
        url: str,
        partial: Path,
        segment_dir: Path,
        emitter: FetchEmitter,
        max_streams: int,
        chunk_size: int,
        cancel: threading.Event | None,
    ) -> None:
        check_cancelled(cancel)
        probe = self.probe(url)
        emitter.start(probe.total_bytes)

        if probe.accepts_ranges and probe.total_bytes:
            ranges = split_ranges(probe.total_bytes, max_streams, chunk_size)
            log.debug("fetch_ranged", url=url, ranges=len(ranges), size=probe.total_bytes)
            segments = self._fetch_ranges(
                url, probe.headers, ranges, segment_dir, emitter, max_streams, cancel
            )
            with open(partial, "wb") as out:
                for segment in segments:
                    with open(segment, "rb") as f:
                        shutil.copyfileobj(f, out)
        else:
            self._fetch_stream(url, probe.headers, partial, emitter, cancel)

    def probe(self, url: str) -> Probe:
        """HEAD the source, authenticating anonymously if the registry asks."""
        headers: dict[str, str] = {}
        response = self.client.head(url, headers=headers)

        if response.status_code == 401:
            token = self._anonymous_token(response.headers.get("www-authenticate", ""), url)
            if token:
                headers["Authorization"] = f"Bearer {token}"
                response = self.client.head(url, headers=headers)

        if response.status_code == 404:
            raise NotFound(url=url)
        if response.status_code == 405:
            # Some servers refuse HEAD; a plain GET still works
            return Probe(headers, None, False)
        if response.status_code >= 400:
            raise NetworkError(
                f"Failed to probe {url}: HTTP {response.status_code}",
                url=url,
                status=response.status_code,
            )

        length = response.headers.get("content-length", "")
        total = int(length) if length.isdigit() else None
        accepts_ranges = response.headers.get("accept-ranges", "").lower() == "bytes"
        return Probe(headers, total, accepts_ranges)

    def _anonymous_token(self, challenge: str, url: str) -> str | None:
        """Request an anonymous pull token for a 'Bearer realm=...' challenge."""
        scheme, _, params = challenge.partition(" ")
        if scheme.lower() != "bearer":
            return None

        fields = dict(CHALLENGE_PARAM.findall(params))
        realm = fields.pop("realm", None)
        if not realm:
            return None

        response = self.client.get(realm, params=fields)
        if response.status_code != 200:
            raise NetworkError(
                f"Token request for {url} was refused",
                url=realm,
                status=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise NetworkError(
                f"Token response for {url} is not JSON", url=realm, error=str(e)
            ) from e
        if not isinstance(data, dict):
            raise NetworkError(f"Token response for {url} is not an object", url=realm)
        return data.get("token") or data.get("access_token")

    def _fetch_stream(
        self,
        url: str,
        headers: dict[str, str],
        partial: Path,
        emitter: FetchEmitter,
        cancel: threading.Event | None,
    ) -> None:
        with self.client.stream("GET", url, headers=headers) as response:
            if response.status_code == 404:
                raise NotFound(url=url)
            if response.status_code != 200:
                raise NetworkError(
                    f"Failed to download {url}: HTTP {response.status_code}",
                    url=url,
                    status=response.status_code,
                )

            with open(partial, "wb") as f:
                for chunk in response.iter_bytes(chunk_size=READ_SIZE):
                    check_cancelled(cancel)
                    f.write(chunk)
                    emitter.advance(len(chunk))

    def _fetch_ranges(
        self,
        url: str,
        headers: dict[str, str],
        ranges: list[tuple[int, int]],
        segment_dir: Path,
        emitter: FetchEmitter,
        max_streams: int,
        cancel: threading.Event | None,
    ) -> list[Path]:
        segment_dir.mkdir(parents=True, exist_ok=True)
        segments = [segment_dir / f"{i:04d}.part" for i in range(len(ranges))]
        abort = threading.Event()

        error = None
        with ThreadPoolExecutor(max_workers=max_streams, thread_name_prefix="pour-fetch") as pool:
            futures = [
                pool.submit(
                    self._fetch_range, url, headers, start, end, segment, emitter, cancel, abort
                )
                for (start, end), segment in zip(ranges, segments)
            ]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    error = future.exception()
                    break
            if error is not None:
                abort.set()
                for future in pending:
                    future.cancel()

        if error is not None:
            raise error
        return segments

    def _fetch_range(
        self,
        url: str,
        headers: dict[str, str],
        start: int,
        end: int,
        segment: Path,
        emitter: FetchEmitter,
        cancel: threading.Event | None,
        abort: threading.Event,
    ) -> None:
        expected = end - start + 1
        written = 0
        request_headers = {**headers, "Range": f"bytes={start}-{end}"}

        with self.client.stream("GET", url, headers=request_headers) as response:
            if response.status_code != 206:
                raise NetworkError(
                    f"Range request for {url} returned HTTP {response.status_code}",
                    url=url,
                    status=response.status_code,
                )

            with open(segment, "wb") as f:
                for chunk in response.iter_bytes(chunk_size=READ_SIZE):
                    if abort.is_set():
                        return
                    check_cancelled(cancel)
                    f.write(chunk)
                    written += len(chunk)
                    emitter.advance(len(chunk))

        if written != expected:
            raise NetworkError(
                f"Range {start}-{end} of {url} returned {written} of {expected} bytes",
                url=url,
            )


def check_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("fetch")
