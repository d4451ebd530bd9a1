"""Error taxonomy for the installation engine."""

from __future__ import annotations

import errno
import functools
import time
from pathlib import Path
from typing import Any, Callable, Self, TypeVar

from pour.core.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

# Exit Codes
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1
EXIT_SYSTEM_ERROR = 2
EXIT_TRANSIENT_ERROR = 3


class PourError(Exception):
    """Base exception class with context propagation.

    Context is a dictionary of structured values (paths, names, digests)
    that lets callers render a precise message without inspecting internals.

    Example:
        raise PourError("Linking failed", context={"package": "wget"})

        # Or with context propagation
        try:
            ...
        except PourError as e:
            raise e.with_context(operation="upgrade")
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def with_context(self, **new_context: Any) -> Self:
        """Merge additional context into this exception and return it."""
        self.context.update(new_context)
        return self

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{context_str}]"
        return self.message


class TransientError(PourError):
    """Errors that may succeed when the operation is repeated.

    The engine never retries these itself; retry policy belongs to the caller.
    """


class UserError(PourError):
    """Errors caused by user input or by the requested state not existing."""


class HostError(PourError):
    """Errors caused by the host environment (disk, permissions, tools)."""


## Specific Exceptions ##


class NetworkError(TransientError):
    """Transport-level failure while fetching."""

    def __init__(
        self,
        message: str | None = None,
        url: str | None = None,
        status: int | None = None,
        error: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        if url:
            ctx["url"] = url
        if status is not None:
            ctx["status"] = status
        if error:
            ctx["error"] = error

        if message is None:
            message = f"Network error while fetching {url or 'archive'}"

        super().__init__(message, context=ctx)
        self.url = url
        self.status = status


class ChecksumMismatch(HostError):
    """Downloaded content does not match the expected digest."""

    def __init__(self, expected: str, actual: str, context: dict[str, Any] | None = None) -> None:
        ctx = context or {}
        ctx["expected"] = expected
        ctx["actual"] = actual
        super().__init__("Checksum mismatch", context=ctx)
        self.expected = expected
        self.actual = actual


class NotFound(UserError):
    """A remote source or local path does not exist."""

    def __init__(
        self,
        message: str | None = None,
        path: str | None = None,
        url: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        if path:
            ctx["path"] = path
        if url:
            ctx["url"] = url

        if message is None:
            message = f"Not found: {path or url or 'unknown'}"

        super().__init__(message, context=ctx)
        self.path = path
        self.url = url


class AlreadyInstalled(UserError):
    """The versioned directory for (name, version) already exists."""

    def __init__(self, name: str, version: str, context: dict[str, Any] | None = None) -> None:
        ctx = context or {}
        ctx["package"] = name
        ctx["version"] = version
        super().__init__(f"{name} {version} is already installed", context=ctx)
        self.name = name
        self.version = version


class FormulaNotFound(UserError):
    """No installed version matches the requested package."""

    def __init__(
        self, name: str, version: str | None = None, context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        ctx["package"] = name
        if version:
            ctx["version"] = version
        target = f"{name} {version}" if version else name
        super().__init__(f"{target} is not installed", context=ctx)
        self.name = name
        self.version = version


class ExtractionFailed(HostError):
    """The archive is malformed or the disk failed mid-extraction."""

    def __init__(
        self, reason: str, archive: str | None = None, context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        ctx["reason"] = reason
        if archive:
            ctx["archive"] = archive
        super().__init__(f"Extraction failed: {reason}", context=ctx)
        self.reason = reason


class SymlinkFailed(HostError):
    """A link in the symlink farm could not be created or swapped."""

    def __init__(
        self,
        source: str,
        target: str,
        error: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        ctx["source"] = source
        ctx["target"] = target
        if error:
            ctx["error"] = error
        super().__init__(f"Failed to link {source} -> {target}", context=ctx)
        self.source = source
        self.target = target


class InstallationFailed(HostError):
    """Terminal installation failure not covered by a more specific kind."""

    def __init__(self, name: str, reason: str, context: dict[str, Any] | None = None) -> None:
        ctx = context or {}
        ctx["package"] = name
        ctx["reason"] = reason
        super().__init__(f"Installation of {name} failed: {reason}", context=ctx)
        self.name = name
        self.reason = reason


class InsufficientPermissions(HostError):
    """The process may not read or write a required path."""

    def __init__(self, path: str, context: dict[str, Any] | None = None) -> None:
        ctx = context or {}
        ctx["path"] = path
        super().__init__(f"Insufficient permissions for {path}", context=ctx)
        self.path = path


class IOFailure(HostError):
    """Any other filesystem failure, surfaced with the OS message."""

    def __init__(
        self, message: str, path: str | None = None, context: dict[str, Any] | None = None
    ) -> None:
        ctx = context or {}
        if path:
            ctx["path"] = path
        super().__init__(message, context=ctx)
        self.path = path


class OperationCancelled(UserError):
    """A cooperative cancellation request stopped the operation."""

    def __init__(self, operation: str, context: dict[str, Any] | None = None) -> None:
        ctx = context or {}
        ctx["operation"] = operation
        super().__init__(f"{operation} cancelled", context=ctx)


class InvalidSpecification(UserError):
    """A name[@version] token could not be parsed into a valid package."""

    def __init__(self, spec: str, context: dict[str, Any] | None = None) -> None:
        ctx = context or {}
        ctx["spec"] = spec
        super().__init__(f"Invalid package specification '{spec}'", context=ctx)


class CacheError(HostError):
    """Metadata cache read or write failure."""

    def __init__(
        self,
        message: str | None = None,
        key: str | None = None,
        path: str | None = None,
        operation: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        ctx = context or {}
        if key:
            ctx["key"] = key
        if path:
            ctx["path"] = path
        if operation:
            ctx["operation"] = operation

        if message is None:
            message = f"Cache {operation} operation failed" if operation else "Cache operation failed"

        super().__init__(message, context=ctx)


def wrap_os_error(exc: OSError, path: Path | str | None = None) -> PourError:
    """Translate an OSError into the matching PourError, keeping its message."""
    where = str(path or exc.filename or "")
    if isinstance(exc, PermissionError) or exc.errno in (errno.EACCES, errno.EPERM):
        err: PourError = InsufficientPermissions(where)
    elif isinstance(exc, FileNotFoundError):
        err = NotFound(path=where)
    else:
        err = IOFailure(exc.strerror or str(exc), path=where)
    err.__cause__ = exc
    return err.with_context(error=str(exc))


def retry_on_transient(
    max_retries: int = 3, base_delay: float = 1.0, backoff: float = 2.0
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry a function on transient errors with exponential backoff.

    This is caller-side policy: the fetcher and installer never retry on
    their own, the CLI wraps its fetch calls with this decorator.

    Args:
        max_retries: Maximum number of attempts before giving up.
        base_delay: Initial delay between attempts in seconds.
        backoff: Multiplier applied to the delay after each attempt.

    Example:
        @retry_on_transient(max_retries=5, base_delay=2.0)
        def fetch_bottle():
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(1, max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except TransientError as e:
                    if attempt == max_retries:
                        log.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempts=max_retries,
                            error=str(e),
                        )
                        raise

                    delay = base_delay * (backoff ** (attempt - 1))
                    log.warning(
                        "retry_attempt",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=max_retries,
                        delay_seconds=delay,
                        error=str(e),
                    )
                    time.sleep(delay)
            raise AssertionError("unreachable")

        return wrapper

    return decorator


# CLI Error Message Templates

ERROR_TEMPLATES: dict[type, str] = {
    AlreadyInstalled: (
        "{package} {version} is already installed\n"
        "   Use 'pour switch {package} {version}' to make it the default"
    ),
    FormulaNotFound: "Not installed: {message}",
    ChecksumMismatch: (
        "Checksum mismatch\n"
        "   Expected: {expected}\n"
        "   Got:      {actual}"
    ),
    NetworkError: (
        "Network error: {message}\n"
        "   This may resolve itself - try again in a moment"
    ),
    ExtractionFailed: "Could not extract archive: {reason}",
    SymlinkFailed: "Could not link {source} -> {target}",
    InsufficientPermissions: (
        "Permission denied: {path}\n"
        "   Check ownership of your pour home directory"
    ),
    CacheError: (
        "Cache error: {message}\n"
        "   Fix: remove the cache directory and retry"
    ),
    TransientError: "Temporary failure: {message}",
    UserError: "{message}",
    HostError: (
        "System error: {message}\n"
        "   Please check your system configuration and try again"
    ),
    PourError: "{message}",
}


def format_error_message(error: PourError) -> str:
    """Format an error for CLI display based on its type."""
    template = None
    for cls in type(error).__mro__:
        if cls in ERROR_TEMPLATES:
            template = ERROR_TEMPLATES[cls]
            break
    template = template or ERROR_TEMPLATES[PourError]
    try:
        return template.format(message=error.message, **error.context)
    except KeyError:
        return error.message


def exit_code_for(error: PourError) -> int:
    """Map an error category to a process exit code."""
    if isinstance(error, TransientError):
        return EXIT_TRANSIENT_ERROR
    if isinstance(error, UserError):
        return EXIT_USER_ERROR
    return EXIT_SYSTEM_ERROR
