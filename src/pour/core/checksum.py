"""Checksum verification for downloaded files."""

import hashlib
from pathlib import Path

from pour.core.errors import ChecksumMismatch


def calculate_sha256(file_path: Path) -> str:
    """Calculate SHA256 hash of a file."""
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def normalise_digest(digest: str) -> str:
    """Lower-case a digest and drop an optional 'sha256:' prefix."""
    digest = digest.strip().lower()
    if digest.startswith("sha256:"):
        digest = digest[len("sha256:"):]
    return digest


def verify_sha256(file_path: Path, expected: str) -> str:
    """Verify a file against an expected digest.

    Returns the actual digest. Raises ChecksumMismatch if they differ.
    """
    expected = normalise_digest(expected)
    actual = calculate_sha256(file_path)
    if actual != expected:
        raise ChecksumMismatch(expected, actual, context={"path": str(file_path)})
    return actual
