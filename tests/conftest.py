"""
Shared test fixtures and configuration.
"""

import io
import os
import struct
import tarfile
import tempfile
from pathlib import Path

# Keep log files out of the real home before pour is imported
os.environ["POUR_HOME"] = tempfile.mkdtemp(prefix="pour-test-home-")

import pytest  # noqa: E402

from pour.core.config import PourConfig  # noqa: E402
from pour.core.platform import PlatformInfo  # noqa: E402
from pour.core.repair import SigningError  # noqa: E402

SEQUOIA_ARM = PlatformInfo(os="darwin", arch="arm64", os_version=15.0)

LC_SEGMENT = 0x1
LC_SEGMENT_64 = 0x19
LC_LOAD_DYLIB = 0xC
LC_ID_DYLIB = 0xD
LC_RPATH = 0x8000001C

SCRIPT = b"#!/bin/sh\necho hello\n"


@pytest.fixture
def config(tmp_path: Path) -> PourConfig:
    """A global root under tmp_path with a fixed macOS arm64 target."""
    cfg = PourConfig.at(tmp_path / "home", target=SEQUOIA_ARM, system_path=[])
    cfg.ensure_dirs()
    return cfg


def write_bottle(
    path: Path,
    name: str,
    version: str,
    files: dict[str, bytes] | None = None,
    prefix: bool = True,
) -> Path:
    """Write a gzipped bottle tarball laid out as <name>/<version>/<file>."""
    if files is None:
        files = {f"bin/{name}": SCRIPT}

    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        if prefix:
            for directory in (name, f"{name}/{version}"):
                info = tarfile.TarInfo(directory)
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
        for rel, data in files.items():
            info = tarfile.TarInfo(f"{name}/{version}/{rel}" if prefix else rel)
            info.size = len(data)
            info.mode = 0o755 if rel.startswith("bin/") else 0o644
            tar.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture
def bottle_factory(tmp_path: Path):
    """Build bottle archives under tmp_path/bottles."""

    def factory(name: str, version: str, files: dict[str, bytes] | None = None, **kwargs) -> Path:
        path = tmp_path / "bottles" / f"{name}--{version}.bottle.tar.gz"
        return write_bottle(path, name, version, files, **kwargs)

    return factory


def _pad(size: int, align: int) -> int:
    return size + (-size % align)


def build_macho(
    install_name: str | None = None,
    dylibs: tuple[str, ...] = (),
    rpaths: tuple[str, ...] = (),
    padding: int = 4096,
    is_64: bool = True,
    endian: str = "<",
) -> bytes:
    """Assemble a minimal thin Mach-O image with one __TEXT section."""
    align = 8 if is_64 else 4

    def dylib_command(cmd: int, name: str) -> bytes:
        size = _pad(24 + len(name) + 1, align)
        return struct.pack(endian + "IIIIII", cmd, size, 24, 2, 0x10000, 0x10000) + name.encode().ljust(
            size - 24, b"\0"
        )

    def rpath_command(path: str) -> bytes:
        size = _pad(12 + len(path) + 1, align)
        return struct.pack(endian + "III", LC_RPATH, size, 12) + path.encode().ljust(size - 12, b"\0")

    commands = []
    if install_name:
        commands.append(dylib_command(LC_ID_DYLIB, install_name))
    commands.extend(dylib_command(LC_LOAD_DYLIB, d) for d in dylibs)
    commands.extend(rpath_command(r) for r in rpaths)

    header_size = 32 if is_64 else 28
    segment_size = 72 + 80 if is_64 else 56 + 68
    sizeofcmds = segment_size + sum(len(c) for c in commands)
    text_offset = header_size + sizeofcmds + padding
    code = b"\x1f\x20\x03\xd5" * 4

    if is_64:
        segment = struct.pack(
            endian + "II16sQQQQiiII",
            LC_SEGMENT_64, segment_size, b"__TEXT",
            0x100000000, 0x4000, 0, text_offset + len(code), 5, 5, 1, 0,
        ) + struct.pack(
            endian + "16s16sQQIIIIIIII",
            b"__text", b"__TEXT", 0x100000000 + text_offset, len(code),
            text_offset, 2, 0, 0, 0x80000400, 0, 0, 0,
        )
        header = struct.pack(
            endian + "IIIIIIII", 0xFEEDFACF, 0x0100000C, 0, 6, len(commands) + 1, sizeofcmds, 0, 0
        )
    else:
        segment = struct.pack(
            endian + "II16sIIIIiiII",
            LC_SEGMENT, segment_size, b"__TEXT",
            0x1000, 0x4000, 0, text_offset + len(code), 5, 5, 1, 0,
        ) + struct.pack(
            endian + "16s16sIIIIIIIII",
            b"__text", b"__TEXT", 0x1000 + text_offset, len(code),
            text_offset, 2, 0, 0, 0x80000400, 0, 0,
        )
        header = struct.pack(
            endian + "IIIIIII", 0xFEEDFACE, 7, 3, 6, len(commands) + 1, sizeofcmds, 0
        )

    body = header + segment + b"".join(commands)
    return body + bytes(text_offset - len(body)) + code


def with_truncated_segment(image: bytes) -> bytes:
    """Append a 16-byte LC_SEGMENT_64 to a little-endian 64-bit image's commands."""
    data = bytearray(image)
    ncmds, sizeofcmds = struct.unpack_from("<II", data, 16)
    struct.pack_into("<II", data, 32 + sizeofcmds, LC_SEGMENT_64, 16)
    struct.pack_into("<II", data, 16, ncmds + 1, sizeofcmds + 16)
    return bytes(data)


def build_fat(*slices: bytes) -> bytes:
    """Wrap thin images in a universal (fat) container."""
    offsets = []
    position = 4096
    for image in slices:
        offsets.append(position)
        position = _pad(position + len(image), 4096)

    header = struct.pack(">II", 0xCAFEBABE, len(slices))
    for image, offset in zip(slices, offsets):
        header += struct.pack(">iiIII", 0x0100000C, 0, offset, len(image), 12)

    data = bytearray(position)
    data[: len(header)] = header
    for image, offset in zip(slices, offsets):
        data[offset : offset + len(image)] = image
    return bytes(data)


@pytest.fixture
def macho_factory():
    return build_macho


class RecordingSigner:
    """Signer that records every file it was asked to sign."""

    def __init__(self):
        self.signed: list[Path] = []

    def sign(self, path: Path) -> None:
        self.signed.append(Path(path))


class FailingSigner:
    def __init__(self, reason: str = "codesign exploded"):
        self.reason = reason

    def sign(self, path: Path) -> None:
        raise SigningError(self.reason)


@pytest.fixture
def signer() -> RecordingSigner:
    return RecordingSigner()
