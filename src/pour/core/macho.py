"""Minimal Mach-O load command reader and rewriter.

Only the pieces needed to relocate bottles are handled: the install name,
the dylib dependency table and LC_RPATH entries, for thin and universal
files in either byte order. Rewritten commands must fit in the padding
between the load commands and the first section; nothing is moved.
"""

from __future__ import annotations

import stat
import struct
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

LC_REQ_DYLD = 0x80000000

LC_SEGMENT = 0x1
LC_LOAD_DYLIB = 0xC
LC_ID_DYLIB = 0xD
LC_SEGMENT_64 = 0x19
LC_LOAD_WEAK_DYLIB = 0x18 | LC_REQ_DYLD
LC_RPATH = 0x1C | LC_REQ_DYLD
LC_REEXPORT_DYLIB = 0x1F | LC_REQ_DYLD
LC_LAZY_LOAD_DYLIB = 0x20
LC_LOAD_UPWARD_DYLIB = 0x23 | LC_REQ_DYLD

DEPENDENCY_COMMANDS = {
    LC_LOAD_DYLIB,
    LC_LOAD_WEAK_DYLIB,
    LC_REEXPORT_DYLIB,
    LC_LAZY_LOAD_DYLIB,
    LC_LOAD_UPWARD_DYLIB,
}
PATH_COMMANDS = DEPENDENCY_COMMANDS | {LC_ID_DYLIB, LC_RPATH}

# Section types that occupy no file space
ZEROFILL_TYPES = {0x1, 0xC, 0x12}

THIN_MAGICS = {
    b"\xfe\xed\xfa\xce": (">", False),
    b"\xce\xfa\xed\xfe": ("<", False),
    b"\xfe\xed\xfa\xcf": (">", True),
    b"\xcf\xfa\xed\xfe": ("<", True),
}
FAT_MAGIC = b"\xca\xfe\xba\xbe"
FAT_MAGIC_64 = b"\xca\xfe\xba\xbf"

# Java class files share the fat magic; real universal files have few slices
MAX_FAT_ARCHES = 30


class MachOError(Exception):
    """The file cannot be read or rewritten as Mach-O."""

    pass


@dataclass
class LinkInfo:
    """Path-bearing load commands of a Mach-O file (all slices merged)."""

    install_name: str | None = None
    dependencies: list[str] = field(default_factory=list)
    rpaths: list[str] = field(default_factory=list)

    def all_paths(self) -> list[str]:
        paths = list(self.dependencies) + list(self.rpaths)
        if self.install_name:
            paths.insert(0, self.install_name)
        return paths

    def contains(self, token: str) -> bool:
        return any(token in p for p in self.all_paths())


@dataclass
class Slice:
    offset: int
    endian: str
    is_64: bool
    ncmds: int
    sizeofcmds: int
    size: int

    @property
    def header_size(self) -> int:
        return 32 if self.is_64 else 28

    @property
    def alignment(self) -> int:
        return 8 if self.is_64 else 4


def is_macho(path: Path) -> bool:
    """Check the magic number of a file for thin or universal Mach-O."""
    try:
        with open(path, "rb") as f:
            header = f.read(8)
    except OSError:
        return False

    if header[:4] in THIN_MAGICS:
        return True
    if header[:4] in (FAT_MAGIC, FAT_MAGIC_64) and len(header) == 8:
        nfat = struct.unpack(">I", header[4:8])[0]
        return 0 < nfat < MAX_FAT_ARCHES
    return False


def parse_slices(data: bytes | bytearray) -> list[Slice]:
    """Locate every Mach-O image in a thin or universal file."""
    magic = bytes(data[:4])

    if magic in (FAT_MAGIC, FAT_MAGIC_64):
        if len(data) < 8:
            raise MachOError("truncated universal header")
        nfat = struct.unpack_from(">I", data, 4)[0]
        if not 0 < nfat < MAX_FAT_ARCHES:
            raise MachOError("not a universal Mach-O file")

        is_64 = magic == FAT_MAGIC_64
        entry_size = 32 if is_64 else 20
        slices = []
        for i in range(nfat):
            pos = 8 + i * entry_size
            if pos + entry_size > len(data):
                raise MachOError("truncated universal header")
            if is_64:
                _, _, offset, size, _, _ = struct.unpack_from(">iiQQII", data, pos)
            else:
                _, _, offset, size, _ = struct.unpack_from(">iiIII", data, pos)
            slices.append(_thin_slice(data, offset, size))
        return slices

    return [_thin_slice(data, 0, len(data))]


def _thin_slice(data: bytes | bytearray, offset: int, size: int) -> Slice:
    magic = bytes(data[offset:offset + 4])
    if magic not in THIN_MAGICS:
        raise MachOError(f"no Mach-O header at offset {offset}")
    endian, is_64 = THIN_MAGICS[magic]

    header_size = 32 if is_64 else 28
    if offset + header_size > len(data):
        raise MachOError("truncated Mach-O header")

    ncmds, sizeofcmds = struct.unpack_from(endian + "II", data, offset + 16)
    if offset + header_size + sizeofcmds > len(data):
        raise MachOError("load commands run past end of file")
    return Slice(offset, endian, is_64, ncmds, sizeofcmds, size)


def _commands(data: bytes | bytearray, s: Slice):
    """Yield (cmd, absolute position, cmdsize) for each load command."""
    pos = s.offset + s.header_size
    end = pos + s.sizeofcmds
    for _ in range(s.ncmds):
        if pos + 8 > end:
            raise MachOError("truncated load commands")
        cmd, size = struct.unpack_from(s.endian + "II", data, pos)
        if size < 8 or pos + size > end:
            raise MachOError(f"malformed load command 0x{cmd:x}")
        yield cmd, pos, size
        pos += size


def _command_string(data: bytes | bytearray, s: Slice, pos: int, size: int) -> tuple[int, bytes]:
    """The lc_str of a dylib or rpath command, with its offset in the command."""
    if size < 12:
        raise MachOError("path command too small")
    (str_offset,) = struct.unpack_from(s.endian + "I", data, pos + 8)
    if not 12 <= str_offset < size:
        raise MachOError("path string outside its load command")
    raw = bytes(data[pos + str_offset:pos + size])
    return str_offset, raw.split(b"\0", 1)[0]


def _first_content_offset(data: bytes | bytearray, s: Slice, commands: list) -> int:
    """Slice-relative offset of the first byte that follows the header padding."""
    low = s.size
    for cmd, pos, size in commands:
        if cmd == LC_SEGMENT_64:
            if size < 72:
                raise MachOError("truncated LC_SEGMENT_64 command")
            fileoff, filesize = struct.unpack_from(s.endian + "QQ", data, pos + 40)
            (nsects,) = struct.unpack_from(s.endian + "I", data, pos + 64)
            first, sect_size, off_field, flags_field = pos + 72, 80, 48, 64
        elif cmd == LC_SEGMENT:
            if size < 56:
                raise MachOError("truncated LC_SEGMENT command")
            fileoff, filesize = struct.unpack_from(s.endian + "II", data, pos + 32)
            (nsects,) = struct.unpack_from(s.endian + "I", data, pos + 48)
            first, sect_size, off_field, flags_field = pos + 56, 68, 40, 56
        else:
            continue

        if first + nsects * sect_size > pos + size:
            raise MachOError("segment sections run past their load command")

        if nsects == 0 and filesize > 0 and fileoff > 0:
            low = min(low, fileoff)

        for i in range(nsects):
            sect = first + i * sect_size
            (offset,) = struct.unpack_from(s.endian + "I", data, sect + off_field)
            (flags,) = struct.unpack_from(s.endian + "I", data, sect + flags_field)
            if offset == 0 or (flags & 0xFF) in ZEROFILL_TYPES:
                continue
            low = min(low, offset)
    return low


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _add_unique(items: list[str], value: str) -> None:
    if value not in items:
        items.append(value)


def read_link_info(path: Path) -> LinkInfo:
    """Read install name, dependencies and rpaths from a Mach-O file."""
    data = Path(path).read_bytes()
    info = LinkInfo()

    for s in parse_slices(data):
        for cmd, pos, size in _commands(data, s):
            if cmd not in PATH_COMMANDS:
                continue
            _, raw = _command_string(data, s, pos, size)
            value = _decode(raw)
            if cmd == LC_ID_DYLIB:
                info.install_name = info.install_name or value
            elif cmd == LC_RPATH:
                _add_unique(info.rpaths, value)
            else:
                _add_unique(info.dependencies, value)

    return info


def _rewrite_slice(data: bytearray, s: Slice, replacements: dict[bytes, bytes]) -> int:
    commands = list(_commands(data, s))
    rebuilt = bytearray()
    changed = 0

    for cmd, pos, size in commands:
        raw = bytes(data[pos:pos + size])
        if cmd in PATH_COMMANDS:
            str_offset, value = _command_string(data, s, pos, size)
            new_value = value
            for token, real in replacements.items():
                new_value = new_value.replace(token, real)

            if new_value != value:
                body = bytearray(raw[:str_offset] + new_value + b"\0")
                padding = -len(body) % s.alignment
                body += bytes(padding)
                struct.pack_into(s.endian + "I", body, 4, len(body))
                raw = bytes(body)
                changed += 1
        rebuilt += raw

    if not changed:
        return 0

    limit = _first_content_offset(data, s, commands)
    available = limit - s.header_size
    if len(rebuilt) > available:
        raise MachOError(
            f"not enough header padding: load commands need {len(rebuilt)} bytes, "
            f"{available} available"
        )

    start = s.offset + s.header_size
    old_end = start + s.sizeofcmds
    new_end = start + len(rebuilt)
    data[start:new_end] = rebuilt
    if new_end < old_end:
        data[new_end:old_end] = bytes(old_end - new_end)
    struct.pack_into(s.endian + "I", data, s.offset + 20, len(rebuilt))
    return changed


@contextmanager
def writable(path: Path):
    """Temporarily add owner write permission to a read-only file."""
    mode = path.stat().st_mode
    read_only = not mode & stat.S_IWUSR
    if read_only:
        path.chmod(stat.S_IMODE(mode) | stat.S_IWUSR)
    try:
        yield
    finally:
        if read_only:
            path.chmod(stat.S_IMODE(mode))


class MachOEditor:
    """Default binary editor: rewrites placeholder prefixes in load commands."""

    def read_link_info(self, path: Path) -> LinkInfo:
        return read_link_info(path)

    def rewrite(self, path: Path, replacements: dict[str, str]) -> int:
        """Apply token replacements to every path command.

        Returns the number of load commands changed. The file is written
        only when every slice could be rewritten.
        """
        path = Path(path)
        data = bytearray(path.read_bytes())
        tokens = {k.encode(): v.encode() for k, v in replacements.items()}

        changed = 0
        for s in parse_slices(data):
            changed += _rewrite_slice(data, s, tokens)

        if changed:
            with writable(path):
                with open(path, "r+b") as f:
                    f.write(data)
        return changed
