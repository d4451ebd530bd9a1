"""Tests for bottle extraction."""

import io
import os
import tarfile
import threading

import pytest

from conftest import write_bottle
from pour.core.errors import ExtractionFailed, OperationCancelled
from pour.core.extractor import extract_archive, is_executable, shared_prefix_depth


class TestPrefixDetection:
    def test_bottle_prefix_is_detected(self):
        names = ["wget", "wget/1.25.0", "wget/1.25.0/bin/wget", "wget/1.25.0/share/man/wget.1"]

        assert shared_prefix_depth(names) == 2

    def test_mixed_roots_are_not_stripped(self):
        names = ["wget/1.25.0/bin/wget", "curl/8.0/bin/curl"]

        assert shared_prefix_depth(names) == 0

    def test_flat_archives_are_not_stripped(self):
        assert shared_prefix_depth(["bin/wget", "README"]) == 0
        assert shared_prefix_depth([]) == 0

    def test_stray_top_level_file_disables_stripping(self):
        names = ["wget/1.25.0/bin/wget", "NOTICE"]

        assert shared_prefix_depth(names) == 0


class TestExtractArchive:
    def test_strips_bottle_prefix_and_keeps_modes(self, tmp_path):
        archive = write_bottle(
            tmp_path / "wget.tar.gz",
            "wget",
            "1.25.0",
            files={"bin/wget": b"#!/bin/sh\n", "share/doc/README": b"docs"},
        )
        dest = tmp_path / "out"

        written = extract_archive(archive, dest)

        assert written == 2
        assert (dest / "bin" / "wget").read_bytes() == b"#!/bin/sh\n"
        assert os.access(dest / "bin" / "wget", os.X_OK)
        assert (dest / "share" / "doc" / "README").read_text() == "docs"
        assert not (dest / "wget").exists()

    def test_explicit_strip_of_zero_keeps_layout(self, tmp_path):
        archive = write_bottle(tmp_path / "wget.tar.gz", "wget", "1.25.0")
        dest = tmp_path / "out"

        extract_archive(archive, dest, strip_prefix=0)

        assert (dest / "wget" / "1.25.0" / "bin" / "wget").is_file()

    def test_symlinks_and_hard_links_survive_stripping(self, tmp_path):
        archive = tmp_path / "links.tar"
        with tarfile.open(archive, "w") as tar:
            data = b"library"
            info = tarfile.TarInfo("foo/1.0/lib/libfoo.1.dylib")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))

            soft = tarfile.TarInfo("foo/1.0/lib/libfoo.dylib")
            soft.type = tarfile.SYMTYPE
            soft.linkname = "libfoo.1.dylib"
            tar.addfile(soft)

            hard = tarfile.TarInfo("foo/1.0/lib/libfoo.copy.dylib")
            hard.type = tarfile.LNKTYPE
            hard.linkname = "foo/1.0/lib/libfoo.1.dylib"
            tar.addfile(hard)
        dest = tmp_path / "out"

        extract_archive(archive, dest)

        assert os.readlink(dest / "lib" / "libfoo.dylib") == "libfoo.1.dylib"
        assert (dest / "lib" / "libfoo.copy.dylib").read_bytes() == b"library"

    def test_progress_counts_every_member(self, tmp_path):
        archive = write_bottle(tmp_path / "wget.tar.gz", "wget", "1.25.0")
        calls = []

        extract_archive(archive, tmp_path / "out", on_progress=lambda d, t: calls.append((d, t)))

        assert calls == [(0, 3), (1, 3), (2, 3), (3, 3)]

    def test_cancel_stops_extraction(self, tmp_path):
        archive = write_bottle(tmp_path / "wget.tar.gz", "wget", "1.25.0")
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelled):
            extract_archive(archive, tmp_path / "out", cancel=cancel)

    def test_corrupt_archive(self, tmp_path):
        archive = tmp_path / "broken.tar.gz"
        archive.write_bytes(b"definitely not a tarball")

        with pytest.raises(ExtractionFailed) as exc_info:
            extract_archive(archive, tmp_path / "out")

        assert exc_info.value.context["archive"] == str(archive)

    def test_members_escaping_the_destination_are_refused(self, tmp_path):
        archive = tmp_path / "evil.tar"
        with tarfile.open(archive, "w") as tar:
            info = tarfile.TarInfo("../../escaped")
            info.size = 1
            tar.addfile(info, io.BytesIO(b"x"))

        with pytest.raises(ExtractionFailed):
            extract_archive(archive, tmp_path / "deep" / "out", strip_prefix=0)

        assert not (tmp_path / "escaped").exists()


class TestIsExecutable:
    def test_magic_numbers_and_shebangs(self, tmp_path):
        script = tmp_path / "script"
        script.write_bytes(b"#!/usr/bin/env python3\n")
        script.chmod(0o644)
        elf = tmp_path / "elf"
        elf.write_bytes(b"\x7fELF" + bytes(12))
        elf.chmod(0o644)
        text = tmp_path / "notes.txt"
        text.write_text("hello")
        text.chmod(0o644)

        assert is_executable(script)
        assert is_executable(elf)
        assert not is_executable(text)
        assert not is_executable(tmp_path)
