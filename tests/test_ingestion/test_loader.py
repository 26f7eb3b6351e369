"""Tests for the local directory loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from fixwright.config import Settings
from fixwright.ingestion import is_binary
from fixwright.ingestion.loader import load_source_files


def _write(root: Path, rel: str, content: str | bytes) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path


class TestLoadSourceFiles:
    def test_collects_known_languages(self, tmp_path: Path) -> None:
        _write(tmp_path, "main.py", "print('hi')\n")
        _write(tmp_path, "web/app.ts", "export const x = 1;\n")
        _write(tmp_path, "README.md", "# readme\n")

        files = load_source_files(tmp_path)
        assert [(f.path, f.language) for f in files] == [
            ("main.py", "python"),
            ("web/app.ts", "typescript"),
        ]
        assert files[0].content == "print('hi')\n"
        assert files[0].size_bytes == len("print('hi')\n")

    def test_skips_hidden_and_excluded_directories(
        self, tmp_path: Path
    ) -> None:
        _write(tmp_path, "src/ok.py", "x = 1\n")
        _write(tmp_path, "node_modules/lib/index.js", "x\n")
        _write(tmp_path, ".hidden/secret.py", "x\n")

        files = load_source_files(tmp_path)
        assert [f.path for f in files] == ["src/ok.py"]

    def test_honours_gitignore(self, tmp_path: Path) -> None:
        _write(tmp_path, ".gitignore", "generated/\n*_pb2.py\n")
        _write(tmp_path, "app.py", "x = 1\n")
        _write(tmp_path, "proto_pb2.py", "x = 1\n")
        _write(tmp_path, "generated/models.py", "x = 1\n")

        files = load_source_files(tmp_path)
        assert [f.path for f in files] == ["app.py"]

    def test_skips_binary_and_oversized(self, tmp_path: Path) -> None:
        _write(tmp_path, "small.py", "x = 1\n")
        _write(tmp_path, "blob.py", b"\x00\x01\x02")
        _write(tmp_path, "big.py", "x" * 200)
        settings = Settings(max_file_size_bytes=100)

        files = load_source_files(tmp_path, settings)
        assert [f.path for f in files] == ["small.py"]

    def test_symlinked_directory_back_to_root_is_not_followed(
        self, tmp_path: Path
    ) -> None:
        _write(tmp_path, "pkg/m.py", "x = 1\n")
        (tmp_path / "pkg" / "loop").symlink_to(
            tmp_path, target_is_directory=True
        )

        files = load_source_files(tmp_path)
        assert [f.path for f in files] == ["pkg/m.py"]

    def test_symlinked_file_inside_root_is_kept(
        self, tmp_path: Path
    ) -> None:
        _write(tmp_path, "real.py", "x = 1\n")
        (tmp_path / "alias.py").symlink_to(tmp_path / "real.py")

        files = load_source_files(tmp_path)
        assert [f.path for f in files] == ["alias.py", "real.py"]

    def test_rejects_non_directory(self, tmp_path: Path) -> None:
        target = _write(tmp_path, "file.py", "x\n")
        with pytest.raises(NotADirectoryError):
            load_source_files(target)


class TestIsBinary:
    def test_text(self, tmp_path: Path) -> None:
        assert is_binary(_write(tmp_path, "a.txt", "hello")) is False

    def test_null_byte(self, tmp_path: Path) -> None:
        assert is_binary(_write(tmp_path, "a.bin", b"ab\x00cd")) is True

    def test_missing_file_counts_as_binary(self, tmp_path: Path) -> None:
        assert is_binary(tmp_path / "missing") is True
