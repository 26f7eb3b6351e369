"""Directory walker producing SourceFiles for a run."""

from __future__ import annotations

import logging
from pathlib import Path

import pathspec

from fixwright.analysis.schemas import SourceFile
from fixwright.config import Settings
from fixwright.ingestion import EXTENSION_LANGUAGE, is_binary

logger = logging.getLogger(__name__)


def load_source_files(
    root: Path, settings: Settings | None = None
) -> list[SourceFile]:
    """Collect every recognised, text, size-bounded file under ``root``.

    Honours ``.gitignore`` and ``skip_directories``. Paths on the
    returned files are POSIX-style and relative to ``root``.
    """
    cfg = settings or Settings()
    root = root.resolve()
    if not root.is_dir():
        raise NotADirectoryError(f"not a directory: {root}")

    files: list[SourceFile] = []
    skipped = 0
    for path in _walk_files(
        root, set(cfg.skip_directories), _load_gitignore(root)
    ):
        language = EXTENSION_LANGUAGE.get(path.suffix.lower())
        if language is None:
            continue
        try:
            size = path.stat().st_size
        except OSError:
            skipped += 1
            continue
        if size > cfg.max_file_size_bytes or is_binary(path):
            skipped += 1
            continue
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            skipped += 1
            continue
        files.append(
            SourceFile(
                path=path.relative_to(root).as_posix(),
                language=language,
                content=content,
                size_bytes=size,
            )
        )

    logger.info(
        "event=files_loaded root=%s files=%d skipped=%d",
        root,
        len(files),
        skipped,
    )
    return files


def _walk_files(
    root: Path,
    skip_dirs: set[str],
    gitignore_spec: pathspec.PathSpec,
) -> list[Path]:
    """All regular files, skipping hidden, excluded and ignored entries.

    Symlinked directories are never descended; symlinked files are
    kept only when they resolve inside ``root``.
    """
    files: list[Path] = []
    pending = [root]
    while pending:
        current = pending.pop()
        for item in sorted(current.iterdir(), reverse=True):
            if item.is_symlink() and not item.resolve().is_relative_to(root):
                continue
            rel = item.relative_to(root).as_posix()
            if item.is_dir():
                if item.is_symlink():
                    continue
                if item.name.startswith(".") or item.name in skip_dirs:
                    continue
                if gitignore_spec.match_file(rel + "/"):
                    continue
                pending.append(item)
            elif item.is_file() and not gitignore_spec.match_file(rel):
                files.append(item)
    return sorted(files)


def _load_gitignore(root: Path) -> pathspec.PathSpec:
    gitignore = root / ".gitignore"
    try:
        with open(gitignore, encoding="utf-8") as f:
            return pathspec.PathSpec.from_lines("gitignore", f)
    except OSError:
        return pathspec.PathSpec.from_lines("gitignore", [])
