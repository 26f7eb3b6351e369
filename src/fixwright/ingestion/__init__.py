"""Local source ingestion: walk a directory into SourceFiles."""

from pathlib import Path

from fixwright.constants import BINARY_DETECTION_BUFFER

__all__ = ["EXTENSION_LANGUAGE", "is_binary"]

_LANGUAGE_EXTENSIONS: dict[str, tuple[str, ...]] = {
    "python": (".py", ".pyi"),
    "javascript": (".js", ".mjs", ".cjs", ".jsx"),
    "typescript": (".ts", ".tsx"),
    "java": (".java",),
    "go": (".go",),
    "rust": (".rs",),
    "c": (".c", ".h"),
    "cpp": (".cpp", ".cc", ".hpp"),
    "c_sharp": (".cs",),
    "ruby": (".rb",),
    "php": (".php",),
    "swift": (".swift",),
    "kotlin": (".kt", ".kts"),
    "scala": (".scala",),
    "bash": (".sh", ".bash"),
    "sql": (".sql",),
    "vue": (".vue",),
}

EXTENSION_LANGUAGE: dict[str, str] = {
    ext: language
    for language, exts in _LANGUAGE_EXTENSIONS.items()
    for ext in exts
}


def is_binary(path: Path) -> bool:
    """Return True if the file appears to be binary (null byte in first N bytes)."""
    try:
        with open(path, "rb") as f:
            chunk = f.read(BINARY_DETECTION_BUFFER)
        return b"\x00" in chunk
    except OSError:
        return True
