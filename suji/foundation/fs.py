"""Filesystem primitives used by loaders and the persistence writer."""

from __future__ import annotations

import glob as _glob
import os
import tempfile
from pathlib import Path


def read_bytes(path: str | os.PathLike[str]) -> bytes:
    with open(path, "rb") as handle:
        return handle.read()


def read_text(path: str | os.PathLike[str]) -> str:
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read()


def write_bytes(path: str | os.PathLike[str], data: bytes) -> None:
    """Write via a temp file in the same directory, then atomically replace."""

    target = Path(path)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def mkdir_p(path: str | os.PathLike[str]) -> None:
    os.makedirs(path, exist_ok=True)


def glob(pattern: str, *, root: str | os.PathLike[str]) -> list[Path]:
    """Files (not directories) under `root` matching `pattern`, sorted for determinism."""

    matches = _glob.glob(os.path.join(os.fspath(root), pattern), recursive=True)
    return sorted(Path(match) for match in matches if os.path.isfile(match))


def glob_base(pattern: str) -> str:
    """The non-magic leading directory of a glob (`templates/**/*.html` -> `templates`)."""

    parts: list[str] = []
    for part in pattern.replace("\\", "/").split("/"):
        if _glob.has_magic(part):
            break
        parts.append(part)
    else:
        # No magic at all: the pattern names one file; its directory is the base.
        parts = parts[:-1]
    return "/".join(parts)
