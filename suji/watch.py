"""Polling re-run trigger: rebuild the whole site whenever a watched file changes."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Iterable

Snapshot = dict[str, float]


def _is_ignored(path: Path, ignore: tuple[Path, ...]) -> bool:
    return any(path == root or root in path.parents for root in ignore)


def snapshot(paths: Iterable[str | os.PathLike[str]], *, ignore: Iterable[str | os.PathLike[str]] = ()) -> Snapshot:
    """Modification time of every file under `paths`, skipping anything under `ignore`."""

    ignored = tuple(Path(p).resolve() for p in ignore)
    mtimes: Snapshot = {}
    for raw in paths:
        root = Path(raw).resolve()
        if root.is_file():
            candidates: Iterable[Path] = (root,)
        elif root.is_dir():
            candidates = (p for p in root.rglob("*") if p.is_file())
        else:
            continue
        for path in candidates:
            if _is_ignored(path, ignored):
                continue
            try:
                mtimes[str(path)] = path.stat().st_mtime
            except FileNotFoundError:
                continue
    return mtimes


def changed_paths(before: Snapshot, after: Snapshot) -> list[str]:
    keys = set(before) | set(after)
    return sorted(key for key in keys if before.get(key) != after.get(key))


def watch_and_rebuild(
    rebuild: Callable[[], Any],
    *,
    paths: Iterable[str | os.PathLike[str]],
    ignore: Iterable[str | os.PathLike[str]] = (),
    logger: logging.Logger,
    interval: float = 1.0,
    max_rebuilds: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Poll `paths` and call `rebuild()` after every change until interrupted.

    Every rebuild is a full run; a failing rebuild is logged and watching continues.
    Returns the number of rebuilds performed (`max_rebuilds` bounds the loop).
    """

    watched = tuple(paths)
    ignored = tuple(ignore)
    current = snapshot(watched, ignore=ignored)
    logger.info("Watching %d file(s) for changes", len(current))

    rebuilds = 0
    try:
        while max_rebuilds is None or rebuilds < max_rebuilds:
            sleep(interval)
            latest = snapshot(watched, ignore=ignored)
            changes = changed_paths(current, latest)
            if not changes:
                continue
            current = latest
            logger.info("Detected %d change(s) (first: %s); rebuilding", len(changes), changes[0])
            rebuilds += 1
            try:
                rebuild()
            except Exception:  # noqa: BLE001
                logger.exception("Rebuild failed; waiting for the next change")
    except KeyboardInterrupt:
        logger.info("Stopped watching")
    return rebuilds
