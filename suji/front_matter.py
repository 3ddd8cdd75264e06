"""Front-matter splitting.

Two formats are accepted at the top of a content file:

- YAML between `---` lines, parsed with python-frontmatter;
- a JSON object whose closing `}` is followed by a blank line.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import frontmatter
import yaml

from suji.errors import LoadFault

_YAML_HANDLER = frontmatter.YAMLHandler()
_YAML_FENCE = "---"
_JSON_TERMINATOR = "\n}\n\n"


def split_front_matter(text: str, *, source: str) -> tuple[dict[str, Any] | None, str]:
    """Return (metadata or None when absent, body)."""

    normalized = text.replace("\r\n", "\n")
    if normalized.startswith("\ufeff"):
        normalized = normalized[1:]

    if normalized.startswith(_YAML_FENCE + "\n"):
        return _split_yaml(normalized, source=source)
    if normalized.startswith("{\n"):
        return _split_json(normalized, source=source)
    return None, normalized


def _split_yaml(text: str, *, source: str) -> tuple[dict[str, Any], str]:
    try:
        header, body = _YAML_HANDLER.split(text)
    except ValueError as exc:
        raise LoadFault("Front matter opened with --- but never closed", source=source) from exc
    try:
        payload = _YAML_HANDLER.load(header) if header.strip() else {}
    except (yaml.YAMLError, ValueError, TypeError) as exc:
        # Out-of-range timestamps (`date: 2024-13-45`) surface as ValueError.
        raise LoadFault(f"Invalid YAML front matter: {exc}", source=source) from exc
    return _as_mapping(payload, source=source), body.lstrip("\n")


def _split_json(text: str, *, source: str) -> tuple[dict[str, Any], str]:
    split = text.find(_JSON_TERMINATOR)
    if split < 0:
        if text.rstrip().endswith("}"):
            header, body = text.rstrip(), ""
        else:
            raise LoadFault("Need terminator for metadata ('}' followed by a blank line)", source=source)
    else:
        header, body = text[: split + 2], text[split + len(_JSON_TERMINATOR) :]
    try:
        payload = json.loads(header)
    except json.JSONDecodeError as exc:
        raise LoadFault(f"Could not parse metadata: {exc}", source=source) from exc
    return _as_mapping(payload, source=source), body


def _as_mapping(payload: Any, *, source: str) -> dict[str, Any]:
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise LoadFault(
            f"Front matter must be a mapping (type={type(payload).__name__})", source=source
        )
    return {str(key): value for key, value in payload.items()}
