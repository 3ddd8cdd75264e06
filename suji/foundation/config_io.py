from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

import yaml

DEFAULT_ENV_VAR = "SUJI_CONFIG"


def _load_yaml_mapping(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except FileNotFoundError:
        raise
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Config file must contain a YAML mapping: {path}")
    return dict(payload)


def _deep_merge(base: Any, overlay: Any, *, path: str) -> Any:
    if overlay is None:
        return None

    if base is None:
        return overlay

    if isinstance(base, Mapping):
        if not isinstance(overlay, Mapping):
            raise ValueError(
                f"Invalid config overlay merge at {path}: base is mapping but overlay is {type(overlay).__name__}"
            )
        merged: dict[str, Any] = dict(base)
        for key, overlay_value in overlay.items():
            next_path = f"{path}.{key}" if path else str(key)
            if key in base:
                merged[key] = _deep_merge(base[key], overlay_value, path=next_path)
            else:
                merged[key] = overlay_value
        return merged

    if isinstance(base, (list, tuple)):
        if not isinstance(overlay, (list, tuple)):
            raise ValueError(
                f"Invalid config overlay merge at {path}: base is list but overlay is {type(overlay).__name__}"
            )
        return list(overlay)

    if isinstance(overlay, (Mapping, list, tuple)):
        raise ValueError(
            f"Invalid config overlay merge at {path}: base is {type(base).__name__} but overlay is {type(overlay).__name__}"
        )

    return overlay


def local_overlay_path(config_path: str) -> str:
    """`site.yaml` -> `site.local.yaml`, next to the base file."""

    stem, ext = os.path.splitext(config_path)
    return f"{stem}.local{ext or '.yaml'}"


def load_config(
    config_path: str | os.PathLike[str] | None = None,
    *,
    env_var: str = DEFAULT_ENV_VAR,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Load the site config mapping plus a description of where it came from.

    The path is the explicit argument, else the `env_var` environment variable.
    JSON config files load too, since JSON is valid YAML. A sibling
    `<name>.local.<ext>` file is deep-merged on top when present.
    """

    explicit = str(config_path).strip() if config_path is not None else ""
    mode = "explicit"
    if not explicit:
        explicit = os.environ.get(env_var, "").strip()
        mode = "env"
    if not explicit:
        raise FileNotFoundError(
            f"No config file given: pass a path or set {env_var}"
        )

    base_path = os.path.abspath(os.path.expandvars(os.path.expanduser(explicit)))
    if not os.path.exists(base_path):
        raise FileNotFoundError(f"Missing base config file: {base_path}")

    cfg = _load_yaml_mapping(base_path)
    loaded_paths = [base_path]

    overlay_path = local_overlay_path(base_path)
    if os.path.exists(overlay_path):
        overlay = _load_yaml_mapping(overlay_path)
        cfg = _deep_merge(cfg, overlay, path="")
        loaded_paths.append(overlay_path)
        mode = f"{mode}+local"

    meta = {
        "mode": mode,
        "paths": loaded_paths,
        "env_var": env_var,
        "config_dir": os.path.dirname(base_path),
    }
    return cfg, meta
