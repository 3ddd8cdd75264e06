from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping

from suji.errors import ConfigFault

SourceKindName = Literal[
    "static",
    "template",
    "single_page",
    "blog_post",
    "archive_page",
    "rss_page",
    "sitemap",
]
SOURCE_KINDS: tuple[str, ...] = (
    "static",
    "template",
    "single_page",
    "blog_post",
    "archive_page",
    "rss_page",
    "sitemap",
)
OnError = Literal["abort", "skip"]

DEFAULT_BLOGPOST_ROUTE = "blogpost"

_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def parse_bool(value: Any, path: str) -> bool:
    """
    Strict boolean parsing to avoid bool('false') footguns.

    Accepts True/False, 0/1, and the strings true/false/1/0/yes/no
    (case-insensitive, surrounding whitespace ignored).
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ConfigFault(f"Invalid boolean for {path}: {value!r}")
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes"}:
            return True
        if normalized in {"false", "0", "no"}:
            return False
    raise ConfigFault(f"Invalid boolean for {path}: {value!r}")


def parse_int(value: Any, path: str, *, min_value: int | None = None) -> int:
    if value is None:
        raise ConfigFault(f"Invalid config value for {path}: None")
    if isinstance(value, bool):
        raise ConfigFault(f"Invalid config type for {path}: expected int, got bool")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = int(value.strip())
        except ValueError as exc:
            raise ConfigFault(f"Invalid config value for {path}: must be an int") from exc
    else:
        raise ConfigFault(f"Invalid config type for {path}: expected int")
    if min_value is not None and parsed < min_value:
        raise ConfigFault(f"Invalid config value for {path}: must be >= {min_value}")
    return parsed


def parse_str(value: Any, path: str, *, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        raise ConfigFault(f"Invalid config type for {path}: expected string (type={type(value).__name__})")
    text = value.strip()
    if not text and not allow_empty:
        raise ConfigFault(f"Invalid config value for {path}: must be a non-empty string")
    return text


def route_placeholders(template: str) -> tuple[str, ...]:
    return tuple(_PLACEHOLDER_RE.findall(template))


def validate_route_template(name: str, template: str) -> None:
    path = f"routes.{name}"
    if not template.startswith("/"):
        raise ConfigFault(f"Invalid route for {path}: must start with '/' (got {template!r})")
    leftover = _PLACEHOLDER_RE.sub("", template)
    if "{" in leftover or "}" in leftover:
        raise ConfigFault(f"Invalid route for {path}: malformed placeholder in {template!r}")


def _collect_unknown_keys(mapping: Mapping[str, Any], allowed: set[str], *, prefix: str) -> list[str]:
    unknown: list[str] = []
    for key in mapping.keys():
        if key not in allowed:
            unknown.append(f"{prefix}.{key}" if prefix else str(key))
    return unknown


def _resolve_dir(raw: Any, path: str, *, base_dir: str) -> str:
    text = parse_str(raw, path)
    expanded = os.path.expandvars(os.path.expanduser(text))
    if not os.path.isabs(expanded):
        expanded = os.path.join(base_dir, expanded)
    return os.path.abspath(expanded)


@dataclass(frozen=True)
class SourceSpec:
    """One configured `{glob, kind}` entry of the manifest."""

    glob: str
    kind: SourceKindName
    route: str | None = None
    root: str | None = None
    sitemap: bool | None = None

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.glob}"


@dataclass(frozen=True)
class TagPagesConfig:
    enabled: bool = True
    route: str = "tag"
    template: str = "tag.html"
    sitemap: bool = True


@dataclass(frozen=True)
class BuildConfig:
    on_error: OnError = "abort"
    workers: int | None = None


@dataclass(frozen=True)
class OutputConfig:
    atomic: bool = False


@dataclass(frozen=True)
class SiteConfig:
    source_dir: str
    output_dir: str
    sitename: str
    site_url: str
    routes: Mapping[str, str]
    sources: tuple[SourceSpec, ...]
    blogpost_template: str = "blogpost.html"
    tags: TagPagesConfig = field(default_factory=TagPagesConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    markdown_extensions: tuple[str, ...] = ()

    def absolute_url(self, url: str) -> str:
        return f"{self.site_url}{url}"

    @staticmethod
    def from_dict(
        cfg: Mapping[str, Any], *, base_dir: str | None = None
    ) -> tuple["SiteConfig", list[str]]:
        """
        Parse and validate a site config, returning (SiteConfig, warnings).

        Relative directories resolve against `base_dir` (the config file's
        directory), else the current working directory.

        Raises:
            ConfigFault: if required keys are missing, unknown or invalid.
        """

        if not isinstance(cfg, Mapping):
            raise ConfigFault("Config must be a mapping")

        warnings: list[str] = []
        base = os.path.abspath(base_dir or os.getcwd())

        allowed = {
            "source_dir",
            "output_dir",
            "sitename",
            "site_url",
            "routes",
            "sources",
            "blogpost_template",
            "tags",
            "build",
            "output",
            "markdown_extensions",
        }
        unknown = _collect_unknown_keys(cfg, allowed, prefix="")
        if unknown:
            raise ConfigFault(f"Unknown config keys: {', '.join(sorted(unknown))}")

        for required in ("output_dir", "sitename", "sources"):
            if required not in cfg:
                raise ConfigFault(f"Missing required config key: {required}")

        source_dir = _resolve_dir(cfg.get("source_dir", "."), "source_dir", base_dir=base)
        output_dir = _resolve_dir(cfg.get("output_dir"), "output_dir", base_dir=base)
        if output_dir == source_dir:
            raise ConfigFault("output_dir must differ from source_dir")
        if output_dir.startswith(source_dir + os.sep):
            warnings.append(
                f"output_dir {output_dir} is inside source_dir; broad static globs may pick up previous output"
            )

        sitename = parse_str(cfg.get("sitename"), "sitename")
        site_url = parse_str(cfg.get("site_url", ""), "site_url", allow_empty=True).rstrip("/")

        raw_routes = cfg.get("routes") or {}
        if not isinstance(raw_routes, Mapping):
            raise ConfigFault("routes must be a mapping of route name to URL template")
        routes: dict[str, str] = {}
        for name, template in raw_routes.items():
            route_name = parse_str(name, "routes.<name>")
            route_template = parse_str(template, f"routes.{route_name}")
            validate_route_template(route_name, route_template)
            routes[route_name] = route_template

        sources = _parse_sources(cfg.get("sources"), routes=routes)

        blogpost_template = parse_str(
            cfg.get("blogpost_template", "blogpost.html"), "blogpost_template"
        )

        tags = _parse_tags(cfg.get("tags"))
        has_blog_posts = any(spec.kind == "blog_post" for spec in sources)
        if has_blog_posts and tags.enabled and tags.route not in routes:
            raise ConfigFault(
                f"tags.route={tags.route!r} is not defined in routes (needed for tag pages)"
            )
        if has_blog_posts and not any(
            spec.route is not None for spec in sources if spec.kind == "blog_post"
        ) and DEFAULT_BLOGPOST_ROUTE not in routes:
            warnings.append(
                f"No route for blog posts: posts must set `route` in front matter "
                f"or routes.{DEFAULT_BLOGPOST_ROUTE} must be defined"
            )

        build = _parse_build(cfg.get("build"))
        output = _parse_output(cfg.get("output"))

        raw_extensions = cfg.get("markdown_extensions") or []
        if not isinstance(raw_extensions, (list, tuple)):
            raise ConfigFault("markdown_extensions must be a list of strings")
        markdown_extensions = tuple(
            parse_str(ext, f"markdown_extensions[{idx}]") for idx, ext in enumerate(raw_extensions)
        )

        return (
            SiteConfig(
                source_dir=source_dir,
                output_dir=output_dir,
                sitename=sitename,
                site_url=site_url,
                routes=MappingProxyType(routes),
                sources=sources,
                blogpost_template=blogpost_template,
                tags=tags,
                build=build,
                output=output,
                markdown_extensions=markdown_extensions,
            ),
            warnings,
        )


def _parse_sources(raw: Any, *, routes: Mapping[str, str]) -> tuple[SourceSpec, ...]:
    if isinstance(raw, Mapping):
        # Compact form: {glob: kind}
        entries: list[Any] = [{"glob": glob, "kind": kind} for glob, kind in raw.items()]
    elif isinstance(raw, (list, tuple)):
        entries = list(raw)
    else:
        raise ConfigFault("sources must be a list of {glob, kind} entries or a glob->kind mapping")

    specs: list[SourceSpec] = []
    for idx, entry in enumerate(entries):
        path = f"sources[{idx}]"
        if not isinstance(entry, Mapping):
            raise ConfigFault(f"{path} must be a mapping (type={type(entry).__name__})")
        unknown = _collect_unknown_keys(
            entry, {"glob", "path", "kind", "route", "root", "sitemap"}, prefix=path
        )
        if unknown:
            raise ConfigFault(f"Unknown config keys: {', '.join(sorted(unknown))}")

        if "glob" in entry and "path" in entry:
            raise ConfigFault(f"{path} must set only one of glob/path")
        glob = parse_str(entry.get("glob", entry.get("path")), f"{path}.glob")
        if os.path.isabs(glob):
            raise ConfigFault(f"{path}.glob must be relative to source_dir (got {glob!r})")

        kind = parse_str(entry.get("kind"), f"{path}.kind")
        if kind not in SOURCE_KINDS:
            raise ConfigFault(
                f"Invalid config value for {path}.kind: {kind!r} (expected one of: {', '.join(SOURCE_KINDS)})"
            )

        route: str | None = None
        if entry.get("route") is not None:
            if kind in ("static", "template"):
                raise ConfigFault(f"{path}.route is not valid for {kind} sources")
            route = parse_str(entry.get("route"), f"{path}.route")
            if route not in routes:
                available = ", ".join(sorted(routes)) or "<none>"
                raise ConfigFault(f"Unknown route for {path}.route: {route} (available: {available})")

        root: str | None = None
        if entry.get("root") is not None:
            if kind != "template":
                raise ConfigFault(f"{path}.root is only valid for template sources")
            root = parse_str(entry.get("root"), f"{path}.root")

        sitemap: bool | None = None
        if entry.get("sitemap") is not None:
            sitemap = parse_bool(entry.get("sitemap"), f"{path}.sitemap")

        specs.append(SourceSpec(glob=glob, kind=kind, route=route, root=root, sitemap=sitemap))  # type: ignore[arg-type]
    return tuple(specs)


def _parse_tags(raw: Any) -> TagPagesConfig:
    if raw is None:
        return TagPagesConfig()
    if not isinstance(raw, Mapping):
        raise ConfigFault("tags must be a mapping")
    unknown = _collect_unknown_keys(raw, {"enabled", "route", "template", "sitemap"}, prefix="tags")
    if unknown:
        raise ConfigFault(f"Unknown config keys: {', '.join(sorted(unknown))}")
    defaults = TagPagesConfig()
    return TagPagesConfig(
        enabled=parse_bool(raw.get("enabled", defaults.enabled), "tags.enabled"),
        route=parse_str(raw.get("route", defaults.route), "tags.route"),
        template=parse_str(raw.get("template", defaults.template), "tags.template"),
        sitemap=parse_bool(raw.get("sitemap", defaults.sitemap), "tags.sitemap"),
    )


def _parse_build(raw: Any) -> BuildConfig:
    if raw is None:
        return BuildConfig()
    if not isinstance(raw, Mapping):
        raise ConfigFault("build must be a mapping")
    unknown = _collect_unknown_keys(raw, {"on_error", "workers"}, prefix="build")
    if unknown:
        raise ConfigFault(f"Unknown config keys: {', '.join(sorted(unknown))}")

    on_error = parse_str(raw.get("on_error", "abort"), "build.on_error").lower()
    if on_error not in ("abort", "skip"):
        raise ConfigFault(f"Invalid config value for build.on_error: {on_error!r} (expected abort or skip)")

    workers: int | None = None
    if raw.get("workers") is not None:
        workers = parse_int(raw.get("workers"), "build.workers", min_value=1)
    return BuildConfig(on_error=on_error, workers=workers)  # type: ignore[arg-type]


def _parse_output(raw: Any) -> OutputConfig:
    if raw is None:
        return OutputConfig()
    if not isinstance(raw, Mapping):
        raise ConfigFault("output must be a mapping")
    unknown = _collect_unknown_keys(raw, {"atomic"}, prefix="output")
    if unknown:
        raise ConfigFault(f"Unknown config keys: {', '.join(sorted(unknown))}")
    return OutputConfig(atomic=parse_bool(raw.get("atomic", False), "output.atomic"))
