"""Source loading: one system per content kind.

Loaders establish identity, source location and kind-specific metadata. They never
render and never assign URLs.
"""

from __future__ import annotations

import os
import re
from datetime import date, datetime
from pathlib import Path, PurePosixPath
from typing import Any, Mapping

from stagekit import SystemContext, system

from suji.components import (
    SOURCE_KIND_TO_CONTENT_KIND,
    Body,
    ContentKind,
    CopyVerbatim,
    ExcludeFromSitemap,
    InNavbar,
    IsBlogPost,
    IsStaticContent,
    Kind,
    PageMeta,
    SourceEntry,
    SourcePath,
    TemplateSource,
)
from suji.config import DEFAULT_BLOGPOST_ROUTE, SiteConfig, SourceSpec
from suji.errors import LoadFault
from suji.foundation import fs
from suji.front_matter import split_front_matter

PAGE_SOURCE_KINDS: tuple[str, ...] = ("single_page", "blog_post", "archive_page", "rss_page", "sitemap")

_RESERVED_KEYS = frozenset(
    {
        "title",
        "route",
        "template",
        "markdown",
        "navbar",
        "tags",
        "date",
        "excerpt",
        "featured",
        "slug",
        "sitemap",
        "sitemap_priority",
        "og_title",
        "og_type",
        "og_description",
    }
)
_DATE_RE = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")
_MARKDOWN_SUFFIXES = (".md", ".markdown")


def relative_to_source(path: Path, source_dir: str) -> PurePosixPath:
    return PurePosixPath(Path(os.path.relpath(path, source_dir)).as_posix())


def _entries(ctx: SystemContext, kinds: tuple[str, ...]) -> list[SourceSpec]:
    return [entry.spec for _entity, entry in ctx.query(SourceEntry) if entry.spec.kind in kinds]


@system("create_source_loaders", reads=(SiteConfig,))
def create_source_loaders(ctx: SystemContext) -> None:
    """Turn every configured source entry into a source-entry record."""

    config = ctx.resource(SiteConfig)
    for spec in config.sources:
        ctx.spawn(Kind(ContentKind.SOURCE_ENTRY), SourceEntry(spec))
    ctx.logger.info("Configured %d source entr%s", len(config.sources), "y" if len(config.sources) == 1 else "ies")


@system("load_static_content", reads=(SiteConfig, SourceEntry))
def load_static_content(ctx: SystemContext) -> None:
    """Create one copy-verbatim record per file matched by a static glob."""

    config = ctx.resource(SiteConfig)
    for spec in _entries(ctx, ("static",)):
        matches = fs.glob(spec.glob, root=config.source_dir)
        ctx.logger.debug("Static source %s matched %d file(s)", spec.glob, len(matches))
        for path in matches:
            components: list[Any] = [
                Kind(ContentKind.STATIC_CONTENT),
                SourcePath(
                    relative=relative_to_source(path, config.source_dir),
                    absolute=path,
                    entry=spec.label,
                ),
                IsStaticContent(),
                CopyVerbatim(),
            ]
            if spec.sitemap is not True:
                components.append(ExcludeFromSitemap())
            ctx.spawn(*components)


def template_name(path: Path, spec: SourceSpec, *, source_dir: str) -> str:
    root = spec.root if spec.root is not None else fs.glob_base(spec.glob)
    base = os.path.join(source_dir, root) if root else source_dir
    return Path(os.path.relpath(path, base)).as_posix()


@system("load_templates", reads=(SiteConfig, SourceEntry))
def load_templates(ctx: SystemContext) -> None:
    """Create one record per template file; templates are not rendered here."""

    config = ctx.resource(SiteConfig)
    seen: dict[str, str] = {}
    for spec in _entries(ctx, ("template",)):
        for path in fs.glob(spec.glob, root=config.source_dir):
            relative = relative_to_source(path, config.source_dir)
            name = template_name(path, spec, source_dir=config.source_dir)
            if name in seen:
                ctx.report(
                    LoadFault(
                        f"Duplicate template name {name!r} (already loaded from {seen[name]})",
                        source=relative.as_posix(),
                    )
                )
                continue
            try:
                text = fs.read_text(path)
            except (OSError, UnicodeDecodeError) as exc:
                ctx.report(LoadFault(f"Unable to read template: {exc}", source=relative.as_posix()))
                continue
            seen[name] = relative.as_posix()
            ctx.spawn(
                Kind(ContentKind.TEMPLATE),
                SourcePath(relative=relative, absolute=path, entry=spec.label),
                TemplateSource(name=name, text=text),
            )


@system("load_pages", reads=(SiteConfig, SourceEntry))
def load_pages(ctx: SystemContext) -> None:
    """Parse front matter of pages, blog posts, archive, RSS and sitemap sources."""

    config = ctx.resource(SiteConfig)
    jobs: list[tuple[SourceSpec, Path]] = []
    for spec in _entries(ctx, PAGE_SOURCE_KINDS):
        matches = fs.glob(spec.glob, root=config.source_dir)
        ctx.logger.debug("%s source %s matched %d file(s)", spec.kind, spec.glob, len(matches))
        jobs.extend((spec, path) for path in matches)

    def load_one(job: tuple[SourceSpec, Path]) -> tuple[Any, ...] | LoadFault:
        spec, path = job
        try:
            return load_page_components(spec, path, config=config)
        except LoadFault as fault:
            return fault

    for outcome in ctx.par_map(load_one, jobs):
        if isinstance(outcome, LoadFault):
            ctx.report(outcome)
        else:
            ctx.spawn(*outcome)


def load_page_components(spec: SourceSpec, path: Path, *, config: SiteConfig) -> tuple[Any, ...]:
    relative = relative_to_source(path, config.source_dir)
    label = relative.as_posix()
    try:
        text = fs.read_text(path)
    except (OSError, UnicodeDecodeError) as exc:
        raise LoadFault(f"Unable to read file: {exc}", source=label) from exc

    raw, body = split_front_matter(text, source=label)
    if raw is None:
        if spec.kind != "sitemap":
            raise LoadFault("Missing front matter metadata", source=label)
        raw = {}

    meta = build_page_meta(raw, spec=spec, relative=relative, config=config)
    kind = SOURCE_KIND_TO_CONTENT_KIND[spec.kind]
    components: list[Any] = [
        Kind(kind),
        SourcePath(relative=relative, absolute=path, entry=spec.label),
        meta,
        Body(body),
    ]
    if kind is ContentKind.BLOG_POST:
        components.append(IsBlogPost())
    if meta.navbar is not None and meta.navbar is not False:
        order = None if meta.navbar is True else int(meta.navbar)
        components.append(InNavbar(order=order))
    sitemap_flag = raw.get("sitemap", spec.sitemap)
    if kind is ContentKind.SITEMAP or sitemap_flag is False:
        components.append(ExcludeFromSitemap())
    return tuple(components)


def parse_post_date(value: Any, *, source: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        match = _DATE_RE.match(value.strip())
        if match:
            try:
                return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
            except ValueError as exc:
                raise LoadFault(f"Invalid date {value!r}: {exc}", source=source) from exc
    raise LoadFault(f"Invalid date {value!r} (expected YYYY/MM/DD or YYYY-MM-DD)", source=source)


def _optional_str(raw: Mapping[str, Any], key: str, *, source: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise LoadFault(f"{key} must be a string (type={type(value).__name__})", source=source)
    return value.strip() or None


def build_page_meta(
    raw: Mapping[str, Any],
    *,
    spec: SourceSpec,
    relative: PurePosixPath,
    config: SiteConfig,
) -> PageMeta:
    source = relative.as_posix()
    is_post = spec.kind == "blog_post"

    title = _optional_str(raw, "title", source=source)
    if title is None:
        if spec.kind != "sitemap":
            raise LoadFault("Missing required metadata: title", source=source)
        title = config.sitename

    route = _optional_str(raw, "route", source=source) or spec.route
    if route is None and is_post:
        route = DEFAULT_BLOGPOST_ROUTE
    if route is None and spec.kind != "sitemap":
        raise LoadFault("Missing required metadata: route", source=source)

    template = _optional_str(raw, "template", source=source)
    markdown = raw.get("markdown", relative.suffix.lower() in _MARKDOWN_SUFFIXES)
    if not isinstance(markdown, bool):
        raise LoadFault("markdown must be a boolean", source=source)

    navbar = raw.get("navbar")
    if navbar is not None and not isinstance(navbar, (bool, int)):
        raise LoadFault("navbar must be an integer order or a boolean", source=source)

    raw_tags = raw.get("tags") or []
    if not isinstance(raw_tags, (list, tuple)) or not all(isinstance(t, str) for t in raw_tags):
        raise LoadFault("tags must be a list of strings", source=source)
    tags = tuple(dict.fromkeys(t.strip() for t in raw_tags if t.strip()))

    priority = raw.get("sitemap_priority")
    if priority is not None:
        if isinstance(priority, bool) or not isinstance(priority, (int, float)):
            raise LoadFault("sitemap_priority must be a number", source=source)
        priority = float(priority)

    featured = raw.get("featured", False)
    if not isinstance(featured, bool):
        featured = False

    excerpt = _optional_str(raw, "excerpt", source=source) or ""
    slug = _optional_str(raw, "slug", source=source)
    post_date: date | None = None
    if "date" in raw and raw.get("date") is not None:
        post_date = parse_post_date(raw.get("date"), source=source)

    og_type = _optional_str(raw, "og_type", source=source) or ""
    og_description = _optional_str(raw, "og_description", source=source) or ""

    if is_post:
        if post_date is None:
            raise LoadFault("Blog post is missing a date", source=source)
        slug = slug or relative.stem
        markdown = True
        template = config.blogpost_template
        og_type = "article"
        og_description = excerpt or og_description

    extra = {key: value for key, value in raw.items() if key not in _RESERVED_KEYS}

    return PageMeta(
        title=title,
        route=route,
        template=template,
        markdown=markdown,
        slug=slug,
        date=post_date,
        tags=tags,
        excerpt=excerpt,
        featured=featured,
        navbar=navbar,
        sitemap_priority=priority,
        og_title=_optional_str(raw, "og_title", source=source) or "",
        og_type=og_type,
        og_description=og_description,
        extra=extra,
    )


SOURCE_LOADING_SYSTEMS = (load_static_content, load_templates, load_pages)
