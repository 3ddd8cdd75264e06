"""Rendering: output paths and markup for every page-like record."""

from __future__ import annotations

from typing import Any, Mapping

import markdown as markdown_lib

from stagekit import Entity, SystemContext, system

from suji.analysis import record_output_path
from suji.components import (
    RENDERED_KINDS,
    URL,
    BlogIndex,
    Body,
    ContentKind,
    CopyVerbatim,
    Kind,
    NavEntry,
    PageMeta,
    RelativeOutputPath,
    Rendered,
    SitemapEntry,
    SourcePath,
    TagMembers,
    TemplateSource,
)
from suji.config import SiteConfig
from suji.errors import RenderFault
from suji.indexing import sorted_sitemap_entries
from suji.templating import JinjaTemplating, template_globals

DEFAULT_SITEMAP_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
{%- for entry in sitemap.entries %}
  <url>
    <loc>{{ entry.absolute }}</loc>
    {%- if entry.lastmod %}
    <lastmod>{{ entry.lastmod }}</lastmod>
    {%- endif %}
    {%- if entry.priority is not none %}
    <priority>{{ entry.priority }}</priority>
    {%- endif %}
  </url>
{%- endfor %}
</urlset>
"""


@system(
    "assign_output_paths",
    reads=(URL, SourcePath, CopyVerbatim),
    writes=(RelativeOutputPath,),
)
def assign_output_paths(ctx: SystemContext) -> None:
    """Map every URL onto a path relative to the output root."""

    for entity, url in ctx.query(URL, without=(RelativeOutputPath,)):
        ctx.insert(entity, RelativeOutputPath(record_output_path(ctx, entity, url)))


def is_active(current: str, entry: str) -> bool:
    if current == entry:
        return True
    return entry != "/" and current.startswith(entry)


def navbar_context(current: str, entries: list[NavEntry]) -> list[dict[str, Any]]:
    return [
        {"url": entry.url, "title": entry.title, "active": is_active(current, entry.url)}
        for entry in entries
    ]


def site_context(
    config: SiteConfig, blog: BlogIndex, sitemap: list[SitemapEntry]
) -> dict[str, Any]:
    """Values shared by every page of a run."""

    return {
        "sitename": config.sitename,
        "site_url": config.site_url,
        "blog_tags_and_counts": {"entries": [[tag, count] for tag, count in blog.tags_and_counts()]},
        "blog_archives": {
            "entries": [
                [year, month, [post.as_context() for post in posts]]
                for year, month, posts in blog.archives()
            ]
        },
        "sitemap": {
            "entries": [
                {
                    "url": entry.url,
                    "absolute": entry.absolute,
                    "priority": entry.priority,
                    "lastmod": entry.lastmod,
                }
                for entry in sitemap
            ]
        },
    }


def page_context(
    shared: Mapping[str, Any],
    *,
    url: URL,
    meta: PageMeta,
    navbar: list[NavEntry],
    members: TagMembers | None,
) -> dict[str, Any]:
    context: dict[str, Any] = dict(meta.extra)
    context.update(shared)
    context.update(
        {
            "title": meta.title,
            "navbar": navbar_context(url.path, navbar),
            "content": "",
            "url_for_this": url.path,
            "og_url": url.absolute,
            "og_type": meta.og_type or "website",
            "og_title": meta.og_title or meta.title,
            "og_description": meta.og_description,
            "tags": list(meta.tags),
            "excerpt": meta.excerpt,
            "featured": meta.featured,
        }
    )
    if meta.slug:
        context["slug"] = meta.slug
    if meta.date is not None:
        context["date"] = meta.date.isoformat()
        context.update(meta.route_values())
    if members is not None:
        context["tag"] = members.tag
        context["posts"] = [post.as_context() for post in members.posts]
    return context


def render_record(
    templating: JinjaTemplating,
    *,
    kind: ContentKind,
    meta: PageMeta,
    body: str,
    context: dict[str, Any],
    markdown_extensions: tuple[str, ...],
    source: str,
) -> str:
    """Render one record; template globals are available inside the body too."""

    if meta.markdown:
        html = markdown_lib.markdown(body, extensions=list(markdown_extensions))
        context["content"] = templating.render_string(html, context, source=source)
    elif meta.template and body.strip():
        context["content"] = templating.render_string(body, context, source=source)

    if meta.template:
        return templating.render(meta.template, context, source=source)
    if kind is ContentKind.SITEMAP and not body.strip():
        return templating.render_string(DEFAULT_SITEMAP_TEMPLATE, context, source=source)
    if meta.markdown:
        return context["content"]
    return templating.render_string(body, context, source=source)


@system(
    "render_pages",
    reads=(
        SiteConfig,
        BlogIndex,
        Kind,
        URL,
        PageMeta,
        Body,
        SourcePath,
        TagMembers,
        NavEntry,
        SitemapEntry,
        TemplateSource,
    ),
    writes=(Rendered,),
)
def render_pages(ctx: SystemContext) -> None:
    """Produce one rendered document per page-like record."""

    config = ctx.resource(SiteConfig)
    blog = ctx.resource(BlogIndex) if ctx.has_resource(BlogIndex) else BlogIndex()

    templates = {source.name: source.text for _entity, source in ctx.query(TemplateSource)}
    templating = JinjaTemplating(
        templates, globals=template_globals(config.routes, blog, tag_route=config.tags.route)
    )
    navbar = sorted((entry for _entity, entry in ctx.query(NavEntry)), key=lambda e: e.position)
    sitemap = sorted_sitemap_entries(entry for _entity, entry in ctx.query(SitemapEntry))

    targets: list[tuple[Entity, ContentKind, URL, PageMeta]] = [
        (entity, kind.value, url, meta)
        for entity, kind, url, meta in ctx.query(Kind, URL, PageMeta, without=(Rendered,))
        if kind.value in RENDERED_KINDS
    ]

    def render_one(
        target: tuple[Entity, ContentKind, URL, PageMeta], shared: Mapping[str, Any]
    ) -> Rendered | RenderFault:
        entity, kind, url, meta = target
        source_path = ctx.try_get(entity, SourcePath)
        source = source_path.label if source_path else url.path
        body = ctx.try_get(entity, Body)
        context = page_context(
            shared,
            url=url,
            meta=meta,
            navbar=navbar,
            members=ctx.try_get(entity, TagMembers),
        )
        try:
            markup = render_record(
                templating,
                kind=kind,
                meta=meta,
                body=body.text if body else "",
                context=context,
                markdown_extensions=config.markdown_extensions,
                source=source,
            )
        except RenderFault as fault:
            return fault
        return Rendered(markup)

    def render_batch(
        batch: list[tuple[Entity, ContentKind, URL, PageMeta]], shared: Mapping[str, Any]
    ) -> set[str]:
        done: set[str] = set()
        outcomes = ctx.par_map(lambda target: render_one(target, shared), batch)
        for (entity, _kind, url, _meta), outcome in zip(batch, outcomes):
            if isinstance(outcome, RenderFault):
                ctx.report(outcome)
                continue
            ctx.insert(entity, outcome)
            done.add(url.path)
        return done

    # Sitemaps render last and list only what is actually published.
    pages = [target for target in targets if target[1] is not ContentKind.SITEMAP]
    sitemaps = [target for target in targets if target[1] is ContentKind.SITEMAP]
    published = {
        url.path for _entity, kind, url in ctx.query(Kind, URL) if kind.value not in RENDERED_KINDS
    }
    rendered = render_batch(pages, site_context(config, blog, sitemap))
    live = [entry for entry in sitemap if entry.url in published or entry.url in rendered]
    if len(live) < len(sitemap):
        ctx.logger.warning("Left %d unrendered page(s) out of the sitemap", len(sitemap) - len(live))
    rendered |= render_batch(sitemaps, site_context(config, blog, live))
    ctx.logger.info("Rendered %d of %d page(s)", len(rendered), len(targets))


RENDERING_SYSTEMS = (assign_output_paths, render_pages)
