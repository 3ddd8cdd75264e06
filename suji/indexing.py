"""Indexing: derive aggregate records and the blog/tag indices from loaded content."""

from __future__ import annotations

from typing import Iterable

from stagekit import Entity, SystemContext, system

from suji.components import (
    URL,
    BlogIndex,
    ContentKind,
    ExcludeFromSitemap,
    InNavbar,
    IsBlogPost,
    Kind,
    NavEntry,
    PageMeta,
    PostSummary,
    SitemapEntry,
    TagIndex,
    date_parts,
)


def nav_sort_key(order: int | None, url: str) -> tuple[bool, int, str]:
    # Explicit orders first (ascending), then unordered entries; URL breaks ties.
    return (order is None, order or 0, url)


def sitemap_sort_key(entry: SitemapEntry) -> tuple[bool, float, str]:
    # Higher priority first, unprioritized last; URL breaks ties.
    return (entry.priority is None, -(entry.priority or 0.0), entry.url)


def sorted_sitemap_entries(entries: Iterable[SitemapEntry]) -> list[SitemapEntry]:
    return sorted(entries, key=sitemap_sort_key)


def post_sort_key(summary: PostSummary) -> tuple[int, str]:
    year, month, day = (int(part) for part in summary.date.split("-"))
    return (-(year * 10000 + month * 100 + day), summary.url)


@system("index_navbar", reads=(URL, InNavbar, PageMeta))
def index_navbar(ctx: SystemContext) -> None:
    """One navigation-entry record per record flagged for the navbar."""

    rows: list[tuple[int | None, str, str]] = []
    for entity, url, flag in ctx.query(URL, InNavbar):
        meta = ctx.try_get(entity, PageMeta)
        rows.append((flag.order, url.path, meta.title if meta else url.path))
    rows.sort(key=lambda row: nav_sort_key(row[0], row[1]))
    for position, (order, path, title) in enumerate(rows):
        ctx.spawn(
            Kind(ContentKind.NAV_ENTRY),
            NavEntry(url=path, title=title, order=order, position=position),
        )
    ctx.logger.info("Indexed %d navbar entr%s", len(rows), "y" if len(rows) == 1 else "ies")


def sitemap_entry_for(url: URL, meta: PageMeta | None) -> SitemapEntry:
    return SitemapEntry(
        url=url.path,
        absolute=url.absolute,
        priority=meta.sitemap_priority if meta else None,
        lastmod=meta.date.isoformat() if meta and meta.date else None,
    )


@system("index_sitemap", reads=(URL, ExcludeFromSitemap, PageMeta))
def index_sitemap(ctx: SystemContext) -> None:
    """One sitemap-entry record per published record not excluded from the sitemap."""

    entries = [
        sitemap_entry_for(url, ctx.try_get(entity, PageMeta))
        for entity, url in ctx.query(URL, without=(ExcludeFromSitemap,))
    ]
    for entry in sorted_sitemap_entries(entries):
        ctx.spawn(Kind(ContentKind.SITEMAP_ENTRY), entry)
    ctx.logger.info("Indexed %d sitemap entr%s", len(entries), "y" if len(entries) == 1 else "ies")


def post_summary(url: URL, meta: PageMeta) -> PostSummary:
    if meta.date is None:
        raise ValueError(f"Blog post {url.path} has no date")
    parts = date_parts(meta.date)
    return PostSummary(
        url=url.path,
        slug=meta.slug or "",
        title=meta.title,
        excerpt=meta.excerpt,
        date=meta.date.isoformat(),
        year=parts["year"],
        month=parts["month"],
        month_name=parts["month_name"],
        day=parts["day"],
        tags=meta.tags,
        featured=meta.featured,
    )


@system("index_blog", reads=(IsBlogPost, URL, PageMeta), writes=(BlogIndex, TagIndex))
def index_blog(ctx: SystemContext) -> None:
    """Build the newest-first blog index and the tag -> posts multimap."""

    posts: list[tuple[PostSummary, Entity]] = [
        (post_summary(url, meta), entity)
        for entity, _flag, url, meta in ctx.query(IsBlogPost, URL, PageMeta)
    ]
    posts.sort(key=lambda item: post_sort_key(item[0]))

    members: dict[str, list[Entity]] = {}
    for summary, entity in posts:
        for tag in summary.tags:
            members.setdefault(tag, []).append(entity)

    ctx.set_resource(BlogIndex(entries=tuple(summary for summary, _entity in posts)))
    ctx.set_resource(TagIndex(members={tag: tuple(members[tag]) for tag in sorted(members)}))
    ctx.logger.info("Indexed %d blog post(s) across %d tag(s)", len(posts), len(members))


INDEXING_SYSTEMS = (index_navbar, index_sitemap, index_blog)
