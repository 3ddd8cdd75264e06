"""Dynamic spawning: one generated tag index record per distinct tag.

Spawned records go straight on to rendering; they never revisit URL analysis or
indexing, so tag pages are never themselves tagged or indexed.
"""

from __future__ import annotations

from stagekit import SystemContext, system

from suji.analysis import record_output_path
from suji.components import (
    URL,
    ContentKind,
    CopyVerbatim,
    ExcludeFromSitemap,
    IsGeneratedIndex,
    Kind,
    PageMeta,
    SitemapEntry,
    SourcePath,
    TagIndex,
    TagMembers,
)
from suji.config import SiteConfig
from suji.errors import URLConflictFault
from suji.indexing import post_sort_key, post_summary
from suji.routes import fill_route, relative_output_path, tag_route_values


@system(
    "spawn_tag_pages", reads=(SiteConfig, TagIndex, URL, PageMeta, SourcePath, CopyVerbatim)
)
def spawn_tag_pages(ctx: SystemContext) -> None:
    """Create a tag index page for every tag found by indexing."""

    config = ctx.resource(SiteConfig)
    if not config.tags.enabled or not ctx.has_resource(TagIndex):
        return
    index = ctx.resource(TagIndex)
    if not index.members:
        return

    taken: dict[str, str] = {
        record_output_path(ctx, entity, url).as_posix(): url.path for entity, url in ctx.query(URL)
    }
    conflicts: dict[str, list[str]] = {}

    for tag, entities in index.members.items():
        posts = sorted(
            (post_summary(ctx.get(entity, URL), ctx.get(entity, PageMeta)) for entity in entities),
            key=post_sort_key,
        )
        path = fill_route(
            config.routes,
            config.tags.route,
            tag_route_values(tag),
            source=f"tag:{tag}",
        )
        key = relative_output_path(path).as_posix()
        if key in taken:
            conflicts.setdefault(path, [taken[key]]).append(f"tag:{tag}")
            continue
        taken[key] = f"tag:{tag}"

        url = URL(path=path, absolute=config.absolute_url(path))
        meta = PageMeta(
            title=tag,
            route=config.tags.route,
            template=config.tags.template,
            tags=(),
            extra={"tag": tag, "post_count": len(posts)},
        )
        components = [
            Kind(ContentKind.GENERATED_TAG_INDEX),
            IsGeneratedIndex(),
            meta,
            TagMembers(tag=tag, posts=tuple(posts)),
            url,
        ]
        if config.tags.sitemap:
            ctx.spawn(
                Kind(ContentKind.SITEMAP_ENTRY),
                SitemapEntry(url=url.path, absolute=url.absolute),
            )
        else:
            components.append(ExcludeFromSitemap())
        ctx.spawn(*components)

    if conflicts:
        raise URLConflictFault(conflicts)
    ctx.logger.info("Spawned %d tag page(s)", len(index.members))


SPAWNING_SYSTEMS = (spawn_tag_pages,)
