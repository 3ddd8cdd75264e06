from __future__ import annotations

from pathlib import PurePosixPath

from stagekit import Entity, SystemContext, system

from suji.components import URL, ContentKind, CopyVerbatim, Kind, PageMeta, SourcePath
from suji.config import SiteConfig
from suji.errors import ConfigFault, LoadFault, URLConflictFault
from suji.routes import fill_route, relative_output_path, static_url

_UNPUBLISHED = frozenset({ContentKind.TEMPLATE, ContentKind.SOURCE_ENTRY})


def record_output_path(ctx: SystemContext, entity: Entity, url: URL) -> PurePosixPath:
    """Verbatim copies keep their source path (`static/CNAME`); everything else follows its URL."""

    if ctx.has(entity, CopyVerbatim):
        return ctx.get(entity, SourcePath).relative
    return relative_output_path(url.path)


@system("assign_urls", reads=(SiteConfig, Kind, SourcePath, PageMeta), writes=(URL,))
def assign_urls(ctx: SystemContext) -> None:
    """Give every loaded, publishable record its canonical URL."""

    config = ctx.resource(SiteConfig)
    assigned = 0
    for entity, kind, source in ctx.query(Kind, SourcePath, without=(URL,)):
        if kind.value in _UNPUBLISHED:
            continue
        meta = ctx.try_get(entity, PageMeta)
        if meta is not None and meta.route:
            try:
                path = fill_route(config.routes, meta.route, meta.route_values(), source=source.label)
            except ConfigFault as fault:
                # Attributable to this record's metadata, so it follows build.on_error.
                ctx.report(LoadFault(fault.message, source=source.label))
                continue
        else:
            path = static_url(source.relative)
        ctx.insert(entity, URL(path=path, absolute=config.absolute_url(path)))
        assigned += 1
    ctx.logger.info("Assigned %d URL(s)", assigned)


@system(
    "detect_url_conflicts", reads=(URL, SourcePath, CopyVerbatim), after=("assign_urls",)
)
def detect_url_conflicts(ctx: SystemContext) -> None:
    """Fail the run when two records resolve to the same URL."""

    # Keyed by output path so `/a/` and `/a` collide too.
    owners: dict[str, list[str]] = {}
    urls: dict[str, set[str]] = {}
    for entity, url in ctx.query(URL):
        source = ctx.try_get(entity, SourcePath)
        key = record_output_path(ctx, entity, url).as_posix()
        owners.setdefault(key, []).append(source.label if source else f"<record {entity}>")
        urls.setdefault(key, set()).add(url.path)
    conflicts = {
        " | ".join(sorted(urls[key])): sources for key, sources in owners.items() if len(sources) > 1
    }
    if conflicts:
        raise URLConflictFault(conflicts)


URL_ANALYSIS_SYSTEMS = (assign_urls, detect_url_conflicts)
