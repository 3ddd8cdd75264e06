"""Component and resource types attached to records in the build store.

Content kind is the single discriminant per record; everything else is an
orthogonal component, so new facts never multiply the kinds.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path, PurePosixPath
from typing import Any, Mapping

from stagekit import Entity

from suji.config import SourceSpec


class ContentKind(str, enum.Enum):
    SOURCE_ENTRY = "source_entry"
    STATIC_CONTENT = "static_content"
    TEMPLATE = "template"
    SITEMAP = "sitemap"
    SINGLE_PAGE = "single_page"
    BLOG_POST = "blog_post"
    ARCHIVE_PAGE = "archive_page"
    RSS_PAGE = "rss_page"
    GENERATED_TAG_INDEX = "generated_tag_index"
    NAV_ENTRY = "nav_entry"
    SITEMAP_ENTRY = "sitemap_entry"


# Kinds whose records end up as rendered markup.
RENDERED_KINDS: frozenset[ContentKind] = frozenset(
    {
        ContentKind.SITEMAP,
        ContentKind.SINGLE_PAGE,
        ContentKind.BLOG_POST,
        ContentKind.ARCHIVE_PAGE,
        ContentKind.RSS_PAGE,
        ContentKind.GENERATED_TAG_INDEX,
    }
)

# Source kind name (config) -> content kind of the loaded records.
SOURCE_KIND_TO_CONTENT_KIND: Mapping[str, ContentKind] = {
    "static": ContentKind.STATIC_CONTENT,
    "template": ContentKind.TEMPLATE,
    "single_page": ContentKind.SINGLE_PAGE,
    "blog_post": ContentKind.BLOG_POST,
    "archive_page": ContentKind.ARCHIVE_PAGE,
    "rss_page": ContentKind.RSS_PAGE,
    "sitemap": ContentKind.SITEMAP,
}


@dataclass(frozen=True)
class Kind:
    value: ContentKind


@dataclass(frozen=True)
class SourceEntry:
    spec: SourceSpec


@dataclass(frozen=True)
class SourcePath:
    relative: PurePosixPath
    absolute: Path
    entry: str

    @property
    def label(self) -> str:
        return self.relative.as_posix()


@dataclass(frozen=True)
class URL:
    path: str
    absolute: str


@dataclass(frozen=True)
class RelativeOutputPath:
    path: PurePosixPath


@dataclass(frozen=True)
class AbsoluteOutputPath:
    path: Path


@dataclass(frozen=True)
class PageMeta:
    title: str
    route: str | None = None
    template: str | None = None
    markdown: bool = False
    slug: str | None = None
    date: date | None = None
    tags: tuple[str, ...] = ()
    excerpt: str = ""
    featured: bool = False
    navbar: int | bool | None = None
    sitemap_priority: float | None = None
    og_title: str = ""
    og_type: str = ""
    og_description: str = ""
    extra: Mapping[str, Any] = field(default_factory=dict)

    def route_values(self) -> dict[str, Any]:
        values: dict[str, Any] = {
            key: value for key, value in self.extra.items() if isinstance(value, (str, int)) and not isinstance(value, bool)
        }
        if self.slug:
            values["slug"] = self.slug
        if self.date is not None:
            values.update(date_parts(self.date))
        return values


@dataclass(frozen=True)
class Body:
    text: str


@dataclass(frozen=True)
class TemplateSource:
    name: str
    text: str


@dataclass(frozen=True)
class Rendered:
    markup: str


@dataclass(frozen=True)
class InNavbar:
    order: int | None = None


@dataclass(frozen=True)
class NavEntry:
    url: str
    title: str
    order: int | None
    position: int


@dataclass(frozen=True)
class SitemapEntry:
    url: str
    absolute: str
    priority: float | None = None
    lastmod: str | None = None


@dataclass(frozen=True)
class PostSummary:
    """What a listing page needs to know about one blog post."""

    url: str
    slug: str
    title: str
    excerpt: str
    date: str
    year: str
    month: str
    month_name: str
    day: str
    tags: tuple[str, ...]
    featured: bool

    def as_context(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "slug": self.slug,
            "title": self.title,
            "excerpt": self.excerpt,
            "date": self.date,
            "year": self.year,
            "month": self.month,
            "month_name": self.month_name,
            "day": self.day,
            "tags": list(self.tags),
            "featured": self.featured,
        }


@dataclass(frozen=True)
class TagMembers:
    tag: str
    posts: tuple[PostSummary, ...]


# Marker components.
@dataclass(frozen=True)
class IsStaticContent:
    pass


@dataclass(frozen=True)
class CopyVerbatim:
    pass


@dataclass(frozen=True)
class ExcludeFromSitemap:
    pass


@dataclass(frozen=True)
class IsBlogPost:
    pass


@dataclass(frozen=True)
class IsGeneratedIndex:
    pass


MONTH_NAMES: Mapping[str, str] = {
    "01": "January",
    "02": "February",
    "03": "March",
    "04": "April",
    "05": "May",
    "06": "June",
    "07": "July",
    "08": "August",
    "09": "September",
    "10": "October",
    "11": "November",
    "12": "December",
}


def date_parts(value: date) -> dict[str, str]:
    month = f"{value.month:02d}"
    return {
        "year": f"{value.year:04d}",
        "month": month,
        "day": f"{value.day:02d}",
        "month_name": MONTH_NAMES[month],
    }


@dataclass(frozen=True)
class BlogIndex:
    """Every blog post, newest first (ties by URL)."""

    entries: tuple[PostSummary, ...] = ()

    def featured(self) -> list[PostSummary]:
        return [entry for entry in self.entries if entry.featured]

    def recent(self, *, skip_featured: bool = False) -> list[PostSummary]:
        return [entry for entry in self.entries if not (skip_featured and entry.featured)]

    def tagged(self, tag: str) -> list[PostSummary]:
        return [entry for entry in self.entries if tag in entry.tags]

    def tags_and_counts(self) -> list[tuple[str, int]]:
        counts: dict[str, int] = {}
        for entry in self.entries:
            for tag in entry.tags:
                counts[tag] = counts.get(tag, 0) + 1
        return sorted(counts.items(), key=lambda item: (-item[1], item[0]))

    def archives(self) -> list[tuple[str, str, list[PostSummary]]]:
        """(year, month name, posts) groups, newest month first."""

        groups: dict[tuple[str, str], list[PostSummary]] = {}
        names: dict[tuple[str, str], str] = {}
        for entry in self.entries:
            key = (entry.year, entry.month)
            groups.setdefault(key, []).append(entry)
            names[key] = entry.month_name
        return [(key[0], names[key], groups[key]) for key in sorted(groups, reverse=True)]


@dataclass(frozen=True)
class TagIndex:
    """Tag -> member blog post records; consumed by the spawner only."""

    members: Mapping[str, tuple[Entity, ...]] = field(default_factory=dict)
