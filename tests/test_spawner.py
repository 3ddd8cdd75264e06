import pytest

from site_fixtures import make_config, run_stages, write, write_post
from suji.components import (
    URL,
    ContentKind,
    ExcludeFromSitemap,
    IsGeneratedIndex,
    Kind,
    PageMeta,
    SitemapEntry,
    SourcePath,
    TagMembers,
)
from suji.errors import URLConflictFault


def _tag_pages(store):
    return {
        store.get(entity, TagMembers).tag: entity
        for entity, kind in store.query(Kind)
        if kind.value is ContentKind.GENERATED_TAG_INDEX
    }


def test_one_tag_page_per_distinct_tag(tmp_path):
    site = tmp_path / "site"
    write_post(site, "a.md", title="A", date="2024-01-01", tags=["python"])
    write_post(site, "b.md", title="B", date="2024-02-01", tags=["python", "Web Dev"])

    store = run_stages(make_config(tmp_path), until="dynamic_spawning")

    pages = _tag_pages(store)
    assert sorted(pages) == ["Web Dev", "python"]

    python = pages["python"]
    assert store.has(python, IsGeneratedIndex)
    assert not store.has(python, SourcePath)
    assert store.get(python, URL) == URL("/tags/python/", "https://example.com/tags/python/")
    assert [post.url for post in store.get(python, TagMembers).posts] == ["/posts/b/", "/posts/a/"]
    meta = store.get(python, PageMeta)
    assert meta.template == "tag.html"
    assert meta.extra == {"tag": "python", "post_count": 2}

    assert store.get(pages["Web Dev"], URL).path == "/tags/Web%20Dev/"


def test_tag_pages_get_sitemap_entries_unless_disabled(tmp_path):
    site = tmp_path / "site"
    write_post(site, "a.md", title="A", date="2024-01-01", tags=["python"])

    store = run_stages(make_config(tmp_path), until="dynamic_spawning")
    assert "/tags/python/" in {entry.url for _e, entry in store.query(SitemapEntry)}

    store = run_stages(
        make_config(tmp_path, tags={"sitemap": False}), until="dynamic_spawning"
    )
    assert "/tags/python/" not in {entry.url for _e, entry in store.query(SitemapEntry)}
    assert store.has(_tag_pages(store)["python"], ExcludeFromSitemap)


def test_no_tag_pages_when_disabled_or_untagged(tmp_path):
    site = tmp_path / "site"
    write_post(site, "a.md", title="A", date="2024-01-01", tags=[])
    assert _tag_pages(run_stages(make_config(tmp_path), until="dynamic_spawning")) == {}

    write_post(site, "b.md", title="B", date="2024-01-02", tags=["x"])
    store = run_stages(make_config(tmp_path, tags={"enabled": False}), until="dynamic_spawning")
    assert _tag_pages(store) == {}


def test_tag_page_colliding_with_existing_url_is_fatal(tmp_path):
    site = tmp_path / "site"
    write_post(site, "a.md", title="A", date="2024-01-01", tags=["python"])
    write(site / "pages" / "py.html", "---\ntitle: Py\nroute: page\nslug: tags/python\n---\n")

    with pytest.raises(URLConflictFault, match=r"/tags/python/") as excinfo:
        run_stages(make_config(tmp_path), until="dynamic_spawning")
    assert excinfo.value.stage_name == "dynamic_spawning"


def test_tags_differing_only_in_case_or_punctuation_get_their_own_pages(tmp_path):
    site = tmp_path / "site"
    write_post(site, "a.md", title="A", date="2024-01-01", tags=["Python", "C++"])
    write_post(site, "b.md", title="B", date="2024-02-01", tags=["python", "C#"])

    store = run_stages(make_config(tmp_path), until="dynamic_spawning")

    pages = _tag_pages(store)
    assert sorted(pages) == ["C#", "C++", "Python", "python"]
    urls = {tag: store.get(entity, URL).path for tag, entity in pages.items()}
    assert urls == {
        "C#": "/tags/C%23/",
        "C++": "/tags/C%2B%2B/",
        "Python": "/tags/Python/",
        "python": "/tags/python/",
    }
    assert [post.url for post in store.get(pages["Python"], TagMembers).posts] == ["/posts/a/"]


def test_tag_route_can_use_the_slug_instead(tmp_path):
    site = tmp_path / "site"
    write_post(site, "a.md", title="A", date="2024-01-01", tags=["Web Dev"])
    routes = {"blogpost": "/posts/{slug}/", "tag": "/topics/{tag_slug}/"}

    store = run_stages(make_config(tmp_path, routes=routes), until="dynamic_spawning")

    assert store.get(_tag_pages(store)["Web Dev"], URL).path == "/topics/web-dev/"
