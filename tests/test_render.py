import pytest

from site_fixtures import make_config, run_stages, write, write_post, write_templates
from suji.components import URL, BlogIndex, PostSummary, RelativeOutputPath, Rendered
from suji.errors import RenderFault
from suji.render import is_active
from suji.templating import JinjaTemplating, template_globals


def _summary(slug, date, *, featured=False, tags=()):
    year, month, day = date.split("-")
    return PostSummary(
        url=f"/posts/{slug}/",
        slug=slug,
        title=slug.upper(),
        excerpt="",
        date=date,
        year=year,
        month=month,
        month_name="",
        day=day,
        tags=tuple(tags),
        featured=featured,
    )


def _rendered_by_url(store):
    return {
        store.get(entity, URL).path: rendered.markup for entity, rendered in store.query(Rendered)
    }


def test_templating_renders_named_templates_and_wraps_errors():
    templating = JinjaTemplating({"hello.html": "Hi {{ name }}", "broken.html": "{% if %}"})

    assert templating.render("hello.html", {"name": "<b>"}) == "Hi &lt;b&gt;"
    assert templating.render_string("{{ name }}!", {"name": "<b>"}) == "<b>!"

    with pytest.raises(RenderFault, match=r"Error rendering template missing.html") as excinfo:
        templating.render("missing.html", {}, source="pages/x.html")
    assert excinfo.value.source == "pages/x.html"

    with pytest.raises(RenderFault):
        templating.render("broken.html", {})


def test_template_globals_query_the_blog_index():
    blog = BlogIndex(
        entries=(
            _summary("c", "2024-03-01", featured=True, tags=("x",)),
            _summary("b", "2024-02-01", tags=("x", "y")),
            _summary("a", "2024-01-01", tags=("y",)),
        )
    )
    routes = {"post": "/posts/{slug}/", "tag": "/tags/{tag}/"}
    templating = JinjaTemplating({}, globals=template_globals(routes, blog))

    def render(text):
        return templating.render_string(text, {})

    assert render("{% for p in blogposts_featured(5) %}{{ p.slug }}{% endfor %}") == "c"
    assert render("{% for p in blogposts_recent(5) %}{{ p.slug }}{% endfor %}") == "ba"
    assert render("{% for p in blogposts_tagged(1, 'y') %}{{ p.slug }}{% endfor %}") == "b"
    assert render("{% for p in blogposts_all(2) %}{{ p.slug }}{% endfor %}") == "cb"
    assert render("{{ url_for('post', slug='hello') }}") == "/posts/hello/"
    assert render("{{ url_for_tag('C++') }}") == "/tags/C%2B%2B/"

    with pytest.raises(RenderFault, match=r"No route defined for nope"):
        render("{{ url_for('nope') }}")


def test_is_active_matches_exact_urls_and_prefixes_except_root():
    assert is_active("/", "/")
    assert not is_active("/about/", "/")
    assert is_active("/posts/a/", "/posts/")
    assert not is_active("/posts/", "/about/")


def test_blog_posts_render_markdown_into_their_template(tmp_path):
    site = tmp_path / "site"
    write_templates(site)
    write_post(
        site,
        "hello.md",
        title="Hello",
        date="2024-03-05",
        tags=["python"],
        body="Some *emphasis*.\n\nHome is {{ url_for('home') }}.",
    )

    store = run_stages(make_config(tmp_path), until="rendering")

    pages = _rendered_by_url(store)
    post = pages["/posts/hello/"]
    assert "<title>Hello | Example</title>" in post
    assert "<em>emphasis</em>" in post
    assert "Home is /." in post
    assert 'data-date="2024-03-05"' in post
    assert "<li>python</li>" in post

    tag_page = pages["/tags/python/"]
    assert "Tag: python" in tag_page
    assert '<a href="/posts/hello/">Hello</a> 2024-03-05' in tag_page

    paths = {store.get(entity, URL).path: rel.path.as_posix() for entity, rel in store.query(RelativeOutputPath)}
    assert paths["/posts/hello/"] == "posts/hello/index.html"
    assert paths["/tags/python/"] == "tags/python/index.html"


def test_pages_without_template_render_their_body_with_navbar(tmp_path):
    site = tmp_path / "site"
    write(
        site / "pages" / "index.html",
        "---\ntitle: Home\nroute: home\nnavbar: 1\nhero: Welcome\n---\n"
        "{% for item in navbar %}[{{ item.title }}{% if item.active %}*{% endif %}]{% endfor %} {{ hero }}\n",
    )
    write(site / "pages" / "about.html", "---\ntitle: About\nroute: page\nslug: about\nnavbar: 2\n---\nabout\n")

    store = run_stages(make_config(tmp_path), until="rendering")

    pages = _rendered_by_url(store)
    assert pages["/"] == "[Home*][About] Welcome\n"
    assert pages["/about/"] == "about\n"


def test_sitemap_uses_default_xml_template_when_body_is_empty(tmp_path):
    site = tmp_path / "site"
    write(site / "sitemap.xml", "")
    write(site / "pages" / "index.html", "---\ntitle: Home\nroute: home\n---\nhome\n")
    write(site / "static" / "a.css", "a{}")

    store = run_stages(make_config(tmp_path), until="rendering")

    sitemap = _rendered_by_url(store)["/sitemap.xml"]
    assert sitemap.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert "<loc>https://example.com/</loc>" in sitemap
    assert "a.css" not in sitemap
    assert "sitemap.xml</loc>" not in sitemap


def test_render_faults_are_reported_per_record(tmp_path):
    site = tmp_path / "site"
    write(site / "pages" / "good.html", "---\ntitle: Good\nroute: page\nslug: good\n---\nfine\n")
    write(site / "pages" / "bad.html", "---\ntitle: Bad\nroute: page\nslug: bad\n---\n{% for %}\n")

    reports: list = []
    store = run_stages(make_config(tmp_path), until="rendering", reports=reports)

    assert [fault.source for fault in reports] == ["pages/bad.html"]
    assert isinstance(reports[0], RenderFault)
    assert set(_rendered_by_url(store)) == {"/good/"}
