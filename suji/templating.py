"""Templating collaborator: a thin Jinja2 wrapper exposing `render(name, context)`."""

from __future__ import annotations

from typing import Any, Callable, Mapping

from jinja2 import DictLoader, Environment, TemplateError, select_autoescape

from suji.components import BlogIndex, PostSummary
from suji.errors import ConfigFault, RenderFault
from suji.routes import fill_route, tag_route_values


class JinjaTemplating:
    def __init__(
        self,
        templates: Mapping[str, str],
        *,
        globals: Mapping[str, Any] | None = None,
    ) -> None:
        self._env = Environment(
            loader=DictLoader(dict(templates)),
            autoescape=select_autoescape(("html", "htm", "xml"), default_for_string=False),
            keep_trailing_newline=True,
        )
        if globals:
            self._env.globals.update(globals)

    def render(self, template_name: str, context: Mapping[str, Any], *, source: str | None = None) -> str:
        try:
            return self._env.get_template(template_name).render(dict(context))
        except (TemplateError, ConfigFault, TypeError, ValueError) as exc:
            raise RenderFault(
                f"Error rendering template {template_name}: {exc}", source=source or template_name
            ) from exc

    def render_string(self, text: str, context: Mapping[str, Any], *, source: str | None = None) -> str:
        try:
            return self._env.from_string(text).render(dict(context))
        except (TemplateError, ConfigFault, TypeError, ValueError) as exc:
            raise RenderFault(f"Error rendering inline template: {exc}", source=source) from exc


def _posts(entries: list[PostSummary], count: int, tag: str | None = None) -> list[dict[str, Any]]:
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise ValueError(f"invalid count: {count!r}")
    selected = [entry for entry in entries if tag is None or tag in entry.tags]
    return [entry.as_context() for entry in selected[:count]]


def template_globals(
    routes: Mapping[str, str], blog: BlogIndex, *, tag_route: str = "tag"
) -> dict[str, Callable[..., Any]]:
    """Functions available to every template."""

    def url_for(route: str, **values: Any) -> str:
        return fill_route(routes, route, values, source=f"url_for({route})")

    def url_for_tag(tag: str) -> str:
        return fill_route(routes, tag_route, tag_route_values(tag), source=f"url_for_tag({tag})")

    def blogposts_featured(count: int) -> list[dict[str, Any]]:
        return _posts(blog.featured(), count)

    def blogposts_recent(count: int, tag: str | None = None) -> list[dict[str, Any]]:
        return _posts(blog.recent(skip_featured=True), count, tag)

    def blogposts_tagged(count: int, tag: str) -> list[dict[str, Any]]:
        return _posts(blog.recent(), count, tag)

    def blogposts_all(count: int) -> list[dict[str, Any]]:
        return _posts(blog.recent(), count)

    return {
        "url_for": url_for,
        "url_for_tag": url_for_tag,
        "blogposts_featured": blogposts_featured,
        "blogposts_recent": blogposts_recent,
        "blogposts_tagged": blogposts_tagged,
        "blogposts_all": blogposts_all,
    }
