from __future__ import annotations

import posixpath
import re
from pathlib import PurePosixPath
from typing import Any, Mapping
from urllib.parse import quote, unquote

from suji.config import route_placeholders
from suji.errors import ConfigFault


def fill_route(
    routes: Mapping[str, str],
    route: str,
    values: Mapping[str, Any],
    *,
    source: str | None = None,
) -> str:
    """Expand a named route template with `values`; every placeholder must resolve."""

    template = routes.get(route)
    if template is None:
        available = ", ".join(sorted(routes)) or "<none>"
        raise ConfigFault(f"No route defined for {route} (available: {available})", source=source)

    url = template
    missing: list[str] = []
    for name in route_placeholders(template):
        value = values.get(name)
        if isinstance(value, bool) or not isinstance(value, (str, int)) or str(value) == "":
            missing.append(name)
            continue
        url = url.replace("{" + name + "}", str(value))
    if missing:
        raise ConfigFault(
            f"Route {route} ({template}) is missing value(s) for: {', '.join(sorted(set(missing)))}",
            source=source,
        )
    return url


_SLUG_STRIP_RE = re.compile(r"[^\w]+", re.UNICODE)


def slugify(text: str) -> str:
    """`Python Tips` -> `python-tips`; falls back to the stripped text when nothing survives."""

    slug = _SLUG_STRIP_RE.sub("-", text.strip().lower()).strip("-_")
    return slug or text.strip()


def tag_route_values(tag: str) -> dict[str, str]:
    """Route values for a tag page. `{tag}` is percent-encoded so distinct tags never share a URL."""

    return {"tag": quote(tag, safe=""), "tag_slug": slugify(tag), "tag_name": tag}


def static_url(relative_path: PurePosixPath) -> str:
    return "/" + relative_path.as_posix().lstrip("/")


def relative_output_path(url: str) -> PurePosixPath:
    """
    Map a site URL onto a path under the output root.

    `/posts/hello/` and `/posts/hello` both become `posts/hello/index.html`;
    a last segment with an extension (`/sitemap.xml`) maps to itself. Percent-escapes
    are decoded, so `/tags/Web%20Dev/` lands in `tags/Web Dev/index.html`.
    """

    path = unquote(url.split("?", 1)[0].split("#", 1)[0])
    # normpath on an absolute path cannot climb above "/".
    relative = posixpath.normpath("/" + path.lstrip("/")).lstrip("/")
    if not relative:
        return PurePosixPath("index.html")
    last = relative.rsplit("/", 1)[-1]
    if path.endswith("/") or "." not in last:
        return PurePosixPath(relative) / "index.html"
    return PurePosixPath(relative)
