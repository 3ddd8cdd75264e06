"""Fault taxonomy for a site build.

Every fault names the source it is attributed to (a file, a source entry, a URL)
so the operator can see which input to fix.
"""

from __future__ import annotations

from typing import Sequence


class SiteFault(Exception):
    kind = "fault"

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def describe(self) -> str:
        if self.source:
            return f"{self.kind}: {self.source}: {self.message}"
        return f"{self.kind}: {self.message}"


class ConfigFault(SiteFault):
    """Malformed or unresolvable configuration; always fatal."""

    kind = "config"


class LoadFault(SiteFault):
    """A source file is unreadable or carries malformed metadata."""

    kind = "load"


class URLConflictFault(SiteFault):
    """Two or more records resolve to the same URL; always fatal."""

    kind = "url_conflict"

    def __init__(self, conflicts: dict[str, list[str]]) -> None:
        self.conflicts = {url: sorted(sources) for url, sources in sorted(conflicts.items())}
        lines = [f"{url} <- {', '.join(sources)}" for url, sources in self.conflicts.items()]
        super().__init__("Duplicate URLs: " + "; ".join(lines), source=None)


class RenderFault(SiteFault):
    kind = "render"


class IOFault(SiteFault):
    kind = "io"


class BuildFailed(Exception):
    """Raised when the fault policy aborts a run; carries every fault collected so far."""

    def __init__(self, faults: Sequence[SiteFault], *, stage: str | None = None) -> None:
        self.faults = list(faults)
        self.stage = stage
        where = f" during {stage}" if stage else ""
        super().__init__(f"Build failed{where} with {len(self.faults)} fault(s)")
