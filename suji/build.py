"""The build entry point: the fixed stage list and one full run over a fresh store."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from stagekit import Schedule, Stage, StageReport, Store, SystemRecorder

from suji.analysis import URL_ANALYSIS_SYSTEMS
from suji.components import URL, CopyVerbatim, RelativeOutputPath, Rendered
from suji.config import SiteConfig
from suji.errors import BuildFailed, SiteFault
from suji.indexing import INDEXING_SYSTEMS
from suji.loaders import SOURCE_LOADING_SYSTEMS, create_source_loaders
from suji.persist import PATH_FINALIZATION_SYSTEMS, PERSISTENCE_SYSTEMS
from suji.render import RENDERING_SYSTEMS
from suji.spawner import SPAWNING_SYSTEMS

STAGES: tuple[Stage, ...] = (
    Stage("config_processing", (create_source_loaders,)),
    Stage("source_loading", SOURCE_LOADING_SYSTEMS),
    Stage("url_analysis", URL_ANALYSIS_SYSTEMS),
    Stage("indexing", INDEXING_SYSTEMS),
    Stage("dynamic_spawning", SPAWNING_SYSTEMS),
    Stage("rendering", RENDERING_SYSTEMS),
    Stage("path_finalization", PATH_FINALIZATION_SYSTEMS),
    Stage("persistence", PERSISTENCE_SYSTEMS),
)


def build_schedule() -> Schedule:
    return Schedule.from_stages(STAGES)


def generate_run_id() -> str:
    return f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"


class FaultPolicy:
    """Barrier hook applying `build.on_error` to the faults a stage reported."""

    def __init__(self, on_error: str, *, logger: logging.Logger) -> None:
        if on_error not in ("abort", "skip"):
            raise ValueError(f"Unknown fault policy: {on_error!r}")
        self.on_error = on_error
        self.logger = logger
        self.faults: list[SiteFault] = []

    def __call__(self, stage_name: str, reports: list[Any]) -> None:
        stage_faults = [report for report in reports if isinstance(report, SiteFault)]
        if not stage_faults:
            return
        for fault in stage_faults:
            self.logger.error("%s", fault.describe())
        self.faults.extend(stage_faults)
        if self.on_error == "abort":
            raise BuildFailed(self.faults, stage=stage_name)
        self.logger.warning(
            "Skipping %d faulted record(s) in %s (build.on_error=skip)", len(stage_faults), stage_name
        )


@dataclass(frozen=True)
class BuildResult:
    run_id: str
    output_dir: str
    records: int
    urls: tuple[str, ...]
    outputs: tuple[str, ...]
    faults: tuple[SiteFault, ...] = ()
    stages: tuple[StageReport, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.faults


def run_build(
    config: SiteConfig,
    *,
    logger: logging.Logger,
    run_id: str | None = None,
    recorder: SystemRecorder | None = None,
) -> BuildResult:
    """
    Run every stage once over a fresh store.

    Returns the result when the run completes (under `skip`, possibly with faults).
    Raises `BuildFailed` when a fault aborts the run; configuration and URL
    conflicts always abort.
    """

    run_id = run_id or generate_run_id()
    store = Store()
    store.set_resource(config)
    policy = FaultPolicy(config.build.on_error, logger=logger)

    logger.info(
        "Build %s started: source_dir=%s output_dir=%s", run_id, config.source_dir, config.output_dir
    )
    try:
        stages = build_schedule().run(
            store,
            logger=logger,
            workers=config.build.workers,
            recorder=recorder,
            on_barrier=policy,
        )
    except SiteFault as fault:
        stage = getattr(fault, "stage_name", None)
        logger.error("%s", fault.describe())
        raise BuildFailed([*policy.faults, fault], stage=stage) from fault

    urls = tuple(sorted(url.path for _entity, url in store.query(URL)))
    # Against the published root, also when writes went to a staging tree.
    root = Path(config.output_dir)
    relative = [rel for _entity, _rendered, rel in store.query(Rendered, RelativeOutputPath)]
    relative.extend(rel for _entity, _flag, rel in store.query(CopyVerbatim, RelativeOutputPath))
    outputs = sorted({str(root.joinpath(*rel.path.parts)) for rel in relative})
    result = BuildResult(
        run_id=run_id,
        output_dir=config.output_dir,
        records=len(store),
        urls=urls,
        outputs=tuple(outputs),
        faults=tuple(policy.faults),
        stages=tuple(stages),
    )
    logger.info(
        "Build %s finished: %d record(s), %d URL(s), %d file(s), %d fault(s)",
        run_id,
        result.records,
        len(result.urls),
        len(result.outputs),
        len(result.faults),
    )
    return result
