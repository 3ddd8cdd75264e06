"""Path finalization and persistence: turn records into files under the output root."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from stagekit import Entity, SystemContext, system

from suji.components import (
    AbsoluteOutputPath,
    CopyVerbatim,
    RelativeOutputPath,
    Rendered,
    SourcePath,
)
from suji.config import SiteConfig
from suji.errors import IOFault
from suji.foundation import fs

STAGING_SUFFIX = ".suji-staging"
RETIRED_SUFFIX = ".suji-old"


def staging_dir(config: SiteConfig) -> Path:
    output = Path(config.output_dir)
    return output.with_name(output.name + STAGING_SUFFIX)


def output_root(config: SiteConfig) -> Path:
    """Where this run writes: the output dir, or its staging sibling when publishing atomically."""

    return staging_dir(config) if config.output.atomic else Path(config.output_dir)


@system(
    "finalize_output_paths",
    reads=(SiteConfig, RelativeOutputPath),
    writes=(AbsoluteOutputPath,),
)
def finalize_output_paths(ctx: SystemContext) -> None:
    """Join every relative output path onto the output root."""

    root = output_root(ctx.resource(SiteConfig))
    count = 0
    for entity, relative in ctx.query(RelativeOutputPath, without=(AbsoluteOutputPath,)):
        ctx.insert(entity, AbsoluteOutputPath(root.joinpath(*relative.path.parts)))
        count += 1
    ctx.logger.debug("Finalized %d output path(s) under %s", count, root)


@system("create_output_dirs", reads=(SiteConfig, AbsoluteOutputPath))
def create_output_dirs(ctx: SystemContext) -> None:
    """mkdir -p the output root and every output parent directory."""

    config = ctx.resource(SiteConfig)
    root = output_root(config)
    if config.output.atomic and root.exists():
        # Leftover from an interrupted run.
        shutil.rmtree(root)
    fs.mkdir_p(root)
    parents = sorted({target.path.parent for _entity, target in ctx.query(AbsoluteOutputPath)})
    for parent in parents:
        try:
            fs.mkdir_p(parent)
        except OSError as exc:
            ctx.report(IOFault(f"Unable to create directory: {exc}", source=str(parent)))


@system(
    "copy_static_files",
    reads=(CopyVerbatim, SourcePath, AbsoluteOutputPath),
    after=("create_output_dirs",),
)
def copy_static_files(ctx: SystemContext) -> None:
    """Byte-exact copy of every static record."""

    jobs: list[tuple[Entity, SourcePath, AbsoluteOutputPath]] = [
        (entity, source, target)
        for entity, _flag, source, target in ctx.query(CopyVerbatim, SourcePath, AbsoluteOutputPath)
    ]

    def copy_one(job: tuple[Entity, SourcePath, AbsoluteOutputPath]) -> IOFault | None:
        _entity, source, target = job
        try:
            fs.write_bytes(target.path, fs.read_bytes(source.absolute))
        except OSError as exc:
            return IOFault(f"Unable to copy to {target.path}: {exc}", source=source.label)
        return None

    faults = [fault for fault in ctx.par_map(copy_one, jobs) if fault is not None]
    for fault in faults:
        ctx.report(fault)
    ctx.logger.info("Copied %d static file(s)", len(jobs) - len(faults))


@system(
    "write_rendered",
    reads=(Rendered, AbsoluteOutputPath),
    after=("create_output_dirs",),
)
def write_rendered(ctx: SystemContext) -> None:
    """Write rendered markup as UTF-8."""

    jobs = [(rendered, target) for _entity, rendered, target in ctx.query(Rendered, AbsoluteOutputPath)]

    def write_one(job: tuple[Rendered, AbsoluteOutputPath]) -> IOFault | None:
        rendered, target = job
        try:
            fs.write_bytes(target.path, rendered.markup.encode("utf-8"))
        except OSError as exc:
            return IOFault(f"Unable to write output: {exc}", source=str(target.path))
        return None

    faults = [fault for fault in ctx.par_map(write_one, jobs) if fault is not None]
    for fault in faults:
        ctx.report(fault)
    ctx.logger.info("Wrote %d rendered file(s)", len(jobs) - len(faults))


def swap_into_place(staged: Path, output: Path) -> None:
    retired = output.with_name(output.name + RETIRED_SUFFIX)
    if retired.exists():
        shutil.rmtree(retired)
    if output.exists():
        os.replace(output, retired)
    os.replace(staged, output)
    if retired.exists():
        shutil.rmtree(retired)


@system(
    "publish_output",
    reads=(SiteConfig, AbsoluteOutputPath, Rendered, CopyVerbatim),
    after=("copy_static_files", "write_rendered"),
)
def publish_output(ctx: SystemContext) -> None:
    """Swap the staged output tree into place when publishing atomically."""

    config = ctx.resource(SiteConfig)
    if not config.output.atomic:
        return
    staged = staging_dir(config)

    # Sibling write faults are only visible at the barrier; check the files instead.
    expected = [target.path for _entity, _rendered, target in ctx.query(Rendered, AbsoluteOutputPath)]
    expected.extend(target.path for _entity, _flag, target in ctx.query(CopyVerbatim, AbsoluteOutputPath))
    missing = sorted(str(path) for path in expected if not path.is_file())
    if missing:
        ctx.report(
            IOFault(
                f"Staged output is incomplete ({len(missing)} missing file(s)); "
                f"leaving {config.output_dir} untouched",
                source=str(staged),
            )
        )
        return

    try:
        swap_into_place(staged, Path(config.output_dir))
    except OSError as exc:
        ctx.report(IOFault(f"Unable to publish staged output: {exc}", source=str(staged)))
        return
    ctx.logger.info("Published %s", config.output_dir)


PATH_FINALIZATION_SYSTEMS = (finalize_output_paths,)
PERSISTENCE_SYSTEMS = (create_output_dirs, copy_static_files, write_rendered, publish_output)
