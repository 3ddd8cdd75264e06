"""Stage scheduler.

Stages run strictly in order and each one ends with a hard barrier. Inside a stage,
systems are grouped into waves using their declared access: a system may share a
wave with another only when neither writes a type the other reads or writes.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from stagekit.recorder import DefaultSystemRecorder, SystemRecorder, utc_now_iso8601
from stagekit.store import Store
from stagekit.system import Commands, SystemContext, SystemRef

BarrierHook = Callable[[str, list[Any]], None]


def _attach_schedule_error(exc: BaseException, *, stage_name: str, system_id: str) -> None:
    for attr, value in (("stage_name", stage_name), ("system_id", system_id)):
        if not hasattr(exc, attr):
            try:
                setattr(exc, attr, value)
            except Exception:  # noqa: BLE001
                pass


@dataclass(frozen=True)
class Stage:
    name: str
    systems: tuple[SystemRef, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise TypeError("Stage.name must be a non-empty string")
        object.__setattr__(self, "name", self.name.strip())

        systems = tuple(self.systems)
        for idx, ref in enumerate(systems):
            if not isinstance(ref, SystemRef):
                raise TypeError(
                    f"Stage {self.name} systems[{idx}] must be a SystemRef (type={type(ref).__name__})"
                )
        object.__setattr__(self, "systems", systems)

        seen: set[str] = set()
        for ref in systems:
            if ref.id in seen:
                raise ValueError(f"Duplicate system id in stage {self.name}: {ref.id}")
            seen.add(ref.id)
        for ref in systems:
            unknown = [dep for dep in ref.after if dep not in seen]
            if unknown:
                raise ValueError(
                    f"System {self.name}/{ref.id} runs after unknown system(s): {', '.join(unknown)}"
                )

    def waves(self) -> list[tuple[SystemRef, ...]]:
        """Group systems into concurrently runnable waves.

        Conflicting systems keep their declaration order; `after` edges are honored.
        """

        remaining = list(self.systems)
        done: set[str] = set()
        waves: list[tuple[SystemRef, ...]] = []
        while remaining:
            wave: list[SystemRef] = []
            for idx, ref in enumerate(remaining):
                if any(dep not in done for dep in ref.after):
                    continue
                if any(ref.access.conflicts_with(other.access) for other in remaining[:idx]):
                    continue
                wave.append(ref)
            if not wave:
                blocked = ", ".join(ref.id for ref in remaining)
                raise ValueError(f"Unschedulable systems in stage {self.name}: {blocked}")
            done.update(ref.id for ref in wave)
            remaining = [ref for ref in remaining if ref.id not in done]
            waves.append(tuple(wave))
        return waves


@dataclass(frozen=True)
class StageReport:
    name: str
    waves: tuple[tuple[str, ...], ...]
    spawned: int
    reports: int
    finished_at: str


@dataclass(frozen=True)
class Schedule:
    stages: tuple[Stage, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        stages = tuple(self.stages)
        seen: set[str] = set()
        for stage in stages:
            if stage.name in seen:
                raise ValueError(f"Duplicate stage name: {stage.name}")
            seen.add(stage.name)
        object.__setattr__(self, "stages", stages)

    @classmethod
    def from_stages(cls, stages: Iterable[Stage]) -> "Schedule":
        return cls(stages=tuple(stages))

    def stage_names(self) -> tuple[str, ...]:
        return tuple(stage.name for stage in self.stages)

    def describe(self) -> tuple[dict[str, Any], ...]:
        rows: list[dict[str, Any]] = []
        for order, stage in enumerate(self.stages, start=1):
            for wave_idx, wave in enumerate(stage.waves(), start=1):
                for ref in wave:
                    rows.append(
                        {
                            "stage": stage.name,
                            "stage_order": order,
                            "system_id": ref.id,
                            "wave": wave_idx,
                            "doc": ref.doc,
                            "source": ref.source,
                            "after": list(ref.after),
                            "reads": sorted(t.__name__ for t in ref.access.reads),
                            "writes": sorted(t.__name__ for t in ref.access.writes),
                        }
                    )
        return tuple(rows)

    def run(
        self,
        store: Store,
        *,
        logger: logging.Logger,
        workers: int | None = None,
        recorder: SystemRecorder | None = None,
        on_barrier: BarrierHook | None = None,
    ) -> list[StageReport]:
        recorder = recorder or DefaultSystemRecorder()
        reports: list[StageReport] = []
        system_pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stagekit-system")
        task_pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stagekit-task")
        try:
            for stage in self.stages:
                reports.append(
                    self._run_stage(
                        stage,
                        store,
                        logger=logger,
                        system_pool=system_pool,
                        task_pool=task_pool,
                        recorder=recorder,
                        on_barrier=on_barrier,
                    )
                )
        finally:
            task_pool.shutdown(wait=True)
            system_pool.shutdown(wait=True)
        return reports

    def _run_stage(
        self,
        stage: Stage,
        store: Store,
        *,
        logger: logging.Logger,
        system_pool: Executor,
        task_pool: Executor,
        recorder: SystemRecorder,
        on_barrier: BarrierHook | None,
    ) -> StageReport:
        waves = stage.waves()
        recorder.on_stage_start(
            logger, stage.name, systems=len(stage.systems), waves=len(waves), entities=len(store)
        )
        store.ensure_tables(t for ref in stage.systems for t in ref.access.writes)

        commands: dict[str, Commands] = {}
        for wave_idx, wave in enumerate(waves, start=1):
            contexts = [
                SystemContext(store, ref, stage_name=stage.name, logger=logger, task_pool=task_pool)
                for ref in wave
            ]
            futures = [
                system_pool.submit(self._run_system, ctx, ref, wave_idx, recorder)
                for ctx, ref in zip(contexts, wave, strict=True)
            ]
            failures: list[BaseException] = []
            for ref, future in zip(wave, futures, strict=True):
                exc = future.exception()
                if exc is not None:
                    _attach_schedule_error(exc, stage_name=stage.name, system_id=ref.id)
                    failures.append(exc)
            if failures:
                raise failures[0]
            for ctx, ref in zip(contexts, wave, strict=True):
                commands[ref.id] = ctx.commands

        spawned = 0
        stage_reports: list[Any] = []
        for ref in stage.systems:
            buffered = commands[ref.id]
            stage_reports.extend(buffered.reports)
            spawned += len(buffered.apply(store))

        if on_barrier is not None:
            on_barrier(stage.name, stage_reports)

        return StageReport(
            name=stage.name,
            waves=tuple(tuple(ref.id for ref in wave) for wave in waves),
            spawned=spawned,
            reports=len(stage_reports),
            finished_at=utc_now_iso8601(),
        )

    def _run_system(
        self, ctx: SystemContext, ref: SystemRef, wave: int, recorder: SystemRecorder
    ) -> None:
        path = f"{ctx.stage_name}/{ref.id}"
        recorder.on_system_start(
            ctx.logger,
            path,
            wave=wave,
            source=ref.source,
            reads=sorted(t.__name__ for t in ref.access.reads),
            writes=sorted(t.__name__ for t in ref.access.writes),
        )
        try:
            ref.fn(ctx)
        except Exception as exc:
            try:
                recorder.on_system_error(ctx.logger, path, ref.id, exc)
            except Exception:  # noqa: BLE001
                ctx.logger.exception("System recorder failed during error handling for %s", path)
            raise
        recorder.on_system_end(
            ctx.logger,
            {
                "path": path,
                "stage": ctx.stage_name,
                "system_id": ref.id,
                "wave": wave,
                "spawned": len(ctx.commands.spawns),
                "reports": len(ctx.commands.reports),
                "created_at": utc_now_iso8601(),
            },
        )
