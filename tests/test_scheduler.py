import logging
import threading
from dataclasses import dataclass

import pytest

from stagekit import (
    AccessViolationError,
    NullSystemRecorder,
    Schedule,
    Stage,
    Store,
    SystemAccess,
    SystemRef,
    system,
)


@dataclass(frozen=True)
class Name:
    value: str


@dataclass(frozen=True)
class Upper:
    value: str


@dataclass(frozen=True)
class Length:
    value: int


@dataclass(frozen=True)
class Total:
    value: int


def _logger() -> logging.Logger:
    logger = logging.getLogger("tests.scheduler")
    logger.addHandler(logging.NullHandler())
    return logger


def _run(schedule: Schedule, store: Store, **kwargs):
    return schedule.run(store, logger=_logger(), recorder=NullSystemRecorder(), **kwargs)


@system("upper", reads=(Name,), writes=(Upper,))
def upper(ctx):
    for entity, name in ctx.query(Name):
        ctx.insert(entity, Upper(name.value.upper()))


@system("length", reads=(Name,), writes=(Length,))
def length(ctx):
    for entity, name in ctx.query(Name):
        ctx.insert(entity, Length(len(name.value)))


@system("total", reads=(Length,), writes=(Total,))
def total(ctx):
    ctx.set_resource(Total(sum(item.value for _entity, item in ctx.query(Length))))


def test_system_decorator_builds_ref_with_doc_and_access():
    @system("documented", reads=(Name,))
    def documented(ctx):
        """First line wins.

        More detail here.
        """

    assert isinstance(documented, SystemRef)
    assert documented.doc == "First line wins."
    assert documented.access == SystemAccess(reads=(Name,), writes=())
    assert documented.source.endswith("documented")


def test_access_conflicts_are_write_driven():
    reader = SystemAccess(reads=(Name,))
    other_reader = SystemAccess(reads=(Name,))
    writer = SystemAccess(writes=(Name,))

    assert not reader.conflicts_with(other_reader)
    assert reader.conflicts_with(writer)
    assert writer.conflicts_with(reader)
    assert SystemAccess(writes=(Upper,)).conflicts_with(SystemAccess(writes=(Upper,)))


def test_non_conflicting_systems_share_a_wave_and_conflicting_ones_follow():
    stage = Stage("work", (upper, length, total))
    assert [[ref.id for ref in wave] for wave in stage.waves()] == [["upper", "length"], ["total"]]


def test_after_edges_split_waves():
    @system("reader_a", reads=(Name,))
    def reader_a(ctx):
        return None

    @system("reader_b", reads=(Name,), after=("reader_a",))
    def reader_b(ctx):
        return None

    stage = Stage("ordered", (reader_a, reader_b))
    assert [[ref.id for ref in wave] for wave in stage.waves()] == [["reader_a"], ["reader_b"]]


def test_stage_rejects_duplicate_and_unknown_dependencies():
    with pytest.raises(ValueError, match=r"Duplicate system id"):
        Stage("dup", (upper, upper))

    @system("late", after=("missing",))
    def late(ctx):
        return None

    with pytest.raises(ValueError, match=r"unknown system\(s\): missing"):
        Stage("bad", (late,))


def test_schedule_rejects_duplicate_stage_names():
    with pytest.raises(ValueError, match=r"Duplicate stage name"):
        Schedule.from_stages([Stage("a"), Stage("a")])


def test_run_executes_stages_in_order_and_results_are_visible_downstream():
    store = Store()
    store.spawn(Name("ab"))
    store.spawn(Name("cde"))

    schedule = Schedule.from_stages([Stage("derive", (upper, length)), Stage("sum", (total,))])
    reports = _run(schedule, store, workers=4)

    assert [report.name for report in reports] == ["derive", "sum"]
    assert store.resource(Total) == Total(5)
    assert [u.value for _e, u in store.query(Upper)] == ["AB", "CDE"]


def test_spawns_are_invisible_until_the_barrier_and_apply_in_declaration_order():
    seen_during_stage: list[int] = []

    @system("spawn_a", reads=(Name,))
    def spawn_a(ctx):
        ctx.spawn(Name("from-a"))

    @system("spawn_b", reads=(Name,))
    def spawn_b(ctx):
        seen_during_stage.append(sum(1 for _ in ctx.query(Name)))
        ctx.spawn(Name("from-b"))

    store = Store()
    store.spawn(Name("seed"))
    reports = _run(Schedule.from_stages([Stage("spawn", (spawn_a, spawn_b))]), store, workers=2)

    assert seen_during_stage == [1]
    assert [name.value for _e, name in store.query(Name)] == ["seed", "from-a", "from-b"]
    assert reports[0].spawned == 2


def test_undeclared_access_raises_with_stage_and_system_attached():
    @system("sneaky", reads=(Name,))
    def sneaky(ctx):
        for entity, _name in ctx.query(Name):
            ctx.insert(entity, Length(0))

    store = Store()
    store.spawn(Name("x"))
    with pytest.raises(AccessViolationError, match=r"wrote undeclared type: Length") as excinfo:
        _run(Schedule.from_stages([Stage("bad", (sneaky,))]), store)

    assert excinfo.value.stage_name == "bad"
    assert excinfo.value.system_id == "sneaky"


def test_undeclared_read_raises():
    @system("peek")
    def peek(ctx):
        list(ctx.query(Name))

    with pytest.raises(AccessViolationError, match=r"read undeclared type\(s\): Name"):
        _run(Schedule.from_stages([Stage("bad", (peek,))]), Store())


def test_failure_stops_later_stages():
    ran: list[str] = []

    @system("boom")
    def boom(ctx):
        raise RuntimeError("boom")

    @system("never")
    def never(ctx):
        ran.append("never")

    with pytest.raises(RuntimeError, match=r"boom"):
        _run(Schedule.from_stages([Stage("first", (boom,)), Stage("second", (never,))]), Store())
    assert ran == []


def test_barrier_hook_sees_reports_per_stage_and_can_abort():
    calls: list[tuple[str, list]] = []

    @system("reporter")
    def reporter(ctx):
        ctx.report("problem")

    @system("quiet")
    def quiet(ctx):
        return None

    def on_barrier(stage_name, reports):
        calls.append((stage_name, list(reports)))
        if reports:
            raise RuntimeError(f"abort at {stage_name}")

    schedule = Schedule.from_stages([Stage("one", (quiet,)), Stage("two", (reporter,)), Stage("three", (quiet,))])
    with pytest.raises(RuntimeError, match=r"abort at two"):
        _run(schedule, Store(), on_barrier=on_barrier)

    assert calls == [("one", []), ("two", ["problem"])]


def test_par_map_preserves_input_order_on_the_task_pool():
    results: list[list[int]] = []
    threads: set[str] = set()

    @system("fan_out")
    def fan_out(ctx):
        def work(value):
            threads.add(threading.current_thread().name)
            return value * 10

        results.append(ctx.par_map(work, range(20)))

    _run(Schedule.from_stages([Stage("fan", (fan_out,))]), Store(), workers=4)

    assert results == [[value * 10 for value in range(20)]]
    assert all(name.startswith("stagekit-task") for name in threads)


def test_describe_lists_every_system_with_wave_and_access():
    schedule = Schedule.from_stages([Stage("derive", (upper, length)), Stage("sum", (total,))])
    rows = schedule.describe()

    assert [(row["stage"], row["system_id"], row["wave"]) for row in rows] == [
        ("derive", "upper", 1),
        ("derive", "length", 1),
        ("sum", "total", 1),
    ]
    assert rows[0]["reads"] == ["Name"]
    assert rows[0]["writes"] == ["Upper"]
