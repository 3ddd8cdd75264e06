from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Protocol, Sequence, TypeVar

from stagekit.store import Entity, Store

T = TypeVar("T")
R = TypeVar("R")


class AccessViolationError(RuntimeError):
    """A system touched a type outside its declared reads/writes."""


def _type_names(types: Iterable[type]) -> str:
    return ", ".join(sorted(t.__name__ for t in types)) or "<none>"


@dataclass(frozen=True)
class SystemAccess:
    """Component and resource types a system reads and writes."""

    reads: tuple[type, ...] = ()
    writes: tuple[type, ...] = ()

    def __post_init__(self) -> None:
        for label, values in (("reads", self.reads), ("writes", self.writes)):
            if not isinstance(values, tuple):
                raise TypeError(f"SystemAccess.{label} must be a tuple of types")
            for value in values:
                if not isinstance(value, type):
                    raise TypeError(
                        f"SystemAccess.{label} must contain only types (got {value!r})"
                    )

    @property
    def touched(self) -> frozenset[type]:
        return frozenset(self.reads) | frozenset(self.writes)

    def conflicts_with(self, other: "SystemAccess") -> bool:
        mine = frozenset(self.writes)
        theirs = frozenset(other.writes)
        if mine & other.touched:
            return True
        return bool(theirs & self.touched)


class SystemFn(Protocol):
    def __call__(self, ctx: "SystemContext") -> Any:
        ...


@dataclass(frozen=True)
class SystemRef:
    id: str
    fn: SystemFn
    access: SystemAccess = field(default_factory=SystemAccess)
    after: tuple[str, ...] = ()
    doc: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise TypeError("SystemRef.id must be a non-empty string")
        object.__setattr__(self, "id", self.id.strip())

        if not callable(self.fn):
            raise TypeError(f"SystemRef.fn must be callable (type={type(self.fn).__name__})")
        if not isinstance(self.access, SystemAccess):
            raise TypeError("SystemRef.access must be a SystemAccess")
        if self.doc is not None and (not isinstance(self.doc, str) or not self.doc.strip()):
            raise TypeError("SystemRef.doc must be a non-empty string or None")

        after = tuple(str(name).strip() for name in self.after if str(name).strip())
        if self.id in after:
            raise ValueError(f"System {self.id} cannot run after itself")
        object.__setattr__(self, "after", after)

    @property
    def source(self) -> str:
        module = getattr(self.fn, "__module__", None) or "<unknown_module>"
        qualname = getattr(self.fn, "__qualname__", None) or getattr(self.fn, "__name__", "<callable>")
        return f"{module}.{qualname}"


def system(
    id: str,
    *,
    reads: Sequence[type] = (),
    writes: Sequence[type] = (),
    after: Sequence[str] = (),
) -> Callable[[SystemFn], SystemRef]:
    """Decorator turning a function into a `SystemRef` (doc taken from the docstring)."""

    def wrap(fn: SystemFn) -> SystemRef:
        doc = (fn.__doc__ or "").strip().splitlines()
        return SystemRef(
            id=id,
            fn=fn,
            access=SystemAccess(reads=tuple(reads), writes=tuple(writes)),
            after=tuple(after),
            doc=doc[0].strip() if doc and doc[0].strip() else None,
        )

    return wrap


@dataclass
class Commands:
    """Deferred work applied at the stage barrier, in system declaration order."""

    spawns: list[tuple[Any, ...]] = field(default_factory=list)
    reports: list[Any] = field(default_factory=list)

    def apply(self, store: Store) -> list[Entity]:
        created = [store.spawn(*components) for components in self.spawns]
        self.spawns.clear()
        return created


class SystemContext:
    """The only surface a running system has onto the store.

    Every query, insert and resource access is checked against the system's
    declared access so the scheduler's conflict analysis stays load-bearing.
    """

    def __init__(
        self,
        store: Store,
        ref: SystemRef,
        *,
        stage_name: str,
        logger: logging.Logger,
        task_pool: Executor | None = None,
    ) -> None:
        self._store = store
        self._ref = ref
        self._readable = ref.access.touched
        self._writable = frozenset(ref.access.writes)
        self._task_pool = task_pool
        self.stage_name = stage_name
        self.logger = logger
        self.commands = Commands()

    @property
    def system_id(self) -> str:
        return self._ref.id

    def _check_read(self, types: Iterable[type]) -> None:
        undeclared = [t for t in types if t not in self._readable]
        if undeclared:
            raise AccessViolationError(
                f"System {self._ref.id} read undeclared type(s): {_type_names(undeclared)}"
            )

    def _check_write(self, ctype: type) -> None:
        if ctype not in self._writable:
            raise AccessViolationError(
                f"System {self._ref.id} wrote undeclared type: {ctype.__name__}"
            )

    def query(self, *ctypes: type, without: tuple[type, ...] = ()) -> Iterator[tuple[Any, ...]]:
        self._check_read((*ctypes, *without))
        return self._store.query(*ctypes, without=without)

    def get(self, entity: Entity, ctype: type[T]) -> T:
        self._check_read((ctype,))
        return self._store.get(entity, ctype)

    def try_get(self, entity: Entity, ctype: type[T]) -> T | None:
        self._check_read((ctype,))
        return self._store.try_get(entity, ctype)

    def has(self, entity: Entity, ctype: type) -> bool:
        self._check_read((ctype,))
        return self._store.has(entity, ctype)

    def insert(self, entity: Entity, component: Any) -> None:
        self._check_write(type(component))
        self._store.insert(entity, component)

    def replace(self, entity: Entity, component: Any) -> None:
        self._check_write(type(component))
        self._store.insert(entity, component, replace=True)

    def resource(self, rtype: type[T]) -> T:
        self._check_read((rtype,))
        return self._store.resource(rtype)

    def has_resource(self, rtype: type) -> bool:
        self._check_read((rtype,))
        return self._store.has_resource(rtype)

    def set_resource(self, resource: Any) -> None:
        self._check_write(type(resource))
        self._store.set_resource(resource)

    def spawn(self, *components: Any) -> None:
        """Queue a new record; it becomes visible from the next stage on."""

        if not components:
            raise ValueError(f"System {self._ref.id} spawned a record with no components")
        self.commands.spawns.append(tuple(components))

    def report(self, fault: Any) -> None:
        self.commands.reports.append(fault)

    def par_map(self, fn: Callable[[T], R], items: Iterable[T]) -> list[R]:
        """Apply `fn` to every item on the task pool, preserving input order.

        Exceptions propagate from the first failing item (in input order).
        """

        values = list(items)
        if self._task_pool is None or len(values) < 2:
            return [fn(value) for value in values]
        futures = [self._task_pool.submit(fn, value) for value in values]
        return [future.result() for future in futures]
