"""Entity/component store.

Records are plain integer identities. Data lives in one table per component type,
keyed by entity, so new orthogonal facts never require new record shapes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, TypeAlias, TypeVar

Entity: TypeAlias = int

T = TypeVar("T")


class DuplicateComponentError(ValueError):
    """Raised when a create-only attach finds the component type already present."""

    def __init__(self, entity: Entity, ctype: type) -> None:
        super().__init__(f"Entity {entity} already has component {ctype.__name__}")
        self.entity = entity
        self.ctype = ctype


class MissingComponentError(KeyError):
    def __init__(self, entity: Entity, ctype: type) -> None:
        super().__init__(f"Entity {entity} has no component {ctype.__name__}")
        self.entity = entity
        self.ctype = ctype


class MissingResourceError(KeyError):
    def __init__(self, rtype: type) -> None:
        super().__init__(f"Resource not set: {rtype.__name__}")
        self.rtype = rtype


@dataclass
class Store:
    """Arena of entity ids plus a sparse table per component type."""

    _next_id: int = 0
    _tables: dict[type, dict[Entity, Any]] = field(default_factory=dict)
    _resources: dict[type, Any] = field(default_factory=dict)

    def spawn(self, *components: Any) -> Entity:
        entity = self._next_id
        self._next_id += 1
        for component in components:
            self.insert(entity, component)
        return entity

    def __len__(self) -> int:
        return self._next_id

    def ensure_tables(self, ctypes: Iterable[type]) -> None:
        """Create empty tables up front so concurrent writers never grow `_tables`."""

        for ctype in ctypes:
            self._tables.setdefault(ctype, {})

    def _table(self, ctype: type) -> dict[Entity, Any]:
        table = self._tables.get(ctype)
        if table is None:
            table = self._tables.setdefault(ctype, {})
        return table

    def _check_entity(self, entity: Entity) -> None:
        if isinstance(entity, bool) or not isinstance(entity, int):
            raise TypeError(f"Entity must be an int (type={type(entity).__name__})")
        if entity < 0 or entity >= self._next_id:
            raise ValueError(f"Unknown entity: {entity}")

    def insert(self, entity: Entity, component: Any, *, replace: bool = False) -> None:
        self._check_entity(entity)
        if component is None or isinstance(component, type):
            raise TypeError("Component must be an instance (got None or a class)")
        ctype = type(component)
        table = self._table(ctype)
        if entity in table and not replace:
            raise DuplicateComponentError(entity, ctype)
        table[entity] = component

    def has(self, entity: Entity, ctype: type) -> bool:
        table = self._tables.get(ctype)
        return table is not None and entity in table

    def get(self, entity: Entity, ctype: type[T]) -> T:
        table = self._tables.get(ctype)
        if table is None or entity not in table:
            raise MissingComponentError(entity, ctype)
        return table[entity]

    def try_get(self, entity: Entity, ctype: type[T]) -> T | None:
        table = self._tables.get(ctype)
        if table is None:
            return None
        return table.get(entity)

    def count(self, ctype: type) -> int:
        return len(self._tables.get(ctype, {}))

    def query(
        self, *ctypes: type, without: tuple[type, ...] = ()
    ) -> Iterator[tuple[Any, ...]]:
        """Yield `(entity, *components)` in creation order.

        Records must hold every type in `ctypes` and none of the types in `without`.
        """

        if not ctypes:
            raise ValueError("query requires at least one component type")

        tables = [self._tables.get(ctype) for ctype in ctypes]
        if any(table is None or not table for table in tables):
            return
        excluded = [self._tables[ctype] for ctype in without if ctype in self._tables]

        # Drive iteration from the smallest table, then restore creation order.
        driver = min(tables, key=len)  # type: ignore[arg-type]
        for entity in sorted(driver):
            if any(entity not in table for table in tables):  # type: ignore[operator]
                continue
            if any(entity in table for table in excluded):
                continue
            yield (entity, *(table[entity] for table in tables))  # type: ignore[index]

    def set_resource(self, resource: Any) -> None:
        if resource is None or isinstance(resource, type):
            raise TypeError("Resource must be an instance (got None or a class)")
        self._resources[type(resource)] = resource

    def resource(self, rtype: type[T]) -> T:
        value = self._resources.get(rtype)
        if value is None:
            raise MissingResourceError(rtype)
        return value

    def has_resource(self, rtype: type) -> bool:
        return rtype in self._resources
