from dataclasses import dataclass

import pytest

from stagekit import DuplicateComponentError, MissingComponentError, MissingResourceError, Store


@dataclass(frozen=True)
class Name:
    value: str


@dataclass(frozen=True)
class Size:
    value: int


@dataclass(frozen=True)
class Hidden:
    pass


@dataclass(frozen=True)
class Settings:
    debug: bool


def test_spawn_assigns_increasing_ids_and_attaches_components():
    store = Store()
    first = store.spawn(Name("a"), Size(1))
    second = store.spawn(Name("b"))

    assert (first, second) == (0, 1)
    assert len(store) == 2
    assert store.get(first, Size) == Size(1)
    assert store.try_get(second, Size) is None
    assert store.has(second, Name)


def test_insert_create_only_rejects_duplicate_type():
    store = Store()
    entity = store.spawn(Name("a"))

    with pytest.raises(DuplicateComponentError, match=r"already has component Name"):
        store.insert(entity, Name("b"))

    store.insert(entity, Name("b"), replace=True)
    assert store.get(entity, Name) == Name("b")


def test_insert_rejects_unknown_entity_and_classes():
    store = Store()
    with pytest.raises(ValueError, match=r"Unknown entity"):
        store.insert(3, Name("x"))

    entity = store.spawn()
    with pytest.raises(TypeError):
        store.insert(entity, Name)


def test_get_missing_component_raises():
    store = Store()
    entity = store.spawn(Name("a"))
    with pytest.raises(MissingComponentError):
        store.get(entity, Size)


def test_query_joins_tables_in_creation_order_and_honors_without():
    store = Store()
    a = store.spawn(Name("a"), Size(3))
    store.spawn(Name("b"))
    c = store.spawn(Name("c"), Size(1), Hidden())
    d = store.spawn(Size(7), Name("d"))

    rows = list(store.query(Name, Size))
    assert rows == [(a, Name("a"), Size(3)), (c, Name("c"), Size(1)), (d, Name("d"), Size(7))]

    visible = [entity for entity, _name in store.query(Name, without=(Hidden,))]
    assert visible == [0, 1, d]


def test_query_over_missing_table_is_empty():
    store = Store()
    store.spawn(Name("a"))
    assert list(store.query(Name, Size)) == []

    with pytest.raises(ValueError, match=r"at least one component type"):
        list(store.query())


def test_resources_are_typed_singletons():
    store = Store()
    assert not store.has_resource(Settings)
    with pytest.raises(MissingResourceError):
        store.resource(Settings)

    store.set_resource(Settings(debug=False))
    store.set_resource(Settings(debug=True))
    assert store.resource(Settings) == Settings(debug=True)


def test_ensure_tables_makes_empty_tables_queryable():
    store = Store()
    store.ensure_tables([Name, Size])
    assert store.count(Name) == 0
    assert list(store.query(Name)) == []
