import threading

import pytest

from stocktake.column_mapper.registry import MappingRegistry
from stocktake.column_mapper.rules import ColumnRules
from stocktake.errors import NotFound, ProtectedResource, ValidationFailed

VALID_MAP = {"name": 0, "quantity": 1, "unit": 2}


@pytest.fixture
def registry(store):
    reg = MappingRegistry(store)
    reg.ensure_default()
    return reg


def test_default_mapping_is_seeded_once(registry):
    """A second seed call returns the existing default."""
    first = registry.list()
    again = registry.ensure_default()

    assert len(first) == 1
    assert first[0].is_default
    assert first[0].name == ColumnRules.DEFAULT_MAPPING_NAME
    assert first[0].role_map == ColumnRules.DEFAULT_ROLE_MAP
    assert again.id == first[0].id
    assert len(registry.list()) == 1


def test_save_rejects_invalid_map(registry):
    with pytest.raises(ValidationFailed) as exc_info:
        registry.save("Broken", {"name": 0})
    assert len(exc_info.value.errors) == 2
    assert len(registry.list()) == 1


def test_save_rejects_blank_name(registry):
    with pytest.raises(ValidationFailed):
        registry.save("   ", VALID_MAP)


def test_save_and_get(registry):
    saved = registry.save("Warehouse", VALID_MAP, description="3 columns", headers=["N", "Q", "U"])
    fetched = registry.get(saved.id)

    assert fetched.name == "Warehouse"
    assert fetched.role_map == VALID_MAP
    assert fetched.headers == ["N", "Q", "U"]
    assert fetched.usage_count == 0
    assert fetched.last_used is None
    assert fetched.created_at is not None


def test_saving_new_default_demotes_old_one(registry):
    old_default = registry.list()[0]
    new_default = registry.save("New default", VALID_MAP, is_default=True)

    defaults = [m.id for m in registry.list() if m.is_default]
    assert defaults == [new_default.id]
    assert not registry.get(old_default.id).is_default


def test_list_orders_default_then_usage(registry):
    a = registry.save("A", VALID_MAP)
    b = registry.save("B", VALID_MAP)
    registry.record_usage(b.id)
    registry.record_usage(b.id)
    registry.record_usage(a.id)

    names = [m.name for m in registry.list()]
    assert names == [ColumnRules.DEFAULT_MAPPING_NAME, "B", "A"]


def test_record_usage_updates_counter_only(registry):
    saved = registry.save("A", VALID_MAP, description="keep me")
    used = registry.record_usage(saved.id)

    assert used.usage_count == 1
    assert used.last_used is not None
    assert used.description == "keep me"
    assert used.role_map == VALID_MAP


def test_concurrent_usage_is_not_lost(registry):
    saved = registry.save("Busy", VALID_MAP)

    def use_many():
        for _ in range(5):
            registry.record_usage(saved.id)

    threads = [threading.Thread(target=use_many) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert registry.get(saved.id).usage_count == 40


def test_record_usage_unknown_id(registry):
    with pytest.raises(NotFound):
        registry.record_usage("missing")


def test_update_revalidates_role_map(registry):
    saved = registry.save("A", VALID_MAP, headers=["N", "Q", "U"])

    with pytest.raises(ValidationFailed):
        registry.update(saved.id, role_map={"name": 0, "quantity": 1, "unit": 5})

    updated = registry.update(saved.id, name="Renamed", role_map={"name": 2, "quantity": 1, "unit": 0})
    assert updated.name == "Renamed"
    assert updated.role_map == {"name": 2, "quantity": 1, "unit": 0}


def test_delete(registry):
    saved = registry.save("Temporary", VALID_MAP)
    registry.delete(saved.id)
    with pytest.raises(NotFound):
        registry.get(saved.id)


def test_default_mapping_cannot_be_deleted(registry):
    default = registry.list()[0]
    with pytest.raises(ProtectedResource):
        registry.delete(default.id)
    assert registry.get(default.id).is_default


def test_delete_unknown_id(registry):
    with pytest.raises(NotFound):
        registry.delete("missing")
