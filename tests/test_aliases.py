import pytest

from chartplan.aliases import ALIAS_MAP_KEY, AliasService
from chartplan.store import InMemoryStore, JsonFileStore


def test_alias_is_stable_per_context():
    service = AliasService(InMemoryStore())
    first = service.get_or_create("Jane Doe|1980-01-01")
    second = service.get_or_create("Jane Doe|1980-01-01")
    other = service.get_or_create("John Roe|1975-05-05")
    assert first.alias == second.alias
    assert first.alias != other.alias
    assert first.alias.startswith("PT-")


def test_alias_survives_new_service_instance(tmp_path):
    path = tmp_path / "store.json"
    alias = AliasService(JsonFileStore(path)).get_or_create("Jane Doe|1980-01-01").alias
    assert AliasService(JsonFileStore(path)).get_or_create("Jane Doe|1980-01-01").alias == alias
    assert AliasService(JsonFileStore(path)).lookup("Jane Doe|1980-01-01").alias == alias


def test_context_string_is_not_stored(tmp_path):
    path = tmp_path / "store.json"
    store = JsonFileStore(path)
    AliasService(store).get_or_create("Jane Doe|1980-01-01")
    assert "Jane Doe" not in path.read_text()
    assert len(store.get(ALIAS_MAP_KEY)) == 1


def test_blank_context_rejected():
    service = AliasService(InMemoryStore())
    with pytest.raises(ValueError):
        service.get_or_create("   ")
    assert service.lookup("Nobody") is None
