import mongomock
from pymongo import TEXT

from database import TenantRegistry, serialize_doc, serialize_row
from schemas import TABLES


def _make_registry(calls: list) -> TenantRegistry:
    def factory(url):
        calls.append(url)
        return mongomock.MongoClient(url)

    return TenantRegistry("mongodb://registry-test:27017", client_factory=factory)


def test_handles_are_cached_and_client_built_once() -> None:
    calls: list = []
    registry = _make_registry(calls)
    first = registry.resolve("bakery_one")
    assert registry.resolve("bakery_one") is first
    second = registry.resolve("bakery_two")
    assert second is not first
    assert calls == ["mongodb://registry-test:27017"]


def test_tenants_do_not_share_records() -> None:
    registry = _make_registry([])
    shape = TABLES["MenuItems"]
    registry.collection("iso_a", shape).insert_one({"id": "a", "name": "Oreo"})
    assert registry.collection("iso_b", shape).count_documents({}) == 0
    assert registry.collection("iso_a", shape).count_documents({}) == 1


def test_indexes_are_ensured_on_first_resolve() -> None:
    registry = _make_registry([])
    names = registry.resolve("idx_tenant")["Users"].index_information()
    assert any(info.get("unique") and info["key"] == [("email", 1)] for info in names.values())


def test_serialize_hides_credentials() -> None:
    shape = TABLES["Users"]
    doc = {"_id": "x", "id": "u1", "password": "hash", "firstName": "Asha"}
    assert serialize_doc(doc, shape) == {"id": "u1", "firstName": "Asha"}
    assert serialize_row(doc, shape) == {"_id": "x", "id": "u1", "firstName": "Asha"}


def test_text_indexes_are_declared() -> None:
    menu_keys = [keys for keys, _ in TABLES["MenuItems"].indexes]
    user_keys = [keys for keys, _ in TABLES["Users"].indexes]
    assert [("name", TEXT), ("description", TEXT)] in menu_keys
    assert [("businessName", TEXT), ("firstName", TEXT), ("lastName", TEXT)] in user_keys


def test_close_drops_client_and_handles() -> None:
    calls: list = []
    registry = _make_registry(calls)
    first = registry.resolve("closing")
    registry.close()
    assert registry.resolve("closing") is not first
    assert len(calls) == 2


def test_nested_hidden_fields_are_stripped() -> None:
    row = {"_id": "m1", "owner": [{"firstName": "Asha", "password": "hash"}]}
    assert serialize_row(row, TABLES["MenuItems"]) == {"_id": "m1", "owner": [{"firstName": "Asha"}]}
