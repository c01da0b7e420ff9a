from __future__ import annotations

import pytest

from plantasy.persistence.documents import DocumentExistsError, DocumentNotFoundError, DocumentStore


def test_set_merge_and_dotted_update(session):
    store = DocumentStore(session)
    store.set("users", "u1", {"name": "Asha", "prefs": {"theme": "light", "lang": "en"}})
    store.set("users", "u1", {"phone": "98765"}, merge=True)
    store.update("users", "u1", {"prefs.theme": "dark", "stats.orders": 2})

    assert store.get("users", "u1") == {
        "name": "Asha",
        "phone": "98765",
        "prefs": {"theme": "dark", "lang": "en"},
        "stats": {"orders": 2},
    }

    store.set("users", "u1", {"name": "Asha M"})
    assert store.get("users", "u1") == {"name": "Asha M"}


def test_create_update_and_array_union_errors(session):
    store = DocumentStore(session)
    store.create("payment", "p1", {"status": "SUCCESS"})
    with pytest.raises(DocumentExistsError):
        store.create("payment", "p1", {"status": "FAILED"})
    with pytest.raises(DocumentNotFoundError):
        store.update("payment", "p2", {"status": "FAILED"})
    with pytest.raises(DocumentNotFoundError):
        store.array_union("users", "nobody", "orders", "OD1")


def test_array_union_skips_duplicates(session):
    store = DocumentStore(session)
    store.set("users", "u2", {"orders": ["OD1"]})
    store.array_union("users", "u2", "orders", "OD1", "OD2")
    assert store.get("users", "u2")["orders"] == ["OD1", "OD2"]


def test_returned_documents_are_copies(session):
    store = DocumentStore(session)
    store.set("carts", "u3", {"items": [{"productId": "a"}]})
    document = store.get("carts", "u3")
    document["items"].append({"productId": "b"})
    assert store.get("carts", "u3") == {"items": [{"productId": "a"}]}


def test_query_filters_orders_and_pages(session):
    store = DocumentStore(session)
    for doc_id, rank, tags in [("a", 3, ["x"]), ("b", 1, ["y"]), ("c", 2, ["x", "y"]), ("d", None, ["x"])]:
        data = {"tags": tags, "meta": {"rank": rank}} if rank is not None else {"tags": tags}
        store.set("things", doc_id, data)

    ordered = store.query("things", order_by="meta.rank")
    assert [doc.id for doc in ordered] == ["b", "c", "a"]

    tagged = store.query("things", where=[("tags", "array-contains", "x")], order_by="meta.rank", descending=True)
    assert [doc.id for doc in tagged] == ["a", "c"]

    assert [doc.id for doc in store.query("things", where=[("meta.rank", ">=", 2)])] == ["a", "c"]
    assert [doc.id for doc in store.query("things", order_by="meta.rank", start_after="b", limit=1)] == ["c"]
    assert store.count("things") == 4
    assert store.count("things", where=[("tags", "array-contains", "y")]) == 2

    # A cursor outside the filtered set resumes from its ordering value.
    after_b = store.query("things", where=[("tags", "array-contains", "x")], order_by="meta.rank", start_after="b")
    assert [doc.id for doc in after_b] == ["c", "a"]


def test_delete(session):
    store = DocumentStore(session)
    store.set("carts", "u4", {"items": []})
    assert store.delete("carts", "u4") is True
    assert store.delete("carts", "u4") is False
    assert store.exists("carts", "u4") is False
