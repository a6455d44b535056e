import pytest

from inbox_agent.store.kv import KeyValueStore


def test_values_persist_across_instances(tmp_path):
    store = KeyValueStore(tmp_path / "store")
    store.set("MODULE.whatsapp.settings.accessToken", "tok")
    store.set_many({"MODULE.whatsapp.enabled": False, "MODULE.instagram.enabled": True})

    reopened = KeyValueStore(tmp_path / "store")
    assert reopened.get("MODULE.whatsapp.settings.accessToken") == "tok"
    assert reopened.has("MODULE.whatsapp.enabled")
    assert reopened.get("MODULE.whatsapp.enabled") is False
    assert reopened.get("missing", "fallback") == "fallback"


def test_get_matching_and_delete(tmp_path):
    store = KeyValueStore(tmp_path / "store")
    store.set_many({"MODULE.a.enabled": True, "MODULE.b.enabled": False, "MODULE.a.settings.x": 1})
    assert store.get_matching("MODULE.", ".enabled") == {"MODULE.a.enabled": True, "MODULE.b.enabled": False}
    assert store.delete("MODULE.a.enabled") is True
    assert store.delete("MODULE.a.enabled") is False
    assert not store.has("MODULE.a.enabled")


def test_text_files(tmp_path):
    store = KeyValueStore(tmp_path / "store")
    assert store.load_file("speech.txt") is None
    assert store.save_file("speech.txt", "Warm and concise.") is True
    assert store.load_file("speech.txt") == "Warm and concise."
    with pytest.raises(ValueError):
        store.save_file("../escape.txt", "x")


def test_corrupt_document_reads_as_empty(tmp_path):
    root = tmp_path / "store"
    root.mkdir()
    (root / "store.json").write_text("{broken", encoding="utf-8")
    assert KeyValueStore(root).get_matching() == {}
