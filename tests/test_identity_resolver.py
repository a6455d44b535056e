from inbox_agent.identity.resolver import IDMAP_KEY, IdentityResolver
from inbox_agent.store.kv import KeyValueStore


def _resolver(tmp_path) -> IdentityResolver:
    return IdentityResolver(KeyValueStore(tmp_path / "store"))


def _assert_partition(resolver: IdentityResolver) -> None:
    seen: set[str] = set()
    for mapping in resolver.mappings():
        for external_id in mapping.external_ids:
            assert external_id not in seen
            seen.add(external_id)


def test_resolve_is_stable_and_persisted(tmp_path):
    resolver = _resolver(tmp_path)
    first = resolver.resolve("wa:555")
    assert resolver.resolve("wa:555") == first
    assert resolver.resolve(" wa:555 ") == first

    reopened = _resolver(tmp_path)
    assert reopened.resolve("wa:555") == first
    assert reopened.store.get(IDMAP_KEY) == [{"internalID": first, "externalIDs": ["wa:555"]}]


def test_resolve_rejects_empty_id(tmp_path):
    resolver = _resolver(tmp_path)
    try:
        resolver.resolve("  ")
    except ValueError:
        pass
    else:
        raise AssertionError("expected ValueError")


def test_merge_folds_two_users_into_the_first(tmp_path):
    resolver = _resolver(tmp_path)
    wa_user = resolver.resolve("wa:555")
    ig_user = resolver.resolve("ig:777")
    assert wa_user != ig_user

    merged = resolver.merge(["wa:555", "ig:777"])

    assert merged == wa_user
    assert resolver.resolve("ig:777") == wa_user
    assert resolver.lookup("wa:555") == wa_user
    assert sorted(resolver.external_ids(wa_user)) == ["ig:777", "wa:555"]
    assert resolver.external_ids(ig_user) == []
    assert len(resolver.mappings()) == 1
    _assert_partition(resolver)


def test_merge_is_idempotent(tmp_path):
    resolver = _resolver(tmp_path)
    resolver.resolve("wa:555")
    resolver.resolve("ig:777")
    first = resolver.merge(["wa:555", "ig:777"])
    snapshot = [m.to_dict() for m in resolver.mappings()]

    assert resolver.merge(["wa:555", "ig:777"]) == first
    assert resolver.merge(["ig:777", "wa:555"]) == first
    assert [m.to_dict() for m in resolver.mappings()] == snapshot


def test_merge_adds_unseen_ids_and_mints_when_none_known(tmp_path):
    resolver = _resolver(tmp_path)
    known = resolver.resolve("wa:1")
    assert resolver.merge(["wa:1", "ig:2"]) == known
    assert resolver.lookup("ig:2") == known

    fresh = resolver.merge(["wa:9", "ig:9"])
    assert fresh != known
    assert resolver.external_ids(fresh) == ["wa:9", "ig:9"]
    _assert_partition(resolver)


def test_partition_holds_across_mixed_operations(tmp_path):
    resolver = _resolver(tmp_path)
    for external_id in ["a:1", "b:1", "c:1", "d:1"]:
        resolver.resolve(external_id)
    resolver.merge(["a:1", "b:1"])
    resolver.merge(["c:1", "d:1", "e:1"])
    resolver.merge(["b:1", "e:1"])

    _assert_partition(resolver)
    assert len(resolver.mappings()) == 1
    assert resolver.lookup("a:1") == resolver.lookup("e:1")
