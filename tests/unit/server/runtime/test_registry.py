# tests/unit/server/runtime/test_registry.py
from mcpgate.server.runtime.sessions.registry import Session, SessionRegistry, SessionTransport


def test_registry_put_get_count(make_session):
    """
    Sessions are retrievable by id and counted exactly once each.
    """
    registry = SessionRegistry()
    a, b = make_session("A"), make_session("B", user="bob")

    registry.put(a.id, a)
    registry.put(b.id, b)

    assert registry.count() == 2
    assert len(registry) == 2
    assert registry.get("A") is a
    assert registry.get("B") is b
    assert registry.get("missing") is None
    assert "A" in registry and "missing" not in registry
    assert isinstance(a.transport, SessionTransport)


def test_registry_remove_is_idempotent(make_session):
    registry = SessionRegistry()
    session = make_session("A")
    registry.put(session.id, session)

    assert registry.remove("A") is True
    assert registry.remove("A") is False
    assert registry.remove("never-registered") is False
    assert registry.count() == 0


def test_registry_stale_remove_keeps_newer_session(make_session, caplog):
    """
    A late disconnect of an old session must not evict a newer session that
    reused the same id.
    """
    registry = SessionRegistry()
    old, new = make_session("A"), make_session("A", user="bob")

    registry.put("A", old)
    registry.put("A", new)
    assert "reused" in caplog.text
    assert registry.count() == 1

    assert registry.remove("A", old) is False
    assert registry.get("A") is new

    assert registry.remove("A", new) is True
    assert registry.count() == 0


def test_registry_drain_empties_table(make_session):
    registry = SessionRegistry()
    sessions = [make_session(sid) for sid in ("A", "B", "C")]
    for s in sessions:
        registry.put(s.id, s)

    drained = registry.drain()

    assert {s.id for s in drained} == {"A", "B", "C"}
    assert registry.count() == 0
    assert registry.drain() == []


def test_registry_iteration_tolerates_removal(make_session):
    """Iterating while sessions disconnect works on a snapshot."""
    registry = SessionRegistry()
    for sid in ("A", "B"):
        registry.put(sid, make_session(sid))

    seen = []
    for session in registry:
        seen.append(session.id)
        registry.remove(session.id)

    assert sorted(seen) == ["A", "B"]
    assert registry.count() == 0


def test_session_user_id_and_describe(make_session):
    registry = SessionRegistry()
    session = make_session("A", user="alice")
    registry.put(session.id, session)

    assert session.user_id == "alice"
    assert registry.describe() == [{"sessionId": "A", "user": "alice"}]


def test_session_user_id_for_garbage_token(fake_transport):
    session = Session(id="X", transport=fake_transport("X"), identity_token="not-a-jwt")
    assert session.user_id is None
