import threading

from companion.hub.app.core.session_registry import SessionHandle, SessionRegistry


def test_register_and_lookup():
    registry = SessionRegistry()
    handle = SessionHandle(sid="sid-1", uid="ALICE")

    assert registry.register("ALICE", handle) is None
    assert registry.lookup("ALICE") == handle
    assert registry.lookup("BOB") is None
    assert "ALICE" in registry


def test_last_connection_wins():
    registry = SessionRegistry()
    old = SessionHandle(sid="sid-1", uid="ALICE")
    new = SessionHandle(sid="sid-2", uid="ALICE")
    registry.register("ALICE", old)

    replaced = registry.register("ALICE", new)

    assert replaced == old
    assert registry.lookup("ALICE") == new
    assert len(registry) == 1


def test_stale_handle_cannot_unregister_successor():
    registry = SessionRegistry()
    old = SessionHandle(sid="sid-1", uid="ALICE")
    new = SessionHandle(sid="sid-2", uid="ALICE")
    registry.register("ALICE", old)
    registry.register("ALICE", new)

    assert registry.unregister("ALICE", old) is False
    assert registry.is_current("ALICE", new)
    assert registry.unregister("ALICE", new) is True
    assert registry.lookup("ALICE") is None
    assert registry.unregister("ALICE") is False


def test_concurrent_registrations_keep_one_handle_per_user():
    registry = SessionRegistry()
    users = [f"USER{index}" for index in range(20)]

    def churn(worker):
        for round_ in range(200):
            for uid in users:
                handle = SessionHandle(sid=f"{worker}-{round_}-{uid}", uid=uid)
                registry.register(uid, handle)
                registry.lookup(uid)
                registry.unregister(uid, handle)
            for uid in users:
                registry.register(uid, SessionHandle(sid=f"{worker}-{uid}",
                                                     uid=uid))

    threads = [threading.Thread(target=churn, args=(worker,))
               for worker in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(registry) == len(users)
    assert sorted(handle.uid for handle in registry.handles()) == sorted(users)
