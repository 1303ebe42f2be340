from meshchat.registry import ConnectionRegistry


def test_resolve_multiple_devices():
    reg = ConnectionRegistry()
    reg.register("c1", "alice")
    reg.register("c2", "alice")
    assert reg.resolve("alice") == {"c1", "c2"}
    assert reg.resolve("bob") == set()


def test_unregister_keeps_other_devices():
    reg = ConnectionRegistry()
    reg.register("c1", "alice")
    reg.register("c2", "alice")
    assert reg.unregister("c1") == "alice"
    assert reg.resolve("alice") == {"c2"}
    assert reg.username_of("c1") is None


def test_register_twice_last_write_wins():
    reg = ConnectionRegistry()
    reg.register("c1", "alice")
    assert reg.register("c1", "bob") == "alice"
    assert reg.username_of("c1") == "bob"
    assert reg.resolve("alice") == set()
    assert reg.resolve("bob") == {"c1"}


def test_register_same_name_is_idempotent():
    reg = ConnectionRegistry()
    reg.register("c1", "alice")
    reg.register("c1", "alice")
    assert reg.resolve("alice") == {"c1"}
    assert reg.list_users() == ["alice"]


def test_user_list_never_shrinks():
    reg = ConnectionRegistry()
    reg.register("c1", "alice")
    reg.register("c2", "bob")
    reg.unregister("c1")
    reg.unregister("c2")
    assert reg.list_users() == ["alice", "bob"]
    assert reg.connections() == set()


def test_unregister_unknown_connection():
    assert ConnectionRegistry().unregister("nope") is None


def test_hub_keeps_usernames_verbatim(hub):
    hub.register("c1", "alice")
    hub.register("c2", "alice ")
    assert hub.registry.list_users() == ["alice", "alice "]
    assert hub.register("c3", "") == []
    assert hub.register("c4", None) == []
