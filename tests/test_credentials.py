import pytest

from vrcd.credentials import CredentialStore, check_password, hash_password, new_salt
from vrcd.errors import Conflict, InvalidInput, NotFound, Unauthorized


def test_register_then_verify() -> None:
    store = CredentialStore()
    rec = store.register("nova", "warp123", "rig-device")
    assert rec.username == "nova"
    assert rec.device_id == "rig-device"
    assert store.verify("nova", "warp123").username == "nova"


def test_verify_rejects_wrong_password_and_unknown_user() -> None:
    store = CredentialStore()
    store.register("nova", "warp123")
    with pytest.raises(Unauthorized):
        store.verify("nova", "warp124")
    with pytest.raises(Unauthorized):
        store.verify("ghost", "warp123")


def test_duplicate_username_conflicts() -> None:
    store = CredentialStore()
    store.register("nova", "warp123")
    with pytest.raises(Conflict):
        store.register("nova", "other")
    assert store.verify("nova", "warp123").username == "nova"


@pytest.mark.parametrize(
    "username,password",
    [("", "pw"), ("   ", "pw"), ("nova", ""), ("nova", "  "), ("no va", "pw"), ("nova\n", "pw"), ("a\tb", "pw")],
)
def test_register_rejects_invalid_input(username: str, password: str) -> None:
    store = CredentialStore()
    with pytest.raises(InvalidInput):
        store.register(username, password)
    assert len(store) == 0


def test_usernames_are_case_sensitive() -> None:
    store = CredentialStore()
    store.register("Nova", "pw")
    store.register("nova", "pw")
    assert store.usernames() == ["Nova", "nova"]


def test_first_registered_user_is_admin() -> None:
    store = CredentialStore()
    assert store.register("leader", "pw").is_admin is True
    assert store.register("member", "pw").is_admin is False
    assert store.register("another", "pw").is_admin is False


def test_seeded_account_does_not_consume_bootstrap_admin() -> None:
    store = CredentialStore()
    demo = store.seed("gamer", "password123", "demo-device")
    assert demo.seeded is True
    assert demo.is_admin is False
    assert store.register("leader", "pw").is_admin is True
    assert store.verify("gamer", "password123").seeded is True


def test_device_id_generated_when_missing() -> None:
    store = CredentialStore()
    rec = store.register("nova", "pw")
    assert rec.device_id.startswith("device-")
    assert len(rec.device_id) == len("device-") + 6


def test_set_admin() -> None:
    store = CredentialStore()
    store.register("leader", "pw")
    store.register("member", "pw")
    assert store.set_admin("member", True) is True
    assert store.is_admin("member")
    assert store.set_admin("member", False) is False
    with pytest.raises(NotFound):
        store.set_admin("ghost", True)


def test_salts_are_random_and_hash_is_salted() -> None:
    s1, s2 = new_salt(), new_salt()
    assert s1 != s2
    assert hash_password("pw", s1) != hash_password("pw", s2)
    assert hash_password("pw", s1) == hash_password("pw", s1)


def test_returned_records_are_copies() -> None:
    store = CredentialStore()
    rec = store.register("leader", "pw")
    rec.is_admin = False
    assert store.is_admin("leader")
    assert check_password("pw", store.get("leader"))
