import pytest

from vrcd.credentials import CredentialStore
from vrcd.errors import Forbidden, NotFound
from vrcd.policy import AuthorizationPolicy


def _policy() -> AuthorizationPolicy:
    store = CredentialStore()
    store.register("leader", "pw")
    store.register("member", "pw")
    return AuthorizationPolicy(store)


def test_admin_predicates() -> None:
    policy = _policy()
    assert policy.can_create_room("leader")
    assert policy.can_manage_roles("leader")
    assert not policy.can_create_room("member")
    assert not policy.can_manage_roles("member")
    assert not policy.can_create_room("ghost")
    assert not policy.can_create_room(None)


def test_grant_and_revoke() -> None:
    policy = _policy()
    assert policy.grant_or_revoke("leader", "member", True) is True
    assert policy.can_create_room("member")
    assert policy.grant_or_revoke("leader", "member", False) is False
    assert not policy.can_create_room("member")


def test_non_admin_cannot_manage_roles() -> None:
    policy = _policy()
    with pytest.raises(Forbidden):
        policy.grant_or_revoke("member", "member", True)
    with pytest.raises(Forbidden):
        policy.require_room_creator("member")


def test_unknown_target() -> None:
    with pytest.raises(NotFound):
        _policy().grant_or_revoke("leader", "ghost", True)
