import pytest

from instasocial.data_models import Snapshot
from instasocial.errors import (
    DuplicateEmail,
    InvalidCredentials,
    MissingField,
    NotAuthenticated,
)
from instasocial.session import SessionContext, SessionManager


@pytest.fixture
def sessions():
    return SessionManager(SessionContext())


def test_register_logs_in(sessions):
    snapshot, user = sessions.register(Snapshot(), "alice", "alice@x.com", "pw1")
    assert sessions.context.user_id == user.id
    assert sessions.current_user(snapshot) == user


def test_register_same_email_twice(sessions):
    snapshot, alice = sessions.register(Snapshot(), "alice", "alice@x.com", "pw1")
    with pytest.raises(DuplicateEmail):
        sessions.register(snapshot, "alice2", "alice@x.com", "pw2")
    assert sessions.context.user_id == alice.id
    assert snapshot.users == (alice,)


def test_register_requires_all_fields(sessions):
    with pytest.raises(MissingField):
        sessions.register(Snapshot(), "", "alice@x.com", "pw1")
    assert not sessions.context.active


def test_login_matches_email_and_password(sessions):
    snapshot, alice = sessions.register(Snapshot(), "alice", "alice@x.com", "pw1")
    snapshot, bob = sessions.register(snapshot, "bob", "bob@x.com", "pw2")

    assert sessions.login(snapshot, "alice@x.com", "pw1") == alice
    assert sessions.context.user_id == alice.id

    with pytest.raises(InvalidCredentials):
        sessions.login(snapshot, "alice@x.com", "pw2")
    with pytest.raises(InvalidCredentials):
        sessions.login(snapshot, "nobody@x.com", "pw1")
    assert sessions.context.user_id == alice.id


def test_login_with_empty_fields(sessions):
    with pytest.raises(MissingField):
        sessions.login(Snapshot(), "", "pw")


def test_logout_keeps_users(sessions):
    snapshot, _ = sessions.register(Snapshot(), "alice", "alice@x.com", "pw1")
    sessions.logout()
    assert sessions.current_user(snapshot) is None
    assert len(snapshot.users) == 1


def test_update_avatar_requires_session(sessions):
    with pytest.raises(NotAuthenticated):
        sessions.update_avatar(Snapshot(), "data:image/png;base64,AAAA")


def test_update_avatar_keeps_session_and_collection_in_step(sessions):
    snapshot, alice = sessions.register(Snapshot(), "alice", "alice@x.com", "pw1")
    snapshot, updated = sessions.update_avatar(snapshot, "data:image/png;base64,AAAA")

    assert updated.avatar == "data:image/png;base64,AAAA"
    assert snapshot.find_user(alice.id) == updated
    assert sessions.current_user(snapshot) == updated


def test_update_bio(sessions):
    snapshot, alice = sessions.register(Snapshot(), "alice", "alice@x.com", "pw1")
    snapshot, updated = sessions.update_bio(snapshot, "hello there")
    assert snapshot.find_user(alice.id).bio == "hello there"
    snapshot, cleared = sessions.update_bio(snapshot, "")
    assert cleared.bio is None
