from dataclasses import replace

import pytest

from instasocial import store
from instasocial.data_models import Media, Snapshot
from instasocial.errors import (
    DuplicateEmail,
    EmptyComment,
    EmptyMessage,
    EmptyPost,
    InvalidMedia,
    MissingField,
    PostNotFound,
    SelfFriendship,
    UserNotFound,
)


# --- users ---

def test_add_user_starts_with_no_friends():
    snapshot, user = store.add_user(Snapshot(), "alice", "alice@x.com", "pw1")
    assert snapshot.users == (user,)
    assert user.friends == ()
    assert user.avatar is None


@pytest.mark.parametrize("field", ["username", "email", "password"])
def test_add_user_requires_every_field(field):
    values = {"username": "alice", "email": "alice@x.com", "password": "pw1"}
    values[field] = ""
    with pytest.raises(MissingField) as exc:
        store.add_user(Snapshot(), **values)
    assert exc.value.field == field


def test_duplicate_email_is_rejected_and_first_user_unaffected(snapshot_with_users):
    snapshot, alice, _ = snapshot_with_users
    with pytest.raises(DuplicateEmail):
        store.add_user(snapshot, "mallory", "alice@x.com", "other")
    assert snapshot.find_user(alice.id) == alice
    assert len(snapshot.users) == 2


def test_ids_are_unique():
    snapshot = Snapshot()
    for i in range(50):
        snapshot, _ = store.add_user(snapshot, f"u{i}", f"u{i}@x.com", "pw")
    assert len({u.id for u in snapshot.users}) == 50


# --- posts ---

def test_create_post_prepends_and_leaves_input_untouched(snapshot_with_users, clock):
    snapshot, alice, bob = snapshot_with_users
    s1, first = store.create_post(snapshot, alice.id, "first", clock=clock)
    s2, second = store.create_post(s1, bob.id, "second", clock=clock)

    assert [p.id for p in s2.posts] == [second.id, first.id]
    assert s1.posts == (first,)
    assert snapshot.posts == ()
    assert second.author_username == "bob"
    assert second.created_at > first.created_at


def test_create_post_needs_text_or_media(snapshot_with_users):
    snapshot, alice, _ = snapshot_with_users
    with pytest.raises(EmptyPost):
        store.create_post(snapshot, alice.id, "   ")
    with pytest.raises(EmptyPost):
        store.create_post(snapshot, alice.id, "", None)


def test_media_only_post_is_allowed(snapshot_with_users):
    snapshot, alice, _ = snapshot_with_users
    media = Media(url="data:image/png;base64,AAAA", kind="image")
    snapshot, post = store.create_post(snapshot, alice.id, "", media)
    assert post.media == media
    assert post.content == ""


def test_media_kind_must_be_image_or_video():
    with pytest.raises(InvalidMedia):
        Media(url="data:text/plain;base64,AAAA", kind="text")


def test_create_post_by_unknown_author(snapshot_with_users):
    snapshot, _, _ = snapshot_with_users
    with pytest.raises(UserNotFound):
        store.create_post(snapshot, "ghost", "boo")


def test_post_keeps_author_details_from_creation_time(snapshot_with_users):
    snapshot, alice, _ = snapshot_with_users
    snapshot, post = store.create_post(snapshot, alice.id, "hello")
    snapshot = store.replace_user(snapshot, replace(alice, username="alice2", avatar="data:image/png;base64,X"))

    kept = snapshot.find_post(post.id)
    assert kept.author_username == "alice"
    assert kept.author_avatar is None


def test_toggle_like_twice_restores_likes(snapshot_with_users):
    snapshot, alice, bob = snapshot_with_users
    snapshot, post = store.create_post(snapshot, alice.id, "hello")
    snapshot = store.toggle_like(snapshot, post.id, alice.id)
    before = snapshot.find_post(post.id).likes

    once = store.toggle_like(snapshot, post.id, bob.id)
    twice = store.toggle_like(once, post.id, bob.id)

    assert once.find_post(post.id).likes == (alice.id, bob.id)
    assert twice.find_post(post.id).likes == before


def test_toggle_like_never_duplicates(snapshot_with_users):
    snapshot, alice, _ = snapshot_with_users
    snapshot, post = store.create_post(snapshot, alice.id, "hello")
    for _ in range(5):
        snapshot = store.toggle_like(snapshot, post.id, alice.id)
    likes = snapshot.find_post(post.id).likes
    assert likes == (alice.id,)


def test_toggle_like_on_unknown_post_is_a_no_op(snapshot_with_users):
    snapshot, alice, _ = snapshot_with_users
    assert store.toggle_like(snapshot, "missing", alice.id) is snapshot


def test_comments_keep_insertion_order(snapshot_with_users, clock):
    snapshot, alice, bob = snapshot_with_users
    snapshot, post = store.create_post(snapshot, alice.id, "hello", clock=clock)
    texts = ["one", "two", "three", "four"]
    for i, text in enumerate(texts):
        author = alice if i % 2 else bob
        snapshot, _ = store.add_comment(snapshot, post.id, author.id, text, clock=clock)

    comments = snapshot.find_post(post.id).comments
    assert [c.content for c in comments] == texts
    assert [c.author_username for c in comments] == ["bob", "alice", "bob", "alice"]


def test_add_comment_to_unknown_post(snapshot_with_users):
    snapshot, alice, _ = snapshot_with_users
    with pytest.raises(PostNotFound):
        store.add_comment(snapshot, "missing", alice.id, "hi")


def test_add_comment_rejects_blank_text(snapshot_with_users):
    snapshot, alice, _ = snapshot_with_users
    snapshot, post = store.create_post(snapshot, alice.id, "hello")
    with pytest.raises(EmptyComment):
        store.add_comment(snapshot, post.id, alice.id, "  ")


# --- friends ---

def test_add_friend_is_directed(snapshot_with_users):
    snapshot, alice, bob = snapshot_with_users
    snapshot = store.add_friend(snapshot, alice.id, bob.id)

    assert bob.id in snapshot.find_user(alice.id).friends
    assert alice.id not in snapshot.find_user(bob.id).friends

    snapshot = store.add_friend(snapshot, bob.id, alice.id)
    assert alice.id in snapshot.find_user(bob.id).friends


def test_add_friend_twice_keeps_one_entry(snapshot_with_users):
    snapshot, alice, bob = snapshot_with_users
    once = store.add_friend(snapshot, alice.id, bob.id)
    twice = store.add_friend(once, alice.id, bob.id)
    assert twice is once
    assert twice.find_user(alice.id).friends == (bob.id,)


def test_add_friend_rejects_self_and_unknown(snapshot_with_users):
    snapshot, alice, _ = snapshot_with_users
    with pytest.raises(SelfFriendship):
        store.add_friend(snapshot, alice.id, alice.id)
    with pytest.raises(UserNotFound):
        store.add_friend(snapshot, alice.id, "ghost")
    with pytest.raises(UserNotFound):
        store.add_friend(snapshot, "ghost", alice.id)


def test_remove_friend(snapshot_with_users):
    snapshot, alice, bob = snapshot_with_users
    snapshot = store.add_friend(snapshot, alice.id, bob.id)
    snapshot = store.add_friend(snapshot, bob.id, alice.id)
    snapshot = store.remove_friend(snapshot, alice.id, bob.id)

    assert snapshot.find_user(alice.id).friends == ()
    assert snapshot.find_user(bob.id).friends == (alice.id,)
    assert store.remove_friend(snapshot, alice.id, bob.id) is snapshot


# --- messages ---

def test_send_message_appends_unread(snapshot_with_users, clock):
    snapshot, alice, bob = snapshot_with_users
    snapshot, m1 = store.send_message(snapshot, alice.id, bob.id, "hi", clock=clock)
    snapshot, m2 = store.send_message(snapshot, bob.id, alice.id, "hey", clock=clock)

    assert snapshot.messages == (m1, m2)
    assert not m1.read and not m2.read


@pytest.mark.parametrize("content", ["", "   ", "\n"])
def test_send_message_rejects_blank(snapshot_with_users, content):
    snapshot, alice, bob = snapshot_with_users
    with pytest.raises(EmptyMessage):
        store.send_message(snapshot, alice.id, bob.id, content)


def test_send_message_to_unknown_user(snapshot_with_users):
    snapshot, alice, _ = snapshot_with_users
    with pytest.raises(UserNotFound):
        store.send_message(snapshot, alice.id, "ghost", "hello?")


def test_mark_read_only_touches_messages_to_me(snapshot_with_users, clock):
    snapshot, alice, bob = snapshot_with_users
    snapshot, _ = store.send_message(snapshot, bob.id, alice.id, "one", clock=clock)
    snapshot, _ = store.send_message(snapshot, alice.id, bob.id, "two", clock=clock)
    snapshot, _ = store.send_message(snapshot, bob.id, alice.id, "three", clock=clock)

    marked = store.mark_read(snapshot, alice.id, bob.id)

    assert [m.read for m in marked.messages] == [True, False, True]
    assert [m.read for m in snapshot.messages] == [False, False, False]
    assert store.mark_read(marked, alice.id, bob.id) is marked
