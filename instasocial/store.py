"""Entity store: every mutation of users, posts and messages.

Each function takes the current ``Snapshot`` and returns a new one; the input
snapshot is never modified. Functions that create an entity also return it.
``clock`` is injectable so tests can control timestamps.
"""
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Tuple

from .data_models import (
    Comment,
    Media,
    Message,
    Post,
    Snapshot,
    User,
    new_id,
    utcnow,
)
from .errors import (
    DuplicateEmail,
    EmptyComment,
    EmptyMessage,
    EmptyPost,
    MissingField,
    PostNotFound,
    SelfFriendship,
    UserNotFound,
)

Clock = Callable[[], datetime]


# --- users ---

def add_user(snapshot: Snapshot, username: str, email: str, password: str) -> Tuple[Snapshot, User]:
    """Append a new user with an empty friend list."""
    for name, value in (("username", username), ("email", email), ("password", password)):
        if not value:
            raise MissingField(name)
    if snapshot.find_user_by_email(email) is not None:
        raise DuplicateEmail(email)

    user = User(id=new_id(), username=username, email=email, password=password)
    return replace(snapshot, users=snapshot.users + (user,)), user


def replace_user(snapshot: Snapshot, user: User) -> Snapshot:
    """Swap in ``user`` for the record with the same id."""
    if snapshot.find_user(user.id) is None:
        raise UserNotFound(user.id)
    users = tuple(user if u.id == user.id else u for u in snapshot.users)
    return replace(snapshot, users=users)


def _require_user(snapshot: Snapshot, user_id: str) -> User:
    user = snapshot.find_user(user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user


def add_friend(snapshot: Snapshot, session_user_id: str, target_user_id: str) -> Snapshot:
    """Add ``target_user_id`` to the session user's friends.

    The relation is directed: the target's own friend list is left alone.
    """
    me = _require_user(snapshot, session_user_id)
    if target_user_id == session_user_id:
        raise SelfFriendship()
    _require_user(snapshot, target_user_id)
    if target_user_id in me.friends:
        return snapshot
    return replace_user(snapshot, replace(me, friends=me.friends + (target_user_id,)))


def remove_friend(snapshot: Snapshot, session_user_id: str, target_user_id: str) -> Snapshot:
    me = _require_user(snapshot, session_user_id)
    if target_user_id not in me.friends:
        return snapshot
    friends = tuple(f for f in me.friends if f != target_user_id)
    return replace_user(snapshot, replace(me, friends=friends))


# --- posts ---

def create_post(
    snapshot: Snapshot,
    author_id: str,
    content: str,
    media: Optional[Media] = None,
    clock: Clock = utcnow,
) -> Tuple[Snapshot, Post]:
    """Publish a post. New posts go to the front of the post sequence."""
    if not (content or "").strip() and media is None:
        raise EmptyPost()
    author = _require_user(snapshot, author_id)

    post = Post(
        id=new_id(),
        author_id=author.id,
        author_username=author.username,
        author_avatar=author.avatar,
        content=content or "",
        media=media,
        created_at=clock(),
    )
    return replace(snapshot, posts=(post,) + snapshot.posts), post


def _replace_post(snapshot: Snapshot, post: Post) -> Snapshot:
    posts = tuple(post if p.id == post.id else p for p in snapshot.posts)
    return replace(snapshot, posts=posts)


def toggle_like(snapshot: Snapshot, post_id: str, user_id: str) -> Snapshot:
    """Like the post, or unlike it if ``user_id`` already likes it.

    An unknown ``post_id`` is a no-op: the same snapshot is returned.
    """
    post = snapshot.find_post(post_id)
    if post is None:
        return snapshot
    if user_id in post.likes:
        likes = tuple(u for u in post.likes if u != user_id)
    else:
        likes = post.likes + (user_id,)
    return _replace_post(snapshot, replace(post, likes=likes))


def add_comment(
    snapshot: Snapshot,
    post_id: str,
    author_id: str,
    content: str,
    clock: Clock = utcnow,
) -> Tuple[Snapshot, Comment]:
    if not (content or "").strip():
        raise EmptyComment()
    post = snapshot.find_post(post_id)
    if post is None:
        raise PostNotFound(post_id)
    author = _require_user(snapshot, author_id)

    comment = Comment(
        id=new_id(),
        author_id=author.id,
        author_username=author.username,
        content=content,
        created_at=clock(),
    )
    return _replace_post(snapshot, replace(post, comments=post.comments + (comment,))), comment


# --- messages ---

def send_message(
    snapshot: Snapshot,
    sender_id: str,
    receiver_id: str,
    content: str,
    clock: Clock = utcnow,
) -> Tuple[Snapshot, Message]:
    if not (content or "").strip():
        raise EmptyMessage()
    _require_user(snapshot, sender_id)
    _require_user(snapshot, receiver_id)

    message = Message(
        id=new_id(),
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        created_at=clock(),
        read=False,
    )
    return replace(snapshot, messages=snapshot.messages + (message,)), message


def mark_read(snapshot: Snapshot, session_user_id: str, peer_id: str) -> Snapshot:
    """Mark every unread message from ``peer_id`` to the session user as read."""
    if not any(_unread_from(m, peer_id, session_user_id) for m in snapshot.messages):
        return snapshot
    messages = tuple(
        replace(m, read=True) if _unread_from(m, peer_id, session_user_id) else m
        for m in snapshot.messages
    )
    return replace(snapshot, messages=messages)


def _unread_from(m: Message, sender_id: str, receiver_id: str) -> bool:
    return m.sender_id == sender_id and m.receiver_id == receiver_id and not m.read
