"""Derived views: chat summaries, transcripts, profile and search results.

Nothing here is stored. Every function recomputes its answer from the
collections it is given.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from .data_models import Chat, Message, Post, User


def _between(m: Message, a: str, b: str) -> bool:
    return (m.sender_id == a and m.receiver_id == b) or (m.sender_id == b and m.receiver_id == a)


def compute_chats(session: User, users: Iterable[User], messages: Sequence[Message]) -> List[Chat]:
    """One chat entry per friend of ``session``, in friend-list order.

    Friend ids with no matching user are skipped.
    """
    by_id: Dict[str, User] = {u.id: u for u in users}
    chats = []
    for friend_id in session.friends:
        friend = by_id.get(friend_id)
        if friend is None:
            continue

        last: Optional[str] = None
        last_key = None
        unread = 0
        for idx, m in enumerate(messages):
            if not _between(m, session.id, friend_id):
                continue
            key = (m.created_at, idx)
            if last_key is None or key > last_key:
                last_key, last = key, m.content
            if m.sender_id == friend_id and m.receiver_id == session.id and not m.read:
                unread += 1

        chats.append(Chat(
            peer_id=friend.id,
            peer_username=friend.username,
            peer_avatar=friend.avatar,
            last_message=last,
            unread_count=unread,
        ))
    return chats


def compute_transcript(session_id: str, peer_id: str, messages: Sequence[Message]) -> List[Message]:
    """Messages between the two users, oldest first.

    ``sorted`` is stable, so messages with equal timestamps keep insertion order.
    """
    pair = [m for m in messages if _between(m, session_id, peer_id)]
    return sorted(pair, key=lambda m: m.created_at)


def total_unread(chats: Iterable[Chat]) -> int:
    return sum(c.unread_count for c in chats)


# --- feed / profile helpers ---

def user_posts(posts: Iterable[Post], user_id: str) -> List[Post]:
    return [p for p in posts if p.author_id == user_id]


def list_friends(session: User, users: Iterable[User]) -> List[User]:
    by_id = {u.id: u for u in users}
    return [by_id[f] for f in session.friends if f in by_id]


def search_users(session: User, users: Iterable[User], query: str) -> List[User]:
    """Other users whose username or email contains ``query`` (case-insensitive)."""
    q = (query or "").lower()
    return [
        u for u in users
        if u.id != session.id and (q in u.username.lower() or q in u.email.lower())
    ]


def profile_stats(session: User, posts: Iterable[Post]) -> Dict[str, int]:
    return {
        "posts": len(user_posts(posts, session.id)),
        "friends": len(session.friends),
    }


def is_liked_by(post: Post, user_id: str) -> bool:
    return user_id in post.likes


def like_count(post: Post) -> int:
    return len(post.likes)


def format_time_ago(dt: datetime, now: Optional[datetime] = None) -> str:
    """Format datetime as 'time ago' string."""
    now = now or datetime.now(timezone.utc)
    diff = now - dt
    if diff.days > 0:
        return f"{diff.days}d ago"
    if diff.days < 0 or diff.seconds < 60:
        return "just now"
    if diff.seconds < 3600:
        return f"{diff.seconds // 60}m ago"
    return f"{diff.seconds // 3600}h ago"
