"""
Data models for the instasocial application.
These models define the structure of data used throughout the app.

All records are frozen: the store never edits a record in place, it builds a
new one with ``dataclasses.replace`` and a new ``Snapshot`` around it.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
import uuid

from .errors import InvalidMedia

MEDIA_KINDS = ("image", "video")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def new_id() -> str:
    """Random 128-bit identifier, hex encoded."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Current UTC time truncated to milliseconds (the stored precision)."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def to_millis(dt: datetime) -> int:
    return (dt - EPOCH) // timedelta(milliseconds=1)


def from_millis(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=int(ms))


@dataclass(frozen=True)
class Media:
    """An embedded media reference supplied by the upload step."""
    url: str
    kind: str  # 'image' or 'video'

    def __post_init__(self):
        if self.kind not in MEDIA_KINDS:
            raise InvalidMedia(self.kind)


@dataclass(frozen=True)
class User:
    """Represents a user in the system."""
    id: str
    username: str
    email: str
    password: str
    avatar: Optional[str] = None
    bio: Optional[str] = None
    friends: Tuple[str, ...] = ()  # directed: ids this user follows


@dataclass(frozen=True)
class Comment:
    id: str
    author_id: str
    author_username: str  # Denormalized at creation time
    content: str
    created_at: datetime


@dataclass(frozen=True)
class Post:
    """Represents a social media post."""
    id: str
    author_id: str
    author_username: str  # Denormalized at creation time
    content: str
    created_at: datetime
    author_avatar: Optional[str] = None
    media: Optional[Media] = None
    likes: Tuple[str, ...] = ()
    comments: Tuple[Comment, ...] = ()


@dataclass(frozen=True)
class Message:
    """Represents a direct message between two users."""
    id: str
    sender_id: str
    receiver_id: str
    content: str
    created_at: datetime
    read: bool = False


@dataclass(frozen=True)
class Chat:
    """Derived summary of the conversation with one friend. Never persisted."""
    peer_id: str
    peer_username: str
    peer_avatar: Optional[str]
    last_message: Optional[str]
    unread_count: int = 0


@dataclass(frozen=True)
class Snapshot:
    """Immutable value of the three collections at one point in time."""
    users: Tuple[User, ...] = ()
    posts: Tuple[Post, ...] = ()  # most recent first, by storage order
    messages: Tuple[Message, ...] = ()  # insertion order

    def find_user(self, user_id: str) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)

    def find_user_by_email(self, email: str) -> Optional[User]:
        return next((u for u in self.users if u.email == email), None)

    def find_post(self, post_id: str) -> Optional[Post]:
        return next((p for p in self.posts if p.id == post_id), None)


# --- conversion helpers (JSON wire format) ---

def _put_optional(out: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        out[key] = value


def user_to_dict(u: User) -> Dict[str, Any]:
    out = {
        "id": u.id,
        "username": u.username,
        "email": u.email,
        "password": u.password,
    }
    _put_optional(out, "avatar", u.avatar)
    _put_optional(out, "bio", u.bio)
    out["friends"] = list(u.friends)
    return out


def user_from_dict(d: Dict[str, Any]) -> User:
    return User(
        id=str(d["id"]),
        username=d.get("username") or "",
        email=d.get("email") or "",
        password=d.get("password") or "",
        avatar=d.get("avatar"),
        bio=d.get("bio"),
        friends=_unique(str(f) for f in d.get("friends") or []),
    )


def comment_to_dict(c: Comment) -> Dict[str, Any]:
    return {
        "id": c.id,
        "userId": c.author_id,
        "username": c.author_username,
        "content": c.content,
        "timestamp": to_millis(c.created_at),
    }


def comment_from_dict(d: Dict[str, Any]) -> Comment:
    return Comment(
        id=str(d["id"]),
        author_id=_author_id(d),
        author_username=d.get("username") or "",
        content=d.get("content") or "",
        created_at=from_millis(d.get("timestamp") or 0),
    )


def post_to_dict(p: Post) -> Dict[str, Any]:
    out = {
        "id": p.id,
        "userId": p.author_id,
        "username": p.author_username,
    }
    _put_optional(out, "userAvatar", p.author_avatar)
    out["content"] = p.content
    if p.media is not None:
        out["mediaUrl"] = p.media.url
        out["mediaType"] = p.media.kind
    out["likes"] = list(p.likes)
    out["comments"] = [comment_to_dict(c) for c in p.comments]
    out["timestamp"] = to_millis(p.created_at)
    return out


def post_from_dict(d: Dict[str, Any]) -> Post:
    media = None
    if d.get("mediaUrl"):
        media = Media(url=d["mediaUrl"], kind=d.get("mediaType") or "image")
    return Post(
        id=str(d["id"]),
        author_id=_author_id(d),
        author_username=d.get("username") or "",
        author_avatar=d.get("userAvatar"),
        content=d.get("content") or "",
        media=media,
        likes=_unique(str(u) for u in d.get("likes") or []),
        comments=tuple(comment_from_dict(c) for c in d.get("comments") or []),
        created_at=from_millis(d.get("timestamp") or 0),
    )


def message_to_dict(m: Message) -> Dict[str, Any]:
    return {
        "id": m.id,
        "senderId": m.sender_id,
        "receiverId": m.receiver_id,
        "content": m.content,
        "timestamp": to_millis(m.created_at),
        "read": m.read,
    }


def message_from_dict(d: Dict[str, Any]) -> Message:
    return Message(
        id=str(d["id"]),
        sender_id=str(d["senderId"]),
        receiver_id=str(d["receiverId"]),
        content=d.get("content") or "",
        created_at=from_millis(d.get("timestamp") or 0),
        read=bool(d.get("read") or False),
    )


def _author_id(d: Dict[str, Any]) -> str:
    author = d.get("userId") or d.get("authorId")
    if not author:
        raise KeyError("userId")
    return str(author)


def _unique(ids) -> Tuple[str, ...]:
    # keeps first occurrence order; older blobs may hold duplicate friend ids
    seen: List[str] = []
    for i in ids:
        if i not in seen:
            seen.append(i)
    return tuple(seen)
