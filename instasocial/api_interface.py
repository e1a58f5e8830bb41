import logging
from typing import Dict, List, Optional

from . import aggregator, store
from .data_models import Chat, Comment, Media, Message, Post, Snapshot, User, utcnow
from .errors import PostNotFound, UserNotFound
from .session import SessionContext, SessionManager
from .storage import StorageAdapter
from .store import Clock
from .sync import PersistenceSynchronizer

logger = logging.getLogger("instasocial.api")


class APIInterface:
    def get_current_user(self) -> Optional[User]: ...
    def register(self, username: str, email: str, password: str) -> User: ...
    def login(self, email: str, password: str) -> User: ...
    def logout(self) -> None: ...
    def update_avatar(self, avatar: Optional[str]) -> User: ...
    def update_bio(self, bio: Optional[str]) -> User: ...
    def get_timeline(self) -> List[Post]: ...
    def get_user_posts(self, user_id: Optional[str] = None) -> List[Post]: ...
    def get_profile_stats(self) -> Dict[str, int]: ...
    def create_post(self, content: str, media: Optional[Media] = None) -> Post: ...
    def like_post(self, post_id: str) -> Optional[Post]: ...
    # comments
    def get_comments(self, post_id: str) -> List[Comment]: ...
    def add_comment(self, post_id: str, text: str) -> Comment: ...
    # friends
    def get_user(self, user_id: str) -> User: ...
    def search_users(self, query: str) -> List[User]: ...
    def get_friends(self) -> List[User]: ...
    def add_friend(self, user_id: str) -> User: ...
    def remove_friend(self, user_id: str) -> User: ...
    # messages
    def get_conversations(self) -> List[Chat]: ...
    def get_conversation_messages(self, peer_id: str, mark_read: bool = True) -> List[Message]: ...
    def send_message(self, peer_id: str, content: str) -> Message: ...


class LocalAPI(APIInterface):
    """Root controller for a local-first session.

    Owns the current snapshot, the session context and the synchronizer. Every
    operation swaps in the new snapshot returned by the store and then schedules
    a write of each collection that changed. Must be used from inside a running
    asyncio event loop (the Textual app, or an async test).
    """

    def __init__(self, synchronizer: PersistenceSynchronizer, snapshot: Snapshot = Snapshot(),
                 session_user_id: Optional[str] = None, clock: Clock = utcnow):
        self.sync = synchronizer
        self.snapshot = snapshot
        self.context = SessionContext(user_id=session_user_id)
        self.sessions = SessionManager(self.context)
        self.clock = clock

    @classmethod
    async def open(cls, storage: StorageAdapter, clock: Clock = utcnow) -> "LocalAPI":
        """Load persisted state and return a ready controller."""
        synchronizer = PersistenceSynchronizer(storage)
        snapshot, session_user_id = await synchronizer.load()
        return cls(synchronizer, snapshot, session_user_id, clock=clock)

    async def aclose(self, timeout: Optional[float] = None) -> None:
        """Wait for pending writes, giving up after ``timeout`` seconds if set."""
        if not await self.sync.flush(timeout):
            logger.warning("exiting with %d storage writes still pending", self.sync.pending)

    # --- helpers ---
    def _commit(self, new: Snapshot) -> None:
        old, self.snapshot = self.snapshot, new
        if new.users is not old.users:
            self.sync.schedule_users(new)
            me = self.get_current_user()
            if me is not None and me != old.find_user(me.id):
                self.sync.schedule_session(me)
        if new.posts is not old.posts:
            self.sync.schedule_posts(new)
        if new.messages is not old.messages:
            self.sync.schedule_messages(new)

    def _me(self) -> User:
        return self.sessions.require_user(self.snapshot)

    # --- session ---
    def get_current_user(self) -> Optional[User]:
        return self.sessions.current_user(self.snapshot)

    @property
    def is_logged_in(self) -> bool:
        return self.get_current_user() is not None

    def register(self, username: str, email: str, password: str) -> User:
        snapshot, user = self.sessions.register(self.snapshot, username, email, password)
        # the new user record is also the new session blob
        self._commit(snapshot)
        return user

    def login(self, email: str, password: str) -> User:
        user = self.sessions.login(self.snapshot, email, password)
        self.sync.schedule_session(user)
        return user

    def logout(self) -> None:
        self.sessions.logout()
        self.sync.schedule_logout()

    def update_avatar(self, avatar: Optional[str]) -> User:
        snapshot, user = self.sessions.update_avatar(self.snapshot, avatar)
        self._commit(snapshot)
        return user

    def update_bio(self, bio: Optional[str]) -> User:
        snapshot, user = self.sessions.update_bio(self.snapshot, bio)
        self._commit(snapshot)
        return user

    # --- feed ---
    def get_timeline(self) -> List[Post]:
        return list(self.snapshot.posts)

    def get_user_posts(self, user_id: Optional[str] = None) -> List[Post]:
        return aggregator.user_posts(self.snapshot.posts, user_id or self._me().id)

    def get_profile_stats(self) -> Dict[str, int]:
        return aggregator.profile_stats(self._me(), self.snapshot.posts)

    def create_post(self, content: str, media: Optional[Media] = None) -> Post:
        snapshot, post = store.create_post(self.snapshot, self._me().id, content, media, clock=self.clock)
        self._commit(snapshot)
        return post

    def like_post(self, post_id: str) -> Optional[Post]:
        """Toggle the current user's like. Returns None for an unknown post."""
        self._commit(store.toggle_like(self.snapshot, post_id, self._me().id))
        return self.snapshot.find_post(post_id)

    def get_comments(self, post_id: str) -> List[Comment]:
        post = self.snapshot.find_post(post_id)
        if post is None:
            raise PostNotFound(post_id)
        return list(post.comments)

    def add_comment(self, post_id: str, text: str) -> Comment:
        snapshot, comment = store.add_comment(self.snapshot, post_id, self._me().id, text, clock=self.clock)
        self._commit(snapshot)
        return comment

    # --- friends ---
    def get_user(self, user_id: str) -> User:
        user = self.snapshot.find_user(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def search_users(self, query: str) -> List[User]:
        return aggregator.search_users(self._me(), self.snapshot.users, query)

    def get_friends(self) -> List[User]:
        return aggregator.list_friends(self._me(), self.snapshot.users)

    def add_friend(self, user_id: str) -> User:
        self._commit(store.add_friend(self.snapshot, self._me().id, user_id))
        return self._me()

    def remove_friend(self, user_id: str) -> User:
        self._commit(store.remove_friend(self.snapshot, self._me().id, user_id))
        return self._me()

    # --- messages ---
    def get_conversations(self) -> List[Chat]:
        return aggregator.compute_chats(self._me(), self.snapshot.users, self.snapshot.messages)

    def get_conversation_messages(self, peer_id: str, mark_read: bool = True) -> List[Message]:
        """Transcript with ``peer_id``, oldest first.

        Viewing a transcript marks the peer's messages to us as read.
        """
        me = self._me()
        if mark_read:
            self._commit(store.mark_read(self.snapshot, me.id, peer_id))
        return aggregator.compute_transcript(me.id, peer_id, self.snapshot.messages)

    def send_message(self, peer_id: str, content: str) -> Message:
        snapshot, message = store.send_message(self.snapshot, self._me().id, peer_id, content, clock=self.clock)
        self._commit(snapshot)
        return message
