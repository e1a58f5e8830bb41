"""Persistence synchronizer: mirrors the in-memory snapshot to storage.

Each collection is written back whole after every mutation of it (no
incremental journal). Writes are fire-and-forget asyncio tasks: a failed write
is logged and dropped, the in-memory state is never rolled back and nothing is
retried. Two processes sharing a backing store can overwrite each other's
writes; the last full snapshot written wins. Within one process, writes to
the same key are applied in the order they were scheduled.
"""
import asyncio
import json
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from .config import CURRENT_USER_KEY, MESSAGES_KEY, POSTS_KEY, USERS_KEY
from .data_models import (
    Message,
    Post,
    Snapshot,
    User,
    message_from_dict,
    message_to_dict,
    post_from_dict,
    post_to_dict,
    user_from_dict,
    user_to_dict,
)
from .errors import InstaSocialError
from .storage import StorageAdapter

logger = logging.getLogger("instasocial.sync")


def dump_users(users: Iterable[User]) -> str:
    return json.dumps([user_to_dict(u) for u in users])


def dump_posts(posts: Iterable[Post]) -> str:
    return json.dumps([post_to_dict(p) for p in posts])


def dump_messages(messages: Iterable[Message]) -> str:
    return json.dumps([message_to_dict(m) for m in messages])


def _load_list(raw: Optional[str], convert: Callable, key: str) -> tuple:
    if raw is None:
        return ()
    try:
        items = json.loads(raw)
        if not isinstance(items, list):
            raise ValueError(f"expected a JSON array, got {type(items).__name__}")
    except ValueError as e:
        logger.error("ignoring unreadable blob %s: %s", key, e)
        return ()

    loaded = []
    for index, item in enumerate(items):
        try:
            loaded.append(convert(item))
        except (ValueError, KeyError, TypeError, AttributeError, InstaSocialError) as e:
            logger.error("skipping bad record %d in %s: %r", index, key, e)
    return tuple(loaded)


class PersistenceSynchronizer:
    def __init__(self, storage: StorageAdapter):
        self.storage = storage
        self._pending: Set[asyncio.Task] = set()
        self._tails: Dict[Tuple[str, bool], asyncio.Task] = {}

    # --- startup ---

    async def _read(self, key: str, shared: bool) -> Optional[str]:
        found = await self.storage.get(key, shared)
        return found.value if found is not None else None

    async def load(self) -> Tuple[Snapshot, Optional[str]]:
        """Load users, posts, messages and the session, in that order.

        Returns the snapshot and the session user id. A missing blob means an
        empty collection (or no session). A session naming a user that is not
        in the Users collection is discarded and its blob deleted.
        """
        users = _load_list(await self._read(USERS_KEY, True), user_from_dict, USERS_KEY)
        posts = _load_list(await self._read(POSTS_KEY, True), post_from_dict, POSTS_KEY)
        messages = _load_list(await self._read(MESSAGES_KEY, True), message_from_dict, MESSAGES_KEY)
        snapshot = Snapshot(users=users, posts=posts, messages=messages)
        logger.debug(
            "loaded %d users, %d posts, %d messages", len(users), len(posts), len(messages)
        )

        session_user_id = None
        raw_session = await self._read(CURRENT_USER_KEY, False)
        if raw_session is not None:
            try:
                session_user_id = str(json.loads(raw_session)["id"])
            except (ValueError, KeyError, TypeError) as e:
                logger.error("ignoring unreadable session blob: %s", e)
            if session_user_id is not None and snapshot.find_user(session_user_id) is None:
                logger.warning("stored session user %s no longer exists; logging out", session_user_id)
                session_user_id = None
            if session_user_id is None:
                await self._guard(f"delete {CURRENT_USER_KEY}", self.storage.delete(CURRENT_USER_KEY, False))

        return snapshot, session_user_id

    # --- fire-and-forget writes ---

    def _spawn(self, description: str, key: str, shared: bool, write: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """Queue ``write`` behind any earlier write to the same key.

        Writes to one key run one at a time in scheduling order. A queued write
        that has been superseded by a newer one for the same key is skipped, so
        the last snapshot scheduled is always the last one stored.
        """
        slot = (key, shared)
        previous = self._tails.get(slot)

        async def run() -> None:
            if previous is not None:
                await asyncio.wait({previous})
            if self._tails.get(slot) is not asyncio.current_task():
                logger.debug("skipping superseded write: %s", description)
                return
            await self._guard(description, write())

        task = asyncio.get_running_loop().create_task(run())
        self._tails[slot] = task
        self._pending.add(task)
        task.add_done_callback(lambda t: self._finished(slot, t))
        return task

    def _finished(self, slot: Tuple[str, bool], task: asyncio.Task) -> None:
        self._pending.discard(task)
        if self._tails.get(slot) is task:
            del self._tails[slot]

    @staticmethod
    async def _guard(description: str, coro) -> None:
        try:
            await coro
        except Exception:
            logger.exception("storage write failed: %s", description)

    def schedule_users(self, snapshot: Snapshot) -> asyncio.Task:
        value = dump_users(snapshot.users)
        return self._spawn(f"set {USERS_KEY}", USERS_KEY, True, lambda: self.storage.set(USERS_KEY, value, True))

    def schedule_posts(self, snapshot: Snapshot) -> asyncio.Task:
        value = dump_posts(snapshot.posts)
        return self._spawn(f"set {POSTS_KEY}", POSTS_KEY, True, lambda: self.storage.set(POSTS_KEY, value, True))

    def schedule_messages(self, snapshot: Snapshot) -> asyncio.Task:
        value = dump_messages(snapshot.messages)
        return self._spawn(
            f"set {MESSAGES_KEY}", MESSAGES_KEY, True, lambda: self.storage.set(MESSAGES_KEY, value, True)
        )

    def schedule_session(self, user: User) -> asyncio.Task:
        value = json.dumps(user_to_dict(user))
        return self._spawn(
            f"set {CURRENT_USER_KEY}", CURRENT_USER_KEY, False,
            lambda: self.storage.set(CURRENT_USER_KEY, value, False),
        )

    def schedule_logout(self) -> asyncio.Task:
        return self._spawn(
            f"delete {CURRENT_USER_KEY}", CURRENT_USER_KEY, False,
            lambda: self.storage.delete(CURRENT_USER_KEY, False),
        )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for every write scheduled so far. Never raises.

        Returns False if ``timeout`` seconds pass with writes still running;
        those writes are left to finish (or hang) on their own.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            tasks: List[asyncio.Task] = [t for t in self._pending if not t.done()]
            if not tasks:
                return True
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            _, not_done = await asyncio.wait(tasks, timeout=remaining)
            if not_done and remaining is not None:
                return False
