"""Session management: who is logged in for this running process.

The session identity lives in an explicit ``SessionContext`` owned by the root
controller (``LocalAPI``) and handed to whoever needs it. The context stores
only the user id; the user record itself is always read from the current
snapshot, so the session can never drift from the Users collection.
"""
import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from . import store
from .data_models import Snapshot, User
from .errors import InvalidCredentials, MissingField, NotAuthenticated

logger = logging.getLogger("instasocial.session")


@dataclass
class SessionContext:
    user_id: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.user_id is not None


class SessionManager:
    def __init__(self, context: SessionContext):
        self.context = context

    def current_user(self, snapshot: Snapshot) -> Optional[User]:
        if not self.context.active:
            return None
        return snapshot.find_user(self.context.user_id)

    def require_user(self, snapshot: Snapshot) -> User:
        """Return the logged-in user or raise NotAuthenticated."""
        user = self.current_user(snapshot)
        if user is None:
            raise NotAuthenticated()
        return user

    def register(self, snapshot: Snapshot, username: str, email: str, password: str) -> Tuple[Snapshot, User]:
        """Create an account and log into it."""
        snapshot, user = store.add_user(snapshot, username, email, password)
        self.context.user_id = user.id
        logger.info("registered user %s (%s)", user.username, user.id)
        return snapshot, user

    def login(self, snapshot: Snapshot, email: str, password: str) -> User:
        if not email:
            raise MissingField("email")
        if not password:
            raise MissingField("password")
        user = next(
            (u for u in snapshot.users if u.email == email and u.password == password),
            None,
        )
        if user is None:
            logger.debug("login failed for %s", email)
            raise InvalidCredentials()
        self.context.user_id = user.id
        logger.info("logged in as %s (%s)", user.username, user.id)
        return user

    def logout(self) -> None:
        """Forget the session identity. The Users collection is untouched."""
        if self.context.active:
            logger.info("logged out %s", self.context.user_id)
        self.context.user_id = None

    def update_avatar(self, snapshot: Snapshot, avatar: Optional[str]) -> Tuple[Snapshot, User]:
        user = replace(self.require_user(snapshot), avatar=avatar)
        return store.replace_user(snapshot, user), user

    def update_bio(self, snapshot: Snapshot, bio: Optional[str]) -> Tuple[Snapshot, User]:
        user = replace(self.require_user(snapshot), bio=bio or None)
        return store.replace_user(snapshot, user), user
