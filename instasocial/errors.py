"""Typed errors raised by the instasocial core.

Every operation on the store or the session either returns a new snapshot or
raises one of these. Callers (the UI) catch ``InstaSocialError`` and show the
message; nothing here is retried.
"""


class InstaSocialError(Exception):
    """Base class for all errors surfaced to the caller."""
    pass


# --- validation ---

class ValidationError(InstaSocialError):
    """A required field is missing or empty."""
    pass


class MissingField(ValidationError):
    def __init__(self, field: str):
        super().__init__(f"{field} is required")
        self.field = field


class EmptyPost(ValidationError):
    def __init__(self):
        super().__init__("A post needs text or media")


class EmptyMessage(ValidationError):
    def __init__(self):
        super().__init__("Message is empty")


class EmptyComment(ValidationError):
    def __init__(self):
        super().__init__("Comment is empty")


class SelfFriendship(ValidationError):
    def __init__(self):
        super().__init__("You cannot add yourself as a friend")


class InvalidMedia(ValidationError):
    def __init__(self, kind: str):
        super().__init__(f"Unsupported media kind: {kind!r}")
        self.kind = kind


class MediaTooLarge(ValidationError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"File is {size / (1024 * 1024):.1f}MB; the limit is {limit // (1024 * 1024)}MB")
        self.size = size
        self.limit = limit


# --- conflicts ---

class ConflictError(InstaSocialError):
    pass


class DuplicateEmail(ConflictError):
    def __init__(self, email: str):
        super().__init__(f"Email {email} is already registered")
        self.email = email


# --- authentication ---

class AuthError(InstaSocialError):
    """Authentication related errors"""
    pass


class InvalidCredentials(AuthError):
    def __init__(self):
        super().__init__("Email or password is incorrect")


class NotAuthenticated(AuthError):
    def __init__(self):
        super().__init__("No user is logged in")


# --- lookups ---

class NotFoundError(InstaSocialError):
    pass


class UserNotFound(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class PostNotFound(NotFoundError):
    def __init__(self, post_id: str):
        super().__init__(f"Post {post_id} not found")
        self.post_id = post_id


# --- storage ---

class StorageError(InstaSocialError):
    """A storage backend failed to read or write a blob."""
    pass
