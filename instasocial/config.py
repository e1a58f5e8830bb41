"""Configuration and constants"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Storage keys
USERS_KEY = "app_users"
POSTS_KEY = "app_posts"
MESSAGES_KEY = "app_messages"
CURRENT_USER_KEY = "app_current_user"

# Upload ceilings, enforced before media reaches the store
MAX_POST_MEDIA_BYTES = 15 * 1024 * 1024
MAX_AVATAR_BYTES = 5 * 1024 * 1024

# Local settings
DEFAULT_DATA_DIR = Path.home() / ".instasocial"
DEBUG_LOG_FILE = Path.home() / ".instasocial_debug.log"
KEYRING_SERVICE = "instasocial"
SESSION_BACKENDS = ("keyring", "file")
# Seconds to wait for pending storage writes when the app exits.
FLUSH_TIMEOUT = 10.0


@dataclass(frozen=True)
class Settings:
    data_dir: Path = DEFAULT_DATA_DIR
    backend_url: Optional[str] = None
    backend_token: Optional[str] = None
    http_timeout: float = 5.0
    session_backend: str = "keyring"
    keyring_service: str = KEYRING_SERVICE
    debug: bool = False


def load_settings() -> Settings:
    """Read settings from the environment, after loading a local .env file."""
    load_dotenv(override=False)

    session_backend = os.getenv("INSTASOCIAL_SESSION_BACKEND", "keyring").lower()
    if session_backend not in SESSION_BACKENDS:
        raise ValueError(
            f"INSTASOCIAL_SESSION_BACKEND must be one of {', '.join(SESSION_BACKENDS)}, "
            f"got {session_backend!r}"
        )

    return Settings(
        data_dir=Path(os.getenv("INSTASOCIAL_DATA_DIR") or DEFAULT_DATA_DIR).expanduser(),
        backend_url=os.getenv("INSTASOCIAL_BACKEND_URL") or None,
        backend_token=os.getenv("INSTASOCIAL_BACKEND_TOKEN") or None,
        http_timeout=float(os.getenv("INSTASOCIAL_HTTP_TIMEOUT") or 5.0),
        session_backend=session_backend,
        keyring_service=os.getenv("INSTASOCIAL_KEYRING_SERVICE") or KEYRING_SERVICE,
        debug=bool(os.getenv("INSTASOCIAL_DEBUG")),
    )
