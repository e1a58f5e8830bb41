"""
Upload helpers: turn a local file into an embedded media reference.

The store never looks inside media; it only receives a ready ``Media``.
Size ceilings are enforced here, before anything reaches the store.
"""
import base64
import io
import mimetypes
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .config import MAX_AVATAR_BYTES, MAX_POST_MEDIA_BYTES
from .data_models import Media
from .errors import InvalidMedia, MediaTooLarge

# darkest to lightest
ASCII_CHARS = "@%#*+=-:. "


def guess_kind(path: Path) -> Tuple[str, str]:
    """Return (mime type, media kind) for a file name."""
    mime, _ = mimetypes.guess_type(str(path))
    if mime and mime.startswith("image/"):
        return mime, "image"
    if mime and mime.startswith("video/"):
        return mime, "video"
    raise InvalidMedia(mime or path.suffix or "unknown")


def load_media(path, max_bytes: int = MAX_POST_MEDIA_BYTES) -> Media:
    """Read a file and encode it as a data URL."""
    path = Path(path).expanduser()
    size = path.stat().st_size
    if size > max_bytes:
        raise MediaTooLarge(size, max_bytes)

    mime, kind = guess_kind(path)
    data = path.read_bytes()
    if kind == "image":
        try:
            Image.open(io.BytesIO(data)).verify()
        except (UnidentifiedImageError, OSError, SyntaxError):
            raise InvalidMedia(mime)

    encoded = base64.b64encode(data).decode("ascii")
    return Media(url=f"data:{mime};base64,{encoded}", kind=kind)


def load_avatar(path) -> Media:
    media = load_media(path, max_bytes=MAX_AVATAR_BYTES)
    if media.kind != "image":
        raise InvalidMedia(media.kind)
    return media


def decode_data_url(url: str) -> Optional[bytes]:
    if not url.startswith("data:") or ";base64," not in url:
        return None
    return base64.b64decode(url.split(";base64,", 1)[1])


def ascii_preview(url: Optional[str], width: int = 24) -> Optional[str]:
    """Render an image data URL as ASCII art for the terminal.

    Returns None for anything that is not a decodable image.
    """
    if not url:
        return None
    data = decode_data_url(url)
    if data is None:
        return None
    try:
        img = Image.open(io.BytesIO(data)).convert("L")
    except (UnidentifiedImageError, OSError):
        return None

    # terminal cells are roughly twice as tall as they are wide
    height = max(1, int(img.height / img.width * width / 2))
    img = img.resize((width, height))
    scale = len(ASCII_CHARS) - 1
    pixels = img.tobytes()  # one byte per pixel in mode "L"
    rows = []
    for y in range(height):
        row = pixels[y * width : (y + 1) * width]
        rows.append("".join(ASCII_CHARS[p * scale // 255] for p in row))
    return "\n".join(rows)
