import base64
import binascii
import re
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?:;[\w=.-]+)*;base64,(?P<data>.*)$", re.S)


def decode_data_url(value: str) -> Tuple[Optional[str], bytes]:
    """Split a ``data:<mime>;base64,<payload>`` string. A bare base64 payload is accepted too.

    Raises ValueError when the payload is not valid base64.
    """
    value = (value or "").strip()
    mime = None
    m = DATA_URL_RE.match(value)
    if m:
        mime = m.group("mime")
        value = m.group("data")
    try:
        return mime, base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 payload: {e}")


def open_image(content: bytes) -> Image.Image:
    """Open and fully decode ``content``; raises ValueError if it is not an image."""
    try:
        img = Image.open(BytesIO(content))
        img.load()
        return img
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"not a readable image: {e}")


def is_valid_image(content: bytes) -> bool:
    try:
        with Image.open(BytesIO(content)) as img:
            img.verify()
        return True
    except (UnidentifiedImageError, OSError, SyntaxError):
        return False


def is_blank_image(img: Image.Image) -> bool:
    """True when nothing was drawn: fully transparent, or a single flat white surface."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        alpha = img.convert("RGBA").getchannel("A")
        return alpha.getbbox() is None

    # opaque canvas: anything darker than white counts as ink
    inverted = ImageOps.invert(img.convert("L"))
    return inverted.getbbox() is None


def is_blank_signature(data_url: Optional[str]) -> bool:
    if not data_url or not data_url.strip():
        return True
    try:
        _, content = decode_data_url(data_url)
        img = open_image(content)
    except ValueError:
        return True
    return is_blank_image(img)
