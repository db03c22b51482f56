import logging
import os
import re
import time
from typing import Optional

from gatsishub import config
from gatsishub.exceptions import UpstreamError, ValidationFailed
from gatsishub.utils.images import is_valid_image

logger = logging.getLogger(__name__)

ALLOWED_PROOF_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "application/pdf": ".pdf",
}

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class ProofStorage:
    """Stores payment proof files on disk under ``root``.

    Paths returned by ``save`` are relative to ``root`` and are what gets
    written to ``Payment.proof_of_payment``.
    """

    def __init__(self, root: Optional[str] = None, max_bytes: Optional[int] = None):
        self.root = root or config.UPLOAD_DIR
        self.max_bytes = max_bytes or config.MAX_PROOF_BYTES

    def check(self, content: bytes, content_type: Optional[str]) -> str:
        content_type = (content_type or "").lower()
        if content_type not in ALLOWED_PROOF_TYPES:
            raise ValidationFailed(
                "Only JPEG, PNG, GIF and PDF files are allowed",
                details={"proof_of_payment": f"Unsupported file type: {content_type or 'unknown'}"},
            )
        if not content:
            raise ValidationFailed("Payment proof file is required", details={"proof_of_payment": "File is empty"})
        if len(content) > self.max_bytes:
            raise ValidationFailed(
                "File size must be less than 5MB",
                details={"proof_of_payment": f"File exceeds {self.max_bytes} bytes"},
            )
        if content_type.startswith("image/") and not is_valid_image(content):
            raise ValidationFailed(
                "Uploaded file is not a valid image",
                details={"proof_of_payment": "Image could not be decoded"},
            )
        if content_type == "application/pdf" and not content.startswith(b"%PDF"):
            raise ValidationFailed(
                "Uploaded file is not a valid PDF",
                details={"proof_of_payment": "Missing PDF header"},
            )
        return ALLOWED_PROOF_TYPES[content_type]

    def save(self, order_id: str, filename: Optional[str], content: bytes, content_type: Optional[str]) -> str:
        ext = self.check(content, content_type)
        stem = _UNSAFE.sub("_", os.path.splitext(filename or "proof")[0])[:40] or "proof"
        relative = os.path.join("payments", str(order_id), f"{int(time.time() * 1000)}_{stem}{ext}")
        path = os.path.join(self.root, relative)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(content)
        except OSError as e:
            logger.exception("Failed to store payment proof for order %s: %s", order_id, e)
            raise UpstreamError("Failed to upload payment proof")
        logger.info("Stored payment proof for order %s at %s (%d bytes)", order_id, relative, len(content))
        return relative.replace(os.sep, "/")

    def delete(self, relative: Optional[str]) -> None:
        if not relative:
            return
        path = os.path.join(self.root, relative)
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.debug("Payment proof %s already gone", relative)
        except OSError as e:
            logger.warning("Failed to remove payment proof %s: %s", relative, e)
