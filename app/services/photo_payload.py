"""
Decoding and validation of photo data URLs sent by the guest camera
"""

import base64
import binascii
import io
import re
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from app.core.config import settings
from app.core.errors import InvalidPayload

DATA_URL_RE = re.compile(r"^data:(image/(\w+));base64,(.+)$", re.DOTALL)


@dataclass(frozen=True)
class DecodedPhoto:
    content_type: str
    extension: str
    data: bytes


def decode_photo(data_url: str) -> DecodedPhoto:
    """Decode ``data:image/<type>;base64,<data>`` and verify it is an image.

    Raises InvalidPayload for anything that is not a supported, decodable image.
    """
    if not data_url or not isinstance(data_url, str):
        raise InvalidPayload()

    match = DATA_URL_RE.match(data_url.strip())
    if not match:
        raise InvalidPayload()

    content_type, extension, encoded = match.groups()
    extension = extension.lower()
    if extension not in settings.ALLOWED_IMAGE_TYPES:
        raise InvalidPayload(f"Unsupported image type: {content_type}.")

    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidPayload()

    if not data:
        raise InvalidPayload("The photo is empty.")
    if len(data) > settings.MAX_UPLOAD_SIZE:
        raise InvalidPayload(f"The photo exceeds the maximum size of {settings.MAX_UPLOAD_SIZE // (1024 * 1024)}MB.")

    # HEIC needs a plugin Pillow may not have; trust the declared type there
    if extension != "heic":
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.verify()
        except (UnidentifiedImageError, OSError, SyntaxError):
            raise InvalidPayload("The photo could not be read as an image.")

    return DecodedPhoto(content_type=content_type.lower(), extension=extension, data=data)
