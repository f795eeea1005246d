"""Media helpers shared by the sync engine and the local media store."""

import hashlib
import io
import logging
from functools import wraps
from urllib.parse import urlparse
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

PHOTO_HASH_ALGO = 'sha256'


class CorruptedImageError(Exception):
    """Raised when image data is corrupted and cannot be processed."""
    pass


def handle_image_errors(func):
    """Convert Pillow decoding failures into CorruptedImageError.

    The decorated function receives image_path and/or image_data as keyword
    arguments so the error message can name the source.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        image_path = kwargs.get('image_path')
        image_data = kwargs.get('image_data')
        source = f"file '{image_path}'" if image_path else f"image data ({len(image_data) if image_data else 0} bytes)"
        try:
            return func(*args, **kwargs)
        except UnidentifiedImageError as e:
            logger.error(f"Corrupted or unsupported image format - {source}: {e}")
            raise CorruptedImageError(f"Corrupted or unsupported image format: {e}") from e
        except (OSError, ValueError) as e:
            logger.error(f"Error processing image - {source}: {e}")
            raise CorruptedImageError(f"Error processing image: {e}") from e

    return wrapper


def compute_photo_hash(data):
    """SHA-256 hex digest of raw bytes or a file-like object."""
    hasher = hashlib.new(PHOTO_HASH_ALGO)
    if isinstance(data, (bytes, bytearray)):
        hasher.update(data)
    elif hasattr(data, 'read'):
        while chunk := data.read(8192):
            hasher.update(chunk)
    else:
        raise TypeError(f"compute_photo_hash expected bytes or a file-like object, got {type(data).__name__}")
    return hasher.hexdigest()


@handle_image_errors
def generate_thumbnail(image_data=None, image_path=None, max_size=300):
    """Generate a JPEG thumbnail that fits inside max_size x max_size.

    Returns:
        bytes or None: None when neither image_data nor image_path is given.

    Raises:
        CorruptedImageError: When the image cannot be decoded.
    """
    if not image_data and not image_path:
        logger.warning("generate_thumbnail called without image_data or image_path")
        return None

    if image_path:
        img = Image.open(image_path)
    else:
        img = Image.open(io.BytesIO(image_data))

    img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
    if img.mode in ('RGBA', 'P', 'LA'):
        img = img.convert('RGB')

    buffer = io.BytesIO()
    img.save(buffer, format='JPEG', quality=60)
    return buffer.getvalue()


def is_valid_upload_url(url):
    """True if url is an absolute http(s) URL with a host."""
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)
