"""Image service for local media file I/O and thumbnail processing."""
import os
import logging

from shared.utils import compute_photo_hash, generate_thumbnail, CorruptedImageError


class ImageService:
    """Service for handling captured media on the local filesystem."""

    def __init__(self, media_dir, thumbnail_max_size=300):
        """Initialize image service with media directory."""
        self.media_dir = str(media_dir)
        self.thumbnail_max_size = thumbnail_max_size
        self.logger = logging.getLogger(self.__class__.__name__)
        os.makedirs(self.media_dir, exist_ok=True)
        self.logger.info(f"Image service initialized with media directory: {self.media_dir}")

    def resolve_path(self, path):
        """Relative paths are stored relative to the media directory."""
        if not path:
            return None
        if os.path.isabs(path):
            return path
        return os.path.join(self.media_dir, path)

    def save_media_file(self, photo_id, data, extension='jpg', thumbnail_data=None):
        """Write captured media (and optionally its thumbnail) to disk.

        Returns:
            tuple: (media filename, thumbnail filename or None), both relative
            to the media directory.
        """
        try:
            media_filename = f"{photo_id}.{extension}"
            with open(os.path.join(self.media_dir, media_filename), 'wb') as f:
                f.write(data)

            thumb_filename = None
            if thumbnail_data:
                thumb_filename = f"{photo_id}_thumb.jpg"
                with open(os.path.join(self.media_dir, thumb_filename), 'wb') as f:
                    f.write(thumbnail_data)

            return media_filename, thumb_filename
        except OSError as e:
            self.logger.error(f"Failed to save local media file for {photo_id}: {e}")
            raise

    def read_media(self, path):
        """Read media bytes; None when the file does not exist."""
        full_path = self.resolve_path(path)
        if not full_path or not os.path.exists(full_path):
            self.logger.warning(f"Media file not found: {path}")
            return None
        with open(full_path, 'rb') as f:
            return f.read()

    def delete_media(self, *paths):
        """Remove stored media files. Missing files and empty paths are skipped.

        Returns the number of files removed.
        """
        removed = 0
        for path in paths:
            full_path = self.resolve_path(path)
            if not full_path or not os.path.exists(full_path):
                continue
            try:
                os.remove(full_path)
                removed += 1
            except OSError as e:
                self.logger.error(f"Failed to delete media file {full_path}: {e}")
        if removed:
            self.logger.debug(f"Deleted {removed} media files")
        return removed

    def thumbnail_bytes(self, media_path, thumbnail_path=None):
        """Thumbnail for an upload: the stored one if present, otherwise generated.

        Returns None when no thumbnail can be produced (missing or corrupted
        source, or a non-image file such as a video).
        """
        if thumbnail_path:
            data = self.read_media(thumbnail_path)
            if data:
                return data

        full_path = self.resolve_path(media_path)
        if not full_path or not os.path.exists(full_path):
            return None
        try:
            return generate_thumbnail(image_path=full_path, max_size=self.thumbnail_max_size)
        except CorruptedImageError as e:
            self.logger.warning(f"Could not generate thumbnail for {media_path}: {e}")
            return None

    def process_media(self, photo_id, data, extension='jpg'):
        """Store freshly captured media and prepare its thumbnail and hash."""
        thumbnail_data = None
        corrupted = False
        if extension.lower() in ('jpg', 'jpeg', 'png'):
            try:
                thumbnail_data = generate_thumbnail(image_data=data, max_size=self.thumbnail_max_size)
            except CorruptedImageError as e:
                self.logger.error(f"Corrupted image detected for photo {photo_id}: {e}")
                corrupted = True

        media_filename, thumb_filename = self.save_media_file(
            photo_id, data, extension=extension, thumbnail_data=thumbnail_data)

        return {
            'local_path': media_filename,
            'thumbnail_local_path': thumb_filename,
            'hash_value': compute_photo_hash(data),
            'size_bytes': len(data),
            'corrupted': corrupted,
        }
