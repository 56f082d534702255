"""Image loading for reassembled upload artifacts."""

from pathlib import Path
from PIL import Image, UnidentifiedImageError
import pillow_heif
from core.logging import log

# Phone cameras commonly deliver HEIC; let Pillow open it transparently
pillow_heif.register_heif_opener()


class FileHandler:
    """Handles image loading."""

    @staticmethod
    def open_image(file_path: Path) -> Image.Image:
        """Open an image without altering orientation or mode.

        The EXIF block stays available through ``Image.getexif()``.

        Args:
            file_path: Path to the image

        Returns:
            Image.Image: Lazily loaded image

        Raises:
            FileNotFoundError: If the file does not exist
            IOError: If the file is not a readable image
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        try:
            return Image.open(file_path)
        except (UnidentifiedImageError, OSError) as e:
            log.error(f"Failed to open image {file_path}: {str(e)}")
            raise IOError(f"Failed to load image: {str(e)}")

    @staticmethod
    def load_image(file_path: Path) -> Image.Image:
        """Load an image fully into memory in RGB mode.

        Args:
            file_path: Path to the image

        Returns:
            Image.Image: Loaded image in RGB format

        Raises:
            FileNotFoundError: If the file does not exist
            IOError: If the file cannot be decoded
        """
        image = FileHandler.open_image(file_path)
        try:
            image.load()
        except OSError as e:
            log.error(f"Failed to decode image {file_path}: {str(e)}")
            raise IOError(f"Failed to load image: {str(e)}")

        if image.mode != 'RGB':
            log.debug(f"Converting {image.mode} to RGB")
            image = image.convert('RGB')

        log.debug(f"Image loaded: {image.size}, mode: {image.mode}")
        return image
