"""Decode, resize and atomically re-encode images with Pillow."""

import os
import tempfile
from pathlib import Path
from typing import Optional, Sequence, Tuple
from PIL import Image, UnidentifiedImageError
from ibt.domain.errors import AllocationTooLarge, DecodeError, FileVanished, RenameFailure
from ibt.infrastructure.file_scanner import TEMP_PREFIX, TEMP_SUFFIX

RGBA_BYTES_PER_PIXEL = 4


def target_size(width: int, height: int, target_width: int) -> Tuple[int, int]:
    """Size after fitting to ``target_width``; narrower images keep their size."""
    if width <= target_width:
        return width, height
    new_height = (height * target_width) // width
    return target_width, max(1, new_height)


def check_allocation(width: int, height: int, max_bytes: int) -> None:
    if width * height * RGBA_BYTES_PER_PIXEL > max_bytes:
        raise AllocationTooLarge(width, height, max_bytes)


def resize_to_width(image: Image.Image, target_width: int, max_bytes: int) -> Image.Image:
    """Nearest-neighbour downscale to ``target_width`` keeping the aspect ratio.

    Images already at or below the target width are returned as-is. The size
    guard runs before any pixel buffer is allocated.
    """
    width, height = image.size
    new_width, new_height = target_size(width, height, target_width)
    if (new_width, new_height) == (width, height):
        return image
    check_allocation(new_width, new_height, max_bytes)
    return image.resize((new_width, new_height), Image.Resampling.NEAREST)


def decode_image(path: Path, formats: Optional[Sequence[str]] = None) -> Image.Image:
    """Fully decodes the first frame of ``path``; ``formats`` restricts the decoder."""
    try:
        with Image.open(path, formats=list(formats) if formats else None) as img:
            img.load()
            return img.copy()
    except FileNotFoundError as e:
        raise FileVanished(Path(path)) from e
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError, EOFError) as e:
        raise DecodeError(f"failed to decode {Path(path).name}: {e}") from e


def to_rgb(image: Image.Image) -> Image.Image:
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def make_temp_path(directory: Path, suffix: str = TEMP_SUFFIX) -> Path:
    """Creates an empty temp file next to the destination and returns its path."""
    fd, name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=suffix, dir=str(directory))
    os.close(fd)
    return Path(name)


def remove_quietly(path: Optional[Path]) -> None:
    if path is None:
        return
    try:
        path.unlink()
    except OSError:
        pass


def replace_atomically(temp_path: Path, destination: Path) -> None:
    """Renames ``temp_path`` over ``destination`` (same directory)."""
    try:
        os.replace(temp_path, destination)
    except OSError as e:
        remove_quietly(temp_path)
        raise RenameFailure(destination, e) from e


def write_jpeg_atomically(image: Image.Image, destination: Path, quality: int) -> int:
    """Encodes ``image`` as JPEG into a temp file and swaps it over ``destination``.

    On any failure the destination is untouched and the temp file removed.
    Returns the size of the written file.
    """
    destination = Path(destination)
    if not destination.exists():
        raise FileVanished(destination)
    temp_path = make_temp_path(destination.parent)
    try:
        to_rgb(image).save(temp_path, format="JPEG", quality=quality)
        size = temp_path.stat().st_size
    except BaseException:
        remove_quietly(temp_path)
        raise
    replace_atomically(temp_path, destination)
    return size
