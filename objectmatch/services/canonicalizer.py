"""
Image canonicalization for perceptual hashing.
Every fingerprint is computed from the canonical raster produced here.
"""

import io
import structlog
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Optional
from PIL import Image, ImageOps, UnidentifiedImageError

from objectmatch import config
from objectmatch.core.errors import UnsupportedImageError
from objectmatch.models.fingerprint import ImageMetadata

logger = structlog.get_logger()

EXIF_ORIENTATION_TAG = 0x0112

RIGHT_ANGLE_TRANSPOSE = {
    90: Image.Transpose.ROTATE_90,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_270,
}

def load_image(image_bytes: bytes) -> Image.Image:
    """Decode raw bytes into a fully loaded PIL image."""
    if not image_bytes:
        raise UnsupportedImageError("empty image buffer")

    try:
        image = Image.open(io.BytesIO(image_bytes))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        logger.error("Failed to decode image", size=len(image_bytes), error=str(e))
        raise UnsupportedImageError(str(e)) from e

    # open() only reads the header, so the pixel limit is checked before decoding
    width, height = image.size
    if width * height > config.MAX_IMAGE_PIXELS:
        logger.error("Image exceeds pixel limit", width=width, height=height, limit=config.MAX_IMAGE_PIXELS)
        raise UnsupportedImageError(f"{width}x{height} exceeds {config.MAX_IMAGE_PIXELS} pixels")

    try:
        image.load()
        return image
    except (Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        logger.error("Failed to decode image", size=len(image_bytes), error=str(e))
        raise UnsupportedImageError(str(e)) from e

def extract_metadata(image_bytes: bytes) -> ImageMetadata:
    """Extract basic properties of a raw image without canonicalizing it."""
    image = load_image(image_bytes)
    orientation = image.getexif().get(EXIF_ORIENTATION_TAG)
    return ImageMetadata(
        width=image.width,
        height=image.height,
        format=image.format,
        mode=image.mode,
        has_alpha=image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info,
        orientation=orientation,
    )

def _flatten(image: Image.Image) -> Image.Image:
    """Convert to RGB, compositing any transparency onto the background color."""
    if image.mode in ("RGBA", "LA", "PA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, config.BACKGROUND_COLOR + (255,))
        return Image.alpha_composite(background, rgba).convert("RGB")
    if image.mode != "RGB":
        return image.convert("RGB")
    return image

def fit_to_box(image: Image.Image, box_size: int = config.BOX_SIZE) -> Image.Image:
    """Resize to fit inside a square box, preserving aspect ratio, and pad with the background color."""
    if image.size != (box_size, box_size):
        image = ImageOps.contain(image, (box_size, box_size), method=Image.Resampling.LANCZOS)

    if image.size == (box_size, box_size):
        return image

    canvas = Image.new("RGB", (box_size, box_size), config.BACKGROUND_COLOR)
    offset = ((box_size - image.width) // 2, (box_size - image.height) // 2)
    canvas.paste(image, offset)
    return canvas

def encode_jpeg(image: Image.Image, quality: int = config.JPEG_QUALITY) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()

def _canonicalize(image_bytes: bytes) -> Image.Image:
    image = load_image(image_bytes)
    original_size = image.size

    try:
        # Apply EXIF orientation; the transposed copy carries no orientation tag
        image = ImageOps.exif_transpose(image)
        image = _flatten(image)
        image = fit_to_box(image)

        # Re-encode at a fixed quality so hashes do not depend on the source encoder
        canonical = Image.open(io.BytesIO(encode_jpeg(image)))
        canonical.load()
    except (OSError, ValueError) as e:
        logger.error("Failed to canonicalize image", error=str(e))
        raise UnsupportedImageError(str(e)) from e

    logger.debug("Canonicalized image",
                 original_size=original_size,
                 canonical_size=canonical.size,
                 quality=config.JPEG_QUALITY)
    return canonical

def canonicalize(image_bytes: bytes, timeout: Optional[float] = None) -> Image.Image:
    """
    Normalize an arbitrary image into the canonical raster used for hashing.

    Args:
        image_bytes: Raw encoded image
        timeout: Seconds allowed for decode and resize; defaults to
            config.DECODE_TIMEOUT, ``0`` disables the limit

    Returns:
        RGB image of exactly BOX_SIZE x BOX_SIZE pixels
    """
    if timeout is None:
        timeout = config.DECODE_TIMEOUT

    if not timeout:
        return _canonicalize(image_bytes)

    executor = ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(_canonicalize, image_bytes)
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        logger.error("Image canonicalization timed out", timeout=timeout)
        raise UnsupportedImageError(f"decode timed out after {timeout}s")
    finally:
        executor.shutdown(wait=False)

def rotate_image(image: Image.Image, angle: float) -> Image.Image:
    """
    Rotate counter-clockwise about the center, keeping the canvas size.

    Right angles on square images are exact transposes; other angles are
    resampled and the exposed area is filled with the background color.
    """
    angle = angle % 360
    if angle == 0:
        return image.copy()

    if angle in RIGHT_ANGLE_TRANSPOSE and image.width == image.height:
        return image.transpose(RIGHT_ANGLE_TRANSPOSE[int(angle)])

    return image.rotate(
        angle,
        resample=Image.Resampling.BICUBIC,
        expand=False,
        fillcolor=config.BACKGROUND_COLOR,
    )

def scale_image(image: Image.Image, factor: float) -> Image.Image:
    """Scale content by ``factor`` and re-center it on a canvas of the original size."""
    if factor <= 0:
        raise ValueError(f"Scale factor must be positive, got {factor}")

    width, height = image.size
    scaled = image.resize(
        (max(1, round(width * factor)), max(1, round(height * factor))),
        Image.Resampling.LANCZOS,
    )

    canvas = Image.new("RGB", (width, height), config.BACKGROUND_COLOR)
    # Negative offsets crop the enlarged content symmetrically
    offset = ((width - scaled.width) // 2, (height - scaled.height) // 2)
    canvas.paste(scaled, offset)
    return canvas
