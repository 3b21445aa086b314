"""
Perceptual fingerprints for canonical object images.
Uses a banded block-mean hash with a digest fallback for near-uniform images.
"""

import json
import numpy as np
import structlog
from PIL import Image
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

from objectmatch import config
from objectmatch.core.utils import calculate_bytes_hash
from objectmatch.models.fingerprint import (
    FALLBACK_MARKER, Fingerprint, FingerprintBundle, FingerprintKind, FingerprintVariant, TransformType,
)
from objectmatch.services.canonicalizer import canonicalize, rotate_image, scale_image

logger = structlog.get_logger()

ZERO_FINGERPRINT = "0" * config.FINGERPRINT_LENGTH

def _luminance(image: Image.Image, hash_size: int) -> np.ndarray:
    """Greyscale pixels cropped to a size divisible by the hash grid."""
    gray = image.convert('L')
    width, height = gray.size
    if width < hash_size or height < hash_size:
        gray = gray.resize((hash_size, hash_size), Image.Resampling.BOX)
        width, height = gray.size

    pixels = np.asarray(gray, dtype=np.float64)
    return pixels[:height - height % hash_size, :width - width % hash_size]

def block_means(image: Image.Image, hash_size: int = config.HASH_SIZE) -> np.ndarray:
    """Mean luminance of each cell in a hash_size x hash_size grid."""
    pixels = _luminance(image, hash_size)
    rows, cols = pixels.shape
    blocks = pixels.reshape(hash_size, rows // hash_size, hash_size, cols // hash_size)
    return blocks.mean(axis=(1, 3))

def bits_to_hex(bits: np.ndarray) -> str:
    """Pack a flat 0/1 array MSB-first into lowercase hex."""
    hash_bits = ''.join('1' if b else '0' for b in bits.flatten())
    return hex(int(hash_bits, 2))[2:].rjust(len(hash_bits) // 4, '0')

def block_hash(image: Image.Image,
               hash_size: int = config.HASH_SIZE,
               bands: int = config.HASH_BANDS,
               tolerance: float = config.HASH_TOLERANCE) -> str:
    """
    Generate a banded block-mean hash.

    The image is split into a hash_size x hash_size grid of block means. Rows
    are grouped into horizontal bands and each block sets its bit when it is
    brighter than its band's mean by more than ``tolerance`` grey levels.
    Uniform images therefore hash to all zeros.
    """
    means = block_means(image, hash_size)
    bits = np.zeros_like(means, dtype=bool)

    for band in np.array_split(np.arange(hash_size), bands):
        band_values = means[band]
        bits[band] = band_values > band_values.mean() + tolerance

    return bits_to_hex(bits)

def channel_statistics(image: Image.Image) -> List[dict]:
    """Per-channel min, max, mean and standard deviation."""
    pixels = np.asarray(image.convert('RGB'), dtype=np.float64)
    stats = []
    for channel in range(pixels.shape[2]):
        values = pixels[:, :, channel]
        stats.append({
            "min": int(values.min()),
            "max": int(values.max()),
            "mean": round(float(values.mean()), 4),
            "stdev": round(float(values.std()), 4),
        })
    return stats

def fallback_fingerprint(image: Image.Image, length: int = config.FINGERPRINT_LENGTH) -> Fingerprint:
    """
    Digest-based fingerprint for images whose perceptual hash is all zeros.

    Derived from dimensions, format and per-channel statistics so that
    differently colored blank images do not collide. The leading band is
    FALLBACK_MARKER, so the kind survives when only the hex value is stored.
    """
    fallback_data = "{}x{}_{}_{}".format(
        image.width,
        image.height,
        (image.format or "jpeg").lower(),
        json.dumps(channel_statistics(image), sort_keys=True),
    )
    digest = calculate_bytes_hash(fallback_data.encode())
    value = FALLBACK_MARKER + digest[:length - len(FALLBACK_MARKER)]
    return Fingerprint(value=value, kind=FingerprintKind.FALLBACK)

def generate_primary(canonical: Image.Image) -> Fingerprint:
    """Generate the primary fingerprint of a canonical image."""
    try:
        value = block_hash(canonical)
    except Exception as e:
        logger.error("Failed to generate block hash", error=str(e))
        raise

    if value == ZERO_FINGERPRINT:
        fingerprint = fallback_fingerprint(canonical)
        logger.info("Simple image detected, using fallback fingerprint",
                    fingerprint=fingerprint.value[:16])
        return fingerprint

    logger.debug("Generated primary fingerprint", fingerprint=value[:16])
    return Fingerprint(value=value)

def variant_transforms() -> List[Tuple[str, float]]:
    """Ordered, versioned list of registration-time variant transforms."""
    transforms = [(TransformType.ROTATE, float(angle)) for angle in config.VARIANT_ROTATIONS]
    transforms += [(TransformType.SCALE, float(scale)) for scale in config.VARIANT_SCALES]
    return transforms

def _generate_variant(canonical: Image.Image, transform: str, amount: float) -> Optional[FingerprintVariant]:
    try:
        if transform == TransformType.ROTATE:
            transformed = rotate_image(canonical, amount)
        else:
            transformed = scale_image(canonical, amount)
        return FingerprintVariant(
            transform=transform,
            amount=amount,
            fingerprint=Fingerprint(value=block_hash(transformed)),
        )
    except Exception as e:
        # A broken variant narrows recall but must not fail the bundle
        logger.warning("Variant fingerprint omitted", transform=str(transform), amount=amount, error=str(e))
        return None

def generate_bundle(canonical: Image.Image, max_workers: Optional[int] = None) -> FingerprintBundle:
    """
    Generate the primary fingerprint plus rotation and scale variants.

    Args:
        canonical: Canonical image from canonicalize()
        max_workers: Threads for variant hashing; 0 or 1 runs sequentially

    Returns:
        FingerprintBundle with variants in configured order
    """
    if max_workers is None:
        max_workers = config.MAX_WORKERS

    primary = generate_primary(canonical)
    transforms = variant_transforms()

    if max_workers and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            # map() yields in submission order
            results = list(executor.map(lambda t: _generate_variant(canonical, *t), transforms))
    else:
        results = [_generate_variant(canonical, transform, amount) for transform, amount in transforms]

    variants = [v for v in results if v is not None]

    logger.debug("Generated fingerprint bundle",
                 primary=primary.value[:16],
                 kind=primary.kind,
                 variants=len(variants),
                 omitted=len(transforms) - len(variants))

    return FingerprintBundle(primary=primary, variants=variants)

def fingerprint_image(image_bytes: bytes, max_workers: Optional[int] = None) -> FingerprintBundle:
    """Canonicalize raw image bytes and build their fingerprint bundle."""
    return generate_bundle(canonicalize(image_bytes), max_workers=max_workers)

def get_fingerprint_info() -> dict:
    """Get information about the fingerprinting configuration."""
    return {
        "version": config.FINGERPRINT_VERSION,
        "hash_size": config.HASH_SIZE,
        "bands": config.HASH_BANDS,
        "tolerance": config.HASH_TOLERANCE,
        "fingerprint_length": config.FINGERPRINT_LENGTH,
        "variant_transforms": [f"{t.value}:{a:g}" for t, a in variant_transforms()],
        "algorithm": "band_mean_block_hash",
    }
