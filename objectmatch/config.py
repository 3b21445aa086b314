import os

from dotenv import load_dotenv

load_dotenv()

# Versioned hashing constants. Changing any of these invalidates every
# fingerprint already stored by callers, so bump FINGERPRINT_VERSION with them.
FINGERPRINT_VERSION = "blockmean-16-v2"

# Canonicalization
BOX_SIZE = 512
BACKGROUND_COLOR = (255, 255, 255)
JPEG_QUALITY = 90

# Perceptual hash
HASH_SIZE = 16
HASH_BANDS = 4
HASH_TOLERANCE = 1.0
FINGERPRINT_LENGTH = HASH_SIZE * HASH_SIZE // 4

# Matching thresholds (Hamming distance, bits)
STRICT_THRESHOLD = 3
ROTATION_THRESHOLD = 8
SIMILARITY_THRESHOLD = 15
FIND_SIMILAR_THRESHOLD = 5

# Registration-time variant bundle
VARIANT_ROTATIONS = (15, 30, 45, 90, 135, 180, 225, 270, 315, 345)
VARIANT_SCALES = (0.9, 1.1)

# Verification-time rotation probes, evaluated in this order
ROTATION_PROBE_ANGLES = (5, 10, 15, 30, 45, 90, 180, 270, 345, 350, 355)

# Stage confidences
DIRECT_CONFIDENCE = 0.95
ROTATION_CONFIDENCE = 0.85

# Auxiliary signatures
HISTOGRAM_SIZE = 64
HISTOGRAM_BINS = 16
EDGE_SIZE = 32
EDGE_THRESHOLD = 128

# Runtime knobs
DECODE_TIMEOUT = float(os.getenv("OBJECTMATCH_DECODE_TIMEOUT", 10.0))
MAX_WORKERS = int(os.getenv("OBJECTMATCH_MAX_WORKERS", 0))
MAX_IMAGE_PIXELS = int(os.getenv("OBJECTMATCH_MAX_IMAGE_PIXELS", 64 * 1024 * 1024))
LOG_LEVEL = os.getenv("OBJECTMATCH_LOG_LEVEL", "INFO")


def get_config_info() -> dict:
    """Get information about the versioned fingerprinting configuration."""
    return {
        "fingerprint_version": FINGERPRINT_VERSION,
        "box_size": BOX_SIZE,
        "jpeg_quality": JPEG_QUALITY,
        "hash_size": HASH_SIZE,
        "fingerprint_length": FINGERPRINT_LENGTH,
        "strict_threshold": STRICT_THRESHOLD,
        "rotation_threshold": ROTATION_THRESHOLD,
        "variant_rotations": list(VARIANT_ROTATIONS),
        "variant_scales": list(VARIANT_SCALES),
        "rotation_probe_angles": list(ROTATION_PROBE_ANGLES),
        "algorithm": "band_mean_block_hash",
    }
