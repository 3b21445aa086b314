"""
Auxiliary colour-histogram and edge-pattern signatures.
These back the colour and edge verification stages when a store carries them.
"""

import cv2
import numpy as np
import structlog
from PIL import Image
from typing import Optional

from objectmatch import config
from objectmatch.models.fingerprint import AuxiliarySignatures, ColorHistogram

logger = structlog.get_logger()

LAPLACIAN_KERNEL = np.array([
    [-1, -1, -1],
    [-1,  8, -1],
    [-1, -1, -1],
], dtype=np.float32)

def color_histogram(image: Image.Image,
                    size: int = config.HISTOGRAM_SIZE,
                    bins: int = config.HISTOGRAM_BINS) -> ColorHistogram:
    """16-bin per-channel histogram of a size x size RGB downsample."""
    small = np.array(image.convert('RGB').resize((size, size), Image.Resampling.BILINEAR))

    channels = {}
    for index, name in enumerate(("r", "g", "b")):
        hist = cv2.calcHist([small], [index], None, [bins], [0, 256])
        channels[name] = [int(v) for v in hist.flatten()]

    return ColorHistogram(**channels)

def compare_color_histograms(hist1: Optional[ColorHistogram], hist2: Optional[ColorHistogram]) -> float:
    """Normalized histogram difference: 0.0 identical, 1.0 disjoint or missing."""
    if hist1 is None or hist2 is None:
        return 1.0

    a = np.array([hist1.r, hist1.g, hist1.b], dtype=np.float64)
    b = np.array([hist2.r, hist2.g, hist2.b], dtype=np.float64)
    if a.shape != b.shape:
        return 1.0

    total = a.sum() + b.sum()
    if total == 0:
        return 1.0
    return float(np.abs(a - b).sum() / total)

def edge_hash(image: Image.Image,
              size: int = config.EDGE_SIZE,
              threshold: int = config.EDGE_THRESHOLD) -> str:
    """Bit string of strong Laplacian responses on a size x size greyscale downsample."""
    gray = np.array(image.convert('L').resize((size, size), Image.Resampling.BILINEAR), dtype=np.float32)
    edges = cv2.filter2D(gray, -1, LAPLACIAN_KERNEL, borderType=cv2.BORDER_REPLICATE)
    edges = np.clip(edges, 0, 255)
    return ''.join('1' if v > threshold else '0' for v in edges.flatten())

def compare_edge_hashes(edge1: Optional[str], edge2: Optional[str]) -> float:
    """Fraction of differing edge bits: 0.0 identical, 1.0 missing or incomparable."""
    if not edge1 or not edge2 or len(edge1) != len(edge2):
        return 1.0
    differences = sum(1 for a, b in zip(edge1, edge2) if a != b)
    return differences / len(edge1)

def generate_signatures(canonical: Image.Image) -> AuxiliarySignatures:
    """Compute both auxiliary signatures of a canonical image."""
    try:
        return AuxiliarySignatures(
            color_histogram=color_histogram(canonical),
            edge_hash=edge_hash(canonical),
        )
    except Exception as e:
        logger.error("Failed to generate auxiliary signatures", error=str(e))
        raise
