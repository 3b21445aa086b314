"""
Hamming distance between hex fingerprints.
"""

from typing import Union

from objectmatch import config
from objectmatch.core.errors import LengthMismatchError
from objectmatch.models.fingerprint import Fingerprint

FingerprintLike = Union[Fingerprint, str]

# popcount of every nibble value
NIBBLE_BITS = tuple(bin(n).count("1") for n in range(16))

def _value(fingerprint: FingerprintLike) -> str:
    return fingerprint.value if isinstance(fingerprint, Fingerprint) else fingerprint

def hamming_distance(hash1: FingerprintLike, hash2: FingerprintLike) -> int:
    """Calculate the number of differing bits between two hex fingerprints."""
    hash1, hash2 = _value(hash1), _value(hash2)
    if len(hash1) != len(hash2):
        raise LengthMismatchError(len(hash1), len(hash2))

    distance = 0
    for c1, c2 in zip(hash1, hash2):
        distance += NIBBLE_BITS[int(c1, 16) ^ int(c2, 16)]
    return distance

def _kind(fingerprint: FingerprintLike) -> str:
    if isinstance(fingerprint, Fingerprint):
        return fingerprint.kind
    return Fingerprint.from_value(fingerprint).kind

def comparable(a: FingerprintLike, b: FingerprintLike) -> bool:
    """
    Whether two fingerprints may be compared at all.

    Perceptual fingerprints are only compared with perceptual ones and
    fallback digests only with fallback digests. Plain strings carry their
    kind in the value itself (see FALLBACK_MARKER).
    """
    return _kind(a) == _kind(b)

def similarity(hash1: FingerprintLike, hash2: FingerprintLike) -> float:
    """Normalize Hamming distance to a 0-1 similarity (1.0 means identical)."""
    max_distance = len(_value(hash1)) * 4
    if max_distance == 0:
        return 1.0
    return 1.0 - hamming_distance(hash1, hash2) / max_distance

def are_similar(hash1: FingerprintLike, hash2: FingerprintLike,
                threshold: int = config.SIMILARITY_THRESHOLD) -> bool:
    return hamming_distance(hash1, hash2) <= threshold
