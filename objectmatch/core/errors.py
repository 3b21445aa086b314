"""
Exception taxonomy for fingerprinting and matching.
"""


class ObjectMatchError(Exception):
    """Base exception for objectmatch failures."""
    pass


class UnsupportedImageError(ObjectMatchError):
    """Raised when an image cannot be decoded or processed."""

    def __init__(self, reason: str):
        super().__init__(f"Unsupported image: {reason}")
        self.reason = reason


class LengthMismatchError(ObjectMatchError, ValueError):
    """Raised when two fingerprints of different lengths are compared."""

    def __init__(self, length_a: int, length_b: int):
        super().__init__(f"Fingerprint lengths must be equal ({length_a} != {length_b})")
        self.length_a = length_a
        self.length_b = length_b
