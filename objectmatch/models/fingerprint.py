"""
Pydantic models for perceptual fingerprints and variant bundles.
"""

import string
from datetime import datetime, timezone
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum

from objectmatch import config

HEX_DIGITS = set(string.hexdigits.lower())

# A fully set band never comes out of the block hash, so it tags fallback digests
FALLBACK_MARKER = "f" * (config.FINGERPRINT_LENGTH // config.HASH_BANDS)

class FingerprintKind(str, Enum):
    """Enumeration of fingerprint derivations."""
    PERCEPTUAL = "perceptual"
    FALLBACK = "fallback"

class TransformType(str, Enum):
    """Enumeration of geometric transforms used for variants."""
    ROTATE = "rotate"
    SCALE = "scale"

class Fingerprint(BaseModel):
    """Fixed-length hex fingerprint tagged with its derivation."""
    value: str = Field(..., description="Lowercase hex digits")
    kind: FingerprintKind = Field(default=FingerprintKind.PERCEPTUAL)

    class Config:
        use_enum_values = True
        frozen = True

    @validator('value')
    def validate_hex(cls, v):
        v = v.lower()
        if not set(v) <= HEX_DIGITS:
            raise ValueError('Fingerprint must contain only hexadecimal digits')
        return v

    @classmethod
    def from_value(cls, value: str) -> "Fingerprint":
        """Rebuild a fingerprint from its persisted hex value, recovering its kind."""
        if value.lower().startswith(FALLBACK_MARKER):
            return cls(value=value, kind=FingerprintKind.FALLBACK)
        return cls(value=value, kind=FingerprintKind.PERCEPTUAL)

    @property
    def bit_length(self) -> int:
        return len(self.value) * 4

    @property
    def is_fallback(self) -> bool:
        return self.kind == FingerprintKind.FALLBACK

    def __str__(self) -> str:
        return self.value

class FingerprintVariant(BaseModel):
    """Fingerprint of one geometric transform of a canonical image."""
    transform: TransformType = Field(..., description="Transform that produced the variant")
    amount: float = Field(..., description="Rotation angle in degrees or scale factor")
    fingerprint: Fingerprint

    class Config:
        use_enum_values = True

    @property
    def label(self) -> str:
        if self.transform == TransformType.ROTATE:
            return f"rotated_{self.amount:g}"
        return f"scaled_{self.amount:g}"

class FingerprintBundle(BaseModel):
    """Primary fingerprint plus the variants used to widen strict matching."""
    primary: Fingerprint
    variants: List[FingerprintVariant] = Field(default_factory=list)
    version: str = Field(default=config.FINGERPRINT_VERSION)

class ColorHistogram(BaseModel):
    """Per-channel 16-bin colour histogram."""
    r: List[int] = Field(default_factory=lambda: [0] * config.HISTOGRAM_BINS)
    g: List[int] = Field(default_factory=lambda: [0] * config.HISTOGRAM_BINS)
    b: List[int] = Field(default_factory=lambda: [0] * config.HISTOGRAM_BINS)

    def channels(self) -> Dict[str, List[int]]:
        return {"r": self.r, "g": self.g, "b": self.b}

class AuxiliarySignatures(BaseModel):
    """Optional per-record signatures consumed by the auxiliary verification stages."""
    color_histogram: Optional[ColorHistogram] = None
    edge_hash: Optional[str] = Field(None, description="String of '0'/'1' edge bits")

    @property
    def is_empty(self) -> bool:
        return self.color_histogram is None and self.edge_hash is None

class RecordSignatures(AuxiliarySignatures):
    """Everything a caller persists for a newly accepted object."""
    primary: Fingerprint
    image_hash: str = Field(..., description="SHA-256 of the raw uploaded bytes")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def auxiliary(self) -> AuxiliarySignatures:
        return AuxiliarySignatures(color_histogram=self.color_histogram, edge_hash=self.edge_hash)

class ImageMetadata(BaseModel):
    """Properties of a raw input image."""
    width: int = Field(..., description="Width in pixels")
    height: int = Field(..., description="Height in pixels")
    format: Optional[str] = Field(None, description="Decoded image format")
    mode: Optional[str] = Field(None, description="PIL pixel mode")
    has_alpha: bool = Field(default=False)
    orientation: Optional[int] = Field(None, description="EXIF orientation tag")
