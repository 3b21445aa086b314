"""
Pydantic models for duplicate matches and verification stage reports.
"""

from typing import List, Optional, Dict
from pydantic import BaseModel, Field
from enum import Enum

from .fingerprint import Fingerprint

class VerificationMethod(str, Enum):
    """Enumeration of stages that can produce a positive verification."""
    NONE = "none"
    DIRECT = "direct"
    ROTATION = "rotation"

class StageName(str, Enum):
    """Enumeration of verification stages in evaluation order."""
    DIRECT = "direct"
    ROTATION = "rotation"
    COLOR = "color"
    EDGE = "edge"

class MatchResult(BaseModel):
    """Best admissible match found in a fingerprint store."""
    record_id: str = Field(..., description="Identifier of the matched record")
    distance: int = Field(..., ge=0, description="Hamming distance in bits")
    matched_fingerprint: Fingerprint = Field(..., description="Stored fingerprint that matched")
    variant: Optional[str] = Field(None, description="Variant label when a variant matched")

class StageResult(BaseModel):
    """Outcome of a single verification stage."""
    name: StageName
    matched: bool = False
    distance: Optional[int] = Field(None, description="Minimum or matching Hamming distance")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    similarity: Optional[float] = Field(None, description="Best auxiliary similarity score")
    skipped: bool = False
    angle: Optional[float] = Field(None, description="Probe angle of a rotation match")
    record_id: Optional[str] = None

    class Config:
        use_enum_values = True

class OverallResult(BaseModel):
    """Summary of a verification run."""
    matched: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    method: VerificationMethod = Field(default=VerificationMethod.NONE)
    record_id: Optional[str] = None

    class Config:
        use_enum_values = True

class StageReport(BaseModel):
    """Per-stage results plus the overall verification decision."""
    query: Fingerprint
    stages: List[StageResult] = Field(default_factory=list)
    overall: OverallResult = Field(default_factory=OverallResult)
    min_distances: Dict[str, Optional[int]] = Field(default_factory=dict)

    def stage(self, name: str) -> Optional[StageResult]:
        for result in self.stages:
            if result.name == name:
                return result
        return None

class ImageComparison(BaseModel):
    """Pairwise comparison of two images' primary fingerprints."""
    fingerprint_a: Fingerprint
    fingerprint_b: Fingerprint
    distance: Optional[int] = Field(None, description="None when the fingerprints are not comparable")
    similarity: float = Field(..., ge=0.0, le=1.0)
    are_similar: bool
