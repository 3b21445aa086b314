"""
Pydantic models for fingerprints, match results and stage reports.
"""

from .fingerprint import *
from .matching import *
