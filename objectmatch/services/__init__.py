"""
Image services for canonicalization, fingerprinting, duplicate detection and verification.
"""

from .canonicalizer import *
from .distance import *
from .image_hash import *
from .signatures import *
from .duplicates import *
from .verification import *
