"""
Core infrastructure: errors, logging setup, the fingerprint store and utilities.
"""

from .errors import *
from .logging_config import *
from .store import *
from .utils import *
