"""
ObjectMatch - Perceptual Duplicate Detection for Physical Objects

Canonicalizes object photos, derives perceptual fingerprints and decides
whether a photo depicts an already-registered object.
"""

__version__ = "1.0.0"
__author__ = "ObjectMatch Team"
__description__ = "Perceptual duplicate detection and multi-stage image verification"
