"""
Registration-time duplicate detection.
Blocks re-registering an object whose photo is already in the store.
"""

import structlog
from typing import List, Mapping, Optional, Union

from objectmatch import config
from objectmatch.core.store import FingerprintStore
from objectmatch.core.utils import format_short_hash
from objectmatch.models.fingerprint import Fingerprint, FingerprintBundle
from objectmatch.models.matching import ImageComparison, MatchResult
from objectmatch.services.canonicalizer import canonicalize
from objectmatch.services.distance import are_similar, comparable, hamming_distance, similarity
from objectmatch.services.image_hash import ZERO_FINGERPRINT, generate_bundle, generate_primary

logger = structlog.get_logger()

StoreLike = Union[FingerprintStore, Mapping[str, str]]

class DuplicateDetector:
    """
    Strict, low-threshold search over a fingerprint store.

    In strict mode, records the candidate's primary fingerprint does not
    admit are also compared against each rotation/scale variant of the
    candidate, which catches re-submissions photographed at a different
    orientation without raising the threshold itself.
    """

    def __init__(self, strict: bool = True, max_workers: Optional[int] = None):
        self.strict = strict
        self.max_workers = max_workers

    def build_bundle(self, image_bytes: bytes) -> FingerprintBundle:
        canonical = canonicalize(image_bytes)
        if self.strict:
            return generate_bundle(canonical, max_workers=self.max_workers)
        return FingerprintBundle(primary=generate_primary(canonical))

    def find_best_match(self, image_bytes: bytes, store: StoreLike,
                        threshold: int = config.STRICT_THRESHOLD) -> Optional[MatchResult]:
        """
        Find the lowest-distance admissible record for a candidate image.

        Args:
            image_bytes: Candidate photo
            store: Read-only view of stored primary fingerprints
            threshold: Maximum admissible Hamming distance

        Returns:
            MatchResult for the best record, or None if nothing is admissible
        """
        bundle = self.build_bundle(image_bytes)
        return self.match_bundle(bundle, store, threshold)

    def match_bundle(self, bundle: FingerprintBundle, store: StoreLike,
                     threshold: int = config.STRICT_THRESHOLD) -> Optional[MatchResult]:
        store = FingerprintStore.from_mapping(store)
        primary = bundle.primary

        best_match = None
        best_distance = None

        for entry in store.entries():
            existing = entry.fingerprint
            if not comparable(primary, existing):
                continue

            primary_distance = hamming_distance(primary, existing)
            logger.debug("Primary comparison",
                         candidate=format_short_hash(primary.value),
                         existing=format_short_hash(existing.value),
                         distance=primary_distance)

            if primary_distance <= threshold:
                # Strict less-than keeps the earliest record on ties
                if best_distance is None or primary_distance < best_distance:
                    best_distance = primary_distance
                    best_match = MatchResult(record_id=entry.record_id,
                                             distance=primary_distance,
                                             matched_fingerprint=existing)
                continue

            if not self.strict:
                continue

            for variant in bundle.variants:
                if variant.fingerprint.value == ZERO_FINGERPRINT or not comparable(variant.fingerprint, existing):
                    continue
                distance = hamming_distance(variant.fingerprint, existing)
                logger.debug("Variant comparison",
                             variant=variant.label,
                             existing=format_short_hash(existing.value),
                             distance=distance)

                if distance <= threshold and (best_distance is None or distance < best_distance):
                    best_distance = distance
                    best_match = MatchResult(record_id=entry.record_id,
                                             distance=distance,
                                             matched_fingerprint=existing,
                                             variant=variant.label)

        logger.info("Duplicate check completed",
                    store_size=len(store),
                    threshold=threshold,
                    strict=self.strict,
                    matched=best_match is not None,
                    record_id=best_match.record_id if best_match else None,
                    distance=best_distance)
        return best_match

def find_best_match(image_bytes: bytes, store: StoreLike,
                    threshold: int = config.STRICT_THRESHOLD,
                    strict: Optional[bool] = None) -> Optional[MatchResult]:
    """
    Convenience wrapper around DuplicateDetector.

    When ``strict`` is not given, variant widening is enabled for thresholds
    at or below STRICT_THRESHOLD.
    """
    if strict is None:
        strict = threshold <= config.STRICT_THRESHOLD
    return DuplicateDetector(strict=strict).find_best_match(image_bytes, store, threshold)

def find_similar(fingerprint: Union[Fingerprint, str], store: StoreLike,
                 threshold: int = config.FIND_SIMILAR_THRESHOLD) -> List[MatchResult]:
    """All records within ``threshold`` of a fingerprint, closest first."""
    store = FingerprintStore.from_mapping(store)
    if not isinstance(fingerprint, Fingerprint):
        fingerprint = Fingerprint.from_value(fingerprint)

    similar = []
    for entry in store.entries():
        if not comparable(fingerprint, entry.fingerprint):
            continue
        distance = hamming_distance(fingerprint, entry.fingerprint)
        if distance <= threshold:
            similar.append(MatchResult(record_id=entry.record_id,
                                       distance=distance,
                                       matched_fingerprint=entry.fingerprint))

    # sort is stable, so equal distances keep store order
    return sorted(similar, key=lambda m: m.distance)

def compare_images(image_bytes1: bytes, image_bytes2: bytes,
                   threshold: int = config.SIMILARITY_THRESHOLD) -> ImageComparison:
    """Compare the primary fingerprints of two raw images."""
    fp1 = generate_primary(canonicalize(image_bytes1))
    fp2 = generate_primary(canonicalize(image_bytes2))

    if not comparable(fp1, fp2):
        logger.info("Images not comparable", kind_a=fp1.kind, kind_b=fp2.kind)
        return ImageComparison(fingerprint_a=fp1, fingerprint_b=fp2,
                               distance=None, similarity=0.0, are_similar=False)

    distance = hamming_distance(fp1, fp2)
    return ImageComparison(
        fingerprint_a=fp1,
        fingerprint_b=fp2,
        distance=distance,
        similarity=similarity(fp1, fp2),
        are_similar=are_similar(fp1, fp2, threshold),
    )
