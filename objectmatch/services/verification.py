"""
Verification-time multi-stage matching.

Stages run in a fixed order and stop at the first match:

1. direct   - primary fingerprint against every stored record (strict)
2. rotation - fingerprints of rotated probes of the query (lenient)
3. color    - colour-histogram similarity (diagnostic, needs stored signatures)
4. edge     - edge-pattern similarity (diagnostic, needs stored signatures)
"""

import structlog
from PIL import Image
from concurrent.futures import ThreadPoolExecutor
from typing import Iterator, Mapping, Optional, Tuple, Union

from objectmatch import config
from objectmatch.core.store import FingerprintStore
from objectmatch.core.utils import calculate_bytes_hash, format_short_hash
from objectmatch.models.fingerprint import Fingerprint, RecordSignatures
from objectmatch.models.matching import (
    OverallResult, StageName, StageReport, StageResult, VerificationMethod,
)
from objectmatch.services.canonicalizer import canonicalize, rotate_image
from objectmatch.services.distance import comparable, hamming_distance
from objectmatch.services.image_hash import ZERO_FINGERPRINT, block_hash, generate_primary
from objectmatch.services.signatures import (
    color_histogram, compare_color_histograms, compare_edge_hashes, edge_hash, generate_signatures,
)

logger = structlog.get_logger()

StoreLike = Union[FingerprintStore, Mapping[str, str]]

class MultiStageVerifier:
    """Lenient, staged search that reports which stage fired and how close the store came."""

    def __init__(self,
                 direct_threshold: int = config.STRICT_THRESHOLD,
                 rotation_threshold: int = config.ROTATION_THRESHOLD,
                 probe_angles: Tuple[float, ...] = config.ROTATION_PROBE_ANGLES,
                 max_workers: Optional[int] = None):
        self.direct_threshold = direct_threshold
        self.rotation_threshold = rotation_threshold
        self.probe_angles = tuple(probe_angles)
        self.max_workers = config.MAX_WORKERS if max_workers is None else max_workers

    def verify(self, image_bytes: bytes, store: StoreLike) -> StageReport:
        """
        Run the staged verification of a photo against a store snapshot.

        Raises:
            UnsupportedImageError: if the photo cannot be canonicalized
        """
        store = FingerprintStore.from_mapping(store)
        canonical = canonicalize(image_bytes)
        query = generate_primary(canonical)
        report = StageReport(query=query)

        logger.info("Starting multi-stage verification",
                    query=format_short_hash(query.value),
                    store_size=len(store))

        if not store:
            report.stages = [StageResult(name=name, skipped=True) for name in StageName]
            report.min_distances = {StageName.DIRECT.value: None, StageName.ROTATION.value: None}
            logger.info("Verification skipped, fingerprint store is empty")
            return report

        direct = self._direct_stage(query, store)
        report.stages.append(direct)
        if direct.matched:
            return self._matched(report, direct, VerificationMethod.DIRECT, config.DIRECT_CONFIDENCE)

        rotation = self._rotation_stage(canonical, store)
        report.stages.append(rotation)
        if rotation.matched:
            return self._matched(report, rotation, VerificationMethod.ROTATION, config.ROTATION_CONFIDENCE)

        report.stages.append(self._color_stage(canonical, store))
        report.stages.append(self._edge_stage(canonical, store))

        report.min_distances = {
            StageName.DIRECT.value: direct.distance,
            StageName.ROTATION.value: rotation.distance,
        }
        logger.info("No matches found in any stage",
                    direct_distance=direct.distance,
                    rotation_distance=rotation.distance)
        return report

    def _matched(self, report: StageReport, stage: StageResult,
                 method: VerificationMethod, confidence: float) -> StageReport:
        report.overall = OverallResult(matched=True, confidence=confidence,
                                       method=method, record_id=stage.record_id)
        logger.info("Verification match",
                    method=method.value,
                    record_id=stage.record_id,
                    distance=stage.distance,
                    angle=stage.angle)
        return report

    def _direct_stage(self, query: Fingerprint, store: FingerprintStore) -> StageResult:
        result = StageResult(name=StageName.DIRECT)

        for entry in store.entries():
            if not comparable(query, entry.fingerprint):
                continue
            distance = hamming_distance(query, entry.fingerprint)
            logger.debug("Direct comparison",
                         query=format_short_hash(query.value),
                         existing=format_short_hash(entry.fingerprint.value),
                         distance=distance)

            if distance <= self.direct_threshold:
                return StageResult(name=StageName.DIRECT, matched=True, distance=distance,
                                   confidence=config.DIRECT_CONFIDENCE, record_id=entry.record_id)

            if result.distance is None or distance < result.distance:
                result.distance = distance

        return result

    def _probe_fingerprints(self, canonical: Image.Image) -> Iterator[Tuple[float, Fingerprint]]:
        """Yield (angle, fingerprint) for each probe angle in configured order."""
        def probe(angle):
            return Fingerprint(value=block_hash(rotate_image(canonical, angle)))

        if self.max_workers and self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                # map() preserves probe order, so the first match is the sequential one
                for angle, fingerprint in zip(self.probe_angles, executor.map(probe, self.probe_angles)):
                    yield angle, fingerprint
        else:
            for angle in self.probe_angles:
                yield angle, probe(angle)

    def _rotation_stage(self, canonical: Image.Image, store: FingerprintStore) -> StageResult:
        result = StageResult(name=StageName.ROTATION)

        for angle, rotated in self._probe_fingerprints(canonical):
            if rotated.value == ZERO_FINGERPRINT:
                # a blank probe would match any sparse stored fingerprint
                continue
            for entry in store.entries():
                if not comparable(rotated, entry.fingerprint):
                    continue
                distance = hamming_distance(rotated, entry.fingerprint)

                if distance <= self.rotation_threshold:
                    return StageResult(name=StageName.ROTATION, matched=True, distance=distance,
                                       confidence=config.ROTATION_CONFIDENCE,
                                       angle=angle, record_id=entry.record_id)

                if result.distance is None or distance < result.distance:
                    result.distance = distance

        return result

    def _color_stage(self, canonical: Image.Image, store: FingerprintStore) -> StageResult:
        entries = [e for e in store.entries() if e.signatures and e.signatures.color_histogram]
        if not entries:
            logger.debug("Color stage skipped, no stored color histograms")
            return StageResult(name=StageName.COLOR, skipped=True)

        histogram = color_histogram(canonical)
        best_similarity, best_record = None, None
        for entry in entries:
            score = 1.0 - compare_color_histograms(histogram, entry.signatures.color_histogram)
            if best_similarity is None or score > best_similarity:
                best_similarity, best_record = score, entry.record_id

        # No acceptance threshold exists for this stage; it only reports
        return StageResult(name=StageName.COLOR, similarity=best_similarity, record_id=best_record)

    def _edge_stage(self, canonical: Image.Image, store: FingerprintStore) -> StageResult:
        entries = [e for e in store.entries() if e.signatures and e.signatures.edge_hash]
        if not entries:
            logger.debug("Edge stage skipped, no stored edge hashes")
            return StageResult(name=StageName.EDGE, skipped=True)

        query_edges = edge_hash(canonical)
        best_similarity, best_record = None, None
        for entry in entries:
            score = 1.0 - compare_edge_hashes(query_edges, entry.signatures.edge_hash)
            if best_similarity is None or score > best_similarity:
                best_similarity, best_record = score, entry.record_id

        return StageResult(name=StageName.EDGE, similarity=best_similarity, record_id=best_record)

def verify_image_match(image_bytes: bytes, store: StoreLike) -> StageReport:
    """Verify a photo with the default stage configuration."""
    return MultiStageVerifier().verify(image_bytes, store)

def create_record_signatures(image_bytes: bytes) -> RecordSignatures:
    """
    Compute everything a caller should persist for a newly registered object:
    the primary fingerprint, both auxiliary signatures and a content digest.
    """
    canonical = canonicalize(image_bytes)
    auxiliary = generate_signatures(canonical)
    signatures = RecordSignatures(
        primary=generate_primary(canonical),
        image_hash=calculate_bytes_hash(image_bytes),
        color_histogram=auxiliary.color_histogram,
        edge_hash=auxiliary.edge_hash,
    )
    logger.info("Created record signatures",
                primary=format_short_hash(signatures.primary.value),
                kind=signatures.primary.kind)
    return signatures
