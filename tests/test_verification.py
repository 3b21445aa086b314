import pytest
from PIL import Image

from objectmatch import config
from objectmatch.core.errors import UnsupportedImageError
from objectmatch.core.store import FingerprintStore
from objectmatch.services import verification
from objectmatch.services.canonicalizer import canonicalize
from objectmatch.services.image_hash import generate_primary
from objectmatch.services.verification import (
    MultiStageVerifier, create_record_signatures, verify_image_match,
)

from tests.conftest import solid, to_bytes


def store_with(image_bytes, record_id="obj-A", signatures=None):
    store = FingerprintStore()
    store.add(generate_primary(canonicalize(image_bytes)), record_id, signatures)
    return store


def test_direct_stage_match(pattern_bytes):
    report = verify_image_match(pattern_bytes, store_with(pattern_bytes))

    assert report.overall.matched
    assert report.overall.method == "direct"
    assert report.overall.confidence == config.DIRECT_CONFIDENCE
    assert report.overall.record_id == "obj-A"
    assert report.stage("direct").distance == 0
    assert report.stage("rotation") is None


@pytest.mark.parametrize("angle", config.ROTATION_PROBE_ANGLES)
def test_rotation_stage_accepts_photo_rotated_by_each_configured_angle(framed_image, angle):
    photo = framed_image.rotate(-angle, resample=Image.Resampling.BICUBIC, fillcolor=config.BACKGROUND_COLOR)
    report = verify_image_match(to_bytes(photo), store_with(to_bytes(framed_image)))

    assert not report.stage("direct").matched
    assert report.overall.matched
    assert report.overall.method == "rotation"
    assert report.overall.confidence == config.ROTATION_CONFIDENCE
    assert report.overall.record_id == "obj-A"
    assert report.stage("rotation").distance <= config.ROTATION_THRESHOLD


def test_no_match_reports_min_distances(pattern_bytes, other_pattern_bytes):
    report = verify_image_match(pattern_bytes, store_with(other_pattern_bytes))

    assert not report.overall.matched
    assert report.overall.method == "none"
    assert report.min_distances["direct"] > config.STRICT_THRESHOLD
    assert report.min_distances["rotation"] > config.ROTATION_THRESHOLD
    assert report.stage("color").skipped
    assert report.stage("edge").skipped


def test_empty_store_short_circuits(monkeypatch, pattern_bytes):
    def fail(*args, **kwargs):
        raise AssertionError("no stage should run against an empty store")

    monkeypatch.setattr(verification, "rotate_image", fail)
    monkeypatch.setattr(verification, "color_histogram", fail)
    monkeypatch.setattr(verification, "edge_hash", fail)

    report = MultiStageVerifier().verify(pattern_bytes, {})
    assert not report.overall.matched
    assert report.query.value
    assert all(stage.skipped for stage in report.stages)


def test_auxiliary_stages_report_but_never_decide(pattern_bytes, other_pattern_bytes):
    signatures = create_record_signatures(pattern_bytes).auxiliary()
    store = store_with(other_pattern_bytes, signatures=signatures)

    report = verify_image_match(pattern_bytes, store)
    assert not report.overall.matched
    assert report.stage("color").similarity == pytest.approx(1.0)
    assert report.stage("edge").similarity == pytest.approx(1.0)
    assert report.stage("color").record_id == "obj-A"


def test_parallel_probes_match_sequential(pattern_image, pattern_bytes):
    query = to_bytes(pattern_image.transpose(Image.Transpose.ROTATE_180))
    store = store_with(pattern_bytes)

    sequential = MultiStageVerifier(max_workers=0).verify(query, store)
    parallel = MultiStageVerifier(max_workers=4).verify(query, store)
    assert parallel.overall == sequential.overall
    assert parallel.stage("rotation").angle == sequential.stage("rotation").angle


def test_unsupported_image_aborts(pattern_bytes):
    with pytest.raises(UnsupportedImageError):
        verify_image_match(b"garbage", store_with(pattern_bytes))


def test_record_signatures(pattern_bytes):
    signatures = create_record_signatures(pattern_bytes)
    assert signatures.primary == generate_primary(canonicalize(pattern_bytes))
    assert len(signatures.edge_hash) == config.EDGE_SIZE ** 2
    assert sum(signatures.color_histogram.r) == config.HISTOGRAM_SIZE ** 2
    assert len(signatures.image_hash) == 64
    assert signatures.created_at.tzinfo is not None


def test_blank_object_verifies_against_hex_keyed_store():
    blank = to_bytes(solid((30, 60, 90)))
    fingerprint = generate_primary(canonicalize(blank))

    report = verify_image_match(blank, {fingerprint.value: "blank-record"})
    assert report.overall.method == "direct"
    assert report.overall.record_id == "blank-record"
    assert report.stage("direct").distance == 0
