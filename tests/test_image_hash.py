from PIL import Image

from objectmatch import config
from objectmatch.models.fingerprint import FALLBACK_MARKER, Fingerprint, FingerprintKind
from objectmatch.services import image_hash
from objectmatch.services.canonicalizer import canonicalize
from objectmatch.services.image_hash import (
    ZERO_FINGERPRINT, block_hash, fingerprint_image, generate_bundle, generate_primary,
)

from tests.conftest import solid, to_bytes


def test_primary_is_deterministic(pattern_bytes):
    canonical = canonicalize(pattern_bytes)
    first = generate_primary(canonical)
    second = generate_primary(canonical)
    assert first == second
    assert first.kind == FingerprintKind.PERCEPTUAL
    assert len(first.value) == config.FINGERPRINT_LENGTH


def test_uniform_image_hashes_to_zero():
    assert block_hash(solid((120, 120, 120), size=(512, 512))) == ZERO_FINGERPRINT


def test_fallback_for_uniform_images_uses_pixel_statistics():
    red = generate_primary(canonicalize(to_bytes(solid((255, 0, 0)))))
    blue = generate_primary(canonicalize(to_bytes(solid((0, 0, 255)))))

    assert red.kind == FingerprintKind.FALLBACK
    assert blue.kind == FingerprintKind.FALLBACK
    assert len(red.value) == len(blue.value) == config.FINGERPRINT_LENGTH
    assert red.value != blue.value
    assert red.value.startswith(FALLBACK_MARKER)
    assert Fingerprint.from_value(red.value) == red


def test_fallback_is_stable_for_same_image():
    first = generate_primary(canonicalize(to_bytes(solid((0, 128, 0)))))
    second = generate_primary(canonicalize(to_bytes(solid((0, 128, 0)))))
    assert first == second


def test_bundle_variants_in_configured_order(pattern_bytes):
    bundle = fingerprint_image(pattern_bytes)

    expected = [f"rotated_{a}" for a in config.VARIANT_ROTATIONS]
    expected += [f"scaled_{s:g}" for s in config.VARIANT_SCALES]
    assert [v.label for v in bundle.variants] == expected
    assert bundle.version == config.FINGERPRINT_VERSION
    assert all(len(v.fingerprint.value) == config.FINGERPRINT_LENGTH for v in bundle.variants)


def test_right_angle_variant_matches_rotated_photo(pattern_image, pattern_bytes):
    bundle = fingerprint_image(pattern_bytes)
    rotated_photo = to_bytes(pattern_image.transpose(Image.Transpose.ROTATE_90))
    rotated_primary = generate_primary(canonicalize(rotated_photo))

    variant = next(v for v in bundle.variants if v.label == "rotated_90")
    assert variant.fingerprint == rotated_primary


def test_failing_variant_is_omitted(monkeypatch, pattern_bytes):
    real_rotate = image_hash.rotate_image

    def flaky_rotate(image, angle):
        if angle == 45:
            raise OSError("simulated transform failure")
        return real_rotate(image, angle)

    monkeypatch.setattr(image_hash, "rotate_image", flaky_rotate)
    bundle = fingerprint_image(pattern_bytes)

    labels = [v.label for v in bundle.variants]
    assert "rotated_45" not in labels
    assert len(labels) == len(config.VARIANT_ROTATIONS) + len(config.VARIANT_SCALES) - 1


def test_parallel_bundle_matches_sequential(pattern_bytes):
    canonical = canonicalize(pattern_bytes)
    sequential = generate_bundle(canonical, max_workers=0)
    parallel = generate_bundle(canonical, max_workers=4)
    assert parallel == sequential


def test_fingerprint_info():
    info = image_hash.get_fingerprint_info()
    assert info["fingerprint_length"] == 64
    assert len(info["variant_transforms"]) == 12


def test_block_hash_never_emits_fallback_marker(framed_image, pattern_image):
    for image in (framed_image, pattern_image, solid((0, 0, 0), size=(512, 512))):
        assert not block_hash(image).startswith(FALLBACK_MARKER)
