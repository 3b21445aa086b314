import io

import numpy as np
import pytest
from PIL import Image


def block_pattern(seed: int, cells: int = 16, cell_size: int = 32) -> Image.Image:
    """Random black/white grid whose cells line up with the hash grid."""
    rng = np.random.default_rng(seed)
    grid = rng.integers(0, 2, size=(cells, cells), dtype=np.uint8) * 255
    pixels = np.kron(grid, np.ones((cell_size, cell_size), dtype=np.uint8))
    return Image.fromarray(pixels).convert("RGB")


def framed_object(seed: int, cells: int = 16, cell_size: int = 32) -> Image.Image:
    """Black-framed block pattern centred on white, clear of the canvas edge at any rotation."""
    rng = np.random.default_rng(seed)
    grid = np.full((cells, cells), 255, dtype=np.uint8)
    grid[3:13, 3:13] = 0
    grid[4:12, 4:12] = rng.integers(0, 2, size=(8, 8), dtype=np.uint8) * 255
    pixels = np.kron(grid, np.ones((cell_size, cell_size), dtype=np.uint8))
    return Image.fromarray(pixels).convert("RGB")


def solid(color, size=(64, 64)) -> Image.Image:
    return Image.new("RGB", size, color)


def to_bytes(image: Image.Image, fmt: str = "PNG", **params) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **params)
    return buffer.getvalue()


def flip_bits(value: str, nibble_positions) -> str:
    """Flip the lowest bit of each listed nibble."""
    chars = list(value)
    for pos in nibble_positions:
        chars[pos] = format(int(chars[pos], 16) ^ 1, "x")
    return "".join(chars)


@pytest.fixture
def pattern_image():
    return block_pattern(seed=7)


@pytest.fixture
def pattern_bytes(pattern_image):
    return to_bytes(pattern_image)


@pytest.fixture
def other_pattern_bytes():
    return to_bytes(block_pattern(seed=11))


@pytest.fixture
def framed_image():
    return framed_object(seed=3)
