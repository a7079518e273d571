"""Pytest configuration and fixtures for histogram equalisation testing."""

import numpy as np
import pytest

from histeq.models.equalisation_config import EqualisationConfig
from histeq.models.pixel_buffer import PixelBuffer
from histeq.repositories.torch_device_repository import TorchDeviceRepository


@pytest.fixture(scope="session")
def device():
    """CPU torch device; every kernel runs without an accelerator."""
    return TorchDeviceRepository("cpu")


@pytest.fixture
def config(tmp_path):
    """Small scan blocks so tiny test images still span several work-groups."""
    return EqualisationConfig(
        bin_size=1,
        backend="torch",
        torch_device="cpu",
        work_group_size=4,
        output_dir=tmp_path / "equalised",
        load_timeout=0,
    )


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def grey_image(rng):
    return PixelBuffer.from_interleaved(rng.integers(0, 256, size=(12, 10), dtype=np.uint8))


@pytest.fixture
def rgb_image(rng):
    return PixelBuffer.from_interleaved(rng.integers(0, 256, size=(9, 7, 3), dtype=np.uint8))


@pytest.fixture
def rgb16_image(rng):
    return PixelBuffer.from_interleaved(rng.integers(0, 65536, size=(6, 5, 3), dtype=np.uint16))


def equalise_reference(samples, max_value, bin_size=1):
    """numpy oracle: histogram, cumsum, round-half-up LUT, lookup."""
    samples = np.asarray(samples, dtype=np.int64)
    bins = -(-(max_value + 1) // bin_size)
    cumulative = np.cumsum(np.bincount(samples // bin_size, minlength=bins))
    total = int(cumulative[-1])
    lut = (cumulative * max_value + total // 2) // total
    return lut[samples // bin_size]
