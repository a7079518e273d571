import numpy as np
import pytest

from histeq.models.pixel_buffer import PixelBuffer


def test_interleaved_rgb_becomes_channel_major(rng):
    pixels = rng.integers(0, 256, size=(4, 3, 3), dtype=np.uint8)
    buffer = PixelBuffer.from_interleaved(pixels)

    assert buffer.data.shape == (3, 12)
    assert (buffer.width, buffer.height, buffer.channels) == (3, 4, 3)
    np.testing.assert_array_equal(buffer.channel(1), pixels[:, :, 1].ravel())
    np.testing.assert_array_equal(buffer.to_interleaved(), pixels)


def test_grey_round_trips_as_two_dimensional(rng):
    pixels = rng.integers(0, 65536, size=(5, 2), dtype=np.uint16)
    buffer = PixelBuffer.from_interleaved(pixels)

    assert buffer.channels == 1
    assert buffer.bit_depth == 16
    assert buffer.max_value == 65535
    np.testing.assert_array_equal(buffer.to_interleaved(), pixels)


def test_samples_are_read_only(grey_image):
    assert not grey_image.data.flags.writeable
    with pytest.raises(ValueError):
        grey_image.data[0, 0] = 1


def test_unsupported_sample_type_is_rejected():
    with pytest.raises(ValueError):
        PixelBuffer.from_interleaved(np.zeros((2, 2), dtype=np.float32))


def test_mismatched_geometry_is_rejected():
    with pytest.raises(ValueError):
        PixelBuffer(data=np.zeros((1, 5), dtype=np.uint8), width=2, height=2)


def test_with_data_keeps_geometry_and_depth(rgb_image):
    replaced = rgb_image.with_data(np.zeros(rgb_image.data.shape, dtype=np.int64))
    assert replaced.dtype == np.uint8
    assert (replaced.width, replaced.height) == (rgb_image.width, rgb_image.height)
    assert not replaced.data.any()
