from dataclasses import replace

import numpy as np
import pytest

from conftest import equalise_reference
from histeq.exceptions import ConfigurationError
from histeq.models.pixel_buffer import PixelBuffer
from histeq.services.equalisation_service import EqualisationService
from histeq.services.serial_reference_service import SerialReferenceService


@pytest.fixture
def parallel(config, device):
    return EqualisationService(config, device)


@pytest.fixture
def serial(config):
    return SerialReferenceService(config)


def test_worked_example(parallel, serial):
    image = PixelBuffer.from_interleaved(np.array([[10, 10, 20, 30]], dtype=np.uint8))

    for service in (parallel, serial):
        result = service.equalise(image)
        assert result.image.channel(0).tolist() == [128, 128, 191, 255]
        assert result.channels[0].histogram[10] == 2
        assert result.channels[0].cumulative[30] == 4


def test_flat_image_equalises_to_one_value(parallel, serial):
    image = PixelBuffer.from_interleaved(np.full((3, 5), 5, dtype=np.uint8))

    for service in (parallel, serial):
        out = service.equalise(image).image.data
        assert np.unique(out).tolist() == [255]


@pytest.mark.parametrize("image", ["grey_image", "rgb_image", "rgb16_image"])
@pytest.mark.parametrize("bin_size", [1, 7, 256])
def test_parallel_matches_serial_exactly(config, device, request, image, bin_size):
    buffer = request.getfixturevalue(image)
    config = replace(config, bin_size=bin_size)

    parallel = EqualisationService(config, device).equalise(buffer)
    serial = SerialReferenceService(config).equalise(buffer)

    np.testing.assert_array_equal(parallel.image.data, serial.image.data)
    for p, s in zip(parallel.channels, serial.channels):
        np.testing.assert_array_equal(p.histogram, s.histogram)
        np.testing.assert_array_equal(p.cumulative, s.cumulative)
        np.testing.assert_array_equal(p.lookup_table, s.lookup_table)


def test_channels_are_equalised_independently(parallel, rgb_image):
    result = parallel.equalise(rgb_image)

    assert len(result.channels) == 3
    for c in range(3):
        expected = equalise_reference(rgb_image.channel(c), 255)
        np.testing.assert_array_equal(result.image.channel(c), expected)


def test_histogram_sums_to_pixel_count(parallel, rgb16_image):
    result = parallel.equalise(rgb16_image)
    for stages in result.channels:
        assert stages.histogram.sum() == rgb16_image.pixel_count
        assert stages.cumulative[-1] == rgb16_image.pixel_count


def test_timings_cover_every_stage(parallel, grey_image):
    result = parallel.equalise(grey_image)
    assert set(result.by_stage()) == {"build histogram", "cumulative sum", "normalise to lookup", "backprojection"}
    assert result.total_ms == pytest.approx(sum(result.by_stage().values()))


def test_hsl_matches_serial_within_one_unit(parallel, serial, rgb_image):
    p = parallel.equalise_hsl(rgb_image)
    s = serial.equalise_hsl(rgb_image)

    np.testing.assert_array_equal(p.channels[0].histogram, s.channels[0].histogram)
    np.testing.assert_array_equal(p.channels[0].lookup_table, s.channels[0].lookup_table)
    diff = np.abs(p.image.data.astype(np.int64) - s.image.data.astype(np.int64))
    assert diff.max() <= 1


def test_hsl_keeps_grey_pixels_grey(parallel):
    image = PixelBuffer.from_interleaved(np.array([[[10, 10, 10], [20, 20, 20], [30, 30, 30]]], dtype=np.uint8))
    out = parallel.equalise_hsl(image).image

    for i in range(3):
        assert len({int(out.channel(c)[i]) for c in range(3)}) == 1
    assert out.channel(0)[2] == 255


def test_hsl_needs_three_channels(parallel, serial, grey_image):
    for service in (parallel, serial):
        with pytest.raises(ConfigurationError):
            service.equalise_hsl(grey_image)


def test_empty_image_is_rejected(parallel, serial):
    empty = PixelBuffer(data=np.zeros((1, 0), dtype=np.uint8), width=0, height=0)
    for service in (parallel, serial):
        with pytest.raises(ConfigurationError):
            service.equalise(empty)


def test_bin_size_wider_than_range_is_rejected(config, device, grey_image):
    with pytest.raises(ConfigurationError):
        EqualisationService(replace(config, bin_size=512), device).equalise(grey_image)
