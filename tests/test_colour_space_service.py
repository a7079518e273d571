import colorsys

import numpy as np
import pytest

from histeq.exceptions import ConfigurationError
from histeq.models.pixel_buffer import PixelBuffer
from histeq.services.colour_space_service import ColourSpaceService


def _rgb(*pixels, dtype=np.uint8):
    return PixelBuffer.from_interleaved(np.array([pixels], dtype=dtype))


def test_grey_pixels_have_no_hue_or_saturation(device):
    planes = ColourSpaceService(device).rgb_to_hsl(_rgb((0, 0, 0), (77, 77, 77), (255, 255, 255))).data

    np.testing.assert_array_equal(planes.hsl[0], 0.0)
    np.testing.assert_array_equal(planes.hsl[1], 0.0)
    assert planes.levels.tolist() == [0, 77, 255]


def test_pure_red(device):
    planes = ColourSpaceService(device).rgb_to_hsl(_rgb((255, 0, 0))).data

    assert planes.hsl[0, 0] == pytest.approx(0.0)
    assert planes.hsl[1, 0] == pytest.approx(1.0)
    assert planes.hsl[2, 0] == pytest.approx(127.5)
    assert planes.levels[0] == 128


def test_matches_colorsys(device, rgb_image):
    planes = ColourSpaceService(device).rgb_to_hsl(rgb_image).data

    for i in range(rgb_image.pixel_count):
        r, g, b = (int(rgb_image.channel(c)[i]) for c in range(3))
        h, l, s = colorsys.rgb_to_hls(r / 255, g / 255, b / 255)
        assert planes.hsl[0, i] == pytest.approx(h, abs=1e-5)
        assert planes.hsl[1, i] == pytest.approx(s, abs=1e-5)
        assert planes.hsl[2, i] == pytest.approx(l * 255, abs=1e-3)


@pytest.mark.parametrize("image", ["rgb_image", "rgb16_image"])
def test_round_trip_within_one_unit(device, request, image):
    buffer = request.getfixturevalue(image)
    service = ColourSpaceService(device)

    planes = service.rgb_to_hsl(buffer).data
    restored = service.hsl_to_rgb(planes.hsl, buffer.max_value, buffer.dtype).data

    assert restored.dtype == buffer.dtype
    diff = np.abs(restored.astype(np.int64) - buffer.data.astype(np.int64))
    assert diff.max() <= 1


def test_replacement_lightness_is_used(device):
    service = ColourSpaceService(device)
    planes = service.rgb_to_hsl(_rgb((40, 40, 40))).data

    restored = service.hsl_to_rgb(planes.hsl, 255, np.uint8, lightness=np.array([200])).data

    assert restored[:, 0].tolist() == [200, 200, 200]


def test_non_rgb_images_are_rejected(device, grey_image):
    with pytest.raises(ConfigurationError):
        ColourSpaceService(device).rgb_to_hsl(grey_image)
