import numpy as np
import pytest

from histeq.exceptions import ConfigurationError
from histeq.services.normalisation_service import NormalisationService, identity_lookup_table, scale_cumulative
from histeq.services.serial_reference_service import SerialReferenceService


def test_worked_example(device):
    hist = np.zeros(256, dtype=np.int64)
    hist[10], hist[20], hist[30] = 2, 1, 1
    lut = NormalisationService(device).to_lookup_table(np.cumsum(hist), 255).data

    assert lut[:10].tolist() == [0] * 10
    assert lut[10] == 128 # round(2 * 255 / 4) = round(127.5)
    assert lut[20] == 191 # round(191.25)
    assert lut[30] == 255
    assert lut[255] == 255


def test_lookup_is_monotonic_and_ends_at_max(device, rng):
    cumulative = np.cumsum(rng.integers(0, 1000, size=256))
    lut = NormalisationService(device).to_lookup_table(cumulative, 65535).data

    assert np.all(np.diff(lut) >= 0)
    assert lut[-1] == 65535


def test_device_and_host_agree_exactly(device, rng):
    cumulative = np.cumsum(rng.integers(0, 97, size=86))
    device_lut = NormalisationService(device).to_lookup_table(cumulative, 255, bin_size=3).data

    np.testing.assert_array_equal(device_lut, scale_cumulative(cumulative, 255))
    assert device_lut.tolist() == SerialReferenceService.normalise_to_lut(cumulative.tolist(), 255, 3)


def test_empty_channel_falls_back_to_identity(device):
    result = NormalisationService(device).to_lookup_table(np.zeros(64, dtype=np.int64), 255, bin_size=4)

    np.testing.assert_array_equal(result.data, np.arange(64) * 4)
    assert result.timings[0].duration_ms == 0.0


def test_identity_lookup_clamps_to_max():
    lut = identity_lookup_table(3, 100, 255)
    assert lut.tolist() == [0, 100, 200]
    assert identity_lookup_table(4, 100, 255)[-1] == 255


def test_empty_input_is_rejected(device):
    with pytest.raises(ConfigurationError):
        NormalisationService(device).to_lookup_table(np.array([], dtype=np.int64), 255)
