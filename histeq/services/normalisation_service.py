from __future__ import annotations
import logging

import numpy as np

from ..exceptions import ConfigurationError
from ..models.stage_result import StageResult, StageTiming
from ..repositories.device_repository import AccessMode, DeviceRepository
from .histogram_service import COUNT_DTYPE

logger = logging.getLogger(__name__)


def identity_lookup_table(bins: int, bin_size: int, max_value: int) -> np.ndarray:
    """Maps every bin back to the first pixel value it covers."""
    return np.minimum(np.arange(bins, dtype=COUNT_DTYPE) * bin_size, max_value)


def scale_cumulative(cumulative: np.ndarray, max_value: int) -> np.ndarray:
    """
    LUT[i] = round(cumulative[i] * max_value / total), rounding halves up.
    Integer arithmetic throughout so host and device agree bit for bit.
    """
    cumulative = np.asarray(cumulative, dtype=COUNT_DTYPE)
    total = int(cumulative[-1])
    return (cumulative * max_value + total // 2) // total


class NormalisationService:
    """
    Turns a cumulative histogram into a lookup table over [0, max_value].
    """

    def __init__(self, device: DeviceRepository):
        self.device = device

    def to_lookup_table(self, cumulative: np.ndarray, max_value: int, bin_size: int = 1,
                        channel_index: int | None = None) -> StageResult:
        cumulative = np.ravel(cumulative)
        if cumulative.size == 0:
            raise ConfigurationError("Cannot normalise an empty cumulative histogram")

        total = int(cumulative[-1])
        if total == 0:
            # Nothing was counted; leave pixel values where they are
            logger.warning(f"Cumulative histogram of channel {channel_index} is empty, using the identity lookup")
            timing = StageTiming("normalise to lookup", 0.0, channel_index)
            return StageResult(data=identity_lookup_table(cumulative.size, bin_size, max_value), timings=[timing])

        cum_buffer = self.device.upload(cumulative, np.uint32)
        lut_buffer = self.device.allocate(cumulative.size, np.uint32, AccessMode.WRITE_ONLY)
        handle = self.device.launch(
            "normaliseToLut", cumulative.size, None,
            cum_buffer, np.uint32(total), lut_buffer, np.uint32(max_value),
        )
        timing = StageTiming("normalise to lookup", self.device.elapsed_ms(handle), channel_index)
        logger.info(str(timing))
        return StageResult(data=self.device.read(lut_buffer).astype(COUNT_DTYPE), timings=[timing])
