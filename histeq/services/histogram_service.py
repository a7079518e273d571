from __future__ import annotations
import logging

import numpy as np

from ..exceptions import ConfigurationError
from ..models.equalisation_config import check_bin_size, check_pixel_count, number_of_bins
from ..models.stage_result import StageResult, StageTiming
from ..repositories.device_repository import AccessMode, DeviceRepository

logger = logging.getLogger(__name__)

COUNT_DTYPE = np.dtype(np.int64)


class HistogramService:
    """
    Counts how many samples of one channel fall into each bin.
    *   One work-item per pixel, each doing an atomic increment on its bin.
    *   Counters are zero-filled on the device before every launch.
    """

    def __init__(self, device: DeviceRepository):
        self.device = device

    def build(self, channel: np.ndarray, bin_size: int, max_value: int,
              channel_index: int | None = None) -> StageResult:
        """
        Args:
            channel (np.ndarray): flat samples of one channel, all in [0, max_value]
            bin_size (int): pixel values per bin
            max_value (int): 255 for 8-bit images, 65535 for 16-bit

        Returns:
            StageResult: int64 counts of length ceil((max_value + 1) / bin_size)
        """
        channel = np.ravel(channel)
        check_pixel_count(channel.size)
        check_bin_size(bin_size, max_value)
        if int(channel.max()) > max_value:
            raise ConfigurationError(f"Sample {int(channel.max())} is above the maximum value {max_value}")

        bins = number_of_bins(max_value, bin_size)
        pixels = self.device.upload(channel, np.uint32)
        histogram = self.device.allocate(bins, np.uint32, AccessMode.READ_WRITE)
        self.device.fill(histogram, 0)

        handle = self.device.launch("histogramAtomic", channel.size, None, pixels, histogram, np.uint32(bin_size))
        timing = StageTiming("build histogram", self.device.elapsed_ms(handle), channel_index)
        logger.info(str(timing))

        counts = self.device.read(histogram).astype(COUNT_DTYPE)
        return StageResult(data=counts, timings=[timing])
