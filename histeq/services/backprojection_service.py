from __future__ import annotations
import logging

import numpy as np

from ..exceptions import ConfigurationError
from ..models.equalisation_config import check_pixel_count
from ..models.stage_result import StageResult, StageTiming
from ..repositories.device_repository import AccessMode, DeviceRepository

logger = logging.getLogger(__name__)


class BackprojectionService:
    """Replaces every sample with the lookup table entry of its bin."""

    def __init__(self, device: DeviceRepository):
        self.device = device

    def apply(self, channel: np.ndarray, lookup_table: np.ndarray, bin_size: int,
              channel_index: int | None = None) -> StageResult:
        channel = np.ravel(channel)
        check_pixel_count(channel.size)
        lookup_table = np.ravel(lookup_table)
        if int(channel.max()) // bin_size >= lookup_table.size:
            raise ConfigurationError(
                f"Lookup table of {lookup_table.size} bins does not cover sample {int(channel.max())}"
            )

        pixels = self.device.upload(channel, np.uint32)
        lut = self.device.upload(lookup_table, np.uint32)
        output = self.device.allocate(channel.size, np.uint32, AccessMode.WRITE_ONLY)
        handle = self.device.launch("backprojection", channel.size, None, pixels, lut, output, np.uint32(bin_size))
        timing = StageTiming("backprojection", self.device.elapsed_ms(handle), channel_index)
        logger.info(str(timing))
        return StageResult(data=self.device.read(output).astype(channel.dtype), timings=[timing])
