from __future__ import annotations
import logging
from typing import List, Tuple

import numpy as np

from ..exceptions import ConfigurationError
from ..models.equalisation_config import EqualisationConfig, check_pixel_count
from ..models.pixel_buffer import PixelBuffer
from ..models.stage_result import ChannelStages, EqualisationResult, StageTiming
from ..repositories.device_repository import DeviceRepository, create_device_repository
from .backprojection_service import BackprojectionService
from .colour_space_service import ColourSpaceService
from .histogram_service import HistogramService
from .normalisation_service import NormalisationService
from .scan_service import PrefixScanService

logger = logging.getLogger(__name__)


class EqualisationService:
    """
    Parallel histogram equalisation on one device.
    *   Grey and RGB images: every channel is equalised on its own.
    *   HSL mode: only lightness is equalised; hue and saturation are carried over.
    *   Bad configuration is rejected before any device work is issued.
    """

    def __init__(self, config: EqualisationConfig, device: DeviceRepository | None = None):
        self.config = config
        self.device = device or create_device_repository(config)
        self.histograms = HistogramService(self.device)
        self.scanner = PrefixScanService(self.device, config.work_group_size)
        self.normaliser = NormalisationService(self.device)
        self.backprojector = BackprojectionService(self.device)
        self.colours = ColourSpaceService(self.device)

    def equalise(self, buffer: PixelBuffer) -> EqualisationResult:
        logger.info(f"Running parallel histogram equalisation on {self.device.describe()}...")
        self._check(buffer)
        timings: List[StageTiming] = []
        stages: List[ChannelStages] = []
        outputs = []

        for c in range(buffer.channels):
            logger.info(f"Running on colour channel {c}:")
            out, channel_stages = self.equalise_channel(buffer.channel(c), buffer.max_value, c, timings)
            outputs.append(out)
            stages.append(channel_stages)

        result = EqualisationResult(image=buffer.with_data(np.stack(outputs)), timings=timings, channels=stages)
        logger.info(f"Total parallel duration: {result.total_ms:.3f} ms")
        return result

    def equalise_hsl(self, buffer: PixelBuffer) -> EqualisationResult:
        logger.info(f"Running parallel HSL histogram equalisation on {self.device.describe()}...")
        if buffer.channels != 3:
            raise ConfigurationError(f"HSL equalisation needs an RGB image, got {buffer.channels} channel(s)")
        self._check(buffer)
        timings: List[StageTiming] = []

        converted = self.colours.rgb_to_hsl(buffer)
        timings.extend(converted.timings)
        planes = converted.data

        levels, channel_stages = self.equalise_channel(planes.levels, buffer.max_value, 0, timings)

        restored = self.colours.hsl_to_rgb(planes.hsl, buffer.max_value, buffer.dtype, lightness=levels)
        timings.extend(restored.timings)

        result = EqualisationResult(image=buffer.with_data(restored.data), timings=timings, channels=[channel_stages])
        logger.info(f"Total parallel HSL duration: {result.total_ms:.3f} ms")
        return result

    def equalise_channel(self, channel: np.ndarray, max_value: int, channel_index: int,
                         timings: List[StageTiming]) -> Tuple[np.ndarray, ChannelStages]:
        """Histogram, scan, lookup and backprojection for one channel; appends to `timings`."""
        bin_size = self.config.bin_size

        histogram = self.histograms.build(channel, bin_size, max_value, channel_index)
        cumulative = self.scanner.inclusive_scan(histogram.data, channel_index)
        lookup = self.normaliser.to_lookup_table(cumulative.data, max_value, bin_size, channel_index)
        projected = self.backprojector.apply(channel, lookup.data, bin_size, channel_index)

        for stage in (histogram, cumulative, lookup, projected):
            timings.extend(stage.timings)

        stages = ChannelStages(
            channel=channel_index,
            histogram=histogram.data,
            cumulative=cumulative.data,
            lookup_table=lookup.data,
        )
        return projected.data, stages

    def _check(self, buffer: PixelBuffer) -> None:
        check_pixel_count(buffer.pixel_count)
        self.config.validate(buffer.max_value)
