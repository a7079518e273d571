from __future__ import annotations
import colorsys
import logging
import time
from typing import Callable, List, Tuple, TypeVar

import numpy as np

from ..exceptions import ConfigurationError
from ..models.equalisation_config import EqualisationConfig, check_pixel_count, number_of_bins
from ..models.pixel_buffer import PixelBuffer
from ..models.stage_result import ChannelStages, EqualisationResult, StageTiming
from .histogram_service import COUNT_DTYPE
from .normalisation_service import identity_lookup_table, scale_cumulative

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SerialReferenceService:
    """
    Single-threaded host implementation of the same four stages.
    Plain loops on purpose: it is the baseline the device path is timed
    against and the oracle its output is checked with.
    """

    def __init__(self, config: EqualisationConfig):
        self.config = config

    # ───────────────────────── stages
    @staticmethod
    def build_histogram(samples: List[int], bins: int, bin_size: int) -> List[int]:
        hist = [0] * bins
        for value in samples:
            hist[value // bin_size] += 1
        return hist

    @staticmethod
    def cumulative_sum(histogram: List[int]) -> List[int]:
        cumulative = list(histogram)
        for i in range(1, len(cumulative)):
            cumulative[i] += cumulative[i - 1]
        return cumulative

    @staticmethod
    def normalise_to_lut(cumulative: List[int], max_value: int, bin_size: int = 1) -> List[int]:
        total = cumulative[-1]
        if total == 0:
            return identity_lookup_table(len(cumulative), bin_size, max_value).tolist()
        return scale_cumulative(cumulative, max_value).tolist()

    @staticmethod
    def backproject(samples: List[int], lut: List[int], bin_size: int) -> List[int]:
        return [lut[value // bin_size] for value in samples]

    # ───────────────────────── per-image runs
    def equalise(self, buffer: PixelBuffer) -> EqualisationResult:
        logger.info("Running serial histogram equalisation...")
        self._check(buffer)
        timings: List[StageTiming] = []
        stages: List[ChannelStages] = []
        outputs = []

        for c in range(buffer.channels):
            logger.info(f"Running on colour channel {c}:")
            samples = buffer.channel(c).tolist()
            out, channel_stages = self._equalise_samples(samples, buffer.max_value, c, timings)
            outputs.append(out)
            stages.append(channel_stages)

        result = EqualisationResult(image=buffer.with_data(np.array(outputs)), timings=timings, channels=stages)
        logger.info(f"Total serial duration: {result.total_ms:.3f} ms")
        return result

    def equalise_hsl(self, buffer: PixelBuffer) -> EqualisationResult:
        """Equalises lightness only, via colorsys; hue and saturation are kept."""
        logger.info("Running serial HSL histogram equalisation...")
        if buffer.channels != 3:
            raise ConfigurationError(f"HSL equalisation needs an RGB image, got {buffer.channels} channel(s)")
        self._check(buffer)
        top = buffer.max_value
        timings: List[StageTiming] = []

        def to_hsl() -> Tuple[List[Tuple[float, float, float]], List[int]]:
            hls, levels = [], []
            for r, g, b in zip(*(buffer.channel(c).tolist() for c in range(3))):
                hls.append(colorsys.rgb_to_hls(r / top, g / top, b / top))
                levels.append((max(r, g, b) + min(r, g, b) + 1) // 2)
            return hls, levels

        hls, levels = self._timed("rgb to hsl", None, timings, to_hsl)
        new_levels, channel_stages = self._equalise_samples(levels, top, 0, timings)

        def to_rgb() -> List[List[int]]:
            planes: List[List[int]] = [[], [], []]
            for (h, _, s), light in zip(hls, new_levels):
                for plane, v in zip(planes, colorsys.hls_to_rgb(h, light / top, s)):
                    plane.append(min(max(int(np.floor(v * top + 0.5)), 0), top))
            return planes

        rgb = self._timed("hsl to rgb", None, timings, to_rgb)
        result = EqualisationResult(image=buffer.with_data(np.array(rgb)), timings=timings, channels=[channel_stages])
        logger.info(f"Total serial HSL duration: {result.total_ms:.3f} ms")
        return result

    # ───────────────────────── helpers
    def _check(self, buffer: PixelBuffer) -> None:
        check_pixel_count(buffer.pixel_count)
        self.config.validate(buffer.max_value)

    def _equalise_samples(self, samples: List[int], max_value: int, channel: int,
                          timings: List[StageTiming]) -> Tuple[List[int], ChannelStages]:
        bin_size = self.config.bin_size
        bins = number_of_bins(max_value, bin_size)

        hist = self._timed("build histogram", channel, timings, self.build_histogram, samples, bins, bin_size)
        cumulative = self._timed("cumulative sum", channel, timings, self.cumulative_sum, hist)
        lut = self._timed("normalise to lookup", channel, timings, self.normalise_to_lut,
                          cumulative, max_value, bin_size)
        out = self._timed("backprojection", channel, timings, self.backproject, samples, lut, bin_size)

        stages = ChannelStages(
            channel=channel,
            histogram=np.array(hist, dtype=COUNT_DTYPE),
            cumulative=np.array(cumulative, dtype=COUNT_DTYPE),
            lookup_table=np.array(lut, dtype=COUNT_DTYPE),
        )
        return out, stages

    @staticmethod
    def _timed(stage: str, channel: int | None, timings: List[StageTiming],
               fn: Callable[..., T], *args) -> T:
        began = time.perf_counter()
        out = fn(*args)
        timing = StageTiming(stage, (time.perf_counter() - began) * 1000.0, channel)
        logger.info(f"\t{timing}")
        timings.append(timing)
        return out
