from __future__ import annotations
from dataclasses import dataclass
import logging

import numpy as np

from ..exceptions import ConfigurationError
from ..models.equalisation_config import check_pixel_count
from ..models.pixel_buffer import PixelBuffer
from ..models.stage_result import StageResult, StageTiming
from ..repositories.device_repository import AccessMode, DeviceRepository

logger = logging.getLogger(__name__)


@dataclass
class HslPlanes:
    hsl: np.ndarray # (3, N) float32: hue and saturation in [0, 1], lightness in pixel units
    levels: np.ndarray # (N,) integer lightness, (max + min + 1) // 2, what gets equalised


class ColourSpaceService:
    """
    RGB <-> HSL on the device, one work-item per pixel.
    Only lightness is equalised in HSL mode, so hue and saturation round-trip untouched.
    """

    def __init__(self, device: DeviceRepository):
        self.device = device

    def rgb_to_hsl(self, buffer: PixelBuffer) -> StageResult:
        """Returns a StageResult whose data is an HslPlanes."""
        if buffer.channels != 3:
            raise ConfigurationError(f"HSL conversion needs 3 channels, image has {buffer.channels}")
        check_pixel_count(buffer.pixel_count)
        n = buffer.pixel_count

        rgb = self.device.upload(buffer.data, np.uint32)
        hsl = self.device.allocate(3 * n, np.float32, AccessMode.WRITE_ONLY)
        levels = self.device.allocate(n, np.uint32, AccessMode.WRITE_ONLY)
        handle = self.device.launch(
            "rgbToHsl", n, None, rgb, hsl, levels, np.uint32(buffer.max_value), np.uint32(n),
        )
        timing = StageTiming("rgb to hsl", self.device.elapsed_ms(handle))
        logger.info(str(timing))

        planes = HslPlanes(
            hsl=self.device.read(hsl).reshape(3, n),
            levels=self.device.read(levels).astype(buffer.dtype),
        )
        return StageResult(data=planes, timings=[timing])

    def hsl_to_rgb(self, hsl: np.ndarray, max_value: int, dtype,
                   lightness: np.ndarray | None = None) -> StageResult:
        """
        Args:
            hsl (np.ndarray): (3, N) planes as produced by rgb_to_hsl
            max_value (int): top of the pixel range
            dtype: sample type of the returned channels
            lightness (np.ndarray | None): replacement lightness in pixel units;
                the lightness plane of `hsl` is used when omitted

        Returns:
            StageResult: (3, N) RGB samples of `dtype`
        """
        hsl = np.asarray(hsl, dtype=np.float32)
        if hsl.ndim != 2 or hsl.shape[0] != 3:
            raise ConfigurationError(f"Expected (3, N) HSL planes, got shape {hsl.shape}")
        n = hsl.shape[1]
        check_pixel_count(n)
        light = hsl[2] if lightness is None else np.ravel(lightness).astype(np.float32)
        if light.size != n:
            raise ConfigurationError(f"Lightness has {light.size} values for {n} pixels")

        hsl_buffer = self.device.upload(hsl, np.float32)
        light_buffer = self.device.upload(light, np.float32)
        rgb = self.device.allocate(3 * n, np.uint32, AccessMode.WRITE_ONLY)
        handle = self.device.launch(
            "hslToRgb", n, None, hsl_buffer, light_buffer, rgb, np.uint32(max_value), np.uint32(n),
        )
        timing = StageTiming("hsl to rgb", self.device.elapsed_ms(handle))
        logger.info(str(timing))
        return StageResult(data=self.device.read(rgb).reshape(3, n).astype(dtype), timings=[timing])
