from __future__ import annotations
import logging
from typing import List

import numpy as np

from ..exceptions import ConfigurationError
from ..models.equalisation_config import MAX_DEVICE_COUNT, MIN_GROUP_WIDTH
from ..models.stage_result import StageResult, StageTiming
from ..repositories.device_repository import DeviceBuffer, DeviceRepository
from .histogram_service import COUNT_DTYPE

logger = logging.getLogger(__name__)


class PrefixScanService:
    """
    Inclusive prefix sum on the device, in two levels.

    1.  The input is zero padded to a multiple of the work-group width G and
        every group scans its own block (Hillis-Steele, double buffered).
    2.  The last element of each block is gathered, and that array of block
        totals is scanned by a single group. When there are more blocks than
        one group can hold, the block totals are scanned with this same
        two-level procedure instead.
    3.  Every block after the first adds the scanned total of the block
        before it.

    Only the first N values of the padded result are returned.
    """

    def __init__(self, device: DeviceRepository, work_group_size: int | None = None):
        self.device = device
        self.work_group_size = work_group_size

    def group_width(self) -> int:
        if self.work_group_size is not None and self.work_group_size < MIN_GROUP_WIDTH:
            raise ConfigurationError(
                f"Work-group size must be at least {MIN_GROUP_WIDTH}, got {self.work_group_size}"
            )
        width = self.work_group_size or max(
            self.device.preferred_work_group_size("scanHillisSteeleLocal"), MIN_GROUP_WIDTH
        )
        limit = self.device.max_work_group_size("scanHillisSteeleLocal")
        if width > limit:
            raise ConfigurationError(f"Work-group size {width} exceeds the device limit of {limit}")
        return width

    def inclusive_scan(self, values: np.ndarray, channel_index: int | None = None) -> StageResult:
        values = np.ravel(values)
        if values.size == 0:
            raise ConfigurationError("Cannot scan an empty array")
        if values.min() < 0:
            raise ConfigurationError("Prefix scan expects non-negative counts")
        total = int(values.sum(dtype=np.uint64))
        if total > MAX_DEVICE_COUNT:
            raise ConfigurationError(f"Scan total {total} overflows the 32-bit device counters")

        width = self.group_width()
        timings: List[StageTiming] = []
        scanned = self._scan(values, width, timings, channel_index)
        logger.info(f"cumulative sum of {values.size} values (G={width}): "
                    f"{sum(t.duration_ms for t in timings):.3f} ms")
        return StageResult(data=scanned.astype(COUNT_DTYPE), timings=timings)

    # ───────────────────────── two-level scan
    def _scan(self, values: np.ndarray, width: int, timings: List[StageTiming],
              channel_index: int | None) -> np.ndarray:
        count = values.size
        padding = (-count) % width
        padded = np.concatenate([values, np.zeros(padding, dtype=values.dtype)]) if padding else values
        groups = padded.size // width

        data_in = self.device.upload(padded, np.uint32)
        data_out = self.device.allocate(padded.size, np.uint32)
        handle = self.device.launch(
            "scanHillisSteeleLocal", padded.size, width, data_in, data_out,
            self.device.local_memory(width), self.device.local_memory(width),
        )
        self._record(timings, "cumulative sum: local scan", handle, channel_index)

        if groups == 1:
            return self.device.read(data_out, count)

        block_sums = self.device.allocate(groups, np.uint32)
        handle = self.device.launch("blockSum", groups, None, data_out, block_sums, np.int32(width))
        self._record(timings, "cumulative sum: block sums", handle, channel_index)

        self._scan_block_sums(block_sums, groups, padded.size, width, timings, channel_index)

        handle = self.device.launch(
            "scanAddAdjust", padded.size - width, width, data_out, block_sums, global_offset=width,
        )
        self._record(timings, "cumulative sum: add adjust", handle, channel_index)
        return self.device.read(data_out, count)

    def _scan_block_sums(self, block_sums: DeviceBuffer, groups: int, scanned_count: int, width: int,
                         timings: List[StageTiming], channel_index: int | None) -> None:
        if groups <= self.device.max_work_group_size("scanHillisSteeleGlobal"):
            handle = self.device.launch(
                "scanHillisSteeleGlobal", groups, groups, block_sums,
                self.device.local_memory(groups), self.device.local_memory(groups),
            )
            self._record(timings, "cumulative sum: block scan", handle, channel_index)
            return

        if groups >= scanned_count:
            raise ConfigurationError(
                f"Block width {width} does not reduce {scanned_count} values; the scan would not finish"
            )
        logger.debug(f"{groups} blocks do not fit one work-group, scanning block sums recursively")
        scanned = self._scan(self.device.read(block_sums), width, timings, channel_index)
        self.device.write(block_sums, scanned)

    def _record(self, timings: List[StageTiming], stage: str, handle, channel_index: int | None) -> None:
        timing = StageTiming(stage, self.device.elapsed_ms(handle), channel_index)
        logger.debug(str(timing))
        timings.append(timing)
