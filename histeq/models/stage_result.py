from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List
import numpy as np

from .pixel_buffer import PixelBuffer


@dataclass
class StageTiming:
    """Duration of one stage (or one kernel within a stage) on one channel."""
    stage: str
    duration_ms: float
    channel: int | None = None

    def __str__(self) -> str:
        where = f"[ch {self.channel}] " if self.channel is not None else ""
        return f"{where}{self.stage}: {self.duration_ms:.3f} ms"


@dataclass
class StageResult:
    """Host-side output of a stage plus the timings it produced."""
    data: Any # np.ndarray for most stages, HslPlanes for the colour conversion
    timings: List[StageTiming] = field(default_factory=list)

    @property
    def duration_ms(self) -> float:
        return sum(t.duration_ms for t in self.timings)


@dataclass
class ChannelStages:
    """Intermediates kept per channel for inspection and comparison."""
    channel: int
    histogram: np.ndarray
    cumulative: np.ndarray
    lookup_table: np.ndarray


@dataclass
class EqualisationResult:
    image: PixelBuffer
    timings: List[StageTiming] = field(default_factory=list)
    channels: List[ChannelStages] = field(default_factory=list)

    @property
    def total_ms(self) -> float:
        return sum(t.duration_ms for t in self.timings)

    def by_stage(self) -> Dict[str, float]:
        """Totals per stage over all channels; "stage: kernel" entries fold into their stage."""
        totals: Dict[str, float] = {}
        for t in self.timings:
            stage = t.stage.split(":")[0]
            totals[stage] = totals.get(stage, 0.0) + t.duration_ms
        return totals


@dataclass
class RunReport:
    """What a pipeline run hands back to its caller."""
    mode: str
    results: Dict[str, EqualisationResult] = field(default_factory=dict)
    outputs: Dict[str, str] = field(default_factory=dict)
    mismatched_pixels: int | None = None

    @property
    def speedup(self) -> float | None:
        serial = self.results.get("serial")
        parallel = self.results.get("parallel")
        if serial is None or parallel is None or parallel.total_ms == 0:
            return None
        return serial.total_ms / parallel.total_ms
