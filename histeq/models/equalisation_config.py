from __future__ import annotations
from dataclasses import dataclass, replace
from pathlib import Path
import os

from dotenv import load_dotenv

from ..exceptions import ConfigurationError

# Load environment variables
load_dotenv()

BACKENDS = ("torch", "opencl")
TORCH_DEVICES = ("auto", "cpu", "cuda", "mps")

# A scan block narrower than this never shrinks the block totals
MIN_GROUP_WIDTH = 2

# Device counters are 32-bit unsigned on OpenCL
MAX_DEVICE_COUNT = 2**32 - 1


def _optional_int(value: str | None) -> int | None:
    if value is None or value.strip() == "":
        return None
    return int(value)


def number_of_bins(max_value: int, bin_size: int) -> int:
    """Bins needed so that bin_size * bins >= max_value + 1."""
    return -(-(max_value + 1) // bin_size)


def check_bin_size(bin_size: int, max_value: int) -> None:
    if bin_size < 1:
        raise ConfigurationError(f"Bin size must be at least 1, got {bin_size}")
    if bin_size > max_value + 1:
        raise ConfigurationError(f"Bin size {bin_size} exceeds the number of pixel values ({max_value + 1})")


def check_pixel_count(pixel_count: int) -> None:
    if pixel_count < 1:
        raise ConfigurationError("Image has no pixels")
    if pixel_count > MAX_DEVICE_COUNT:
        raise ConfigurationError(
            f"{pixel_count} pixels overflow the 32-bit histogram counters (max {MAX_DEVICE_COUNT})"
        )


@dataclass(frozen=True)
class EqualisationConfig:
    """
    Everything a run needs, passed explicitly into the services.
    Values left out fall back to HISTEQ_* environment variables.
    """
    bin_size: int = 1
    backend: str = "torch"
    torch_device: str = "auto"
    platform_id: int = 0
    device_id: int = 0
    work_group_size: int | None = None
    profiling: bool = True
    output_dir: Path = Path("data/equalised")
    load_timeout: int = 5

    def __post_init__(self):
        if self.backend not in BACKENDS:
            raise ConfigurationError(f"Unknown backend '{self.backend}'; choose one of {', '.join(BACKENDS)}")
        if self.torch_device not in TORCH_DEVICES:
            raise ConfigurationError(
                f"Unknown torch device '{self.torch_device}'; choose one of {', '.join(TORCH_DEVICES)}"
            )
        if self.work_group_size is not None and self.work_group_size < MIN_GROUP_WIDTH:
            raise ConfigurationError(
                f"Work-group size must be at least {MIN_GROUP_WIDTH}, got {self.work_group_size}"
            )

    @classmethod
    def from_env(cls, **overrides) -> EqualisationConfig:
        try:
            config = cls(
                bin_size=int(os.getenv("HISTEQ_BIN_SIZE", "1")),
                backend=os.getenv("HISTEQ_BACKEND", "torch"),
                torch_device=os.getenv("HISTEQ_TORCH_DEVICE", "auto"),
                platform_id=int(os.getenv("HISTEQ_PLATFORM_ID", "0")),
                device_id=int(os.getenv("HISTEQ_DEVICE_ID", "0")),
                work_group_size=_optional_int(os.getenv("HISTEQ_WORK_GROUP_SIZE")),
                profiling=os.getenv("HISTEQ_PROFILING", "1").lower() not in ("0", "false", "no"),
                output_dir=Path(os.getenv("HISTEQ_OUTPUT_DIR", "data/equalised")),
                load_timeout=int(os.getenv("HISTEQ_LOAD_TIMEOUT", "5")),
            )
        except ValueError as err:
            raise ConfigurationError(f"Malformed HISTEQ_* environment value: {err}") from err
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(config, **overrides) if overrides else config

    def validate(self, max_value: int) -> None:
        """Reject bin sizes that cannot cover [0, max_value]."""
        check_bin_size(self.bin_size, max_value)

