from __future__ import annotations
from pathlib import Path
from typing import Tuple

from ..exceptions import DeviceError
from ..kernels.torch_kernels import TORCH_KERNELS, TorchKernel

KERNEL_NAMES: Tuple[str, ...] = (
    "histogramAtomic",
    "scanHillisSteeleLocal",
    "blockSum",
    "scanHillisSteeleGlobal",
    "scanAddAdjust",
    "normaliseToLut",
    "rgbToHsl",
    "hslToRgb",
    "backprojection",
)


class KernelRepository:
    """
    Supplies the named device programs for each backend.
    """
    _SOURCE_PATH = Path(__file__).resolve().parent.parent / "kernels" / "histeq.cl"

    def __init__(self, source_path: str | Path | None = None):
        self.source_path = Path(source_path) if source_path is not None else self._SOURCE_PATH

    def opencl_source(self) -> str:
        if not self.source_path.is_file():
            raise DeviceError(f"Kernel source not found: {self.source_path}")
        return self.source_path.read_text(encoding="utf-8")

    @staticmethod
    def torch_kernel(name: str) -> TorchKernel:
        if name not in TORCH_KERNELS:
            raise DeviceError(f"Unknown kernel '{name}'")
        return TORCH_KERNELS[name]
