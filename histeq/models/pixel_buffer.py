from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
import numpy as np

SUPPORTED_DTYPES = {np.dtype(np.uint8): 8, np.dtype(np.uint16): 16}


@dataclass(eq=False)
class PixelBuffer:
    """
    Raster samples in channel-major order: all of channel 0, then channel 1, ...
    `data` has shape (channels, height * width) and is read-only once built.
    """
    data: np.ndarray # Shape (C, H*W), dtype uint8 or uint16.
    width: int
    height: int
    path: Path | None = field(default=None, compare=False) # Source of the image.

    def __post_init__(self):
        if self.data.dtype not in SUPPORTED_DTYPES:
            raise ValueError(f"Unsupported sample type {self.data.dtype}; expected uint8 or uint16")
        if self.data.ndim != 2 or self.data.shape[1] != self.width * self.height:
            raise ValueError(
                f"Pixel data of shape {self.data.shape} does not match a {self.width}x{self.height} image"
            )
        self.data = np.ascontiguousarray(self.data)
        self.data.setflags(write=False)

    @classmethod
    def from_interleaved(cls, pixels: np.ndarray, path: str | Path | None = None) -> PixelBuffer:
        """Build from an (H, W) or (H, W, C) array as image libraries hand them out."""
        if pixels.ndim == 2:
            pixels = pixels[:, :, None]
        if pixels.ndim != 3:
            raise ValueError(f"Expected an (H, W) or (H, W, C) array, got shape {pixels.shape}")
        height, width, channels = pixels.shape
        data = pixels.reshape(height * width, channels).T.copy()
        return cls(data=data, width=width, height=height, path=Path(path) if path is not None else None)

    def to_interleaved(self) -> np.ndarray:
        """(H, W) for single channel images, (H, W, C) otherwise."""
        pixels = self.data.T.reshape(self.height, self.width, self.channels)
        return np.ascontiguousarray(pixels[:, :, 0] if self.channels == 1 else pixels)

    def channel(self, index: int) -> np.ndarray:
        return self.data[index]

    def with_data(self, data: np.ndarray, path: str | Path | None = None) -> PixelBuffer:
        """Same geometry, new samples (cast to this buffer's depth)."""
        return PixelBuffer(
            data=np.asarray(data).astype(self.dtype, copy=False).reshape(self.data.shape),
            width=self.width,
            height=self.height,
            path=Path(path) if path is not None else self.path,
        )

    @property
    def channels(self) -> int:
        return self.data.shape[0]

    @property
    def pixel_count(self) -> int:
        return self.data.shape[1]

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    @property
    def bit_depth(self) -> int:
        return SUPPORTED_DTYPES[self.data.dtype]

    @property
    def max_value(self) -> int:
        return (1 << self.bit_depth) - 1
