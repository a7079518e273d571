from __future__ import annotations
from pathlib import Path
from typing import Union
import logging
import signal

import cv2
import numpy as np
from PIL import Image as PILImage

from ..models.pixel_buffer import PixelBuffer

logger = logging.getLogger(__name__)


class ImageRepository:
    """
    Handles file I/O for PixelBuffer entities. 8/16-bit grey, RGB and RGBA
    files are supported; alpha is dropped on load.
    """

    @staticmethod
    def load(path: Union[str, Path], timeout: int = 5) -> PixelBuffer:
        path = Path(path)

        # ─── timeout wrapper (5 s default) ────────────────────────────────
        def _handler(signum, frame):
            raise TimeoutError(f"cv2.imread timed-out after {timeout}s: {path}")

        use_alarm = timeout > 0 and hasattr(signal, "SIGALRM")
        if use_alarm:
            signal.signal(signal.SIGALRM, _handler)
            signal.alarm(timeout)
        try:
            arr = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        finally:
            if use_alarm:
                signal.alarm(0)  # always disarm
        # ──────────────────────────────────────────────────────────────────

        if arr is None:
            raise FileNotFoundError(f"Image not found or unreadable: {path}")

        if arr.ndim == 3 and arr.shape[2] == 4:
            logger.info(f"Dropping alpha channel of {path.name}")
            arr = cv2.cvtColor(arr, cv2.COLOR_BGRA2RGB)
        elif arr.ndim == 3 and arr.shape[2] == 3:
            arr = cv2.cvtColor(arr, cv2.COLOR_BGR2RGB)

        if arr.dtype not in (np.uint8, np.uint16):
            raise ValueError(f"Unsupported sample type {arr.dtype} in {path}")

        buffer = PixelBuffer.from_interleaved(arr, path=path)
        logger.info(
            f"Loaded {path.name}: {buffer.width}x{buffer.height}, {buffer.channels} channel(s), "
            f"{buffer.bit_depth}-bit"
        )
        return buffer

    @staticmethod
    def save(buffer: PixelBuffer, path: Union[str, Path, None] = None) -> Path:
        path = Path(path) if path is not None else buffer.path
        if path is None:
            raise ValueError("No path given and the buffer has no source path")
        path.parent.mkdir(parents=True, exist_ok=True)

        arr = buffer.to_interleaved()
        if buffer.channels == 3:
            arr = cv2.cvtColor(arr, cv2.COLOR_RGB2BGR)
        if not cv2.imwrite(str(path), arr):
            raise OSError(f"Could not write image: {path}")
        logger.info(f"Saved {path}")
        return path

    @staticmethod
    def to_display(buffer: PixelBuffer) -> PILImage.Image:
        """8-bit Pillow image; 16-bit samples are scaled down for display only."""
        arr = buffer.to_interleaved()
        if buffer.bit_depth == 16:
            arr = (arr >> 8).astype(np.uint8)
        return PILImage.fromarray(arr)

    def show(self, buffer: PixelBuffer, title: str | None = None) -> None:
        self.to_display(buffer).show(title=title)
