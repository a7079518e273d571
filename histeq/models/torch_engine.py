# models/torch_engine.py
from __future__ import annotations
import logging
import threading
from typing import Dict

import torch

logger = logging.getLogger(__name__)


class TorchEngine:
    """
    One engine per torch device, shared across services.
    • Resolves "auto" to CUDA, then MPS, then CPU.
    • Knows the execution-group widths kernels should use on that device.
    """

    _instances: Dict[str, "TorchEngine"] = {}
    _lock = threading.RLock()

    # ───────────────────────── per-device singleton ctor
    def __new__(cls, device: str = "auto"):
        resolved = cls.resolve_device(device)
        with cls._lock:
            if resolved not in cls._instances:
                instance = super().__new__(cls)
                instance._init(resolved)
                cls._instances[resolved] = instance
            return cls._instances[resolved]

    @staticmethod
    def resolve_device(device: str) -> str:
        if device != "auto":
            return device
        if torch.cuda.is_available():
            return "cuda"
        if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
            return "mps"
        return "cpu"

    # ───────────────────────── actual init
    def _init(self, device: str):
        self.device = torch.device(device)
        if self.device.type == "cuda":
            props = torch.cuda.get_device_properties(self.device)
            self.name = props.name
            # Warp width is the natural scan block on NVIDIA hardware
            self.preferred_group_width = 32
            self.max_group_width = 1024
        else:
            self.name = f"torch {self.device.type}"
            self.preferred_group_width = 64
            self.max_group_width = 1024
        logger.info(f"TorchEngine ready on {self.name} ({self.device})")

    @property
    def is_cuda(self) -> bool:
        return self.device.type == "cuda"

    def synchronize(self) -> None:
        if self.is_cuda:
            torch.cuda.synchronize(self.device)
        elif self.device.type == "mps":
            torch.mps.synchronize()
