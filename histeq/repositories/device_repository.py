from __future__ import annotations
import abc
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

from ..exceptions import DeviceError
from ..models.equalisation_config import EqualisationConfig

logger = logging.getLogger(__name__)


class AccessMode(Enum):
    READ_ONLY = "read_only"
    WRITE_ONLY = "write_only"
    READ_WRITE = "read_write"


@dataclass
class DeviceBuffer:
    """A device allocation of `count` elements of host type `dtype`."""
    handle: Any
    count: int
    dtype: np.dtype
    access: AccessMode

    @property
    def nbytes(self) -> int:
        return self.count * self.dtype.itemsize


@dataclass
class LaunchHandle:
    """Completion handle for one kernel launch."""
    kernel: str
    event: Any


class DeviceRepository(abc.ABC):
    """
    The device context/queue the stage services talk to.
    All operations are issued on one in-order queue, so a stage's writes are
    complete before the next stage's kernel reads them.
    """

    name: str = "device"

    @abc.abstractmethod
    def allocate(self, count: int, dtype, access: AccessMode = AccessMode.READ_WRITE) -> DeviceBuffer:
        pass

    @abc.abstractmethod
    def write(self, buffer: DeviceBuffer, host: np.ndarray) -> None:
        pass

    @abc.abstractmethod
    def fill(self, buffer: DeviceBuffer, value: int = 0) -> None:
        pass

    @abc.abstractmethod
    def read(self, buffer: DeviceBuffer, count: int | None = None) -> np.ndarray:
        """Blocking read-back of the first `count` elements (all by default)."""
        pass

    @abc.abstractmethod
    def local_memory(self, count: int, dtype=np.uint32) -> Any:
        pass

    @abc.abstractmethod
    def launch(self, kernel: str, global_size: int, local_size: int | None, *args,
               global_offset: int = 0) -> LaunchHandle:
        pass

    @abc.abstractmethod
    def elapsed_ms(self, handle: LaunchHandle) -> float:
        """Kernel execution time; blocks until the launch has completed."""
        pass

    @abc.abstractmethod
    def preferred_work_group_size(self, kernel: str) -> int:
        pass

    @abc.abstractmethod
    def max_work_group_size(self, kernel: str) -> int:
        pass

    def upload(self, host: np.ndarray, dtype=None, access: AccessMode = AccessMode.READ_ONLY) -> DeviceBuffer:
        """Allocate a buffer sized for `host` and copy it over."""
        dtype = np.dtype(dtype or host.dtype)
        buffer = self.allocate(host.size, dtype, access)
        self.write(buffer, np.ascontiguousarray(host, dtype=dtype))
        return buffer

    def describe(self) -> str:
        return self.name


def create_device_repository(config: EqualisationConfig) -> DeviceRepository:
    """Build the backend named in *config*."""
    if config.backend == "opencl":
        # pyopencl is an optional extra; only import it when asked for
        try:
            from .opencl_device_repository import OpenCLDeviceRepository
        except ImportError as err:
            raise DeviceError("The OpenCL backend needs pyopencl (pip install parallel-histeq[opencl])") from err
        repo = OpenCLDeviceRepository(config.platform_id, config.device_id, profiling=config.profiling)
    else:
        from .torch_device_repository import TorchDeviceRepository
        repo = TorchDeviceRepository(config.torch_device)
    logger.info(f"Running on {repo.describe()}")
    return repo
