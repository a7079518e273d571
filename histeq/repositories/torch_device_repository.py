from __future__ import annotations
import logging
import time

import numpy as np
import torch

from ..exceptions import DeviceError
from ..kernels.torch_kernels import LocalMemory, NDRange
from ..models.torch_engine import TorchEngine
from .device_repository import AccessMode, DeviceBuffer, DeviceRepository, LaunchHandle
from .kernel_repository import KernelRepository

logger = logging.getLogger(__name__)


def _torch_dtype(dtype: np.dtype) -> torch.dtype:
    # Unsigned counters and samples widen to int64 so indexing ops accept them
    if dtype.kind in "ui":
        return torch.int64
    if dtype == np.float32:
        return torch.float32
    raise DeviceError(f"Unsupported buffer type {dtype}")


class TorchDeviceRepository(DeviceRepository):
    """
    Device buffers are flat torch tensors; kernels are looked up by name in
    the torch kernel table and run on the engine's device.
    """

    def __init__(self, device: str = "auto", kernel_repository: KernelRepository | None = None):
        self.engine = TorchEngine(device)
        self.kernels = kernel_repository or KernelRepository()
        self.name = self.engine.name

    def allocate(self, count: int, dtype, access: AccessMode = AccessMode.READ_WRITE) -> DeviceBuffer:
        dtype = np.dtype(dtype)
        try:
            tensor = torch.zeros(count, dtype=_torch_dtype(dtype), device=self.engine.device)
        except RuntimeError as err:
            logger.error(f"Allocation of {count} x {dtype} failed on {self.name}: {err}")
            raise DeviceError(f"Could not allocate {count} elements on {self.name}") from err
        return DeviceBuffer(handle=tensor, count=count, dtype=dtype, access=access)

    def write(self, buffer: DeviceBuffer, host: np.ndarray) -> None:
        host = np.ravel(host)
        if host.size > buffer.count:
            raise ValueError(f"Cannot write {host.size} elements into a buffer of {buffer.count}")
        tensor = buffer.handle
        staged = torch.from_numpy(np.ascontiguousarray(host, dtype=np.int64 if tensor.dtype == torch.int64 else np.float32))
        tensor[: host.size].copy_(staged)

    def fill(self, buffer: DeviceBuffer, value: int = 0) -> None:
        buffer.handle.fill_(value)

    def read(self, buffer: DeviceBuffer, count: int | None = None) -> np.ndarray:
        count = buffer.count if count is None else count
        return buffer.handle[:count].cpu().numpy().astype(buffer.dtype)

    def local_memory(self, count: int, dtype=np.uint32) -> LocalMemory:
        return LocalMemory(count)

    def launch(self, kernel: str, global_size: int, local_size: int | None, *args,
               global_offset: int = 0) -> LaunchHandle:
        fn = self.kernels.torch_kernel(kernel)
        if global_size < 1:
            raise DeviceError(f"Kernel '{kernel}' launched with empty range")
        if local_size is not None:
            if local_size > self.engine.max_group_width:
                raise DeviceError(f"Work-group width {local_size} exceeds {self.engine.max_group_width}",
                                  error_code="INVALID_WORK_GROUP_SIZE")
            if global_size % local_size or global_offset % local_size:
                raise DeviceError(f"Range {global_size} (offset {global_offset}) is not a multiple of {local_size}",
                                  error_code="INVALID_WORK_GROUP_SIZE")

        nd = NDRange(global_size=global_size, local_size=local_size, global_offset=global_offset)
        device_args = [a.handle if isinstance(a, DeviceBuffer) else a for a in args]
        logger.debug(f"launch {kernel} global={global_size} local={local_size} offset={global_offset}")

        try:
            if self.engine.is_cuda:
                start = torch.cuda.Event(enable_timing=True)
                end = torch.cuda.Event(enable_timing=True)
                start.record()
                fn(nd, *device_args)
                end.record()
                event = (start, end)
            else:
                self.engine.synchronize()
                began = time.perf_counter()
                fn(nd, *device_args)
                self.engine.synchronize()
                event = (time.perf_counter() - began) * 1000.0
        except (RuntimeError, IndexError, ValueError) as err:
            logger.error(f"Kernel '{kernel}' failed on {self.name}: {err}")
            raise DeviceError(f"Kernel '{kernel}' failed") from err
        return LaunchHandle(kernel=kernel, event=event)

    def elapsed_ms(self, handle: LaunchHandle) -> float:
        if isinstance(handle.event, tuple):
            start, end = handle.event
            end.synchronize()
            return float(start.elapsed_time(end))
        return float(handle.event)

    def preferred_work_group_size(self, kernel: str) -> int:
        return self.engine.preferred_group_width

    def max_work_group_size(self, kernel: str) -> int:
        return self.engine.max_group_width

    def describe(self) -> str:
        return f"{self.name} (torch {torch.__version__})"
