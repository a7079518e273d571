from __future__ import annotations
import logging

import numpy as np
import pyopencl as cl

from ..exceptions import DeviceError
from ..models.opencl_engine import OpenCLEngine
from .device_repository import AccessMode, DeviceBuffer, DeviceRepository, LaunchHandle
from .kernel_repository import KernelRepository

logger = logging.getLogger(__name__)

_MEM_FLAGS = {
    AccessMode.READ_ONLY: cl.mem_flags.READ_ONLY,
    AccessMode.WRITE_ONLY: cl.mem_flags.WRITE_ONLY,
    AccessMode.READ_WRITE: cl.mem_flags.READ_WRITE,
}


def _device_dtype(dtype: np.dtype) -> np.dtype:
    # Kernels see every integer buffer as uint
    if dtype.kind in "ui":
        return np.dtype(np.uint32)
    if dtype == np.float32:
        return np.dtype(np.float32)
    raise DeviceError(f"Unsupported buffer type {dtype}")


class OpenCLDeviceRepository(DeviceRepository):
    """
    Buffers and launches on an OpenCL device through pyopencl.
    """

    def __init__(self, platform_id: int = 0, device_id: int = 0, profiling: bool = True,
                 kernel_repository: KernelRepository | None = None):
        self.kernels = kernel_repository or KernelRepository()
        self.engine = OpenCLEngine(self.kernels.opencl_source(), platform_id, device_id, profiling)
        self.name = self.engine.name

    @property
    def queue(self) -> cl.CommandQueue:
        return self.engine.queue

    def allocate(self, count: int, dtype, access: AccessMode = AccessMode.READ_WRITE) -> DeviceBuffer:
        dtype = _device_dtype(np.dtype(dtype))
        try:
            handle = cl.Buffer(self.engine.context, _MEM_FLAGS[access], size=max(count * dtype.itemsize, 1))
        except cl.Error as err:
            logger.error(f"Allocation of {count} x {dtype} failed on {self.name}: {err}")
            raise DeviceError(f"Could not allocate {count} elements on {self.name}", error_code=err.code) from err
        return DeviceBuffer(handle=handle, count=count, dtype=dtype, access=access)

    def write(self, buffer: DeviceBuffer, host: np.ndarray) -> None:
        host = np.ascontiguousarray(np.ravel(host), dtype=buffer.dtype)
        if host.size > buffer.count:
            raise ValueError(f"Cannot write {host.size} elements into a buffer of {buffer.count}")
        cl.enqueue_copy(self.queue, buffer.handle, host, is_blocking=True)

    def fill(self, buffer: DeviceBuffer, value: int = 0) -> None:
        cl.enqueue_fill_buffer(self.queue, buffer.handle, buffer.dtype.type(value), 0, buffer.nbytes)

    def read(self, buffer: DeviceBuffer, count: int | None = None) -> np.ndarray:
        out = np.empty(buffer.count if count is None else count, dtype=buffer.dtype)
        cl.enqueue_copy(self.queue, out, buffer.handle, is_blocking=True)
        return out

    def local_memory(self, count: int, dtype=np.uint32) -> cl.LocalMemory:
        return cl.LocalMemory(count * np.dtype(dtype).itemsize)

    def launch(self, kernel: str, global_size: int, local_size: int | None, *args,
               global_offset: int = 0) -> LaunchHandle:
        k = self.engine.kernel(kernel)
        cl_args = [a.handle if isinstance(a, DeviceBuffer) else a for a in args]
        logger.debug(f"launch {kernel} global={global_size} local={local_size} offset={global_offset}")
        try:
            k.set_args(*cl_args)
            event = cl.enqueue_nd_range_kernel(
                self.queue,
                k,
                (global_size,),
                (local_size,) if local_size is not None else None,
                global_work_offset=(global_offset,) if global_offset else None,
            )
        except cl.Error as err:
            logger.error(f"Kernel '{kernel}' failed to launch on {self.name}: {err}")
            raise DeviceError(f"Kernel '{kernel}' failed to launch", error_code=err.code) from err
        return LaunchHandle(kernel=kernel, event=event)

    def elapsed_ms(self, handle: LaunchHandle) -> float:
        handle.event.wait()
        if not self.engine.profiling:
            return 0.0
        return (handle.event.profile.end - handle.event.profile.start) * 1e-6

    def preferred_work_group_size(self, kernel: str) -> int:
        return self.engine.kernel(kernel).get_work_group_info(
            cl.kernel_work_group_info.PREFERRED_WORK_GROUP_SIZE_MULTIPLE, self.engine.device
        )

    def max_work_group_size(self, kernel: str) -> int:
        return self.engine.kernel(kernel).get_work_group_info(
            cl.kernel_work_group_info.WORK_GROUP_SIZE, self.engine.device
        )

    def describe(self) -> str:
        return f"{self.name} (OpenCL)"
