# models/opencl_engine.py
"""
Wrapper around a pyopencl context, profiling queue and the built kernel program.

• Builds the program once per (platform, device) pair.
• Surfaces the build log when compilation fails.
"""
from __future__ import annotations
import logging
import threading
from typing import Dict, List, Tuple

import pyopencl as cl

from ..exceptions import DeviceError

logger = logging.getLogger(__name__)


def list_devices() -> List[Tuple[int, int, str, str]]:
    """(platform_id, device_id, platform name, device name) for every visible device."""
    found = []
    for p_id, platform in enumerate(cl.get_platforms()):
        for d_id, device in enumerate(platform.get_devices()):
            found.append((p_id, d_id, platform.name.strip(), device.name.strip()))
    return found


class OpenCLEngine:
    _instances: Dict[Tuple[int, int, bool], "OpenCLEngine"] = {}
    _lock = threading.RLock()

    def __new__(cls, source: str, platform_id: int = 0, device_id: int = 0, profiling: bool = True):
        key = (platform_id, device_id, profiling)
        with cls._lock:
            if key not in cls._instances:
                instance = super().__new__(cls)
                instance._init(source, platform_id, device_id, profiling)
                cls._instances[key] = instance
            return cls._instances[key]

    def _init(self, source: str, platform_id: int, device_id: int, profiling: bool):
        try:
            platform = cl.get_platforms()[platform_id]
            self.device = platform.get_devices()[device_id]
        except IndexError as err:
            raise DeviceError(f"No OpenCL device at platform {platform_id}, device {device_id}") from err
        except cl.Error as err:
            logger.error(f"OpenCL platform query failed: {err}")
            raise DeviceError("OpenCL platform query failed", error_code=err.code) from err

        self.name = f"{platform.name.strip()}, {self.device.name.strip()}"
        self.context = cl.Context([self.device])
        props = cl.command_queue_properties.PROFILING_ENABLE if profiling else 0
        self.queue = cl.CommandQueue(self.context, properties=props)
        self.profiling = profiling

        self.program = cl.Program(self.context, source)
        try:
            self.program.build()
        except cl.Error as err:
            build_log = self.program.get_build_info(self.device, cl.program_build_info.LOG)
            logger.error(f"Kernel build failed on {self.name}:\n{build_log}")
            raise DeviceError("Kernel program failed to build", build_log=build_log) from err

        self._kernels: Dict[str, cl.Kernel] = {}
        logger.info(f"OpenCLEngine ready on {self.name}")

    def kernel(self, name: str) -> cl.Kernel:
        if name not in self._kernels:
            try:
                self._kernels[name] = cl.Kernel(self.program, name)
            except cl.Error as err:
                raise DeviceError(f"Kernel '{name}' is not in the program", error_code=err.code) from err
        return self._kernels[name]
