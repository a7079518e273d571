from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Tuple

# --- Centralized Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s',
    datefmt='%H:%M:%S'
)
# ───────────────────────────────────────────

from ..exceptions import ConfigurationError, DeviceError
from ..models.equalisation_config import BACKENDS, TORCH_DEVICES, EqualisationConfig
from ..pipeline.equalise_image import MODES, equalise_image
from ..repositories.image_repository import ImageRepository

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIGURATION = 1
EXIT_DEVICE = 2
EXIT_IO = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="histeq",
        description="Histogram equalisation of 8/16-bit grey, RGB and HSL images on a parallel device.",
    )
    parser.add_argument("-f", "--file", default="data/test.png", help="image to equalise")
    parser.add_argument("-m", "--mode", choices=MODES, default="comparison")
    parser.add_argument("-b", "--bin-size", type=int, help="pixel values per histogram bin")
    parser.add_argument("--backend", choices=BACKENDS)
    parser.add_argument("--torch-device", choices=TORCH_DEVICES)
    parser.add_argument("-p", "--platform", type=int, help="OpenCL platform index")
    parser.add_argument("-d", "--device", type=int, help="OpenCL device index")
    parser.add_argument("--work-group-size", type=int, help="scan work-group width (default: device preferred)")
    parser.add_argument("-o", "--output-dir", help="where equalised images are written")
    parser.add_argument("-r", "--repeat", type=int, default=1, help="runs per side in comparison modes")
    parser.add_argument("-l", "--list", action="store_true", help="list available devices and exit")
    parser.add_argument("--show", action="store_true", help="display input and outputs")
    parser.add_argument("-v", "--verbose", action="store_true", help="log every kernel launch")
    return parser


def list_devices(backend: str) -> List[Tuple[str, str]]:
    """(identifier, description) for every device the backend can run on."""
    if backend == "opencl":
        try:
            from ..models.opencl_engine import list_devices as list_opencl_devices
        except ImportError as err:
            raise DeviceError("The OpenCL backend needs pyopencl (pip install parallel-histeq[opencl])") from err
        return [(f"-p {p} -d {d}", f"{platform}, {device}") for p, d, platform, device in list_opencl_devices()]

    import torch
    found = [("--torch-device cpu", "CPU")]
    for i in range(torch.cuda.device_count()):
        found.append((f"--torch-device cuda (index {i})", torch.cuda.get_device_name(i)))
    if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        found.append(("--torch-device mps", "Apple Metal"))
    return found


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = EqualisationConfig.from_env(
            bin_size=args.bin_size,
            backend=args.backend,
            torch_device=args.torch_device,
            platform_id=args.platform,
            device_id=args.device,
            work_group_size=args.work_group_size,
            output_dir=Path(args.output_dir) if args.output_dir else None,
        )
        if args.list:
            for ident, description in list_devices(config.backend):
                print(f"{ident:<32} {description}")
            return EXIT_OK

        report = equalise_image(args.file, args.mode, config, repeat=args.repeat)
    except ConfigurationError as err:
        logger.error(f"Configuration error: {err}")
        return EXIT_CONFIGURATION
    except DeviceError as err:
        logger.error(f"Device error: {err}")
        if err.build_log:
            logger.error(f"Build log:\n{err.build_log}")
        return EXIT_DEVICE
    except (OSError, ValueError) as err:
        logger.error(f"I/O error: {err}")
        return EXIT_IO

    for label, output in report.outputs.items():
        print(f"{label:<10} -> {output}")

    if args.show:
        images = ImageRepository()
        images.show(images.load(args.file, timeout=config.load_timeout), title="input")
        for label, result in report.results.items():
            images.show(result.image, title=label)

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
