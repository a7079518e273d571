"""
Torch renditions of the kernels in histeq.cl.

Each kernel receives the launch geometry and the same argument list the
OpenCL kernel takes. Work-items are evaluated together as tensor ops; where a
kernel is defined per work-group, the data is viewed as (groups, width) so
every group runs independently. Sequential torch ops on one stream give the
barrier between rounds.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict

import torch


@dataclass(frozen=True)
class NDRange:
    global_size: int
    local_size: int | None = None
    global_offset: int = 0

    @property
    def ids(self) -> slice:
        return slice(self.global_offset, self.global_offset + self.global_size)


@dataclass(frozen=True)
class LocalMemory:
    """Per-group scratch request, sized like cl.LocalMemory."""
    count: int


TorchKernel = Callable[..., None]


def _double_buffered_scan(blocks: torch.Tensor, scratch_a: LocalMemory, scratch_b: LocalMemory) -> torch.Tensor:
    # blocks: (groups, width); each row is one work-group's slice of local memory
    width = blocks.shape[1]
    if scratch_a.count < width or scratch_b.count < width:
        raise ValueError(f"Local scratch of {min(scratch_a.count, scratch_b.count)} is smaller than group width {width}")
    a = blocks.clone()
    b = torch.empty_like(a)
    stride = 1
    while stride < width:
        b[:, :stride] = a[:, :stride]
        b[:, stride:] = a[:, stride:] + a[:, :-stride]
        a, b = b, a
        stride *= 2
    return a


def histogram_atomic(nd: NDRange, pixels: torch.Tensor, histogram: torch.Tensor, bin_size: int) -> None:
    bins = pixels[nd.ids] // int(bin_size)
    # index_add_ is the atomic scatter-add on CUDA
    histogram.index_add_(0, bins, torch.ones_like(bins))


def scan_hillis_steele_local(nd: NDRange, data_in: torch.Tensor, data_out: torch.Tensor,
                             scratch_a: LocalMemory, scratch_b: LocalMemory) -> None:
    blocks = data_in[nd.ids].view(-1, nd.local_size)
    data_out[nd.ids] = _double_buffered_scan(blocks, scratch_a, scratch_b).reshape(-1)


def block_sum(nd: NDRange, scanned: torch.Tensor, block_sums: torch.Tensor, local_size: int) -> None:
    width = int(local_size)
    ends = torch.arange(nd.global_offset, nd.global_offset + nd.global_size, device=scanned.device)
    block_sums[nd.ids] = scanned[(ends + 1) * width - 1]


def scan_hillis_steele_global(nd: NDRange, data: torch.Tensor,
                              scratch_a: LocalMemory, scratch_b: LocalMemory) -> None:
    block = data[: nd.global_size].view(1, -1)
    data[: nd.global_size] = _double_buffered_scan(block, scratch_a, scratch_b).reshape(-1)


def scan_add_adjust(nd: NDRange, scanned: torch.Tensor, block_scan: torch.Tensor) -> None:
    width = nd.local_size
    first_group = nd.global_offset // width
    groups = nd.global_size // width
    carries = block_scan[first_group - 1: first_group - 1 + groups]
    scanned[nd.ids] += carries.repeat_interleave(width)


def normalise_to_lut(nd: NDRange, cumulative: torch.Tensor, total: int,
                     lut: torch.Tensor, max_value: int) -> None:
    total = int(total)
    lut[nd.ids] = (cumulative[nd.ids] * int(max_value) + total // 2) // total


def backprojection(nd: NDRange, pixels: torch.Tensor, lut: torch.Tensor,
                   output: torch.Tensor, bin_size: int) -> None:
    output[nd.ids] = lut[pixels[nd.ids] // int(bin_size)]


def rgb_to_hsl(nd: NDRange, rgb: torch.Tensor, hsl: torch.Tensor, levels: torch.Tensor,
               max_value: int, pixel_count: int) -> None:
    n = int(pixel_count)
    ids = nd.ids
    r, g, b = rgb[ids], rgb[n:][ids], rgb[2 * n:][ids]

    hi = torch.maximum(torch.maximum(r, g), b)
    lo = torch.minimum(torch.minimum(r, g), b)
    chroma = (hi - lo).to(torch.float32)
    grey = hi == lo
    safe_chroma = torch.where(grey, torch.ones_like(chroma), chroma)

    top = float(max_value)
    span = top - torch.abs((hi + lo).to(torch.float32) - top)
    saturation = torch.where(grey, torch.zeros_like(chroma), chroma / torch.where(grey, torch.ones_like(span), span))

    rf, gf, bf = r.to(torch.float32), g.to(torch.float32), b.to(torch.float32)
    hue = torch.where(
        hi == r, (gf - bf) / safe_chroma,
        torch.where(hi == g, (bf - rf) / safe_chroma + 2.0, (rf - gf) / safe_chroma + 4.0),
    )
    hue = torch.where(hue < 0, hue + 6.0, hue) / 6.0
    hue = torch.where(grey, torch.zeros_like(hue), hue)

    hsl[ids] = hue
    hsl[n:][ids] = saturation
    hsl[2 * n:][ids] = 0.5 * (hi + lo).to(torch.float32)
    levels[ids] = (hi + lo + 1) // 2


def hsl_to_rgb(nd: NDRange, hsl: torch.Tensor, lightness: torch.Tensor, rgb: torch.Tensor,
               max_value: int, pixel_count: int) -> None:
    n = int(pixel_count)
    ids = nd.ids
    top = float(max_value)
    h = hsl[ids] * 6.0
    s = hsl[n:][ids]
    light = lightness[ids]

    c = (top - torch.abs(2.0 * light - top)) * s
    x = c * (1.0 - torch.abs(torch.fmod(h, 2.0) - 1.0))
    m = light - 0.5 * c
    zero = torch.zeros_like(c)
    sector = torch.clamp(h.to(torch.int64), max=5)

    r1 = torch.where((sector == 0) | (sector == 5), c, torch.where((sector == 1) | (sector == 4), x, zero))
    g1 = torch.where((sector == 1) | (sector == 2), c, torch.where((sector == 0) | (sector == 3), x, zero))
    b1 = torch.where((sector == 3) | (sector == 4), c, torch.where((sector == 2) | (sector == 5), x, zero))

    for k, v in enumerate((r1, g1, b1)):
        rgb[k * n:][ids] = torch.clamp(torch.floor(v + m + 0.5), 0.0, top).to(rgb.dtype)


TORCH_KERNELS: Dict[str, TorchKernel] = {
    "histogramAtomic": histogram_atomic,
    "scanHillisSteeleLocal": scan_hillis_steele_local,
    "blockSum": block_sum,
    "scanHillisSteeleGlobal": scan_hillis_steele_global,
    "scanAddAdjust": scan_add_adjust,
    "normaliseToLut": normalise_to_lut,
    "backprojection": backprojection,
    "rgbToHsl": rgb_to_hsl,
    "hslToRgb": hsl_to_rgb,
}
