from pathlib import Path

import numpy as np
import pytest

from histeq.exceptions import ConfigurationError
from histeq.pipeline.equalise_image import count_mismatches, equalise_image
from histeq.repositories.image_repository import ImageRepository


@pytest.fixture
def rgb_file(tmp_path, rgb_image):
    return ImageRepository.save(rgb_image, tmp_path / "input.png")


@pytest.fixture
def grey_file(tmp_path, grey_image):
    return ImageRepository.save(grey_image, tmp_path / "grey.png")


def test_comparison_reports_identical_outputs(rgb_file, config, device):
    report = equalise_image(rgb_file, "comparison", config, device=device)

    assert set(report.results) == {"serial", "parallel"}
    assert report.mismatched_pixels == 0
    assert report.speedup is not None and report.speedup > 0


def test_outputs_are_saved_per_path(grey_file, config, device):
    report = equalise_image(grey_file, "comparison", config, device=device)

    assert set(report.outputs) == {"serial", "parallel"}
    for label, output in report.outputs.items():
        assert Path(output) == config.output_dir / f"grey_{label}.png"
        assert Path(output).is_file()

    saved = ImageRepository.load(report.outputs["parallel"], timeout=0)
    np.testing.assert_array_equal(saved.data, report.results["parallel"].image.data)


@pytest.mark.parametrize("mode, paths", [
    ("serial", {"serial"}),
    ("parallel", {"parallel"}),
    ("serial_hsl", {"serial"}),
    ("parallel_hsl", {"parallel"}),
])
def test_single_modes_run_one_path(rgb_file, config, device, mode, paths):
    report = equalise_image(rgb_file, mode, config, device=device, save=False)

    assert set(report.results) == paths
    assert report.mismatched_pixels is None
    assert report.outputs == {}


def test_hsl_comparison_stays_within_one_unit(rgb_file, config, device):
    report = equalise_image(rgb_file, "comparison_hsl", config, device=device, save=False)

    serial = report.results["serial"].image.data.astype(np.int64)
    parallel = report.results["parallel"].image.data.astype(np.int64)
    assert np.abs(serial - parallel).max() <= 1


def test_repeat_keeps_fastest_run(grey_file, config, device):
    report = equalise_image(grey_file, "comparison", config, device=device, repeat=3, save=False)
    assert report.mismatched_pixels == 0


def test_unknown_mode_is_rejected(grey_file, config, device):
    with pytest.raises(ConfigurationError):
        equalise_image(grey_file, "fastest", config, device=device)


def test_hsl_on_grey_image_is_rejected(grey_file, config, device):
    with pytest.raises(ConfigurationError):
        equalise_image(grey_file, "parallel_hsl", config, device=device)


def test_count_mismatches(grey_image):
    changed = grey_image.data.copy()
    changed[0, :3] ^= 1
    assert count_mismatches(grey_image, grey_image.with_data(changed)) == 3
    assert count_mismatches(grey_image, grey_image) == 0
