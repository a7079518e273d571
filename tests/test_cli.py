from pathlib import Path

import numpy as np
import pytest

from histeq.cli.equalise import EXIT_CONFIGURATION, EXIT_IO, EXIT_OK, build_parser, main
from histeq.models.pixel_buffer import PixelBuffer
from histeq.repositories.image_repository import ImageRepository


@pytest.fixture
def cli_env(monkeypatch):
    monkeypatch.setenv("HISTEQ_TORCH_DEVICE", "cpu")
    monkeypatch.setenv("HISTEQ_LOAD_TIMEOUT", "0")


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.mode == "comparison"
    assert args.repeat == 1
    assert args.bin_size is None


def test_comparison_run_writes_outputs(cli_env, tmp_path, rgb_image, capsys):
    source = ImageRepository.save(rgb_image, tmp_path / "photo.png")
    out_dir = tmp_path / "out"

    code = main(["-f", str(source), "-m", "comparison", "-b", "4", "--work-group-size", "8", "-o", str(out_dir)])

    assert code == EXIT_OK
    assert (out_dir / "photo_serial.png").is_file()
    assert (out_dir / "photo_parallel.png").is_file()
    assert "parallel" in capsys.readouterr().out


def test_bad_bin_size_exits_with_configuration_code(cli_env, tmp_path, grey_image):
    source = ImageRepository.save(grey_image, tmp_path / "grey.png")
    assert main(["-f", str(source), "-b", "0", "-o", str(tmp_path)]) == EXIT_CONFIGURATION


def test_missing_image_exits_with_io_code(cli_env, tmp_path):
    assert main(["-f", str(tmp_path / "missing.png"), "-o", str(tmp_path)]) == EXIT_IO


def test_list_torch_devices(cli_env, capsys):
    assert main(["-l", "--backend", "torch"]) == EXIT_OK
    assert "--torch-device cpu" in capsys.readouterr().out


def test_unknown_mode_is_an_argparse_error():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["-m", "fastest"])


def test_output_dir_flag_overrides_env(cli_env, monkeypatch, tmp_path, grey_image):
    monkeypatch.setenv("HISTEQ_OUTPUT_DIR", str(tmp_path / "from_env"))
    source = ImageRepository.save(grey_image, tmp_path / "g.png")

    assert main(["-f", str(source), "-m", "parallel", "-o", str(tmp_path / "from_flag")]) == EXIT_OK
    assert Path(tmp_path / "from_flag" / "g_parallel.png").is_file()
    assert not (tmp_path / "from_env").exists()


def test_work_group_of_one_exits_with_configuration_code(cli_env, tmp_path):
    deep = PixelBuffer.from_interleaved(np.arange(64, dtype=np.uint16).reshape(8, 8) * 1000)
    source = ImageRepository.save(deep, tmp_path / "deep.png")

    code = main(["-f", str(source), "-m", "parallel", "--work-group-size", "1", "-o", str(tmp_path)])

    assert code == EXIT_CONFIGURATION


def test_malformed_env_value_exits_with_configuration_code(cli_env, monkeypatch, tmp_path):
    monkeypatch.setenv("HISTEQ_BIN_SIZE", "wide")
    assert main(["-f", str(tmp_path / "any.png"), "-o", str(tmp_path)]) == EXIT_CONFIGURATION
