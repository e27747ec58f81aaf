"""Tests for main CLI: parse args, build config, exit codes."""

import json
from unittest.mock import MagicMock, patch

import pytest

from errors import NoFilesFoundError
from main import config_from_args, main, parse_args
from utils.llm_providers import ModelInfo


def test_parse_args_requires_local_dir_or_config():
    with pytest.raises(SystemExit) as exc_info:
        parse_args([])
    assert exc_info.value.code != 0


def test_parse_args_defaults_leave_config_values_alone():
    args = parse_args(["--local-dir", "/path/to/code"])
    assert args.local_dir == "/path/to/code"
    assert args.language is None
    assert args.provider is None
    assert args.include is None
    assert args.no_cache is False


def test_config_from_args_maps_flags():
    args = parse_args([
        "--local-dir", " /code ",
        "--project-name", "MyApp",
        "--language", "spanish",
        "--provider", "Gemini",
        "--model", "gemini-x",
        "--max-abstractions", "7",
        "--max-file-size", "50",
        "--include", "*.py",
        "--include", "*.md",
        "--exclude", "tests/*",
        "--no-cache",
    ])
    config = config_from_args(args)
    assert config.local_dir == "/code"
    assert config.project_name == "MyApp"
    assert config.language == "spanish"
    assert config.provider_name == "Gemini"
    assert config.model == "gemini-x"
    assert config.max_abstraction_num == 7
    assert config.max_file_size_bytes == 50 * 1024
    assert config.include_patterns == ["*.py", "*.md"]
    assert config.exclude_patterns == ["tests/*"]
    assert config.use_cache is False


def test_config_file_with_flag_overrides(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"local_dir": "/from/file", "language": "french", "use_cache": False}))
    config = config_from_args(parse_args(["--config", str(path), "--language", "german"]))
    assert config.local_dir == "/from/file"
    assert config.language == "german"
    assert config.use_cache is False


def test_main_returns_0_and_prints_output_dir(capsys):
    with patch("main.run_pipeline") as mock_run:
        mock_run.return_value = MagicMock(final_output_dir="/tmp/out/x")
        exit_code = main(["--local-dir", "/tmp/x"])
    assert exit_code == 0
    assert mock_run.call_args[0][0].local_dir == "/tmp/x"
    assert "/tmp/out/x" in capsys.readouterr().out


def test_main_returns_1_on_pipeline_error(capsys):
    with patch("main.run_pipeline", side_effect=NoFilesFoundError("No files found in /tmp/x")):
        exit_code = main(["--local-dir", "/tmp/x"])
    assert exit_code == 1
    assert "Error: No files found in /tmp/x" in capsys.readouterr().err


def test_main_returns_1_on_invalid_config(capsys):
    exit_code = main(["--local-dir", "/tmp/x", "--max-abstractions", "2"])
    assert exit_code == 1
    assert "max_abstraction_num" in capsys.readouterr().err


def test_main_returns_2_on_usage_error():
    assert main([]) == 2
    assert main(["--max-abstractions", "many", "--local-dir", "."]) == 2


def test_main_list_models(capsys):
    with patch("main.build_gateway") as mock_build:
        mock_build.return_value.list_models.return_value = [ModelInfo("m-1", "Model One", 4096)]
        exit_code = main(["--list-models", "--provider", "Gemini"])
    assert exit_code == 0
    mock_build.return_value.list_models.assert_called_once_with("Gemini")
    assert "m-1\tModel One\t4096" in capsys.readouterr().out
