"""Tests for the command line interface."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest
from typer.testing import CliRunner

from everlook.cli import app

runner = CliRunner()


def _zip(path: Path, names) -> None:
    with zipfile.ZipFile(path, "w") as archive:
        for name in names:
            archive.writestr(name, b"")


def _flat(output: str) -> str:
    # Rich folds long paths onto several lines.
    return output.replace("\n", "")


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    return tmp_path / "config" / "settings.json"


@pytest.fixture
def package_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "World"
    directory.mkdir()
    _zip(directory / "base.zip", ["a/one.txt", "top.txt"])
    _zip(directory / "patch.zip", ["a/two.txt"])
    return directory


def test_tree_lists_packages(package_dir: Path, settings_file: Path):
    result = runner.invoke(app, ["tree", str(package_dir), "--settings", str(settings_file)])

    assert result.exit_code == 0, result.output
    assert "World" in result.output
    assert "base.zip" in result.output
    assert "patch.zip" in result.output
    assert "top.txt" in result.output
    assert "one.txt" not in result.output


def test_tree_depth_expands_directories(package_dir: Path, settings_file: Path):
    result = runner.invoke(
        app,
        ["tree", str(package_dir), "--depth", "2", "--workers", "2", "--settings", str(settings_file)],
    )

    assert result.exit_code == 0, result.output
    assert "one.txt" in result.output
    assert "two.txt" in result.output


def test_tree_merged_view(package_dir: Path, settings_file: Path):
    result = runner.invoke(
        app,
        ["tree", str(package_dir), "--merged", "--depth", "2", "--settings", str(settings_file)],
    )

    assert result.exit_code == 0, result.output
    assert "(2 packages)" in result.output
    assert "one.txt" in result.output
    assert "two.txt" in result.output
    assert "base.zip" not in result.output


def test_tree_without_directories(settings_file: Path):
    result = runner.invoke(app, ["tree", "--settings", str(settings_file)])

    assert result.exit_code == 0
    assert "No package directories to show" in result.output


def test_tree_uses_configured_directories(package_dir: Path, settings_file: Path):
    runner.invoke(app, ["dirs", "add", str(package_dir), "--settings", str(settings_file)])

    result = runner.invoke(app, ["tree", "--settings", str(settings_file)])

    assert result.exit_code == 0, result.output
    assert "base.zip" in result.output


def test_dirs_add_list_remove(package_dir: Path, settings_file: Path):
    added = runner.invoke(app, ["dirs", "add", str(package_dir), "--settings", str(settings_file)])
    assert added.exit_code == 0
    assert "Added" in added.output

    again = runner.invoke(app, ["dirs", "add", str(package_dir), "--settings", str(settings_file)])
    assert "already configured" in again.output

    listed = runner.invoke(app, ["dirs", "list", "--settings", str(settings_file)])
    assert str(package_dir.resolve()) in _flat(listed.output)
    assert "(missing)" not in listed.output

    removed = runner.invoke(app, ["dirs", "remove", str(package_dir), "--settings", str(settings_file)])
    assert removed.exit_code == 0
    assert "Removed" in removed.output

    missing = runner.invoke(app, ["dirs", "remove", str(package_dir), "--settings", str(settings_file)])
    assert missing.exit_code == 1


def test_dirs_list_empty(settings_file: Path):
    result = runner.invoke(app, ["dirs", "list", "--settings", str(settings_file)])

    assert result.exit_code == 0
    assert "No package directories configured" in result.output


def test_dirs_add_rejects_missing_directory(tmp_path: Path, settings_file: Path):
    result = runner.invoke(app, ["dirs", "add", str(tmp_path / "missing"), "--settings", str(settings_file)])

    assert result.exit_code != 0


def test_corrupt_settings_exit_with_error(tmp_path: Path):
    settings_file = tmp_path / "settings.json"
    settings_file.write_text("{broken", encoding="utf-8")

    result = runner.invoke(app, ["dirs", "list", "--settings", str(settings_file)])

    assert result.exit_code == 1
