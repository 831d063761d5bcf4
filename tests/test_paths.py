"""Tests for executable resolution."""

import os
from pathlib import Path

import pytest

from mcp_hub import paths
from mcp_hub.paths import find_executable, get_augmented_path, resolve_executable_path


@pytest.fixture
def home(tmp_path, monkeypatch):
    """A fake home directory with nothing installed."""
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
    monkeypatch.setattr(paths, "_is_windows", lambda: False)
    return tmp_path


@pytest.fixture
def no_system_dirs(monkeypatch):
    """Keep lookups inside the fake home directory."""
    real_search_dirs = paths._search_dirs

    def search_dirs(home):
        return [d for d in real_search_dirs(home) if str(d).startswith(str(home))]

    monkeypatch.setattr(paths, "_search_dirs", search_dirs)
    monkeypatch.setattr(paths.shutil, "which", lambda name: None)


def install(directory: Path, name: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    executable = directory / name
    executable.write_text("#!/bin/sh\n")
    executable.chmod(0o755)
    return executable


class TestResolveExecutablePath:
    def test_absolute_path_is_unchanged(self, home):
        assert resolve_executable_path("/opt/tools/npx") == "/opt/tools/npx"

    def test_home_relative_path_is_expanded(self, home, monkeypatch):
        monkeypatch.setenv("HOME", str(home))

        assert resolve_executable_path("~/bin/server") == str(home / "bin" / "server")

    def test_windows_absolute_path_is_unchanged(self, home):
        assert resolve_executable_path("C:\\tools\\node.exe") == "C:\\tools\\node.exe"

    def test_unlisted_command_is_not_searched(self, home, monkeypatch):
        def fail(name):
            raise AssertionError("should not search")

        monkeypatch.setattr(paths, "find_executable", fail)

        assert resolve_executable_path("my-server") == "my-server"

    def test_not_found_returns_original(self, home, no_system_dirs):
        assert resolve_executable_path("npx") == "npx"

    def test_newest_nvm_version_wins(self, home, no_system_dirs):
        nvm = home / ".nvm" / "versions" / "node"
        install(nvm / "v9.11.2" / "bin", "npx")
        newest = install(nvm / "v20.1.0" / "bin", "npx")
        install(nvm / "v18.19.0" / "bin", "npx")

        assert resolve_executable_path("npx") == str(newest)

    def test_user_local_bin(self, home, no_system_dirs):
        uvx = install(home / ".local" / "bin", "uvx")

        assert resolve_executable_path("uvx") == str(uvx)

    def test_falls_back_to_which(self, home, no_system_dirs, monkeypatch):
        found = install(home / "elsewhere", "node")
        monkeypatch.setattr(paths.shutil, "which", lambda name: str(found))

        assert find_executable("node") == str(found)


class TestGetAugmentedPath:
    def test_inherited_path_comes_last(self, home, monkeypatch):
        monkeypatch.setenv("PATH", "/inherited/bin")

        entries = get_augmented_path().split(os.pathsep)

        assert entries[-1] == "/inherited/bin"
        assert "/usr/local/bin" in entries
        assert str(home / ".local" / "bin") in entries

    def test_includes_newest_nvm_and_existing_optional_dirs(self, home, monkeypatch):
        monkeypatch.setenv("PATH", "")
        nvm = home / ".nvm" / "versions" / "node"
        (nvm / "v18.0.0" / "bin").mkdir(parents=True)
        (nvm / "v20.0.0" / "bin").mkdir(parents=True)
        (home / ".volta" / "bin").mkdir(parents=True)

        entries = get_augmented_path().split(os.pathsep)

        assert entries[0] == str(nvm / "v20.0.0" / "bin")
        assert str(nvm / "v18.0.0" / "bin") not in entries
        assert str(home / ".volta" / "bin") in entries
        assert str(home / ".bun" / "bin") not in entries
