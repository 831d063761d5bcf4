"""Executable path resolution for stdio servers.

GUI launchers and service managers often start the host without the user's
shell PATH, so ``npx`` or ``uv`` cannot be found even though they are
installed. These helpers look in the usual install locations instead.
"""

import os
import re
import shutil
import sys
from pathlib import Path

from mcp_hub.logging import get_logger

logger = get_logger("paths")

# Only these names are resolved; anything else is passed through untouched.
RESOLVABLE_COMMANDS = frozenset(
    {
        "node",
        "npm",
        "npx",
        "pnpm",
        "yarn",
        "bun",
        "bunx",
        "python",
        "python3",
        "uv",
        "uvx",
    }
)

_WINDOWS_ABSOLUTE = re.compile(r"^[a-zA-Z]:[\\/]")


def _is_windows() -> bool:
    return sys.platform == "win32"


def _version_key(name: str) -> tuple[int, ...]:
    return tuple(int(part) for part in re.findall(r"\d+", name))


def _nvm_bin_dirs(home: Path) -> list[Path]:
    """Return nvm node ``bin`` directories, newest version first."""
    nvm_dir = home / ".nvm" / "versions" / "node"
    try:
        versions = [p.name for p in nvm_dir.iterdir() if p.name.startswith("v")]
    except OSError:
        return []
    versions.sort(key=_version_key, reverse=True)
    return [nvm_dir / version / "bin" for version in versions]


def _windows_dirs() -> list[Path]:
    dirs: list[Path] = []
    app_data = os.environ.get("APPDATA")
    local_app_data = os.environ.get("LOCALAPPDATA")
    program_files = os.environ.get("ProgramFiles")
    program_files_x86 = os.environ.get("ProgramFiles(x86)")

    if app_data:
        dirs.append(Path(app_data) / "npm")
        dirs.append(Path(app_data) / "nvm")
    if local_app_data:
        dirs.append(Path(local_app_data) / "pnpm")
    if program_files:
        dirs.append(Path(program_files) / "nodejs")
    if program_files_x86:
        dirs.append(Path(program_files_x86) / "nodejs")

    dirs.append(Path("C:\\Windows\\System32"))
    dirs.append(Path("C:\\Windows"))
    return dirs


def _search_dirs(home: Path) -> list[Path]:
    """Candidate directories in search order."""
    dirs = _nvm_bin_dirs(home)
    dirs += [
        home / ".local" / "share" / "fnm" / "aliases" / "default" / "bin",
        home / ".volta" / "bin",
        home / ".bun" / "bin",
        home / ".pyenv" / "shims",
        home / ".cargo" / "bin",
        # Homebrew on Apple Silicon, Intel macOS / Linux, and Linuxbrew
        Path("/opt/homebrew/bin"),
        Path("/usr/local/bin"),
        Path("/home/linuxbrew/.linuxbrew/bin"),
        Path("/usr/bin"),
        Path("/bin"),
        home / ".local" / "bin",
        home / "Library" / "pnpm",
        home / ".pnpm-global" / "bin",
    ]
    if _is_windows():
        dirs += _windows_dirs()
    return dirs


def _candidates(name: str) -> list[str]:
    if _is_windows():
        return [name, f"{name}.exe", f"{name}.cmd", f"{name}.bat"]
    return [name]


def find_executable(name: str) -> str | None:
    """Look for ``name`` in well-known install locations.

    Falls back to a PATH lookup via :func:`shutil.which`. Returns None when
    nothing is found.
    """
    for directory in _search_dirs(Path.home()):
        for candidate in _candidates(name):
            full_path = directory / candidate
            if full_path.is_file():
                return str(full_path)

    found = shutil.which(name)
    if found and Path(found).exists():
        return found

    return None


def resolve_executable_path(command: str) -> str:
    """Resolve a bare command name to an absolute path where possible.

    Absolute and home-relative paths are returned as-is (with ``~`` expanded).
    Names outside :data:`RESOLVABLE_COMMANDS` are never searched for. When nothing
    is found the original command is returned so a normal PATH based spawn
    can still be attempted.
    """
    if (
        command.startswith("/")
        or command.startswith("~")
        or command.startswith("\\\\")
        or _WINDOWS_ABSOLUTE.match(command)
    ):
        return os.path.expanduser(command)

    base_name = command.rsplit("/", 1)[-1] or command
    if base_name not in RESOLVABLE_COMMANDS:
        return command

    resolved = find_executable(base_name)
    if resolved:
        logger.debug(f"Resolved '{command}' to {resolved}")
        return resolved

    return command


def get_augmented_path() -> str:
    """Build a PATH value with well-known install locations ahead of the inherited one."""
    home = Path.home()
    paths: list[str] = []

    nvm_dirs = _nvm_bin_dirs(home)
    if nvm_dirs:
        paths.append(str(nvm_dirs[0]))

    for optional in (
        home / ".local" / "share" / "fnm" / "aliases" / "default" / "bin",
        home / ".volta" / "bin",
        home / ".bun" / "bin",
        home / ".pyenv" / "shims",
        home / ".cargo" / "bin",
    ):
        if optional.exists():
            paths.append(str(optional))

    paths += [
        "/opt/homebrew/bin",
        "/usr/local/bin",
        "/usr/bin",
        "/bin",
        "/home/linuxbrew/.linuxbrew/bin",
        str(home / ".local" / "bin"),
    ]

    pnpm_path = home / "Library" / "pnpm"
    if pnpm_path.exists():
        paths.append(str(pnpm_path))

    if _is_windows():
        paths += [str(p) for p in _windows_dirs()]

    existing = os.environ.get("PATH", "")
    if existing:
        paths.append(existing)

    return os.pathsep.join(paths)
