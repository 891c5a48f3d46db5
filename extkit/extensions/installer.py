"""Package installer collaborators: make extension sources present on disk."""

import logging
import subprocess
from pathlib import Path

from extkit.extensions.errors import InstallerFailed

logger = logging.getLogger(__name__)

_GITHUB = "https://github.com/{}.git"


def is_local_source(source: str) -> bool:
    return source.startswith(("/", "~", "./", "../"))


def clone_url(source: str) -> str:
    """Full URLs and scp-style remotes pass through; owner/repo expands to GitHub."""
    if "://" in source or source.startswith("git@"):
        return source
    return _GITHUB.format(source.removesuffix(".git"))


class GitInstaller:
    """Clones git sources into install_dir/<name>; local paths are used in place."""

    def __init__(self, install_dir: Path, timeout: int = 60) -> None:
        self._install_dir = install_dir
        self._timeout = timeout

    @property
    def install_dir(self) -> Path:
        return self._install_dir

    def ensure_present(self, source: str, name: str) -> Path:
        if is_local_source(source):
            path = Path(source).expanduser()
            if not path.exists():
                raise InstallerFailed(source, f"local path {path} does not exist")
            return path.resolve()

        target = self._install_dir / name
        if target.exists():
            return target

        url = clone_url(source)
        logger.info("Cloning %s into %s", url, target)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            result = subprocess.run(
                ["git", "clone", "--depth", "1", url, str(target)],
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise InstallerFailed(source, "git command not found") from e
        except subprocess.TimeoutExpired as e:
            raise InstallerFailed(source, f"git clone timed out after {self._timeout}s") from e
        if result.returncode != 0:
            raise InstallerFailed(source, (result.stderr or result.stdout).strip())
        return target


class NullInstaller:
    """Reports install_dir/<name> without touching the filesystem."""

    def __init__(self, install_dir: Path | None = None) -> None:
        self._install_dir = install_dir or Path(".")

    def ensure_present(self, source: str, name: str) -> Path:
        return self._install_dir / name
