"""Git integration for publishing exported files."""

from __future__ import annotations

import asyncio
import configparser
from dataclasses import dataclass
import os
from pathlib import Path
import shlex
import shutil
from typing import TYPE_CHECKING, Literal

from autoexport.exceptions import ConfigurationError, GitError
from autoexport.log import get_logger


if TYPE_CHECKING:
    from autoexport.config import AutoExportSettings


logger = get_logger(__name__)

OPT_IN_SECTION = "autoexport"
"""Section in ``.git/config`` that opts a repository into publishing."""

OPT_IN_KEY = "push"
GIT_TRUE = frozenset({"true", "yes", "on", "1"})


@dataclass(frozen=True)
class GitResult:
    """Outcome of a pull or push.

    Failures are recoverable: the caller decides whether to surface them.
    """

    status: Literal["ok", "skipped", "failed"]
    message: str = ""

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def ok(cls) -> GitResult:
        return cls("ok")

    @classmethod
    def skipped(cls) -> GitResult:
        return cls("skipped")

    @classmethod
    def failure(cls, message: str) -> GitResult:
        return cls("failed", message)


class GitRepo:
    """Handle for an exported file that may live inside a git repository.

    A disabled handle turns ``pull`` and ``push`` into no-ops.
    """

    def __init__(
        self,
        root: Path | None = None,
        path: str | None = None,
        *,
        executable: str | None = None,
        pull_delay: float = 2.0,
    ):
        """Initialize the handle.

        Args:
            root: Repository root directory
            path: Exported file, relative to ``root``
            executable: Git executable to run
            pull_delay: Seconds to wait between the two pulls
        """
        self.root = root
        self.path = path
        self.executable = executable
        self.pull_delay = pull_delay

    @classmethod
    def disabled(cls) -> GitRepo:
        return cls()

    @property
    def enabled(self) -> bool:
        return self.root is not None and self.path is not None and self.executable is not None

    def __repr__(self) -> str:
        if not self.enabled:
            return "GitRepo(disabled)"
        return f"GitRepo(root={str(self.root)!r}, path={self.path!r})"

    async def _run(self, *args: str) -> str:
        """Run a git command in the repository and return stdout."""
        assert self.executable is not None
        cmd = [self.executable, "-C", str(self.root), *args]
        command = shlex.join(cmd)
        logger.debug("Running git", command=command)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await proc.communicate()
        except OSError as e:
            msg = f"Could not run {command}: {e}"
            raise GitError(msg) from e
        if proc.returncode != 0:
            error = stderr.decode(errors="replace").strip()
            msg = f"Failed with exit status {proc.returncode}: {command}"
            if error:
                msg = f"{msg}: {error}"
            raise GitError(msg)
        return stdout.decode(errors="replace").strip()

    async def pull(self) -> GitResult:
        """Bring the exported file up to date with the remote before exporting."""
        if not self.enabled:
            return GitResult.skipped()
        assert self.path is not None
        try:
            await self._run("checkout", self.path)
            await self._run("pull")
            # a pull right after a remote update can leave a stale checkout
            await asyncio.sleep(self.pull_delay)
            await self._run("pull")
        except GitError as e:
            logger.warning("Could not pull", root=str(self.root), error=str(e))
            return GitResult.failure(str(e))
        return GitResult.ok()

    async def push(self, message: str) -> GitResult:
        """Commit the exported file and publish it."""
        if not self.enabled:
            return GitResult.skipped()
        assert self.path is not None
        try:
            await self._run("add", self.path)
            await self._run("commit", "-m", message)
            await self._run("push")
        except GitError as e:
            logger.warning("Could not push", root=str(self.root), path=self.path, error=str(e))
            return GitResult.failure(str(e))
        return GitResult.ok()


class GitAdapter:
    """Resolves output paths to git handles according to the ``git`` preference.

    Policies:
        - ``off``: never publish
        - ``always``: the output's directory is the repository root
        - ``config``: find the enclosing repository and require
          ``push = true`` in its ``[autoexport]`` config section
    """

    def __init__(self, settings: AutoExportSettings, executable: str | None = None):
        self.settings = settings
        self.executable = executable if executable is not None else shutil.which("git")

    def locate(self, path: str | os.PathLike[str]) -> GitRepo:
        """Resolve the git handle for an output path.

        Never raises for I/O problems or missing git, those resolve to a
        disabled handle.

        Raises:
            ConfigurationError: If the output is not inside the resolved root
        """
        if not self.executable:
            return GitRepo.disabled()

        output = Path(os.path.abspath(path))  # noqa: PTH100
        policy = self.settings.git
        try:
            match policy:
                case "off":
                    return GitRepo.disabled()
                case "always":
                    root = output.parent
                case "config":
                    found = self._find_repository(output.parent)
                    if found is None or not self._opted_in(found / ".git" / "config"):
                        return GitRepo.disabled()
                    root = found
                case _:
                    logger.error("Unexpected git policy", policy=policy)
                    return GitRepo.disabled()
        except OSError:
            logger.exception("Could not resolve git repository", path=str(output))
            return GitRepo.disabled()

        if output == root or not output.is_relative_to(root):
            msg = f"{output} is not inside repository {root}"
            raise ConfigurationError(msg)

        return GitRepo(
            root,
            output.relative_to(root).as_posix(),
            executable=self.executable,
            pull_delay=self.settings.git_pull_delay,
        )

    @staticmethod
    def _find_repository(start: Path) -> Path | None:
        """Walk upwards from ``start`` to the first directory holding ``.git``."""
        root = start
        while root.is_dir() and root != root.parent:
            if (root / ".git").is_dir():
                return root
            root = root.parent
        return None

    @staticmethod
    def _opted_in(config_file: Path) -> bool:
        if not config_file.is_file():
            return False
        parser = configparser.ConfigParser(
            strict=False, interpolation=None, allow_no_value=True
        )
        try:
            parser.read_string(config_file.read_text(encoding="utf-8"))
        except (configparser.Error, UnicodeDecodeError):
            logger.exception("Could not parse git config", path=str(config_file))
            return False

        for section in parser.sections():
            if section.strip().lower() != OPT_IN_SECTION:
                continue
            if not parser.has_option(section, OPT_IN_KEY):
                continue
            value = parser.get(section, OPT_IN_KEY)
            # a bare key is "true" for git
            if value is None or value.strip().lower() in GIT_TRUE:
                return True
        return False
