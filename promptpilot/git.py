"""Git collaborator used by the branch-creation step."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional, Protocol

from .constants import DEFAULT_BRANCH_PREFIX
from .errors import GitOperationError

logger = logging.getLogger(__name__)


class GitCollaborator(Protocol):
    async def create_and_checkout_branch(self) -> Optional[str]:
        """Create a new branch, check it out and return its name."""


class GitCli(GitCollaborator):
    """Create branches by running the ``git`` executable."""

    def __init__(
        self,
        repo_path: str | Path | None = None,
        prefix: str = DEFAULT_BRANCH_PREFIX,
        executable: str = "git",
    ) -> None:
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        self.prefix = prefix
        self.executable = executable

    def branch_name(self) -> str:
        return f"{self.prefix}pilot-{int(time.time() * 1000)}"

    async def _git(self, *args: str) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                cwd=str(self.repo_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise GitOperationError(f"Unable to run {self.executable}: {e}") from e

        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip() or f"exit code {proc.returncode}"
            raise GitOperationError(f"git {' '.join(args)} failed: {detail}")
        return stdout.decode(errors="replace").strip()

    async def current_branch(self) -> str:
        return await self._git("rev-parse", "--abbrev-ref", "HEAD")

    async def create_and_checkout_branch(self) -> Optional[str]:
        name = self.branch_name()
        await self._git("checkout", "-b", name)
        logger.info(f"Created and checked out branch: {name}")
        return name
