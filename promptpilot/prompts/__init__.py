"""Prompt template storage."""

from __future__ import annotations

import asyncio
import logging
from importlib import resources
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from ..errors import PromptLoadError

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".md"


def _normalize(template_id: str) -> str:
    if template_id.endswith(TEMPLATE_SUFFIX):
        return template_id[: -len(TEMPLATE_SUFFIX)]
    return template_id


class PromptStore(Protocol):
    """Protocol for prompt template sources."""

    async def load(self, template_id: str) -> str:
        """Return the template text.

        Raises:
            PromptLoadError: If no template with that id exists.
        """

    def available(self) -> List[str]:
        """Return the ids of all known templates."""


class FilePromptStore(PromptStore):
    """Load ``<id>.md`` templates from a directory.

    Without a directory the templates packaged with promptpilot are used.
    Loaded templates are cached for the lifetime of the store.
    """

    def __init__(self, directory: str | Path | None = None) -> None:
        if directory is None:
            self.directory = Path(str(resources.files(__package__).joinpath("templates")))
        else:
            self.directory = Path(directory).expanduser()
        self._cache: Dict[str, str] = {}

    def _read(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    async def load(self, template_id: str) -> str:
        key = _normalize(template_id)
        if key in self._cache:
            return self._cache[key]

        path = self.directory / f"{key}{TEMPLATE_SUFFIX}"
        try:
            text = await asyncio.to_thread(self._read, path)
        except OSError as e:
            logger.error(f"Error loading prompt {key} from {path}: {e}")
            raise PromptLoadError(key, str(e)) from e

        self._cache[key] = text.strip()
        return self._cache[key]

    def available(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(p.stem for p in self.directory.glob(f"*{TEMPLATE_SUFFIX}"))


class InMemoryPromptStore(PromptStore):
    """Serve templates from a dictionary; useful for tests."""

    def __init__(self, templates: Optional[Dict[str, str]] = None) -> None:
        self._templates = {_normalize(k): v for k, v in (templates or {}).items()}

    async def load(self, template_id: str) -> str:
        key = _normalize(template_id)
        try:
            return self._templates[key]
        except KeyError:
            raise PromptLoadError(key, "template not found") from None

    def available(self) -> List[str]:
        return sorted(self._templates)


def get_prompt_store(directory: str | Path | None = None) -> PromptStore:
    """Return a file-backed store for ``directory`` or the packaged defaults."""
    return FilePromptStore(directory)


__all__ = [
    "PromptStore",
    "FilePromptStore",
    "InMemoryPromptStore",
    "get_prompt_store",
]
