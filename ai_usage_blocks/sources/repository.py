"""
Repository pattern for usage log access.

Resolves session directories for a source and loads its events in
timestamp order.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Set, Union

from ai_usage_blocks.core.token_counter import BillingConvention

from . import claude, codex
from .models import UsageEvent


class UsageSource(Enum):
    """Supported log sources."""
    CODEX = "codex"
    CLAUDE = "claude"

    @property
    def convention(self) -> BillingConvention:
        if self == UsageSource.CODEX:
            return BillingConvention.OPENAI
        return BillingConvention.ANTHROPIC


@dataclass
class LoadResult:
    """Loaded events plus the directories that could not be read."""
    events: List[UsageEvent] = field(default_factory=list)
    missing_directories: List[str] = field(default_factory=list)


class UsageRepository:
    """Repository for loading usage events from local session logs.

    Provides one entry point for both sources so callers never deal with
    directory discovery or log formats.
    """

    def __init__(
        self,
        source: UsageSource,
        directories: Optional[Sequence[Union[str, Path]]] = None,
    ):
        """Initialize the repository.

        Args:
            source: Which tool's logs to read
            directories: Session directories to scan; the source's default
                locations when None or empty
        """
        self.source = source
        if directories:
            self.directories = [Path(d).expanduser().resolve() for d in directories]
        elif source == UsageSource.CODEX:
            self.directories = codex.default_session_dirs()
        else:
            self.directories = claude.default_project_dirs()

    def load_events(self) -> LoadResult:
        """Load all events from the configured directories.

        Returns:
            LoadResult with events sorted ascending by timestamp
        """
        result = LoadResult()
        seen: Set[str] = set()

        for directory in self.directories:
            if not directory.is_dir():
                result.missing_directories.append(str(directory))
                continue

            if self.source == UsageSource.CODEX:
                # Stream keys stay unique across roots.
                prefix = f"{directory.as_posix()}/" if len(self.directories) > 1 else ""
                result.events.extend(codex.load_codex_events(directory, prefix))
            else:
                result.events.extend(claude.load_claude_events(directory, seen))

        result.events.sort(key=lambda event: event.timestamp)
        return result
