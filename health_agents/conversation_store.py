"""
Conversation Store for Health Buddy

Persists finished conversation summaries as JSON files, one per session.
The pipeline only ever writes through save(); the other methods exist for
the CLI and for tooling.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Union

from .conversation import ConversationSummary

logger = logging.getLogger(__name__)


class ConversationStore(ABC):
    """Persistence collaborator for ended sessions."""

    @abstractmethod
    def save(self, summary: ConversationSummary) -> None:
        pass


class InMemoryConversationStore(ConversationStore):
    def __init__(self):
        self.saved: List[ConversationSummary] = []

    def save(self, summary: ConversationSummary) -> None:
        self.saved.append(summary)


class JsonConversationStore(ConversationStore):
    """
    File-based conversation storage.

    Each summary is written to {directory}/{session_id}.json.
    """

    def __init__(self, directory: Union[str, Path]):
        """
        Initialize the store.

        Args:
            directory: Folder for session files; created if missing
        """
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _session_path(self, session_id: str) -> Path:
        return self.directory / f"{session_id}.json"

    def save(self, summary: ConversationSummary) -> None:
        path = self._session_path(summary.id)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(summary.to_dict(), f, indent=2, ensure_ascii=False)
        logger.debug(f"Saved session {summary.id} to {path}")

    def load(self, session_id: str) -> Optional[ConversationSummary]:
        """
        Load a saved session.

        Returns:
            The summary, or None if missing or unreadable
        """
        path = self._session_path(session_id)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return ConversationSummary.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Error reading session {session_id}: {e}")
            return None

    def list(self) -> List[ConversationSummary]:
        """All readable sessions, most recent activity first."""
        summaries = []
        for path in self.directory.glob("*.json"):
            summary = self.load(path.stem)
            if summary is not None:
                summaries.append(summary)
        summaries.sort(key=lambda s: s.last_activity, reverse=True)
        return summaries

    def delete(self, session_id: str) -> bool:
        """
        Delete a session file.

        Returns:
            True if deleted, False if it didn't exist
        """
        path = self._session_path(session_id)
        if not path.exists():
            return False
        path.unlink()
        return True
