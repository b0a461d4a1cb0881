"""Application state container: topics, recipient and digest history.

AppState is created once by the composition root (main.py) and handed to
every component that needs it. Components never reach for the store
directly; every mutation goes through AppState, which writes the affected
slot through to the store immediately.

Invariants:
    - topics keep insertion order and contain no duplicates
    - history is newest first; prepend and clear are the only mutations
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from models.digest import DigestRecord
from store import EMAIL_KEY, HISTORY_KEY, TOPICS_KEY, ReadResult, read_json, write_json

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class LoadReport:
    """Which slots fell back to defaults during AppState.load()."""

    topics: ReadResult | None = None
    history: ReadResult | None = None
    skipped_records: int = 0

    @property
    def fallbacks(self) -> list[str]:
        names = []
        if self.topics and self.topics.error:
            names.append(TOPICS_KEY)
        if self.history and self.history.error:
            names.append(HISTORY_KEY)
        return names


@dataclass
class AppState:
    """Owner of the user's topics, recipient address and digest history.

    Example:
        >>> state = AppState(MemoryStore())
        >>> state.load()
        >>> state.add_topic("Large Language Models")
        True
    """

    store: Any
    topics: list[str] = field(default_factory=list)
    recipient: str = ""
    history: list[DigestRecord] = field(default_factory=list)

    def load(self) -> LoadReport:
        """Load all slots from the store, tolerating absent or bad data."""
        report = LoadReport()

        report.topics = read_json(self.store, TOPICS_KEY, list)
        self.topics = _dedupe(t.strip() for t in report.topics.value if isinstance(t, str))

        self.recipient = self.store.read(EMAIL_KEY) or ""

        report.history = read_json(self.store, HISTORY_KEY, list)
        self.history = []
        for raw in report.history.value:
            try:
                self.history.append(DigestRecord.model_validate(raw))
            except ValidationError:
                report.skipped_records += 1
        if report.skipped_records:
            logger.warning("Skipped malformed history records | count=%d", report.skipped_records)

        logger.debug(
            "State loaded | topics=%d history=%d recipient=%s",
            len(self.topics), len(self.history), "set" if self.recipient else "unset",
        )
        return report

    # === Topics ===

    def _save_topics(self) -> None:
        write_json(self.store, TOPICS_KEY, self.topics)

    def add_topic(self, topic: str) -> bool:
        """Append a topic. Returns False for blank or duplicate topics."""
        topic = topic.strip()
        if not topic or topic in self.topics:
            return False
        self.topics.append(topic)
        self._save_topics()
        return True

    def rename_topic(self, old: str, new: str) -> bool:
        """Rename a topic in place, keeping its position.

        Returns False when the old topic is missing, the new name is blank,
        or the new name would duplicate another topic.
        """
        new = new.strip()
        if old not in self.topics or not new:
            return False
        if new != old and new in self.topics:
            return False
        self.topics = [new if t == old else t for t in self.topics]
        self._save_topics()
        return True

    def remove_topic(self, topic: str) -> bool:
        """Remove a topic. Returns False if it was not present."""
        if topic not in self.topics:
            return False
        self.topics = [t for t in self.topics if t != topic]
        self._save_topics()
        return True

    def import_topics(self, text: str) -> int:
        """Bulk-add comma-separated topics.

        Blank entries and topics already present are skipped.

        Returns:
            Number of topics added
        """
        candidates = _dedupe(part.strip() for part in text.split(","))
        added = [t for t in candidates if t and t not in self.topics]
        if added:
            self.topics.extend(added)
            self._save_topics()
        return len(added)

    # === Recipient ===

    def set_recipient(self, email: str) -> None:
        """Set the recipient address. An empty address clears it.

        Raises:
            ValueError: If the address is not a plausible email address
        """
        email = email.strip()
        if email and not EMAIL_PATTERN.match(email):
            raise ValueError("Invalid email address format")
        self.recipient = email
        self.store.write(EMAIL_KEY, email)

    # === History ===

    def _save_history(self) -> None:
        write_json(self.store, HISTORY_KEY, [r.model_dump(mode="json") for r in self.history])

    def prepend_record(self, record: DigestRecord) -> None:
        """Place a new record at the front of history."""
        self.history.insert(0, record)
        self._save_history()

    def clear_history(self) -> int:
        """Remove all history records. Returns how many were removed."""
        removed = len(self.history)
        self.history = []
        self._save_history()
        return removed

    def filter_history(self, text: str) -> list[DigestRecord]:
        """Records whose topics or summary contain the text."""
        return [r for r in self.history if r.matches(text)]


def _dedupe(items) -> list[str]:
    """Drop empty strings and duplicates, preserving first occurrence."""
    return list(dict.fromkeys(item for item in items if item))
