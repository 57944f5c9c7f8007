"""Recipient and preference lookups.

The dispatcher reads contact data and channel preferences through these
protocols. The in-memory implementations back local runs and tests; a
deployment swaps in implementations over its user store.
"""

import threading
from typing import Any, Dict, List, Optional, Protocol, Tuple

import structlog
from infrastructure.notifications.models import Channel, ContactInfo

logger = structlog.get_logger()

PreferenceSet = Dict[Channel, bool]

# Stored preference keys that map onto a channel under another name.
CHANNEL_ALIASES: Dict[str, Channel] = {
    "in_app": Channel.PUSH,
    "inApp": Channel.PUSH,
}


class RecipientResolver(Protocol):
    """Look up the contact data for a user."""

    def get_contact(self, user_id: str) -> Optional[ContactInfo]:
        """Return contact data, or None when the user does not exist."""
        ...


class PreferenceResolver(Protocol):
    """Look up which channels a user has enabled for a category."""

    def get_preferences(self, user_id: str, category: str) -> Optional[PreferenceSet]:
        """Return the channel map, or None when no preference record exists."""
        ...


class RealtimePublisher(Protocol):
    """Fan-out used for push/in-app notifications."""

    def publish(self, user_id: str, payload: Dict[str, Any]) -> None: ...


def normalize_preferences(raw: Dict[str, Any]) -> PreferenceSet:
    """Convert a stored preference mapping into a PreferenceSet.

    Unknown keys are ignored. Values are kept as booleans, anything other
    than an explicit False counts as enabled.
    """
    prefs: PreferenceSet = {}
    for key, value in raw.items():
        key_name = key.value if isinstance(key, Channel) else str(key)
        channel = CHANNEL_ALIASES.get(key_name)
        if channel is None:
            try:
                channel = Channel(key_name)
            except ValueError:
                continue
        prefs[channel] = value is not False
    return prefs


def is_channel_enabled(preferences: Optional[PreferenceSet], channel: Channel) -> bool:
    """A channel is enabled unless explicitly disabled."""
    if preferences is None:
        return True
    return preferences.get(channel) is not False


class InMemoryRecipientResolver:
    """Dict-backed RecipientResolver."""

    def __init__(self, contacts: Optional[List[ContactInfo]] = None) -> None:
        self._lock = threading.Lock()
        self._contacts: Dict[str, ContactInfo] = {}
        for contact in contacts or []:
            self._contacts[contact.user_id] = contact

    def add(self, contact: ContactInfo) -> None:
        with self._lock:
            self._contacts[contact.user_id] = contact

    def get_contact(self, user_id: str) -> Optional[ContactInfo]:
        with self._lock:
            return self._contacts.get(user_id)


class InMemoryPreferenceResolver:
    """Dict-backed PreferenceResolver keyed by (user_id, category)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._preferences: Dict[Tuple[str, str], PreferenceSet] = {}

    def set_preferences(self, user_id: str, category: str, preferences: Dict[str, Any]) -> None:
        with self._lock:
            self._preferences[(user_id, category)] = normalize_preferences(preferences)

    def get_preferences(self, user_id: str, category: str) -> Optional[PreferenceSet]:
        with self._lock:
            prefs = self._preferences.get((user_id, category))
            return dict(prefs) if prefs is not None else None


class LoggingRealtimePublisher:
    """RealtimePublisher that records the fan-out in the log.

    Push delivery is handled by an external realtime service; this publisher
    stands in where none is wired.
    """

    def publish(self, user_id: str, payload: Dict[str, Any]) -> None:
        logger.info(
            "realtime_notification_published",
            user_id=user_id,
            title=payload.get("title"),
        )
