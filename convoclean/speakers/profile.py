"""Speaker profile models — identifier lists, contact patterns, and content hints.

A profile is the only long-lived, mutable state in the pipeline. It is
owned by one ``SpeakerIdentifier`` and persisted as JSON between sessions,
which is why patterns are stored as regex source strings.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from convoclean.config.settings import SpeakerConfig
from convoclean.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class Role(str, Enum):
    YOU = "you"
    CLIENT = "client"

    @property
    def opposite(self) -> Role:
        return Role.CLIENT if self is Role.YOU else Role.YOU


DEFAULT_USER_IDENTIFIERS = ["me", "you", "myself", "owner"]
DEFAULT_CLIENT_IDENTIFIERS = ["client", "customer"]

DEFAULT_PHONE_PATTERNS = [
    r"^\+?1?[-.\s]?\(?(\d{3})\)?[-.\s]*(\d{3})[-.\s]*(\d{4})$",
    r"^(\d{10})$",
    r"^(\d{3})[-.\s](\d{3})[-.\s](\d{4})$",
    r"^\+1\s?\d{10}$",
    r"^\(\d{3}\)\s?\d{3}-?\d{4}$",
]

DEFAULT_EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class ContextualHint(BaseModel):
    """A content regex that nudges identification toward one role."""

    kind: Literal["phrase", "vocabulary", "style", "timing", "length"]
    pattern: str
    implied_role: Role
    base_confidence: float = Field(ge=0.0, le=1.0)
    description: str = ""
    case_sensitive: bool = False


DEFAULT_HINTS = [
    ContextualHint(
        kind="phrase",
        pattern=r"\b(thank you|thanks|please|sorry|excuse me)\b",
        implied_role=Role.CLIENT,
        base_confidence=0.6,
        description="Polite language",
    ),
    ContextualHint(
        kind="phrase",
        pattern=r"\b(got it|will do|on it|no problem|sounds good)\b",
        implied_role=Role.YOU,
        base_confidence=0.7,
        description="Confirmatory language",
    ),
    ContextualHint(
        kind="vocabulary",
        pattern=r"\b(service|quote|estimate|schedule|appointment)\b",
        implied_role=Role.CLIENT,
        base_confidence=0.5,
        description="Service request vocabulary",
    ),
    ContextualHint(
        kind="vocabulary",
        pattern=r"\b(completed|finished|done|invoice|bill)\b",
        implied_role=Role.YOU,
        base_confidence=0.6,
        description="Completion and billing vocabulary",
    ),
    ContextualHint(
        kind="style",
        pattern=r"^[A-Z][a-z]",
        implied_role=Role.CLIENT,
        base_confidence=0.3,
        description="Sentence-case opening",
        case_sensitive=True,
    ),
    ContextualHint(
        kind="style",
        pattern=r"^[a-z]",
        implied_role=Role.YOU,
        base_confidence=0.3,
        description="Lower-case opening",
        case_sensitive=True,
    ),
]


class SpeakerProfile(BaseModel):
    """Identifier lists and patterns used to classify message senders."""

    user_identifiers: list[str] = Field(default_factory=lambda: list(DEFAULT_USER_IDENTIFIERS))
    client_identifiers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CLIENT_IDENTIFIERS)
    )
    phone_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_PHONE_PATTERNS))
    email_pattern: str = DEFAULT_EMAIL_PATTERN
    contextual_hints: list[ContextualHint] = Field(
        default_factory=lambda: [h.model_copy() for h in DEFAULT_HINTS]
    )

    def identifiers_for(self, role: Role) -> list[str]:
        return self.user_identifiers if role is Role.YOU else self.client_identifiers

    @classmethod
    def from_config(cls, config: SpeakerConfig) -> SpeakerProfile:
        """Build a profile from settings; empty identifier lists keep the defaults."""
        profile = cls()
        if config.profile_path is not None and config.profile_path.exists():
            try:
                profile = load_profile(config.profile_path)
            except (OSError, ValueError) as exc:
                emit_structured_error(
                    logger,
                    code=ErrorCode.PROFILE_LOAD_FAILED,
                    message=str(exc),
                    suppressed=True,
                    details={"path": str(config.profile_path)},
                )
        changes = {}
        if config.user_identifiers:
            changes["user_identifiers"] = list(config.user_identifiers)
        if config.client_identifiers:
            changes["client_identifiers"] = list(config.client_identifiers)
        return profile.model_copy(update=changes, deep=True) if changes else profile


def save_profile(profile: SpeakerProfile, path: Path) -> None:
    """Write the profile as JSON, replacing any previous file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(".tmp")
    try:
        temp_path.write_text(profile.model_dump_json(indent=2), encoding="utf-8")
        temp_path.replace(path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def load_profile(path: Path) -> SpeakerProfile:
    """Load a profile saved with ``save_profile``.

    Raises ``ValueError`` when the file is not a valid profile.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return SpeakerProfile.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ValueError(f"Invalid speaker profile at {path}: {exc}") from exc
