"""Speaker identifier — classifies a message as sent by you or by the client.

Every evidence source is evaluated; none short-circuits. Evidence is
partitioned by implied role, scored as Σ confidence × weight per side, and
the heavier side wins. Ties and empty evidence default to the client with
``fallback_used=True``.

The conversation-flow source assumes strict alternation between the two
parties. That is not true of batched sends or group threads, so it carries
a low weight and only breaks ties.
"""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from convoclean.config.settings import SpeakerConfig
from convoclean.signals.emitter import SignalEmitter
from convoclean.signals.types import SignalType
from convoclean.speakers.profile import (
    Role,
    SpeakerProfile,
    load_profile,
    save_profile,
)

logger = logging.getLogger(__name__)

_SENT_TYPES = ("sent", "outgoing", "outbox")
_RECEIVED_TYPES = ("received", "incoming", "inbox")

LONG_MESSAGE_CHARS = 200
SHORT_MESSAGE_CHARS = 20
DECIDED_CONFIDENCE_FLOOR = 0.5
DEFAULT_CONFIDENCE_FLOOR = 0.1


class PriorMessage(BaseModel):
    role: Role
    content: str = ""


class ConversationContext(BaseModel):
    previous_messages: list[PriorMessage] = Field(default_factory=list)


class IdentificationEvidence(BaseModel):
    """One atomic signal used to classify a speaker."""

    kind: Literal["explicit", "contextual", "pattern", "inference", "statistical"]
    source: str
    value: str
    confidence: float = Field(ge=0.0, le=1.0)
    weight: float = Field(ge=0.0)
    implied_role: Role

    model_config = {"frozen": True}

    @property
    def score(self) -> float:
        return self.confidence * self.weight


class IdentificationResult(BaseModel):
    role: Role
    confidence: float = Field(ge=0.0, le=1.0)
    evidence: list[IdentificationEvidence] = Field(default_factory=list)
    reasoning: str
    fallback_used: bool


def _as_text(value: Any) -> str:
    """Spreadsheet cells arrive as str, numbers, None, or NaN."""
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, float) and value != value:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


class SpeakerIdentifier:
    """Owns one speaker profile and classifies messages against it.

    Not a process-wide singleton: each analysis session constructs its own
    identifier, and corrections accumulate on that instance only.
    """

    def __init__(
        self,
        profile: SpeakerProfile | None = None,
        signals: SignalEmitter | None = None,
    ) -> None:
        self._profile = profile.model_copy(deep=True) if profile else SpeakerProfile()
        self._signals = signals
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls, config: SpeakerConfig | None = None, signals: SignalEmitter | None = None
    ) -> SpeakerIdentifier:
        return cls(SpeakerProfile.from_config(config or SpeakerConfig()), signals=signals)

    @property
    def profile(self) -> SpeakerProfile:
        """Deep copy of the current profile."""
        with self._lock:
            return self._profile.model_copy(deep=True)

    # --- Identification ---

    def identify(
        self,
        sender: Any,
        message_type: Any,
        content: Any = None,
        context: ConversationContext | dict[str, Any] | None = None,
    ) -> IdentificationResult:
        """Classify one message. Never raises."""
        profile = self.profile
        sender_text = _as_text(sender)
        content_text = _as_text(content)

        evidence: list[IdentificationEvidence] = []
        for found in (
            self._message_type_evidence(_as_text(message_type)),
            self._sender_name_evidence(sender_text, profile),
            self._contact_evidence(sender_text, profile),
        ):
            if found is not None:
                evidence.append(found)
        evidence.extend(self._content_evidence(content_text, profile))
        flow = self._flow_evidence(context)
        if flow is not None:
            evidence.append(flow)

        result = self._aggregate(evidence)

        if self._signals is not None:
            self._signals.emit(
                SignalType.SPEAKER_IDENTIFIED,
                {
                    "role": result.role.value,
                    "confidence": result.confidence,
                    "fallback_used": result.fallback_used,
                    "evidence": [e.source for e in evidence],
                },
            )
        return result

    @staticmethod
    def _aggregate(evidence: list[IdentificationEvidence]) -> IdentificationResult:
        you_score = sum(e.score for e in evidence if e.implied_role is Role.YOU)
        client_score = sum(e.score for e in evidence if e.implied_role is Role.CLIENT)
        total_weight = sum(e.weight for e in evidence)
        mean = sum(e.score for e in evidence) / total_weight if total_weight > 0 else 0.0

        if you_score > client_score:
            role, fallback, reasoning = Role.YOU, False, "Evidence favors the account owner"
        elif client_score > you_score:
            role, fallback, reasoning = Role.CLIENT, False, "Evidence favors the client"
        elif evidence:
            role, fallback, reasoning = Role.CLIENT, True, "Evidence tied, defaulting to client"
        else:
            role, fallback, reasoning = Role.CLIENT, True, "No evidence, defaulting to client"

        floor = DEFAULT_CONFIDENCE_FLOOR if fallback else DECIDED_CONFIDENCE_FLOOR
        return IdentificationResult(
            role=role,
            confidence=min(1.0, max(mean, floor)),
            evidence=evidence,
            reasoning=f"{reasoning} (you={you_score:.2f}, client={client_score:.2f})",
            fallback_used=fallback,
        )

    # --- Evidence sources ---

    @staticmethod
    def _message_type_evidence(message_type: str) -> IdentificationEvidence | None:
        normalized = message_type.lower()
        if not normalized:
            return None
        if normalized.startswith(_SENT_TYPES):
            role = Role.YOU
        elif normalized.startswith(_RECEIVED_TYPES):
            role = Role.CLIENT
        else:
            return None
        return IdentificationEvidence(
            kind="explicit",
            source="message_type",
            value=message_type,
            confidence=0.95,
            weight=3.0,
            implied_role=role,
        )

    @staticmethod
    def _sender_name_evidence(
        sender: str, profile: SpeakerProfile
    ) -> IdentificationEvidence | None:
        if not sender:
            return None
        normalized = sender.lower()
        tokens = set(re.findall(r"\w+", normalized))
        for role in (Role.YOU, Role.CLIENT):
            for identifier in profile.identifiers_for(role):
                needle = identifier.strip().lower()
                if not needle:
                    continue
                # Short identifiers like "me" must not match inside "James".
                matched = needle in tokens if len(needle) <= 3 else needle in normalized
                if matched:
                    return IdentificationEvidence(
                        kind="explicit",
                        source="sender_name",
                        value=f'{identifier} in "{sender}"',
                        confidence=0.9,
                        weight=2.5,
                        implied_role=role,
                    )
        return None

    @staticmethod
    def _contact_evidence(sender: str, profile: SpeakerProfile) -> IdentificationEvidence | None:
        if not sender:
            return None
        for pattern in profile.phone_patterns:
            if _safe_search(pattern, sender, 0):
                return IdentificationEvidence(
                    kind="pattern",
                    source="phone_number",
                    value=sender,
                    confidence=0.8,
                    weight=2.0,
                    implied_role=Role.CLIENT,
                )
        if _safe_search(profile.email_pattern, sender, 0):
            return IdentificationEvidence(
                kind="pattern",
                source="email_address",
                value=sender,
                confidence=0.7,
                weight=1.5,
                implied_role=Role.CLIENT,
            )
        return None

    @staticmethod
    def _content_evidence(content: str, profile: SpeakerProfile) -> list[IdentificationEvidence]:
        if not content:
            return []
        evidence = []
        for hint in profile.contextual_hints:
            flags = 0 if hint.case_sensitive else re.IGNORECASE
            match = _safe_search(hint.pattern, content, flags)
            if match:
                evidence.append(
                    IdentificationEvidence(
                        kind="contextual",
                        source=f"content_{hint.kind}",
                        value=f'{hint.description}: "{match.group(0)}"',
                        confidence=hint.base_confidence,
                        weight=1.0,
                        implied_role=hint.implied_role,
                    )
                )

        if len(content) > LONG_MESSAGE_CHARS:
            evidence.append(
                IdentificationEvidence(
                    kind="statistical",
                    source="message_length",
                    value=f"Long message ({len(content)} chars)",
                    confidence=0.4,
                    weight=0.5,
                    implied_role=Role.CLIENT,
                )
            )
        elif len(content) < SHORT_MESSAGE_CHARS:
            evidence.append(
                IdentificationEvidence(
                    kind="statistical",
                    source="message_length",
                    value=f"Short message ({len(content)} chars)",
                    confidence=0.3,
                    weight=0.3,
                    implied_role=Role.YOU,
                )
            )
        return evidence

    @staticmethod
    def _flow_evidence(
        context: ConversationContext | dict[str, Any] | None,
    ) -> IdentificationEvidence | None:
        if context is None:
            return None
        if not isinstance(context, ConversationContext):
            try:
                context = ConversationContext.model_validate(context)
            except ValidationError:
                logger.debug("Ignoring malformed conversation context")
                return None

        recent = context.previous_messages[-3:]
        if len(recent) < 2:
            return None
        last = recent[-1].role
        expected = last.opposite
        return IdentificationEvidence(
            kind="inference",
            source="conversation_flow",
            value=f"Expected {expected.value} after {last.value}",
            confidence=0.6,
            weight=1.0,
            implied_role=expected,
        )

    # --- Profile mutation ---

    def learn_from_correction(self, sender: Any, correct_role: Role | str) -> list[str]:
        """Add the sender's tokens to the corrected role's identifier list.

        Tokens already claimed by the opposite role are left where they are
        and reported through a PROFILE_CONFLICT signal. Returns the tokens added.
        """
        role = Role(correct_role)
        tokens = [t for t in re.split(r"\W+", _as_text(sender).lower()) if len(t) > 2]

        added: list[str] = []
        conflicts: list[str] = []
        with self._lock:
            own = self._profile.identifiers_for(role)
            other = self._profile.identifiers_for(role.opposite)
            own_lower = {i.lower() for i in own}
            other_lower = {i.lower() for i in other}
            for token in tokens:
                if token in other_lower:
                    if token not in conflicts:
                        conflicts.append(token)
                elif token not in own_lower and token not in added:
                    added.append(token)
            own.extend(added)

        if added:
            logger.info("Learned %d identifier(s) for %s", len(added), role.value)
            if self._signals is not None:
                self._signals.emit(
                    SignalType.PROFILE_UPDATED,
                    {"role": role.value, "added": added},
                )
        if conflicts:
            logger.warning(
                "Correction tokens already claimed by %s: %s",
                role.opposite.value,
                ", ".join(conflicts),
            )
            if self._signals is not None:
                self._signals.emit(
                    SignalType.PROFILE_CONFLICT,
                    {
                        "role": role.value,
                        "claimed_by": role.opposite.value,
                        "tokens": conflicts,
                    },
                )
        return added

    def update_profile(self, **changes: Any) -> SpeakerProfile:
        """Replace profile fields wholesale. Raises ValueError on unknown or invalid fields."""
        unknown = set(changes) - set(SpeakerProfile.model_fields)
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        with self._lock:
            merged = {**self._profile.model_dump(), **changes}
            self._profile = SpeakerProfile.model_validate(merged)
            snapshot = self._profile.model_copy(deep=True)
        if self._signals is not None:
            self._signals.emit(SignalType.PROFILE_UPDATED, {"fields": sorted(changes)})
        return snapshot

    def profile_stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "user_identifiers": len(self._profile.user_identifiers),
                "client_identifiers": len(self._profile.client_identifiers),
                "phone_patterns": len(self._profile.phone_patterns),
                "contextual_hints": len(self._profile.contextual_hints),
            }

    def save_profile(self, path: Path) -> None:
        save_profile(self.profile, path)

    def load_profile(self, path: Path) -> None:
        """Replace the current profile with one read from disk."""
        loaded = load_profile(path)
        with self._lock:
            self._profile = loaded


def _safe_search(pattern: str, text: str, flags: int) -> re.Match | None:
    """Profile patterns are user data; an invalid one is skipped, not raised."""
    try:
        return re.search(pattern, text, flags)
    except re.error:
        logger.warning("Skipping invalid profile pattern %r", pattern)
        return None
