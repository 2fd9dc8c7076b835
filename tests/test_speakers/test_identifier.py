"""Tests for evidence-based speaker identification."""

import threading

import pytest

from convoclean.signals.emitter import SignalEmitter
from convoclean.signals.types import SignalType
from convoclean.speakers.identifier import (
    ConversationContext,
    PriorMessage,
    SpeakerIdentifier,
)
from convoclean.speakers.profile import ContextualHint, Role, SpeakerProfile


@pytest.fixture
def identifier():
    return SpeakerIdentifier()


def margin(result):
    you = sum(e.score for e in result.evidence if e.implied_role is Role.YOU)
    client = sum(e.score for e in result.evidence if e.implied_role is Role.CLIENT)
    return you - client if result.role is Role.YOU else client - you


class TestIdentify:
    def test_sent_message_type(self, identifier):
        result = identifier.identify(sender="Sent", message_type="sent")
        assert result.role == Role.YOU
        assert result.confidence >= 0.9
        assert result.fallback_used is False

    def test_received_prefix(self, identifier):
        result = identifier.identify(sender="", message_type="Received (SMS)")
        assert result.role == Role.CLIENT
        assert result.evidence[0].source == "message_type"

    def test_phone_number_sender(self, identifier):
        result = identifier.identify(sender="+16475551234", message_type="", content="")
        assert result.role == Role.CLIENT
        assert 0.5 <= result.confidence <= 0.9
        assert [e.source for e in result.evidence] == ["phone_number"]

    def test_numeric_phone_cell(self, identifier):
        result = identifier.identify(sender=6475551234.0, message_type=None)
        assert result.role == Role.CLIENT

    def test_email_sender(self, identifier):
        result = identifier.identify(sender="jane@example.com", message_type="")
        assert result.role == Role.CLIENT
        assert result.evidence[0].source == "email_address"

    def test_no_evidence_defaults_to_client(self, identifier):
        result = identifier.identify(sender=None, message_type=None)
        assert result.role == Role.CLIENT
        assert result.fallback_used is True
        assert result.confidence == pytest.approx(0.1)
        assert result.evidence == []

    def test_tie_defaults_to_client(self):
        profile = SpeakerProfile(
            contextual_hints=[
                ContextualHint(
                    kind="phrase", pattern="alpha", implied_role=Role.CLIENT, base_confidence=0.5
                ),
                ContextualHint(
                    kind="phrase", pattern="beta", implied_role=Role.YOU, base_confidence=0.5
                ),
            ]
        )
        result = SpeakerIdentifier(profile).identify("", "", content="alpha beta gamma delta")
        assert len(result.evidence) == 2
        assert result.role == Role.CLIENT
        assert result.fallback_used is True
        assert result.confidence == pytest.approx(0.5)

    def test_flow_alone_decides(self):
        identifier = SpeakerIdentifier(SpeakerProfile(contextual_hints=[]))
        context = ConversationContext(
            previous_messages=[
                PriorMessage(role=Role.YOU, content="a"),
                PriorMessage(role=Role.CLIENT, content="b"),
            ]
        )
        result = identifier.identify("unknown", "", context=context)
        assert result.role == Role.YOU
        assert result.fallback_used is False
        assert result.confidence == pytest.approx(0.6)

    def test_short_identifier_needs_whole_token(self, identifier):
        assert identifier.identify("James", "").evidence == []
        result = identifier.identify("Me", "")
        assert result.role == Role.YOU
        assert result.evidence[0].source == "sender_name"

    def test_long_identifier_matches_substring(self, identifier):
        result = identifier.identify("Big Customer Co", "")
        assert result.role == Role.CLIENT
        assert result.evidence[0].source == "sender_name"

    def test_content_hints(self, identifier):
        result = identifier.identify("", "", content="Thanks, please send the quote")
        sources = [e.source for e in result.evidence]
        assert sources.count("content_phrase") == 1
        assert "content_vocabulary" in sources
        assert "content_style" in sources
        assert result.role == Role.CLIENT

    def test_style_hints_are_case_sensitive(self, identifier):
        result = identifier.identify("", "", content="got it, on my way over there now")
        styles = [e for e in result.evidence if e.source == "content_style"]
        assert len(styles) == 1
        assert styles[0].implied_role == Role.YOU

    def test_length_signals(self, identifier):
        long_result = identifier.identify("", "", content="x" * 250)
        assert any(
            e.source == "message_length" and e.implied_role is Role.CLIENT
            for e in long_result.evidence
        )
        short_result = identifier.identify("", "", content="ok")
        assert any(
            e.source == "message_length" and e.implied_role is Role.YOU
            for e in short_result.evidence
        )

    def test_conversation_flow_needs_two_messages(self, identifier):
        one = ConversationContext(previous_messages=[PriorMessage(role=Role.CLIENT)])
        assert all(
            e.source != "conversation_flow"
            for e in identifier.identify("", "", context=one).evidence
        )
        two = {"previous_messages": [{"role": "client"}, {"role": "you"}]}
        flow = [
            e for e in identifier.identify("", "", context=two).evidence
            if e.source == "conversation_flow"
        ]
        assert flow[0].implied_role == Role.CLIENT
        assert flow[0].confidence == pytest.approx(0.6)

    def test_malformed_context_is_ignored(self, identifier):
        result = identifier.identify("", "sent", context={"previous_messages": "nope"})
        assert result.role == Role.YOU

    def test_corroborating_evidence_never_lowers_margin(self, identifier):
        type_only = identifier.identify("", "sent")
        name_only = identifier.identify("Me", "")
        both = identifier.identify("Me", "sent")
        assert both.role == Role.YOU
        assert margin(both) >= margin(type_only)
        assert margin(both) >= margin(name_only)

    def test_thank_you_from_named_contact(self, identifier):
        result = identifier.identify(
            "John Smith", "received", content="thanks for the quick service!"
        )
        assert result.role == Role.CLIENT
        assert result.fallback_used is False

    def test_emits_signal(self):
        signals = SignalEmitter(run_id="run_speaker")
        SpeakerIdentifier(signals=signals).identify("Me", "sent")
        emitted = signals.of_type(SignalType.SPEAKER_IDENTIFIED)
        assert emitted[0].payload["role"] == "you"

    def test_invalid_profile_pattern_is_skipped(self):
        identifier = SpeakerIdentifier(SpeakerProfile(phone_patterns=["(unclosed"]))
        result = identifier.identify("555", "")
        assert result.fallback_used is True


class TestLearnFromCorrection:
    def test_adds_new_tokens(self, identifier):
        added = identifier.learn_from_correction("Mark Levy (Cell)", "client")
        assert added == ["mark", "levy", "cell"]
        assert "levy" in identifier.profile.client_identifiers
        assert identifier.identify("Levy", "").role == Role.CLIENT

    def test_skips_short_and_known_tokens(self, identifier):
        identifier.learn_from_correction("Al Owner", Role.YOU)
        assert identifier.learn_from_correction("owner", Role.YOU) == []
        assert "al" not in identifier.profile.user_identifiers

    def test_never_moves_cross_role_tokens(self):
        signals = SignalEmitter(run_id="run_learn")
        identifier = SpeakerIdentifier(signals=signals)
        added = identifier.learn_from_correction("Customer Service Desk", Role.YOU)

        profile = identifier.profile
        assert "customer" not in profile.user_identifiers
        assert "customer" in profile.client_identifiers
        assert added == ["service", "desk"]
        conflicts = signals.of_type(SignalType.PROFILE_CONFLICT)
        assert conflicts[0].payload["tokens"] == ["customer"]
        assert signals.of_type(SignalType.PROFILE_UPDATED)

    def test_concurrent_corrections_do_not_lose_updates(self, identifier):
        def learn(n):
            identifier.learn_from_correction(f"contact{n:03d}", Role.CLIENT)

        threads = [threading.Thread(target=learn, args=(n,)) for n in range(40)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        learned = [i for i in identifier.profile.client_identifiers if i.startswith("contact")]
        assert len(learned) == 40


class TestProfileManagement:
    def test_profile_is_a_copy(self, identifier):
        identifier.profile.user_identifiers.append("intruder")
        assert "intruder" not in identifier.profile.user_identifiers

    def test_update_profile(self, identifier):
        updated = identifier.update_profile(user_identifiers=["evan"])
        assert updated.user_identifiers == ["evan"]
        assert identifier.identify("Evan S", "").role == Role.YOU

    def test_update_profile_rejects_unknown_fields(self, identifier):
        with pytest.raises(ValueError):
            identifier.update_profile(nickname="x")

    def test_profile_stats(self, identifier):
        stats = identifier.profile_stats()
        assert stats["user_identifiers"] == 4
        assert stats["client_identifiers"] == 2
        assert stats["phone_patterns"] == 5
        assert stats["contextual_hints"] == 6

    def test_save_and_load(self, identifier, tmp_path):
        identifier.learn_from_correction("Becky Mobile", Role.CLIENT)
        path = tmp_path / "profile.json"
        identifier.save_profile(path)

        fresh = SpeakerIdentifier()
        fresh.load_profile(path)
        assert "becky" in fresh.profile.client_identifiers
        assert fresh.profile == identifier.profile
