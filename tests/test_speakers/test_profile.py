"""Tests for speaker profile defaults and persistence."""

import logging

import pytest

from convoclean.config.settings import SpeakerConfig
from convoclean.speakers.profile import (
    DEFAULT_HINTS,
    ContextualHint,
    Role,
    SpeakerProfile,
    load_profile,
    save_profile,
)


class TestSpeakerProfile:
    def test_defaults(self):
        profile = SpeakerProfile()
        assert "me" in profile.user_identifiers
        assert "customer" in profile.client_identifiers
        assert len(profile.phone_patterns) == 5
        assert len(profile.contextual_hints) == len(DEFAULT_HINTS)

    def test_default_lists_are_not_shared(self):
        a = SpeakerProfile()
        a.user_identifiers.append("shared?")
        assert "shared?" not in SpeakerProfile().user_identifiers

    def test_role_opposite(self):
        assert Role.YOU.opposite is Role.CLIENT
        assert Role.CLIENT.opposite is Role.YOU

    def test_hint_confidence_bounds(self):
        with pytest.raises(Exception):
            ContextualHint(kind="phrase", pattern="x", implied_role="you", base_confidence=2.0)

    def test_hint_rejects_unknown_kind(self):
        with pytest.raises(Exception):
            ContextualHint(kind="mood", pattern="x", implied_role="you", base_confidence=0.5)


class TestPersistence:
    def test_round_trip(self, tmp_path):
        profile = SpeakerProfile(user_identifiers=["evan"], client_identifiers=["levy"])
        path = tmp_path / "nested" / "profile.json"
        save_profile(profile, path)
        assert load_profile(path) == profile
        assert not path.with_suffix(".tmp").exists()

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "profile.json"
        path.write_text("{not json")
        with pytest.raises(ValueError):
            load_profile(path)

    def test_load_invalid_shape(self, tmp_path):
        path = tmp_path / "profile.json"
        path.write_text('{"user_identifiers": "evan"}')
        with pytest.raises(ValueError):
            load_profile(path)


class TestFromConfig:
    def test_identifier_overrides(self):
        cfg = SpeakerConfig(user_identifiers=["evan"], client_identifiers=[], profile_path=None)
        profile = SpeakerProfile.from_config(cfg)
        assert profile.user_identifiers == ["evan"]
        assert profile.client_identifiers == SpeakerProfile().client_identifiers

    def test_loads_profile_file(self, tmp_path):
        path = tmp_path / "profile.json"
        save_profile(SpeakerProfile(client_identifiers=["becky"]), path)
        cfg = SpeakerConfig(user_identifiers=[], client_identifiers=[], profile_path=path)
        assert SpeakerProfile.from_config(cfg).client_identifiers == ["becky"]

    def test_missing_profile_file_uses_defaults(self, tmp_path):
        cfg = SpeakerConfig(
            user_identifiers=[], client_identifiers=[], profile_path=tmp_path / "absent.json"
        )
        assert SpeakerProfile.from_config(cfg) == SpeakerProfile()

    def test_corrupt_profile_file_is_reported(self, tmp_path, caplog):
        path = tmp_path / "profile.json"
        path.write_text("garbage")
        cfg = SpeakerConfig(user_identifiers=[], client_identifiers=[], profile_path=path)
        with caplog.at_level(logging.ERROR):
            profile = SpeakerProfile.from_config(cfg)
        assert profile == SpeakerProfile()
        assert any(
            getattr(r, "error_code", None) == "PROFILE_LOAD_FAILED" for r in caplog.records
        )
