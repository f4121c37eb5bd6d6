"""Composition root tests (no provider is contacted)."""

from __future__ import annotations

import pytest

from app.config.dependencies import build_chain, build_pipeline
from app.config.settings import settings
from app.services.elevenlabs import ElevenLabsTranscriber
from tests.fakes import FakeAudioStore, InMemoryRecordingRepository, ScriptedLlmClient


def test_build_chain_follows_configured_priority():
    chain = build_chain(["elevenlabs-v2", "elevenlabs-v1"])

    assert all(isinstance(provider, ElevenLabsTranscriber) for provider in chain)
    assert [provider.name for provider in chain] == ["elevenlabs-v2", "elevenlabs-v1"]


def test_build_chain_rejects_unknown_provider():
    with pytest.raises(ValueError, match="Unknown transcription provider"):
        build_chain(["whisper"])


def test_configured_keyterms_reach_the_pipeline(monkeypatch):
    monkeypatch.setattr(settings.pipeline, "keyterms", ["Maya", "dinosaur"])

    pipeline = build_pipeline(InMemoryRecordingRepository(), FakeAudioStore(), ScriptedLlmClient())

    assert pipeline.keyterms == ("Maya", "dinosaur")
