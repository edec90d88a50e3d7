"""Interaction package utilities."""

from interaction.speech import SpeechArbiter, SpeechConfig, SpeechStatus
from interaction.speech_hal import FakeSpeechEngine, LoggingSpeechEngine, create_speech_engine

__all__ = [
    "SpeechArbiter",
    "SpeechConfig",
    "SpeechStatus",
    "FakeSpeechEngine",
    "LoggingSpeechEngine",
    "create_speech_engine",
]
