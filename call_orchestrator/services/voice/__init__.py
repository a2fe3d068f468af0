"""Conversation provider clients"""

from .elevenlabs_service import ElevenLabsService

__all__ = ["ElevenLabsService"]
