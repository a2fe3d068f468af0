"""Telephony provider clients"""

from .twilio_service import TwilioService

__all__ = ["TwilioService"]
