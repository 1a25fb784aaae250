"""Canales salientes: push (FCM) y escalado por voz (Twilio)."""

from .push import FcmPushChannel, InvalidToken, PushChannel, PushError, TransientPushError
from .voice import TwilioVoiceChannel, VoiceChannel

__all__ = [
    "FcmPushChannel",
    "InvalidToken",
    "PushChannel",
    "PushError",
    "TransientPushError",
    "TwilioVoiceChannel",
    "VoiceChannel",
]
