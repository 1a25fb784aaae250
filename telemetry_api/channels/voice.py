"""Canal de escalado por llamada de voz (Twilio)."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from ..errors import EscalationFailure

logger = logging.getLogger(__name__)


class VoiceChannel(Protocol):
    def place_call(self, number: str, script_ref: str) -> str:
        ...


class TwilioVoiceChannel:
    """Realiza llamadas salientes que reproducen el guion ``script_ref`` (URL TwiML)."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        client: Optional[TwilioClient] = None,
    ) -> None:
        if not all([account_sid, auth_token, from_number]):
            raise ValueError("Twilio account_sid, auth_token and from_number are required")
        self._from = from_number
        self._client = client or TwilioClient(account_sid, auth_token)

    def place_call(self, number: str, script_ref: str) -> str:
        try:
            call = self._client.calls.create(to=number, from_=self._from, url=script_ref)
        except TwilioException as e:
            raise EscalationFailure(number, e) from e
        logger.info("[VOICE] Call placed to=%s sid=%s", number, call.sid)
        return call.sid
