"""Dispatcher de notificaciones para alertas nuevas.

Se invoca SOLO en la transición NEW_ALERT. Resuelve los destinatarios con
una consulta fresca al directorio (independiente del cache de settings) y
envía un push por destinatario con token. Un fallo por destinatario se
loguea y no aborta el envío al resto.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .escalation import EscalationQueue
from ..channels.push import InvalidToken, PushChannel, PushError, TransientPushError
from ..core.cache.settings_cache import RecipientDirectory
from ..core.domain.settings import Recipient
from ..errors import NotificationFailure
from ..metrics import PUSH_NOTIFICATIONS

logger = logging.getLogger(__name__)

ALERT_TITLE = "Aeration alert"


@dataclass
class DispatchResult:
    device_id: str
    delivered: List[str] = field(default_factory=list)
    failures: List[NotificationFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    escalated: int = 0

    @property
    def any_delivered(self) -> bool:
        return bool(self.delivered)


class NotificationDispatcher:
    def __init__(
        self,
        directory: RecipientDirectory,
        push: PushChannel,
        escalation: Optional[EscalationQueue] = None,
        escalation_numbers: Sequence[str] = (),
        title: str = ALERT_TITLE,
    ) -> None:
        self._directory = directory
        self._push = push
        self._escalation = escalation
        self._escalation_numbers = tuple(escalation_numbers)
        self._title = title

    async def dispatch(self, device_id: str, message: str) -> DispatchResult:
        result = DispatchResult(device_id=device_id)

        try:
            recipients = await asyncio.to_thread(self._directory.query_recipients, device_id)
        except Exception as e:
            logger.error("[PUSH] Recipient lookup failed device=%s: %s", device_id, e)
            return result

        body = f"Device {device_id}: {message}"
        for recipient in recipients:
            if not recipient.fcm_token:
                result.skipped.append(recipient.user_id)
                continue
            failure = await self._send_one(recipient, body)
            if failure is None:
                result.delivered.append(recipient.user_id)
            else:
                result.failures.append(failure)

        if self._escalation is not None:
            numbers = self._escalation_targets(recipients)
            result.escalated = self._escalation.enqueue(device_id, numbers)

        logger.info(
            "[PUSH] Dispatch device=%s delivered=%d failed=%d skipped=%d escalated=%d",
            device_id,
            len(result.delivered),
            len(result.failures),
            len(result.skipped),
            result.escalated,
        )
        return result

    async def _send_one(self, recipient: Recipient, body: str) -> Optional[NotificationFailure]:
        try:
            await asyncio.to_thread(self._push.send, recipient.fcm_token, self._title, body)
        except InvalidToken as e:
            PUSH_NOTIFICATIONS.labels(status="invalid_token").inc()
            logger.warning("[PUSH] Invalid token user=%s: %s", recipient.user_id, e)
            return NotificationFailure(recipient.user_id, "invalid_token", e)
        except TransientPushError as e:
            PUSH_NOTIFICATIONS.labels(status="transient").inc()
            logger.warning("[PUSH] Transient failure user=%s: %s", recipient.user_id, e)
            return NotificationFailure(recipient.user_id, "transient", e)
        except PushError as e:
            PUSH_NOTIFICATIONS.labels(status="failed").inc()
            logger.error("[PUSH] Push failed user=%s: %s", recipient.user_id, e)
            return NotificationFailure(recipient.user_id, "failed", e)
        except Exception as e:
            PUSH_NOTIFICATIONS.labels(status="failed").inc()
            logger.exception("[PUSH] Unexpected error user=%s: %s", recipient.user_id, e)
            return NotificationFailure(recipient.user_id, "unknown", e)

        PUSH_NOTIFICATIONS.labels(status="delivered").inc()
        return None

    def _escalation_targets(self, recipients: Sequence[Recipient]) -> List[str]:
        # Lista fija primero, luego los tutores de cada destinatario; sin duplicados
        seen: set[str] = set()
        numbers: List[str] = []
        candidates = list(self._escalation_numbers)
        for recipient in recipients:
            candidates.extend(recipient.guardian_numbers)
        for number in candidates:
            if number not in seen:
                seen.add(number)
                numbers.append(number)
        return numbers
