"""Cola de escalado por voz.

Las llamadas se hacen de una en una con una pausa fija entre ellas
(por defecto 60s) para no saturar el canal. Es un rate-limit cooperativo,
no backpressure: el volumen es bajo (una alerta de dispositivo a la vez).

Un fallo en una llamada se loguea y NO detiene las siguientes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from ..channels.voice import VoiceChannel
from ..errors import EscalationFailure
from ..metrics import ESCALATION_CALLS

logger = logging.getLogger(__name__)

DEFAULT_INTER_CALL_DELAY_SECONDS = 60.0


@dataclass(frozen=True)
class EscalationCall:
    device_id: str
    number: str


class EscalationQueue:
    def __init__(
        self,
        voice: VoiceChannel,
        script_ref: str,
        inter_call_delay_seconds: float = DEFAULT_INTER_CALL_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._voice = voice
        self._script_ref = script_ref
        self._delay = float(inter_call_delay_seconds)
        self._sleep = sleep
        self._queue: "asyncio.Queue[EscalationCall]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

        self._placed = 0
        self._failed = 0

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._run(), name="escalation-worker"
            )
            logger.info("[ESCALATION] Worker started delay=%.1fs", self._delay)

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("[ESCALATION] Stopped. %s", self.stats)

    def enqueue(self, device_id: str, numbers: Sequence[str]) -> int:
        """Encola una llamada por número. No bloquea."""
        for number in numbers:
            self._queue.put_nowait(EscalationCall(device_id=device_id, number=number))
        if numbers:
            logger.info(
                "[ESCALATION] Queued %d calls device=%s pending=%d",
                len(numbers),
                device_id,
                self._queue.qsize(),
            )
        return len(numbers)

    async def join(self) -> None:
        """Espera a que todas las llamadas encoladas se hayan procesado."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            call = await self._queue.get()
            try:
                await self._place(call)
                # La pausa cuenta aunque la llamada haya fallado
                await self._sleep(self._delay)
            finally:
                self._queue.task_done()

    async def _place(self, call: EscalationCall) -> None:
        try:
            call_id = await asyncio.to_thread(self._voice.place_call, call.number, self._script_ref)
        except EscalationFailure as e:
            self._failed += 1
            ESCALATION_CALLS.labels(status="failed").inc()
            logger.error("[ESCALATION] %s (device=%s)", e, call.device_id)
            return
        except Exception as e:
            self._failed += 1
            ESCALATION_CALLS.labels(status="failed").inc()
            logger.exception(
                "[ESCALATION] Unexpected error calling %s (device=%s): %s",
                call.number,
                call.device_id,
                e,
            )
            return

        self._placed += 1
        ESCALATION_CALLS.labels(status="placed").inc()
        logger.info(
            "[ESCALATION] Call placed device=%s number=%s call_id=%s",
            call.device_id,
            call.number,
            call_id,
        )

    @property
    def stats(self) -> dict:
        return {
            "pending": self._queue.qsize(),
            "placed": self._placed,
            "failed": self._failed,
            "running": self._worker is not None and not self._worker.done(),
            "inter_call_delay_seconds": self._delay,
        }
