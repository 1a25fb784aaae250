"""Canal de notificaciones push (FCM).

Envía una notificación por token vía HTTP. Los errores se clasifican para
que el dispatcher pueda loguearlos por destinatario:

- InvalidToken: token no registrado / inválido (no tiene sentido reintentar)
- TransientPushError: 429, 5xx o error de red
- PushError: cualquier otra respuesta inesperada
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import requests

logger = logging.getLogger(__name__)

_INVALID_TOKEN_ERRORS = {"NotRegistered", "InvalidRegistration", "MismatchSenderId", "UNREGISTERED"}


class PushError(Exception):
    """Fallo genérico del canal push."""


class InvalidToken(PushError):
    pass


class TransientPushError(PushError):
    pass


class PushChannel(Protocol):
    def send(self, token: str, title: str, body: str) -> None:
        ...


class FcmPushChannel:
    def __init__(
        self,
        endpoint: str,
        server_key: Optional[str],
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._endpoint = endpoint
        self._server_key = server_key
        self._timeout = timeout
        self._session = session or requests.Session()

    def send(self, token: str, title: str, body: str) -> None:
        if not self._server_key:
            raise PushError("FCM_SERVER_KEY not configured")

        payload = {
            "to": token,
            "priority": "high",
            "notification": {"title": title, "body": body},
        }
        try:
            response = self._session.post(
                self._endpoint,
                json=payload,
                headers={
                    "Authorization": f"key={self._server_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransientPushError(f"network error: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientPushError(f"HTTP {response.status_code}")

        error = self._extract_error(response)
        if response.status_code == 404 or error in _INVALID_TOKEN_ERRORS:
            raise InvalidToken(error or f"HTTP {response.status_code}")
        if error in ("Unavailable", "InternalServerError"):
            raise TransientPushError(error)
        if not response.ok or error:
            raise PushError(error or f"HTTP {response.status_code}: {response.text[:200]}")

    @staticmethod
    def _extract_error(response: requests.Response) -> Optional[str]:
        try:
            data = response.json()
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None

        # Formato legacy: {"results": [{"error": "NotRegistered"}]}
        results = data.get("results") or []
        if results and isinstance(results[0], dict) and results[0].get("error"):
            return str(results[0]["error"])

        # Formato v1: {"error": {"status": "NOT_FOUND", "details": [{"errorCode": "UNREGISTERED"}]}}
        err = data.get("error")
        if isinstance(err, dict):
            for detail in err.get("details") or []:
                if isinstance(detail, dict) and detail.get("errorCode"):
                    return str(detail["errorCode"])
            return str(err.get("status") or err.get("message") or "unknown")
        if isinstance(err, str):
            return err
        return None
