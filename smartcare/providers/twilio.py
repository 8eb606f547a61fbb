"""Twilio telephony provider.

Wraps ``twilio.rest.Client`` for outbound calls, call lookups and SMS. The
Twilio SDK is blocking, so each request runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from loguru import logger
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from smartcare.config import TelephonyConfig
from smartcare.errors import ConfigError, TelephonyError
from smartcare.providers.base import CallInfo, Telephony

STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]


class TwilioTelephony(Telephony):
    """Twilio REST API client.

    Args:
        account_sid: Twilio account SID.
        auth_token: Twilio auth token.
        from_number: Number used as caller id for calls and as SMS sender.
        client: Optional pre-built ``twilio.rest.Client``.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        client: TwilioClient | None = None,
    ):
        self._from_number = from_number
        self._client = client or TwilioClient(account_sid, auth_token)

    @classmethod
    def from_config(cls, config: TelephonyConfig) -> TwilioTelephony:
        if not config.account_sid or not config.auth_token:
            raise ConfigError("telephony.account_sid and telephony.auth_token are required")
        return cls(config.account_sid, config.auth_token, config.from_number)

    async def _run(self, description: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except (TwilioException, OSError) as e:
            logger.error(f"Twilio {description} error: {e}")
            raise TelephonyError(f"{description}: {e}") from e

    async def create_call(self, to: str, answer_url: str, status_callback: str = "") -> str:
        kwargs: dict[str, Any] = {"to": to, "from_": self._from_number, "url": answer_url}
        if status_callback:
            kwargs["status_callback"] = status_callback
            kwargs["status_callback_event"] = STATUS_CALLBACK_EVENTS
            kwargs["status_callback_method"] = "POST"

        call = await self._run("outbound call", lambda: self._client.calls.create(**kwargs))
        logger.info(f"Outbound call initiated | Twilio SID: {call.sid} | From: {self._from_number} → To: {to}")
        return call.sid

    async def fetch_call(self, call_sid: str) -> CallInfo:
        call = await self._run("call lookup", lambda: self._client.calls(call_sid).fetch())
        return CallInfo(
            sid=call.sid,
            status=call.status or "",
            to=call.to or "",
            from_=call.from_ or "",
            direction=call.direction or "",
        )

    async def send_sms(self, to: str, body: str) -> str:
        message = await self._run(
            "SMS",
            lambda: self._client.messages.create(body=body, from_=self._from_number, to=to),
        )
        logger.info(f"SMS sent to {to} | SID: {message.sid}")
        return message.sid

    @property
    def name(self) -> str:
        return "twilio"
