"""Outbound identity emails, dispatched off the flow's critical path.

Issuing a token never waits for, or depends on, delivery. Gateway failures
are logged and recorded as security events; the token stays issued.
"""

import logging
from concurrent.futures import Executor, Future
from enum import Enum
from typing import Any, Protocol
from urllib.parse import urlencode

from clients.email_client import EmailGatewayError
from identity.config import IdentityConfig
from identity.security_logger import SecurityEvent, SecurityLogger

logger = logging.getLogger(__name__)


class MailKind(str, Enum):
    """Gateway template names."""

    MAGIC_LINK = "magic_link"
    EMAIL_VERIFICATION = "email_verification"
    RESET_PASSWORD = "reset_password"


class MailGateway(Protocol):
    def send(self, kind: str, recipient: str, variables: dict[str, Any]) -> None: ...


# Recorded once the gateway has accepted the message.
_SENT_EVENTS = {MailKind.MAGIC_LINK: SecurityEvent.MAGIC_LINK_SENT}


def _report_background_failure(future: Future) -> None:
    """Done-callback for background sends; logs anything `_deliver` let through."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error("Background mail dispatch failed", exc_info=error)


class MailDispatcher:
    """Builds identity emails and hands them to the gateway.

    With an executor, sends run in the background and `send` returns the
    Future. Without one, sends run inline but failures are still contained.
    """

    MAGIC_LINK_PATH = "/users/sign-in-with-magic-link"
    CHANGE_PASSWORD_PATH = "/users/change-password"

    def __init__(
        self,
        gateway: MailGateway,
        config: IdentityConfig,
        security_logger: SecurityLogger,
        executor: Executor | None = None,
    ):
        self._gateway = gateway
        self._config = config
        self._security_logger = security_logger
        self._executor = executor

    def _link(self, path: str, **params: str) -> str:
        return f"{self._config.app_base_url.rstrip('/')}{path}?{urlencode(params)}"

    def _deliver(self, kind: MailKind, recipient: str, variables: dict[str, Any]) -> None:
        try:
            self._gateway.send(kind.value, recipient, variables)
        except EmailGatewayError as e:
            logger.warning("Could not send %s email to %s: %s", kind.value, recipient, e)
            self._security_logger.log(
                SecurityEvent.MAIL_DISPATCH_FAILED,
                email=recipient,
                details={"kind": kind.value, "error": str(e)},
            )
            return

        event = _SENT_EVENTS.get(kind)
        if event is not None:
            self._security_logger.log(event, email=recipient)

    def send(self, kind: MailKind, recipient: str, variables: dict[str, Any]) -> Future | None:
        variables = {"app_name": self._config.app_name, **variables}
        if self._executor is None:
            self._deliver(kind, recipient, variables)
            return None
        future = self._executor.submit(self._deliver, kind, recipient, variables)
        future.add_done_callback(_report_background_failure)
        return future

    def send_magic_link(self, email: str, token: str) -> Future | None:
        return self.send(
            MailKind.MAGIC_LINK,
            email,
            {"link": self._link(self.MAGIC_LINK_PATH, magic_link_token=token)},
        )

    def send_verification_code(self, email: str, code: str) -> Future | None:
        return self.send(MailKind.EMAIL_VERIFICATION, email, {"code": code})

    def send_reset_password(self, email: str, token: str) -> Future | None:
        return self.send(
            MailKind.RESET_PASSWORD,
            email,
            {"link": self._link(self.CHANGE_PASSWORD_PATH, reset_password_token=token)},
        )
