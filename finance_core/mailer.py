"""Email delivery through an ordered chain of SMTP transports.

Providers are tried in order: an API-key relay (SendGrid), a
username/password SMTP account, and finally a throwaway Ethereal test
account. The first transport that verifies sends the message. Chains are
built per call from explicit :class:`MailSettings`; no transport is cached
between calls.
"""

from __future__ import annotations

import html
import logging
import re
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import getaddresses, make_msgid, parseaddr
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import requests

from .config import MailSettings
from .exceptions import DeliveryError

logger = logging.getLogger(__name__)

SmtpFactory = Callable[..., smtplib.SMTP]

_ETHEREAL_MSGID = re.compile(r"MSGID=([^\s\]]+)")

_HTML_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; \
border: 1px solid #eee; border-radius: 5px;">
  <h2 style="color: #3b82f6;">Finance Tracker Notification</h2>
  <p style="font-size: 16px; line-height: 1.5; color: #333;">{body}</p>
  <hr style="border: 0; height: 1px; background: #eee; margin: 20px 0;">
  <p style="font-size: 12px; color: #666;">This is an automated message from your Finance Tracker application.</p>
</div>"""


@dataclass(frozen=True)
class DeliveryResult:
    provider: str
    message_id: str
    accepted: List[str] = field(default_factory=list)
    response: Optional[str] = None
    preview_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "message_id": self.message_id,
            "accepted": list(self.accepted),
            "response": self.response,
            "preview_url": self.preview_url,
        }


def build_message(from_address: str, to_address: str, subject: str, body_text: str) -> EmailMessage:
    """Plain-text message with an HTML alternative part."""
    message = EmailMessage()
    message["From"] = from_address
    message["To"] = to_address
    message["Subject"] = subject
    message["Message-ID"] = make_msgid(domain="financetracker.com")
    message.set_content(body_text)
    message.add_alternative(_HTML_TEMPLATE.format(body=html.escape(body_text)), subtype="html")
    return message


class MailTransport:
    """SMTP transport with an explicit verify step.

    ``verify`` opens a connection, negotiates TLS and authenticates, raising on
    any failure. ``send`` delivers one message over a fresh connection.
    """

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        *,
        timeout: float = 10.0,
        smtp_factory: SmtpFactory = smtplib.SMTP,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout
        self._smtp_factory = smtp_factory

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self.host}:{self.port}>"

    def _connect(self) -> smtplib.SMTP:
        client = self._smtp_factory(self.host, self.port, timeout=self.timeout)
        try:
            client.ehlo()
            if client.has_extn("starttls"):
                client.starttls()
                client.ehlo()
            if self.username and self.password:
                client.login(self.username, self.password)
        except Exception:
            client.close()
            raise
        return client

    def verify(self) -> None:
        client = self._connect()
        client.quit()

    def send(self, message: EmailMessage) -> DeliveryResult:
        sender = parseaddr(str(message["From"]))[1]
        recipients = [addr for _, addr in getaddresses([str(message["To"])]) if addr]
        client = self._connect()
        try:
            code, reply = client.mail(sender)
            if code != 250:
                raise smtplib.SMTPSenderRefused(code, reply, sender)
            accepted = []
            for recipient in recipients:
                code, reply = client.rcpt(recipient)
                if code in (250, 251):
                    accepted.append(recipient)
            if not accepted:
                raise smtplib.SMTPRecipientsRefused({r: (code, reply) for r in recipients})
            code, reply = client.data(message.as_bytes())
            if code != 250:
                raise smtplib.SMTPDataError(code, reply)
        finally:
            try:
                client.quit()
            except smtplib.SMTPException:
                client.close()
        response = reply.decode("utf-8", "replace") if isinstance(reply, bytes) else str(reply)
        return DeliveryResult(
            provider=self.name,
            message_id=str(message["Message-ID"]),
            accepted=accepted,
            response=f"{code} {response}",
            preview_url=self.preview_url(response),
        )

    def preview_url(self, response: str) -> Optional[str]:
        return None


class ApiKeyTransport(MailTransport):
    """SendGrid SMTP relay authenticated with an API key."""

    name = "sendgrid"

    def __init__(self, api_key: str, host: str = "smtp.sendgrid.net", port: int = 587, **kwargs) -> None:
        super().__init__(host, port, "apikey", api_key, **kwargs)


class SmtpTransport(MailTransport):
    """Username/password SMTP account, Gmail by default."""

    name = "smtp"


class EphemeralTransport(MailTransport):
    """Throwaway Ethereal account provisioned on first verify.

    Messages are captured by Ethereal rather than delivered; each receipt
    carries a preview URL.
    """

    name = "ethereal"

    def __init__(
        self,
        api_url: str,
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        smtp_factory: SmtpFactory = smtplib.SMTP,
    ) -> None:
        super().__init__(
            "smtp.ethereal.email", 587, None, None, timeout=timeout, smtp_factory=smtp_factory
        )
        self.api_url = api_url
        self.web_url = "https://ethereal.email"
        self._session = session or requests.Session()

    def provision(self) -> None:
        response = self._session.post(
            self.api_url,
            json={"requestor": "finance-tracker", "version": "1.0"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        account = response.json()
        if account.get("status") != "success":
            raise RuntimeError(f"Ethereal account request failed: {account.get('error', account)}")
        smtp = account.get("smtp", {})
        self.host = smtp.get("host", self.host)
        self.port = int(smtp.get("port", self.port))
        self.username = account["user"]
        self.password = account["pass"]
        self.web_url = account.get("web", self.web_url)
        logger.info("Provisioned Ethereal test account %s", self.username)

    def verify(self) -> None:
        if not self.username:
            self.provision()
        super().verify()

    def preview_url(self, response: str) -> Optional[str]:
        match = _ETHEREAL_MSGID.search(response)
        if not match:
            return None
        return f"{self.web_url}/message/{match.group(1)}"


class MailChain:
    """Try each transport in order and send through the first that verifies."""

    def __init__(self, transports: Sequence[MailTransport], from_address: str) -> None:
        self.transports = list(transports)
        self.from_address = from_address

    @classmethod
    def from_settings(
        cls,
        settings: MailSettings,
        *,
        smtp_factory: SmtpFactory = smtplib.SMTP,
        session: Optional[requests.Session] = None,
    ) -> "MailChain":
        transports: List[MailTransport] = []
        if settings.api_key:
            transports.append(
                ApiKeyTransport(
                    settings.api_key,
                    settings.api_host,
                    settings.api_port,
                    timeout=settings.timeout,
                    smtp_factory=smtp_factory,
                )
            )
        if settings.smtp_user and settings.smtp_password:
            transports.append(
                SmtpTransport(
                    settings.smtp_host,
                    settings.smtp_port,
                    settings.smtp_user,
                    settings.smtp_password,
                    timeout=settings.timeout,
                    smtp_factory=smtp_factory,
                )
            )
        if settings.ethereal_enabled:
            transports.append(
                EphemeralTransport(
                    settings.ethereal_api_url,
                    timeout=settings.timeout,
                    session=session,
                    smtp_factory=smtp_factory,
                )
            )
        return cls(transports, settings.from_address)

    def select_transport(self) -> MailTransport:
        failures: List[Tuple[str, str]] = []
        for transport in self.transports:
            try:
                transport.verify()
            except Exception as exc:
                logger.warning("Mail transport %s failed verification: %s", transport.name, exc)
                failures.append((transport.name, str(exc) or type(exc).__name__))
                continue
            logger.debug("Mail transport %s verified", transport.name)
            return transport
        raise DeliveryError("Could not configure any email transport", failures)

    def send_email(self, to_address: str, subject: str, body_text: str) -> DeliveryResult:
        transport = self.select_transport()
        message = build_message(self.from_address, to_address, subject, body_text)
        result = transport.send(message)
        logger.info("Email sent via %s: %s", result.provider, result.message_id)
        if result.preview_url:
            logger.info("Preview URL: %s", result.preview_url)
        return result
