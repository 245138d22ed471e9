import smtplib

import pytest

from finance_core.config import MailSettings
from finance_core.exceptions import DeliveryError
from finance_core.mailer import (
    ApiKeyTransport,
    DeliveryResult,
    EphemeralTransport,
    MailChain,
    MailTransport,
    SmtpTransport,
    build_message,
)


class StubTransport(MailTransport):
    def __init__(self, name, *, verifies=True):
        super().__init__("localhost", 25, None, None)
        self.name = name
        self.verifies = verifies
        self.verified = 0
        self.sent = []

    def verify(self):
        self.verified += 1
        if not self.verifies:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    def send(self, message):
        self.sent.append(message)
        return DeliveryResult(provider=self.name, message_id=str(message["Message-ID"]))


class FakeSMTP:
    """In-memory stand-in for smtplib.SMTP recording the conversation."""

    instances = []

    def __init__(self, host, port, timeout=None, *, data_reply=b"2.0.0 Ok: queued", fail_login=False):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.data_reply = data_reply
        self.fail_login = fail_login
        self.log = []
        FakeSMTP.instances.append(self)

    def ehlo(self):
        self.log.append("ehlo")
        return 250, b"ok"

    def has_extn(self, name):
        return name == "starttls"

    def starttls(self):
        self.log.append("starttls")

    def login(self, user, password):
        if self.fail_login:
            raise smtplib.SMTPAuthenticationError(535, b"nope")
        self.log.append(("login", user, password))

    def mail(self, sender):
        self.log.append(("mail", sender))
        return 250, b"ok"

    def rcpt(self, recipient):
        self.log.append(("rcpt", recipient))
        return 250, b"ok"

    def data(self, payload):
        self.log.append(("data", payload))
        return 250, self.data_reply

    def quit(self):
        self.log.append("quit")

    def close(self):
        self.log.append("close")


@pytest.fixture(autouse=True)
def _reset_fake_smtp():
    FakeSMTP.instances = []


def test_first_verified_transport_wins():
    primary = StubTransport("sendgrid", verifies=False)
    secondary = StubTransport("smtp")
    ephemeral = StubTransport("ethereal")
    chain = MailChain([primary, secondary, ephemeral], "noreply@example.com")

    result = chain.send_email("alice@example.com", "Hello", "Body")

    assert result.provider == "smtp"
    assert len(secondary.sent) == 1
    assert ephemeral.verified == 0
    assert primary.sent == []


def test_all_transports_failing_raises_with_diagnostics():
    chain = MailChain(
        [StubTransport(name, verifies=False) for name in ("sendgrid", "smtp", "ethereal")],
        "noreply@example.com",
    )

    with pytest.raises(DeliveryError) as excinfo:
        chain.send_email("alice@example.com", "Hello", "Body")

    assert [name for name, _ in excinfo.value.failures] == ["sendgrid", "smtp", "ethereal"]
    assert "bad credentials" in str(excinfo.value)


def test_empty_chain_raises():
    with pytest.raises(DeliveryError):
        MailChain([], "noreply@example.com").send_email("a@example.com", "s", "b")


def test_from_settings_orders_configured_providers():
    settings = MailSettings(api_key="SG.key", smtp_user="me@gmail.com", smtp_password="pw", timeout=5)

    chain = MailChain.from_settings(settings)

    assert [type(t) for t in chain.transports] == [ApiKeyTransport, SmtpTransport, EphemeralTransport]
    assert chain.transports[0].username == "apikey"
    assert chain.transports[0].password == "SG.key"
    assert all(t.timeout == 5 for t in chain.transports)


def test_from_settings_skips_unconfigured_providers():
    chain = MailChain.from_settings(MailSettings(smtp_user="me@gmail.com"))

    assert [t.name for t in chain.transports] == ["ethereal"]


def test_settings_read_from_environment():
    settings = MailSettings.from_env({
        "SENDGRID_API_KEY": "SG.abc",
        "GMAIL_USER": "me@gmail.com",
        "GMAIL_PASS": "secret",
        "EMAIL_FROM": "Budget Bot <bot@example.com>",
        "EMAIL_TIMEOUT": "7.5",
        "EMAIL_ETHEREAL_ENABLED": "false",
    })

    assert settings.api_key == "SG.abc"
    assert settings.smtp_user == "me@gmail.com"
    assert settings.smtp_password == "secret"
    assert settings.from_address == "Budget Bot <bot@example.com>"
    assert settings.timeout == 7.5
    assert settings.ethereal_enabled is False


def test_message_has_text_and_html_parts():
    message = build_message("noreply@example.com", "alice@example.com", "Alert", "Spent <80%>")

    assert message["To"] == "alice@example.com"
    assert message["Message-ID"]
    text = message.get_body(preferencelist=("plain",)).get_content()
    markup = message.get_body(preferencelist=("html",)).get_content()
    assert "Spent <80%>" in text
    assert "Spent &lt;80%&gt;" in markup


def test_smtp_transport_authenticates_and_delivers():
    transport = SmtpTransport("smtp.example.com", 587, "me", "pw", timeout=3, smtp_factory=FakeSMTP)
    message = build_message("noreply@example.com", "alice@example.com", "Alert", "Body")

    transport.verify()
    result = transport.send(message)

    verify_conn, send_conn = FakeSMTP.instances
    assert verify_conn.timeout == 3
    assert verify_conn.log == ["ehlo", "starttls", "ehlo", ("login", "me", "pw"), "quit"]
    assert ("mail", "noreply@example.com") in send_conn.log
    assert ("rcpt", "alice@example.com") in send_conn.log
    assert result.provider == "smtp"
    assert result.accepted == ["alice@example.com"]
    assert result.message_id == message["Message-ID"]
    assert result.preview_url is None


def test_verify_failure_closes_the_connection():
    def factory(host, port, timeout=None):
        return FakeSMTP(host, port, timeout, fail_login=True)

    transport = SmtpTransport("smtp.example.com", 587, "me", "pw", smtp_factory=factory)

    with pytest.raises(smtplib.SMTPAuthenticationError):
        transport.verify()
    assert FakeSMTP.instances[0].log[-1] == "close"


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise RuntimeError(f"HTTP {self.status}")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def post(self, url, json=None, timeout=None):
        self.requests.append((url, json, timeout))
        return self.response


def test_ephemeral_transport_provisions_account_and_reports_preview_url():
    session = FakeSession(FakeResponse({
        "status": "success",
        "user": "kim.doe@ethereal.email",
        "pass": "secret",
        "smtp": {"host": "smtp.ethereal.email", "port": 587, "secure": False},
        "web": "https://ethereal.email",
    }))

    def factory(host, port, timeout=None):
        return FakeSMTP(host, port, timeout, data_reply=b"Accepted [STATUS=new MSGID=abc-123]")

    transport = EphemeralTransport("https://api.example/user", timeout=4, session=session, smtp_factory=factory)
    transport.verify()
    result = transport.send(build_message("noreply@example.com", "alice@example.com", "Alert", "Body"))

    assert session.requests == [
        ("https://api.example/user", {"requestor": "finance-tracker", "version": "1.0"}, 4)
    ]
    assert transport.username == "kim.doe@ethereal.email"
    assert ("login", "kim.doe@ethereal.email", "secret") in FakeSMTP.instances[0].log
    assert result.provider == "ethereal"
    assert result.preview_url == "https://ethereal.email/message/abc-123"


def test_ephemeral_provisioning_failure_fails_verification():
    session = FakeSession(FakeResponse({"status": "error", "error": "rate limited"}))
    transport = EphemeralTransport("https://api.example/user", session=session, smtp_factory=FakeSMTP)

    with pytest.raises(RuntimeError, match="rate limited"):
        transport.verify()
    assert FakeSMTP.instances == []
