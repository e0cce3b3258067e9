from dataclasses import replace

import pytest

from linkauth.schemas.email import EmailSendError
from linkauth.services import email as email_service


def test_magic_link_points_at_frontend_verify_page():
    link = email_service.build_magic_link("abc123")
    assert link == f"{email_service.settings.frontend_url}/auth/verify?token=abc123"


def test_log_backend_writes_link_to_log(caplog):
    caplog.set_level("INFO", logger="linkauth.services.email")
    assert email_service.deliver_magic_link("someone@example.com", "abc123") is True
    assert "token=abc123" in caplog.text


def test_gmail_backend_without_sender_fails(monkeypatch):
    monkeypatch.setattr(
        email_service,
        "settings",
        replace(email_service.settings, email_backend="gmail", email_sender=""),
    )
    with pytest.raises(EmailSendError, match="sender"):
        email_service.send_magic_link_email("someone@example.com", "abc123")


def test_delivery_failure_is_reported_not_raised(monkeypatch, caplog):
    def _boom(to_email, token):
        raise EmailSendError("relay down")

    monkeypatch.setattr(email_service, "send_magic_link_email", _boom)
    assert email_service.deliver_magic_link("someone@example.com", "abc123") is False
    assert "relay down" in caplog.text


class _Response:
    def __init__(self, payload: bytes) -> None:
        self._payload = payload

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def read(self) -> bytes:
        return self._payload


@pytest.fixture()
def google(monkeypatch):
    calls = []

    def _urlopen(request, timeout):
        calls.append(request)
        if request.full_url == email_service.GOOGLE_TOKEN_ENDPOINT:
            return _Response(b'{"access_token": "ya29.test", "expires_in": 3600}')
        return _Response(b'{"id": "msg-1"}')

    monkeypatch.setattr(email_service, "urlopen", _urlopen)
    return calls


def test_gmail_client_refreshes_once_and_sends(tmp_path, google):
    token_file = tmp_path / "token.json"
    token_file.write_text(
        '{"refresh_token": "1//rt", "client_id": "cid", "client_secret": "cs"}',
        encoding="utf-8",
    )
    client = email_service.GmailClient(token_file, tmp_path / "credentials.json")
    message = email_service._compose(
        "noreply@example.com", "someone@example.com", "Your Login Link", "hello"
    )

    client.send(message)
    client.send(message)

    urls = [request.full_url for request in google]
    assert urls == [
        email_service.GOOGLE_TOKEN_ENDPOINT,
        email_service.GMAIL_SEND_ENDPOINT,
        email_service.GMAIL_SEND_ENDPOINT,
    ]
    assert google[1].get_header("Authorization") == "Bearer ya29.test"


def test_gmail_client_reads_installed_app_credentials(tmp_path, google):
    token_file = tmp_path / "token.json"
    token_file.write_text('{"refresh_token": "1//rt"}', encoding="utf-8")
    credentials_file = tmp_path / "credentials.json"
    credentials_file.write_text(
        '{"installed": {"client_id": "cid", "client_secret": "cs"}}', encoding="utf-8"
    )
    client = email_service.GmailClient(token_file, credentials_file)

    client.send(email_service._compose("a@example.com", "b@example.com", "s", "b"))

    assert b"client_id=cid" in google[0].data


def test_gmail_client_without_token_file_fails(tmp_path, google):
    client = email_service.GmailClient(tmp_path / "missing.json", tmp_path / "c.json")
    with pytest.raises(EmailSendError, match="Missing Gmail file"):
        client.send(email_service._compose("a@example.com", "b@example.com", "s", "b"))
    assert google == []


def _token_file(tmp_path):
    token_file = tmp_path / "token.json"
    token_file.write_text(
        '{"refresh_token": "1//rt", "client_id": "cid", "client_secret": "cs"}',
        encoding="utf-8",
    )
    return token_file


def _message():
    return email_service._compose("a@example.com", "b@example.com", "s", "b")


def test_garbage_gmail_response_is_a_delivery_failure(tmp_path, monkeypatch):
    monkeypatch.setattr(
        email_service,
        "settings",
        replace(
            email_service.settings,
            email_backend="gmail",
            email_sender="noreply@example.com",
        ),
    )
    monkeypatch.setattr(
        email_service,
        "_client",
        email_service.GmailClient(_token_file(tmp_path), tmp_path / "c.json"),
    )
    monkeypatch.setattr(
        email_service,
        "urlopen",
        lambda request, timeout: _Response(b"<html>bad gateway</html>"),
    )

    assert email_service.deliver_magic_link("someone@example.com", "abc123") is False


def test_gmail_read_timeout_is_a_send_error(tmp_path, monkeypatch):
    def _urlopen(request, timeout):
        raise TimeoutError("read timed out")

    monkeypatch.setattr(email_service, "urlopen", _urlopen)
    client = email_service.GmailClient(_token_file(tmp_path), tmp_path / "c.json")

    with pytest.raises(EmailSendError, match="read timed out"):
        client.send(_message())


def test_gmail_bad_token_lifetime_is_a_send_error(tmp_path, monkeypatch):
    monkeypatch.setattr(
        email_service,
        "urlopen",
        lambda request, timeout: _Response(
            b'{"access_token": "ya29.test", "expires_in": "soon"}'
        ),
    )
    client = email_service.GmailClient(_token_file(tmp_path), tmp_path / "c.json")

    with pytest.raises(EmailSendError, match="bad expiry"):
        client.send(_message())


def test_unreadable_token_file_is_a_send_error(tmp_path, google):
    client = email_service.GmailClient(tmp_path, tmp_path / "c.json")

    with pytest.raises(EmailSendError, match="Cannot read Gmail file"):
        client.send(_message())
    assert google == []
