from __future__ import annotations

import base64
import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from linkauth.config import settings
from linkauth.schemas.email import EmailSendError

LOGGER = logging.getLogger(__name__)

GMAIL_SEND_ENDPOINT = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"
GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
REQUEST_TIMEOUT_SECONDS = 10
_CREDENTIALS_DIR = Path(__file__).resolve().parents[2] / "credentials"


def deliver_magic_link(to_email: str, token: str) -> bool:
    try:
        send_magic_link_email(to_email, token)
    except (EmailSendError, OSError) as exc:
        LOGGER.error("Magic link delivery to %s failed: %s", to_email, exc)
        return False
    return True


def send_magic_link_email(to_email: str, token: str) -> None:
    link = build_magic_link(token)
    if settings.email_backend == "log":
        LOGGER.info("Magic link for %s: %s", to_email, link)
        return
    sender = settings.email_sender
    if not sender:
        raise EmailSendError("Email sender is not configured")
    message = _compose(
        sender,
        to_email,
        settings.email_subject,
        _build_body(link, settings.magic_link_expire_minutes),
    )
    gmail_client().send(message)


def build_magic_link(token: str) -> str:
    return f"{settings.frontend_url}/auth/verify?{urlencode({'token': token})}"


def _build_body(link: str, ttl_minutes: int) -> str:
    return (
        "Login to your account\n\n"
        "Click the link below to securely log in to your account.\n"
        f"This link will expire in {ttl_minutes} minute(s).\n\n"
        f"{link}\n\n"
        "Never share this link with anyone. "
        "If you did not request this login link, you can ignore this email."
    )


def _compose(sender: str, recipient: str, subject: str, body: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = recipient
    message["Subject"] = subject
    message.set_content(body)
    return message


class GmailClient:
    """Sends mail through the Gmail REST API with a stored OAuth refresh token.

    The token file holds ``refresh_token`` and optionally ``client_id``,
    ``client_secret`` and ``token_uri``; client details otherwise come from
    the OAuth client credentials file. Access tokens are cached in memory
    until a minute before they lapse.
    """

    def __init__(self, token_path: Path, credentials_path: Path) -> None:
        self._token_path = token_path
        self._credentials_path = credentials_path
        self._lock = threading.Lock()
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def send(self, message: EmailMessage) -> None:
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")
        _post(
            GMAIL_SEND_ENDPOINT,
            json.dumps({"raw": raw}).encode("utf-8"),
            {
                "Authorization": f"Bearer {self._current_token()}",
                "Content-Type": "application/json",
            },
            failure="Failed to send magic link email",
        )
        LOGGER.debug("Sent magic link email to %s", message["To"])

    def _current_token(self) -> str:
        with self._lock:
            margin = datetime.now(timezone.utc) + timedelta(minutes=1)
            if self._access_token and self._expires_at and self._expires_at > margin:
                return self._access_token
            self._access_token, self._expires_at = self._refresh()
            return self._access_token

    def _refresh(self) -> tuple[str, datetime]:
        stored = _read_json(self._token_path)
        refresh_token = stored.get("refresh_token")
        if not refresh_token:
            raise EmailSendError("Gmail refresh token is missing")
        client_id, client_secret = self._client_details(stored)
        form = urlencode(
            {
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        ).encode("utf-8")
        data = _post(
            stored.get("token_uri") or GOOGLE_TOKEN_ENDPOINT,
            form,
            {"Content-Type": "application/x-www-form-urlencoded"},
            failure="Failed to refresh Gmail token",
        )
        access_token = data.get("access_token")
        if not access_token:
            raise EmailSendError("Gmail token refresh did not return an access token")
        try:
            lifetime = timedelta(seconds=int(data.get("expires_in", 3600)))
        except (TypeError, ValueError) as exc:
            raise EmailSendError("Gmail token refresh returned a bad expiry") from exc
        LOGGER.info("Refreshed Gmail access token")
        return access_token, datetime.now(timezone.utc) + lifetime

    def _client_details(self, stored: dict[str, Any]) -> tuple[str, str]:
        if stored.get("client_id") and stored.get("client_secret"):
            return stored["client_id"], stored["client_secret"]
        credentials = _read_json(self._credentials_path)
        section = credentials.get("installed") or credentials.get("web") or credentials
        client_id = section.get("client_id")
        client_secret = section.get("client_secret")
        if not client_id or not client_secret:
            raise EmailSendError("Gmail client credentials are missing")
        return client_id, client_secret


def _post(url: str, body: bytes, headers: dict[str, str], failure: str) -> dict[str, Any]:
    request = Request(url, data=body, headers=headers, method="POST")
    try:
        with urlopen(request, timeout=REQUEST_TIMEOUT_SECONDS) as response:
            payload = response.read()
    except HTTPError as exc:
        LOGGER.error(
            "%s: HTTP %s %s",
            failure,
            exc.code,
            exc.read().decode("utf-8", errors="replace"),
        )
        raise EmailSendError(failure) from exc
    except URLError as exc:
        raise EmailSendError(f"{failure}: {exc.reason}") from exc
    except OSError as exc:
        raise EmailSendError(f"{failure}: {exc}") from exc
    if not payload:
        return {}
    try:
        data = json.loads(payload.decode("utf-8"))
    except ValueError as exc:
        raise EmailSendError(f"{failure}: unreadable response") from exc
    if not isinstance(data, dict):
        raise EmailSendError(f"{failure}: unexpected response")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError as exc:
        raise EmailSendError(f"Missing Gmail file: {path}") from exc
    except OSError as exc:
        raise EmailSendError(f"Cannot read Gmail file {path}: {exc}") from exc
    except ValueError as exc:
        raise EmailSendError(f"Unreadable Gmail file: {path}") from exc


_client: Optional[GmailClient] = None
_client_lock = threading.Lock()


def gmail_client() -> GmailClient:
    global _client
    with _client_lock:
        if _client is None:
            _client = GmailClient(
                Path(settings.gmail_token_file or _CREDENTIALS_DIR / "token.json"),
                Path(
                    settings.gmail_credentials_file
                    or _CREDENTIALS_DIR / "credentials.json"
                ),
            )
        return _client
