# src/checklist_engine/connectors/matrix_client.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path

from nio import AsyncClient, AsyncClientConfig, LoginResponse

logger = logging.getLogger(__name__)

SESSION_FILE = "session.json"
_SESSION_KEYS = ("homeserver", "user_id", "device_id", "access_token")


@dataclass(frozen=True, slots=True)
class NotifierSession:
    """Credentials of the notifier device, kept between restarts."""

    homeserver: str
    user_id: str
    device_id: str
    access_token: str

    @classmethod
    def load(cls, path: Path) -> NotifierSession | None:
        """None when the file is absent or unusable; a bad file only costs a fresh login."""
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text("utf-8"))
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            fields = {k: str(data.get(k) or "").strip() for k in _SESSION_KEYS}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable Matrix session %s: %r", path, e)
            return None
        if not all(fields[k] for k in ("user_id", "device_id", "access_token")):
            logger.warning("Ignoring incomplete Matrix session %s", path)
            return None
        return cls(**fields)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(asdict(self)), "utf-8")
        os.replace(tmp, path)
        with contextlib.suppress(OSError):
            os.chmod(path, 0o600)

    def belongs_to(self, homeserver: str, user_id: str) -> bool:
        # Sessions written before the homeserver was recorded match any homeserver.
        if self.homeserver and self.homeserver.rstrip("/") != homeserver.rstrip("/"):
            return False
        return self.user_id == user_id

    def apply(self, client: AsyncClient) -> None:
        client.access_token = self.access_token
        client.user_id = self.user_id
        client.device_id = self.device_id


def session_path(settings) -> Path:
    store_dir = Path(getattr(settings, "matrix_store_path", Path(".local/checklist/matrix_store")))
    return store_dir / SESSION_FILE


async def _password_login(
    client: AsyncClient,
    homeserver: str,
    password: str,
    device_name: str,
) -> NotifierSession | None:
    logger.info("Logging in to Matrix as %s (device_name=%r)", client.user, device_name)
    resp = await client.login(password=password, device_name=device_name)
    if not isinstance(resp, LoginResponse):
        logger.error("Matrix login failed: %r", resp)
        return None
    return NotifierSession(
        homeserver=homeserver,
        user_id=resp.user_id,
        device_id=resp.device_id,
        access_token=resp.access_token,
    )


async def create_matrix_client(settings) -> AsyncClient | None:
    """
    Build the send-only AsyncClient used for notifications.

    A stored session for the configured account is reused; otherwise the
    password logs in once and the new session is written next to the store.
    Returns None when neither works.
    """
    homeserver = (getattr(settings, "matrix_homeserver", "") or "").strip()
    user_id = (getattr(settings, "matrix_user_id", "") or "").strip()
    password = (getattr(settings, "matrix_password", "") or "").strip()

    if not homeserver or not user_id:
        logger.error("Matrix is not configured: set CHECKLIST_MATRIX_HOMESERVER and CHECKLIST_MATRIX_USER_ID")
        return None

    path = session_path(settings)
    client = AsyncClient(
        homeserver,
        user_id,
        config=AsyncClientConfig(encryption_enabled=False, store_sync_tokens=False),
    )

    stored = NotifierSession.load(path)
    if stored is not None and not stored.belongs_to(homeserver, user_id):
        logger.warning("Stored Matrix session is for %s, not %s; logging in again", stored.user_id, user_id)
        stored = None
    if stored is not None:
        stored.apply(client)
        logger.info("Matrix session restored for %s (device %s)", stored.user_id, stored.device_id)
        return client

    if not password:
        logger.error("No usable Matrix session and CHECKLIST_MATRIX_PASSWORD is not set")
        await client.close()
        return None

    device_name = f"{getattr(settings, 'app_name', 'checklist')} notifier"
    fresh = await _password_login(client, homeserver, password, device_name)
    if fresh is None:
        await client.close()
        return None

    try:
        fresh.save(path)
        logger.info("Matrix session saved to %s", path)
    except OSError as e:
        # The live client still works; only the next restart needs the password.
        logger.error("Failed to save Matrix session to %s: %r", path, e)
    return client
