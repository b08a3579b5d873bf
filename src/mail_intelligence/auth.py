"""Authentication helpers for the Gmail gateway."""

import logging
import re
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import Resource, build

from mail_intelligence import constants

logger = logging.getLogger(__name__)


def token_path(account_id: str) -> Path:
    """Token file for one account; the id is reduced to filename-safe characters."""
    safe = re.sub(r"[^A-Za-z0-9@._-]", "_", account_id) or "default"
    return constants.TOKEN_DIR / f"{safe}.json"


def get_gmail_service(account_id: str) -> Resource:
    """Return an authenticated Gmail API service object for ``account_id``.

    Loads the account's cached token if available.  When the token is
    expired it is silently refreshed.  If no token exists, an OAuth
    browser flow is launched (requires credentials.json at
    CREDENTIALS_PATH).
    """
    path = token_path(account_id)
    path.parent.mkdir(parents=True, exist_ok=True)

    creds: Credentials | None = None

    if path.exists():
        creds = Credentials.from_authorized_user_file(str(path), constants.SCOPES)

    if creds and creds.expired and creds.refresh_token:
        creds.refresh(Request())
    elif not creds or not creds.valid:
        if not constants.CREDENTIALS_PATH.exists():
            raise FileNotFoundError(
                f"Credentials file not found at {constants.CREDENTIALS_PATH}.\n"
                "Download your OAuth client credentials from the Google Cloud Console "
                "and save them as:\n"
                f"  {constants.CREDENTIALS_PATH}"
            )
        flow = InstalledAppFlow.from_client_secrets_file(
            str(constants.CREDENTIALS_PATH), constants.SCOPES
        )
        creds = flow.run_local_server(port=0)

    path.write_text(creds.to_json())
    logger.debug("Loaded Gmail credentials for %s", account_id)

    return build("gmail", "v1", credentials=creds)


def check_auth(account_id: str) -> str:
    """Return the mailbox address the account's credentials reach.

    Raises FileNotFoundError when no client credentials are configured.
    """
    service = get_gmail_service(account_id)
    profile = service.users().getProfile(userId="me").execute()
    return profile["emailAddress"]
