"""Authenticated Google API service builders (Sheets, Docs, Drive, Gmail)."""

import json
import logging

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from config import settings
from src.exceptions import GoogleAuthError

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/documents",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/gmail.send",
]


def _get_credentials(token_json: str | None = None) -> Credentials:
    """Load the authorized-user token and refresh it if expired."""
    token_json = token_json if token_json is not None else settings.google_token_json
    if not token_json:
        raise GoogleAuthError("Google token not configured (GOOGLE_TOKEN_JSON).")

    try:
        token_data = json.loads(token_json)
        creds = Credentials.from_authorized_user_info(token_data, SCOPES)

        if creds.expired and creds.refresh_token:
            creds.refresh(Request())

        return creds
    except Exception as e:
        raise GoogleAuthError(f"Failed to authenticate with Google: {e}") from e


def build_service(name: str, version: str, token_json: str | None = None):
    """Build an authenticated discovery client, e.g. build_service("sheets", "v4")."""
    creds = _get_credentials(token_json)
    return build(name, version, credentials=creds, cache_discovery=False)
