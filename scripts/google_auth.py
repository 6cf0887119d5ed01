"""Google OAuth2 helper that generates GOOGLE_TOKEN_JSON for .env.

Usage:
    python scripts/google_auth.py

Reads the OAuth client JSON from GOOGLE_CREDENTIALS_JSON and prints a URL.
Open it, sign in with the account that owns the workbook and documents,
and grant access. The browser then lands on a localhost URL that won't
load. Copy that FULL URL back here; the script exchanges the code and
writes the token into .env.
"""

import json
import re
import sys
from pathlib import Path
from urllib.parse import parse_qs, urlparse

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from config import settings
from src.google_client import SCOPES

TOKEN_ENV_KEY = "GOOGLE_TOKEN_JSON"


def _write_env_token(env_path: Path, token_json: str) -> None:
    """Replace the existing token line in .env, or append one."""
    env_content = env_path.read_text() if env_path.exists() else ""
    pattern = re.compile(rf"^{re.escape(TOKEN_ENV_KEY)}=.*$", re.MULTILINE)
    if pattern.search(env_content):
        env_content = pattern.sub(lambda _: f"{TOKEN_ENV_KEY}={token_json}", env_content)
    else:
        env_content += f"\n{TOKEN_ENV_KEY}={token_json}\n"
    env_path.write_text(env_content)


def main():
    if not settings.google_credentials_json:
        print("ERROR: GOOGLE_CREDENTIALS_JSON is not set in .env")
        sys.exit(1)

    flow = InstalledAppFlow.from_client_config(
        json.loads(settings.google_credentials_json), SCOPES,
        redirect_uri="http://localhost",
    )
    auth_url, _ = flow.authorization_url(access_type="offline", prompt="consent")

    print()
    print("=" * 60)
    print("GOOGLE AUTHORIZATION")
    print("=" * 60)
    print()
    print("1. Open this URL in your browser:")
    print()
    print(auth_url)
    print()
    print("2. Sign in and grant Sheets, Docs, Drive and Gmail send access")
    print("3. You'll be redirected to a page that won't load")
    print("   (http://localhost?code=... — that's expected!)")
    print("4. Copy the FULL URL from your address bar and paste it below:")
    print()

    redirect_url = input("Paste URL here: ").strip()
    params = parse_qs(urlparse(redirect_url).query)
    if "code" not in params:
        print("ERROR: No authorization code found in the URL.")
        print("Make sure you copied the full URL including ?code=...")
        sys.exit(1)

    flow.fetch_token(code=params["code"][0])
    creds = flow.credentials
    token_data = {
        "token": creds.token,
        "refresh_token": creds.refresh_token,
        "token_uri": creds.token_uri,
        "client_id": creds.client_id,
        "client_secret": creds.client_secret,
        "scopes": list(creds.scopes),
    }

    env_path = Path(__file__).resolve().parent.parent / ".env"
    _write_env_token(env_path, json.dumps(token_data))
    print()
    print(f"SUCCESS! {TOKEN_ENV_KEY} has been updated in .env")

    print("Verifying token...")
    test_creds = Credentials.from_authorized_user_info(token_data)
    if test_creds.expired and test_creds.refresh_token:
        test_creds.refresh(Request())
    print("Token is valid! Google APIs are ready.")


if __name__ == "__main__":
    main()
