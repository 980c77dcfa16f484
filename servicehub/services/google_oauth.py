from typing import Dict, Any, Optional
from urllib.parse import urlencode

import httpx

from ..config import settings


AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class GoogleOAuthClient:
    def __init__(self, client_id: Optional[str] = None, client_secret: Optional[str] = None, redirect_uri: Optional[str] = None):
        self.client_id = client_id or settings.google_client_id
        self.client_secret = client_secret or settings.google_client_secret
        self.redirect_uri = redirect_uri or settings.google_redirect_uri or f"{settings.public_base_url}{settings.api_prefix}/auth/google/callback"
        if not (self.client_id and self.client_secret):
            raise ValueError("Google OAuth client id and secret are required")

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "access_type": "online",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def fetch_profile(self, code: str) -> Dict[str, Any]:
        """Exchange the authorization code and return the OpenID userinfo claims."""
        with httpx.Client(timeout=15.0) as client:
            token_resp = client.post(
                TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            token_resp.raise_for_status()
            access_token = token_resp.json()["access_token"]
            info_resp = client.get(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
            info_resp.raise_for_status()
            return info_resp.json()
