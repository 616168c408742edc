"""
Microsoft Graph access for the user directory and outgoing mail.
Sign-in is interactive and delegated (MSAL public client).
"""
import logging
from dataclasses import dataclass

import msal
import requests

from execution.config_service import Settings

logger = logging.getLogger(__name__)

READ_USERS_SCOPE = "User.Read.All"
SEND_MAIL_SCOPE = "Mail.Send"


class DirectoryAuthError(RuntimeError):
    """Sign-in to the directory failed; nothing can be processed."""


class NotificationError(RuntimeError):
    """A notification email could not be delivered."""


@dataclass
class DirectoryUser:
    id: str
    mail: str
    display_name: str = ""
    given_name: str = ""

    @classmethod
    def from_graph(cls, item: dict) -> "DirectoryUser":
        return cls(
            id=item.get("id", ""),
            mail=(item.get("mail") or "").strip(),
            display_name=item.get("displayName") or "",
            given_name=item.get("givenName") or "",
        )


def scopes_for(suppress_emails: bool) -> list[str]:
    if suppress_emails:
        return [READ_USERS_SCOPE]
    return [READ_USERS_SCOPE, SEND_MAIL_SCOPE]


class GraphDirectory:
    def __init__(self, settings: Settings, app: msal.PublicClientApplication | None = None):
        self.settings = settings
        self._app = app
        self._session = requests.Session()
        self._token: str | None = None

    def _msal_app(self) -> msal.PublicClientApplication:
        if self._app is None:
            if not self.settings.graph_client_id:
                raise DirectoryAuthError("GRAPH_CLIENT_ID is not configured")
            authority = f"https://login.microsoftonline.com/{self.settings.graph_tenant_id}"
            self._app = msal.PublicClientApplication(
                self.settings.graph_client_id, authority=authority
            )
        return self._app

    def authenticate(self, scopes: list[str]) -> None:
        app = self._msal_app()
        result = None
        accounts = app.get_accounts()
        if accounts:
            result = app.acquire_token_silent(scopes, account=accounts[0])
        if not result:
            logger.info(f"[GRAPH] Interactive sign-in for scopes {', '.join(scopes)}")
            try:
                result = app.acquire_token_interactive(scopes=scopes)
            except Exception as e:
                raise DirectoryAuthError(f"Interactive sign-in failed: {e}") from e

        if not result or "access_token" not in result:
            detail = (result or {}).get("error_description") or (result or {}).get("error") or "no token"
            raise DirectoryAuthError(f"Directory sign-in failed: {detail}")

        self._token = result["access_token"]
        self._session.headers.update({"Authorization": f"Bearer {self._token}"})
        logger.info("[GRAPH] Signed in")

    def _require_token(self) -> None:
        if not self._token:
            raise DirectoryAuthError("Not signed in to the directory")

    def list_users(self) -> list[DirectoryUser]:
        """Every directory user with a non-empty mail address, following pagination."""
        self._require_token()
        url = f"{self.settings.graph_base_url}/users"
        params = {
            "$select": "id,mail,displayName,givenName",
            "$filter": "mail ne null",
            "$count": "true",
            "$top": "999",
        }
        # "ne null" filters are advanced queries and need eventual consistency.
        headers = {"ConsistencyLevel": "eventual"}

        users = []
        while url:
            response = self._session.get(
                url, params=params, headers=headers, timeout=self.settings.request_timeout
            )
            response.raise_for_status()
            payload = response.json()
            for item in payload.get("value", []):
                user = DirectoryUser.from_graph(item)
                if user.mail:
                    users.append(user)
            url = payload.get("@odata.nextLink")
            params = None  # nextLink already carries the query

        logger.info(f"[GRAPH] Found {len(users)} users with a mail address")
        return users

    def send_mail(
        self, to_address: str, subject: str, html_body: str, save_to_sent_items: bool = True
    ) -> None:
        self._require_token()
        message = {
            "message": {
                "subject": subject,
                "body": {"contentType": "HTML", "content": html_body},
                "toRecipients": [{"emailAddress": {"address": to_address}}],
            },
            "saveToSentItems": save_to_sent_items,
        }
        try:
            response = self._session.post(
                f"{self.settings.graph_base_url}/me/sendMail",
                json=message,
                timeout=self.settings.request_timeout,
            )
        except requests.exceptions.RequestException as e:
            raise NotificationError(f"Network error sending to {to_address}: {e}") from e

        if not response.ok:
            raise NotificationError(
                f"Graph sendMail returned HTTP {response.status_code} for {to_address}"
            )
