"""
Authentication data sources.

`FirebaseAuthDataSource` signs users in through the Identity Toolkit REST API
(the same backend the Firebase Auth client SDKs use) and keeps the signed-in
session in memory. `InMemoryAuthDataSource` is the test double.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Protocol, Tuple
from urllib.parse import urlencode

import requests

from passit.errors import AuthError, NotLoggedInError
from shared.formatting import now_millis

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
IDP_REQUEST_URI = "http://localhost"
REQUEST_TIMEOUT = 30  # seconds

GOOGLE_PROVIDER = "google.com"
APPLE_PROVIDER = "apple.com"

PASSWORD_RESET = "PASSWORD_RESET"
VERIFY_EMAIL = "VERIFY_EMAIL"

MIN_PASSWORD_LENGTH = 6

# ID tokens live for an hour; refresh a little ahead of the reported expiry.
TOKEN_REFRESH_MARGIN_MS = 60 * 1000
TOKEN_ERROR_CODES = frozenset({"TOKEN_EXPIRED", "INVALID_ID_TOKEN"})


@dataclass
class AuthSession:
    """The signed-in account as reported by the auth backend."""

    user_id: str
    email: str = ""
    display_name: str = ""
    photo_url: str = ""
    email_verified: bool = False
    id_token: str = ""
    refresh_token: str = ""
    is_new_user: bool = False
    # Epoch millis when `id_token` expires; 0 when the backend did not say.
    expires_at: int = 0


class AuthDataSource(Protocol):
    """Operations the auth repository needs from the auth backend."""

    def current_user_id(self) -> Optional[str]:
        ...

    def current_session(self) -> Optional[AuthSession]:
        ...

    def is_logged_in(self) -> bool:
        ...

    def sign_in_with_email(self, email: str, password: str) -> str:
        ...

    def sign_up_with_email(self, email: str, password: str) -> str:
        ...

    def sign_in_with_google(self, id_token: str) -> str:
        ...

    def sign_in_with_apple(self, id_token: str, nonce: str) -> str:
        ...

    def send_password_reset_email(self, email: str) -> None:
        ...

    def sign_out(self) -> None:
        ...

    def delete_account(self) -> None:
        ...

    def update_email(self, new_email: str) -> None:
        ...

    def update_password(self, new_password: str) -> None:
        ...

    def reauthenticate(self, email: str, password: str) -> None:
        ...

    def send_email_verification(self) -> None:
        ...

    def is_email_verified(self) -> bool:
        ...

    def reload_user(self) -> None:
        ...


def _error_code(message: str) -> str:
    # Messages look like "WEAK_PASSWORD : Password should be at least 6 characters".
    return message.split(" : ", 1)[0].strip()


class FirebaseAuthDataSource:
    """`AuthDataSource` that talks to the Identity Toolkit REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = IDENTITY_TOOLKIT_URL,
        token_url: str = SECURE_TOKEN_URL,
        clock: Callable[[], int] = now_millis,
    ):
        if not api_key:
            raise ValueError("A Firebase web API key is required for FirebaseAuthDataSource")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.token_url = token_url
        self.clock = clock
        self._lock = threading.Lock()
        self._session: Optional[AuthSession] = None

    def _post(self, method: str, payload: dict) -> dict:
        """
        Calls `accounts:<method>` and returns the decoded JSON body.

        Raises:
            AuthError: With the backend's error code when the call is
                rejected, or NETWORK_ERROR when the backend is unreachable.
        """
        return self._request(f"{self.base_url}:{method}", json=payload)

    def _request(self, url: str, **body) -> dict:
        try:
            response = requests.post(
                url,
                params={"key": self.api_key},
                timeout=REQUEST_TIMEOUT,
                **body,
            )
        except requests.RequestException as exc:
            raise AuthError("NETWORK_ERROR", str(exc)) from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok:
            message = (body.get("error") or {}).get("message") or f"HTTP_{response.status_code}"
            raise AuthError(_error_code(message), message)
        return body

    def _start_session(self, body: dict) -> str:
        session = AuthSession(
            user_id=body["localId"],
            email=body.get("email", ""),
            display_name=body.get("displayName", ""),
            photo_url=body.get("photoUrl", ""),
            email_verified=bool(body.get("emailVerified", False)),
            id_token=body.get("idToken", ""),
            refresh_token=body.get("refreshToken", ""),
            is_new_user=bool(body.get("isNewUser", False)),
            expires_at=self._expiry(body.get("expiresIn")),
        )
        with self._lock:
            self._session = session
        return session.user_id

    def _expiry(self, expires_in) -> int:
        # Both token endpoints report the lifetime as a string of seconds.
        try:
            seconds = int(expires_in or 0)
        except (TypeError, ValueError):
            return 0
        return self.clock() + seconds * 1000 if seconds > 0 else 0

    def _refresh_id_token(self) -> str:
        """
        Exchanges the session's refresh token for a new ID token.

        Raises:
            NotLoggedInError: If nobody is signed in.
            AuthError: If there is no refresh token or the backend rejects it.
        """
        session = self._require_session()
        if not session.refresh_token:
            raise AuthError("TOKEN_EXPIRED", "No refresh token for the current session")
        body = self._request(
            self.token_url,
            data={"grant_type": "refresh_token", "refresh_token": session.refresh_token},
        )
        with self._lock:
            if self._session is None or self._session.user_id != session.user_id:
                raise NotLoggedInError()
            self._session.id_token = body.get("id_token", "")
            self._session.refresh_token = body.get(
                "refresh_token", self._session.refresh_token
            )
            self._session.expires_at = self._expiry(body.get("expires_in"))
            id_token = self._session.id_token
        logger.info("Refreshed ID token for %s", session.user_id)
        return id_token

    def _valid_id_token(self) -> str:
        session = self._require_session()
        if session.expires_at and self.clock() >= session.expires_at - TOKEN_REFRESH_MARGIN_MS:
            return self._refresh_id_token()
        return session.id_token

    def _post_with_token(self, method: str, payload: dict) -> dict:
        """
        `_post` for calls that act on the signed-in account.

        The ID token is refreshed up front when it is known to be expired,
        and once more if the backend still rejects it.
        """
        try:
            return self._post(method, {**payload, "idToken": self._valid_id_token()})
        except AuthError as exc:
            if exc.code not in TOKEN_ERROR_CODES:
                raise
            logger.info("ID token rejected (%s), refreshing", exc.code)
        return self._post(method, {**payload, "idToken": self._refresh_id_token()})

    def _require_session(self) -> AuthSession:
        with self._lock:
            if self._session is None:
                raise NotLoggedInError()
            return self._session

    def current_user_id(self) -> Optional[str]:
        with self._lock:
            return self._session.user_id if self._session else None

    def current_session(self) -> Optional[AuthSession]:
        with self._lock:
            return replace(self._session) if self._session else None

    def is_logged_in(self) -> bool:
        return self.current_user_id() is not None

    def sign_in_with_email(self, email: str, password: str) -> str:
        body = self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._start_session(body)

    def sign_up_with_email(self, email: str, password: str) -> str:
        body = self._post(
            "signUp", {"email": email, "password": password, "returnSecureToken": True}
        )
        body.setdefault("isNewUser", True)
        return self._start_session(body)

    def _sign_in_with_idp(self, post_body: Dict[str, str]) -> str:
        body = self._post(
            "signInWithIdp",
            {
                "postBody": urlencode(post_body),
                "requestUri": IDP_REQUEST_URI,
                "returnSecureToken": True,
                "returnIdpCredential": True,
            },
        )
        return self._start_session(body)

    def sign_in_with_google(self, id_token: str) -> str:
        return self._sign_in_with_idp({"id_token": id_token, "providerId": GOOGLE_PROVIDER})

    def sign_in_with_apple(self, id_token: str, nonce: str) -> str:
        return self._sign_in_with_idp(
            {"id_token": id_token, "nonce": nonce, "providerId": APPLE_PROVIDER}
        )

    def send_password_reset_email(self, email: str) -> None:
        self._post("sendOobCode", {"requestType": PASSWORD_RESET, "email": email})

    def sign_out(self) -> None:
        with self._lock:
            self._session = None

    def delete_account(self) -> None:
        self._post_with_token("delete", {})
        self.sign_out()

    def _update_account(self, changes: dict) -> None:
        body = self._post_with_token("update", {"returnSecureToken": True, **changes})
        with self._lock:
            if self._session is None:
                return
            self._session.email = body.get("email", self._session.email)
            self._session.id_token = body.get("idToken", self._session.id_token)
            self._session.refresh_token = body.get(
                "refreshToken", self._session.refresh_token
            )
            if "expiresIn" in body:
                self._session.expires_at = self._expiry(body["expiresIn"])
            if "emailVerified" in body:
                self._session.email_verified = bool(body["emailVerified"])

    def update_email(self, new_email: str) -> None:
        self._update_account({"email": new_email})

    def update_password(self, new_password: str) -> None:
        self._update_account({"password": new_password})

    def reauthenticate(self, email: str, password: str) -> None:
        session = self._require_session()
        body = self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        if body.get("localId") != session.user_id:
            raise AuthError("USER_MISMATCH", "Credentials belong to a different account")
        self._start_session(body)

    def send_email_verification(self) -> None:
        self._post_with_token("sendOobCode", {"requestType": VERIFY_EMAIL})

    def is_email_verified(self) -> bool:
        with self._lock:
            return bool(self._session and self._session.email_verified)

    def reload_user(self) -> None:
        body = self._post_with_token("lookup", {})
        users = body.get("users") or []
        if not users:
            raise AuthError("USER_NOT_FOUND")
        info = users[0]
        with self._lock:
            if self._session is None:
                return
            self._session.email = info.get("email", self._session.email)
            self._session.display_name = info.get("displayName", self._session.display_name)
            self._session.photo_url = info.get("photoUrl", self._session.photo_url)
            self._session.email_verified = bool(info.get("emailVerified", False))


@dataclass
class _Account:
    user_id: str
    email: str
    password: str = ""
    display_name: str = ""
    email_verified: bool = False


class InMemoryAuthDataSource:
    """Test double for the auth backend."""

    def __init__(self):
        self._lock = threading.RLock()
        self.accounts: Dict[str, _Account] = {}
        self.provider_tokens: Dict[Tuple[str, str], _Account] = {}
        self.sent_emails: List[Tuple[str, str]] = []
        self._session: Optional[AuthSession] = None

    def register_provider_token(
        self, provider: str, id_token: str, email: str, display_name: str = ""
    ) -> str:
        """Makes `id_token` a valid credential for `provider`; returns the uid."""
        with self._lock:
            account = self._find_by_email(email)
            if account is None:
                account = _Account(
                    user_id=uuid.uuid4().hex,
                    email=email,
                    display_name=display_name,
                    email_verified=True,
                )
                self.accounts[account.user_id] = account
            self.provider_tokens[(provider, id_token)] = account
            return account.user_id

    def _find_by_email(self, email: str) -> Optional[_Account]:
        for account in self.accounts.values():
            if account.email.lower() == email.lower():
                return account
        return None

    def _start_session(self, account: _Account, is_new_user: bool = False) -> str:
        self._session = AuthSession(
            user_id=account.user_id,
            email=account.email,
            display_name=account.display_name,
            email_verified=account.email_verified,
            id_token=uuid.uuid4().hex,
            is_new_user=is_new_user,
        )
        return account.user_id

    def _require_account(self) -> _Account:
        if self._session is None or self._session.user_id not in self.accounts:
            raise NotLoggedInError()
        return self.accounts[self._session.user_id]

    def current_user_id(self) -> Optional[str]:
        with self._lock:
            return self._session.user_id if self._session else None

    def current_session(self) -> Optional[AuthSession]:
        with self._lock:
            return replace(self._session) if self._session else None

    def is_logged_in(self) -> bool:
        return self.current_user_id() is not None

    def sign_in_with_email(self, email: str, password: str) -> str:
        with self._lock:
            account = self._find_by_email(email)
            if account is None:
                raise AuthError("EMAIL_NOT_FOUND")
            if account.password != password:
                raise AuthError("INVALID_PASSWORD")
            return self._start_session(account)

    def sign_up_with_email(self, email: str, password: str) -> str:
        with self._lock:
            if not email or "@" not in email:
                raise AuthError("INVALID_EMAIL")
            if len(password) < MIN_PASSWORD_LENGTH:
                raise AuthError("WEAK_PASSWORD")
            if self._find_by_email(email) is not None:
                raise AuthError("EMAIL_EXISTS")
            account = _Account(user_id=uuid.uuid4().hex, email=email, password=password)
            self.accounts[account.user_id] = account
            return self._start_session(account, is_new_user=True)

    def _sign_in_with_provider(self, provider: str, id_token: str) -> str:
        with self._lock:
            account = self.provider_tokens.get((provider, id_token))
            if account is None:
                raise AuthError("INVALID_IDP_RESPONSE")
            return self._start_session(account)

    def sign_in_with_google(self, id_token: str) -> str:
        return self._sign_in_with_provider(GOOGLE_PROVIDER, id_token)

    def sign_in_with_apple(self, id_token: str, nonce: str) -> str:
        if not nonce:
            raise AuthError("MISSING_OR_INVALID_NONCE")
        return self._sign_in_with_provider(APPLE_PROVIDER, id_token)

    def send_password_reset_email(self, email: str) -> None:
        with self._lock:
            if self._find_by_email(email) is None:
                raise AuthError("EMAIL_NOT_FOUND")
            self.sent_emails.append((PASSWORD_RESET, email))

    def sign_out(self) -> None:
        with self._lock:
            self._session = None

    def delete_account(self) -> None:
        with self._lock:
            account = self._require_account()
            del self.accounts[account.user_id]
            self.provider_tokens = {
                key: value
                for key, value in self.provider_tokens.items()
                if value.user_id != account.user_id
            }
            self._session = None

    def update_email(self, new_email: str) -> None:
        with self._lock:
            account = self._require_account()
            existing = self._find_by_email(new_email)
            if existing is not None and existing.user_id != account.user_id:
                raise AuthError("EMAIL_EXISTS")
            account.email = new_email
            account.email_verified = False
            self._session.email = new_email
            self._session.email_verified = False

    def update_password(self, new_password: str) -> None:
        with self._lock:
            account = self._require_account()
            if len(new_password) < MIN_PASSWORD_LENGTH:
                raise AuthError("WEAK_PASSWORD")
            account.password = new_password

    def reauthenticate(self, email: str, password: str) -> None:
        with self._lock:
            account = self._require_account()
            if account.email.lower() != email.lower():
                raise AuthError("USER_MISMATCH")
            if account.password != password:
                raise AuthError("INVALID_PASSWORD")

    def send_email_verification(self) -> None:
        with self._lock:
            account = self._require_account()
            self.sent_emails.append((VERIFY_EMAIL, account.email))

    def verify_email(self, email: str) -> None:
        """Marks the account's email verified, as following the emailed link would."""
        with self._lock:
            account = self._find_by_email(email)
            if account is None:
                raise AuthError("EMAIL_NOT_FOUND")
            account.email_verified = True

    def is_email_verified(self) -> bool:
        with self._lock:
            return bool(self._session and self._session.email_verified)

    def reload_user(self) -> None:
        with self._lock:
            account = self._require_account()
            self._session.email = account.email
            self._session.display_name = account.display_name
            self._session.email_verified = account.email_verified
