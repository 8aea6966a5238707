"""
Login, sign-up and password reset state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from passit.repositories.auth import AuthRepository
from passit.viewstate import StateHolder, error_message
from shared.types import User

logger = logging.getLogger(__name__)

GOOGLE_SIGN_IN_FAILED = "Google sign-in failed. Please try again."
APPLE_SIGN_IN_FAILED = "Apple sign-in failed. Please try again."
RESET_EMAIL_REQUIRED = "Please enter your email first"
RESET_EMAIL_SENT = "Password reset email sent! Check your inbox."
RESET_EMAIL_FAILED = "Failed to send reset email. Please try again."


@dataclass(frozen=True)
class AuthState:
    email: str = ""
    password: str = ""
    confirm_password: str = ""
    name: str = ""
    is_password_visible: bool = False
    is_confirm_password_visible: bool = False
    is_login_mode: bool = True
    is_loading: bool = False
    error: Optional[str] = None
    email_error: Optional[str] = None
    message: Optional[str] = None
    current_user: Optional[User] = None


class AuthViewState:
    def __init__(self, auth: AuthRepository):
        self.auth = auth
        self.holder: StateHolder[AuthState] = StateHolder(AuthState())

    @property
    def state(self) -> AuthState:
        return self.holder.state

    def on_email_change(self, email: str) -> None:
        self.holder.update(email=email, email_error=None)

    def on_password_change(self, password: str) -> None:
        self.holder.update(password=password)

    def on_confirm_password_change(self, confirm_password: str) -> None:
        self.holder.update(confirm_password=confirm_password)

    def on_name_change(self, name: str) -> None:
        self.holder.update(name=name)

    def toggle_password_visibility(self) -> None:
        self.holder.update(is_password_visible=not self.state.is_password_visible)

    def toggle_confirm_password_visibility(self) -> None:
        self.holder.update(
            is_confirm_password_visible=not self.state.is_confirm_password_visible
        )

    def set_auth_mode(self, is_login_mode: bool) -> None:
        self.holder.update(is_login_mode=is_login_mode, error=None, message=None)

    def _signed_in(self, user: User) -> User:
        self.holder.update(is_loading=False, current_user=user, error=None)
        return user

    def login(self) -> Optional[User]:
        state = self.state
        self.holder.update(is_loading=True, error=None, message=None)
        try:
            user = self.auth.sign_in_with_email(state.email.strip(), state.password)
        except Exception as exc:
            self.holder.update(
                is_loading=False, error=error_message(exc, "Login failed. Please try again.")
            )
            return None
        return self._signed_in(user)

    def sign_up(self) -> Optional[User]:
        state = self.state
        self.holder.update(is_loading=True, error=None, message=None)
        try:
            user = self.auth.sign_up_with_email(
                state.email.strip(), state.password, state.name.strip()
            )
        except Exception as exc:
            self.holder.update(
                is_loading=False, error=error_message(exc, "Sign up failed. Please try again.")
            )
            return None
        return self._signed_in(user)

    def sign_in_with_google(self, id_token: str) -> Optional[User]:
        self.holder.update(is_loading=True, error=None, message=None)
        try:
            user = self.auth.sign_in_with_google(id_token)
        except Exception as exc:
            logger.warning("Google sign-in failed: %s", exc)
            self.holder.update(is_loading=False, error=GOOGLE_SIGN_IN_FAILED)
            return None
        return self._signed_in(user)

    def sign_in_with_apple(self, id_token: str, nonce: str) -> Optional[User]:
        self.holder.update(is_loading=True, error=None, message=None)
        try:
            user = self.auth.sign_in_with_apple(id_token, nonce)
        except Exception as exc:
            logger.warning("Apple sign-in failed: %s", exc)
            self.holder.update(is_loading=False, error=APPLE_SIGN_IN_FAILED)
            return None
        return self._signed_in(user)

    def forgot_password(self) -> bool:
        email = self.state.email.strip()
        if not email:
            self.holder.update(email_error=RESET_EMAIL_REQUIRED)
            return False
        self.holder.update(is_loading=True, error=None, email_error=None, message=None)
        try:
            self.auth.send_password_reset_email(email)
        except Exception as exc:
            logger.warning("Password reset for %s failed: %s", email, exc)
            self.holder.update(is_loading=False, error=RESET_EMAIL_FAILED)
            return False
        self.holder.update(is_loading=False, message=RESET_EMAIL_SENT)
        return True

    def sign_out(self) -> None:
        try:
            self.auth.sign_out()
        finally:
            self.holder.set(AuthState())

    def clear_error(self) -> None:
        self.holder.update(error=None, email_error=None, message=None)
