"""
Auth repository: sign-in flows that keep the user profile in step.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from passit.auth import AuthDataSource
from passit.errors import NotFoundError, NotLoggedInError
from passit.repositories.users import UserRepository
from shared.formatting import now_millis
from shared.types import User

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "User"


class AuthRepository:
    def __init__(self, auth: AuthDataSource, users: UserRepository):
        self.auth = auth
        self.users = users

    def current_user_id(self) -> Optional[str]:
        return self.auth.current_user_id()

    def is_logged_in(self) -> bool:
        return self.auth.is_logged_in()

    def _require_user_id(self) -> str:
        user_id = self.auth.current_user_id()
        if user_id is None:
            raise NotLoggedInError()
        return user_id

    def sign_in_with_email(self, email: str, password: str) -> User:
        user_id = self.auth.sign_in_with_email(email, password)
        return self.users.update_online_status(user_id, True)

    def sign_up_with_email(self, email: str, password: str, name: str) -> User:
        user_id = self.auth.sign_up_with_email(email, password)
        now = now_millis()
        user = User(
            id=user_id,
            name=name,
            email=email,
            is_online=True,
            created_at=now,
            last_seen=now,
        )
        self.users.create_user(user)
        return user

    def _finish_provider_sign_in(self, user_id: str) -> User:
        try:
            self.users.get_user(user_id)
        except NotFoundError:
            session = self.auth.current_session()
            now = now_millis()
            user = User(
                id=user_id,
                name=(session.display_name if session else "") or DEFAULT_DISPLAY_NAME,
                email=session.email if session else "",
                photo_url=session.photo_url if session else "",
                is_online=True,
                created_at=now,
                last_seen=now,
            )
            logger.info("Creating profile for new user %s", user_id)
            self.users.create_user(user)
            return user
        return self.users.update_online_status(user_id, True)

    def sign_in_with_google(self, id_token: str) -> User:
        return self._finish_provider_sign_in(self.auth.sign_in_with_google(id_token))

    def sign_in_with_apple(self, id_token: str, nonce: str) -> User:
        return self._finish_provider_sign_in(self.auth.sign_in_with_apple(id_token, nonce))

    def send_password_reset_email(self, email: str) -> None:
        self.auth.send_password_reset_email(email)

    def sign_out(self) -> None:
        user_id = self.auth.current_user_id()
        if user_id is not None:
            self.users.update_online_status(user_id, False)
        self.auth.sign_out()

    def delete_account(self) -> None:
        user_id = self._require_user_id()
        self.users.delete_user(user_id)
        self.auth.delete_account()

    def update_email(self, new_email: str) -> None:
        self.auth.update_email(new_email)
        user_id = self._require_user_id()
        self.users.update_user(replace(self.users.get_user(user_id), email=new_email))

    def update_password(self, new_password: str) -> None:
        self.auth.update_password(new_password)

    def reauthenticate(self, email: str, password: str) -> None:
        self.auth.reauthenticate(email, password)

    def send_email_verification(self) -> None:
        self.auth.send_email_verification()

    def is_email_verified(self) -> bool:
        self.auth.reload_user()
        return self.auth.is_email_verified()
