"""
Reviews repository.
"""

from __future__ import annotations

from typing import List

from passit.remote import RemoteDataSource
from passit.repositories.users import UserRepository
from shared.types import Review


class ReviewRepository:
    def __init__(self, remote: RemoteDataSource, users: UserRepository):
        self.remote = remote
        self.users = users

    def add_review(self, review: Review) -> str:
        review_id = self.remote.add_review(review)
        # Rating and reviews_count changed remotely.
        self.users.sync_user(review.reviewed_user_id)
        return review_id

    def get_reviews_for_user(self, user_id: str) -> List[Review]:
        return self.remote.get_reviews_for_user(user_id)
