"""Watch ownership: an authenticated user, or a guest identified by email + token."""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Owner:
    user_id: Optional[str] = None
    guest_email: Optional[str] = None
    deletion_token: Optional[str] = None

    @classmethod
    def user(cls, user_id: str) -> "Owner":
        return cls(user_id=str(user_id))

    @classmethod
    def guest(cls, email: str, deletion_token: Optional[str] = None) -> "Owner":
        return cls(guest_email=email.strip().lower(), deletion_token=deletion_token)

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    def owns(self, watch) -> bool:
        """
        User watches match on user_id. Guest watches need the same email
        (case-insensitive) AND the watch's deletion token.
        """
        if self.user_id is not None:
            return watch.user_id is not None and watch.user_id == self.user_id
        if watch.user_id is not None or not self.guest_email or not self.deletion_token:
            return False
        return (
            (watch.guest_email or "").lower() == self.guest_email
            and watch.deletion_token == self.deletion_token
        )
