from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from ..core.errors import ValidationFailed, Unauthorized, NotFound
from ..core.logging import get_logger
from ..core.security import (
    hash_password, verify_password, create_access_token, create_email_token, decode_email_token,
)
from ..models.database import User, Item
from .mailer import Mailer

logger = get_logger(__name__)


class AccountService:
    def __init__(self, db: Session, mailer: Optional[Mailer] = None):
        self.db = db
        self.mailer = mailer or Mailer()

    def register(self, username: str, password: str, email: Optional[str] = None,
                 name: Optional[str] = None, affiliation: Optional[str] = None) -> Dict[str, Any]:
        """Create an account and return a bearer token.
        The verification email is best-effort: a mail failure is logged and the
        account is still created.
        """
        if self.db.query(User).filter(User.username == username).first():
            raise ValidationFailed("Username already exists")
        if email:
            email = email.lower()
            if self.db.query(User).filter(User.email == email).first():
                raise ValidationFailed("Email already registered")

        user = User(
            username=username,
            password_hash=hash_password(password),
            email=email,
            email_verified=False,
            name=name,
            affiliation=affiliation,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info("Registered user %s", user.username)

        if user.email:
            self._send_verification(user)

        return {"token": create_access_token(user), "username": user.username,
                "email_verified": user.email_verified}

    def login(self, username: str, password: str) -> Dict[str, Any]:
        user = self.db.query(User).filter(User.username == username).first()
        if not user or not verify_password(password, user.password_hash):
            raise Unauthorized("Invalid credentials")
        return {"token": create_access_token(user), "username": user.username,
                "email_verified": user.email_verified}

    def update_profile(self, user: User, changes: Dict[str, Any]) -> User:
        for field in ("name", "affiliation", "location", "bio"):
            if field in changes:
                setattr(user, field, changes[field])
        self.db.commit()
        self.db.refresh(user)
        return user

    def stats(self, username: str) -> Dict[str, Any]:
        user = self.db.query(User).filter(User.username == username).first()
        if not user:
            raise NotFound("User not found")
        active = self.db.query(Item).filter(Item.owner_id == user.id, Item.status == "active").count()
        return {
            "username": user.username,
            "name": user.name,
            "affiliation": user.affiliation,
            "rating": user.rating,
            "rating_count": user.rating_count,
            "sales_count": user.sales_count,
            "purchase_count": user.purchase_count,
            "active_listings": active,
        }

    def verify_email(self, token: str) -> User:
        try:
            payload = decode_email_token(token)
        except Unauthorized as e:
            # A stale link is a bad request, not a missing login
            raise ValidationFailed(e.detail)
        user = self.db.query(User).filter(User.email == payload.get("email")).first()
        if not user or str(user.id) != payload.get("sub"):
            raise ValidationFailed("Invalid token")
        if not user.email_verified:
            user.email_verified = True
            self.db.commit()
            self.db.refresh(user)
            logger.info("Verified email for %s", user.username)
        return user

    def resend_verification(self, user: User) -> bool:
        if not user.email:
            raise ValidationFailed("No email on file")
        if user.email_verified:
            raise ValidationFailed("Email already verified")
        return self._send_verification(user)

    def _send_verification(self, user: User) -> bool:
        token = create_email_token(user)
        sent = self.mailer.send_verification(user.email, user.username, token)
        if not sent:
            logger.warning("Verification email to %s was not sent", user.username)
        return sent
