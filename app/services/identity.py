"""
Owner account identity provider (local accounts table vs Firebase Auth).

With Firebase enabled, credentials live in Firebase Auth and the profile
(role, event limit) in the ``staff/{email}`` document. Otherwise both live in
the ``accounts`` table with a bcrypt password hash.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

import bcrypt
from firebase_admin import auth
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import OwnerAlreadyExists
from app.models import Account
from app.services.firebase_client import get_firestore_client

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_NAME = "New Client"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


class IdentityProvider:
    @staticmethod
    def lookup_by_email_sql(db: Session, email: str) -> Optional[str]:
        account = db.query(Account).filter(Account.email == email.lower()).first()
        return account.uid if account else None

    @staticmethod
    def create_account_sql(
        db: Session,
        email: str,
        password: str,
        name: str = DEFAULT_CLIENT_NAME,
        event_limit: int = 1,
    ) -> str:
        account = Account(
            uid=uuid.uuid4().hex,
            email=email.lower(),
            name=name,
            role="Client",
            event_limit=event_limit,
            password_hash=hash_password(password),
        )
        db.add(account)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise OwnerAlreadyExists(email)
        logger.info(f"Created new account for {email}")
        return account.uid

    @staticmethod
    def delete_account_sql(db: Session, uid: str) -> bool:
        deleted = db.query(Account).filter(Account.uid == uid).delete(synchronize_session=False)
        db.commit()
        return deleted > 0

    @staticmethod
    def lookup_by_email_fs(email: str) -> Optional[str]:
        get_firestore_client()
        try:
            return auth.get_user_by_email(email).uid
        except auth.UserNotFoundError:
            return None

    @staticmethod
    def create_account_fs(
        email: str,
        password: str,
        name: str = DEFAULT_CLIENT_NAME,
        event_limit: int = 1,
    ) -> str:
        fs = get_firestore_client()
        try:
            user = auth.create_user(email=email, password=password, display_name=name)
        except auth.EmailAlreadyExistsError:
            raise OwnerAlreadyExists(email)
        logger.info(f"Created new auth user for {email}")

        staff_ref = fs.collection("staff").document(email)
        if not staff_ref.get().exists:
            staff_ref.set({
                "email": email,
                "name": name,
                "role": "Client",
                "eventLimit": event_limit,
            })
            logger.info(f"Created new staff/client record for {email}")
        return user.uid

    @staticmethod
    def ensure_profile_fs(email: str) -> None:
        """Create the staff profile for an existing auth user if missing"""
        fs = get_firestore_client()
        staff_ref = fs.collection("staff").document(email)
        if not staff_ref.get().exists:
            staff_ref.set({
                "email": email,
                "name": DEFAULT_CLIENT_NAME,
                "role": "Client",
                "eventLimit": 1,
            })

    @staticmethod
    def delete_account_fs(email: str) -> bool:
        fs = get_firestore_client()
        try:
            user = auth.get_user_by_email(email)
        except auth.UserNotFoundError:
            return False
        auth.delete_user(user.uid)
        fs.collection("staff").document(email).delete()
        return True
