import logging
import uuid
from typing import Optional, Protocol

from argon2 import PasswordHasher
from sqlalchemy.orm import Session

from models import Chat, User

logger = logging.getLogger(__name__)

_PH = PasswordHasher()


class ChatStore(Protocol):
    """What the login flow needs from persistence."""

    def get_user(self, email: str) -> Optional[User]: ...

    def create_user(self, email: str, password: Optional[str]) -> str: ...

    def save_chat(self, id: str, user_id: str, title: str) -> Chat: ...

    def rollback(self) -> None: ...


def hash_password(plain: str) -> str:
    return _PH.hash(plain)


class SqlChatStore:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def create_user(self, email: str, password: Optional[str]) -> str:
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            password=hash_password(password) if password else None,
        )
        self.db.add(user)
        self.db.commit()
        logger.info("Created local user %s for %s", user.id, email)
        return user.id

    def save_chat(self, id: str, user_id: str, title: str) -> Chat:
        chat = Chat(id=id, user_id=user_id, title=title)
        self.db.add(chat)
        self.db.commit()
        logger.info("Created chat %s for user %s", id, user_id)
        return chat

    def rollback(self) -> None:
        self.db.rollback()
