from uuid import UUID

from sqlmodel import Session, select

from labo.core.logging_setup import logger
from labo.models.base import utcnow
from labo.models.user import User, UserRole
from labo.schemas.auth import LoginRequest, RefreshRequest, RegisterRequest, Token
from labo.services.subscriptions import SubscriptionActivator
from labo.utils.security import (
    TokenType,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def register(self, payload: RegisterRequest) -> Token:
        existing_user = self.session.exec(select(User).where(User.email == payload.email)).first()
        if existing_user:
            raise ValueError("User already exists")

        user = User(
            email=payload.email,
            full_name=payload.full_name,
            phone_number=payload.phone_number,
            password_hash=get_password_hash(payload.password),
            role=payload.role,
        )
        self.session.add(user)
        self.session.flush()

        if user.role == UserRole.FACTORY.value:
            SubscriptionActivator(self.session).start_trial(user.id, commit=False)

        self.session.commit()
        self.session.refresh(user)
        logger.info("Registered %s account %s", user.role, user.id)
        return self._build_tokens(user)

    def create_admin(self, email: str, full_name: str, password: str) -> User:
        user = self.session.exec(select(User).where(User.email == email)).first()
        if user:
            user.role = UserRole.ADMIN.value
            user.password_hash = get_password_hash(password)
        else:
            user = User(
                email=email,
                full_name=full_name,
                password_hash=get_password_hash(password),
                role=UserRole.ADMIN.value,
            )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def authenticate(self, payload: LoginRequest) -> Token:
        statement = select(User).where(User.email == payload.username)
        user = self.session.exec(statement).first()

        if not user or not user.is_active:
            raise ValueError("Invalid credentials")

        if not verify_password(payload.password, user.password_hash):
            raise ValueError("Invalid credentials")

        user.last_login_at = utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)

        return self._build_tokens(user)

    def refresh(self, payload: RefreshRequest) -> Token:
        token_data = decode_token(payload.refresh_token)
        if token_data.get("token_type") != TokenType.REFRESH.value:
            raise ValueError("Invalid token type")

        user = self.session.get(User, _uuid(token_data.get("sub")))
        if not user or not user.is_active:
            raise ValueError("Invalid token")

        return self._build_tokens(user)

    def _build_tokens(self, user: User) -> Token:
        return Token(
            access_token=create_access_token(str(user.id), user.role),
            refresh_token=create_refresh_token(str(user.id), user.role),
            role=user.role,
        )


def _uuid(value: object) -> UUID:
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid token subject") from exc
