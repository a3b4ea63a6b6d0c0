import logging

from fastapi import HTTPException, status

from app.core.security import verify_password, get_password_hash, create_access_token
from app.models.user import User
from app.repositories.profile_repository import ProfileRepository
from app.repositories.user_repository import UserRepository
from app.services.guest_link_service import GuestLinkService
from app.utils.billing_periods import normalize_email, normalize_phone

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, user_repo: UserRepository, linker: GuestLinkService = None):
        self.user_repo = user_repo
        self.linker = linker or GuestLinkService(user_repo.db)

    def _link_guest_purchases(self, user: User) -> None:
        """Vincula compras guest do email. Falhas nunca derrubam cadastro/login."""
        try:
            self.linker.link_for_user(user)
        except Exception as e:
            self.user_repo.db.rollback()
            logger.error(f"Falha ao vincular compras guest para user_id={user.id} ({user.email}): {e}", exc_info=True)

    def register(self, user_data) -> User:
        email = normalize_email(user_data.email)
        existing = self.user_repo.get_by_email(email)
        if existing:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email já cadastrado")

        new_user = User(
            name=user_data.name,
            email=email,
            phone=normalize_phone(user_data.phone),
            hashed_password=get_password_hash(user_data.password),
            is_active=True,
        )
        self.user_repo.create(new_user)
        ProfileRepository(self.user_repo.db).create(new_user.id, email)
        self.user_repo.db.commit()
        self.user_repo.db.refresh(new_user)
        logger.info(f"Usuário registrado: user_id={new_user.id} ({email})")

        self._link_guest_purchases(new_user)
        return new_user

    def login(self, email: str, password: str):
        user = self.user_repo.get_by_email(email)
        if not user or not verify_password(password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Email ou senha incorretos",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if not user.is_active:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuário inativo")

        self._link_guest_purchases(user)

        access_token = create_access_token(data={"sub": str(user.id)})
        return {
            "access_token": access_token,
            "token_type": "bearer",
            "user": user,
        }
