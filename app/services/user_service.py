from sqlalchemy.orm import Session
from app.data.models.user import UserModel
from app.repos.user_repo import UserRepo
from app.domain.schemas import UserCreate, UserRead


class UserService:
    def __init__(self, db: Session):
        self.repo = UserRepo(db)

    def create_user(self, payload: UserCreate) -> UserRead:
        existing = self.repo.get_user(payload.id)
        if existing:
            return UserRead.model_validate(existing)

        # admins come from the seed only
        user = UserModel(id=payload.id, name=payload.name, is_admin=False)
        created = self.repo.create_user(user)
        return UserRead.model_validate(created)

    def get_user(self, user_id: int) -> UserRead:
        user = self.repo.get_user(user_id)
        if not user:
            raise ValueError("User not found")
        return UserRead.model_validate(user)
