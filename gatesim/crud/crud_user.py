from sqlalchemy.orm import Session
from typing import Optional

from gatesim.models.user import User
from gatesim.schemas.user import UserCreate, UserUpdate
from gatesim.core.security import get_password_hash

def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()

def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.lower()).first()

def create_user(db: Session, *, obj_in: UserCreate, is_superuser: bool = False, role: str = "customer") -> User:
    db_obj = User(
        email=obj_in.email.lower(),
        hashed_password=get_password_hash(obj_in.password),
        full_name=obj_in.full_name,
        phone=obj_in.phone,
        role=role,
        is_active=True, # Default to active on creation
        is_superuser=is_superuser,
    )
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def update_user(db: Session, *, db_obj: User, obj_in: UserUpdate) -> User:
    update_data = obj_in.model_dump(exclude_unset=True)

    password = update_data.pop("password", None)
    if password is not None:
        update_data["hashed_password"] = get_password_hash(password)

    for field, value in update_data.items():
        setattr(db_obj, field, value)

    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj
