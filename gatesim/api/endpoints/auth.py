import logging
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from gatesim.db.session import get_db
from gatesim.crud import crud_user
from gatesim.core.security import verify_password, create_access_token
from gatesim.schemas.token import Token
from gatesim.schemas.user import User, UserCreate

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/register", response_model=User, status_code=201)
def register_customer(user_in: UserCreate, db: Session = Depends(get_db)):
    """
    Register a new customer account.
    """
    existing_user = crud_user.get_user_by_email(db, email=user_in.email)
    if existing_user:
        raise HTTPException(
            status_code=400,
            detail="A user with this email already exists in the system.",
        )
    user = crud_user.create_user(db=db, obj_in=user_in)
    logger.info(f"Registered customer {user.email} (ID: {user.id})")
    return user

@router.post("/login", response_model=Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """
    OAuth2 compatible token login, get an access token for future requests.
    """
    user = crud_user.get_user_by_email(db, email=form_data.username)

    # Same message for unknown email and wrong password
    if not user or not user.hashed_password or not verify_password(form_data.password, user.hashed_password):
        logger.info(f"Failed login attempt for {form_data.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")

    access_token = create_access_token(data={"sub": user.email})
    return {"access_token": access_token, "token_type": "bearer"}
