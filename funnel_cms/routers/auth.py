from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from funnel_cms import models, schemas
from funnel_cms.core.security import create_access_token, get_password_hash, verify_password
from funnel_cms.deps import get_current_admin, get_current_user, get_db_write


router = APIRouter(tags=["auth"])


@router.post(
    "/users",
    response_model=schemas.UserOut,
    status_code=status.HTTP_201_CREATED,
)
def create_user(
    payload: schemas.UserCreateRequest,
    db: Session = Depends(get_db_write),
    _: models.User = Depends(get_current_admin),
):
    email = payload.email.strip().lower()
    existing_user = db.query(models.User).filter(models.User.email == email).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already exists",
        )

    user = models.User(
        email=email,
        hashed_password=get_password_hash(payload.password),
        role=payload.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.post("/login", response_model=schemas.TokenResponse)
def login(payload: schemas.LoginRequest, db: Session = Depends(get_db_write)):
    user = db.query(models.User).filter(models.User.email == payload.email.strip().lower()).first()
    if not user or not user.is_active or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    token = create_access_token(subject=user.email, role=user.role.value)
    return schemas.TokenResponse(
        access_token=token,
        role=user.role,
        email=user.email,
    )


@router.get("/me", response_model=schemas.UserOut)
def me(current_user: models.User = Depends(get_current_user)):
    return current_user
