from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import List
from app.core.database import get_db
from app.core.security import get_current_superuser, get_password_hash
from app.models.models import User
from app.schemas.schemas import UserCreate, UserResponse, UserUpdate
from app.utils.activity import log_activity

router = APIRouter()

USER_ROLES = ("admin", "staff")


def _check_role(role: str):
    if role not in USER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Role must be one of: {', '.join(USER_ROLES)}"
        )


@router.get("/", response_model=List[UserResponse])
def get_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_superuser)
):
    """List back office users, newest first"""
    return db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_superuser)
):
    """Create a back office user"""
    existing_user = db.query(User).filter(
        or_(User.username == user_data.username, User.email == user_data.email)
    ).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username or email already registered"
        )

    role = user_data.role or "admin"
    _check_role(role)

    db_user = User(
        username=user_data.username,
        email=user_data.email,
        name=user_data.name,
        hashed_password=get_password_hash(user_data.password),
        role=role
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)

    log_activity(db, request, current_user, "created", "user", db_user.id, f"Created user {db_user.username}")

    return db_user


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    user_update: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_superuser)
):
    """Update a back office user; a new password is re-hashed"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    update_data = user_update.model_dump(exclude_unset=True, exclude_none=True)

    for field in ("username", "email"):
        if field in update_data:
            clash = db.query(User).filter(
                getattr(User, field) == update_data[field],
                User.id != user_id
            ).first()
            if clash:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"{field.capitalize()} already registered"
                )

    if "role" in update_data:
        _check_role(update_data["role"])

    password = update_data.pop("password", None)
    if password:
        user.hashed_password = get_password_hash(password)
    for field, value in update_data.items():
        setattr(user, field, value)

    db.commit()
    db.refresh(user)

    log_activity(db, request, current_user, "updated", "user", user.id, f"Updated user {user.username}")

    return user


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_superuser)
):
    """Delete a back office user"""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    username = user.username
    db.delete(user)
    db.commit()

    log_activity(db, request, current_user, "deleted", "user", user_id, f"Deleted user {username}")

    return {"message": "User deleted"}
