from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import get_current_admin_user
from app.models.models import SystemConfig, User
from app.schemas.schemas import ConfigMapResponse, ConfigResponse, ConfigUpdate
from app.utils.activity import log_activity

router = APIRouter()


def _config_map(db: Session) -> dict:
    entries = db.query(SystemConfig).order_by(SystemConfig.key).all()
    return {
        "config": {
            entry.key: {"value": entry.value, "description": entry.description}
            for entry in entries
        }
    }


@router.get("/public", response_model=ConfigMapResponse)
def get_public_config(db: Session = Depends(get_db)):
    """
    Business configuration (no authentication required)
    Used by the public booking page for the business name and hours
    """
    return _config_map(db)


@router.get("/", response_model=ConfigMapResponse)
def get_config(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Business configuration for the back office"""
    return _config_map(db)


@router.put("/", response_model=ConfigResponse)
def upsert_config(
    config_data: ConfigUpdate,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Create or update one configuration key"""
    key = config_data.key.strip()
    if not key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Key is required"
        )

    entry = db.query(SystemConfig).filter(SystemConfig.key == key).first()
    if entry is None:
        entry = SystemConfig(key=key, value=config_data.value, description=config_data.description)
        db.add(entry)
        action = "created"
    else:
        entry.value = config_data.value
        if config_data.description is not None:
            entry.description = config_data.description
        action = "updated"

    db.commit()
    db.refresh(entry)

    log_activity(db, request, current_user, action, "config", entry.id, f"Set {entry.key} = {entry.value}")

    return entry


@router.delete("/{key}")
def delete_config(
    key: str,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Remove a configuration key"""
    entry = db.query(SystemConfig).filter(SystemConfig.key == key).first()
    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Configuration key not found"
        )

    entry_id = entry.id
    db.delete(entry)
    db.commit()

    log_activity(db, request, current_user, "deleted", "config", entry_id, f"Deleted {key}")

    return {"message": "Configuration deleted"}
