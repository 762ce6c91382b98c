"""
API Credentials management - keys for the programmatic inventory API
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from branchstock.core import get_db
from branchstock.models import ApiKey
from branchstock.schemas.api_key import ApiKeyCreate, ApiKeyUpdate
from branchstock.services import ApiKeyService, Principal
from branchstock.api.deps import get_current_principal

router = APIRouter(prefix="/api-keys", tags=["API Keys"])


def serialize_key(k: ApiKey) -> dict:
    return {
        "id": str(k.id),
        "name": k.name,
        "api_key": k.api_key,
        "permissions": list(k.permissions or []),
        "is_active": k.is_active,
        "expires_at": k.expires_at.isoformat() if k.expires_at else None,
        "last_used_at": k.last_used_at.isoformat() if k.last_used_at else None,
        "created_at": k.created_at.isoformat() if k.created_at else None,
    }


@router.get("")
def list_api_keys(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return {"api_keys": [serialize_key(k) for k in ApiKeyService.list_api_keys(db, principal)]}


@router.post("", status_code=201)
def create_api_key(
    data: ApiKeyCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """The secret is returned only in this response"""
    key, api_secret = ApiKeyService.create_api_key(db, principal, data)
    result = serialize_key(key)
    result["api_secret"] = api_secret
    return result


@router.patch("/{key_id}")
def toggle_api_key(
    key_id: UUID,
    data: ApiKeyUpdate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    return serialize_key(ApiKeyService.set_active(db, principal, key_id, data.is_active))


@router.delete("/{key_id}")
def delete_api_key(
    key_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    ApiKeyService.delete_api_key(db, principal, key_id)
    return {"success": True}
