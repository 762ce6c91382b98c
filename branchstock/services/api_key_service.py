"""
API Key Service - credentials and request log for the programmatic API
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from sqlalchemy.orm import Session
from typing import List, Optional, Tuple
from uuid import UUID
import logging
import secrets

from branchstock.core import atomic, settings
from branchstock.core.exceptions import AuthenticationError, ValidationError, NotFoundError
from branchstock.core.security import hash_secret, verify_secret
from branchstock.models import ApiKey, ApiRequestLog
from branchstock.schemas.api_key import ApiKeyCreate
from branchstock.services.access_policy import AccessPolicy, Capability, Principal

logger = logging.getLogger(__name__)

API_PERMISSIONS = ("read", "write")


@dataclass
class ApiContext:
    """Resolved caller of the programmatic API"""
    organization_id: UUID
    api_key_id: UUID
    permissions: List[str] = field(default_factory=list)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


def generate_api_key() -> Tuple[str, str]:
    """New (public key, secret) pair"""
    api_key = f"{settings.API_KEY_PREFIX}{secrets.token_hex(24)}"
    api_secret = secrets.token_hex(32)
    return api_key, api_secret


class ApiKeyService:

    @staticmethod
    def create_api_key(db: Session, principal: Principal, data: ApiKeyCreate) -> Tuple[ApiKey, str]:
        """Returns the stored key and the plain secret, which is never retrievable again"""
        AccessPolicy.require(principal, Capability.MANAGE_API_KEYS)
        if not data.name or not data.name.strip():
            raise ValidationError("Key name is required", field="name")
        permissions = sorted(set(p.lower() for p in data.permissions))
        if not permissions or any(p not in API_PERMISSIONS for p in permissions):
            raise ValidationError(f"permissions must be a non-empty subset of {list(API_PERMISSIONS)}", field="permissions")

        api_key, api_secret = generate_api_key()
        key = ApiKey(
            organization_id=principal.tenant_id,
            name=data.name.strip(),
            api_key=api_key,
            secret_hash=hash_secret(api_secret),
            permissions=permissions,
            expires_at=data.expires_at,
            created_by=principal.user_id
        )
        with atomic(db):
            db.add(key)
        logger.info(f"Created API key {key.name} for tenant {principal.tenant_id} ({','.join(permissions)})")
        return key, api_secret

    @staticmethod
    def list_api_keys(db: Session, principal: Principal) -> List[ApiKey]:
        AccessPolicy.require(principal, Capability.MANAGE_API_KEYS)
        return db.query(ApiKey).filter(
            ApiKey.organization_id == principal.tenant_id
        ).order_by(ApiKey.created_at.desc()).all()

    @staticmethod
    def _get_key(db: Session, principal: Principal, key_id: UUID) -> ApiKey:
        key = db.query(ApiKey).filter(
            ApiKey.id == key_id,
            ApiKey.organization_id == principal.tenant_id
        ).first()
        if not key:
            raise NotFoundError("API key", key_id)
        return key

    @staticmethod
    def set_active(db: Session, principal: Principal, key_id: UUID, is_active: bool) -> ApiKey:
        AccessPolicy.require(principal, Capability.MANAGE_API_KEYS)
        key = ApiKeyService._get_key(db, principal, key_id)
        with atomic(db):
            key.is_active = is_active
        logger.info(f"API key {key.name} {'enabled' if is_active else 'disabled'}")
        return key

    @staticmethod
    def delete_api_key(db: Session, principal: Principal, key_id: UUID) -> None:
        """Remove the credential; its request log rows are kept, detached from the key"""
        AccessPolicy.require(principal, Capability.MANAGE_API_KEYS)
        key = ApiKeyService._get_key(db, principal, key_id)
        with atomic(db):
            db.query(ApiRequestLog).filter(ApiRequestLog.api_key_id == key.id).update(
                {ApiRequestLog.api_key_id: None}, synchronize_session=False
            )
            db.delete(key)
        logger.info(f"Deleted API key {key_id}")

    @staticmethod
    def validate(db: Session, api_key: Optional[str], api_secret: Optional[str]) -> ApiContext:
        """Check a key/secret pair; raises AuthenticationError with the reason"""
        if not api_key or not api_secret:
            raise AuthenticationError("Missing API Key or Secret")

        key = db.query(ApiKey).filter(ApiKey.api_key == api_key).first()
        if not key:
            raise AuthenticationError("Invalid API Key")
        if not key.is_active:
            raise AuthenticationError("API Key is inactive")
        if key.is_expired():
            raise AuthenticationError("API Key has expired")
        if not verify_secret(api_secret, key.secret_hash):
            logger.warning(f"Invalid secret presented for API key {key.id}")
            raise AuthenticationError("Invalid API Secret")

        with atomic(db):
            key.last_used_at = datetime.now(timezone.utc)

        return ApiContext(
            organization_id=key.organization_id,
            api_key_id=key.id,
            permissions=list(key.permissions or [])
        )

    @staticmethod
    def log_request(
        db: Session,
        api_key_id: Optional[UUID],
        organization_id: Optional[UUID],
        endpoint: str,
        method: str,
        status_code: int,
        request_body: Optional[dict],
        response_time_ms: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> ApiRequestLog:
        entry = ApiRequestLog(
            api_key_id=api_key_id,
            organization_id=organization_id,
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            request_body=request_body,
            response_time_ms=response_time_ms,
            ip_address=ip_address or "unknown",
            user_agent=user_agent or "unknown"
        )
        with atomic(db):
            db.add(entry)
        return entry
