import logging
import random
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.auth import User
from models.facebook import FacebookApp, TokenType
from helpers.errors import NoCredentialError, NotFoundError

logger = logging.getLogger("credential_store")

LEGACY_ID = "legacy"


@dataclass
class ResolvedCredential:
    id: str
    access_token: str
    app: Optional[FacebookApp] = None

    @property
    def is_legacy(self) -> bool:
        return self.app is None


def mask_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    return f"{token[:8]}..."


def _generated_app_id() -> str:
    return f"app_{int(time.time() * 1000)}_{random.randint(100000, 999999)}"


def serialize_app(app: FacebookApp, mask: bool = True) -> Dict[str, Any]:
    return {
        "id": str(app.id),
        "app_id": app.app_id,
        "app_name": app.app_name,
        "access_token": mask_token(app.access_token) if mask else app.access_token,
        "token_type": app.token_type.value if isinstance(app.token_type, TokenType) else app.token_type,
        "expires_at": app.expires_at.isoformat() if app.expires_at else None,
        "created_at": app.created_at.isoformat() if app.created_at else None,
    }


async def _get_user(user_id: int) -> User:
    user = await User.get_or_none(id=user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def _get_app(user_id: int, credential_id: str) -> Optional[FacebookApp]:
    try:
        pk = uuid.UUID(str(credential_id))
    except ValueError:
        return None
    return await FacebookApp.get_or_none(id=pk, user_id=user_id)


async def add_or_update_credential(
    user_id: int,
    access_token: str,
    app_id: Optional[str] = None,
    app_name: Optional[str] = None,
    token_type: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> FacebookApp:
    """
    Store a token under the user's app credentials.

    If `app_id` matches an existing credential its token, type and expiry are
    replaced in place; otherwise a new credential is appended. The legacy
    single-token field always mirrors the last saved token.
    """
    user = await _get_user(user_id)
    ttype = TokenType(token_type) if token_type else TokenType.SHORT_LIVED
    name = (app_name or "").strip()

    app = None
    if app_id:
        app = await FacebookApp.get_or_none(user_id=user.id, app_id=app_id)

    if app:
        app.access_token = access_token
        app.token_type = ttype
        app.expires_at = expires_at
        if name:
            app.app_name = name
        await app.save()
        logger.info("user %s: updated app credential %s (%s)", user.id, app.id, app.token_type.value)
    else:
        app = await FacebookApp.create(
            user_id=user.id,
            app_id=app_id or _generated_app_id(),
            app_name=name,
            access_token=access_token,
            token_type=ttype,
            expires_at=expires_at,
        )
        logger.info("user %s: added app credential %s (%s)", user.id, app.id, app.app_name)

    user.access_token = access_token
    await user.save(update_fields=["access_token"])
    return app


async def list_credentials(user_id: int, mask: bool = True) -> List[Dict[str, Any]]:
    user = await _get_user(user_id)
    apps = await FacebookApp.filter(user_id=user.id).order_by("created_at")
    if apps:
        return [serialize_app(a, mask=mask) for a in apps]

    if user.access_token:
        return [{
            "id": LEGACY_ID,
            "app_id": None,
            "app_name": "Default App",
            "access_token": mask_token(user.access_token) if mask else user.access_token,
            "token_type": "unknown",
            "expires_at": None,
            "created_at": user.created_at.isoformat() if user.created_at else None,
        }]
    return []


async def delete_credential(user_id: int, credential_id: str) -> bool:
    """
    Delete one credential by id. Returns False when nothing matched.
    The legacy sentinel clears the legacy token field instead.
    """
    user = await _get_user(user_id)

    if credential_id == LEGACY_ID:
        if not user.access_token:
            return False
        user.access_token = None
        await user.save(update_fields=["access_token"])
        logger.info("user %s: cleared legacy token", user.id)
        return True

    app = await _get_app(user.id, credential_id)
    if not app:
        return False
    await app.delete()
    logger.info("user %s: deleted app credential %s", user.id, credential_id)
    return True


async def resolve_credential(user_id: int, credential_id: Optional[str] = None) -> ResolvedCredential:
    """
    Pick the token to use for a user:
      1. explicit credential id ("legacy" -> legacy token)
      2. first app credential with a token
      3. legacy token
    """
    user = await _get_user(user_id)

    if credential_id:
        if credential_id == LEGACY_ID:
            if not user.access_token:
                raise NoCredentialError("Facebook Access Token is required")
            return ResolvedCredential(id=LEGACY_ID, access_token=user.access_token)
        app = await _get_app(user.id, credential_id)
        if not app:
            raise NotFoundError("Facebook app not found")
        if not app.access_token:
            raise NoCredentialError("Facebook Access Token is required")
        return ResolvedCredential(id=str(app.id), access_token=app.access_token, app=app)

    app = await FacebookApp.filter(user_id=user.id).exclude(access_token="").order_by("created_at").first()
    if app:
        return ResolvedCredential(id=str(app.id), access_token=app.access_token, app=app)

    if user.access_token:
        return ResolvedCredential(id=LEGACY_ID, access_token=user.access_token)

    raise NoCredentialError("Facebook Access Token is required")
