import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from models.auth import User
from models.facebook import TokenType
from helpers.errors import ConfigurationError, NotFoundError, UpstreamAPIError
from helpers.facebook_graph import graph

logger = logging.getLogger("token_exchange")

DEFAULT_EXPIRES_IN = 60 * 24 * 60 * 60  # 60 days, Graph's usual long-lived lifetime


def _app_secret_pair(user: User):
    if user.facebook_app_id and user.facebook_app_secret:
        return user.facebook_app_id, user.facebook_app_secret
    app_id = os.getenv("META_APP_ID")
    app_secret = os.getenv("META_APP_SECRET")
    if app_id and app_secret:
        return app_id, app_secret
    raise ConfigurationError(
        "Facebook App ID and App Secret must be configured. "
        "Please set them in your profile or ask the administrator to configure them."
    )


async def exchange(short_lived_token: str, user_id: int) -> Dict[str, Any]:
    """
    Trade a short-lived user token for a long-lived one.
    Nothing is persisted; feed the result into credential_store.add_or_update_credential.
    """
    user = await User.get_or_none(id=user_id)
    if not user:
        raise NotFoundError("User not found")

    app_id, app_secret = _app_secret_pair(user)
    body = await graph.extend_user_token(short_lived_token, app_id=app_id, app_secret=app_secret)

    token = body.get("access_token")
    if not token:
        raise UpstreamAPIError("Invalid response from Facebook token exchange")

    try:
        expires_in = int(body.get("expires_in") or DEFAULT_EXPIRES_IN)
    except (TypeError, ValueError):
        expires_in = DEFAULT_EXPIRES_IN

    expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    logger.info("user %s: exchanged token; exp=%s", user.id, expires_at.isoformat())
    return {
        "access_token": token,
        "expires_at": expires_at,
        "token_type": TokenType.LONG_LIVED.value,
    }
