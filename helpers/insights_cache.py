import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from models.analytics import AnalyticsCache
from models.facebook import FacebookApp
from helpers.errors import UpstreamAPIError, ValidationError
from helpers.facebook_graph import graph, to_act_id

logger = logging.getLogger("insights_cache")

DATE_PRESETS = (
    "today",
    "yesterday",
    "last_7d",
    "last_30d",
    "last_90d",
    "this_month",
    "last_month",
)

CACHE_TTL = timedelta(hours=int(os.getenv("INSIGHTS_CACHE_TTL_HOURS", "6")))
REFRESH_WINDOW = timedelta(minutes=int(os.getenv("INSIGHTS_REFRESH_WINDOW_MINUTES", "60")))


def canonical_breakdown(breakdown: Optional[str]) -> str:
    return (breakdown or "").strip()


async def get_insights(
    user_id: int,
    access_token: str,
    ad_account_id: str,
    date_preset: str,
    breakdown: Optional[str] = None,
    force_refresh: bool = False,
) -> Dict[str, Any]:
    """
    Serve ad-level insights for an ad account, from cache while the entry is fresh.
    Upstream failures (including a body without a `data` list) propagate and
    leave any existing entry untouched.
    """
    if date_preset not in DATE_PRESETS:
        raise ValidationError(
            f"Invalid date_preset '{date_preset}'. Expected one of: {', '.join(DATE_PRESETS)}"
        )
    if not (ad_account_id or "").strip():
        raise ValidationError("ad_account_id is required")

    key = {
        "user_id": user_id,
        "ad_account_id": to_act_id(ad_account_id),
        "date_preset": date_preset,
        "breakdown": canonical_breakdown(breakdown),
    }

    now = datetime.now(timezone.utc)
    if not force_refresh:
        cached = await AnalyticsCache.get_or_none(**key)
        if cached and cached.expires_at > now:
            logger.debug("cache hit %s", key)
            return cached.data

    data = await graph.get_insights(
        key["ad_account_id"], access_token, date_preset, breakdown=key["breakdown"] or None
    )
    if not isinstance(data, dict) or not isinstance(data.get("data"), list):
        logger.warning("insights for %s came back without a data list", key["ad_account_id"])
        raise UpstreamAPIError("Invalid response from Facebook Insights API")

    now = datetime.now(timezone.utc)
    await AnalyticsCache.update_or_create(
        defaults={"data": data, "fetched_at": now, "expires_at": now + CACHE_TTL},
        **key,
    )
    logger.info("cached insights for user %s %s/%s", user_id, key["ad_account_id"], date_preset)
    return data


async def purge_expired() -> int:
    return await AnalyticsCache.filter(expires_at__lte=datetime.now(timezone.utc)).delete()


async def refresh_expiring() -> int:
    """
    Drop expired entries, then refresh the ones expiring within REFRESH_WINDOW
    using the owner's first stored app token. Returns how many were refreshed.
    """
    purged = await purge_expired()
    if purged:
        logger.info("purged %s expired insights entries", purged)

    horizon = datetime.now(timezone.utc) + REFRESH_WINDOW
    entries = await AnalyticsCache.filter(expires_at__lt=horizon)

    refreshed = 0
    for entry in entries:
        try:
            app = await FacebookApp.filter(user_id=entry.user_id).exclude(access_token="").order_by("created_at").first()
            if not app:
                logger.info("skip refresh for entry %s: user %s has no token", entry.id, entry.user_id)
                continue
            await get_insights(
                entry.user_id,
                app.access_token,
                entry.ad_account_id,
                entry.date_preset,
                breakdown=entry.breakdown or None,
                force_refresh=True,
            )
            refreshed += 1
        except Exception:
            logger.exception("failed to refresh insights entry %s", entry.id)
    return refreshed


def flatten_insights_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Spread the `actions` list into action_<type> columns for tabular export."""
    flat = []
    for row in rows or []:
        out = {k: v for k, v in row.items() if k != "actions"}
        for action in row.get("actions") or []:
            if isinstance(action, dict) and action.get("action_type"):
                out[f"action_{action['action_type']}"] = action.get("value")
        flat.append(out)
    return flat
