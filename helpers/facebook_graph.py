# helpers/facebook_graph.py
from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

import aiohttp

from helpers.errors import UpstreamAPIError

logger = logging.getLogger("facebook_graph")

LEAD_FIELDS = "id,created_time,field_data,form_id,platform,campaign_name,adset_name,ad_name,ad_id"
INSIGHT_FIELDS = "campaign_name,adset_name,ad_name,impressions,clicks,ctr,spend,cpm,cpc,reach,actions"
AD_ACCOUNT_FIELDS = "id,name,account_id,account_status"


def _get_env(name: str, default: Optional[str] = None, required: bool = False) -> str:
    val = os.getenv(name, default)
    if required and not val:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val or ""


def _graph_base(version: Optional[str]) -> str:
    v = (version or _get_env("META_GRAPH_VERSION", "v19.0")).strip()
    if not v.startswith("v"):
        v = f"v{v}"
    return f"https://graph.facebook.com/{v}"


def _clean(params: Dict[str, Any]) -> Dict[str, Any]:
    # aiohttp rejects None values in query params
    return {k: v for k, v in params.items() if v is not None}


def _error_message(body: Any, status: int) -> str:
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return err["message"]
        if isinstance(err, str) and err:
            return err
    return f"HTTP {status}"


def next_cursor(paging: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Return the `after` cursor for the next page, or None when the listing is exhausted.
    Graph only sends `paging.next` when another page exists.
    """
    if not paging or not paging.get("next"):
        return None
    after = (paging.get("cursors") or {}).get("after")
    if after:
        return after
    values = parse_qs(urlparse(paging["next"]).query).get("after")
    return values[0] if values else None


def to_act_id(ad_account_id: str) -> str:
    ad_account_id = (ad_account_id or "").strip()
    return ad_account_id if ad_account_id.startswith("act_") else f"act_{ad_account_id}"


class FacebookGraph:
    """
    Lightweight async client for Meta Graph API (Lead Ads + Insights).

    Usage:
        graph = FacebookGraph.from_env()  # reads META_GRAPH_VERSION, META_HTTP_TIMEOUT_SECONDS
        pages = await graph.get_user_pages(token)

    Every call raises UpstreamAPIError("Facebook API Error: <message>") on a
    non-2xx response or an {"error": {...}} envelope.
    """

    def __init__(self, version: Optional[str] = None, timeout_seconds: float = 30):
        self.version = version or _get_env("META_GRAPH_VERSION", "v19.0")
        self.GRAPH = _graph_base(self.version)
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    @classmethod
    def from_env(cls) -> "FacebookGraph":
        version = _get_env("META_GRAPH_VERSION", "v19.0")
        timeout = float(_get_env("META_HTTP_TIMEOUT_SECONDS", "30"))
        return cls(version=version, timeout_seconds=timeout)

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.GRAPH}/{path.lstrip('/')}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as s:
                async with s.get(url, params=_clean(params)) as r:
                    try:
                        body = await r.json(content_type=None)
                    except ValueError:
                        body = None
                    if r.status >= 400 or (isinstance(body, dict) and "error" in body):
                        message = _error_message(body, r.status)
                        logger.warning("Graph GET %s failed (%s): %s", path, r.status, message)
                        raise UpstreamAPIError(message, http_status=r.status)
                    return body if isinstance(body, dict) else {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamAPIError(str(e) or e.__class__.__name__)

    # ---------- OAUTH ----------
    async def extend_user_token(self, short_lived_token: str, app_id: str, app_secret: str) -> Dict[str, Any]:
        """
        Convert short-lived token -> long-lived (~60 days).
        """
        params = {
            "grant_type": "fb_exchange_token",
            "client_id": app_id,
            "client_secret": app_secret,
            "fb_exchange_token": short_lived_token,
        }
        return await self._get("oauth/access_token", params)

    # ---------- PAGES / FORMS ----------
    async def get_user_pages(self, user_token: str) -> List[Dict[str, Any]]:
        """
        Returns pages (and page access tokens) the user manages.
        """
        body = await self._get("me/accounts", {
            "access_token": user_token,
            "fields": "id,name,access_token,category",
        })
        return body.get("data") or []

    async def get_page_forms(self, page_id: str, page_token: str) -> List[Dict[str, Any]]:
        body = await self._get(f"{page_id}/leadgen_forms", {
            "access_token": page_token,
            "fields": "id,name,status,created_time",
        })
        return body.get("data") or []

    async def get_form(self, form_id: str, token: str) -> Dict[str, Any]:
        return await self._get(form_id, {
            "access_token": token,
            "fields": "name,status,page,created_time",
        })

    async def get_page_ad_accounts(self, page_id: str, token: str) -> List[Dict[str, Any]]:
        body = await self._get(f"{page_id}/adaccounts", {
            "access_token": token,
            "fields": AD_ACCOUNT_FIELDS,
        })
        return body.get("data") or []

    # ---------- LEADS ----------
    async def iter_lead_pages(
        self,
        form_id: str,
        token: str,
        since: Optional[int] = None,
        limit: int = 100,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """
        Yield one list of raw leads per upstream page, following the `after`
        cursor until Graph stops returning `paging.next`.
        """
        params: Dict[str, Any] = {
            "access_token": token,
            "fields": LEAD_FIELDS,
            "limit": limit,
            "since": since,
        }
        while True:
            body = await self._get(f"{form_id}/leads", params)
            yield body.get("data") or []

            after = next_cursor(body.get("paging"))
            if not after:
                return
            params = {**params, "after": after}

    # ---------- ADS ----------
    async def get_ad_accounts(self, user_token: str) -> List[Dict[str, Any]]:
        body = await self._get("me/adaccounts", {
            "access_token": user_token,
            "fields": AD_ACCOUNT_FIELDS,
        })
        return body.get("data") or []

    async def get_insights(
        self,
        ad_account_id: str,
        token: str,
        date_preset: str,
        breakdown: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = {
            "access_token": token,
            "fields": INSIGHT_FIELDS,
            "date_preset": date_preset,
            "level": "ad",
            "limit": 500,
            "breakdowns": breakdown or None,
        }
        return await self._get(f"{to_act_id(ad_account_id)}/insights", params)


graph = FacebookGraph.from_env()
