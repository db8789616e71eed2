# scheduler/lead_scheduler.py
import logging
import os
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from models.facebook import FacebookForm
from helpers.lead_sync import sync
from helpers.insights_cache import refresh_expiring

logger = logging.getLogger("lead_scheduler")

LEAD_SYNC_INTERVAL_MINUTES = int(os.getenv("LEAD_SYNC_INTERVAL_MINUTES", "10"))
INSIGHTS_REFRESH_HOURS = int(os.getenv("INSIGHTS_REFRESH_HOURS", "6"))

LEAD_SYNC_JOB_ID = "lead-sync"
INSIGHTS_REFRESH_JOB_ID = "insights-refresh"


async def run_lead_sync_tick() -> Dict[str, Any]:
    """
    One pass over every active form of every user.
    A failing form is logged and the rest still run.
    """
    summary = {"forms": 0, "synced": 0, "failed": 0, "inserted": 0}
    try:
        forms = await FacebookForm.filter(is_active=True).order_by("id")
    except Exception:
        logger.exception("lead sync tick: could not load active forms")
        return summary

    summary["forms"] = len(forms)
    for form in forms:
        app_id = str(form.facebook_app_id) if form.facebook_app_id else None
        try:
            result = await sync(form.user_id, form_id=form.form_id, app_id=app_id)
            summary["synced"] += 1
            summary["inserted"] += result["inserted"]
        except Exception as e:
            summary["failed"] += 1
            logger.error("lead sync tick: form %s (user %s) failed: %s", form.form_id, form.user_id, e)

    logger.info(
        "lead sync tick: %s forms, %s ok, %s failed, %s leads upserted",
        summary["forms"], summary["synced"], summary["failed"], summary["inserted"],
    )
    return summary


async def run_insights_refresh_tick() -> int:
    try:
        refreshed = await refresh_expiring()
    except Exception:
        logger.exception("insights refresh tick failed")
        return 0
    logger.info("insights refresh tick: %s entries refreshed", refreshed)
    return refreshed


class LeadSyncScheduler:
    """
    Owns the two recurring jobs. Created by the app entry point, started on
    startup and stopped on shutdown.
    """

    def __init__(
        self,
        lead_sync_minutes: int = LEAD_SYNC_INTERVAL_MINUTES,
        insights_refresh_hours: int = INSIGHTS_REFRESH_HOURS,
        timezone: Optional[str] = None,
    ):
        self.lead_sync_minutes = lead_sync_minutes
        self.insights_refresh_hours = insights_refresh_hours
        self.timezone = timezone or os.getenv("APS_TIMEZONE", "UTC")
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return bool(self._scheduler and self._scheduler.running)

    def start(self) -> AsyncIOScheduler:
        if self.running:
            return self._scheduler

        self._scheduler = AsyncIOScheduler(
            timezone=self.timezone,
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": int(os.getenv("APS_MISFIRE_GRACE_SECONDS", "60")),
            },
        )
        self._scheduler.add_job(
            run_lead_sync_tick,
            IntervalTrigger(minutes=self.lead_sync_minutes),
            id=LEAD_SYNC_JOB_ID,
            replace_existing=True,
        )
        self._scheduler.add_job(
            run_insights_refresh_tick,
            IntervalTrigger(hours=self.insights_refresh_hours),
            id=INSIGHTS_REFRESH_JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "scheduler started: lead sync every %s min, insights refresh every %s h",
            self.lead_sync_minutes, self.insights_refresh_hours,
        )
        return self._scheduler

    def stop(self, wait: bool = False) -> None:
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("scheduler stopped")
        self._scheduler = None

    def get_job(self, job_id: str):
        return self._scheduler.get_job(job_id) if self._scheduler else None
