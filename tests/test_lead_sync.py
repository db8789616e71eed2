from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from conftest import leads_page, raw_lead
from models.facebook import FacebookForm
from models.lead import Lead, LeadStatus
from helpers.errors import (
    NoActiveFormsError,
    NoCredentialError,
    NormalizationError,
    NotFoundError,
    UpstreamAPIError,
)
from helpers.facebook_graph import graph
from helpers.lead_sync import normalize_lead, sync

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def upstream(*bodies):
    return patch.object(graph, "_get", AsyncMock(side_effect=list(bodies)))


class TestNormalizeLead:
    def test_aliases_are_case_insensitive(self):
        form = FacebookForm(form_id="form_1", form_name="Promo", page_id="p", page_name="Page")
        raw = {
            "id": "L1",
            "created_time": "2024-03-01T12:00:00+0000",
            "field_data": [
                {"name": "Full Name", "values": ["Jane Doe"]},
                {"name": "Email Address", "values": [" JANE@EXAMPLE.COM "]},
                {"name": "Mobile", "values": ["555-1234"]},
                {"name": "city", "values": ["Austin"]},
            ],
        }
        lead = normalize_lead(raw, form)

        assert lead["full_name"] == "Jane Doe"
        assert lead["email"] == "jane@example.com"
        assert lead["phone"] == "555-1234"
        assert lead["created_time"] == T0
        assert lead["field_data"][3] == {"name": "city", "value": "Austin"}
        assert lead["raw_data"] == {
            "platform": "unknown",
            "campaign_name": "unknown",
            "adset_name": "unknown",
            "ad_name": "unknown",
            "ad_id": "unknown",
        }
        assert lead["form_name"] == "Promo"

    def test_malformed_field_entries_are_tolerated(self):
        form = FacebookForm(form_id="form_1")
        raw = {
            "id": "L1",
            "field_data": [
                "garbage",
                {"values": ["no name"]},
                {"name": "email", "values": []},
                {"name": "phone"},
            ],
        }
        lead = normalize_lead(raw, form)

        assert lead["email"] is None
        assert lead["phone"] is None
        assert lead["full_name"] is None
        assert {"name": "unknown", "value": "no name"} in lead["field_data"]
        assert lead["created_time"] is not None

    def test_missing_id_raises(self):
        with pytest.raises(NormalizationError):
            normalize_lead({"field_data": []}, FacebookForm(form_id="f"))

    def test_non_object_raises(self):
        with pytest.raises(NormalizationError):
            normalize_lead("not-a-lead", FacebookForm(form_id="f"))

    def test_bad_created_time_raises(self):
        with pytest.raises(NormalizationError):
            normalize_lead({"id": "L1", "created_time": "yesterday-ish"}, FacebookForm(form_id="f"))


class TestSync:
    @pytest.mark.asyncio
    async def test_first_sync_inserts_all(self, user, form):
        leads = [raw_lead(f"L{i}", T0 + timedelta(minutes=i)) for i in (1, 2, 3)]
        with upstream(leads_page(leads)) as get:
            result = await sync(user.id, form_id="form_1")

        assert result == {"total_fetched": 3, "inserted": 3, "errors": []}
        assert await Lead.filter(form_id="form_1").count() == 3
        assert get.await_args.args[1].get("since") is None

        stored = await Lead.get(lead_id="L1")
        assert stored.email == "jane@example.com"
        assert stored.page_name == "Acme Page"
        assert stored.raw_data["campaign_name"] == "Spring"
        assert stored.last_synced_at is not None

    @pytest.mark.asyncio
    async def test_resync_only_new(self, user, form):
        first = [raw_lead(f"L{i}", T0 + timedelta(minutes=i)) for i in (1, 2, 3)]
        with upstream(leads_page(first)):
            await sync(user.id, form_id="form_1")

        with upstream(leads_page([raw_lead("L4", T0 + timedelta(minutes=4))])):
            result = await sync(user.id, form_id="form_1")

        assert result["total_fetched"] == 1
        assert result["inserted"] == 1
        assert await Lead.all().count() == 4

    @pytest.mark.asyncio
    async def test_watermark_is_latest_created_time(self, user, form):
        for i, minutes in enumerate((5, 30, 10)):
            await Lead.create(
                user=user, form_id="form_1", lead_id=f"old{i}", created_time=T0 + timedelta(minutes=minutes)
            )

        with upstream(leads_page([])) as get:
            result = await sync(user.id, form_id="form_1")

        assert get.await_args.args[1]["since"] == int((T0 + timedelta(minutes=30)).timestamp())
        assert result == {"total_fetched": 0, "inserted": 0, "errors": []}

    @pytest.mark.asyncio
    async def test_upsert_preserves_status_and_notes(self, user, form):
        lead = raw_lead("L1", T0)
        with upstream(leads_page([lead])):
            await sync(user.id, form_id="form_1")

        stored = await Lead.get(lead_id="L1")
        stored.status = LeadStatus.QUALIFIED
        stored.notes = "called back"
        await stored.save()
        first_synced = stored.last_synced_at

        changed = raw_lead("L1", T0, name="Jane Smith")
        with upstream(leads_page([changed, changed])):
            result = await sync(user.id, form_id="form_1")

        assert result["inserted"] == 2
        assert await Lead.filter(lead_id="L1").count() == 1
        stored = await Lead.get(lead_id="L1")
        assert stored.status == LeadStatus.QUALIFIED
        assert stored.notes == "called back"
        assert stored.full_name == "Jane Smith"
        assert stored.last_synced_at >= first_synced

    @pytest.mark.asyncio
    async def test_bad_lead_is_isolated(self, user, form):
        good_a = raw_lead("A", T0)
        bad_b = {"created_time": "2024-03-01T12:00:00+0000", "field_data": []}
        good_c = raw_lead("C", T0 + timedelta(minutes=1))
        with upstream(leads_page([good_a, bad_b, good_c])):
            result = await sync(user.id, form_id="form_1")

        assert result["inserted"] == 2
        assert result["total_fetched"] == 2
        assert len(result["errors"]) == 1
        assert set(await Lead.all().values_list("lead_id", flat=True)) == {"A", "C"}

    @pytest.mark.asyncio
    async def test_follows_pagination(self, user, form):
        with upstream(
            leads_page([raw_lead("L1", T0)], after="cursor1"),
            leads_page([raw_lead("L2", T0 + timedelta(minutes=1))]),
        ) as get:
            result = await sync(user.id, form_id="form_1")

        assert result["inserted"] == 2
        assert get.await_args_list[1].args[1]["after"] == "cursor1"

    @pytest.mark.asyncio
    async def test_older_leads_on_later_pages_are_not_skipped(self, user, form):
        # newest-first listing: the watermark must not move past leads still behind the cursor
        newest = raw_lead("L_new", T0 + timedelta(hours=2))
        older = [raw_lead(f"L_old{i}", T0 + timedelta(minutes=i)) for i in range(3)]
        bodies = [leads_page([newest], after="cursor0")]
        bodies += [leads_page([lead], after=f"cursor{i + 1}") for i, lead in enumerate(older[:-1])]
        bodies.append(leads_page([older[-1]]))
        with upstream(*bodies) as get:
            result = await sync(user.id, form_id="form_1")

        assert result == {"total_fetched": 4, "inserted": 4, "errors": []}
        assert get.await_count == 4
        assert await Lead.filter(lead_id__startswith="L_old").count() == 3

        with upstream(leads_page([])) as get:
            await sync(user.id, form_id="form_1")
        assert get.await_args.args[1]["since"] == int((T0 + timedelta(hours=2)).timestamp())

    @pytest.mark.asyncio
    async def test_later_page_failure_keeps_earlier_pages(self, user, form):
        with upstream(
            leads_page([raw_lead("L1", T0)], after="cursor1"),
            UpstreamAPIError("Please reduce the amount of data"),
        ):
            result = await sync(user.id, form_id="form_1")

        assert result["inserted"] == 1
        assert result["errors"][0]["form_id"] == "form_1"

    @pytest.mark.asyncio
    async def test_explicit_form_upstream_failure_propagates(self, user, form):
        with upstream(UpstreamAPIError("Error validating access token: Session has expired")):
            with pytest.raises(UpstreamAPIError):
                await sync(user.id, form_id="form_1")

        await form.refresh_from_db()
        assert form.last_fetched_at is not None

    @pytest.mark.asyncio
    async def test_one_broken_form_does_not_stop_others(self, user, form, app_credential):
        await FacebookForm.create(user=user, form_id="form_2", facebook_app=app_credential)
        with upstream(
            UpstreamAPIError("(#100) Unsupported get request"),
            leads_page([raw_lead("L9", T0)]),
        ):
            result = await sync(user.id)

        assert result["inserted"] == 1
        assert result["errors"] == [{"form_id": "form_1", "error": "Facebook API Error: (#100) Unsupported get request"}]
        assert await Lead.filter(form_id="form_2").count() == 1

    @pytest.mark.asyncio
    async def test_updates_last_fetched_at(self, user, form):
        assert form.last_fetched_at is None
        with upstream(leads_page([])):
            await sync(user.id, form_id="form_1")
        await form.refresh_from_db()
        assert form.last_fetched_at is not None

    @pytest.mark.asyncio
    async def test_inactive_forms_are_skipped(self, user, form):
        form.is_active = False
        await form.save()
        with pytest.raises(NoActiveFormsError):
            await sync(user.id)

    @pytest.mark.asyncio
    async def test_unknown_form(self, user, app_credential):
        with pytest.raises(NotFoundError):
            await sync(user.id, form_id="nope")

    @pytest.mark.asyncio
    async def test_no_credential(self, user):
        with pytest.raises(NoCredentialError):
            await sync(user.id)

    @pytest.mark.asyncio
    async def test_uses_form_credential_token(self, user, form):
        with upstream(leads_page([])) as get:
            await sync(user.id, form_id="form_1", app_id=str(form.facebook_app_id))
        assert get.await_args.args[1]["access_token"] == "EAAB-main-token"
