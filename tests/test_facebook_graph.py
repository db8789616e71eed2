from unittest.mock import AsyncMock, patch

import pytest

from helpers.errors import UpstreamAPIError
from helpers.facebook_graph import FacebookGraph, _error_message, _graph_base, next_cursor, to_act_id


class TestHelpers:
    def test_graph_base_adds_version_prefix(self):
        assert _graph_base("19.0") == "https://graph.facebook.com/v19.0"
        assert _graph_base("v20.0") == "https://graph.facebook.com/v20.0"

    def test_next_cursor_none_without_next(self):
        assert next_cursor(None) is None
        assert next_cursor({"cursors": {"after": "abc"}}) is None

    def test_next_cursor_prefers_cursors(self):
        paging = {"cursors": {"after": "abc"}, "next": "https://graph.facebook.com/x?after=zzz"}
        assert next_cursor(paging) == "abc"

    def test_next_cursor_parses_next_url(self):
        paging = {"next": "https://graph.facebook.com/v19.0/1/leads?limit=100&after=QVFIU"}
        assert next_cursor(paging) == "QVFIU"

    def test_to_act_id(self):
        assert to_act_id("123") == "act_123"
        assert to_act_id("act_123") == "act_123"

    def test_error_message_from_envelope(self):
        assert _error_message({"error": {"message": "Invalid OAuth access token."}}, 400) == "Invalid OAuth access token."
        assert _error_message(None, 503) == "HTTP 503"

    def test_upstream_error_prefix_and_hint(self):
        err = UpstreamAPIError("Error validating access token: Session has expired")
        assert str(err).startswith("Facebook API Error: ")
        assert err.with_hint().endswith("Please generate a new one.")
        assert UpstreamAPIError("Rate limited").with_hint() == "Facebook API Error: Rate limited"
        assert UpstreamAPIError("Invalid response from Facebook Insights API").with_hint() == (
            "Facebook API Error: Invalid response from Facebook Insights API"
        )
        assert UpstreamAPIError("Invalid OAuth access token.").with_hint().endswith("Please generate a new one.")


class TestLeadPaging:
    @pytest.mark.asyncio
    async def test_follows_after_cursor_until_exhausted(self):
        client = FacebookGraph(version="v19.0")
        pages = [
            {"data": [{"id": "1"}], "paging": {"cursors": {"after": "c1"}, "next": "https://x?after=c1"}},
            {"data": [{"id": "2"}], "paging": {"cursors": {"after": "c2"}, "next": "https://x?after=c2"}},
            {"data": [{"id": "3"}], "paging": {"cursors": {"after": "c3"}}},
        ]
        with patch.object(client, "_get", AsyncMock(side_effect=pages)) as get:
            batches = [b async for b in client.iter_lead_pages("form_1", "tok", since=1700000000, limit=2)]

        assert [[l["id"] for l in b] for b in batches] == [["1"], ["2"], ["3"]]
        assert get.await_count == 3
        first_params = get.await_args_list[0].args[1]
        assert first_params["since"] == 1700000000
        assert first_params["limit"] == 2
        assert "after" not in first_params
        assert get.await_args_list[2].args[1]["after"] == "c2"

    @pytest.mark.asyncio
    async def test_long_listing_is_read_to_the_end(self):
        client = FacebookGraph(version="v19.0")
        pages = [
            {"data": [{"id": str(i)}], "paging": {"cursors": {"after": f"c{i}"}, "next": f"https://x?after=c{i}"}}
            for i in range(250)
        ]
        pages.append({"data": [{"id": "last"}], "paging": {"cursors": {"after": "end"}}})
        with patch.object(client, "_get", AsyncMock(side_effect=pages)) as get:
            batches = [b async for b in client.iter_lead_pages("form_1", "tok")]
        assert len(batches) == 251
        assert batches[-1] == [{"id": "last"}]
        assert get.await_count == 251
        assert get.await_args.args[1]["after"] == "c249"

    @pytest.mark.asyncio
    async def test_insights_request_shape(self):
        client = FacebookGraph(version="v19.0")
        with patch.object(client, "_get", AsyncMock(return_value={"data": []})) as get:
            await client.get_insights("123", "tok", "last_7d")
        path, params = get.await_args.args
        assert path == "act_123/insights"
        assert params["level"] == "ad"
        assert params["date_preset"] == "last_7d"
        assert params["breakdowns"] is None
