"""Tests for collaborator HTTP clients using httpx mock transports."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from ranking.clients.notifications import NotificationPublisher, NotificationPublishError
from ranking.clients.schemas import NotificationEvent
from ranking.clients.upstream import CompetitionDirectoryClient, ProjectDirectoryClient, SubmissionLedgerClient
from ranking.exceptions import UpstreamUnavailableError

SUBMISSION = {
    "id": "s1",
    "writerId": "w1",
    "competitionId": "c1",
    "projectId": "p1",
    "status": "submitted",
    "createdAt": "2026-03-01T12:00:00Z",
    "updatedAt": "2026-03-01T12:00:00Z",
    "extraField": "ignored",
}


def _transport(status: int = 200, body: object = None, raw: bytes | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if raw is not None:
            return httpx.Response(status, content=raw)
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler)


class TestSubmissionLedgerClient:
    async def test_parses_camel_case(self):
        client = SubmissionLedgerClient("http://ledger", transport=_transport(body={"submissions": [SUBMISSION]}))
        submissions = await client.list_all_submissions()
        assert len(submissions) == 1
        assert submissions[0].writer_id == "w1"
        assert submissions[0].created_at == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    async def test_missing_key_is_empty(self):
        client = SubmissionLedgerClient("http://ledger", transport=_transport(body={}))
        assert await client.list_all_placements() == []

    async def test_error_status(self):
        client = SubmissionLedgerClient("http://ledger", transport=_transport(status=503, body={"error": "down"}))
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.list_all_placements()
        assert exc_info.value.service == "placements"

    async def test_invalid_json(self):
        client = SubmissionLedgerClient("http://ledger", transport=_transport(raw=b"<html>"))
        with pytest.raises(UpstreamUnavailableError, match="submissions_unavailable"):
            await client.list_all_submissions()

    async def test_invalid_record(self):
        broken = {**SUBMISSION, "writerId": ""}
        client = SubmissionLedgerClient("http://ledger", transport=_transport(body={"submissions": [broken]}))
        with pytest.raises(UpstreamUnavailableError):
            await client.list_all_submissions()

    async def test_non_object_payload(self):
        client = SubmissionLedgerClient("http://ledger", transport=_transport(body=[SUBMISSION]))
        with pytest.raises(UpstreamUnavailableError):
            await client.list_all_submissions()

    @pytest.mark.parametrize("created_at", ["2026-03-01T12:00:00", "2026-03-01"])
    async def test_timestamp_without_offset_rejected(self, created_at):
        naive = {**SUBMISSION, "createdAt": created_at}
        client = SubmissionLedgerClient("http://ledger", transport=_transport(body={"submissions": [SUBMISSION, naive]}))
        with pytest.raises(UpstreamUnavailableError, match="invalid payload"):
            await client.list_all_submissions()

    async def test_offset_timestamp_kept_aware(self):
        shifted = {**SUBMISSION, "createdAt": "2026-03-01T14:00:00+02:00"}
        client = SubmissionLedgerClient("http://ledger", transport=_transport(body={"submissions": [shifted]}))
        submissions = await client.list_all_submissions()
        assert submissions[0].created_at == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    async def test_invalid_base_url(self):
        client = SubmissionLedgerClient("http://ledger:notaport")
        with pytest.raises(UpstreamUnavailableError):
            await client.list_all_submissions()


class TestCompetitionDirectoryClient:
    async def test_lists_competitions(self):
        body = {"competitions": [{"id": "c1", "title": "Spring Fiction Prize", "genre": "literary"}]}
        client = CompetitionDirectoryClient("http://competitions/", transport=_transport(body=body))
        competitions = await client.list_all_competitions()
        assert competitions[0].title == "Spring Fiction Prize"


class TestProjectDirectoryClient:
    async def test_filter_params_and_owners(self):
        seen: list[httpx.URL] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return httpx.Response(200, json={"projects": [
                {"ownerUserId": "w1"}, {"ownerUserId": "w2"}, {"ownerUserId": "w1"},
            ]})

        client = ProjectDirectoryClient("http://profiles", limit=50, transport=httpx.MockTransport(handler))
        owners = await client.list_owner_ids(genre="horror")

        assert owners == {"w1", "w2"}
        assert seen[0].path == "/internal/projects"
        assert seen[0].params["genre"] == "horror"
        assert seen[0].params["limit"] == "50"
        assert "format" not in seen[0].params


class TestNotificationPublisher:
    def _event(self) -> NotificationEvent:
        return NotificationEvent(
            event_id="evt-1",
            event_type="ranking_appeal_resolved",
            occurred_at=datetime(2026, 5, 1, tzinfo=timezone.utc),
            actor_user_id="admin_01",
            target_user_id="writer_01",
            resource_type="ranking_appeal",
            resource_id="appeal_1",
            payload={"status": "upheld"},
        )

    async def test_posts_camel_case_envelope(self):
        captured: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(json.loads(request.content))
            return httpx.Response(202, json={"accepted": True})

        publisher = NotificationPublisher("http://notify", transport=httpx.MockTransport(handler))
        await publisher.publish(self._event())

        assert captured[0]["eventType"] == "ranking_appeal_resolved"
        assert captured[0]["targetUserId"] == "writer_01"
        assert captured[0]["payload"] == {"status": "upheld"}

    async def test_rejection_raises(self):
        publisher = NotificationPublisher("http://notify", transport=_transport(status=500, body={}))
        with pytest.raises(NotificationPublishError):
            await publisher.publish(self._event())

    async def test_invalid_url_raises_publish_error(self):
        publisher = NotificationPublisher("http://notify:notaport")
        with pytest.raises(NotificationPublishError):
            await publisher.publish(self._event())
