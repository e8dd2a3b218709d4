"""Tests for citewatch.services.alerting."""

import json

import httpx
import pytest
import respx
from httpx import Response

from conftest import EMAIL_URL, PUSH_URL, make_snapshot

from citewatch.schemas.monitor import MonitorResponse
from citewatch.schemas.snapshot import ChangeType
from citewatch.services.alerting import (
    AlertDispatcher,
    EmailNotifier,
    PushNotifier,
    sign_payload,
)
from citewatch.services.diff import compare_snapshots
from citewatch.services.store import MonitorStore

SECRET = "notify-secret"


def _dispatcher(session, http_client, push_url=PUSH_URL, email_url=EMAIL_URL) -> AlertDispatcher:
    return AlertDispatcher(
        store=MonitorStore(session),
        push=PushNotifier(push_url, SECRET, http_client, timeout=5),
        email=EmailNotifier(email_url, SECRET, http_client, timeout=5),
    )


def _lost_citation():
    return compare_snapshots(
        make_snapshot(ai_answer="a", citation_position=1),
        make_snapshot(ai_answer="b"),
        [ChangeType.CITATION_LOST],
    )


def _answer_change():
    return compare_snapshots(
        make_snapshot(ai_answer="a"),
        make_snapshot(ai_answer="b"),
        [ChangeType.AI_ANSWER_CHANGED],
    )


class TestSignPayload:
    def test_returns_hex_sha256(self):
        assert len(sign_payload({"a": 1}, "s")) == 64

    def test_key_order_irrelevant(self):
        assert sign_payload({"b": 2, "a": 1}, "s") == sign_payload({"a": 1, "b": 2}, "s")

    def test_secret_matters(self):
        assert sign_payload({"a": 1}, "one") != sign_payload({"a": 1}, "two")


class TestDispatch:
    @pytest.mark.asyncio
    @respx.mock
    async def test_critical_change_logged_pushed_and_emailed(self, db_session, monitor):
        push = respx.post(PUSH_URL).mock(return_value=Response(200))
        email = respx.post(EMAIL_URL).mock(return_value=Response(202))
        view = MonitorResponse.model_validate(monitor)

        async with httpx.AsyncClient() as client:
            result = await _dispatcher(db_session, client).dispatch(view, _lost_citation())

        assert result.logged and result.pushed and result.emailed
        assert not result.deferred

        push_request = push.calls.last.request
        body = json.loads(push_request.content)
        assert body["user_id"] == monitor.user_id
        assert body["notification_type"] == "serp_alert"
        assert body["payload"]["severity"] == "critical"
        assert body["payload"]["data"]["monitorId"] == monitor.id
        assert push_request.headers["X-Citewatch-Signature"] == sign_payload(body, SECRET)
        assert push_request.headers["X-Citewatch-Event"] == "serp_alert"

        email_body = json.loads(email.calls.last.request.content)
        assert email_body["email_type"] == "serp_alert"
        assert email_body["subject"] == 'SERP Alert: 1 changes detected for "best crm"'

        rows = await MonitorStore(db_session).recent_changes([monitor.id])
        assert [row.change_type for row in rows] == ["citation_lost"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_low_severity_only_logged(self, db_session, monitor):
        push = respx.post(PUSH_URL).mock(return_value=Response(200))
        email = respx.post(EMAIL_URL).mock(return_value=Response(200))
        view = MonitorResponse.model_validate(monitor)

        async with httpx.AsyncClient() as client:
            result = await _dispatcher(db_session, client).dispatch(view, _answer_change())

        assert result.logged
        assert not result.pushed and not result.emailed
        assert push.call_count == 0
        assert email.call_count == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_daily_threshold_defers_email_but_still_pushes(self, db_session, monitor):
        push = respx.post(PUSH_URL).mock(return_value=Response(200))
        email = respx.post(EMAIL_URL).mock(return_value=Response(200))
        view = MonitorResponse.model_validate(monitor).model_copy(update={"alert_threshold": "daily"})

        async with httpx.AsyncClient() as client:
            result = await _dispatcher(db_session, client).dispatch(view, _lost_citation())

        assert result.pushed
        assert result.deferred
        assert push.call_count == 1
        assert email.call_count == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_notifier_failure_is_not_raised(self, db_session, monitor):
        respx.post(PUSH_URL).mock(side_effect=httpx.ConnectError("refused"))
        respx.post(EMAIL_URL).mock(return_value=Response(500))
        view = MonitorResponse.model_validate(monitor)

        async with httpx.AsyncClient() as client:
            result = await _dispatcher(db_session, client).dispatch(view, _lost_citation())

        assert result.logged
        assert not result.pushed
        assert not result.emailed

    @pytest.mark.asyncio
    async def test_unconfigured_channels_are_skipped(self, db_session, monitor):
        view = MonitorResponse.model_validate(monitor)
        async with httpx.AsyncClient() as client:
            dispatcher = _dispatcher(db_session, client, push_url=None, email_url=None)
            result = await dispatcher.dispatch(view, _lost_citation())
        assert result.logged
        assert not result.pushed

    @pytest.mark.asyncio
    async def test_empty_change_set_is_a_no_op(self, db_session, monitor):
        view = MonitorResponse.model_validate(monitor)
        async with httpx.AsyncClient() as client:
            result = await _dispatcher(db_session, client).dispatch(view, [])
        assert not result.logged


class TestMonitorCreated:
    @pytest.mark.asyncio
    @respx.mock
    async def test_pushes_monitor_created(self, db_session, monitor):
        push = respx.post(PUSH_URL).mock(return_value=Response(200))
        view = MonitorResponse.model_validate(monitor)

        async with httpx.AsyncClient() as client:
            assert await _dispatcher(db_session, client).monitor_created(view)

        body = json.loads(push.calls.last.request.content)
        assert body["notification_type"] == "monitor_created"
        assert body["payload"]["data"]["message"] == 'Real-time monitoring started for "best crm"'
