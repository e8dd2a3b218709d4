"""Tests for citewatch.schemas.monitor request and response models."""

import uuid

import pytest
from pydantic import ValidationError

from citewatch.schemas.monitor import (
    CheckChangesResponse,
    CreateMonitorRequest,
    MonitorCheckResult,
    UpdateMonitorRequest,
)
from citewatch.schemas.snapshot import AlertThreshold, ChangeType, Engine

USER = str(uuid.uuid4())


def _create(**fields) -> CreateMonitorRequest:
    body = {"user_id": USER, "query": "best crm", "domain": "example.com"}
    body.update(fields)
    return CreateMonitorRequest.model_validate(body)


class TestCreateMonitorRequest:
    def test_defaults(self):
        req = _create()
        assert req.engines == [Engine.GOOGLE, Engine.BING]
        assert req.change_types == [
            ChangeType.CITATION_GAINED,
            ChangeType.CITATION_LOST,
            ChangeType.POSITION_CHANGED,
        ]
        assert req.alert_threshold == AlertThreshold.IMMEDIATE

    def test_csv_lists_accepted_and_deduplicated(self):
        req = _create(engines="bing, google,bing", change_types="ai_answer_changed")
        assert req.engines == [Engine.BING, Engine.GOOGLE]
        assert req.change_types == [ChangeType.AI_ANSWER_CHANGED]

    def test_domain_lowercased(self):
        assert _create(domain="Sub.Example.COM").domain == "sub.example.com"

    @pytest.mark.parametrize("domain", ["localhost", "http://example.com", "exa mple.com", ""])
    def test_invalid_domains_rejected(self, domain):
        with pytest.raises(ValidationError):
            _create(domain=domain)

    def test_angle_brackets_stripped_from_query(self):
        assert _create(query="<script>crm").query == "scriptcrm"

    def test_blank_query_rejected(self):
        with pytest.raises(ValidationError):
            _create(query="<>")

    def test_query_length_capped(self):
        with pytest.raises(ValidationError):
            _create(query="q" * 301)

    def test_empty_engine_list_rejected(self):
        with pytest.raises(ValidationError):
            _create(engines="")

    def test_user_id_must_be_uuid(self):
        with pytest.raises(ValidationError):
            _create(user_id="user-1")

    def test_unknown_fields_ignored(self):
        assert _create(action="create_monitor", extra=1).query == "best crm"


class TestUpdateMonitorRequest:
    def test_partial_fields(self):
        req = UpdateMonitorRequest.model_validate(
            {"user_id": USER, "monitor_id": "m-1", "change_types": "citation_lost"}
        )
        assert req.change_types == [ChangeType.CITATION_LOST]
        assert req.is_active is None

    def test_bad_threshold_rejected(self):
        with pytest.raises(ValidationError):
            UpdateMonitorRequest.model_validate(
                {"user_id": USER, "monitor_id": "m-1", "alert_threshold": "weekly"}
            )


def test_check_response_serialises_camel_case():
    summary = CheckChangesResponse(
        monitors_checked=1,
        total_changes=0,
        results=[MonitorCheckResult(monitor_id="m-1", query="q", domain="example.com")],
    )
    data = summary.model_dump(mode="json", by_alias=True)
    assert data["monitorsChecked"] == 1
    assert data["results"][0]["enginesFailed"] == []
    assert "monitor_id" not in data["results"][0]
