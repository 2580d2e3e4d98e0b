"""
Unit Tests for Domain Models

Intent / outcome validation, wire shape and job state.
"""

from datetime import datetime, timedelta, timezone

import pytest

from request_relay.core.config.constants import JobState, OutcomeStatus, RequestStatus
from request_relay.core.exceptions import InvalidIntentError, InvalidOutcomeError
from request_relay.models import CompletionOutcome, RequestIntent, RequestRecord, ScheduledJob
from tests.test_fixtures import BASE_TIME, RequestFactory


@pytest.mark.unit
class TestRequestIntent:
    def test_from_message_reads_camel_case(self):
        intent = RequestIntent.from_message(RequestFactory.intent())

        assert intent.id == "r1"
        assert intent.tenant_id == "acme"
        assert intent.method == "POST"
        assert intent.body == {"hello": "world"}

    def test_method_is_upper_cased(self):
        assert RequestIntent.from_message(RequestFactory.intent(method="get")).method == "GET"

    def test_unknown_method_rejected(self):
        with pytest.raises(InvalidIntentError):
            RequestIntent.from_message(RequestFactory.intent(method="FETCH"))

    @pytest.mark.parametrize("field", ["id", "tenantId", "name", "method", "url"])
    def test_required_fields(self, field):
        payload = RequestFactory.intent()
        del payload[field]

        with pytest.raises(InvalidIntentError) as exc_info:
            RequestIntent.from_message(payload)

        assert exc_info.value.details["errors"]

    def test_error_carries_correlation_ids(self):
        with pytest.raises(InvalidIntentError) as exc_info:
            RequestIntent.from_message(RequestFactory.intent(url=""))

        assert exc_info.value.request_id == "r1"
        assert exc_info.value.tenant_id == "acme"

    def test_null_headers_default_to_empty(self):
        assert RequestIntent.from_message(RequestFactory.intent(headers=None)).headers == {}

    def test_naive_schedule_is_utc(self):
        intent = RequestIntent.from_message(RequestFactory.intent(schedule="2024-01-01T00:00:05"))

        assert intent.schedule == BASE_TIME + timedelta(seconds=5)

    def test_is_immediate(self):
        now = BASE_TIME
        future = RequestIntent.from_message(RequestFactory.intent(schedule=now + timedelta(seconds=5)))
        present = RequestIntent.from_message(RequestFactory.intent(schedule=now))
        unscheduled = RequestIntent.from_message(RequestFactory.intent())

        assert not future.is_immediate(now)
        assert present.is_immediate(now)
        assert unscheduled.is_immediate(now)

    def test_without_schedule_drops_field_from_message(self):
        intent = RequestIntent.from_message(RequestFactory.intent(schedule=BASE_TIME))

        message = intent.without_schedule().to_message()

        assert "schedule" not in message
        assert message["tenantId"] == "acme"
        assert intent.schedule is not None

    def test_to_message_keeps_schedule(self):
        intent = RequestIntent.from_message(RequestFactory.intent(schedule=BASE_TIME))

        assert intent.to_message()["schedule"].startswith("2024-01-01T00:00:00")


@pytest.mark.unit
class TestCompletionOutcome:
    def test_completed_round_trip_shape(self):
        outcome = CompletionOutcome.from_message(RequestFactory.completed(http_status=204))

        message = outcome.to_message()

        assert outcome.status == OutcomeStatus.COMPLETED
        assert outcome.response.status == 204
        assert message["tenantId"] == "acme"
        assert message["executionTime"] == 12.5
        assert "completedAt" in message

    def test_failed_has_no_execution_time(self):
        message = CompletionOutcome.from_message(RequestFactory.failed()).to_message()

        assert "executionTime" not in message
        assert message["error"]["code"] == "ConnectTimeout"

    @pytest.mark.parametrize("field", ["id", "tenantId", "status", "completedAt"])
    def test_required_fields(self, field):
        payload = RequestFactory.completed()
        del payload[field]

        with pytest.raises(InvalidOutcomeError):
            CompletionOutcome.from_message(payload)

    def test_unknown_status_rejected(self):
        with pytest.raises(InvalidOutcomeError):
            CompletionOutcome.from_message(RequestFactory.completed(status="done"))

    def test_success_range(self):
        ok = CompletionOutcome.from_message(RequestFactory.completed(http_status=299))
        redirect = CompletionOutcome.from_message(RequestFactory.completed(http_status=302))

        assert ok.response.is_success
        assert not redirect.response.is_success


@pytest.mark.unit
class TestScheduledJob:
    def test_for_intent(self):
        intent = RequestIntent.from_message(RequestFactory.intent(schedule=BASE_TIME))

        job = ScheduledJob.for_intent(intent)

        assert job.request_id == "r1"
        assert job.tenant_id == "acme"
        assert job.due_at == BASE_TIME
        assert job.state == JobState.SCHEDULED

    def test_for_intent_requires_schedule(self):
        with pytest.raises(ValueError):
            ScheduledJob.for_intent(RequestIntent.from_message(RequestFactory.intent()))

    def test_states(self):
        intent = RequestIntent.from_message(RequestFactory.intent(schedule=BASE_TIME))
        job = ScheduledJob.for_intent(intent)

        assert job.model_copy(update={"locked_at": BASE_TIME}).state == JobState.LOCKED
        assert job.model_copy(update={"failed_at": BASE_TIME}).state == JobState.FAILED

    def test_job_ids_are_unique(self):
        intent = RequestIntent.from_message(RequestFactory.intent(schedule=BASE_TIME))

        assert ScheduledJob.for_intent(intent).job_id != ScheduledJob.for_intent(intent).job_id


@pytest.mark.unit
class TestRequestRecord:
    def test_from_intent_and_back(self):
        intent = RequestIntent.from_message(RequestFactory.intent())
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)

        record = RequestRecord.from_intent(intent, RequestStatus.PENDING, now)

        assert record.status == RequestStatus.PENDING
        assert record.to_intent() == intent
        assert record.to_document()["tenantId"] == "acme"
        assert record.to_document()["status"] == "pending"
