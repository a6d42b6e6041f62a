"""
Tests de l'ingestion des soumissions.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from formrelay.core.error_handler import AccessDeniedError, NotFoundError
from formrelay.models.submission import IntegrationStatus, PublicSubmitRequest
from formrelay.models.tenant import Form, IntegrationConfig
from formrelay.services.dispatch_pool import DispatchQueueUnavailable
from formrelay.services.submission_ingestor import QUEUE_UNAVAILABLE_ERROR, SubmissionIngestor


class RecordingPool:
    """Pool factice qui conserve les jobs reçus."""

    def __init__(self, refuse: bool = False):
        self.jobs = []
        self.refuse = refuse

    def submit(self, job):
        if self.refuse:
            raise DispatchQueueUnavailable("dispatch queue is full")
        self.jobs.append(job)


def _request(**overrides) -> PublicSubmitRequest:
    data = {
        "applicationId": "app_1",
        "formId": "form_contact",
        "hostname": "www.example.com",
        "path": "/blog/my-post",
        "payload": {"email": "jean@example.com", "tags": ["a", "b"]},
    }
    data.update(overrides)
    return PublicSubmitRequest.model_validate(data)


class TestIngestion:
    """Création des soumissions."""

    @pytest.mark.asyncio
    async def test_pending_when_integration_enabled(self, seeded_store):
        pool = RecordingPool()
        ingestor = SubmissionIngestor(seeded_store, pool)

        submission = await ingestor.ingest(_request())

        assert submission.integration_status is IntegrationStatus.PENDING
        assert submission.integration_attempt_count == 0
        assert submission.hostname == "www.example.com"
        assert submission.payload == {"email": "jean@example.com", "tags": ["a", "b"]}
        assert [job.submission_id for job in pool.jobs] == [submission.id]

    @pytest.mark.asyncio
    async def test_job_snapshot(self, seeded_store):
        pool = RecordingPool()
        ingestor = SubmissionIngestor(seeded_store, pool)

        await ingestor.ingest(_request())
        job = pool.jobs[0]

        assert job.integration_secret == "test_integration_secret_for_hmac"
        assert job.sheet_name == "Leads"
        assert job.web_app_url == "https://script.google.com/macros/s/test-deployment/exec"
        assert job.form_id == "form_contact"
        assert job.path == "/blog/my-post"

    @pytest.mark.asyncio
    async def test_snapshot_does_not_share_payload(self, seeded_store):
        pool = RecordingPool()
        ingestor = SubmissionIngestor(seeded_store, pool)

        submission = await ingestor.ingest(_request())
        seeded_store.submissions[submission.id].payload["tags"].append("mutated")

        assert pool.jobs[0].payload["tags"] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_none_without_integration(self, seeded_store):
        pool = RecordingPool()
        ingestor = SubmissionIngestor(seeded_store, pool)

        submission = await ingestor.ingest(_request(formId="form_pricing"))

        assert submission.integration_status is IntegrationStatus.NONE
        assert pool.jobs == []

    @pytest.mark.asyncio
    async def test_none_when_integration_disabled(self, seeded_store):
        seeded_store.add_integration_config(IntegrationConfig(
            form_id="form_contact",
            enabled=False,
            sheet_name="Leads",
            web_app_url="https://script.google.com/macros/s/test-deployment/exec",
        ))
        pool = RecordingPool()
        ingestor = SubmissionIngestor(seeded_store, pool)

        submission = await ingestor.ingest(_request())

        assert submission.integration_status is IntegrationStatus.NONE
        assert pool.jobs == []

    @pytest.mark.asyncio
    async def test_missing_secret_still_enqueued(self, seeded_store):
        """La garde du secret est appliquée par le dispatcher, pas à l'ingestion."""
        seeded_store.applications["app_1"] = seeded_store.applications["app_1"].model_copy(
            update={"integration_secret": None}
        )
        pool = RecordingPool()
        ingestor = SubmissionIngestor(seeded_store, pool)

        submission = await ingestor.ingest(_request())

        assert submission.integration_status is IntegrationStatus.PENDING
        assert pool.jobs[0].integration_secret is None

    @pytest.mark.asyncio
    async def test_queue_unavailable_marks_failed(self, seeded_store):
        ingestor = SubmissionIngestor(seeded_store, RecordingPool(refuse=True))

        submission = await ingestor.ingest(_request())
        stored = await seeded_store.get_submission(submission.id)

        assert stored.integration_status is IntegrationStatus.FAILED
        assert stored.integration_attempt_count == 0
        assert stored.integration_last_error == QUEUE_UNAVAILABLE_ERROR


class TestIngestionErrors:
    """Application ou formulaire invalide."""

    @pytest.mark.asyncio
    async def test_unknown_application(self, seeded_store):
        ingestor = SubmissionIngestor(seeded_store, RecordingPool())

        with pytest.raises(NotFoundError) as exc_info:
            await ingestor.ingest(_request(applicationId="missing"))

        assert exc_info.value.message == "Application not found"

    @pytest.mark.asyncio
    async def test_disabled_application(self, seeded_store):
        seeded_store.applications["app_1"] = seeded_store.applications["app_1"].model_copy(
            update={"status": "DISABLED"}
        )
        ingestor = SubmissionIngestor(seeded_store, RecordingPool())

        with pytest.raises(AccessDeniedError):
            await ingestor.ingest(_request())

        assert seeded_store.submissions == {}

    @pytest.mark.asyncio
    async def test_deleted_application(self, seeded_store):
        seeded_store.applications["app_1"] = seeded_store.applications["app_1"].model_copy(
            update={"deleted_at": datetime(2024, 1, 1, tzinfo=timezone.utc)}
        )
        ingestor = SubmissionIngestor(seeded_store, RecordingPool())

        with pytest.raises(AccessDeniedError):
            await ingestor.ingest(_request())

    @pytest.mark.asyncio
    async def test_unknown_form(self, seeded_store):
        ingestor = SubmissionIngestor(seeded_store, RecordingPool())

        with pytest.raises(NotFoundError) as exc_info:
            await ingestor.ingest(_request(formId="missing"))

        assert exc_info.value.message == "Form not found"

    @pytest.mark.asyncio
    async def test_form_of_another_application(self, seeded_store):
        seeded_store.add_form(Form(id="form_other", application_id="app_2", name="Other"))
        ingestor = SubmissionIngestor(seeded_store, RecordingPool())

        with pytest.raises(NotFoundError):
            await ingestor.ingest(_request(formId="form_other"))

    @pytest.mark.asyncio
    async def test_deleted_form(self, seeded_store):
        seeded_store.forms["form_contact"] = seeded_store.forms["form_contact"].model_copy(
            update={"deleted_at": datetime(2024, 1, 1, tzinfo=timezone.utc)}
        )
        ingestor = SubmissionIngestor(seeded_store, RecordingPool())

        with pytest.raises(NotFoundError):
            await ingestor.ingest(_request())


class TestSignablePayload:
    """Un payload qui ne peut pas être signé est refusé à l'entrée."""

    @pytest.mark.parametrize("payload", [
        {"message": "hi \ud83d"},
        {"amount": float("nan")},
        {"amount": float("inf")},
        {"nested": [{"note": "\udc00"}]},
    ])
    def test_unsignable_payload_rejected(self, payload):
        with pytest.raises(PydanticValidationError) as exc_info:
            _request(payload=payload)

        assert exc_info.value.errors()[0]["loc"] == ("payload",)

    def test_float_numbers_accepted(self):
        request = _request(payload={"quantity": 1.0, "price": 19.99})

        assert request.payload == {"quantity": 1.0, "price": 19.99}

    @pytest.mark.asyncio
    async def test_rejected_payload_never_stored(self, seeded_store):
        pool = RecordingPool()
        ingestor = SubmissionIngestor(seeded_store, pool)

        with pytest.raises(PydanticValidationError):
            await ingestor.ingest(_request(payload={"message": "hi \ud83d"}))

        assert seeded_store.submissions == {}
        assert pool.jobs == []
