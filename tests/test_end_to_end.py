"""Upload to processed document, through the queue message and the worker."""
import json
from unittest.mock import MagicMock

import pytest
from tenacity import wait_none

from docpipeline.application.use_cases.process_document_use_case import ProcessDocumentUseCase, ProcessingOutcome
from docpipeline.dependencies import (
    get_document_access_use_case,
    get_extractor,
    get_ingest_use_case,
    get_process_document_use_case,
)
from docpipeline.domain.models import DocumentStatus, ExtractedMetadata
from docpipeline.services.kafka_clients import KafkaConsumerClient
from tests.fakes import StubExtractor


def as_kafka_message(message, offset=0):
    msg = MagicMock()
    msg.topic.return_value = "document-processing"
    msg.partition.return_value = 0
    msg.offset.return_value = offset
    msg.value.return_value = json.dumps(message.to_wire()).encode("utf-8")
    msg.error.return_value = None
    return msg


@pytest.fixture
def uploaded(services):
    return get_ingest_use_case(services).execute(b"abc", "test.pdf", "application/pdf", 3, "alice")


class TestEndToEnd:

    def test_upload_then_process(self, services, queue, uploaded):
        access = get_document_access_use_case(services)
        assert access.get_document(uploaded.id).status == DocumentStatus.PENDING

        extractor = StubExtractor(metadata=ExtractedMetadata(page_count=1), thumbnail=b"\x89PNG")
        worker = get_process_document_use_case(services, extractor=extractor)
        assert worker.execute(queue.messages[0]) == ProcessingOutcome.COMPLETED

        document = access.get_document(uploaded.id)
        assert document.status == DocumentStatus.COMPLETED
        assert document.extracted_metadata.page_count == 1
        assert document.processed_at is not None
        assert document.error_detail is None
        assert document.uploaded_by == "alice"
        assert document.thumbnail_location is not None
        assert access.list_documents(1, 10).total_count == 1

    def test_corrupt_pdf_fails_and_redelivery_is_acknowledged(self, services, queue, uploaded):
        worker = ProcessDocumentUseCase(
            metadata_store=services.metadata_store,
            extractor=get_extractor(services.documents_store),
            thumbnail_store=services.thumbnail_store,
            failure_persist_wait=wait_none(),
        )
        kafka = MagicMock()
        consumer = KafkaConsumerClient(
            topics=["document-processing"],
            consumer=kafka,
            dead_letter_producer=MagicMock(),
            max_delivery_attempts=5,
            redelivery_delay_seconds=0,
            sleep=lambda _: None,
        )
        msg = as_kafka_message(queue.messages[0])

        consumer.dispatch(msg, worker.execute)

        document = services.metadata_store.get(uploaded.id)
        assert document.status == DocumentStatus.FAILED
        assert document.error_detail
        assert document.processed_at is not None
        assert document.extracted_metadata is None
        assert services.documents_store.get(document.stored_name) == b"abc"
        kafka.commit.assert_not_called()
        kafka.seek.assert_called_once()

        consumer.dispatch(msg, worker.execute)

        kafka.commit.assert_called_once_with(message=msg, asynchronous=False)
        assert services.metadata_store.get(uploaded.id).status == DocumentStatus.FAILED

    def test_deleted_before_processing(self, services, queue, uploaded):
        assert get_document_access_use_case(services).delete_document(uploaded.id) is True

        extractor = StubExtractor()
        outcome = get_process_document_use_case(services, extractor=extractor).execute(queue.messages[0])

        assert outcome == ProcessingOutcome.SKIPPED_MISSING
        assert extractor.calls == []
