"""Tests for the document model and its status rules."""
import pytest

from docpipeline.core.errors import InvalidStatusTransitionError
from docpipeline.domain.models import (
    Document,
    DocumentStatus,
    ExtractedMetadata,
    ProcessDocumentMessage,
    generate_stored_name,
)


def make_document(**overrides) -> Document:
    fields = dict(
        stored_name="abc.pdf",
        original_name="test.pdf",
        content_type="application/pdf",
        size_bytes=3,
        content_location="mem://documents/abc.pdf",
        uploaded_by="alice",
    )
    fields.update(overrides)
    return Document(**fields)


class TestDocumentStatus:

    def test_terminal_states(self):
        assert DocumentStatus.COMPLETED.is_terminal
        assert DocumentStatus.FAILED.is_terminal
        assert not DocumentStatus.PENDING.is_terminal
        assert not DocumentStatus.PROCESSING.is_terminal

    @pytest.mark.parametrize("current,target", [
        (DocumentStatus.PENDING, DocumentStatus.PROCESSING),
        (DocumentStatus.PROCESSING, DocumentStatus.PROCESSING),
        (DocumentStatus.PROCESSING, DocumentStatus.COMPLETED),
        (DocumentStatus.PROCESSING, DocumentStatus.FAILED),
    ])
    def test_allowed_transitions(self, current, target):
        assert current.can_transition_to(target)

    @pytest.mark.parametrize("current,target", [
        (DocumentStatus.PENDING, DocumentStatus.COMPLETED),
        (DocumentStatus.PENDING, DocumentStatus.FAILED),
        (DocumentStatus.COMPLETED, DocumentStatus.PROCESSING),
        (DocumentStatus.FAILED, DocumentStatus.PROCESSING),
        (DocumentStatus.COMPLETED, DocumentStatus.FAILED),
    ])
    def test_forbidden_transitions(self, current, target):
        assert not current.can_transition_to(target)


class TestDocument:

    def test_new_document_is_pending(self):
        document = make_document()
        assert document.status == DocumentStatus.PENDING
        assert document.processed_at is None
        assert document.extracted_metadata is None
        assert document.created_at.tzinfo is not None

    def test_completion_sets_metadata_and_processed_at(self):
        document = make_document()
        document.mark_processing()
        document.mark_completed(ExtractedMetadata(page_count=2))

        assert document.status == DocumentStatus.COMPLETED
        assert document.extracted_metadata.page_count == 2
        assert document.processed_at is not None
        assert document.error_detail is None

    def test_failure_sets_error_detail(self):
        document = make_document()
        document.mark_processing()
        document.mark_failed("corrupt file")

        assert document.status == DocumentStatus.FAILED
        assert document.error_detail == "corrupt file"
        assert document.extracted_metadata is None
        assert document.processed_at is not None

    def test_failure_without_reason_gets_placeholder(self):
        document = make_document()
        document.mark_processing()
        document.mark_failed("")
        assert document.error_detail

    def test_cannot_complete_without_processing(self):
        document = make_document()
        with pytest.raises(InvalidStatusTransitionError):
            document.mark_completed(ExtractedMetadata())

    def test_terminal_document_cannot_restart(self):
        document = make_document()
        document.mark_processing()
        document.mark_completed(ExtractedMetadata())
        with pytest.raises(InvalidStatusTransitionError):
            document.mark_processing()

    def test_summary(self):
        document = make_document()
        summary = document.to_summary()
        assert summary.id == document.id
        assert summary.original_name == "test.pdf"
        assert summary.status == DocumentStatus.PENDING


class TestProcessDocumentMessage:

    def test_wire_format_uses_camel_case(self):
        message = ProcessDocumentMessage(document_id="d1", stored_name="s.pdf", container_name="documents")
        assert message.to_wire() == {"documentId": "d1", "storedName": "s.pdf", "containerName": "documents"}

    def test_parses_wire_payload(self):
        message = ProcessDocumentMessage.model_validate(
            {"documentId": "d1", "storedName": "s.pdf", "containerName": "documents"}
        )
        assert message.document_id == "d1"
        assert message.container_name == "documents"


class TestGenerateStoredName:

    def test_keeps_lowercased_extension(self):
        name = generate_stored_name("Report.PDF")
        assert name.endswith(".pdf")
        assert len(name) == 32 + 4

    def test_no_extension(self):
        assert "." not in generate_stored_name("README")

    def test_names_are_unique(self):
        assert generate_stored_name("a.txt") != generate_stored_name("a.txt")
