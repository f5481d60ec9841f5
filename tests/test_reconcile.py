"""Tests for the reconciliation sweep."""
import dataclasses
from datetime import timedelta

import pytest

from docpipeline.application.use_cases.reconcile_documents_use_case import ReconcileDocumentsUseCase
from docpipeline.domain.models import Document, DocumentStatus, ExtractedMetadata, utcnow


def make_document(object_store, name: str, age: timedelta, status=DocumentStatus.PENDING, store_content=True) -> Document:
    location = object_store.put(name, b"data", "application/pdf") if store_content else f"mem://documents/{name}"
    document = Document(
        stored_name=name,
        original_name=name,
        content_type="application/pdf",
        size_bytes=4,
        content_location=location,
        uploaded_by="alice",
        created_at=utcnow() - age,
    )
    if status != DocumentStatus.PENDING:
        document.mark_processing()
    if status == DocumentStatus.COMPLETED:
        document.mark_completed(ExtractedMetadata())
    return document


@pytest.fixture
def reconcile(object_store, metadata_store, queue):
    return ReconcileDocumentsUseCase(
        object_store,
        metadata_store,
        queue,
        queue_name="document-processing",
        stuck_pending_after=timedelta(minutes=15),
        stuck_processing_after=timedelta(hours=1),
        orphan_grace_period=timedelta(days=1),
    )


class TestRequeue:

    def test_requeues_old_pending(self, reconcile, object_store, metadata_store, queue):
        stuck = make_document(object_store, "stuck.pdf", timedelta(hours=1))
        fresh = make_document(object_store, "fresh.pdf", timedelta(minutes=1))
        metadata_store.create(stuck)
        metadata_store.create(fresh)

        report = reconcile.run()

        assert report.requeued == [stuck.id]
        assert queue.messages[0].document_id == stuck.id
        assert queue.messages[0].stored_name == "stuck.pdf"
        assert queue.messages[0].container_name == "documents"

    def test_requeues_long_running_processing(self, reconcile, object_store, metadata_store):
        stale = make_document(object_store, "stale.pdf", timedelta(hours=2), DocumentStatus.PROCESSING)
        recent = make_document(object_store, "recent.pdf", timedelta(minutes=30), DocumentStatus.PROCESSING)
        metadata_store.create(stale)
        metadata_store.create(recent)

        assert reconcile.run().requeued == [stale.id]

    def test_terminal_documents_are_left_alone(self, reconcile, object_store, metadata_store, queue):
        metadata_store.create(make_document(object_store, "done.pdf", timedelta(days=3), DocumentStatus.COMPLETED))
        assert reconcile.run().requeued == []
        assert queue.sent == []

    def test_queue_outage_is_reported(self, reconcile, object_store, metadata_store, queue):
        stuck = make_document(object_store, "stuck.pdf", timedelta(hours=1))
        metadata_store.create(stuck)
        queue.fail = True

        report = reconcile.run()

        assert report.requeue_failed == [stuck.id]
        assert report.requeued == []


class TestConsistency:

    def test_reports_record_without_content(self, reconcile, object_store, metadata_store):
        broken = make_document(object_store, "lost.pdf", timedelta(minutes=1), store_content=False)
        metadata_store.create(broken)

        report = reconcile.run()

        assert report.missing_content == [broken.id]
        assert metadata_store.get(broken.id) is not None

    def test_reports_old_orphans_only(self, reconcile, object_store, metadata_store):
        object_store.put("old-orphan.pdf", b"x", "application/pdf")
        object_store.age("old-orphan.pdf", timedelta(days=2))
        object_store.put("new-orphan.pdf", b"x", "application/pdf")
        metadata_store.create(make_document(object_store, "owned.pdf", timedelta(minutes=1)))
        object_store.age("owned.pdf", timedelta(days=2))

        report = reconcile.run()

        assert report.orphaned_blobs == ["old-orphan.pdf"]
        assert report.deleted_orphans == []
        assert object_store.exists("old-orphan.pdf")

    def test_deletes_orphans_when_asked(self, reconcile, object_store):
        object_store.put("old-orphan.pdf", b"x", "application/pdf")
        object_store.age("old-orphan.pdf", timedelta(days=2))

        report = reconcile.run(delete_orphans=True)

        assert report.deleted_orphans == ["old-orphan.pdf"]
        assert not object_store.exists("old-orphan.pdf")


class TestCommandLine:

    def test_prints_report_and_exit_code(self, services, object_store, metadata_store, monkeypatch, capsys):
        from docpipeline import reconcile as cli

        # No engine, so main() leaves the in-memory database open
        monkeypatch.setattr(cli, "build_services", lambda: dataclasses.replace(services, engine=None))
        assert cli.main([]) == 0
        assert '"requeued": []' in capsys.readouterr().out

        metadata_store.create(make_document(object_store, "lost.pdf", timedelta(minutes=1), store_content=False))
        assert cli.main(["--delete-orphans"]) == 1
