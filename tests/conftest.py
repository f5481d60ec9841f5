"""Pytest configuration for the test suite."""

import os

# Settings are loaded at import time, so the environment must be ready first.
os.environ.setdefault("DOCPIPE_AWS_S3_BUCKET_NAME", "documents")
os.environ.setdefault("DOCPIPE_AWS_S3_THUMBNAILS_BUCKET_NAME", "thumbnails")
os.environ.setdefault("DOCPIPE_KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
os.environ.setdefault("DOCPIPE_DATABASE_URL", "sqlite://")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from docpipeline.db.postgres_client import PostgresDocumentRepository, init_schema
from docpipeline.dependencies import ServiceContainer
from tests.fakes import InMemoryObjectStore, RecordingQueue


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        json_serializer=json.dumps,
        json_deserializer=json.loads,
    )
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def metadata_store(engine):
    return PostgresDocumentRepository(engine)


@pytest.fixture
def object_store():
    return InMemoryObjectStore("documents")


@pytest.fixture
def thumbnail_store():
    return InMemoryObjectStore("thumbnails")


@pytest.fixture
def queue():
    return RecordingQueue()


@pytest.fixture
def services(object_store, metadata_store, queue, thumbnail_store, engine):
    return ServiceContainer(
        documents_store=object_store,
        metadata_store=metadata_store,
        queue=queue,
        thumbnail_store=thumbnail_store,
        engine=engine,
    )
