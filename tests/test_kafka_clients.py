"""Tests for the Kafka producer and the at-least-once consumer loop."""
import json
from unittest.mock import MagicMock

import pytest
from confluent_kafka import KafkaException, TopicPartition

from docpipeline.core.errors import QueueError
from docpipeline.domain.models import ProcessDocumentMessage
from docpipeline.services.kafka_clients import KafkaConsumerClient, KafkaProducerClient

WIRE = {"documentId": "d1", "storedName": "s.pdf", "containerName": "documents"}


def fake_message(value: bytes, offset: int = 7):
    msg = MagicMock()
    msg.topic.return_value = "document-processing"
    msg.partition.return_value = 0
    msg.offset.return_value = offset
    msg.value.return_value = value
    msg.error.return_value = None
    return msg


def acking_producer(error=None):
    """A confluent Producer double that reports delivery on flush()."""
    producer = MagicMock()
    pending = []

    def produce(topic, key, value, callback):
        pending.append((callback, topic, key, value))

    def flush(timeout=None):
        while pending:
            callback, *_ = pending.pop()
            callback(error, MagicMock())
        return 0

    producer.produce.side_effect = produce
    producer.flush.side_effect = flush
    return producer


class TestKafkaProducerClient:

    def test_send_serializes_wire_format(self):
        producer = acking_producer()
        client = KafkaProducerClient(producer=producer)

        client.send("document-processing", ProcessDocumentMessage.model_validate(WIRE))

        kwargs = producer.produce.call_args.kwargs
        assert kwargs["topic"] == "document-processing"
        assert kwargs["key"] == b"d1"
        assert json.loads(kwargs["value"]) == WIRE

    def test_delivery_error_raises(self):
        client = KafkaProducerClient(producer=acking_producer(error="broker down"))
        with pytest.raises(QueueError):
            client.send("document-processing", ProcessDocumentMessage.model_validate(WIRE))

    def test_unconfirmed_delivery_raises(self):
        producer = MagicMock()
        client = KafkaProducerClient(producer=producer, delivery_timeout=0.01)
        with pytest.raises(QueueError):
            client.send("document-processing", ProcessDocumentMessage.model_validate(WIRE))

    def test_full_local_queue_raises(self):
        producer = MagicMock()
        producer.produce.side_effect = BufferError("queue full")
        client = KafkaProducerClient(producer=producer)
        with pytest.raises(QueueError):
            client.send("document-processing", ProcessDocumentMessage.model_validate(WIRE))


class TestKafkaConsumerClient:

    @pytest.fixture
    def consumer(self):
        return MagicMock()

    @pytest.fixture
    def dead_letter(self):
        return MagicMock(spec=KafkaProducerClient)

    def make_client(self, consumer, dead_letter, max_attempts=3):
        return KafkaConsumerClient(
            topics=["document-processing"],
            consumer=consumer,
            dead_letter_producer=dead_letter,
            dead_letter_topic="document-processing.dlq",
            max_delivery_attempts=max_attempts,
            redelivery_delay_seconds=0,
            sleep=lambda _: None,
        )

    def test_subscribes_to_topics(self, consumer, dead_letter):
        client = self.make_client(consumer, dead_letter)
        consumer.subscribe.assert_called_once_with(["document-processing"], on_revoke=client._on_revoke)

    def test_success_commits(self, consumer, dead_letter):
        client = self.make_client(consumer, dead_letter)
        msg = fake_message(json.dumps(WIRE).encode())
        handler = MagicMock()

        client.dispatch(msg, handler)

        handler.assert_called_once_with(ProcessDocumentMessage.model_validate(WIRE))
        consumer.commit.assert_called_once_with(message=msg, asynchronous=False)
        consumer.seek.assert_not_called()

    def test_failure_seeks_back_without_commit(self, consumer, dead_letter):
        client = self.make_client(consumer, dead_letter)
        msg = fake_message(json.dumps(WIRE).encode())

        client.dispatch(msg, MagicMock(side_effect=RuntimeError("boom")))

        consumer.commit.assert_not_called()
        partition = consumer.seek.call_args.args[0]
        assert (partition.topic, partition.partition, partition.offset) == ("document-processing", 0, 7)

    def test_exhausted_attempts_go_to_dead_letter(self, consumer, dead_letter):
        client = self.make_client(consumer, dead_letter, max_attempts=3)
        msg = fake_message(json.dumps(WIRE).encode())
        handler = MagicMock(side_effect=RuntimeError("boom"))

        for _ in range(3):
            client.dispatch(msg, handler)

        assert handler.call_count == 3
        dead_letter.produce.assert_called_once()
        kwargs = dead_letter.produce.call_args.kwargs
        assert kwargs["topic"] == "document-processing.dlq"
        assert kwargs["value"]["documentId"] == "d1"
        assert kwargs["value"]["attempts"] == 3
        assert "boom" in kwargs["value"]["lastError"]
        consumer.commit.assert_called_once_with(message=msg, asynchronous=False)

    def test_dead_letter_failure_keeps_message(self, consumer, dead_letter):
        dead_letter.produce.side_effect = QueueError("dlq down")
        client = self.make_client(consumer, dead_letter, max_attempts=1)
        msg = fake_message(json.dumps(WIRE).encode())

        client.dispatch(msg, MagicMock(side_effect=RuntimeError("boom")))

        consumer.commit.assert_not_called()
        consumer.seek.assert_called_once()

    def test_revoked_partition_forgets_attempts(self, consumer, dead_letter):
        client = self.make_client(consumer, dead_letter, max_attempts=2)
        msg = fake_message(json.dumps(WIRE).encode())
        other = fake_message(json.dumps(WIRE).encode())
        other.partition.return_value = 1
        handler = MagicMock(side_effect=RuntimeError("boom"))
        client.dispatch(msg, handler)
        client.dispatch(other, handler)

        client._on_revoke(consumer, [TopicPartition("document-processing", 0)])

        assert client._attempts == {("document-processing", 1, 7): 1}
        client.dispatch(msg, handler)
        dead_letter.produce.assert_not_called()

    def test_undecodable_message_is_committed(self, consumer, dead_letter):
        client = self.make_client(consumer, dead_letter)
        msg = fake_message(b"not json")
        handler = MagicMock()

        client.dispatch(msg, handler)

        handler.assert_not_called()
        consumer.commit.assert_called_once_with(message=msg, asynchronous=False)

    def test_run_stops_after_max_messages(self, consumer, dead_letter):
        consumer.poll.side_effect = [None, fake_message(json.dumps(WIRE).encode(), 1), fake_message(json.dumps(WIRE).encode(), 2)]
        client = self.make_client(consumer, dead_letter)
        handler = MagicMock()

        assert client.run(handler, max_messages=2) == 2
        assert handler.call_count == 2

    def test_run_raises_on_broker_error(self, consumer, dead_letter):
        broken = MagicMock()
        broken.error.return_value.code.return_value = -1
        consumer.poll.return_value = broken
        client = self.make_client(consumer, dead_letter)

        with pytest.raises(KafkaException):
            client.run(MagicMock())
