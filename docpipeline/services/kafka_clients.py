# File: docpipeline/services/kafka_clients.py
import json
import time
import structlog
from confluent_kafka import Consumer, Producer, KafkaError, KafkaException, TopicPartition
from pydantic import ValidationError
from typing import Any, Callable, Dict, List, Optional, Tuple

from docpipeline.core.config import settings
from docpipeline.core.errors import QueueError
from docpipeline.core.metrics import KAFKA_MESSAGES_PRODUCED_TOTAL, MESSAGES_CONSUMED_TOTAL
from docpipeline.application.ports.queue_port import QueueProducerPort
from docpipeline.domain.models import ProcessDocumentMessage

log = structlog.get_logger(__name__)

# --- Kafka Producer ---
class KafkaProducerClient(QueueProducerPort):
    """Produces JSON messages and waits for the broker acknowledgement of each one."""

    def __init__(self, producer: Optional[Any] = None, delivery_timeout: float = 10.0):
        producer_config = {
            'bootstrap.servers': settings.KAFKA_BOOTSTRAP_SERVERS,
            'acks': settings.KAFKA_PRODUCER_ACKS,
            'linger.ms': settings.KAFKA_PRODUCER_LINGER_MS,
            'enable.idempotence': True,
        }
        self.producer = producer or Producer(producer_config)
        self.delivery_timeout = delivery_timeout
        self.log = log.bind(component="KafkaProducerClient")
        self.log.info("Kafka producer initialized.", config=producer_config)

    def send(self, queue_name: str, message: ProcessDocumentMessage) -> None:
        self.produce(topic=queue_name, key=message.document_id, value=message.to_wire())

    def produce(self, topic: str, key: str, value: Dict[str, Any]) -> None:
        """
        Produces a message and blocks until it is acknowledged or `delivery_timeout` expires.

        Raises:
            QueueError: On local queue overflow, broker errors or delivery timeout.
        """
        delivery_errors: List[Any] = []
        delivered: List[bool] = []

        def _delivery_report(err, msg):
            if err is not None:
                delivery_errors.append(err)
                self.log.error(f"Message delivery failed to topic '{topic}'", key=key, error=str(err))
            else:
                delivered.append(True)
                self.log.info(f"Message delivered to topic '{topic}'", key=key, partition=msg.partition(), offset=msg.offset())

        try:
            self.producer.produce(
                topic=topic,
                key=key.encode('utf-8'),
                value=json.dumps(value).encode('utf-8'),
                callback=_delivery_report
            )
            self.producer.flush(self.delivery_timeout)
        except BufferError as e:
            self.log.error("Kafka producer's local queue is full.", topic=topic)
            KAFKA_MESSAGES_PRODUCED_TOTAL.labels(topic=topic, status="failure").inc()
            raise QueueError(f"Local producer queue full while sending to {topic}", e) from e
        except KafkaException as e:
            self.log.exception("Failed to produce message to Kafka", topic=topic, error=str(e))
            KAFKA_MESSAGES_PRODUCED_TOTAL.labels(topic=topic, status="failure").inc()
            raise QueueError(f"Kafka error sending to {topic}", e) from e

        if delivery_errors or not delivered:
            KAFKA_MESSAGES_PRODUCED_TOTAL.labels(topic=topic, status="failure").inc()
            reason = str(delivery_errors[0]) if delivery_errors else "delivery not confirmed before timeout"
            raise QueueError(f"Message for {key} not delivered to {topic}: {reason}")
        KAFKA_MESSAGES_PRODUCED_TOTAL.labels(topic=topic, status="success").inc()

    def flush(self, timeout: float = 10.0):
        self.log.info(f"Flushing producer with a timeout of {timeout}s...")
        self.producer.flush(timeout)
        self.log.info("Producer flushed.")


# --- Kafka Consumer ---
class KafkaConsumerClient:
    """
    At-least-once delivery loop over a Kafka topic.

    Offsets are committed only after the handler returns. When the handler raises,
    the consumer seeks back to the failed offset and redelivers it after
    `redelivery_delay_seconds`; after `max_delivery_attempts` the message goes to the
    dead-letter topic and is committed. A consumer that holds a delivery longer than
    the visibility timeout (max.poll.interval.ms) is evicted from the group and its
    uncommitted messages are redelivered to another member.
    """

    def __init__(
        self,
        topics: List[str],
        consumer: Optional[Any] = None,
        dead_letter_producer: Optional[KafkaProducerClient] = None,
        dead_letter_topic: Optional[str] = None,
        max_delivery_attempts: Optional[int] = None,
        redelivery_delay_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        consumer_config = {
            'bootstrap.servers': settings.KAFKA_BOOTSTRAP_SERVERS,
            'group.id': settings.KAFKA_CONSUMER_GROUP_ID,
            'auto.offset.reset': settings.KAFKA_AUTO_OFFSET_RESET,
            'enable.auto.commit': False,  # manual commits: at-least-once
            'max.poll.interval.ms': settings.VISIBILITY_TIMEOUT_SECONDS * 1000,
        }
        self.consumer = consumer or Consumer(consumer_config)
        self.dead_letter_producer = dead_letter_producer
        self.dead_letter_topic = dead_letter_topic or settings.dead_letter_queue_name
        self.max_delivery_attempts = max_delivery_attempts or settings.MAX_DELIVERY_ATTEMPTS
        self.redelivery_delay_seconds = (
            redelivery_delay_seconds if redelivery_delay_seconds is not None else settings.REDELIVERY_DELAY_SECONDS
        )
        self._sleep = sleep
        self._attempts: Dict[Tuple[str, int, int], int] = {}
        self._running = False
        self.log = log.bind(component="KafkaConsumerClient", topics=topics)
        self.consumer.subscribe(topics, on_revoke=self._on_revoke)

    def run(self, handler: Callable[[ProcessDocumentMessage], Any], max_messages: Optional[int] = None) -> int:
        """
        Polls and dispatches deliveries to `handler` until `stop()` is called or
        `max_messages` deliveries have been handled. Returns the number of deliveries handled.
        """
        self.log.info("Starting Kafka consumer loop...")
        self._running = True
        handled = 0
        while self._running:
            msg = self.consumer.poll(timeout=1.0)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                self.log.error("Kafka consumer error", error=str(msg.error()))
                raise KafkaException(msg.error())

            self.dispatch(msg, handler)
            handled += 1
            if max_messages is not None and handled >= max_messages:
                break
        self.log.info("Kafka consumer loop finished.", handled=handled)
        return handled

    def dispatch(self, msg: Any, handler: Callable[[ProcessDocumentMessage], Any]) -> None:
        topic = msg.topic()
        delivery_key = (topic, msg.partition(), msg.offset())
        msg_log = self.log.bind(kafka_topic=topic, kafka_partition=msg.partition(), kafka_offset=msg.offset())

        try:
            payload = json.loads(msg.value().decode('utf-8'))
            message = ProcessDocumentMessage.model_validate(payload)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            msg_log.error("Dropping undecodable message", error=str(e), raw_value=msg.value())
            MESSAGES_CONSUMED_TOTAL.labels(topic=topic, status="undecodable").inc()
            self.commit(msg)
            return

        attempt = self._attempts.get(delivery_key, 0) + 1
        self._attempts[delivery_key] = attempt
        msg_log = msg_log.bind(document_id=message.document_id, attempt=f"{attempt}/{self.max_delivery_attempts}")

        try:
            handler(message)
        except Exception as e:
            if attempt >= self.max_delivery_attempts:
                msg_log.error("Delivery attempts exhausted, dead-lettering message", error=str(e))
                try:
                    self._dead_letter(message, attempt, e)
                except QueueError as dlq_err:
                    msg_log.error("Dead-letter produce failed, message kept for redelivery", error=str(dlq_err))
                    self._redeliver_later(msg)
                    return
                MESSAGES_CONSUMED_TOTAL.labels(topic=topic, status="dead_lettered").inc()
                self._attempts.pop(delivery_key, None)
                self.commit(msg)
                return
            msg_log.warning(
                "Handler failed, delivery left unacknowledged for redelivery",
                error=str(e), redelivery_delay_seconds=self.redelivery_delay_seconds,
            )
            MESSAGES_CONSUMED_TOTAL.labels(topic=topic, status="retry").inc()
            self._redeliver_later(msg)
            return

        self._attempts.pop(delivery_key, None)
        self.commit(msg)
        MESSAGES_CONSUMED_TOTAL.labels(topic=topic, status="success").inc()
        msg_log.debug("Delivery acknowledged.")

    def _on_revoke(self, consumer: Any, partitions: List[TopicPartition]) -> None:
        # Another member owns these now and counts its own attempts
        revoked = {(p.topic, p.partition) for p in partitions}
        for key in [k for k in self._attempts if k[:2] in revoked]:
            del self._attempts[key]
        self.log.info("Partitions revoked", partitions=sorted(revoked))

    def _redeliver_later(self, msg: Any) -> None:
        self.consumer.seek(TopicPartition(msg.topic(), msg.partition(), msg.offset()))
        self._sleep(self.redelivery_delay_seconds)

    def _dead_letter(self, message: ProcessDocumentMessage, attempts: int, error: Exception) -> None:
        if self.dead_letter_producer is None:
            self.log.warning("No dead-letter producer configured, message dropped", document_id=message.document_id)
            return
        payload = dict(message.to_wire())
        payload["attempts"] = attempts
        payload["lastError"] = f"{type(error).__name__}: {error}"[:1000]
        self.dead_letter_producer.produce(topic=self.dead_letter_topic, key=message.document_id, value=payload)

    def commit(self, message: Any):
        """Commits the offset for the given message."""
        self.consumer.commit(message=message, asynchronous=False)

    def stop(self):
        self._running = False

    def close(self):
        self.log.info("Closing Kafka consumer...")
        self.consumer.close()
