# File: docpipeline/worker.py
import signal
import sys

import structlog
from dotenv import load_dotenv
load_dotenv()

from prometheus_client import start_http_server

from docpipeline.core.logging_config import setup_logging
setup_logging("docpipeline-worker")

from docpipeline.core.config import settings
from docpipeline.dependencies import build_services, get_process_document_use_case
from docpipeline.services.kafka_clients import KafkaConsumerClient, KafkaProducerClient

log = structlog.get_logger(__name__)


def main():
    """Entry point for the document processing worker."""
    log.info("Initializing DocPipeline Worker...", config=settings.model_dump(exclude={'SUPPORTED_CONTENT_TYPES', 'POSTGRES_PASSWORD'}))

    try:
        start_http_server(settings.WORKER_METRICS_PORT)
        log.info(f"Prometheus metrics server started on port {settings.WORKER_METRICS_PORT}.")

        services = build_services()
        use_case = get_process_document_use_case(services)
        dead_letter_producer = services.queue if isinstance(services.queue, KafkaProducerClient) else KafkaProducerClient()
        consumer = KafkaConsumerClient(
            topics=[settings.PROCESSING_QUEUE_NAME],
            dead_letter_producer=dead_letter_producer,
        )
    except Exception as e:
        log.critical("Failed to initialize worker dependencies", error=str(e), exc_info=True)
        sys.exit(1)

    def _handle_sigterm(signum, frame):
        log.info("Shutdown signal received.", signal=signum)
        consumer.stop()

    signal.signal(signal.SIGTERM, _handle_sigterm)

    log.info("Worker initialized successfully. Starting message consumption loop...")
    try:
        consumer.run(use_case.execute)
    except KeyboardInterrupt:
        log.info("Shutdown signal received.")
    except Exception as e:
        log.critical("Critical error in consumer loop. Exiting.", error=str(e), exc_info=True)
        sys.exit(1)
    finally:
        log.info("Closing worker resources...")
        consumer.close()
        dead_letter_producer.flush()
        if services.engine is not None:
            services.engine.dispose()
        log.info("Worker shut down gracefully.")


if __name__ == "__main__":
    main()
