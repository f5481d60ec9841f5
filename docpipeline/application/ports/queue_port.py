from abc import ABC, abstractmethod

from docpipeline.domain.models import ProcessDocumentMessage


class QueueProducerPort(ABC):
    """Interface (Port) for handing processing messages to the queue."""

    @abstractmethod
    def send(self, queue_name: str, message: ProcessDocumentMessage) -> None:
        """
        Sends `message` to `queue_name`.

        Raises:
            QueueError: If the message could not be handed to the broker.
        """
        pass
