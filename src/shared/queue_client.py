"""
Azure Storage Queue publisher for campaign status events
"""
import json
from typing import Any, Dict

from azure.core.exceptions import ResourceExistsError
from azure.storage.queue import QueueClient

from src.shared.config import StoreSettings
from src.shared.logging_utils import info as log_info, error as log_error
from src.specs.common.errors import ConfigurationError


def get_queue_client(conn_str: str, queue_name: str) -> QueueClient:
    """
    Get or create a queue client for the specified queue.

    Args:
        conn_str (str): Storage account connection string
        queue_name (str): Name of the queue

    Returns:
        QueueClient: Azure Storage Queue client
    """
    queue_client = QueueClient.from_connection_string(conn_str=conn_str, queue_name=queue_name)

    try:
        queue_client.create_queue()
        log_info(None, "queue:created", queue=queue_name)
    except ResourceExistsError:
        pass
    except Exception as e:
        log_error(None, "queue:create_failed", queue=queue_name, error=str(e))
        raise

    return queue_client


class QueueEventPublisher:
    """Event bus collaborator: serialises an event envelope onto one queue."""

    def __init__(self, queue_client: QueueClient):
        self.queue_client = queue_client

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> "QueueEventPublisher":
        if not settings.queue_connection_string:
            raise ConfigurationError(
                "AzureWebJobsStorage connection string not found",
                details={"required": ["AzureWebJobsStorage"]},
            )
        return cls(get_queue_client(settings.queue_connection_string, settings.campaign_events_queue))

    def publish(self, envelope: Dict[str, Any]) -> None:
        self.queue_client.send_message(json.dumps(envelope, default=str))
