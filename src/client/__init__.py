"""Client side: HTTP client for the service and the status poller."""

from src.client.api_client import ImageWorkflowClient
from src.client.status_poller import StatusCallback, StatusPoller

__all__ = [
    "ImageWorkflowClient",
    "StatusCallback",
    "StatusPoller",
]
