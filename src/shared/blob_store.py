"""
Object store for brand asset bytes, backed by Azure Blob Storage.
"""
from typing import Any, Dict, Optional

from azure.core.exceptions import (
    AzureError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.storage.blob import BlobServiceClient, ContainerClient, ContentSettings

from src.shared.config import StoreSettings
from src.shared.logging_utils import info as log_info
from src.shared.retry_utils import retry_with_backoff
from src.specs.common.errors import ConfigurationError, ObjectStoreError

TRANSIENT_ERRORS = (ServiceRequestError, ServiceResponseError)


class BlobObjectStore:
    """put / delete / get_metadata by object key inside one container."""

    def __init__(self, container_client: ContainerClient):
        self.container_client = container_client

    @property
    def container_name(self) -> str:
        return self.container_client.container_name

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> "BlobObjectStore":
        conn = settings.assets_blob_connection_string
        if not conn:
            raise ConfigurationError(
                "ASSETS_BLOB_CONNECTION_STRING is required for asset uploads",
                details={"required": ["ASSETS_BLOB_CONNECTION_STRING"]},
            )
        service = BlobServiceClient.from_connection_string(conn)
        container_client = service.get_container_client(settings.assets_blob_container)
        try:
            container_client.create_container()
        except ResourceExistsError:
            pass
        return cls(container_client)

    def put(
        self,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Upload bytes under ``key``; returns the blob URL."""
        blob = self.container_client.get_blob_client(key)
        kwargs: Dict[str, Any] = {}
        if content_type:
            kwargs["content_settings"] = ContentSettings(content_type=content_type)
        if metadata:
            kwargs["metadata"] = metadata
        try:
            retry_with_backoff(
                lambda: blob.upload_blob(data, overwrite=True, **kwargs),
                attempts=3,
                delay=0.5,
                exceptions=TRANSIENT_ERRORS,
            )
        except AzureError as e:
            raise ObjectStoreError("Asset upload failed", details={"key": key, "error": str(e)}) from e
        log_info(None, "blob:put", container=self.container_name, key=key, size=len(data))
        return blob.url

    def delete(self, key: str) -> None:
        """Remove ``key``; deleting a missing object is not an error."""
        blob = self.container_client.get_blob_client(key)
        try:
            blob.delete_blob()
        except ResourceNotFoundError:
            return
        except AzureError as e:
            raise ObjectStoreError("Asset delete failed", details={"key": key, "error": str(e)}) from e

    def get_metadata(self, key: str) -> Optional[Dict[str, Any]]:
        """Size, content type and user metadata of ``key``; None when absent."""
        blob = self.container_client.get_blob_client(key)
        try:
            props = blob.get_blob_properties()
        except ResourceNotFoundError:
            return None
        except AzureError as e:
            raise ObjectStoreError("Asset lookup failed", details={"key": key, "error": str(e)}) from e
        return {
            "key": key,
            "size": props.size,
            "contentType": props.content_settings.content_type if props.content_settings else None,
            "metadata": dict(props.metadata or {}),
        }
