"""
Optimistic concurrency for single-item writes.

Every mutating write carries a precondition:

* create   -> the key must not hold an item (Cosmos ``create_item``)
* update   -> the key must hold a live item, and when the caller supplies an
              expected version it must equal the stored one; the replace is
              guarded by the etag of the read it was computed from
* delete   -> same as update

Precondition failures surface as ``NotFoundError``, ``AlreadyExistsError`` or
``VersionConflictError`` and never as a generic internal error. There are no
multi-item transactions: a sequence of guarded writes is check-then-act.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from azure.cosmos import exceptions

from src.shared.cosmos_client import CosmosTableClient
from src.shared.keys import ItemKey
from src.shared.logging_utils import info as log_info, error as log_error
from src.specs.common.datetime_utils import advance_timestamp
from src.specs.common.errors import (
    AlreadyExistsError,
    CampaignStoreError,
    InternalStoreError,
    NotFoundError,
    VersionConflictError,
)

Document = Dict[str, Any]


def classify_store_error(
    exc: Exception,
    resource_type: str,
    resource_id: str,
    expected_version: Optional[int] = None,
) -> CampaignStoreError:
    """Map a Cosmos failure to the store's error taxonomy."""
    if isinstance(exc, CampaignStoreError):
        return exc
    if isinstance(exc, exceptions.CosmosHttpResponseError):
        if exc.status_code == 404:
            return NotFoundError(resource_type, resource_id)
        if exc.status_code == 409:
            return AlreadyExistsError(resource_type, resource_id)
        if exc.status_code == 412:
            return VersionConflictError(resource_type, resource_id, expected_version=expected_version)
        return InternalStoreError(
            f"Cosmos DB request failed for {resource_type} '{resource_id}'",
            details={"statusCode": exc.status_code},
        )
    return InternalStoreError(
        f"Unexpected store failure for {resource_type} '{resource_id}'",
        details={"error": str(exc)},
    )


def stamp_new(body: Document, now: Optional[datetime] = None) -> Document:
    """Initial concurrency fields for a record about to be created."""
    ts = advance_timestamp(None, now or datetime.now(timezone.utc))
    body.setdefault("createdAt", ts)
    body["updatedAt"] = body.get("updatedAt") or ts
    body["version"] = 1
    return body


class OptimisticConcurrency:
    def __init__(self, table: CosmosTableClient):
        self.table = table

    def insert(self, resource_type: str, resource_id: str, body: Document) -> Document:
        try:
            created = self.table.create_item(body)
        except exceptions.CosmosHttpResponseError as e:
            raise classify_store_error(e, resource_type, resource_id) from e
        log_info(body.get("tenantId"), "cosmos:item:create", resourceType=resource_type, resourceId=resource_id)
        return created

    def read(self, resource_type: str, resource_id: str, key: ItemKey) -> Optional[Document]:
        """Point read; None when the key holds no item."""
        try:
            return self.table.read_item(key)
        except exceptions.CosmosHttpResponseError as e:
            raise classify_store_error(e, resource_type, resource_id) from e

    def load(
        self,
        resource_type: str,
        resource_id: str,
        key: ItemKey,
        is_live: Optional[Callable[[Document], bool]] = None,
    ) -> Document:
        current = self.read(resource_type, resource_id, key)
        if current is None or (is_live is not None and not is_live(current)):
            raise NotFoundError(resource_type, resource_id)
        return current

    @staticmethod
    def check_version(
        resource_type: str,
        resource_id: str,
        current: Document,
        expected_version: Optional[int],
    ) -> None:
        if expected_version is None:
            return
        actual = current.get("version")
        if actual != expected_version:
            raise VersionConflictError(
                resource_type, resource_id, expected_version=expected_version, actual_version=actual
            )

    def mutate(
        self,
        resource_type: str,
        resource_id: str,
        key: ItemKey,
        mutator: Callable[[Document], Document],
        *,
        expected_version: Optional[int] = None,
        is_live: Optional[Callable[[Document], bool]] = None,
    ) -> Document:
        """
        Read-modify-write one item under an etag guard.

        ``mutator`` receives a copy of the stored document and returns the new
        body. ``version`` and ``updatedAt`` are bumped here, after the mutator
        ran, so no caller can skip them.
        """
        current = self.load(resource_type, resource_id, key, is_live=is_live)
        self.check_version(resource_type, resource_id, current, expected_version)

        body = mutator(dict(current))
        body["version"] = int(current.get("version") or 0) + 1
        body["updatedAt"] = advance_timestamp(current.get("updatedAt"), datetime.now(timezone.utc))

        try:
            stored = self.table.replace_item(key, body, etag=current.get("_etag"))
        except exceptions.CosmosHttpResponseError as e:
            err = classify_store_error(e, resource_type, resource_id, expected_version=current.get("version"))
            if isinstance(err, VersionConflictError):
                log_info(
                    current.get("tenantId"),
                    "cosmos:item:conflict",
                    resourceType=resource_type,
                    resourceId=resource_id,
                    version=current.get("version"),
                )
            else:
                log_error(
                    current.get("tenantId"),
                    "cosmos:item:replace_failed",
                    resourceType=resource_type,
                    resourceId=resource_id,
                    code=err.code,
                )
            raise err from e
        return stored

    def remove(self, resource_type: str, resource_id: str, key: ItemKey) -> None:
        """Hard delete; the item must exist."""
        try:
            self.table.delete_item(key)
        except exceptions.CosmosHttpResponseError as e:
            raise classify_store_error(e, resource_type, resource_id) from e
