# Cosmos DB client for the single shared entity container

import time
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

import backoff
from azure.core import MatchConditions
from azure.cosmos import CosmosClient, exceptions
from azure.cosmos.container import ContainerProxy

from src.shared.config import StoreSettings
from src.shared.keys import ItemKey, KeyCondition
from src.shared.logging_utils import debug as log_debug, warning as log_warning
from src.specs.common.errors import StoreUnavailableError

T = TypeVar("T")

# Request timeout, throttling, retry-with, service unavailable
TRANSIENT_STATUS_CODES = (408, 429, 449, 503)


class RetryableCosmosError(Exception):
    """Indicates a Cosmos DB operation that should be retried"""
    pass


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, exceptions.CosmosHttpResponseError) and exc.status_code in TRANSIENT_STATUS_CODES


class CosmosTableClient:
    """Thin wrapper over one container: retries transient failures, leaves the rest to the caller.

    Non-transient ``CosmosHttpResponseError`` instances propagate unchanged so
    the concurrency layer can classify 404/409/412 precisely.
    """

    MAX_RETRIES = 3
    INITIAL_RETRY_DELAY = 0.1  # 100ms
    MAX_RETRY_DELAY = 2.0      # 2s
    OPERATION_TIMEOUT = 10.0   # 10s

    def __init__(self, container: ContainerProxy, container_name: str = "entities"):
        self.container = container
        self.container_name = container_name

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> "CosmosTableClient":
        client = CosmosClient.from_connection_string(
            settings.cosmos_connection_string,
            retry_total=cls.MAX_RETRIES,
        )
        database = client.get_database_client(settings.cosmos_database)
        container = database.get_container_client(settings.entities_container)
        return cls(container, settings.entities_container)

    @backoff.on_exception(
        backoff.expo,
        RetryableCosmosError,
        max_tries=MAX_RETRIES,
        max_time=OPERATION_TIMEOUT,
        factor=INITIAL_RETRY_DELAY,
        max_value=MAX_RETRY_DELAY,
    )
    def _attempt(self, operation: Callable[[], T], name: str) -> T:
        try:
            return operation()
        except exceptions.CosmosHttpResponseError as e:
            if is_transient(e):
                log_warning(None, "cosmos:retryable", operation=name, statusCode=e.status_code)
                raise RetryableCosmosError(f"Retryable error during {name}: {e}") from e
            raise

    def _run(self, operation: Callable[[], T], name: str) -> T:
        start_time = time.time()
        try:
            result = self._attempt(operation, name)
        except RetryableCosmosError as e:
            raise StoreUnavailableError(
                f"Cosmos DB unavailable during {name}",
                details={"operation": name, "container": self.container_name, "cause": str(e.__cause__)},
            ) from e
        log_debug(None, "cosmos:op", operation=name, durationMs=int((time.time() - start_time) * 1000))
        return result

    def read_item(self, key: ItemKey) -> Optional[Dict[str, Any]]:
        """Point read by primary key; None when the item does not exist."""
        def op() -> Optional[Dict[str, Any]]:
            try:
                return self.container.read_item(item=key.document_id, partition_key=key.pk)
            except exceptions.CosmosResourceNotFoundError:
                return None

        return self._run(op, "read_item")

    def create_item(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Insert; Cosmos rejects the write with 409 when the id already exists in the partition."""
        return self._run(lambda: self.container.create_item(body=body), "create_item")

    def replace_item(self, key: ItemKey, body: Dict[str, Any], etag: Optional[str]) -> Dict[str, Any]:
        """Replace guarded by ``etag``; a stale etag fails with 412."""
        kwargs: Dict[str, Any] = {}
        if etag:
            kwargs = {"etag": etag, "match_condition": MatchConditions.IfNotModified}
        return self._run(
            lambda: self.container.replace_item(item=key.document_id, body=body, **kwargs),
            "replace_item",
        )

    def delete_item(self, key: ItemKey, etag: Optional[str] = None) -> None:
        kwargs: Dict[str, Any] = {}
        if etag:
            kwargs = {"etag": etag, "match_condition": MatchConditions.IfNotModified}
        self._run(
            lambda: self.container.delete_item(item=key.document_id, partition_key=key.pk, **kwargs),
            "delete_item",
        )

    def query_page(
        self,
        condition: KeyCondition,
        limit: int,
        continuation: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        Run one page of a key-condition query.

        Args:
            condition: partition equality plus sort-key prefix, on the table or an index
            limit: maximum items the store may return for this page
            continuation: native resume token from the previous page

        Returns:
            (items, next continuation token or None when exhausted)
        """
        order = "DESC" if condition.descending else "ASC"
        query = (
            f"SELECT * FROM c WHERE c.{condition.pk_attr} = @pk "
            f"AND STARTSWITH(c.{condition.sk_attr}, @prefix) "
            f"ORDER BY c.{condition.sk_attr} {order}"
        )
        parameters = [
            {"name": "@pk", "value": condition.pk},
            {"name": "@prefix", "value": condition.sk_prefix},
        ]
        options: Dict[str, Any] = {"max_item_count": limit}
        if condition.index is None:
            options["partition_key"] = condition.pk
        else:
            options["enable_cross_partition_query"] = True

        def op() -> Tuple[List[Dict[str, Any]], Optional[str]]:
            pager = self.container.query_items(query=query, parameters=parameters, **options).by_page(continuation)
            page = next(pager, None)
            items = list(page) if page is not None else []
            return items, pager.continuation_token or None

        return self._run(op, f"query:{condition.name}")
