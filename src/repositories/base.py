"""
Shared repository behaviour for every entity stored in the entities container.

A repository owns one ``EntityMapper`` and talks to the table only through the
optimistic-concurrency controller (writes) and the table client (reads and
queries). Subclasses decide how ids map onto keys, which fields an update may
touch and what soft deletion means for their entity.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Type, TypeVar

from azure.cosmos import exceptions
from pydantic import BaseModel, ValidationError as PydanticValidationError

from src.repositories.transform import DTO, EntityMapper, Record, validation_error_from
from src.shared.concurrency import OptimisticConcurrency, classify_store_error, stamp_new
from src.shared.config import DEFAULT_SOFT_DELETE_TTL_SECONDS
from src.shared.cosmos_client import CosmosTableClient
from src.shared.cursor_codec import CursorCodec
from src.shared.keys import SEPARATOR, TTL_ATTR, ItemKey, KeyCondition
from src.shared.logging_utils import info as log_info
from src.specs.common.datetime_utils import format_iso_datetime
from src.specs.common.errors import (
    NotFoundError,
    PartialNotFoundError,
    ValidationError,
)
from src.specs.common.ids import new_id

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


@dataclass
class Page(Generic[T]):
    items: List[T] = field(default_factory=list)
    next_cursor: Optional[str] = None


def parse_request(model: Type[M], data: Any, message: str = "Validation failed") -> M:
    """Validate caller input against a request model, raising the store's ValidationError."""
    if isinstance(data, model):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError(message, details={"errors": [{"field": "", "message": "Expected an object"}]})
    try:
        return model.model_validate(dict(data))
    except PydanticValidationError as e:
        raise validation_error_from(e, message) from e


def query_scope(condition: KeyCondition) -> str:
    """Identity of a query for cursor binding: index, partition value and sort prefix."""
    return f"{condition.name}:{condition.pk}:{condition.sk_prefix}"


class EntityRepository(Generic[DTO]):
    mapper: EntityMapper
    id_prefix: str = ""
    create_model: Optional[Type[BaseModel]] = None
    update_model: Optional[Type[BaseModel]] = None

    def __init__(
        self,
        table: CosmosTableClient,
        cursor_codec: CursorCodec,
        soft_delete_ttl_seconds: int = DEFAULT_SOFT_DELETE_TTL_SECONDS,
    ):
        self.table = table
        self.cursors = cursor_codec
        self.concurrency = OptimisticConcurrency(table)
        self.soft_delete_ttl_seconds = soft_delete_ttl_seconds

    @property
    def resource_type(self) -> str:
        return self.mapper.resource_type

    # --- hooks -------------------------------------------------------------

    def is_live(self, record: Mapping[str, Any]) -> bool:
        """False for soft-deleted records; those read as not found."""
        return not record.get("deletedAt")

    def archive(self, record: Record, now: str) -> Record:
        """Apply this entity's soft-delete marker to a stored record."""
        record["deletedAt"] = now
        return record

    def merge(self, current: Record, changes: Dict[str, Any]) -> Record:
        """Top-level fields named in an update replace the stored value."""
        merged = dict(current)
        merged.update(changes)
        return merged

    # --- single-item operations --------------------------------------------

    def _get(self, tenant_id: str, key: ItemKey, resource_id: str) -> DTO:
        record = self.concurrency.load(self.resource_type, resource_id, key, is_live=self.is_live)
        return self.mapper.to_dto(record)

    def _create(self, tenant_id: str, logical: Record) -> DTO:
        stamp_new(logical, datetime.now(timezone.utc))
        body = self.mapper.to_record(tenant_id, logical)
        resource_id = logical[self.mapper.id_attr]
        stored = self.concurrency.insert(self.resource_type, resource_id, body)
        return self.mapper.to_dto(stored)

    def _parse_changes(self, fields: Any) -> Dict[str, Any]:
        if self.update_model is None:
            raise ValidationError(f"{self.resource_type} does not support partial updates")
        request = parse_request(self.update_model, fields, f"Invalid {self.resource_type} update")
        return request.model_dump(mode="json", exclude_unset=True)

    def _update(
        self,
        tenant_id: str,
        key: ItemKey,
        resource_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
        guard: Optional[Callable[[Record], None]] = None,
    ) -> DTO:
        """Merge already-validated changes into the stored record under a version guard.

        ``guard`` runs against the current logical record before merging and may
        raise to refuse the update.
        """
        def mutator(current: Record) -> Record:
            logical = self.mapper.logical(current)
            if guard is not None:
                guard(logical)
            return self.mapper.to_record(tenant_id, self.merge(logical, changes))

        stored = self.concurrency.mutate(
            self.resource_type,
            resource_id,
            key,
            mutator,
            expected_version=expected_version,
            is_live=self.is_live,
        )
        log_info(tenant_id, f"{self.resource_type.lower()}:update", resourceId=resource_id, fields=sorted(changes))
        return self.mapper.to_dto(stored)

    def _soft_delete(
        self,
        tenant_id: str,
        key: ItemKey,
        resource_id: str,
        guard: Optional[Callable[[Record], None]] = None,
    ) -> None:
        now = format_iso_datetime(datetime.now(timezone.utc))

        def mutator(current: Record) -> Record:
            if guard is not None:
                guard(self.mapper.logical(current))
            body = self.archive(self.mapper.logical(current), now)
            body = self.mapper.rekey(tenant_id, body)
            body[TTL_ATTR] = self.soft_delete_ttl_seconds
            return body

        self.concurrency.mutate(self.resource_type, resource_id, key, mutator, is_live=self.is_live)
        log_info(tenant_id, f"{self.resource_type.lower()}:soft_delete", resourceId=resource_id)

    def _batch_get(self, tenant_id: str, keys: List[ItemKey], ids: List[str]) -> List[DTO]:
        found: Dict[str, DTO] = {}
        missing: List[str] = []
        for key, resource_id in zip(keys, ids):
            if resource_id in found or resource_id in missing:
                continue
            record = self.concurrency.read(self.resource_type, resource_id, key)
            if record is None or not self.is_live(record):
                missing.append(resource_id)
            else:
                found[resource_id] = self.mapper.to_dto(record)
        if missing:
            raise PartialNotFoundError(self.resource_type, missing)
        return [found[resource_id] for resource_id in ids]

    # --- queries -----------------------------------------------------------

    def query(
        self,
        tenant_id: str,
        condition: KeyCondition,
        filters: Optional[Callable[[DTO], bool]] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
        include_deleted: bool = False,
    ) -> Page[DTO]:
        """
        Fetch one page of an indexed range scan.

        ``filters`` run on the returned page only, so a page can hold fewer than
        ``limit`` items while ``next_cursor`` is still set.
        """
        if condition.pk != tenant_id and not condition.pk.startswith(tenant_id + SEPARATOR):
            raise ValidationError("Query condition is outside the tenant", details={"tenantId": tenant_id})
        if not isinstance(limit, int) or limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}", details={"field": "limit", "value": limit}
            )

        scope = query_scope(condition)
        continuation = self.cursors.decode(scope, cursor)
        try:
            records, next_token = self.table.query_page(condition, limit, continuation)
        except exceptions.CosmosHttpResponseError as e:
            raise classify_store_error(e, self.resource_type, condition.name) from e

        items: List[DTO] = []
        for record in records:
            if record.get("tenantId") != tenant_id:
                continue
            if not include_deleted and not self.is_live(record):
                continue
            dto = self.mapper.to_dto(record)
            if filters is None or filters(dto):
                items.append(dto)
        return Page(items=items, next_cursor=self.cursors.encode(scope, next_token))

    def query_all(
        self,
        tenant_id: str,
        condition: KeyCondition,
        filters: Optional[Callable[[DTO], bool]] = None,
        include_deleted: bool = False,
    ) -> List[DTO]:
        """Drain every page of a query."""
        items: List[DTO] = []
        cursor: Optional[str] = None
        while True:
            page = self.query(
                tenant_id, condition, filters, limit=MAX_PAGE_SIZE, cursor=cursor, include_deleted=include_deleted
            )
            items.extend(page.items)
            if not page.next_cursor:
                return items
            cursor = page.next_cursor


class RootEntityRepository(EntityRepository[DTO]):
    """Entities whose partition is their own id (brands, personas, campaigns)."""

    def key_for(self, tenant_id: str, entity_id: str) -> ItemKey:
        return self.mapper.item_key(tenant_id, {self.mapper.id_attr: entity_id})

    def initial_attributes(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Server-assigned attributes for a new entity."""
        return {}

    def get(self, tenant_id: str, entity_id: str) -> DTO:
        return self._get(tenant_id, self.key_for(tenant_id, entity_id), entity_id)

    def create(self, tenant_id: str, data: Any, entity_id: Optional[str] = None) -> DTO:
        request = parse_request(self.create_model, data, f"Invalid {self.resource_type}")
        logical = request.model_dump(mode="json", exclude_none=True)
        logical.update(self.initial_attributes(logical))
        logical[self.mapper.id_attr] = entity_id or new_id(self.id_prefix)
        self.key_for(tenant_id, logical[self.mapper.id_attr])
        return self._create(tenant_id, logical)

    def update(
        self,
        tenant_id: str,
        entity_id: str,
        fields: Any,
        expected_version: Optional[int] = None,
    ) -> DTO:
        changes = self._parse_changes(fields)
        return self._update(
            tenant_id, self.key_for(tenant_id, entity_id), entity_id, changes, expected_version=expected_version
        )

    def soft_delete(self, tenant_id: str, entity_id: str) -> None:
        self._soft_delete(tenant_id, self.key_for(tenant_id, entity_id), entity_id)

    def batch_get(self, tenant_id: str, entity_ids: List[str]) -> List[DTO]:
        keys = [self.key_for(tenant_id, entity_id) for entity_id in entity_ids]
        return self._batch_get(tenant_id, keys, list(entity_ids))
