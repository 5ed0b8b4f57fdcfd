"""
Boundary transform between stored records and externally visible DTOs.

Inbound, a logical entity (identified by its internal id attribute such as
``brandId``) is validated against its DTO model and stamped with the tenant,
primary key, Cosmos document id and index projections. Outbound, every
physical attribute is stripped and the internal id is exposed as ``id``.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Generic, List, Mapping, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from src.shared.keys import (
    INDEX_ATTRIBUTES,
    PHYSICAL_ATTRIBUTES,
    TENANT_ATTR,
    IndexKey,
    ItemKey,
    index_attributes,
)
from src.specs.common.errors import InternalStoreError, ValidationError
from src.specs.models.common import EntityBase

Record = Dict[str, Any]
DTO = TypeVar("DTO", bound=EntityBase)


def validation_error_from(exc: PydanticValidationError, message: str = "Validation failed") -> ValidationError:
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return ValidationError(message, details={"errors": errors})


class EntityMapper(Generic[DTO]):
    """One entity type's mapping between logical attributes and stored records."""

    def __init__(
        self,
        resource_type: str,
        id_attr: str,
        dto_model: Type[DTO],
        item_key: Callable[[str, Mapping[str, Any]], ItemKey],
        index_keys: Callable[[str, Mapping[str, Any]], List[IndexKey]],
    ):
        self.resource_type = resource_type
        self.id_attr = id_attr
        self.dto_model = dto_model
        self.item_key = item_key
        self.index_keys = index_keys

    def logical(self, record: Mapping[str, Any]) -> Record:
        """Strip physical attributes, keeping the internal id attribute."""
        logical_id = record.get(self.id_attr)
        if logical_id is None and self.id_attr not in record:
            # Already in DTO shape.
            logical_id = record.get("id")
        body = {k: v for k, v in record.items() if k not in PHYSICAL_ATTRIBUTES}
        if logical_id is not None:
            body[self.id_attr] = logical_id
        return body

    def clean(self, record: Mapping[str, Any]) -> Record:
        """Outbound shape: no physical attributes, internal id renamed to ``id``.

        Applying it to its own output returns an equal dict.
        """
        body = self.logical(record)
        logical_id = body.pop(self.id_attr, None)
        if logical_id is not None:
            body["id"] = logical_id
        return body

    def to_dto(self, record: Mapping[str, Any]) -> DTO:
        try:
            return self.dto_model.model_validate(self.clean(record))
        except PydanticValidationError as e:
            raise InternalStoreError(
                f"Stored {self.resource_type} does not match its schema",
                details={"resourceId": record.get(self.id_attr) or record.get("id"), "errors": e.errors()},
            ) from e

    def validate(self, logical: Mapping[str, Any]) -> DTO:
        try:
            return self.dto_model.model_validate(self.clean(logical))
        except PydanticValidationError as e:
            raise validation_error_from(e, f"Invalid {self.resource_type}") from e

    def rekey(self, tenant_id: str, body: Record) -> Record:
        """Recompute key, tenant stamp and projections from the record's attributes."""
        for attr in INDEX_ATTRIBUTES:
            body.pop(attr, None)
        body[TENANT_ATTR] = tenant_id
        body.update(self.item_key(tenant_id, body).to_attributes())
        body.update(index_attributes(self.index_keys(tenant_id, body)))
        return body

    def to_record(self, tenant_id: str, logical: Mapping[str, Any]) -> Record:
        """Validate a logical entity and build the record to store."""
        dto = self.validate(logical)
        body = dto.model_dump(mode="json", exclude_none=True)
        body[self.id_attr] = body.pop("id")
        return self.rekey(tenant_id, body)
