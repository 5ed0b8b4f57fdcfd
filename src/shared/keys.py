"""
Key scheme for the single shared entity container.

Every item lives at ``pk = {tenantId}#{scopeId}`` and is positioned inside its
partition by ``sk`` (a literal for singleton items, ``{TYPE}#{localId}`` for
collection members). Two secondary projections (GSI1, GSI2) are stored as
plain attributes and queried by the repositories.

Keys are value objects built here and nowhere else. Every builder is a pure
function of (tenant, ids, attributes), so the same keys are produced on write
and on every later read or query.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from src.specs.common.errors import ValidationError

SEPARATOR = "#"
# Cosmos item ids may not contain '#', so the document id is the sort key
# with the separator swapped for a character that ids never use.
DOCUMENT_ID_SEPARATOR = "|"

PK_ATTR = "pk"
SK_ATTR = "sk"
DOCUMENT_ID_ATTR = "id"
TENANT_ATTR = "tenantId"
TTL_ATTR = "ttl"

BRAND_SK = "metadata"
PERSONA_SK = "persona"
CAMPAIGN_SK = "campaign"
POST_PREFIX = "POST"
ASSET_PREFIX = "ASSET"
EXAMPLE_PREFIX = "EXAMPLE"
BRAND_PREFIX = "BRAND"
PERSONA_PREFIX = "PERSONA"
CAMPAIGN_PREFIX = "CAMPAIGN"


class IndexName(str, Enum):
    GSI1 = "GSI1"
    GSI2 = "GSI2"

    @property
    def pk_attr(self) -> str:
        return f"{self.value}PK"

    @property
    def sk_attr(self) -> str:
        return f"{self.value}SK"


INDEX_ATTRIBUTES: Tuple[str, ...] = tuple(
    attr for index in IndexName for attr in (index.pk_attr, index.sk_attr)
)
ITEM_KEY_ATTRIBUTES: Tuple[str, ...] = (PK_ATTR, SK_ATTR, DOCUMENT_ID_ATTR)
COSMOS_SYSTEM_ATTRIBUTES: Tuple[str, ...] = ("_rid", "_self", "_etag", "_attachments", "_ts", "_lsn")
PHYSICAL_ATTRIBUTES: Tuple[str, ...] = (
    ITEM_KEY_ATTRIBUTES + INDEX_ATTRIBUTES + (TENANT_ATTR, TTL_ATTR) + COSMOS_SYSTEM_ATTRIBUTES
)


def _require_component(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required", details={"field": name})
    if SEPARATOR in value or DOCUMENT_ID_SEPARATOR in value:
        raise ValidationError(
            f"{name} may not contain '{SEPARATOR}' or '{DOCUMENT_ID_SEPARATOR}'",
            details={"field": name, "value": value},
        )
    return value


def _attr_component(value: Any) -> str:
    # Attribute-derived parts sort but are never parsed back; "%" and the
    # separator are percent-escaped so a value always fills exactly one segment.
    if value is None:
        return ""
    text = str(value.value) if isinstance(value, Enum) else str(value)
    return text.replace("%", "%25").replace(SEPARATOR, "%23")


def compose(*parts: str) -> str:
    return SEPARATOR.join(parts)


@dataclass(frozen=True)
class ItemKey:
    """Primary key of one item."""

    pk: str
    sk: str

    @classmethod
    def build(cls, tenant_id: str, scope_id: str, sort_key: str) -> "ItemKey":
        tenant = _require_component(tenant_id, "tenantId")
        scope = _require_component(scope_id, "scopeId")
        return cls(pk=compose(tenant, scope), sk=sort_key)

    @classmethod
    def member(cls, tenant_id: str, scope_id: str, type_prefix: str, local_id: str) -> "ItemKey":
        local = _require_component(local_id, "localId")
        return cls.build(tenant_id, scope_id, compose(type_prefix, local))

    @classmethod
    def parse(cls, pk: str, sk: str) -> "ItemKey":
        tenant, sep, scope = (pk or "").partition(SEPARATOR)
        if not sep:
            raise ValidationError("Malformed partition key", details={"pk": pk})
        _require_component(tenant, "tenantId")
        _require_component(scope, "scopeId")
        if not sk:
            raise ValidationError("Malformed sort key", details={"sk": sk})
        return cls(pk=pk, sk=sk)

    @property
    def tenant_id(self) -> str:
        return self.pk.split(SEPARATOR, 1)[0]

    @property
    def scope_id(self) -> str:
        return self.pk.split(SEPARATOR, 1)[1]

    @property
    def local_id(self) -> Optional[str]:
        """Member id for ``{TYPE}#{localId}`` sort keys, None for singletons."""
        _, sep, local = self.sk.partition(SEPARATOR)
        return local if sep else None

    @property
    def document_id(self) -> str:
        return self.sk.replace(SEPARATOR, DOCUMENT_ID_SEPARATOR)

    def to_attributes(self) -> Dict[str, str]:
        return {PK_ATTR: self.pk, SK_ATTR: self.sk, DOCUMENT_ID_ATTR: self.document_id}


@dataclass(frozen=True)
class IndexKey:
    """One secondary projection of an item."""

    index: IndexName
    pk: str
    sk: str

    def to_attributes(self) -> Dict[str, str]:
        return {self.index.pk_attr: self.pk, self.index.sk_attr: self.sk}


@dataclass(frozen=True)
class KeyCondition:
    """Key condition of a query: equality on a partition value, prefix on the sort value.

    ``index`` None addresses the base table (``pk``/``sk``) inside one partition.
    """

    index: Optional[IndexName]
    pk: str
    sk_prefix: str = ""
    descending: bool = False

    @property
    def pk_attr(self) -> str:
        return self.index.pk_attr if self.index else PK_ATTR

    @property
    def sk_attr(self) -> str:
        return self.index.sk_attr if self.index else SK_ATTR

    @property
    def name(self) -> str:
        return self.index.value if self.index else "TABLE"


def index_attributes(index_keys: List[IndexKey]) -> Dict[str, str]:
    attrs: Dict[str, str] = {}
    for key in index_keys:
        attrs.update(key.to_attributes())
    return attrs


# --- Brand -----------------------------------------------------------------

def brand_item_key(tenant_id: str, brand_id: str) -> ItemKey:
    return ItemKey.build(tenant_id, brand_id, BRAND_SK)


def brand_index_keys(tenant_id: str, attrs: Mapping[str, Any]) -> List[IndexKey]:
    created = _attr_component(attrs.get("createdAt"))
    status = _attr_component(attrs.get("status"))
    return [
        IndexKey(IndexName.GSI1, tenant_id, compose(BRAND_PREFIX, created)),
        IndexKey(IndexName.GSI2, compose(tenant_id, status), compose(BRAND_PREFIX, created)),
    ]


def brands_by_tenant(tenant_id: str) -> KeyCondition:
    return KeyCondition(IndexName.GSI1, _require_component(tenant_id, "tenantId"), compose(BRAND_PREFIX, ""))


def brands_by_status(tenant_id: str, status: str) -> KeyCondition:
    tenant = _require_component(tenant_id, "tenantId")
    return KeyCondition(IndexName.GSI2, compose(tenant, _attr_component(status)), compose(BRAND_PREFIX, ""))


# --- Persona ---------------------------------------------------------------

def persona_item_key(tenant_id: str, persona_id: str) -> ItemKey:
    return ItemKey.build(tenant_id, persona_id, PERSONA_SK)


def persona_index_keys(tenant_id: str, attrs: Mapping[str, Any]) -> List[IndexKey]:
    created = _attr_component(attrs.get("createdAt"))
    return [
        IndexKey(IndexName.GSI1, tenant_id, compose(PERSONA_PREFIX, created)),
        IndexKey(
            IndexName.GSI2,
            compose(tenant_id, _attr_component(attrs.get("company"))),
            compose(PERSONA_PREFIX, _attr_component(attrs.get("role")), created),
        ),
    ]


def personas_by_tenant(tenant_id: str) -> KeyCondition:
    return KeyCondition(IndexName.GSI1, _require_component(tenant_id, "tenantId"), compose(PERSONA_PREFIX, ""))


def personas_by_company(tenant_id: str, company: str, role: Optional[str] = None) -> KeyCondition:
    tenant = _require_component(tenant_id, "tenantId")
    prefix = compose(PERSONA_PREFIX, _attr_component(role), "") if role else compose(PERSONA_PREFIX, "")
    return KeyCondition(IndexName.GSI2, compose(tenant, _attr_component(company)), prefix)


# --- Campaign --------------------------------------------------------------

def campaign_item_key(tenant_id: str, campaign_id: str) -> ItemKey:
    return ItemKey.build(tenant_id, campaign_id, CAMPAIGN_SK)


def campaign_index_keys(tenant_id: str, attrs: Mapping[str, Any]) -> List[IndexKey]:
    created = _attr_component(attrs.get("createdAt"))
    keys = [IndexKey(IndexName.GSI1, tenant_id, compose(CAMPAIGN_PREFIX, created))]
    brand_id = attrs.get("brandId")
    if brand_id:
        keys.append(
            IndexKey(
                IndexName.GSI2,
                compose(tenant_id, brand_id),
                compose(CAMPAIGN_PREFIX, _attr_component(attrs.get("status")), created),
            )
        )
    return keys


def campaigns_by_tenant(tenant_id: str) -> KeyCondition:
    return KeyCondition(
        IndexName.GSI1, _require_component(tenant_id, "tenantId"), compose(CAMPAIGN_PREFIX, ""), descending=True
    )


def campaigns_by_brand(tenant_id: str, brand_id: str, status: Optional[str] = None) -> KeyCondition:
    tenant = _require_component(tenant_id, "tenantId")
    brand = _require_component(brand_id, "brandId")
    prefix = compose(CAMPAIGN_PREFIX, _attr_component(status), "") if status else compose(CAMPAIGN_PREFIX, "")
    return KeyCondition(IndexName.GSI2, compose(tenant, brand), prefix, descending=True)


# --- Social post -----------------------------------------------------------

def post_item_key(tenant_id: str, campaign_id: str, post_id: str) -> ItemKey:
    return ItemKey.member(tenant_id, campaign_id, POST_PREFIX, post_id)


def post_index_keys(tenant_id: str, attrs: Mapping[str, Any]) -> List[IndexKey]:
    campaign_id = _require_component(attrs.get("campaignId"), "campaignId")
    persona_id = _require_component(attrs.get("personaId"), "personaId")
    scheduled = _attr_component(attrs.get("scheduledAt"))
    return [
        IndexKey(
            IndexName.GSI1,
            compose(tenant_id, campaign_id),
            compose(POST_PREFIX, _attr_component(attrs.get("platform")), scheduled),
        ),
        IndexKey(
            IndexName.GSI2,
            compose(tenant_id, persona_id),
            compose(POST_PREFIX, campaign_id, scheduled),
        ),
    ]


def posts_in_partition(tenant_id: str, campaign_id: str) -> KeyCondition:
    key = ItemKey.build(tenant_id, campaign_id, POST_PREFIX)
    return KeyCondition(None, key.pk, compose(POST_PREFIX, ""))


def posts_by_campaign(tenant_id: str, campaign_id: str, platform: Optional[str] = None) -> KeyCondition:
    key = ItemKey.build(tenant_id, campaign_id, POST_PREFIX)
    prefix = compose(POST_PREFIX, _attr_component(platform), "") if platform else compose(POST_PREFIX, "")
    return KeyCondition(IndexName.GSI1, key.pk, prefix)


def posts_by_persona(tenant_id: str, persona_id: str, campaign_id: Optional[str] = None) -> KeyCondition:
    key = ItemKey.build(tenant_id, persona_id, POST_PREFIX)
    prefix = compose(POST_PREFIX, campaign_id, "") if campaign_id else compose(POST_PREFIX, "")
    return KeyCondition(IndexName.GSI2, key.pk, prefix)


# --- Brand asset -----------------------------------------------------------

def asset_item_key(tenant_id: str, brand_id: str, asset_id: str) -> ItemKey:
    return ItemKey.member(tenant_id, brand_id, ASSET_PREFIX, asset_id)


def asset_index_keys(tenant_id: str, attrs: Mapping[str, Any]) -> List[IndexKey]:
    brand_id = _require_component(attrs.get("brandId"), "brandId")
    created = _attr_component(attrs.get("createdAt"))
    return [
        IndexKey(
            IndexName.GSI1,
            compose(tenant_id, brand_id),
            compose(ASSET_PREFIX, _attr_component(attrs.get("type")), created),
        ),
        IndexKey(
            IndexName.GSI2,
            tenant_id,
            compose(ASSET_PREFIX, _attr_component(attrs.get("category")), created),
        ),
    ]


def assets_by_brand(tenant_id: str, brand_id: str, asset_type: Optional[str] = None) -> KeyCondition:
    key = ItemKey.build(tenant_id, brand_id, ASSET_PREFIX)
    prefix = compose(ASSET_PREFIX, _attr_component(asset_type), "") if asset_type else compose(ASSET_PREFIX, "")
    return KeyCondition(IndexName.GSI1, key.pk, prefix, descending=True)


def assets_by_category(tenant_id: str, category: str) -> KeyCondition:
    tenant = _require_component(tenant_id, "tenantId")
    return KeyCondition(IndexName.GSI2, tenant, compose(ASSET_PREFIX, _attr_component(category), ""), descending=True)


# --- Writing example -------------------------------------------------------

def example_item_key(tenant_id: str, persona_id: str, example_id: str) -> ItemKey:
    return ItemKey.member(tenant_id, persona_id, EXAMPLE_PREFIX, example_id)


def example_index_keys(tenant_id: str, attrs: Mapping[str, Any]) -> List[IndexKey]:
    persona_id = _require_component(attrs.get("personaId"), "personaId")
    return [
        IndexKey(
            IndexName.GSI1,
            compose(tenant_id, persona_id),
            compose(EXAMPLE_PREFIX, _attr_component(attrs.get("createdAt"))),
        ),
    ]


def examples_by_persona(tenant_id: str, persona_id: str) -> KeyCondition:
    key = ItemKey.build(tenant_id, persona_id, EXAMPLE_PREFIX)
    return KeyCondition(IndexName.GSI1, key.pk, compose(EXAMPLE_PREFIX, ""), descending=True)
