from __future__ import annotations

from typing import Any, List, Mapping, Optional

from src.repositories.base import DEFAULT_PAGE_SIZE, EntityRepository, Page, parse_request
from src.repositories.brands import BrandRepository
from src.repositories.transform import EntityMapper
from src.shared.blob_store import BlobObjectStore
from src.shared.config import DEFAULT_SOFT_DELETE_TTL_SECONDS
from src.shared.cosmos_client import CosmosTableClient
from src.shared.cursor_codec import CursorCodec
from src.shared.keys import ItemKey, asset_index_keys, asset_item_key, assets_by_brand, assets_by_category
from src.shared.logging_utils import info as log_info, warning as log_warning
from src.specs.common.errors import AlreadyExistsError, CampaignStoreError, ObjectStoreError, ValidationError
from src.specs.common.ids import new_id
from src.specs.models.brand_asset import BrandAsset, CreateBrandAssetRequest, UpdateBrandAssetRequest


def object_key(tenant_id: str, brand_id: str, asset_id: str) -> str:
    return f"{tenant_id}/{brand_id}/{asset_id}"


class BrandAssetRepository(EntityRepository[BrandAsset]):
    """
    Asset metadata records plus their bytes in the object store.

    Record and object are written without a shared transaction: an upload puts
    the object first and removes it again when the record write fails.
    """

    mapper = EntityMapper(
        "BrandAsset",
        "assetId",
        BrandAsset,
        item_key=lambda tenant_id, attrs: asset_item_key(tenant_id, attrs.get("brandId"), attrs.get("assetId")),
        index_keys=asset_index_keys,
    )
    id_prefix = "asset"
    create_model = CreateBrandAssetRequest
    update_model = UpdateBrandAssetRequest

    def __init__(
        self,
        table: CosmosTableClient,
        cursor_codec: CursorCodec,
        brands: BrandRepository,
        objects: BlobObjectStore,
        soft_delete_ttl_seconds: int = DEFAULT_SOFT_DELETE_TTL_SECONDS,
    ):
        super().__init__(table, cursor_codec, soft_delete_ttl_seconds)
        self.brands = brands
        self.objects = objects

    def key_for(self, tenant_id: str, brand_id: str, asset_id: str) -> ItemKey:
        return asset_item_key(tenant_id, brand_id, asset_id)

    def get(self, tenant_id: str, brand_id: str, asset_id: str) -> BrandAsset:
        return self._get(tenant_id, self.key_for(tenant_id, brand_id, asset_id), asset_id)

    def upload(
        self,
        tenant_id: str,
        brand_id: str,
        metadata: Any,
        data: bytes,
        asset_id: Optional[str] = None,
    ) -> BrandAsset:
        """Store an asset's bytes and its metadata record for an existing brand."""
        self.brands.get(tenant_id, brand_id)
        request = parse_request(CreateBrandAssetRequest, metadata, "Invalid BrandAsset")
        if not data:
            raise ValidationError("File data is required", details={"field": "data"})

        asset_id = asset_id or new_id(self.id_prefix)
        item_key = self.key_for(tenant_id, brand_id, asset_id)
        if self.concurrency.read(self.resource_type, asset_id, item_key) is not None:
            raise AlreadyExistsError(self.resource_type, asset_id)
        key = object_key(tenant_id, brand_id, asset_id)
        self.objects.put(
            key,
            data,
            content_type=request.contentType,
            metadata={"tenantId": tenant_id, "brandId": brand_id, "assetId": asset_id, "originalName": request.name},
        )

        logical = request.model_dump(mode="json", exclude_none=True)
        logical.update(
            {
                "assetId": asset_id,
                "brandId": brand_id,
                "objectKey": key,
                "container": self.objects.container_name,
                "fileSize": len(data),
            }
        )
        try:
            asset = self._create(tenant_id, logical)
        except CampaignStoreError:
            self._discard_object(tenant_id, key)
            raise
        log_info(tenant_id, "asset:upload", brandId=brand_id, assetId=asset_id, size=len(data))
        return asset

    def _discard_object(self, tenant_id: str, key: str) -> None:
        try:
            self.objects.delete(key)
        except ObjectStoreError as e:
            log_warning(tenant_id, "asset:object_cleanup_failed", key=key, error=str(e))

    def update(
        self,
        tenant_id: str,
        brand_id: str,
        asset_id: str,
        fields: Any,
        expected_version: Optional[int] = None,
    ) -> BrandAsset:
        changes = self._parse_changes(fields)
        return self._update(
            tenant_id,
            self.key_for(tenant_id, brand_id, asset_id),
            asset_id,
            changes,
            expected_version=expected_version,
        )

    def delete(self, tenant_id: str, brand_id: str, asset_id: str) -> None:
        """
        Remove an asset's object and record.

        A failing object delete is logged and the record is removed anyway; the
        orphaned object is left for storage lifecycle cleanup.
        """
        key = self.key_for(tenant_id, brand_id, asset_id)
        record = self.concurrency.load(self.resource_type, asset_id, key)
        self._discard_object(tenant_id, record.get("objectKey") or object_key(tenant_id, brand_id, asset_id))
        self.concurrency.remove(self.resource_type, asset_id, key)
        log_info(tenant_id, "asset:delete", brandId=brand_id, assetId=asset_id)

    def soft_delete(self, tenant_id: str, brand_id: str, asset_id: str) -> None:
        self._soft_delete(tenant_id, self.key_for(tenant_id, brand_id, asset_id), asset_id)

    def batch_get(self, tenant_id: str, brand_id: str, asset_ids: List[str]) -> List[BrandAsset]:
        keys = [self.key_for(tenant_id, brand_id, asset_id) for asset_id in asset_ids]
        return self._batch_get(tenant_id, keys, list(asset_ids))

    def list_by_brand(
        self,
        tenant_id: str,
        brand_id: str,
        asset_type: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Page[BrandAsset]:
        """A brand's assets, newest first, optionally of one type."""
        return self.query(tenant_id, assets_by_brand(tenant_id, brand_id, asset_type), limit=limit, cursor=cursor)

    def list_by_category(
        self,
        tenant_id: str,
        category: str,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Page[BrandAsset]:
        """Assets of one category across all of the tenant's brands."""
        return self.query(tenant_id, assets_by_category(tenant_id, category), limit=limit, cursor=cursor)

    def object_metadata(self, tenant_id: str, brand_id: str, asset_id: str) -> Optional[Mapping[str, Any]]:
        asset = self.get(tenant_id, brand_id, asset_id)
        return self.objects.get_metadata(asset.objectKey)
