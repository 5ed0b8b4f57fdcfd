from __future__ import annotations

import copy
import math
from typing import Any, Dict, Mapping, Optional, Union

from src.repositories.base import DEFAULT_PAGE_SIZE, Page, RootEntityRepository
from src.repositories.transform import EntityMapper, Record
from src.shared.keys import brand_index_keys, brand_item_key, brands_by_status, brands_by_tenant
from src.specs.common.enums import BrandStatus, Platform
from src.specs.common.errors import ValidationError
from src.specs.models.brand import Brand, CreateBrandRequest, UpdateBrandRequest

BrandLike = Union[Brand, Mapping[str, Any], None]

_DEFAULT_BRAND_CONFIGURATION: Dict[str, Any] = {
    "brandId": None,
    "platformGuidelines": {
        "enabled": ["twitter", "linkedin", "instagram", "facebook"],
        "defaults": {
            "twitter": {
                "defaultAsset": "none",
                "linkPolicy": "allowed",
                "emojiPolicy": "sparing",
                "hashtagPolicy": "allowed",
                "typicalCadencePerWeek": 5,
            },
            "linkedin": {
                "defaultAsset": "none",
                "linkPolicy": "allowed",
                "emojiPolicy": "none",
                "hashtagPolicy": "sparing",
                "typicalCadencePerWeek": 3,
            },
            "instagram": {
                "defaultAsset": "image",
                "linkPolicy": "discouraged",
                "emojiPolicy": "allowed",
                "hashtagPolicy": "allowed",
                "typicalCadencePerWeek": 7,
            },
            "facebook": {
                "defaultAsset": "none",
                "linkPolicy": "allowed",
                "emojiPolicy": "sparing",
                "hashtagPolicy": "sparing",
                "typicalCadencePerWeek": 4,
            },
        },
    },
    "audienceProfile": {"segments": None, "excluded": None},
    "claimsPolicy": {
        "noGuarantees": True,
        "noPerformanceNumbersUnlessProvided": True,
        "requireSourceForStats": True,
        "competitorMentionPolicy": "avoid",
    },
    "ctaLibrary": [
        {"type": "learn_more", "text": "Learn more", "defaultUrl": None},
        {"type": "get_started", "text": "Get started", "defaultUrl": None},
    ],
    "approvalPolicy": {"threshold": 0.7, "mode": "auto_approve"},
    "pillars": [
        {"name": "Brand Awareness", "weight": 0.4},
        {"name": "Education", "weight": 0.3},
        {"name": "Engagement", "weight": 0.3},
    ],
}

DEFAULT_CADENCE_PER_WEEK = 3
DEFAULT_MAX_POSTS_PER_DAY = 2


def _as_dict(brand: BrandLike) -> Dict[str, Any]:
    if brand is None:
        return {}
    if isinstance(brand, Brand):
        return brand.model_dump(mode="json")
    return dict(brand)


def _platform_defaults(brand: BrandLike) -> Dict[str, Dict[str, Any]]:
    guidelines = _as_dict(brand).get("platformGuidelines") or {}
    return guidelines.get("defaults") or {}


def _matches_search(brand: Brand, search: str) -> bool:
    needle = search.lower()
    return needle in brand.name.lower() or needle in brand.ethos.lower()


class BrandRepository(RootEntityRepository[Brand]):
    mapper = EntityMapper(
        "Brand",
        "brandId",
        Brand,
        item_key=lambda tenant_id, attrs: brand_item_key(tenant_id, attrs.get("brandId")),
        index_keys=brand_index_keys,
    )
    id_prefix = "brand"
    create_model = CreateBrandRequest
    update_model = UpdateBrandRequest

    def initial_attributes(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return {"status": BrandStatus.ACTIVE.value}

    def is_live(self, record: Mapping[str, Any]) -> bool:
        return record.get("status") != BrandStatus.ARCHIVED.value

    def archive(self, record: Record, now: str) -> Record:
        record["status"] = BrandStatus.ARCHIVED.value
        return record

    def list(
        self,
        tenant_id: str,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Page[Brand]:
        """Brands of a tenant, optionally narrowed to one status and a name/ethos search."""
        if status is not None:
            allowed = [s.value for s in BrandStatus]
            if status not in allowed:
                raise ValidationError("Invalid brand status filter", details={"status": status, "allowed": allowed})
            condition = brands_by_status(tenant_id, status)
        else:
            condition = brands_by_tenant(tenant_id)

        filters = (lambda brand: _matches_search(brand, search)) if search else None
        return self.query(
            tenant_id,
            condition,
            filters=filters,
            limit=limit,
            cursor=cursor,
            include_deleted=status == BrandStatus.ARCHIVED.value,
        )

    @staticmethod
    def default_configuration() -> Dict[str, Any]:
        """Brand settings applied to campaigns that are not tied to a brand."""
        return copy.deepcopy(_DEFAULT_BRAND_CONFIGURATION)

    @staticmethod
    def cadence_defaults(brand: BrandLike) -> Dict[str, Any]:
        cadences = [
            (defaults or {}).get("typicalCadencePerWeek") or DEFAULT_CADENCE_PER_WEEK
            for defaults in _platform_defaults(brand).values()
        ]
        average = (sum(cadences) / max(len(cadences), 1)) or DEFAULT_CADENCE_PER_WEEK
        return {
            "averageCadence": average,
            "minPostsPerWeek": max(1, math.floor(average * 0.7)),
            "maxPostsPerWeek": math.ceil(average * 1.3),
            "maxPostsPerDay": DEFAULT_MAX_POSTS_PER_DAY,
        }

    @staticmethod
    def asset_requirements(brand: BrandLike) -> Dict[str, bool]:
        """Whether each platform's posts need a visual by default."""
        defaults = _platform_defaults(brand)

        def default_asset(platform: Platform) -> Optional[str]:
            return (defaults.get(platform.value) or {}).get("defaultAsset")

        return {
            Platform.TWITTER.value: default_asset(Platform.TWITTER) == "image",
            Platform.LINKEDIN.value: default_asset(Platform.LINKEDIN) == "image",
            Platform.INSTAGRAM.value: default_asset(Platform.INSTAGRAM) != "none",
            Platform.FACEBOOK.value: default_asset(Platform.FACEBOOK) == "image",
        }

    @staticmethod
    def content_restrictions(brand: BrandLike) -> Dict[str, Any]:
        standards = _as_dict(brand).get("contentStandards") or {}
        return {
            "avoidTopics": list(standards.get("avoidTopics") or []),
            "avoidPhrases": list(standards.get("avoidPhrases") or []),
        }
