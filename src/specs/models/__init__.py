from __future__ import annotations

from typing import Dict, Type

from pydantic import BaseModel

from .common import EntityBase, RequestBase, ErrorTracking, ErrorInput
from .brand import Brand, CreateBrandRequest, UpdateBrandRequest
from .persona import Persona, CreatePersonaRequest, UpdatePersonaRequest, InferredStyle
from .campaign import Campaign, CreateCampaignRequest, UpdateCampaignRequest, PlanSummary
from .social_post import (
    SocialPost,
    CreateSocialPostRequest,
    UpdateSocialPostRequest,
    UpdatePostStatusRequest,
    UpdatePostContentRequest,
    ApprovePostRequest,
)
from .brand_asset import BrandAsset, CreateBrandAssetRequest, UpdateBrandAssetRequest
from .writing_example import WritingExample, CreateWritingExampleRequest
from .events import CampaignStatusChangedEvent, WorkflowCompletionEvent


# Registry mapping output schema filenames to models for generation
SCHEMA_MODELS: Dict[str, Type[BaseModel]] = {
    "brand.schema.json": Brand,
    "brand.create.request.schema.json": CreateBrandRequest,
    "brand.update.request.schema.json": UpdateBrandRequest,
    "persona.schema.json": Persona,
    "persona.create.request.schema.json": CreatePersonaRequest,
    "persona.update.request.schema.json": UpdatePersonaRequest,
    "campaign.schema.json": Campaign,
    "campaign.create.request.schema.json": CreateCampaignRequest,
    "campaign.update.request.schema.json": UpdateCampaignRequest,
    "social_post.schema.json": SocialPost,
    "social_post.create.request.schema.json": CreateSocialPostRequest,
    "social_post.update.request.schema.json": UpdateSocialPostRequest,
    "social_post.status.request.schema.json": UpdatePostStatusRequest,
    "social_post.approve.request.schema.json": ApprovePostRequest,
    "brand_asset.schema.json": BrandAsset,
    "brand_asset.create.request.schema.json": CreateBrandAssetRequest,
    "brand_asset.update.request.schema.json": UpdateBrandAssetRequest,
    "writing_example.schema.json": WritingExample,
    "writing_example.create.request.schema.json": CreateWritingExampleRequest,
    "campaign.status_changed.event.schema.json": CampaignStatusChangedEvent,
    "workflow.completion.event.schema.json": WorkflowCompletionEvent,
}

__all__ = [
    "EntityBase",
    "RequestBase",
    "ErrorTracking",
    "ErrorInput",
    "Brand",
    "CreateBrandRequest",
    "UpdateBrandRequest",
    "Persona",
    "CreatePersonaRequest",
    "UpdatePersonaRequest",
    "InferredStyle",
    "Campaign",
    "CreateCampaignRequest",
    "UpdateCampaignRequest",
    "PlanSummary",
    "SocialPost",
    "CreateSocialPostRequest",
    "UpdateSocialPostRequest",
    "UpdatePostStatusRequest",
    "UpdatePostContentRequest",
    "ApprovePostRequest",
    "BrandAsset",
    "CreateBrandAssetRequest",
    "UpdateBrandAssetRequest",
    "WritingExample",
    "CreateWritingExampleRequest",
    "CampaignStatusChangedEvent",
    "WorkflowCompletionEvent",
    "SCHEMA_MODELS",
]
