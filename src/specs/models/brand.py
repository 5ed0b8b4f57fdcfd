from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from src.specs.common.enums import Audience, BrandStatus, Platform
from .common import EntityBase, RequestBase


class VoiceGuidelines(BaseModel):
    tone: List[str] = Field(min_length=1, max_length=10)
    style: List[str] = Field(min_length=1, max_length=10)
    messaging: List[str] = Field(min_length=1, max_length=10)


class VisualIdentity(BaseModel):
    colorPalette: List[str] = Field(min_length=1, max_length=10)
    typography: List[str] = Field(min_length=1, max_length=5)
    imagery: List[str] = Field(min_length=1, max_length=10)


class ContentStandards(BaseModel):
    qualityRequirements: List[str] = Field(min_length=1, max_length=10)
    restrictions: List[str] = Field(default_factory=list, max_length=20)
    avoidTopics: Optional[List[str]] = None
    avoidPhrases: Optional[List[str]] = None


class PlatformDefaults(BaseModel):
    defaultAsset: Literal["none", "image", "video"]
    linkPolicy: Literal["allowed", "discouraged", "never"]
    emojiPolicy: Literal["none", "sparing", "allowed"]
    hashtagPolicy: Literal["none", "sparing", "allowed"]
    typicalCadencePerWeek: float = Field(ge=0, le=21)


class PlatformGuidelines(BaseModel):
    enabled: List[Platform] = Field(min_length=1)
    defaults: Dict[Platform, PlatformDefaults] = Field(default_factory=dict)


class AudienceProfile(BaseModel):
    segments: Optional[List[str]] = Field(default=None, max_length=10)
    excluded: Optional[List[str]] = Field(default=None, max_length=10)


class Pillar(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    weight: Optional[float] = Field(default=None, ge=0, le=1)


class ClaimsPolicy(BaseModel):
    noGuarantees: bool
    noPerformanceNumbersUnlessProvided: bool
    requireSourceForStats: bool
    competitorMentionPolicy: Literal["avoid", "neutral_only", "allowed"]


class CtaEntry(BaseModel):
    type: str = Field(min_length=1, max_length=50)
    text: str = Field(min_length=1, max_length=200)
    defaultUrl: Optional[str] = None


class ApprovalPolicy(BaseModel):
    threshold: float = Field(ge=0, le=1)
    mode: Literal["auto_approve", "require_review_below_threshold", "always_review"]


class CreateBrandRequest(RequestBase):
    name: str = Field(min_length=1, max_length=100)
    ethos: str = Field(min_length=1, max_length=1000)
    coreValues: List[str] = Field(min_length=1, max_length=10)
    primaryAudience: Audience
    voiceGuidelines: VoiceGuidelines
    visualIdentity: VisualIdentity
    contentStandards: ContentStandards
    platformGuidelines: Optional[PlatformGuidelines] = None
    audienceProfile: Optional[AudienceProfile] = None
    pillars: Optional[List[Pillar]] = Field(default=None, max_length=10)
    claimsPolicy: Optional[ClaimsPolicy] = None
    ctaLibrary: Optional[List[CtaEntry]] = Field(default=None, max_length=20)
    approvalPolicy: Optional[ApprovalPolicy] = None


class UpdateBrandRequest(RequestBase):
    """Fields a caller may change on a brand. ``status`` moves between active and inactive only."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    ethos: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    coreValues: Optional[List[str]] = Field(default=None, min_length=1, max_length=10)
    primaryAudience: Optional[Audience] = None
    voiceGuidelines: Optional[VoiceGuidelines] = None
    visualIdentity: Optional[VisualIdentity] = None
    contentStandards: Optional[ContentStandards] = None
    platformGuidelines: Optional[PlatformGuidelines] = None
    audienceProfile: Optional[AudienceProfile] = None
    pillars: Optional[List[Pillar]] = Field(default=None, max_length=10)
    claimsPolicy: Optional[ClaimsPolicy] = None
    ctaLibrary: Optional[List[CtaEntry]] = Field(default=None, max_length=20)
    approvalPolicy: Optional[ApprovalPolicy] = None
    status: Optional[Literal["active", "inactive"]] = None


class Brand(EntityBase):
    """Brand voice, visual identity and content policy for a tenant."""

    name: str
    ethos: str
    coreValues: List[str]
    primaryAudience: Audience
    voiceGuidelines: VoiceGuidelines
    visualIdentity: VisualIdentity
    contentStandards: ContentStandards
    platformGuidelines: Optional[PlatformGuidelines] = None
    audienceProfile: Optional[AudienceProfile] = None
    pillars: Optional[List[Pillar]] = None
    claimsPolicy: Optional[ClaimsPolicy] = None
    ctaLibrary: Optional[List[CtaEntry]] = None
    approvalPolicy: Optional[ApprovalPolicy] = None
    status: BrandStatus = BrandStatus.ACTIVE


__all__ = [
    "VoiceGuidelines",
    "VisualIdentity",
    "ContentStandards",
    "PlatformDefaults",
    "PlatformGuidelines",
    "AudienceProfile",
    "Pillar",
    "ClaimsPolicy",
    "CtaEntry",
    "ApprovalPolicy",
    "CreateBrandRequest",
    "UpdateBrandRequest",
    "Brand",
]
