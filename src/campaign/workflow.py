"""
Campaign workflow helpers: plan bookkeeping and workflow-completion handling.
"""
from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Union

from src.campaign.status import FAILED, GENERATING, PLANNING, next_status_from_posts
from src.repositories.base import parse_request
from src.shared.logging_utils import info as log_info, error as log_error
from src.specs.common.errors import CampaignStoreError, ValidationError
from src.specs.models.campaign import Campaign
from src.specs.models.events import WorkflowCompletionEvent

if TYPE_CHECKING:
    from src.campaign.status import CampaignStatusMachine
    from src.repositories.brands import BrandRepository
    from src.repositories.campaigns import CampaignRepository
    from src.repositories.personas import PersonaRepository
    from src.specs.models.social_post import SocialPost

CONTENT_GENERATION = "content-generation"
CAMPAIGN_PLANNING = "campaign-planning"

PLAN_FIELDS = ("brief", "participants", "schedule", "cadenceOverrides", "messaging", "assetOverrides")

PlanInput = Union[Campaign, Mapping[str, Any]]


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def plan_summary(posts: Iterable[Any]) -> Dict[str, Any]:
    """Post counts overall, per platform and per persona."""
    per_platform: Dict[str, int] = {}
    per_persona: Dict[str, int] = {}
    total = 0
    for post in posts:
        total += 1
        platform = _field(post, "platform")
        persona_id = _field(post, "personaId")
        if platform:
            per_platform[platform] = per_platform.get(platform, 0) + 1
        if persona_id:
            per_persona[persona_id] = per_persona.get(persona_id, 0) + 1
    return {"totalPosts": total, "postsPerPlatform": per_platform, "postsPerPersona": per_persona}


def _without_none(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _without_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_without_none(v) for v in value]
    return value


def plan_version(campaign: PlanInput, context: Optional[Mapping[str, Any]] = None) -> str:
    """Short stable hash of everything that shapes a campaign's plan.

    Unset and null members hash the same, so a stored record and its DTO agree.
    """
    data = campaign.model_dump(mode="json") if isinstance(campaign, Campaign) else dict(campaign)
    plan = {name: _without_none(data.get(name)) for name in PLAN_FIELDS}
    if context:
        plan["context"] = dict(context)
    raw = json.dumps(plan, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


def load_full_configuration(
    tenant_id: str,
    campaign_id: str,
    campaigns: "CampaignRepository",
    brands: "BrandRepository",
    personas: "PersonaRepository",
) -> Dict[str, Any]:
    """Campaign plus its brand (or the default brand configuration) and every participant persona."""
    campaign = campaigns.get(tenant_id, campaign_id)
    if campaign.brandId:
        brand_config = brands.get(tenant_id, campaign.brandId).model_dump(mode="json", exclude_none=True)
    else:
        brand_config = brands.default_configuration()
    persona_configs = personas.batch_get(tenant_id, campaign.participants.personaIds)
    return {
        "campaign": campaign,
        "brandConfig": brand_config,
        "personaConfigs": persona_configs,
    }


def apply_plan(
    machine: "CampaignStatusMachine",
    tenant_id: str,
    campaign_id: str,
    planned_posts: List[Mapping[str, Any]],
) -> Campaign:
    """Persist a generated plan and move the campaign from planning to generating."""
    campaign = machine.campaigns.get(tenant_id, campaign_id)
    if campaign.status != PLANNING:
        raise ValidationError(
            "Plans can only be applied to campaigns in planning",
            details={"currentStatus": campaign.status},
        )
    posts = machine.posts.create_many(tenant_id, campaign_id, planned_posts)
    attributes = {
        "planSummary": plan_summary(posts),
        "planVersion": plan_version(campaign),
    }
    return machine.transition(
        tenant_id,
        campaign_id,
        GENERATING,
        "Campaign plan created",
        expected_version=campaign.version,
        manual=False,
        attributes=attributes,
    )


def apply_workflow_completion(
    machine: "CampaignStatusMachine",
    event: Union[WorkflowCompletionEvent, Mapping[str, Any]],
) -> Optional[Campaign]:
    """
    Apply the outcome of a planning or content-generation workflow.

    Only generating campaigns react; anything else is left untouched and None
    is returned. The write is guarded by the version that was read.
    """
    event = parse_request(WorkflowCompletionEvent, event, "Invalid workflow completion event")

    tenant_id = event.tenantId
    campaign = machine.campaigns.get(tenant_id, event.campaignId)
    if campaign.status != GENERATING:
        log_info(
            tenant_id,
            "campaign:workflow:skipped",
            campaignId=event.campaignId,
            currentStatus=campaign.status,
            workflowType=event.workflowType,
        )
        return None

    error: Optional[Dict[str, Any]] = None
    attributes: Dict[str, Any] = {}
    target: Optional[str] = None

    if event.workflowType == CONTENT_GENERATION:
        if event.success:
            posts: List["SocialPost"] = machine.posts.list_all_for_campaign(tenant_id, event.campaignId)
            target = next_status_from_posts(posts, campaign.status)
        else:
            target = FAILED
            error = _failure(event, "CONTENT_GENERATION_FAILED", "Content generation workflow failed")
    elif event.workflowType == CAMPAIGN_PLANNING:
        if event.success:
            target = GENERATING
        else:
            target = FAILED
            error = _failure(event, "CAMPAIGN_PLANNING_FAILED", "Campaign planning workflow failed")

    if event.postResults is not None:
        attributes["planSummary"] = plan_summary(event.postResults)

    if target is None or target == campaign.status:
        log_info(tenant_id, "campaign:workflow:no_change", campaignId=event.campaignId, workflowType=event.workflowType)
        return None

    try:
        return machine.transition(
            tenant_id,
            event.campaignId,
            target,
            f"Workflow completion: {event.workflowType}",
            error=error,
            expected_version=campaign.version,
            manual=False,
            attributes=attributes,
        )
    except CampaignStoreError as e:
        log_error(tenant_id, "campaign:workflow:apply_failed", campaignId=event.campaignId, code=e.code)
        raise


def _failure(event: WorkflowCompletionEvent, code: str, message: str) -> Dict[str, Any]:
    error = event.error
    return {
        "code": (error.code if error else None) or code,
        "message": (error.message if error else None) or message,
        "retryable": bool(error.retryable) if error else False,
    }
