"""
Campaign lifecycle state machine.

planning -> generating -> completed | awaiting_review | failed | cancelled
planning -> cancelled
awaiting_review -> completed | cancelled

completed, failed and cancelled are terminal. While a campaign is generating,
its next status is derived from the statuses of its posts.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Union

from src.shared.logging_utils import info as log_info, warning as log_warning
from src.shared.state_common import utc_now
from src.specs.common.enums import CampaignStatus, PostStatus
from src.specs.common.errors import NotFoundError, TransitionError, VersionConflictError
from src.specs.models.campaign import Campaign
from src.specs.models.common import ErrorInput
from src.specs.models.events import CampaignStatusChangedEvent
from src.specs.models.social_post import TERMINAL_POST_STATUSES, SocialPost

if TYPE_CHECKING:
    from src.repositories.campaigns import CampaignRepository
    from src.repositories.social_posts import SocialPostRepository
    from src.shared.queue_client import QueueEventPublisher

PLANNING = CampaignStatus.PLANNING.value
GENERATING = CampaignStatus.GENERATING.value
COMPLETED = CampaignStatus.COMPLETED.value
FAILED = CampaignStatus.FAILED.value
CANCELLED = CampaignStatus.CANCELLED.value
AWAITING_REVIEW = CampaignStatus.AWAITING_REVIEW.value

DERIVE_ATTEMPTS = 3

STATUS_TRANSITIONS: Dict[str, tuple] = {
    PLANNING: (GENERATING, CANCELLED),
    GENERATING: (COMPLETED, AWAITING_REVIEW, FAILED, CANCELLED),
    AWAITING_REVIEW: (COMPLETED, CANCELLED),
    COMPLETED: (),
    FAILED: (),
    CANCELLED: (),
}

# Field paths a caller may update in each status. "brief.description" allows
# only that member of the brief.
_PLANNING_FIELDS = frozenset(
    {
        "name",
        "brief",
        "participants",
        "schedule",
        "cadenceOverrides",
        "messaging",
        "assetOverrides",
        "metadata",
        "status",
    }
)
_GENERATING_FIELDS = frozenset({"name", "brief.description", "metadata", "status"})
_SETTLED_FIELDS = frozenset({"name", "metadata", "status"})

UPDATE_PERMISSIONS: Dict[str, frozenset] = {
    PLANNING: _PLANNING_FIELDS,
    GENERATING: _GENERATING_FIELDS,
    AWAITING_REVIEW: _SETTLED_FIELDS,
    COMPLETED: _SETTLED_FIELDS,
    FAILED: _SETTLED_FIELDS,
    CANCELLED: _SETTLED_FIELDS,
}

PostLike = Union[str, Mapping[str, Any], Any]


def is_valid_transition(current: str, target: str) -> bool:
    if current == target:
        return True
    return target in STATUS_TRANSITIONS.get(current, ())


def validate_transition(
    current: str,
    target: str,
    campaign: Mapping[str, Any],
    manual: bool = True,
) -> None:
    """Raise TransitionError unless ``current -> target`` is allowed for ``campaign``.

    Manual requests may not move a generating campaign straight to completed;
    that edge is taken only from post state.
    """
    details = {"currentStatus": current, "requestedStatus": target}
    if not is_valid_transition(current, target):
        raise TransitionError(f"Invalid status transition from {current} to {target}", details=details)
    if current == target:
        return
    if target == GENERATING and not campaign.get("planSummary"):
        raise TransitionError("Cannot transition to generating status without a plan summary", details=details)
    if manual and current == GENERATING and target == COMPLETED:
        raise TransitionError(
            "Cannot directly transition from generating to completed; completion follows post state",
            details=details,
        )


def _post_status(post: PostLike) -> Optional[str]:
    if isinstance(post, str):
        return post
    if isinstance(post, Mapping):
        return post.get("status")
    return getattr(post, "status", None)


def next_status_from_posts(posts: Iterable[PostLike], current: str) -> str:
    """Status a generating campaign should move to given its posts (or their statuses)."""
    if current != GENERATING:
        return current
    statuses = [_post_status(p) for p in posts]
    if not statuses:
        return current
    if not all(s in TERMINAL_POST_STATUSES for s in statuses):
        return current
    if PostStatus.NEEDS_REVIEW.value in statuses:
        return AWAITING_REVIEW
    return COMPLETED


def update_permissions(status: str) -> frozenset:
    return UPDATE_PERMISSIONS.get(status, frozenset())


def forbidden_fields(status: str, changes: Mapping[str, Any]) -> List[str]:
    """Field paths in ``changes`` that a campaign in ``status`` may not update."""
    allowed = update_permissions(status)
    forbidden: List[str] = []
    for name, value in changes.items():
        if name in allowed:
            continue
        if isinstance(value, Mapping):
            nested = [f"{name}.{child}" for child in value]
            forbidden.extend(path for path in nested if path not in allowed)
            if not nested:
                forbidden.append(name)
        else:
            forbidden.append(name)
    return sorted(forbidden)


def error_tracking(code: str, message: str, retryable: bool = False) -> Dict[str, Any]:
    return {"code": code, "message": message, "at": utc_now(), "retryable": bool(retryable)}


def publish_status_change(
    publisher: Optional["QueueEventPublisher"],
    tenant_id: str,
    campaign_id: str,
    from_status: str,
    to_status: str,
    reason: str,
    error: Optional[Mapping[str, Any]] = None,
) -> bool:
    """Best-effort event emission; failures are logged and swallowed."""
    if publisher is None:
        return False
    try:
        event = CampaignStatusChangedEvent(
            campaignId=campaign_id,
            tenantId=tenant_id,
            fromStatus=from_status,
            toStatus=to_status,
            reason=reason,
            error=ErrorInput.model_validate(dict(error)) if error else None,
            timestamp=utc_now(),
        )
        publisher.publish(event.envelope())
    except Exception as e:
        log_warning(
            tenant_id,
            "campaign:status:event_failed",
            campaignId=campaign_id,
            fromStatus=from_status,
            toStatus=to_status,
            error=str(e),
        )
        return False
    return True


class CampaignStatusMachine:
    """Computes, guards and applies campaign status transitions."""

    def __init__(
        self,
        campaigns: "CampaignRepository",
        posts: "SocialPostRepository",
        publisher: Optional["QueueEventPublisher"] = None,
    ):
        self.campaigns = campaigns
        self.posts = posts
        self.publisher = publisher

    def transition(
        self,
        tenant_id: str,
        campaign_id: str,
        target: str,
        reason: str,
        *,
        error: Optional[Mapping[str, Any]] = None,
        expected_version: Optional[int] = None,
        manual: bool = True,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Campaign:
        """
        Move a campaign to ``target``.

        The write is conditional on the version that was read, so a concurrent
        change raises VersionConflictError. A self transition returns the
        campaign unchanged.
        """
        campaign = self.campaigns.get(tenant_id, campaign_id)
        current = campaign.status
        if expected_version is not None and campaign.version != expected_version:
            raise VersionConflictError(
                "Campaign", campaign_id, expected_version=expected_version, actual_version=campaign.version
            )

        validate_transition(current, target, {**campaign.model_dump(), **(attributes or {})}, manual=manual)
        if current == target:
            return campaign

        changes: Dict[str, Any] = dict(attributes or {})
        changes["status"] = target
        if target == COMPLETED:
            changes["completedAt"] = utc_now()
        if error is not None:
            changes["lastError"] = error_tracking(
                error.get("code") or "CAMPAIGN_FAILED",
                error.get("message") or "Campaign failed",
                bool(error.get("retryable")),
            )
        elif target != FAILED:
            changes["lastError"] = None

        updated = self.campaigns.set_status(
            tenant_id, campaign_id, changes, expected_version=campaign.version
        )
        log_info(
            tenant_id,
            "campaign:status:transition",
            campaignId=campaign_id,
            fromStatus=current,
            toStatus=target,
            reason=reason,
        )
        publish_status_change(self.publisher, tenant_id, campaign_id, current, target, reason, error)
        return updated

    def derive_from_posts(self, tenant_id: str, campaign_id: str, reason: str = "Post status update") -> Campaign:
        """Re-evaluate a generating campaign against its posts and apply the derived status."""
        campaign = self.campaigns.get(tenant_id, campaign_id)
        if campaign.status != GENERATING:
            return campaign
        posts = self.posts.list_all_for_campaign(tenant_id, campaign_id)
        target = next_status_from_posts(posts, campaign.status)
        if target == campaign.status:
            return campaign
        return self.transition(
            tenant_id, campaign_id, target, reason, expected_version=campaign.version, manual=False
        )

    def update_post_status(
        self,
        tenant_id: str,
        campaign_id: str,
        post_id: str,
        status: str,
        error: Optional[Mapping[str, Any]] = None,
        content: Optional[Mapping[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> SocialPost:
        """
        Update one post, then let the owning campaign follow its posts.

        A campaign write that loses a race is re-derived from a fresh read, up
        to ``DERIVE_ATTEMPTS`` times. The post update is never rolled back.
        """
        post = self.posts.update_status(
            tenant_id, campaign_id, post_id, status, error=error, content=content, expected_version=expected_version
        )
        for attempt in range(1, DERIVE_ATTEMPTS + 1):
            try:
                self.derive_from_posts(tenant_id, campaign_id)
                break
            except NotFoundError:
                log_warning(tenant_id, "campaign:status:missing_campaign", campaignId=campaign_id, postId=post_id)
                break
            except VersionConflictError:
                if attempt == DERIVE_ATTEMPTS:
                    # The post write stands; the next post update re-derives.
                    log_warning(
                        tenant_id,
                        "campaign:status:derive_conflict",
                        campaignId=campaign_id,
                        postId=post_id,
                        attempts=attempt,
                    )
        return post

    def mark_failed(self, tenant_id: str, campaign_id: str, error: Mapping[str, Any]) -> Campaign:
        failure = {
            "code": error.get("code") or "CAMPAIGN_PLANNING_FAILED",
            "message": error.get("message") or "Campaign planning workflow failed",
            "retryable": bool(error.get("retryable")),
        }
        return self.transition(tenant_id, campaign_id, FAILED, "Workflow failure", error=failure, manual=False)
