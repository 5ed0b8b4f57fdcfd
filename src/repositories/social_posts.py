from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from src.repositories.base import DEFAULT_PAGE_SIZE, EntityRepository, Page, parse_request
from src.repositories.transform import EntityMapper
from src.shared.keys import (
    ItemKey,
    post_index_keys,
    post_item_key,
    posts_by_campaign,
    posts_by_persona,
    posts_in_partition,
)
from src.shared.logging_utils import info as log_info, error as log_error
from src.shared.state_common import utc_now
from src.specs.common.enums import PostStatus
from src.specs.common.datetime_utils import format_iso_datetime
from src.specs.common.errors import CampaignStoreError, TransitionError, ValidationError
from src.specs.common.ids import new_id
from src.specs.models.social_post import (
    ApprovePostRequest,
    CreateSocialPostRequest,
    PostContent,
    SocialPost,
    UpdatePostContentRequest,
    UpdatePostStatusRequest,
    UpdateSocialPostRequest,
)


class SocialPostRepository(EntityRepository[SocialPost]):
    """Posts live in their campaign's partition and are addressed by (campaignId, postId)."""

    mapper = EntityMapper(
        "SocialPost",
        "postId",
        SocialPost,
        item_key=lambda tenant_id, attrs: post_item_key(tenant_id, attrs.get("campaignId"), attrs.get("postId")),
        index_keys=post_index_keys,
    )
    id_prefix = "post"
    create_model = CreateSocialPostRequest
    update_model = UpdateSocialPostRequest

    def key_for(self, tenant_id: str, campaign_id: str, post_id: str) -> ItemKey:
        return post_item_key(tenant_id, campaign_id, post_id)

    def get(self, tenant_id: str, campaign_id: str, post_id: str) -> SocialPost:
        return self._get(tenant_id, self.key_for(tenant_id, campaign_id, post_id), post_id)

    def _planned(self, campaign_id: str, request: CreateSocialPostRequest, post_id: Optional[str]) -> Dict[str, Any]:
        logical = request.model_dump(mode="json", exclude_none=True)
        logical["scheduledAt"] = format_iso_datetime(request.scheduledAt)
        logical["campaignId"] = campaign_id
        logical["postId"] = post_id or new_id(self.id_prefix)
        logical["status"] = PostStatus.PLANNED.value
        return logical

    def create(self, tenant_id: str, campaign_id: str, data: Any, post_id: Optional[str] = None) -> SocialPost:
        request = parse_request(CreateSocialPostRequest, data, "Invalid SocialPost")
        return self._create(tenant_id, self._planned(campaign_id, request, post_id))

    def create_many(self, tenant_id: str, campaign_id: str, posts: List[Any]) -> List[SocialPost]:
        """
        Create every planned post of a campaign.

        All inputs are validated before the first write. Writes are independent;
        if one fails the error is raised and the posts already written remain.
        """
        requests: List[CreateSocialPostRequest] = []
        for index, data in enumerate(posts):
            try:
                requests.append(parse_request(CreateSocialPostRequest, data, "Invalid SocialPost"))
            except ValidationError as e:
                e.details["index"] = index
                raise

        created: List[SocialPost] = []
        for request in requests:
            try:
                created.append(self._create(tenant_id, self._planned(campaign_id, request, None)))
            except CampaignStoreError as e:
                log_error(
                    tenant_id,
                    "post:create_many:failed",
                    campaignId=campaign_id,
                    totalPosts=len(requests),
                    postsCreatedBeforeError=len(created),
                    code=e.code,
                )
                raise
        log_info(tenant_id, "post:create_many", campaignId=campaign_id, postsCreated=len(created))
        return created

    def update(
        self,
        tenant_id: str,
        campaign_id: str,
        post_id: str,
        fields: Any,
        expected_version: Optional[int] = None,
    ) -> SocialPost:
        request = parse_request(UpdateSocialPostRequest, fields, "Invalid SocialPost update")
        changes = request.model_dump(mode="json", exclude_unset=True)
        if "scheduledAt" in changes:
            if request.scheduledAt is None:
                raise ValidationError("scheduledAt cannot be cleared", details={"field": "scheduledAt"})
            changes["scheduledAt"] = format_iso_datetime(request.scheduledAt)
        return self._update(
            tenant_id,
            self.key_for(tenant_id, campaign_id, post_id),
            post_id,
            changes,
            expected_version=expected_version,
        )

    def update_status(
        self,
        tenant_id: str,
        campaign_id: str,
        post_id: str,
        status: str,
        error: Optional[Mapping[str, Any]] = None,
        content: Optional[Mapping[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> SocialPost:
        """Set a post's status, optionally recording an error and generated content."""
        payload: Dict[str, Any] = {"status": status}
        if error is not None:
            payload["error"] = dict(error)
        if content is not None:
            payload["content"] = dict(content)
        request = parse_request(UpdatePostStatusRequest, payload, "Invalid post status update")

        changes: Dict[str, Any] = {"status": request.status}
        if request.error is not None:
            changes["lastError"] = {
                "code": request.error.code,
                "message": request.error.message,
                "at": utc_now(),
                "retryable": bool(request.error.retryable),
            }
        elif request.status != PostStatus.FAILED.value:
            changes["lastError"] = None
        if request.content is not None:
            changes["content"] = self._stamped(request.content)
        return self._update(
            tenant_id,
            self.key_for(tenant_id, campaign_id, post_id),
            post_id,
            changes,
            expected_version=expected_version,
        )

    def update_content(
        self,
        tenant_id: str,
        campaign_id: str,
        post_id: str,
        content: Any,
        expected_version: Optional[int] = None,
    ) -> SocialPost:
        request = parse_request(UpdatePostContentRequest, {"content": content}, "Invalid post content")
        return self._update(
            tenant_id,
            self.key_for(tenant_id, campaign_id, post_id),
            post_id,
            {"content": self._stamped(request.content)},
            expected_version=expected_version,
        )

    def approve(
        self,
        tenant_id: str,
        campaign_id: str,
        post_id: str,
        decision: Any,
        expected_version: Optional[int] = None,
    ) -> SocialPost:
        """
        Record a reviewer's decision on a post in ``needs_review``.

        Approval completes the post; rejection fails it. A rejection that lists
        requested changes is also recorded as a retryable ``APPROVAL_REJECTED``
        error.
        """
        request = parse_request(ApprovePostRequest, decision, "Invalid post approval")
        now = utc_now()
        changes: Dict[str, Any] = {
            "status": PostStatus.COMPLETED.value if request.approved else PostStatus.FAILED.value,
            "approval": {
                "approved": request.approved,
                "reviewedAt": now,
                "feedback": request.feedback,
                "requestChanges": request.requestChanges,
            },
        }
        if request.approved:
            changes["lastError"] = None
        elif request.requestChanges:
            changes["lastError"] = {
                "code": "APPROVAL_REJECTED",
                "message": f"Post rejected: {', '.join(request.requestChanges)}",
                "at": now,
                "retryable": True,
            }

        def in_review(current: Dict[str, Any]) -> None:
            if current.get("status") != PostStatus.NEEDS_REVIEW.value:
                raise TransitionError(
                    "Post is not in review status",
                    details={"postId": post_id, "currentStatus": current.get("status")},
                )

        post = self._update(
            tenant_id,
            self.key_for(tenant_id, campaign_id, post_id),
            post_id,
            changes,
            expected_version=expected_version,
            guard=in_review,
        )
        log_info(tenant_id, "post:review", campaignId=campaign_id, postId=post_id, approved=request.approved)
        return post

    @staticmethod
    def _stamped(content: PostContent) -> Dict[str, Any]:
        body = content.model_dump(mode="json", exclude_none=True)
        body["generatedAt"] = utc_now()
        return body

    def soft_delete(self, tenant_id: str, campaign_id: str, post_id: str) -> None:
        self._soft_delete(tenant_id, self.key_for(tenant_id, campaign_id, post_id), post_id)

    def batch_get(self, tenant_id: str, campaign_id: str, post_ids: List[str]) -> List[SocialPost]:
        keys = [self.key_for(tenant_id, campaign_id, post_id) for post_id in post_ids]
        return self._batch_get(tenant_id, keys, list(post_ids))

    def list_by_campaign(
        self,
        tenant_id: str,
        campaign_id: str,
        platform: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Page[SocialPost]:
        """Posts of a campaign ordered by platform then schedule."""
        filters = (lambda post: post.status == status) if status else None
        return self.query(
            tenant_id, posts_by_campaign(tenant_id, campaign_id, platform), filters=filters, limit=limit, cursor=cursor
        )

    def list_by_persona(
        self,
        tenant_id: str,
        persona_id: str,
        campaign_id: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Page[SocialPost]:
        """Posts written as a persona, across campaigns, ordered by campaign then schedule."""
        return self.query(tenant_id, posts_by_persona(tenant_id, persona_id, campaign_id), limit=limit, cursor=cursor)

    def list_all_for_campaign(self, tenant_id: str, campaign_id: str) -> List[SocialPost]:
        """Every live post of a campaign, read from the campaign partition."""
        return self.query_all(tenant_id, posts_in_partition(tenant_id, campaign_id))
