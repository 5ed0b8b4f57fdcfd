from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from src.campaign.status import (
    CANCELLED,
    COMPLETED,
    GENERATING,
    PLANNING,
    forbidden_fields,
    publish_status_change,
    validate_transition,
)
from src.campaign.workflow import PLAN_FIELDS, plan_version
from src.repositories.base import DEFAULT_PAGE_SIZE, Page, RootEntityRepository
from src.repositories.transform import EntityMapper, Record
from src.shared.config import DEFAULT_SOFT_DELETE_TTL_SECONDS
from src.shared.cosmos_client import CosmosTableClient
from src.shared.cursor_codec import CursorCodec
from src.shared.keys import campaign_index_keys, campaign_item_key, campaigns_by_brand, campaigns_by_tenant
from src.shared.queue_client import QueueEventPublisher
from src.shared.state_common import utc_now
from src.specs.common.enums import CampaignStatus
from src.specs.common.errors import TransitionError, ValidationError
from src.specs.models.campaign import Campaign, CreateCampaignRequest, UpdateCampaignRequest


class CampaignRepository(RootEntityRepository[Campaign]):
    mapper = EntityMapper(
        "Campaign",
        "campaignId",
        Campaign,
        item_key=lambda tenant_id, attrs: campaign_item_key(tenant_id, attrs.get("campaignId")),
        index_keys=campaign_index_keys,
    )
    id_prefix = "campaign"
    create_model = CreateCampaignRequest
    update_model = UpdateCampaignRequest

    def __init__(
        self,
        table: CosmosTableClient,
        cursor_codec: CursorCodec,
        soft_delete_ttl_seconds: int = DEFAULT_SOFT_DELETE_TTL_SECONDS,
        publisher: Optional[QueueEventPublisher] = None,
    ):
        super().__init__(table, cursor_codec, soft_delete_ttl_seconds)
        self.publisher = publisher

    def initial_attributes(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return {"status": PLANNING, "planVersion": plan_version(request)}

    def archive(self, record: Record, now: str) -> Record:
        record["status"] = CANCELLED
        record["deletedAt"] = now
        return record

    def merge(self, current: Record, changes: Dict[str, Any]) -> Record:
        merged = dict(current)
        for name, value in changes.items():
            if name == "brief" and isinstance(value, Mapping):
                merged["brief"] = {**(current.get("brief") or {}), **value}
            else:
                merged[name] = value

        status = current.get("status")
        if changes.get("status") == COMPLETED and status != COMPLETED:
            merged["completedAt"] = utc_now()
        if status == PLANNING and any(name in PLAN_FIELDS for name in changes):
            merged["planVersion"] = plan_version(merged)
        return merged

    def update(
        self,
        tenant_id: str,
        entity_id: str,
        fields: Any,
        expected_version: Optional[int] = None,
    ) -> Campaign:
        """
        Apply a caller update, limited to the fields the current status allows.

        A status change in the update must be a valid manual transition; the
        resulting event is published after the write.
        """
        changes = self._parse_changes(fields)
        observed: Dict[str, str] = {}

        def guard(current: Record) -> None:
            status = current.get("status")
            forbidden = forbidden_fields(status, changes)
            if forbidden:
                raise TransitionError(
                    f"Cannot update {', '.join(forbidden)} while campaign is {status}",
                    details={"currentStatus": status, "forbiddenFields": forbidden},
                )
            target = changes.get("status")
            if target is not None:
                validate_transition(status, target, current, manual=True)
            observed["status"] = status

        campaign = self._update(
            tenant_id,
            self.key_for(tenant_id, entity_id),
            entity_id,
            changes,
            expected_version=expected_version,
            guard=guard,
        )
        previous = observed.get("status")
        if previous and campaign.status != previous:
            publish_status_change(
                self.publisher, tenant_id, entity_id, previous, campaign.status, "Manual status update"
            )
        return campaign

    def set_status(
        self,
        tenant_id: str,
        campaign_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Campaign:
        """Status-machine write: no permission table, guarded by ``expected_version``."""
        return self._update(
            tenant_id,
            self.key_for(tenant_id, campaign_id),
            campaign_id,
            dict(changes),
            expected_version=expected_version,
        )

    def soft_delete(self, tenant_id: str, entity_id: str) -> None:
        """Cancel and archive a campaign; refused while content is being generated."""
        def guard(current: Record) -> None:
            if current.get("status") == GENERATING:
                raise TransitionError(
                    "Cannot delete campaign while content is being generated",
                    details={"currentStatus": GENERATING},
                )

        self._soft_delete(tenant_id, self.key_for(tenant_id, entity_id), entity_id, guard=guard)

    def list(
        self,
        tenant_id: str,
        status: Optional[str] = None,
        brand_id: Optional[str] = None,
        persona_id: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Page[Campaign]:
        """Campaigns newest first; by brand through GSI2, otherwise across the tenant."""
        if status is not None and status not in [s.value for s in CampaignStatus]:
            raise ValidationError("Invalid campaign status filter", details={"status": status})

        if brand_id:
            condition = campaigns_by_brand(tenant_id, brand_id, status)
        else:
            condition = campaigns_by_tenant(tenant_id)

        def matches(campaign: Campaign) -> bool:
            if status is not None and campaign.status != status:
                return False
            if persona_id is not None and persona_id not in campaign.participants.personaIds:
                return False
            return True

        filters = matches if (status is not None or persona_id is not None) else None
        return self.query(tenant_id, condition, filters=filters, limit=limit, cursor=cursor)
