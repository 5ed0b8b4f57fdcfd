"""
Tests for entities stored inside another entity's partition: social posts,
brand assets and writing examples.
"""

import pytest

from src.repositories.brand_assets import object_key
from src.specs.common.errors import (
    AlreadyExistsError,
    InternalStoreError,
    NotFoundError,
    ObjectStoreError,
    PartialNotFoundError,
    TransitionError,
    ValidationError,
    VersionConflictError,
)
from tests.factories import TENANT, asset_metadata, campaign_payload, example_payload, post_payload

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class TestSocialPostRepository:
    """Posts are keyed by (campaignId, postId) and indexed by campaign and persona."""

    def test_create_is_planned(self, posts, campaign, persona):
        post = posts.create(TENANT, campaign.id, post_payload(persona.id))
        assert post.status == "planned"
        assert post.campaignId == campaign.id
        assert post.scheduledAt == "2026-03-02T09:00:00.000000Z"

    def test_create_many_validates_before_writing(self, posts, container, campaign, persona):
        before = len(container.items)
        bad = post_payload(persona.id, intent="shout")
        with pytest.raises(ValidationError) as exc_info:
            posts.create_many(TENANT, campaign.id, [post_payload(persona.id), bad])
        assert exc_info.value.details["index"] == 1
        assert len(container.items) == before

    def test_create_many_stops_at_first_failed_write(self, posts, container, campaign, persona):
        container.fail_next("create_item", 500)
        with pytest.raises(InternalStoreError):
            posts.create_many(TENANT, campaign.id, [post_payload(persona.id)] * 2)

    def test_update_status_records_error_and_content(self, posts, campaign, persona):
        post = posts.create(TENANT, campaign.id, post_payload(persona.id))
        failed = posts.update_status(
            TENANT, campaign.id, post.id, "failed", error={"code": "RATE_LIMIT", "message": "slow down"}
        )
        assert failed.lastError.code == "RATE_LIMIT"
        assert failed.lastError.retryable is False

        done = posts.update_status(TENANT, campaign.id, post.id, "completed", content={"text": "Shipped."})
        assert done.content.text == "Shipped."
        assert done.content.generatedAt is not None
        assert done.version == 3

    def test_update_status_rejects_unknown_status(self, posts, campaign, persona):
        post = posts.create(TENANT, campaign.id, post_payload(persona.id))
        with pytest.raises(ValidationError):
            posts.update_status(TENANT, campaign.id, post.id, "published")

    def test_recovered_post_drops_its_error(self, posts, campaign, persona):
        post = posts.create(TENANT, campaign.id, post_payload(persona.id))
        posts.update_status(TENANT, campaign.id, post.id, "failed", error={"code": "X", "message": "boom"})

        still_failed = posts.update_status(TENANT, campaign.id, post.id, "failed")
        assert still_failed.lastError.code == "X"

        recovered = posts.update_status(TENANT, campaign.id, post.id, "completed", content={"text": "Second try."})
        assert recovered.lastError is None

    def test_schedule_is_stored_in_utc(self, posts, campaign, persona):
        posts.create(TENANT, campaign.id, post_payload(persona.id, scheduledAt="2026-03-02T06:00:00Z"))
        posts.create(TENANT, campaign.id, post_payload(persona.id, scheduledAt="2026-03-02T10:00:00+05:00"))

        listed = posts.list_by_campaign(TENANT, campaign.id)
        assert [p.scheduledAt for p in listed.items] == [
            "2026-03-02T05:00:00.000000Z",
            "2026-03-02T06:00:00.000000Z",
        ]

    def test_reschedule_is_stored_in_utc(self, posts, container, campaign, persona):
        post = posts.create(TENANT, campaign.id, post_payload(persona.id))
        moved = posts.update(TENANT, campaign.id, post.id, {"scheduledAt": "2026-03-09T09:30:00-02:00"})
        assert moved.scheduledAt == "2026-03-09T11:30:00.000000Z"
        raw = container.raw(f"{TENANT}#{campaign.id}", f"POST|{post.id}")
        assert raw["GSI1SK"] == "POST#linkedin#2026-03-09T11:30:00.000000Z"

    def test_schedule_cannot_be_cleared(self, posts, campaign, persona):
        post = posts.create(TENANT, campaign.id, post_payload(persona.id))
        with pytest.raises(ValidationError):
            posts.update(TENANT, campaign.id, post.id, {"scheduledAt": None})

    def test_reschedule_moves_index_position(self, posts, container, campaign, persona):
        post = posts.create(TENANT, campaign.id, post_payload(persona.id))
        posts.update(TENANT, campaign.id, post.id, {"scheduledAt": "2026-03-09T09:00:00Z"})
        raw = container.raw(f"{TENANT}#{campaign.id}", f"POST|{post.id}")
        assert raw["GSI1SK"] == "POST#linkedin#2026-03-09T09:00:00.000000Z"
        assert raw["GSI2SK"] == f"POST#{campaign.id}#2026-03-09T09:00:00.000000Z"

    def test_update_cannot_move_post_between_campaigns(self, posts, campaign, persona):
        post = posts.create(TENANT, campaign.id, post_payload(persona.id))
        with pytest.raises(ValidationError):
            posts.update(TENANT, campaign.id, post.id, {"campaignId": "campaign_other"})

    def test_list_by_campaign_orders_by_platform_then_time(self, posts, campaign, persona):
        posts.create(TENANT, campaign.id, post_payload(persona.id, platform="twitter", scheduledAt="2026-03-01T09:00:00Z"))
        posts.create(TENANT, campaign.id, post_payload(persona.id, scheduledAt="2026-03-05T09:00:00Z"))
        posts.create(TENANT, campaign.id, post_payload(persona.id, scheduledAt="2026-03-03T09:00:00Z"))

        listed = posts.list_by_campaign(TENANT, campaign.id)
        assert [(p.platform, p.scheduledAt) for p in listed.items] == [
            ("linkedin", "2026-03-03T09:00:00.000000Z"),
            ("linkedin", "2026-03-05T09:00:00.000000Z"),
            ("twitter", "2026-03-01T09:00:00.000000Z"),
        ]
        twitter = posts.list_by_campaign(TENANT, campaign.id, platform="twitter")
        assert [p.platform for p in twitter.items] == ["twitter"]

    def test_list_by_campaign_filters_status(self, posts, campaign, persona):
        first = posts.create(TENANT, campaign.id, post_payload(persona.id))
        posts.create(TENANT, campaign.id, post_payload(persona.id))
        posts.update_status(TENANT, campaign.id, first.id, "completed")
        assert [p.id for p in posts.list_by_campaign(TENANT, campaign.id, status="completed").items] == [first.id]

    def test_list_by_persona_spans_campaigns(self, posts, campaigns, campaign, persona):
        second = campaigns.create(TENANT, campaign_payload([persona.id], name="Summer"))
        posts.create(TENANT, campaign.id, post_payload(persona.id))
        posts.create(TENANT, second.id, post_payload(persona.id))

        assert len(posts.list_by_persona(TENANT, persona.id).items) == 2
        scoped = posts.list_by_persona(TENANT, persona.id, campaign_id=second.id)
        assert [p.campaignId for p in scoped.items] == [second.id]

    def test_soft_deleted_posts_disappear(self, posts, campaign, persona):
        post = posts.create(TENANT, campaign.id, post_payload(persona.id))
        posts.soft_delete(TENANT, campaign.id, post.id)
        with pytest.raises(NotFoundError):
            posts.get(TENANT, campaign.id, post.id)
        assert posts.list_all_for_campaign(TENANT, campaign.id) == []
        with pytest.raises(PartialNotFoundError):
            posts.batch_get(TENANT, campaign.id, [post.id])


class TestPostReview:
    """Reviewer decisions settle posts waiting in needs_review."""

    @pytest.fixture
    def in_review(self, posts, campaign, persona):
        post = posts.create(TENANT, campaign.id, post_payload(persona.id))
        return posts.update_status(TENANT, campaign.id, post.id, "needs_review")

    def test_approval_completes_post(self, posts, campaign, in_review):
        approved = posts.approve(TENANT, campaign.id, in_review.id, {"approved": True, "feedback": "Ship it"})
        assert approved.status == "completed"
        assert approved.approval.approved is True
        assert approved.approval.feedback == "Ship it"
        assert approved.approval.reviewedAt is not None
        assert approved.lastError is None
        assert approved.version == in_review.version + 1

    def test_rejection_with_changes_records_error(self, posts, campaign, in_review):
        rejected = posts.approve(
            TENANT,
            campaign.id,
            in_review.id,
            {"approved": False, "requestChanges": ["shorter hook", "drop the emoji"]},
        )
        assert rejected.status == "failed"
        assert rejected.approval.requestChanges == ["shorter hook", "drop the emoji"]
        assert rejected.lastError.code == "APPROVAL_REJECTED"
        assert rejected.lastError.message == "Post rejected: shorter hook, drop the emoji"
        assert rejected.lastError.retryable is True

    def test_plain_rejection_has_no_error(self, posts, campaign, in_review):
        rejected = posts.approve(TENANT, campaign.id, in_review.id, {"approved": False})
        assert rejected.status == "failed"
        assert rejected.lastError is None

    def test_only_posts_in_review_can_be_decided(self, posts, campaign, persona):
        post = posts.create(TENANT, campaign.id, post_payload(persona.id))
        with pytest.raises(TransitionError) as exc_info:
            posts.approve(TENANT, campaign.id, post.id, {"approved": True})
        assert exc_info.value.details["currentStatus"] == "planned"
        assert posts.get(TENANT, campaign.id, post.id).version == post.version

    def test_decision_is_version_guarded(self, posts, campaign, in_review):
        with pytest.raises(VersionConflictError):
            posts.approve(
                TENANT, campaign.id, in_review.id, {"approved": True}, expected_version=in_review.version - 1
            )

    def test_decision_rejects_unknown_fields(self, posts, campaign, in_review):
        with pytest.raises(ValidationError):
            posts.approve(TENANT, campaign.id, in_review.id, {"approved": True, "score": 5})

    def test_missing_post(self, posts, campaign):
        with pytest.raises(NotFoundError):
            posts.approve(TENANT, campaign.id, "post_missing", {"approved": True})


class TestBrandAssetRepository:
    """Asset records paired with objects in the object store."""

    def test_upload_stores_object_and_record(self, assets, objects, brand):
        asset = assets.upload(TENANT, brand.id, asset_metadata(), PNG)
        key = object_key(TENANT, brand.id, asset.id)
        assert asset.objectKey == key
        assert asset.container == objects.container_name
        assert asset.fileSize == len(PNG)
        assert objects.objects[key]["metadata"]["assetId"] == asset.id
        assert assets.object_metadata(TENANT, brand.id, asset.id)["size"] == len(PNG)

    def test_upload_requires_existing_brand(self, assets, objects):
        with pytest.raises(NotFoundError):
            assets.upload(TENANT, "brand_missing", asset_metadata(), PNG)
        assert objects.objects == {}

    def test_upload_requires_bytes(self, assets, brand):
        with pytest.raises(ValidationError):
            assets.upload(TENANT, brand.id, asset_metadata(), b"")

    def test_upload_rejects_invalid_metadata(self, assets, objects, brand):
        with pytest.raises(ValidationError):
            assets.upload(TENANT, brand.id, asset_metadata(type="spreadsheet"), PNG)
        assert objects.objects == {}

    def test_failed_record_write_removes_object(self, assets, objects, container, brand):
        container.fail_next("create_item", 500)
        with pytest.raises(InternalStoreError):
            assets.upload(TENANT, brand.id, asset_metadata(), PNG)
        assert objects.objects == {}

    def test_store_failure_during_upload_is_typed(self, assets, objects, container, brand):
        container.fail_next("read_item", 403)
        with pytest.raises(InternalStoreError) as exc_info:
            assets.upload(TENANT, brand.id, asset_metadata(), PNG, asset_id="asset_logo")
        assert exc_info.value.details["statusCode"] == 403
        assert objects.objects == {}

    def test_failed_object_upload_writes_no_record(self, assets, objects, brand):
        objects.fail_puts = True
        with pytest.raises(ObjectStoreError):
            assets.upload(TENANT, brand.id, asset_metadata(), PNG)
        assert assets.list_by_brand(TENANT, brand.id).items == []

    def test_reupload_under_existing_id_keeps_original(self, assets, objects, brand):
        asset = assets.upload(TENANT, brand.id, asset_metadata(), PNG, asset_id="asset_logo")
        with pytest.raises(AlreadyExistsError):
            assets.upload(TENANT, brand.id, asset_metadata(), b"other", asset_id="asset_logo")
        assert objects.objects[asset.objectKey]["data"] == PNG

    def test_delete_removes_object_and_record(self, assets, objects, brand):
        asset = assets.upload(TENANT, brand.id, asset_metadata(), PNG)
        assets.delete(TENANT, brand.id, asset.id)
        assert objects.objects == {}
        with pytest.raises(NotFoundError):
            assets.get(TENANT, brand.id, asset.id)

    def test_delete_survives_object_store_failure(self, assets, objects, brand):
        asset = assets.upload(TENANT, brand.id, asset_metadata(), PNG)
        objects.fail_deletes = True
        assets.delete(TENANT, brand.id, asset.id)
        with pytest.raises(NotFoundError):
            assets.get(TENANT, brand.id, asset.id)

    def test_update_metadata(self, assets, brand):
        asset = assets.upload(TENANT, brand.id, asset_metadata(), PNG)
        updated = assets.update(TENANT, brand.id, asset.id, {"tags": ["refreshed"], "category": "campaign"})
        assert updated.tags == ["refreshed"]
        assert updated.category == "campaign"
        with pytest.raises(ValidationError):
            assets.update(TENANT, brand.id, asset.id, {"fileSize": 1})

    def test_list_by_brand_and_category(self, assets, brand):
        logo = assets.upload(TENANT, brand.id, asset_metadata(), PNG)
        template = assets.upload(TENANT, brand.id, asset_metadata(name="Deck", type="template", category="sales"), PNG)

        assert {a.id for a in assets.list_by_brand(TENANT, brand.id).items} == {logo.id, template.id}
        assert [a.id for a in assets.list_by_brand(TENANT, brand.id, asset_type="template").items] == [template.id]
        assert [a.id for a in assets.list_by_category(TENANT, "branding").items] == [logo.id]

    def test_soft_deleted_assets_are_hidden(self, assets, brand):
        asset = assets.upload(TENANT, brand.id, asset_metadata(), PNG)
        assets.soft_delete(TENANT, brand.id, asset.id)
        assert assets.list_by_brand(TENANT, brand.id).items == []


class TestWritingExampleRepository:
    """Examples live in their persona's partition and lose their text when deleted."""

    def test_create_and_get(self, examples, persona):
        example = examples.create(TENANT, persona.id, example_payload(notes="From the launch thread"))
        fetched = examples.get(TENANT, persona.id, example.id)
        assert fetched.text == example.text
        assert fetched.notes == "From the launch thread"
        assert fetched.analyzedAt is None

    def test_create_rejects_short_text(self, examples, persona):
        with pytest.raises(ValidationError):
            examples.create(TENANT, persona.id, example_payload(text="too short"))

    def test_soft_delete_drops_content(self, examples, container, persona):
        example = examples.create(TENANT, persona.id, example_payload(notes="n"))
        examples.soft_delete(TENANT, persona.id, example.id)

        raw = container.raw(f"{TENANT}#{persona.id}", f"EXAMPLE|{example.id}")
        for attr in ("text", "platform", "intent", "notes"):
            assert attr not in raw
        assert raw["deletedAt"]
        assert raw["ttl"] > 0
        with pytest.raises(NotFoundError):
            examples.get(TENANT, persona.id, example.id)

    def test_list_newest_first_and_by_platform(self, examples, persona):
        first = examples.create(TENANT, persona.id, example_payload())
        second = examples.create(TENANT, persona.id, example_payload(platform="twitter"))

        listed = examples.list_by_persona(TENANT, persona.id)
        assert {e.id for e in listed.items} == {first.id, second.id}
        assert listed.items[0].createdAt >= listed.items[1].createdAt
        assert [e.id for e in examples.list_by_persona(TENANT, persona.id, platform="twitter").items] == [second.id]

    def test_mark_analyzed(self, examples, persona):
        example = examples.create(TENANT, persona.id, example_payload())
        analysed = examples.mark_analyzed(TENANT, persona.id, example.id, expected_version=1)
        assert analysed.analyzedAt is not None
        assert analysed.version == 2

    def test_ready_for_analysis(self, examples, persona):
        for _ in range(4):
            examples.create(TENANT, persona.id, example_payload())
        assert examples.ready_for_analysis(TENANT, persona.id) is False
        examples.create(TENANT, persona.id, example_payload())
        assert examples.ready_for_analysis(TENANT, persona.id) is True
