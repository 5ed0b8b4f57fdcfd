"""
Unit tests for the key scheme and cursor codec.
"""

import pytest

from src.shared.cursor_codec import CursorCodec
from src.shared.keys import (
    IndexName,
    ItemKey,
    assets_by_category,
    brand_index_keys,
    brand_item_key,
    campaigns_by_brand,
    example_item_key,
    persona_index_keys,
    personas_by_company,
    post_index_keys,
    post_item_key,
    posts_in_partition,
)
from src.specs.common.errors import InvalidCursorError, ValidationError


class TestItemKey:
    """Primary keys: {tenant}#{scope} partition, literal or {TYPE}#{id} sort key."""

    def test_singleton_key(self):
        key = brand_item_key("t1", "brand_1")
        assert key.pk == "t1#brand_1"
        assert key.sk == "metadata"
        assert key.local_id is None

    def test_member_key(self):
        key = post_item_key("t1", "campaign_1", "post_9")
        assert key.pk == "t1#campaign_1"
        assert key.sk == "POST#post_9"
        assert key.local_id == "post_9"
        assert key.tenant_id == "t1"
        assert key.scope_id == "campaign_1"

    def test_document_id_has_no_separator(self):
        key = example_item_key("t1", "persona_1", "example_1")
        assert key.document_id == "EXAMPLE|example_1"
        assert key.to_attributes() == {"pk": "t1#persona_1", "sk": "EXAMPLE#example_1", "id": "EXAMPLE|example_1"}

    @pytest.mark.parametrize("bad", ["", "   ", "a#b", "a|b", None])
    def test_rejects_malformed_components(self, bad):
        with pytest.raises(ValidationError):
            brand_item_key("t1", bad)
        with pytest.raises(ValidationError):
            brand_item_key(bad, "brand_1")

    def test_parse_round_trip(self):
        key = post_item_key("t1", "c1", "p1")
        assert ItemKey.parse(key.pk, key.sk) == key

    def test_parse_rejects_partition_without_scope(self):
        with pytest.raises(ValidationError):
            ItemKey.parse("t1", "metadata")


class TestIndexKeys:
    """Secondary projections are pure functions of tenant and attributes."""

    def test_brand_projections(self):
        keys = brand_index_keys("t1", {"createdAt": "2026-01-01T00:00:00.000000Z", "status": "active"})
        by_index = {k.index: k for k in keys}
        assert by_index[IndexName.GSI1].pk == "t1"
        assert by_index[IndexName.GSI1].sk == "BRAND#2026-01-01T00:00:00.000000Z"
        assert by_index[IndexName.GSI2].pk == "t1#active"

    def test_post_projections(self):
        attrs = {
            "campaignId": "c1",
            "personaId": "p1",
            "platform": "linkedin",
            "scheduledAt": "2026-03-02T09:00:00Z",
        }
        gsi1, gsi2 = post_index_keys("t1", attrs)
        assert (gsi1.pk, gsi1.sk) == ("t1#c1", "POST#linkedin#2026-03-02T09:00:00Z")
        assert (gsi2.pk, gsi2.sk) == ("t1#p1", "POST#c1#2026-03-02T09:00:00Z")

    def test_post_projection_requires_persona(self):
        with pytest.raises(ValidationError):
            post_index_keys("t1", {"campaignId": "c1"})

    def test_attribute_parts_cannot_split_a_key(self):
        attrs = {"company": "A#B", "role": "CTO#EMEA", "createdAt": "2026-01-01T00:00:00.000000Z"}
        gsi2 = [k for k in persona_index_keys("t1", attrs) if k.index == IndexName.GSI2][0]
        assert gsi2.pk == "t1#A%23B"
        assert gsi2.sk == "PERSONA#CTO%23EMEA#2026-01-01T00:00:00.000000Z"

        by_role = personas_by_company("t1", "A#B", role="CTO")
        assert by_role.pk == "t1#A%23B"
        assert by_role.sk_prefix == "PERSONA#CTO#"
        assert assets_by_category("t1", "100%#x").sk_prefix == "ASSET#100%25%23x#"

    def test_query_conditions(self):
        base = posts_in_partition("t1", "c1")
        assert base.index is None
        assert base.name == "TABLE"
        assert (base.pk_attr, base.sk_attr) == ("pk", "sk")

        by_brand = campaigns_by_brand("t1", "b1", "planning")
        assert by_brand.pk == "t1#b1"
        assert by_brand.sk_prefix == "CAMPAIGN#planning#"
        assert by_brand.descending is True
        assert by_brand.pk_attr == "GSI2PK"


class TestCursorCodec:
    """Opaque, signed, query-bound pagination cursors."""

    @pytest.fixture
    def codec(self):
        return CursorCodec("secret")

    def test_none_passes_through(self, codec):
        assert codec.encode("GSI1:t1:BRAND#", None) is None
        assert codec.decode("GSI1:t1:BRAND#", None) is None

    def test_decodes_own_cursor(self, codec):
        cursor = codec.encode("GSI1:t1:BRAND#", "native-token")
        assert codec.decode("GSI1:t1:BRAND#", cursor) == "native-token"

    def test_rejects_other_query(self, codec):
        cursor = codec.encode("GSI1:t1:BRAND#", "native-token")
        with pytest.raises(InvalidCursorError):
            codec.decode("GSI2:t1#active:BRAND#", cursor)

    def test_rejects_foreign_signature(self, codec):
        cursor = CursorCodec("other-secret").encode("GSI1:t1:BRAND#", "native-token")
        with pytest.raises(InvalidCursorError):
            codec.decode("GSI1:t1:BRAND#", cursor)

    @pytest.mark.parametrize("cursor", ["", "not base64 !!", "eyJ2IjoxfQ", "bnVsbA"])
    def test_rejects_garbage(self, codec, cursor):
        with pytest.raises(InvalidCursorError):
            codec.decode("GSI1:t1:BRAND#", cursor)

    def test_requires_signing_key(self):
        with pytest.raises(ValueError):
            CursorCodec("")
