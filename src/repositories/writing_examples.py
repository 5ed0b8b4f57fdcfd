from __future__ import annotations

from typing import Any, List, Optional

from src.repositories.base import DEFAULT_PAGE_SIZE, EntityRepository, Page, parse_request
from src.repositories.transform import EntityMapper, Record
from src.shared.keys import ItemKey, example_index_keys, example_item_key, examples_by_persona
from src.shared.state_common import utc_now
from src.specs.common.ids import new_id
from src.specs.models.writing_example import CreateWritingExampleRequest, WritingExample

# Content attributes removed when an example is deleted.
CONTENT_ATTRIBUTES = ("text", "platform", "intent", "notes")

MIN_EXAMPLES_FOR_ANALYSIS = 5


class WritingExampleRepository(EntityRepository[WritingExample]):
    mapper = EntityMapper(
        "WritingExample",
        "exampleId",
        WritingExample,
        item_key=lambda tenant_id, attrs: example_item_key(tenant_id, attrs.get("personaId"), attrs.get("exampleId")),
        index_keys=example_index_keys,
    )
    id_prefix = "example"
    create_model = CreateWritingExampleRequest

    def key_for(self, tenant_id: str, persona_id: str, example_id: str) -> ItemKey:
        return example_item_key(tenant_id, persona_id, example_id)

    def archive(self, record: Record, now: str) -> Record:
        for attr in CONTENT_ATTRIBUTES:
            record.pop(attr, None)
        record["deletedAt"] = now
        return record

    def get(self, tenant_id: str, persona_id: str, example_id: str) -> WritingExample:
        return self._get(tenant_id, self.key_for(tenant_id, persona_id, example_id), example_id)

    def create(
        self,
        tenant_id: str,
        persona_id: str,
        data: Any,
        example_id: Optional[str] = None,
    ) -> WritingExample:
        request = parse_request(CreateWritingExampleRequest, data, "Invalid WritingExample")
        logical = request.model_dump(mode="json", exclude_none=True)
        logical["personaId"] = persona_id
        logical["exampleId"] = example_id or new_id(self.id_prefix)
        return self._create(tenant_id, logical)

    def mark_analyzed(
        self,
        tenant_id: str,
        persona_id: str,
        example_id: str,
        expected_version: Optional[int] = None,
    ) -> WritingExample:
        return self._update(
            tenant_id,
            self.key_for(tenant_id, persona_id, example_id),
            example_id,
            {"analyzedAt": utc_now()},
            expected_version=expected_version,
        )

    def soft_delete(self, tenant_id: str, persona_id: str, example_id: str) -> None:
        """Drop the example's content and let the record expire."""
        self._soft_delete(tenant_id, self.key_for(tenant_id, persona_id, example_id), example_id)

    def batch_get(self, tenant_id: str, persona_id: str, example_ids: List[str]) -> List[WritingExample]:
        keys = [self.key_for(tenant_id, persona_id, example_id) for example_id in example_ids]
        return self._batch_get(tenant_id, keys, list(example_ids))

    def list_by_persona(
        self,
        tenant_id: str,
        persona_id: str,
        platform: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Page[WritingExample]:
        """A persona's live examples, newest first."""
        filters = (lambda example: example.platform == platform) if platform else None
        return self.query(tenant_id, examples_by_persona(tenant_id, persona_id), filters=filters, limit=limit, cursor=cursor)

    def ready_for_analysis(self, tenant_id: str, persona_id: str) -> bool:
        """Whether the persona has enough examples for style analysis."""
        examples = self.query_all(tenant_id, examples_by_persona(tenant_id, persona_id))
        return len(examples) >= MIN_EXAMPLES_FOR_ANALYSIS
