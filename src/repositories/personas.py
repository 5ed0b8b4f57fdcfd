from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Union

from src.repositories.base import DEFAULT_PAGE_SIZE, Page, RootEntityRepository
from src.repositories.transform import EntityMapper, Record
from src.shared.keys import persona_index_keys, persona_item_key, personas_by_company, personas_by_tenant
from src.shared.state_common import utc_now
from src.specs.common.enums import AnalysisStatus, Audience
from src.specs.common.errors import ValidationError
from src.specs.models.persona import CreatePersonaRequest, Persona, UpdatePersonaRequest

PersonaLike = Union[Persona, Mapping[str, Any]]

PLATFORM_PREFERENCES: Dict[str, Dict[str, Any]] = {
    "twitter": {"maxLength": 280, "preferHashtags": True},
    "linkedin": {"maxLength": 3000, "preferProfessional": True},
    "instagram": {"maxLength": 2200, "requireVisuals": True},
    "facebook": {"maxLength": 63206, "allowLongForm": True},
}


def _as_dict(persona: PersonaLike) -> Dict[str, Any]:
    if isinstance(persona, Persona):
        return persona.model_dump(mode="json")
    return dict(persona)


def _matches_search(persona: Persona, search: str) -> bool:
    needle = search.lower()
    return any(needle in value.lower() for value in (persona.name, persona.role, persona.company))


class PersonaRepository(RootEntityRepository[Persona]):
    mapper = EntityMapper(
        "Persona",
        "personaId",
        Persona,
        item_key=lambda tenant_id, attrs: persona_item_key(tenant_id, attrs.get("personaId")),
        index_keys=persona_index_keys,
    )
    id_prefix = "persona"
    create_model = CreatePersonaRequest
    update_model = UpdatePersonaRequest

    def initial_attributes(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return {"isActive": True}

    def is_live(self, record: Mapping[str, Any]) -> bool:
        return record.get("isActive", True) is not False

    def archive(self, record: Record, now: str) -> Record:
        record["isActive"] = False
        return record

    def list(
        self,
        tenant_id: str,
        company: Optional[str] = None,
        role: Optional[str] = None,
        primary_audience: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> Page[Persona]:
        """Active personas; company (and role) narrow the GSI2 scan, the rest filter the page."""
        if primary_audience is not None and primary_audience not in [a.value for a in Audience]:
            raise ValidationError("Invalid primary audience filter", details={"primaryAudience": primary_audience})

        if company:
            condition = personas_by_company(tenant_id, company, role)
        else:
            condition = personas_by_tenant(tenant_id)

        def matches(persona: Persona) -> bool:
            if role and not company and persona.role != role:
                return False
            if primary_audience and persona.primaryAudience != primary_audience:
                return False
            if search and not _matches_search(persona, search):
                return False
            return True

        return self.query(tenant_id, condition, filters=matches, limit=limit, cursor=cursor)

    def set_analysis_status(
        self,
        tenant_id: str,
        persona_id: str,
        status: str,
        inferred_style: Optional[Mapping[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> Persona:
        """Record the state of style analysis; a successful run stores the inferred style."""
        allowed = [s.value for s in AnalysisStatus]
        if status not in allowed:
            raise ValidationError("Invalid analysis status", details={"status": status, "allowed": allowed})
        if status == AnalysisStatus.SUCCESS.value and inferred_style is None:
            raise ValidationError("A successful analysis must include the inferred style")

        changes: Dict[str, Any] = {"analysisStatus": status}
        if status in (AnalysisStatus.SUCCESS.value, AnalysisStatus.FAILURE.value):
            changes["lastAnalysisAt"] = utc_now()
        if inferred_style is not None:
            changes["inferredStyle"] = dict(inferred_style)
        return self._update(
            tenant_id,
            self.key_for(tenant_id, persona_id),
            persona_id,
            changes,
            expected_version=expected_version,
        )

    @staticmethod
    def enrich_for_campaign(persona: PersonaLike) -> Dict[str, Any]:
        """Persona view handed to content generation, with its hard restrictions spelled out."""
        data = _as_dict(persona)
        opinions = data.get("opinions") or {}
        language = data.get("language") or {}
        cta_style = data.get("ctaStyle") or {}
        return {
            "personaId": data.get("id") or data.get("personaId"),
            "name": data.get("name"),
            "role": data.get("role"),
            "company": data.get("company"),
            "primaryAudience": data.get("primaryAudience"),
            "voiceTraits": data.get("voiceTraits"),
            "writingHabits": data.get("writingHabits"),
            "opinions": opinions,
            "language": language,
            "ctaStyle": cta_style,
            "inferredStyle": data.get("inferredStyle"),
            "hardRestrictions": {
                "avoidsTopics": list(opinions.get("avoidsTopics") or []),
                "languageAvoid": list(language.get("avoid") or []),
                "ctaLimitations": cta_style.get("aggressiveness") == "low",
            },
            "platformPreferences": {name: dict(prefs) for name, prefs in PLATFORM_PREFERENCES.items()},
        }

    @classmethod
    def merge_effective_restrictions(
        cls,
        persona: PersonaLike,
        campaign_restrictions: Optional[Mapping[str, Any]] = None,
        brand_restrictions: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Union of persona, campaign and brand restrictions on top of the enriched persona."""
        enriched = cls.enrich_for_campaign(persona)
        campaign_restrictions = campaign_restrictions or {}
        brand_restrictions = brand_restrictions or {}
        hard = enriched["hardRestrictions"]
        enriched["effectiveRestrictions"] = {
            "avoidsTopics": [
                *hard["avoidsTopics"],
                *(campaign_restrictions.get("campaignAvoidTopics") or []),
                *(brand_restrictions.get("avoidTopics") or []),
            ],
            "languageAvoid": [
                *hard["languageAvoid"],
                *(brand_restrictions.get("avoidPhrases") or []),
            ],
            "ctaLimitations": hard["ctaLimitations"],
        }
        return enriched
