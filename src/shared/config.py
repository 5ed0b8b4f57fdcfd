"""
Environment-backed settings for the store and its collaborators.

Settings are read once and passed explicitly to the clients that need them.
"""
import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from src.specs.common.errors import ConfigurationError

DEFAULT_SOFT_DELETE_TTL_SECONDS = 7 * 24 * 60 * 60


class StoreSettings(BaseModel):
    cosmos_connection_string: str = Field(min_length=1)
    cosmos_database: str = Field(min_length=1)
    entities_container: str = "entities"
    assets_blob_connection_string: Optional[str] = None
    assets_blob_container: str = "brand-assets"
    queue_connection_string: Optional[str] = None
    campaign_events_queue: str = "campaign-events"
    cursor_signing_key: str = "campaignstore-cursor"
    soft_delete_ttl_seconds: int = Field(default=DEFAULT_SOFT_DELETE_TTL_SECONDS, gt=0)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StoreSettings":
        env = os.environ if environ is None else environ
        conn = env.get("COSMOS_DB_CONNECTION_STRING")
        db_name = env.get("COSMOS_DB_NAME")
        if not conn or not db_name:
            raise ConfigurationError(
                "Missing Cosmos DB connection string or database name",
                details={"required": ["COSMOS_DB_CONNECTION_STRING", "COSMOS_DB_NAME"]},
            )

        ttl_raw = env.get("SOFT_DELETE_TTL_SECONDS")
        try:
            ttl = int(ttl_raw) if ttl_raw else DEFAULT_SOFT_DELETE_TTL_SECONDS
        except ValueError:
            raise ConfigurationError(
                "SOFT_DELETE_TTL_SECONDS must be an integer", details={"value": ttl_raw}
            )

        return cls(
            cosmos_connection_string=conn,
            cosmos_database=db_name,
            entities_container=env.get("COSMOS_DB_CONTAINER_ENTITIES") or "entities",
            assets_blob_connection_string=env.get("ASSETS_BLOB_CONNECTION_STRING"),
            assets_blob_container=env.get("ASSETS_BLOB_CONTAINER") or "brand-assets",
            queue_connection_string=env.get("AzureWebJobsStorage"),
            campaign_events_queue=env.get("CAMPAIGN_EVENTS_QUEUE") or "campaign-events",
            cursor_signing_key=env.get("CURSOR_SIGNING_KEY") or "campaignstore-cursor",
            soft_delete_ttl_seconds=ttl,
        )
