import os
from typing import Mapping, Optional

from .pydantic_compat import BaseModel, Field


class SocialGraphSettings(BaseModel):
    """
    Runtime configuration for the relationship services.

    Values come from the same environment variables the Google SDK and
    the Firestore emulator already use, plus a few ``SOCIAL_GRAPH_*``
    knobs for timeouts and the status cache.
    """

    project_id: str = "test-project"
    database: Optional[str] = None
    emulator_host: Optional[str] = None

    # Seconds before a single relationship operation is abandoned.
    operation_timeout: float = Field(default=20.0, gt=0)
    status_cache_ttl: float = Field(default=300.0, ge=0)
    status_cache_max_size: int = Field(default=1000, gt=0)
    max_status_length: int = Field(default=50, gt=0)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SocialGraphSettings":
        env = os.environ if environ is None else environ
        values = {
            # GitHub Actions expands unset secrets to "", so treat empty as unset
            "project_id": env.get("GOOGLE_CLOUD_PROJECT") or "test-project",
            "database": env.get("DATABASE") or None,
            "emulator_host": (env.get("FIRESTORE_EMULATOR_HOST") or "").strip() or None,
        }
        if env.get("SOCIAL_GRAPH_OPERATION_TIMEOUT"):
            values["operation_timeout"] = float(env["SOCIAL_GRAPH_OPERATION_TIMEOUT"])
        if env.get("SOCIAL_GRAPH_STATUS_CACHE_TTL"):
            values["status_cache_ttl"] = float(env["SOCIAL_GRAPH_STATUS_CACHE_TTL"])
        if env.get("SOCIAL_GRAPH_STATUS_CACHE_MAX_SIZE"):
            values["status_cache_max_size"] = int(env["SOCIAL_GRAPH_STATUS_CACHE_MAX_SIZE"])
        if env.get("SOCIAL_GRAPH_MAX_STATUS_LENGTH"):
            values["max_status_length"] = int(env["SOCIAL_GRAPH_MAX_STATUS_LENGTH"])
        return cls(**values)
