import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError

from .store import KeyValueStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "ai_settings"
DEFAULT_STORE_PATH = "~/.chartplan/store.json"


class PlannerSettings(BaseModel):
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = 0.1
    api_key: Optional[str] = None
    settle_delay_seconds: float = 0.4
    redact_narrative: bool = False
    store_path: str = DEFAULT_STORE_PATH

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    env_map = {
        "api_key": "OPENAI_API_KEY",
        "provider": "CHARTPLAN_PROVIDER",
        "model": "CHARTPLAN_MODEL",
        "temperature": "CHARTPLAN_TEMPERATURE",
        "settle_delay_seconds": "CHARTPLAN_SETTLE_DELAY",
        "store_path": "CHARTPLAN_STORE",
    }
    for field, var in env_map.items():
        value = os.getenv(var)
        if value:
            overrides[field] = value
    redact = os.getenv("CHARTPLAN_REDACT_NARRATIVE")
    if redact:
        overrides["redact_narrative"] = redact.lower() in {"1", "true", "yes"}
    return overrides


def load_settings(store: Optional[KeyValueStore] = None, **overrides: Any) -> PlannerSettings:
    """Layer defaults, stored settings, environment and explicit overrides."""

    merged: Dict[str, Any] = PlannerSettings().model_dump()
    stored = store.get(SETTINGS_KEY) if store is not None else None
    if isinstance(stored, dict):
        merged.update({k: v for k, v in stored.items() if k in merged})
    merged.update(_env_overrides())
    merged.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return PlannerSettings.model_validate(merged)
    except ValidationError as exc:
        invalid = {error["loc"][0] for error in exc.errors() if error["loc"]}
        logger.warning(f"Invalid planner settings {sorted(invalid)}, using defaults for them")
        # Only the failing fields revert; everything else keeps its layered value.
        defaults = PlannerSettings().model_dump()
        return PlannerSettings.model_validate(
            {k: defaults[k] if k in invalid else v for k, v in merged.items()}
        )


def save_settings(store: KeyValueStore, settings: PlannerSettings) -> None:
    # Credentials stay in the environment.
    store.set(SETTINGS_KEY, settings.model_dump(exclude={"api_key"}))
