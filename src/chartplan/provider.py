"""Schema-constrained plan requests to the configured language model."""

import json
import logging
from typing import Any, Dict, List, Literal, Optional, Sequence

from crewai import LLM
from pydantic import BaseModel, Field, ValidationError

from .contracts import CommandType
from .errors import ConfigurationError, ProviderError
from .sections import SECTIONS
from .settings import PlannerSettings

logger = logging.getLogger(__name__)

SectionId = Literal[tuple(SECTIONS)]  # type: ignore[valid-type]


class ProviderCommand(BaseModel):
    messageType: str = Field(description="One of: " + ", ".join(t.value for t in CommandType))
    description: str = Field(description="Human-readable explanation of the command")
    payload: Optional[Dict[str, Any]] = None


class ProviderSection(BaseModel):
    id: SectionId
    reasoning: Optional[str] = Field(default=None, description="Why this section should change")
    commands: List[ProviderCommand]


class ProviderPlanPayload(BaseModel):
    """Response schema the provider must conform to."""

    summary: Optional[str] = Field(default=None, description="Short summary for clinician review")
    sections: List[ProviderSection]


SYSTEM_PROMPT = """
You are a clinical charting planner for an ophthalmology EHR.
Given a de-identified encounter narrative, decide which chart sections need updates
and return commands for them.

Constraints:
- Only use the section ids listed in the request.
- Give concise reasoning for each section you include and omit sections that need no change.
- Each command has a messageType, a description and a payload:
  * insert_narrative_text: {"field": "Extended HPI" | "Mental Status Exam" | "Diagnostics" | "Imp/Plan", "text": str}
  * set_chief_complaint: {"finding": str, "location": "OD" | "OS" | "OU" (optional)}
  * select_or_create_condition: {"select": [str], "free_text": [str]} past medical history conditions
  * set_measurement: {"measurement": "visual_acuity_cc" | "visual_acuity_sc" | "iop", "eye": "OD" | "OS" | "OU", "value": str}
  * order_diagnostic_test: {"test_name": str, "location": "OD" | "OS" | "OU"}
  * add_diagnosis: {"diagnosis": str, "eye_location": "OD" | "OS" | "OU", "discussion": str (optional)}
  * set_follow_up: {"timeframe": "<number> days|weeks|months"}
  * MANUAL_ACTION: {"note": str} when the change cannot be automated (all exam findings).
- Sections: history (CC, HPI, Mental Status), psfhros (past medical history), vp (vision and
  pressure), exam, diagnostics, imp_plan (impression and plan), follow_up.
- Keep payloads tightly scoped; do not repeat the whole narrative in every command.
- Respond with JSON only, conforming to the provided schema.
""".strip()


def build_messages(narrative: str, patient_alias: Optional[str], section_ids: Sequence[str]) -> List[Dict[str, str]]:
    user = "\n".join(
        [
            f"Patient alias: {patient_alias or 'UNKNOWN'}",
            f"Available sections: {', '.join(section_ids)}",
            "Clinical narrative:",
            '"""',
            narrative.strip(),
            '"""',
            "",
            "Respond with JSON only.",
        ]
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


def parse_payload(raw: Any) -> Dict[str, Any]:
    """Validate a provider reply and return it as a plain dict."""

    if isinstance(raw, ProviderPlanPayload):
        return raw.model_dump()
    if isinstance(raw, BaseModel):
        raw = raw.model_dump_json()
    if isinstance(raw, dict):
        raw = json.dumps(raw)
    if not isinstance(raw, str) or not raw.strip():
        raise ProviderError("Unexpected provider response format")
    try:
        return ProviderPlanPayload.model_validate_json(raw).model_dump()
    except ValidationError as exc:
        raise ProviderError(f"Failed to parse provider response JSON: {exc.error_count()} error(s)") from exc


class PlanProvider:
    """Pluggable provider; subclasses implement ``complete``."""

    name = "provider"
    model: Optional[str] = None

    def is_configured(self) -> bool:
        return True

    def complete(self, messages: List[Dict[str, str]]) -> Any:
        raise NotImplementedError

    def request_plan(
        self, narrative: str, patient_alias: Optional[str], section_ids: Sequence[str]
    ) -> Dict[str, Any]:
        messages = build_messages(narrative, patient_alias, section_ids)
        try:
            raw = self.complete(messages)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(f"{self.name} request failed: {exc}") from exc
        return parse_payload(raw)


class CrewLLMProvider(PlanProvider):
    def __init__(self, settings: PlannerSettings):
        if not settings.has_credentials:
            raise ConfigurationError(f"{settings.provider} API key is not configured")
        self.name = settings.provider
        self.model = settings.model
        self.settings = settings
        self._llm = None

    def _client(self) -> LLM:
        if self._llm is None:
            self._llm = LLM(
                model=self.model,
                temperature=self.settings.temperature,
                api_key=self.settings.api_key,
                response_format=ProviderPlanPayload,
            )
        return self._llm

    def complete(self, messages: List[Dict[str, str]]) -> Any:
        logger.debug(f"Requesting plan from {self.name}/{self.model}")
        return self._client().call(messages)


def build_provider(settings: PlannerSettings) -> PlanProvider:
    if settings.provider != "openai":
        raise ConfigurationError(f'Provider "{settings.provider}" is not implemented yet')
    return CrewLLMProvider(settings)
