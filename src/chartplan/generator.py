import logging
from typing import Any, Dict, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError

from .contracts import GenerationMetadata, GenerationResult, Plan, PlanMeta
from .errors import ConfigurationError, ProviderError
from .heuristics import heuristic_plan
from .provider import PlanProvider, build_provider
from .redaction import safe_harbor_redact
from .sanitizer import sanitize
from .sections import DEFAULT_REGISTRY, SectionRegistry
from .settings import PlannerSettings

logger = logging.getLogger(__name__)

HEURISTIC = "heuristic"
EMPTY_SUMMARY = "No content provided"
EMPTY_WARNING = "Narrative text was empty; nothing to plan."


class ProviderSuccess(BaseModel):
    raw_plan: Dict[str, Any]
    model: Optional[str]


class ProviderFallback(BaseModel):
    error: str


ProviderAttempt = Union[ProviderSuccess, ProviderFallback]


class PlanGenerator:
    """Turns a narrative into a sanitised plan.

    ``generate`` never raises: provider problems degrade to a heuristic plan
    with a warning.
    """

    def __init__(
        self,
        provider: Optional[PlanProvider] = None,
        settings: Optional[PlannerSettings] = None,
        registry: SectionRegistry = DEFAULT_REGISTRY,
    ):
        self.provider = provider
        self.settings = settings or PlannerSettings()
        self.registry = registry

    @classmethod
    def from_settings(cls, settings: PlannerSettings, registry: SectionRegistry = DEFAULT_REGISTRY) -> "PlanGenerator":
        try:
            provider = build_provider(settings)
        except ConfigurationError as exc:
            logger.info(f"No AI provider available ({exc}); using heuristic extraction")
            provider = None
        return cls(provider=provider, settings=settings, registry=registry)

    def _scoped_registry(self, section_ids: Sequence[str]) -> SectionRegistry:
        sections = {}
        for section_id in section_ids:
            section = self.registry.get_section(section_id)
            if section is not None:
                sections[section.id] = section
        return SectionRegistry(sections)

    def _provider_ready(self) -> bool:
        if self.provider is None:
            return False
        try:
            return bool(self.provider.is_configured())
        except Exception as exc:
            logger.warning(f"Provider configuration check failed: {exc}")
            return False

    def _attempt_provider(
        self, narrative: str, patient_alias: Optional[str], section_ids: Sequence[str]
    ) -> ProviderAttempt:
        try:
            raw_plan = self.provider.request_plan(safe_harbor_redact(narrative), patient_alias, section_ids)
            return ProviderSuccess(raw_plan=raw_plan, model=self.provider.model)
        except ProviderError as exc:
            return ProviderFallback(error=str(exc))
        except ValidationError as exc:
            return ProviderFallback(error=f"Unexpected provider response format: {exc.error_count()} error(s)")
        except Exception as exc:
            logger.exception("Unexpected provider failure")
            return ProviderFallback(error=str(exc) or exc.__class__.__name__)

    def _finish(
        self,
        raw_plan: Dict[str, Any],
        provider: str,
        model: Optional[str],
        outcome: str,
        patient_alias: Optional[str],
        registry: SectionRegistry,
        warnings: Sequence[str] = (),
    ) -> GenerationResult:
        plan = sanitize(raw_plan, registry)
        plan.warnings.extend(warnings)
        plan.meta = PlanMeta(provider=provider, model=model, patient_alias=patient_alias)
        metadata = GenerationMetadata(provider=provider, model=model, outcome=outcome, warnings=list(plan.warnings))
        logger.info(f"Generated plan via {provider} ({outcome}) with {len(plan.items)} item(s)")
        return GenerationResult(plan=plan, metadata=metadata)

    def generate(
        self,
        narrative: str,
        patient_alias: Optional[str] = None,
        available_sections: Optional[Sequence[str]] = None,
    ) -> GenerationResult:
        text = narrative.strip() if isinstance(narrative, str) else ""
        if not text:
            plan = Plan(summary=EMPTY_SUMMARY, warnings=[EMPTY_WARNING], meta=PlanMeta(patient_alias=patient_alias))
            return GenerationResult(
                plan=plan,
                metadata=GenerationMetadata(provider=HEURISTIC, outcome="empty", warnings=[EMPTY_WARNING]),
            )

        section_ids = list(available_sections or self.registry.available_section_ids())
        registry = self._scoped_registry(section_ids)
        redact = self.settings.redact_narrative

        if not self._provider_ready():
            return self._finish(heuristic_plan(text, redact), HEURISTIC, None, "heuristic", patient_alias, registry)

        attempt = self._attempt_provider(text, patient_alias, registry.available_section_ids())
        if isinstance(attempt, ProviderSuccess):
            return self._finish(attempt.raw_plan, self.provider.name, attempt.model, "provider", patient_alias, registry)

        logger.warning(f"LLM planning failed, falling back to heuristics: {attempt.error}")
        warning = f"LLM planning failed, heuristic plan used: {attempt.error}"
        return self._finish(heuristic_plan(text, redact), HEURISTIC, None, "fallback", patient_alias, registry, [warning])
