"""Normalise raw candidate plans against the section registry.

``sanitize`` is pure and total. It accepts provider payloads
(``sections[].id`` / ``commands[].messageType`` / ``payload``), its own
output (``items[].target_section`` / ``commands[].type`` / ``params``) and
arbitrary garbage, and always returns a :class:`Plan`.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError

from .contracts import PARAMS_MODELS, Command, CommandType, ManualNote, Plan, PlanItem, PlanMeta
from .sections import DEFAULT_REGISTRY, SectionRegistry

logger = logging.getLogger(__name__)

NOT_ALLOWED_REASON = "command type not allowed for section"
MANUAL_REASON = "manual action"


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _as_text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if 0.0 <= value <= 1.0 else None


def _command_type(raw: Dict[str, Any]) -> Optional[CommandType]:
    value = raw.get("type", raw.get("messageType"))
    if isinstance(value, CommandType):
        return value
    if not isinstance(value, str):
        return None
    try:
        return CommandType(value)
    except ValueError:
        return None


def _manual_note(raw: Any) -> Optional[ManualNote]:
    try:
        return ManualNote.model_validate(raw)
    except ValidationError:
        return None


def _sanitize_item(raw: Dict[str, Any], registry: SectionRegistry) -> Optional[PlanItem]:
    section_id = raw.get("target_section", raw.get("id"))
    section = registry.get_section(section_id)
    if section is None:
        # Usually a hallucinated section name; drop without a warning.
        logger.debug(f"Dropping plan item for unknown section {section_id!r}")
        return None

    commands: List[Command] = []
    manual_notes: List[ManualNote] = []
    for note in _as_list(raw.get("manual_notes")):
        parsed = _manual_note(note)
        if parsed is not None:
            manual_notes.append(parsed)

    for raw_command in _as_list(raw.get("commands")):
        raw_command = _as_dict(raw_command)
        command_type = _command_type(raw_command)
        if command_type is None:
            continue
        params = _as_dict(raw_command.get("params", raw_command.get("payload")))
        description = _as_text(raw_command.get("description")) or ""

        if command_type is CommandType.MANUAL_ACTION or not registry.is_command_allowed(section.id, command_type):
            reason = MANUAL_REASON if command_type is CommandType.MANUAL_ACTION else NOT_ALLOWED_REASON
            try:
                note = ManualNote(
                    command_type=command_type.value,
                    description=description or "Manual follow-up required",
                    params=params,
                    reason=reason,
                )
            except ValidationError as exc:
                logger.debug(f"Dropping {command_type.value} note with malformed params: {exc.error_count()} error(s)")
                continue
            manual_notes.append(note)
            continue

        try:
            PARAMS_MODELS[command_type].model_validate(params)
            command = Command(type=command_type, description=description, params=params)
        except ValidationError as exc:
            logger.debug(f"Dropping {command_type.value} command with invalid params: {exc.error_count()} error(s)")
            continue
        commands.append(command)

    selected = raw.get("selected")
    return PlanItem(
        target_section=section.id,
        subsection=_as_text(raw.get("subsection")),
        reasoning=_as_text(raw.get("reasoning")),
        commands=commands,
        manual_notes=manual_notes,
        confidence=_confidence(raw.get("confidence")),
        status="pending" if commands or manual_notes else "inactive",
        selected=selected if isinstance(selected, bool) else True,
    )


def _meta(raw: Any) -> PlanMeta:
    try:
        return PlanMeta.model_validate(raw) if isinstance(raw, (dict, PlanMeta)) else PlanMeta()
    except ValidationError:
        return PlanMeta()


def sanitize(raw_plan: Any, registry: SectionRegistry = DEFAULT_REGISTRY) -> Plan:
    if isinstance(raw_plan, BaseModel):
        raw_plan = raw_plan.model_dump()
    raw = _as_dict(raw_plan)

    raw_items = raw.get("items") if "items" in raw else raw.get("sections")
    items: List[PlanItem] = []
    for raw_item in _as_list(raw_items):
        if not isinstance(raw_item, dict):
            continue
        item = _sanitize_item(raw_item, registry)
        if item is not None:
            items.append(item)

    warnings = [w for w in _as_list(raw.get("warnings")) if isinstance(w, str)]
    return Plan(
        summary=_as_text(raw.get("summary")) or "",
        items=items,
        warnings=warnings,
        meta=_meta(raw.get("meta")),
    )
