from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict

from .contracts import CommandType


class Section(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    automatable: bool
    allowed_command_types: FrozenSet[CommandType]
    hotkey: Optional[str] = None


def _section(id: str, label: str, *types: CommandType, hotkey: Optional[str] = None) -> Section:
    allowed = frozenset(types) | {CommandType.MANUAL_ACTION}
    return Section(
        id=id,
        label=label,
        automatable=bool(set(types) - {CommandType.MANUAL_ACTION}),
        allowed_command_types=allowed,
        hotkey=hotkey,
    )


SECTIONS: Dict[str, Section] = {
    section.id: section
    for section in (
        _section(
            "history",
            "History",
            CommandType.INSERT_NARRATIVE_TEXT,
            CommandType.SET_CHIEF_COMPLAINT,
            hotkey="Alt+Shift+H",
        ),
        _section(
            "psfhros",
            "PSFH/ROS",
            CommandType.SELECT_OR_CREATE_CONDITION,
            hotkey="Alt+Shift+M",
        ),
        _section("vp", "V & P", CommandType.SET_MEASUREMENT),
        # Exam findings are entered by hand.
        _section("exam", "Exam"),
        _section(
            "diagnostics",
            "Diagnostics",
            CommandType.ORDER_DIAGNOSTIC_TEST,
            CommandType.INSERT_NARRATIVE_TEXT,
        ),
        _section(
            "imp_plan",
            "Imp/Plan",
            CommandType.ADD_DIAGNOSIS,
            CommandType.INSERT_NARRATIVE_TEXT,
        ),
        _section("follow_up", "Follow Up", CommandType.SET_FOLLOW_UP),
    )
}

HISTORY = "history"
PAST_HISTORY = "psfhros"


class SectionRegistry:
    def __init__(self, sections: Optional[Dict[str, Section]] = None):
        self._sections = dict(SECTIONS if sections is None else sections)

    def get_section(self, section_id) -> Optional[Section]:
        if not isinstance(section_id, str):
            return None
        return self._sections.get(section_id)

    def is_command_allowed(self, section_id, command_type) -> bool:
        section = self.get_section(section_id)
        if section is None:
            return False
        try:
            return CommandType(command_type) in section.allowed_command_types
        except ValueError:
            return False

    def available_section_ids(self) -> List[str]:
        return list(self._sections)

    def label(self, section_id: str) -> str:
        section = self.get_section(section_id)
        return section.label if section else section_id


DEFAULT_REGISTRY = SectionRegistry()
