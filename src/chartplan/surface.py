"""Command execution surfaces.

``ExecutionSurface`` is the seam to whatever actually edits the chart.
``ChartDocumentSurface`` binds it to an in-memory :class:`ChartDocument`,
resolving picklist entries with the term matcher and free-typing anything
the picklists do not contain.
"""

import logging
import re
from collections import Counter
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from pydantic import BaseModel, Field

from .contracts import (
    ChiefComplaintParams,
    Command,
    CommandType,
    ConditionParams,
    DiagnosisParams,
    DiagnosticTestParams,
    FollowUpParams,
    MeasurementParams,
    NarrativeParams,
)
from .errors import TargetNotFoundError, UnsupportedCommandError
from .terminology import (
    CC_FINDINGS,
    DIAGNOSTIC_TESTS,
    EYE_LOCATIONS,
    FOLLOW_UP_UNITS,
    KNOWN_CONDITIONS,
    KNOWN_DIAGNOSES,
    match_term,
    normalize_test_name,
    singularize,
)

logger = logging.getLogger(__name__)

TIMEFRAME = re.compile(r"^\s*(\d+)\s*([A-Za-z]+)\s*$")


class SectionSession:
    """Handle for one opened section; commands are applied through it."""

    def __init__(self, surface: "ExecutionSurface", section_id: str):
        self.surface = surface
        self.section_id = section_id

    def apply(self, command: Command) -> None:
        self.surface.apply(self.section_id, command)


class ExecutionSurface:
    def open_section(self, section_id: str):
        """Context manager yielding a :class:`SectionSession`."""
        raise NotImplementedError

    def apply(self, section_id: str, command: Command) -> None:
        raise NotImplementedError


class ChartSectionState(BaseModel):
    narrative: Dict[str, str] = Field(default_factory=dict)
    picklists: Dict[str, List[str]] = Field(default_factory=dict)
    selections: Dict[str, List[str]] = Field(default_factory=dict)
    free_text: Dict[str, List[str]] = Field(default_factory=dict)
    values: Dict[str, str] = Field(default_factory=dict)
    notes: Dict[str, str] = Field(default_factory=dict)

    def picklist(self, name: str, section_id: str) -> List[str]:
        if name not in self.picklists:
            raise TargetNotFoundError(f'Picklist "{name}" not found in section {section_id}')
        return self.picklists[name]


class ChartDocument(BaseModel):
    sections: Dict[str, ChartSectionState] = Field(default_factory=dict)


def default_chart() -> ChartDocument:
    return ChartDocument(
        sections={
            "history": ChartSectionState(
                narrative={"Extended HPI": "", "Mental Status Exam": ""},
                picklists={"cc_findings": list(CC_FINDINGS), "eye_locations": list(EYE_LOCATIONS)},
            ),
            "psfhros": ChartSectionState(picklists={"conditions": list(KNOWN_CONDITIONS)}),
            "vp": ChartSectionState(picklists={"measurements": ["visual_acuity_cc", "visual_acuity_sc", "iop"]}),
            "exam": ChartSectionState(narrative={"Exam": ""}),
            "diagnostics": ChartSectionState(
                narrative={"Diagnostics": ""},
                picklists={"tests": list(DIAGNOSTIC_TESTS)},
            ),
            "imp_plan": ChartSectionState(
                narrative={"Imp/Plan": ""},
                picklists={"diagnoses": list(KNOWN_DIAGNOSES)},
            ),
            "follow_up": ChartSectionState(picklists={"units": list(FOLLOW_UP_UNITS)}),
        }
    )


def _append(bucket: Dict[str, List[str]], key: str, value: str) -> None:
    bucket.setdefault(key, [])
    if value not in bucket[key]:
        bucket[key].append(value)


class ChartDocumentSurface(ExecutionSurface):
    def __init__(self, chart: Optional[ChartDocument] = None):
        self.chart = chart if chart is not None else default_chart()
        self.open_counts: Counter = Counter()
        self._handlers: Dict[CommandType, Callable[[ChartSectionState, str, Command], None]] = {
            CommandType.INSERT_NARRATIVE_TEXT: self._insert_narrative,
            CommandType.SET_CHIEF_COMPLAINT: self._set_chief_complaint,
            CommandType.SELECT_OR_CREATE_CONDITION: self._select_conditions,
            CommandType.SET_MEASUREMENT: self._set_measurement,
            CommandType.ORDER_DIAGNOSTIC_TEST: self._order_test,
            CommandType.ADD_DIAGNOSIS: self._add_diagnosis,
            CommandType.SET_FOLLOW_UP: self._set_follow_up,
        }

    def _section(self, section_id: str) -> ChartSectionState:
        state = self.chart.sections.get(section_id)
        if state is None:
            raise TargetNotFoundError(f"Section {section_id} not found on chart")
        return state

    @contextmanager
    def open_section(self, section_id: str) -> Iterator[SectionSession]:
        self._section(section_id)
        self.open_counts[section_id] += 1
        logger.debug(f"Opened section {section_id}")
        try:
            yield SectionSession(self, section_id)
        finally:
            logger.debug(f"Collapsed section {section_id}")

    def apply(self, section_id: str, command: Command) -> None:
        handler = self._handlers.get(command.type)
        if handler is None:
            raise UnsupportedCommandError(f"No handler for {command.type.value}")
        handler(self._section(section_id), section_id, command)

    def _insert_narrative(self, state: ChartSectionState, section_id: str, command: Command) -> None:
        params: NarrativeParams = command.parsed_params()
        if params.field not in state.narrative:
            raise TargetNotFoundError(f'Narrative field "{params.field}" not found in section {section_id}')
        # Last write wins within a run.
        state.narrative[params.field] = params.text
        logger.info(f"Inserted {len(params.text)} characters into {section_id}/{params.field}")

    def _set_chief_complaint(self, state: ChartSectionState, section_id: str, command: Command) -> None:
        params: ChiefComplaintParams = command.parsed_params()
        found = match_term(params.finding, state.picklist("cc_findings", section_id))
        if not found.matched:
            full = f"{params.finding} {params.location}" if params.location else params.finding
            logger.info(f'CC finding "{params.finding}" not in list, free-typing "{full}"')
            _append(state.free_text, "cc", full)
            return
        _append(state.selections, "cc_findings", found.canonical)
        if params.location:
            location = match_term(params.location, state.picklists.get("eye_locations", []))
            if location.matched:
                _append(state.selections, "eye_locations", location.canonical)
            else:
                logger.info(f'Eye location "{params.location}" not found in available list')

    def _select_conditions(self, state: ChartSectionState, section_id: str, command: Command) -> None:
        params: ConditionParams = command.parsed_params()
        available = state.picklist("conditions", section_id)
        for condition in params.select:
            found = match_term(condition, available)
            if found.matched:
                _append(state.selections, "conditions", found.canonical)
            else:
                logger.info(f'"{condition}" is not available in the list, free-typing it')
                _append(state.free_text, "conditions", condition.strip())
        for entry in params.free_text:
            if entry.strip():
                _append(state.free_text, "conditions", entry.strip())

    def _set_measurement(self, state: ChartSectionState, section_id: str, command: Command) -> None:
        params: MeasurementParams = command.parsed_params()
        if params.measurement not in state.picklist("measurements", section_id):
            raise TargetNotFoundError(f'Measurement "{params.measurement}" not found in section {section_id}')
        eyes = ["OD", "OS"] if params.eye == "OU" else [params.eye]
        for eye in eyes:
            state.values[f"{params.measurement}:{eye}"] = params.value

    def _order_test(self, state: ChartSectionState, section_id: str, command: Command) -> None:
        params: DiagnosticTestParams = command.parsed_params()
        title = normalize_test_name(params.test_name)
        found = match_term(title, state.picklist("tests", section_id))
        if not found.matched:
            raise TargetNotFoundError(f'Diagnostic test "{params.test_name}" not found')
        _append(state.selections, "tests", f"{found.canonical} ({params.location})")

    def _add_diagnosis(self, state: ChartSectionState, section_id: str, command: Command) -> None:
        params: DiagnosisParams = command.parsed_params()
        available = state.picklist("diagnoses", section_id)
        found = match_term(singularize(params.diagnosis), available)
        if not found.matched:
            found = match_term(params.diagnosis, available)
        if found.matched:
            name = found.canonical
            _append(state.selections, "diagnoses", f"{name} {params.eye_location}")
        else:
            name = params.diagnosis.strip()
            _append(state.free_text, "diagnoses", f"{name} {params.eye_location}")
        if params.discussion:
            state.notes[name] = params.discussion

    def _set_follow_up(self, state: ChartSectionState, section_id: str, command: Command) -> None:
        params: FollowUpParams = command.parsed_params()
        parsed = TIMEFRAME.match(params.timeframe)
        if parsed is None:
            raise TargetNotFoundError(f'Follow-up timeframe "{params.timeframe}" not understood')
        number, unit = parsed.groups()
        unit = singularize(unit)
        found = match_term(unit, state.picklist("units", section_id))
        if not found.matched:
            raise TargetNotFoundError(f'Follow-up unit "{unit}" not found')
        state.values["interval"] = f"{int(number)} {found.canonical}"
