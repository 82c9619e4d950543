from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CommandType(str, Enum):
    INSERT_NARRATIVE_TEXT = "insert_narrative_text"
    SET_CHIEF_COMPLAINT = "set_chief_complaint"
    SELECT_OR_CREATE_CONDITION = "select_or_create_condition"
    SET_MEASUREMENT = "set_measurement"
    ORDER_DIAGNOSTIC_TEST = "order_diagnostic_test"
    ADD_DIAGNOSIS = "add_diagnosis"
    SET_FOLLOW_UP = "set_follow_up"
    MANUAL_ACTION = "MANUAL_ACTION"


EyeLocation = Literal["OD", "OS", "OU"]


class _Params(BaseModel):
    model_config = ConfigDict(extra="ignore")


class NarrativeParams(_Params):
    field: str = "Extended HPI"
    text: str = Field(min_length=1)


class ChiefComplaintParams(_Params):
    finding: str = Field(min_length=1)
    location: Optional[EyeLocation] = None


class ConditionParams(_Params):
    select: List[str] = Field(default_factory=list)
    free_text: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _not_empty(self) -> "ConditionParams":
        if not self.select and not self.free_text:
            raise ValueError("at least one condition to select or free-type is required")
        return self


class MeasurementParams(_Params):
    measurement: Literal["visual_acuity_cc", "visual_acuity_sc", "iop"]
    eye: EyeLocation
    value: str = Field(min_length=1)


class DiagnosticTestParams(_Params):
    test_name: str = Field(min_length=1)
    location: EyeLocation = "OU"


class DiagnosisParams(_Params):
    diagnosis: str = Field(min_length=1)
    eye_location: EyeLocation = "OU"
    discussion: Optional[str] = None


class FollowUpParams(_Params):
    timeframe: str = Field(min_length=1)


class ManualActionParams(_Params):
    note: str = ""


PARAMS_MODELS: Dict[CommandType, Type[_Params]] = {
    CommandType.INSERT_NARRATIVE_TEXT: NarrativeParams,
    CommandType.SET_CHIEF_COMPLAINT: ChiefComplaintParams,
    CommandType.SELECT_OR_CREATE_CONDITION: ConditionParams,
    CommandType.SET_MEASUREMENT: MeasurementParams,
    CommandType.ORDER_DIAGNOSTIC_TEST: DiagnosticTestParams,
    CommandType.ADD_DIAGNOSIS: DiagnosisParams,
    CommandType.SET_FOLLOW_UP: FollowUpParams,
    CommandType.MANUAL_ACTION: ManualActionParams,
}


class Command(BaseModel):
    """A single typed edit intent. Params are kept exactly as generated."""

    model_config = ConfigDict(frozen=True)

    type: CommandType
    description: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)

    def parsed_params(self) -> _Params:
        return PARAMS_MODELS[self.type].model_validate(self.params)


class ManualNote(BaseModel):
    model_config = ConfigDict(frozen=True)

    command_type: str
    description: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    reason: str = ""


class PlanItem(BaseModel):
    target_section: str
    subsection: Optional[str] = None
    reasoning: Optional[str] = None
    commands: List[Command] = Field(default_factory=list)
    manual_notes: List[ManualNote] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    status: Literal["pending", "inactive"] = "inactive"
    selected: bool = True


class PlanMeta(BaseModel):
    provider: str = "heuristic"
    model: Optional[str] = None
    patient_alias: Optional[str] = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Plan(BaseModel):
    summary: str = ""
    items: List[PlanItem] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    meta: PlanMeta = Field(default_factory=PlanMeta)


class GenerationMetadata(BaseModel):
    provider: str
    model: Optional[str] = None
    outcome: Literal["provider", "fallback", "heuristic", "empty"]
    warnings: List[str] = Field(default_factory=list)


class GenerationResult(BaseModel):
    plan: Plan
    metadata: GenerationMetadata


class ExecutedEntry(BaseModel):
    section_id: str
    command_type: str


class SkippedEntry(BaseModel):
    section_id: str
    reason: str
    command_type: Optional[str] = None


class ExecutionReport(BaseModel):
    executed: List[ExecutedEntry] = Field(default_factory=list)
    skipped: List[SkippedEntry] = Field(default_factory=list)


class PatientAlias(BaseModel):
    alias: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
