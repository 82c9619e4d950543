from chartplan.contracts import CommandType
from chartplan.sanitizer import MANUAL_REASON, NOT_ALLOWED_REASON, sanitize
from chartplan.sections import DEFAULT_REGISTRY, SectionRegistry


PROVIDER_PLAN = {
    "summary": "Cataract evaluation",
    "sections": [
        {
            "id": "history",
            "reasoning": "Narrative and chief complaint",
            "commands": [
                {
                    "messageType": "insert_narrative_text",
                    "description": "HPI",
                    "payload": {"field": "Extended HPI", "text": "Glare while driving at night."},
                },
                {
                    "messageType": "set_chief_complaint",
                    "description": "CC",
                    "payload": {"finding": "Glare", "location": "OU"},
                },
            ],
        },
        {
            "id": "exam",
            "reasoning": "Slit lamp findings",
            "commands": [{"messageType": "MANUAL_ACTION", "description": "Document 2+ NS OU", "payload": {"note": "2+ NS"}}],
        },
        {"id": "surgery_scheduler", "commands": [{"messageType": "set_follow_up", "payload": {"timeframe": "2 weeks"}}]},
    ],
}


def test_provider_shape_is_normalised():
    plan = sanitize(PROVIDER_PLAN)
    assert plan.summary == "Cataract evaluation"
    assert [item.target_section for item in plan.items] == ["history", "exam"]
    assert plan.warnings == []

    history = plan.items[0]
    assert history.status == "pending"
    assert [c.type for c in history.commands] == [CommandType.INSERT_NARRATIVE_TEXT, CommandType.SET_CHIEF_COMPLAINT]
    assert history.commands[1].params == {"finding": "Glare", "location": "OU"}


def test_manual_action_becomes_manual_note():
    exam = sanitize(PROVIDER_PLAN).items[1]
    assert exam.commands == []
    assert exam.status == "pending"
    assert exam.manual_notes[0].command_type == "MANUAL_ACTION"
    assert exam.manual_notes[0].reason == MANUAL_REASON
    assert exam.manual_notes[0].params == {"note": "2+ NS"}


def test_disallowed_command_is_demoted_not_executed():
    plan = sanitize(
        {"sections": [{"id": "psfhros", "commands": [{"messageType": "set_chief_complaint", "payload": {"finding": "Glare"}}]}]}
    )
    item = plan.items[0]
    assert item.commands == []
    assert item.manual_notes[0].reason == NOT_ALLOWED_REASON
    assert item.manual_notes[0].description == "Manual follow-up required"


def test_invalid_commands_are_dropped():
    plan = sanitize(
        {
            "sections": [
                {
                    "id": "vp",
                    "commands": [
                        {"messageType": "set_measurement", "payload": {"measurement": "iop", "eye": "OD"}},
                        {"messageType": "set_measurement", "payload": "iop 14"},
                        {"messageType": "teleport", "payload": {}},
                        {"description": "no type"},
                        "not a command",
                    ],
                }
            ]
        }
    )
    assert plan.items[0].commands == []
    assert plan.items[0].manual_notes == []
    assert plan.items[0].status == "inactive"


def test_garbage_input_yields_empty_plan():
    for raw in (None, 42, "plan", [], {"sections": "history"}, {"items": [None, 3, "x"]}):
        plan = sanitize(raw)
        assert plan.items == []
        assert plan.summary == ""


def test_non_string_param_keys_are_dropped():
    plan = sanitize(
        {
            "sections": [
                {"id": "history", "commands": [{"messageType": "insert_narrative_text", "payload": {"text": "x", 1: "y"}}]},
                {"id": "exam", "commands": [{"messageType": "MANUAL_ACTION", "payload": {"note": "x", 2: "y"}}]},
            ]
        }
    )
    assert [item.target_section for item in plan.items] == ["history", "exam"]
    assert all(item.commands == [] and item.manual_notes == [] for item in plan.items)
    assert all(item.status == "inactive" for item in plan.items)


def test_confidence_outside_range_is_discarded():
    base = {"id": "follow_up", "commands": [{"messageType": "set_follow_up", "payload": {"timeframe": "6 months"}}]}
    assert sanitize({"sections": [dict(base, confidence=0.8)]}).items[0].confidence == 0.8
    assert sanitize({"sections": [dict(base, confidence=1.5)]}).items[0].confidence is None
    assert sanitize({"sections": [dict(base, confidence=True)]}).items[0].confidence is None


def test_every_kept_command_is_legal():
    plan = sanitize(PROVIDER_PLAN)
    for item in plan.items:
        for command in item.commands:
            assert DEFAULT_REGISTRY.is_command_allowed(item.target_section, command.type)
            assert command.type is not CommandType.MANUAL_ACTION


def test_sanitize_is_idempotent():
    once = sanitize(PROVIDER_PLAN)
    assert sanitize(once) == once
    assert sanitize(once.model_dump()) == once


def test_scoped_registry_drops_other_sections():
    registry = SectionRegistry({"exam": DEFAULT_REGISTRY.get_section("exam")})
    plan = sanitize(PROVIDER_PLAN, registry)
    assert [item.target_section for item in plan.items] == ["exam"]
