from chartplan.contracts import CommandType
from chartplan.heuristics import extract_condition_phrases, heuristic_plan
from chartplan.sanitizer import sanitize


def _conditions(narrative):
    plan = heuristic_plan(narrative)
    past = [item for item in plan["items"] if item["target_section"] == "psfhros"]
    return past[0]["commands"][0]["params"] if past else None


def test_narrative_always_captured():
    plan = heuristic_plan("  Patient reports glare when driving at night.  ")
    history = plan["items"][0]
    assert history["target_section"] == "history"
    assert history["subsection"] == "Extended HPI"
    command = history["commands"][0]
    assert command["type"] == CommandType.INSERT_NARRATIVE_TEXT.value
    assert command["params"] == {"field": "Extended HPI", "text": "Patient reports glare when driving at night."}
    assert len(plan["items"]) == 1
    assert "0 past-history condition(s)" in plan["summary"]


def test_known_condition_is_selected():
    assert _conditions("Patient has history of Diverticulosis") == {"select": ["Diverticulosis"], "free_text": []}


def test_plural_and_trailing_qualifiers():
    params = _conditions("Diagnosed with cataracts 6 months ago by optometrist, noting glare issues")
    assert params == {"select": ["Cataract"], "free_text": []}


def test_unknown_conditions_are_free_typed():
    params = _conditions("Past medical history includes hypertension, type ii diabetes and GERD.")
    assert params == {"select": ["Hypertension", "GERD"], "free_text": ["Type II Diabetes"]}

    params = _conditions("hx of copd / cad")
    assert params == {"select": ["COPD"], "free_text": ["CAD"]}


def test_history_of_present_illness_is_not_a_condition():
    assert extract_condition_phrases("History of present illness: blurry vision OU") == []


def test_redact_option_only_touches_narrative_text():
    narrative = "Seen 03/04/2023 with history of glaucoma"
    assert heuristic_plan(narrative)["items"][0]["commands"][0]["params"]["text"] == narrative
    redacted = heuristic_plan(narrative, redact=True)
    assert "03/04/2023" not in redacted["items"][0]["commands"][0]["params"]["text"]
    assert redacted["items"][1]["commands"][0]["params"]["select"] == ["Glaucoma"]


def test_output_is_deterministic_and_sanitizer_clean():
    narrative = "Past medical history of asthma and migraines. Reports halos."
    first = heuristic_plan(narrative)
    assert first == heuristic_plan(narrative)
    plan = sanitize(first)
    assert [item.target_section for item in plan.items] == ["history", "psfhros"]
    assert all(item.status == "pending" for item in plan.items)
