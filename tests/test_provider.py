import json

import pytest

from chartplan import provider as provider_module
from chartplan.errors import ConfigurationError, ProviderError
from chartplan.provider import (
    CrewLLMProvider,
    ProviderPlanPayload,
    build_messages,
    build_provider,
    parse_payload,
)
from chartplan.settings import PlannerSettings

VALID = {
    "summary": "Follow up",
    "sections": [
        {
            "id": "follow_up",
            "reasoning": "Return visit",
            "commands": [{"messageType": "set_follow_up", "description": "RTC", "payload": {"timeframe": "3 months"}}],
        }
    ],
}


def test_parse_payload_accepts_dict_json_and_model():
    assert parse_payload(VALID)["sections"][0]["id"] == "follow_up"
    assert parse_payload(json.dumps(VALID))["summary"] == "Follow up"
    assert parse_payload(ProviderPlanPayload.model_validate(VALID))["sections"][0]["commands"][0]["messageType"] == "set_follow_up"


@pytest.mark.parametrize(
    "raw",
    [None, "", "not json", 12, {"sections": [{"id": "billing", "commands": []}]}, {"summary": "no sections"}],
)
def test_parse_payload_rejects_bad_replies(raw):
    with pytest.raises(ProviderError):
        parse_payload(raw)


def test_messages_carry_alias_and_sections():
    messages = build_messages("  glare at night ", "PT-1", ["history", "vp"])
    assert messages[0]["role"] == "system"
    user = messages[1]["content"]
    assert "Patient alias: PT-1" in user
    assert "Available sections: history, vp" in user
    assert "glare at night" in user
    assert "UNKNOWN" in build_messages("x", None, ["history"])[1]["content"]


def test_request_plan_wraps_client_errors(make_provider):
    with pytest.raises(ProviderError, match="fake request failed: timeout"):
        make_provider(error=TimeoutError("timeout")).request_plan("glare", None, ["history"])


def test_crew_provider_requires_key():
    with pytest.raises(ConfigurationError):
        CrewLLMProvider(PlannerSettings())


def test_unknown_provider_is_rejected():
    with pytest.raises(ConfigurationError):
        build_provider(PlannerSettings(provider="anthropic", api_key="sk-test"))


def test_crew_provider_calls_llm_with_schema(monkeypatch):
    created = []

    class FakeLLM:
        def __init__(self, **kwargs):
            self.kwargs = kwargs
            created.append(self)

        def call(self, messages):
            self.messages = messages
            return json.dumps(VALID)

    monkeypatch.setattr(provider_module, "LLM", FakeLLM)
    settings = PlannerSettings(api_key="sk-test", model="gpt-4o", temperature=0.0)
    result = build_provider(settings).request_plan("return in 3 months", "PT-1", ["follow_up"])

    assert result["sections"][0]["id"] == "follow_up"
    assert created[0].kwargs["model"] == "gpt-4o"
    assert created[0].kwargs["response_format"] is ProviderPlanPayload
    assert created[0].messages[0]["role"] == "system"
