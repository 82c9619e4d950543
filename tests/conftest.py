from contextlib import contextmanager

import pytest

from chartplan.errors import TargetNotFoundError, UnsupportedCommandError
from chartplan.provider import PlanProvider
from chartplan.surface import ExecutionSurface, SectionSession


class FakeProvider(PlanProvider):
    name = "fake"
    model = "fake-model"

    def __init__(self, response=None, error=None, configured=True):
        self.response = response
        self.error = error
        self.configured = configured
        self.messages = []

    def is_configured(self):
        return self.configured

    def complete(self, messages):
        self.messages.append(messages)
        if self.error is not None:
            raise self.error
        return self.response


class RecordingSurface(ExecutionSurface):
    """Records applied commands; fails on commands by description."""

    def __init__(self, fail_on=(), unsupported=(), missing_sections=(), explode_on=()):
        self.fail_on = set(fail_on)
        self.unsupported = set(unsupported)
        self.missing_sections = set(missing_sections)
        self.explode_on = set(explode_on)
        self.opened = []
        self.applied = []

    @contextmanager
    def open_section(self, section_id):
        if section_id in self.missing_sections:
            raise TargetNotFoundError(f"Section {section_id} not found on chart")
        self.opened.append(section_id)
        yield SectionSession(self, section_id)

    def apply(self, section_id, command):
        if command.description in self.fail_on:
            raise TargetNotFoundError(f"Target for {command.description} not found")
        if command.description in self.explode_on:
            raise RuntimeError("chart went away")
        if command.type in self.unsupported:
            raise UnsupportedCommandError(command.type.value)
        self.applied.append((section_id, command.description))


@pytest.fixture
def no_settle():
    calls = []
    return lambda: calls.append(1), calls


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (
        "OPENAI_API_KEY",
        "CHARTPLAN_PROVIDER",
        "CHARTPLAN_MODEL",
        "CHARTPLAN_TEMPERATURE",
        "CHARTPLAN_SETTLE_DELAY",
        "CHARTPLAN_REDACT_NARRATIVE",
        "CHARTPLAN_STORE",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def make_surface():
    return RecordingSurface
