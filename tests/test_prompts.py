"""Tests for prompt templates."""

import pytest

from nlsh.core.prompts import (
    DEFAULTS,
    PromptTemplate,
    PromptTemplateStore,
    TemplateName,
    environment_context,
    render_explain,
    render_generate,
)
from nlsh.errors import TemplateError

CONTEXT = {
    "os": "linux (Debian; kernel: 6.1)",
    "cwd": "/srv/app",
    "home": "/home/ada",
    "user": "ada",
    "shell": "bash",
}


@pytest.fixture
def store(tmp_path):
    return PromptTemplateStore(tmp_path)


class TestStore:
    """Overrides live next to the config file; defaults are compiled in."""

    def test_defaults_when_nothing_stored(self, store):
        template = store.get(TemplateName.generate)
        assert template.text == DEFAULTS[TemplateName.generate]
        assert template.overridden is False

    def test_defaults_contain_placeholders(self):
        assert "{request}" in DEFAULTS[TemplateName.generate]
        assert "{command}" in DEFAULTS[TemplateName.explain]

    def test_set_then_get(self, store):
        store.set(TemplateName.generate, "Only output a command for: {request}")

        template = store.get(TemplateName.generate)
        assert template.text == "Only output a command for: {request}"
        assert template.overridden is True
        assert store.path(TemplateName.generate).name == "system-prompt.txt"

    def test_set_rejects_missing_placeholder(self, store):
        with pytest.raises(TemplateError, match=r"\{command\}"):
            store.set(TemplateName.explain, "Explain it.")
        assert not store.path(TemplateName.explain).exists()

    def test_set_leaves_no_temp_files(self, store, tmp_path):
        store.set(TemplateName.explain, "Explain {command}")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["explain-prompt.txt"]

    def test_invalid_file_falls_back_to_default(self, store):
        store.path(TemplateName.generate).write_text("no placeholder here")
        template = store.get(TemplateName.generate)
        assert template.text == DEFAULTS[TemplateName.generate]
        assert template.overridden is False

    def test_undecodable_file_falls_back_to_default(self, store):
        path = store.path(TemplateName.generate)
        path.write_bytes(b"\xff\xfe bad {request}")

        template = store.get(TemplateName.generate)

        assert template.text == DEFAULTS[TemplateName.generate]
        assert template.overridden is False

    def test_reset(self, store):
        store.set(TemplateName.generate, "{request}")
        assert store.reset(TemplateName.generate) is True
        assert store.get(TemplateName.generate).overridden is False
        assert store.reset(TemplateName.generate) is False

    def test_accepts_plain_string_names(self, store):
        assert store.get("explain").name == TemplateName.explain


class TestRender:

    def test_generate_fills_every_placeholder(self):
        template = PromptTemplate(TemplateName.generate, DEFAULTS[TemplateName.generate])
        prompt = render_generate(template, "show disk usage", CONTEXT)

        assert "User request: show disk usage" in prompt
        assert "/srv/app" in prompt
        assert "/home/ada" in prompt
        assert "{" not in prompt

    def test_literal_braces_survive(self):
        template = PromptTemplate(TemplateName.generate, "Prefer awk '{print $1}'. {request}")
        prompt = render_generate(template, "first column", CONTEXT)
        assert prompt == "Prefer awk '{print $1}'. first column"

    def test_request_is_not_reinterpreted(self):
        template = PromptTemplate(TemplateName.generate, "{request} in {cwd}")
        prompt = render_generate(template, "echo {cwd}", CONTEXT)
        assert prompt == "echo {cwd} in /srv/app"

    def test_explain(self):
        template = PromptTemplate(TemplateName.explain, "On {shell}: {command}")
        assert render_explain(template, "df -h", CONTEXT) == "On bash: df -h"

    def test_environment_context_keys(self):
        assert set(environment_context()) == {"os", "cwd", "home", "user", "shell"}
