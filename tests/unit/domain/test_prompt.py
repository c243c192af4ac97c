"""Tests for system-prompt templates: exact substitution and versioned replacement."""

from switchboard.domain.prompt import PromptTemplate


def test_render_substitutes_exact_placeholders():
    tpl = PromptTemplate(template="You are {{NAME}}.", variables={"NAME": "Tech"})

    assert tpl.render() == "You are Tech."


def test_unresolved_placeholder_left_verbatim():
    """Partially specified prompts are a normal mode, never an error."""
    tpl = PromptTemplate(template="You are {{NAME}}. {{STYLE}}", variables={"NAME": "Tech"})

    assert tpl.render() == "You are Tech. {{STYLE}}"
    assert tpl.unresolved() == frozenset({"STYLE"})


def test_placeholder_match_is_exact():
    """Names differing by case or spacing are different placeholders."""
    tpl = PromptTemplate(template="{{name}} {{ NAME }} {{NAME}}", variables={"NAME": "x"})

    assert tpl.render() == "{{name}} {{ NAME }} x"


def test_list_values_render_one_per_line():
    tpl = PromptTemplate(template="Rules:\n{{RULES}}", variables={"RULES": ["- be brief", "- be kind"]})

    assert tpl.render() == "Rules:\n- be brief\n- be kind"


def test_extra_values_override_stored_variables():
    tpl = PromptTemplate(template="{{A}}{{B}}", variables={"A": "1", "B": "2"})

    assert tpl.render({"B": "3"}) == "13"


def test_replaced_bumps_version_and_leaves_original_untouched():
    """In-flight invocations hold the old instance; it must not change."""
    original = PromptTemplate(template="v1 {{X}}", variables={"X": "a"})

    updated = original.replaced("v2 {{X}}", {"X": "b"})

    assert updated.version == original.version + 1
    assert updated.render() == "v2 b"
    assert original.render() == "v1 a"


def test_replaced_without_variables_clears_them():
    original = PromptTemplate(template="{{X}}", variables={"X": "a"})

    assert original.replaced("{{X}}").render() == "{{X}}"
