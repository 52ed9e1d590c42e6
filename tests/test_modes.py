import pytest

from macai.modes import (
    ASSISTANT_IDENTITY,
    ResponseMode,
    policy_from_flags,
    resolve_mode_policy,
)


@pytest.mark.parametrize(
    "flags, expected",
    [
        ({}, ResponseMode.DEFAULT),
        ({"think": True}, ResponseMode.THINK),
        ({"fast": True, "think": True}, ResponseMode.FAST),
        ({"search": True, "fast": True, "think": True}, ResponseMode.SEARCH),
    ],
)
def test_mode_priority(flags, expected):
    assert ResponseMode.from_flags(**flags) is expected


def test_search_mode_requires_tools_unless_disabled():
    assert policy_from_flags(search=True).initial_tool_choice == "required"
    disabled = policy_from_flags(search=True, no_search=True)
    assert disabled.initial_tool_choice == "auto"
    assert disabled.declares_tools is False
    assert policy_from_flags(think=True).initial_tool_choice == "auto"


def test_result_budgets():
    assert resolve_mode_policy(ResponseMode.FAST).result_count == 3
    assert resolve_mode_policy(ResponseMode.SEARCH).result_count == 20
    assert resolve_mode_policy(ResponseMode.THINK).result_count == 25
    assert resolve_mode_policy(ResponseMode.DEFAULT).result_count == 8


def test_think_mode_output_budget_and_reasoning():
    think = resolve_mode_policy(ResponseMode.THINK)
    assert think.max_tokens == 16000
    assert think.reasoning_format == "parsed"
    assert think.is_think
    default = resolve_mode_policy(ResponseMode.DEFAULT)
    assert default.max_tokens == 8192
    assert default.reasoning_format is None


def test_only_one_mode_instruction_is_active():
    policy = policy_from_flags(search=True, think=True)
    assert policy.system_prompt.startswith(ASSISTANT_IDENTITY)
    assert "Search Mode" in policy.system_prompt
    assert "Think Mode" not in policy.system_prompt


def test_search_with_think_uses_search_budget():
    policy = policy_from_flags(search=True, think=True)
    assert policy.mode is ResponseMode.SEARCH
    assert policy.max_tokens == 8192
    assert policy.reasoning_format is None
    assert not policy.is_think
