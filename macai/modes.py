from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

ASSISTANT_IDENTITY = "You are MacAI, a highly capable AI assistant."

TOOL_CHOICE_REQUIRED = "required"
TOOL_CHOICE_AUTO = "auto"
TOOL_CHOICE_NONE = "none"


class ResponseMode(str, Enum):
    DEFAULT = "default"
    SEARCH = "search"
    THINK = "think"
    FAST = "fast"

    @classmethod
    def from_flags(cls, search: bool = False, think: bool = False, fast: bool = False) -> "ResponseMode":
        """Collapse the request flags into one mode (search > fast > think).

        Think options only apply to think mode, so `search` with `think` gets the
        search budget and no reasoning output.
        """
        if search:
            return cls.SEARCH
        if fast:
            return cls.FAST
        if think:
            return cls.THINK
        return cls.DEFAULT


@dataclass(frozen=True)
class _ModeProfile:
    instruction: str
    result_count: int
    max_tokens: int = 8192
    reasoning_format: Optional[str] = None


_MODE_TABLE: Dict[ResponseMode, _ModeProfile] = {
    ResponseMode.SEARCH: _ModeProfile(
        instruction=(
            "You are in Search Mode. You MUST use the web_search tool to gather current, accurate "
            "information before answering. Always search before responding to ensure your answer is "
            "up-to-date. You may call web_search multiple times with different queries if needed to "
            "fully answer the question."
        ),
        result_count=20,
    ),
    ResponseMode.FAST: _ModeProfile(
        instruction=(
            "You are in Fast Mode. Respond quickly and concisely. Only use the web_search tool if the "
            "question strictly requires real-time or very recent information that you cannot answer "
            "from training data."
        ),
        result_count=3,
    ),
    ResponseMode.THINK: _ModeProfile(
        instruction=(
            "You are in Think Mode. Reason carefully and thoroughly before responding. Use the "
            "web_search tool when you need current or specific information to support your reasoning. "
            "Take your time to think through the problem deeply."
        ),
        result_count=25,
        max_tokens=16000,
        reasoning_format="parsed",
    ),
    ResponseMode.DEFAULT: _ModeProfile(
        instruction=(
            "Use the web_search tool when you need current information, recent events, or specific "
            "facts to give an accurate and helpful answer."
        ),
        result_count=8,
    ),
}


@dataclass(frozen=True)
class ModePolicy:
    mode: ResponseMode
    no_search: bool
    system_prompt: str
    initial_tool_choice: str
    result_count: int
    max_tokens: int
    reasoning_format: Optional[str]

    @property
    def declares_tools(self) -> bool:
        return not self.no_search

    @property
    def is_think(self) -> bool:
        return self.mode is ResponseMode.THINK


def resolve_mode_policy(mode: ResponseMode, no_search: bool = False) -> ModePolicy:
    profile = _MODE_TABLE[mode]
    if mode is ResponseMode.SEARCH and not no_search:
        tool_choice = TOOL_CHOICE_REQUIRED
    else:
        tool_choice = TOOL_CHOICE_AUTO
    return ModePolicy(
        mode=mode,
        no_search=no_search,
        system_prompt="\n\n".join([ASSISTANT_IDENTITY, profile.instruction]),
        initial_tool_choice=tool_choice,
        result_count=profile.result_count,
        max_tokens=profile.max_tokens,
        reasoning_format=profile.reasoning_format,
    )


def policy_from_flags(
    search: bool = False,
    think: bool = False,
    fast: bool = False,
    no_search: bool = False,
) -> ModePolicy:
    return resolve_mode_policy(ResponseMode.from_flags(search=search, think=think, fast=fast), no_search)
