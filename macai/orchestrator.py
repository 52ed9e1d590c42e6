import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple, Union

from .errors import ProviderError
from .llm import WEB_SEARCH_TOOL, WEB_SEARCH_TOOL_NAME, build_chat_payload
from .modes import TOOL_CHOICE_AUTO, TOOL_CHOICE_NONE, ModePolicy
from .schemas import (
    ChunkEvent,
    DoneEvent,
    OutboundEvent,
    SearchEvent,
    SearchResult,
    SourcesEvent,
    ThinkingEvent,
)
from .tool_calls import ToolCallAccumulator, ToolCallRecord, parse_arguments

logger = logging.getLogger("uvicorn.error")

MAX_TOOL_TURNS = 10
THINK_OPEN_TAG = "<think>"
THINK_CLOSE_TAG = "</think>"


@dataclass
class ToolInvocation:
    records: List[ToolCallRecord]
    content: str = ""


@dataclass
class FinalAnswer:
    text: str
    reasoning: Optional[str] = None


TurnOutcome = Union[ToolInvocation, FinalAnswer]


def _partial_suffix(text: str, tag: str) -> int:
    """Length of the longest proper prefix of `tag` that `text` ends with."""
    for size in range(min(len(tag) - 1, len(text)), 0, -1):
        if text.endswith(tag[:size]):
            return size
    return 0


class ReasoningMarkupFilter:
    """Removes `<think>...</think>` blocks from streamed answer text.

    Tags may be split across chunks, so a possible partial tag at the end of a
    chunk is held back until the next one arrives.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._inside = False

    def feed(self, text: str) -> str:
        self._buffer += text
        out: List[str] = []
        while self._buffer:
            if self._inside:
                end = self._buffer.find(THINK_CLOSE_TAG)
                if end == -1:
                    keep = _partial_suffix(self._buffer, THINK_CLOSE_TAG)
                    self._buffer = self._buffer[len(self._buffer) - keep:]
                    break
                self._buffer = self._buffer[end + len(THINK_CLOSE_TAG):]
                self._inside = False
                continue
            start = self._buffer.find(THINK_OPEN_TAG)
            stray = self._buffer.find(THINK_CLOSE_TAG)
            if stray != -1 and (start == -1 or stray < start):
                out.append(self._buffer[:stray])
                self._buffer = self._buffer[stray + len(THINK_CLOSE_TAG):]
                continue
            if start == -1:
                keep = max(
                    _partial_suffix(self._buffer, THINK_OPEN_TAG),
                    _partial_suffix(self._buffer, THINK_CLOSE_TAG),
                )
                out.append(self._buffer[: len(self._buffer) - keep])
                self._buffer = self._buffer[len(self._buffer) - keep:]
                break
            out.append(self._buffer[:start])
            self._buffer = self._buffer[start + len(THINK_OPEN_TAG):]
            self._inside = True
        return "".join(out)

    def flush(self) -> str:
        remainder = "" if self._inside else self._buffer
        self._buffer = ""
        self._inside = False
        return remainder


@dataclass
class _TurnState:
    strip_markup: bool
    accumulator: ToolCallAccumulator = field(default_factory=ToolCallAccumulator)
    kind: Optional[str] = None
    content_parts: List[str] = field(default_factory=list)
    reasoning_parts: List[str] = field(default_factory=list)
    answer_parts: List[str] = field(default_factory=list)
    markup: ReasoningMarkupFilter = field(default_factory=ReasoningMarkupFilter)

    def classify(self, kind: str) -> None:
        if self.kind is None:
            self.kind = kind

    def forward(self, text: str) -> str:
        if self.strip_markup:
            text = self.markup.feed(text)
        if text:
            self.answer_parts.append(text)
        return text

    def drain(self) -> str:
        if not self.strip_markup:
            return ""
        text = self.markup.flush()
        if text:
            self.answer_parts.append(text)
        return text

    def outcome(self) -> TurnOutcome:
        if self.accumulator:
            return ToolInvocation(records=self.accumulator.records(), content="".join(self.content_parts))
        reasoning = "".join(self.reasoning_parts)
        return FinalAnswer(text="".join(self.answer_parts), reasoning=reasoning or None)


def _first_delta(event: Dict[str, Any]) -> Dict[str, Any]:
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return {}
    delta = choices[0].get("delta")
    return delta if isinstance(delta, dict) else {}


def render_search_results(results: List[SearchResult], error: Optional[str] = None) -> str:
    if not results:
        return f"No results found: {error}" if error else "No results found"
    return "\n\n".join(
        f"[{i}] {result.title}\nURL: {result.url}\n{result.desc}" for i, result in enumerate(results, start=1)
    )


class ChatOrchestrator:
    """Drives provider turns until a final answer, executing web searches in between."""

    def __init__(
        self,
        provider: Any,
        search: Any,
        model: str,
        max_turns: int = MAX_TOOL_TURNS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.search = search
        self.model = model
        self.max_turns = max(1, max_turns)
        self.clock = clock

    def _elapsed_ms(self, started: float) -> int:
        return int((self.clock() - started) * 1000)

    async def run(self, messages: List[Dict[str, Any]], policy: ModePolicy) -> AsyncIterator[OutboundEvent]:
        started = self.clock()
        conversation: List[Dict[str, Any]] = [{"role": "system", "content": policy.system_prompt}, *messages]
        sources: List[SearchResult] = []
        tool_choice = policy.initial_tool_choice
        logger.info(
            "-> model:%s mode:%s noSearch:%s toolChoice:%s",
            self.model,
            policy.mode.value,
            policy.no_search,
            tool_choice if policy.declares_tools else "-",
        )

        for turn in range(self.max_turns):
            # The last permitted turn must answer rather than search again.
            turn_choice = TOOL_CHOICE_NONE if turn == self.max_turns - 1 else tool_choice
            payload = build_chat_payload(
                self.model,
                list(conversation),
                policy.max_tokens,
                tools=[WEB_SEARCH_TOOL] if policy.declares_tools else None,
                tool_choice=turn_choice,
                reasoning_format=policy.reasoning_format,
            )
            state = _TurnState(strip_markup=not policy.is_think)
            async for event in self._stream_turn(payload, state):
                yield event
            outcome = state.outcome()

            if isinstance(outcome, ToolInvocation):
                conversation.append(
                    {
                        "role": "assistant",
                        "content": outcome.content or None,
                        "tool_calls": [record.to_message_payload() for record in outcome.records],
                    }
                )
                tool_choice = TOOL_CHOICE_AUTO
                async for event in self._execute_tool_calls(outcome.records, policy, conversation, sources):
                    yield event
                continue

            logger.info(
                "reply %d chars%s sources:%d",
                len(outcome.text),
                f", reasoning {len(outcome.reasoning)} chars" if outcome.reasoning else "",
                len(sources),
            )
            if policy.is_think and outcome.reasoning:
                yield ThinkingEvent(text=outcome.reasoning)
            yield SourcesEvent(sources=list(sources))
            yield DoneEvent(elapsed_ms=self._elapsed_ms(started))
            return

        logger.warning("Turn budget of %d exhausted without a final answer", self.max_turns)
        yield SourcesEvent(sources=list(sources))
        yield DoneEvent(elapsed_ms=self._elapsed_ms(started))

    async def _stream_turn(self, payload: Dict[str, Any], state: _TurnState) -> AsyncIterator[OutboundEvent]:
        async for event in self.provider.stream_chat(payload):
            error = event.get("error")
            if error:
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise ProviderError(message or "Provider stream error")
            delta = _first_delta(event)
            fragments = delta.get("tool_calls")
            if fragments:
                state.accumulator.feed_delta(fragments)
                if state.accumulator:
                    state.classify("tool")
            content = delta.get("content")
            reasoning = delta.get("reasoning") or delta.get("reasoning_content")
            if content or reasoning:
                state.classify("text")
            if reasoning:
                state.reasoning_parts.append(reasoning)
            if content:
                state.content_parts.append(content)
                if state.kind == "text":
                    text = state.forward(content)
                    if text:
                        yield ChunkEvent(text=text)
        if state.kind == "text":
            tail = state.drain()
            if tail:
                yield ChunkEvent(text=tail)

    async def _execute_tool_calls(
        self,
        records: List[ToolCallRecord],
        policy: ModePolicy,
        conversation: List[Dict[str, Any]],
        sources: List[SearchResult],
    ) -> AsyncIterator[OutboundEvent]:
        for record in records:
            if record.name != WEB_SEARCH_TOOL_NAME:
                logger.warning("Ignoring unknown tool call %r", record.name)
                conversation.append(
                    {"role": "tool", "tool_call_id": record.id, "content": f"Unknown tool: {record.name}"}
                )
                continue
            query = str(parse_arguments(record).get("query") or "")
            count = policy.result_count
            logger.info('web_search (%d results): "%s"', count, query[:80])
            yield SearchEvent(query=query)
            results, error = await self._run_search(query, count)
            sources.extend(results)
            conversation.append(
                {"role": "tool", "tool_call_id": record.id, "content": render_search_results(results, error)}
            )

    async def _run_search(self, query: str, count: int) -> Tuple[List[SearchResult], Optional[str]]:
        try:
            outcome = await self.search.search(query, count)
        except Exception as exc:
            logger.warning("web_search failed: %s", exc)
            return [], str(exc) or exc.__class__.__name__
        return list(outcome.results[:count]), outcome.error
