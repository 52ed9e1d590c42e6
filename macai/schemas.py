from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


Role = Literal["system", "user", "assistant", "tool"]


class ConversationMessage(BaseModel):
    role: Role
    content: Optional[str] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_call_id: Optional[str] = None

    def to_provider(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        data.setdefault("content", None)
        return data


class ChatRequest(BaseModel):
    messages: List[ConversationMessage] = Field(default_factory=list)
    search: bool = False
    think: bool = False
    fast: bool = False
    no_search: bool = Field(default=False, alias="noSearch")

    model_config = {"populate_by_name": True}


class SearchResult(BaseModel):
    title: str = ""
    url: str = ""
    desc: str = ""


class SearchOutcome(BaseModel):
    results: List[SearchResult] = Field(default_factory=list)
    error: Optional[str] = None


class ChunkEvent(BaseModel):
    type: Literal["chunk"] = "chunk"
    text: str


class SearchEvent(BaseModel):
    type: Literal["search"] = "search"
    query: str


class ThinkingEvent(BaseModel):
    type: Literal["thinking"] = "thinking"
    text: str


class SourcesEvent(BaseModel):
    type: Literal["sources"] = "sources"
    sources: List[SearchResult] = Field(default_factory=list)


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"
    elapsed_ms: int


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


OutboundEvent = Annotated[
    Union[ChunkEvent, SearchEvent, ThinkingEvent, SourcesEvent, DoneEvent, ErrorEvent],
    Field(discriminator="type"),
]
