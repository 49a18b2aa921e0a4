"""
Schema definitions for model <-> agent <-> tool messages.

These data models serve as the contract between the model transport, the orchestration loop, the
tools and the context store.  We keep them separate from runtime logic so they can be imported
anywhere without side-effects.
"""

import time
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)


def now_ms() -> int:
    """Wall-clock timestamp in milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Tool declarations
# ---------------------------------------------------------------------------
class ParameterSpec(BaseModel):
    """A single named parameter of a tool."""

    model_config = ConfigDict(frozen=True)

    type: str = "string"
    description: str = ""
    required: bool = False
    enum: Optional[List[str]] = None


class ToolDeclaration(BaseModel):
    """What the model is told about a tool."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique tool name")
    description: str = ""
    parameters: Dict[str, ParameterSpec] = Field(default_factory=dict)

    def required_parameters(self) -> List[str]:
        """Names of the parameters the caller must supply."""
        return [name for name, spec in self.parameters.items() if spec.required]

    def json_schema(self) -> Dict[str, Any]:
        """Render the parameters as a JSON-schema object (the format model APIs expect)."""
        properties: Dict[str, Any] = {}
        for name, spec in self.parameters.items():
            prop: Dict[str, Any] = {"type": spec.type}
            if spec.description:
                prop["description"] = spec.description
            if spec.enum:
                prop["enum"] = list(spec.enum)
            properties[name] = prop
        return {
            "type": "object",
            "properties": properties,
            "required": self.required_parameters(),
        }


class ToolResult(BaseModel):
    """
    Uniform result of a tool execution.

    Tools may attach free-form fields (``image_url``, ``video_url``, ``audio_url``, ``provider``,
    ``caption`` ...); they are kept as pydantic extras and forwarded to the model verbatim.
    """

    model_config = ConfigDict(extra="allow")

    success: bool
    data: Optional[str] = None
    error: Optional[str] = None

    def field(self, name: str, default: Any = None) -> Any:
        """Read a declared or extra field by name."""
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.model_extra or {}).get(name, default)

    @classmethod
    def failure(cls, error: str, **extra: Any) -> "ToolResult":
        """Shorthand for a failed result."""
        return cls(success=False, error=error, **extra)


# ---------------------------------------------------------------------------
# Model turns
# ---------------------------------------------------------------------------
class ToolInvocation(BaseModel):
    """A call that the model wants the agent to execute."""

    name: str = Field(..., description="Registered tool name")
    args: Dict[str, Any] = Field(default_factory=dict, description="Keyword arguments for the tool")
    id: Optional[str] = None  # transport-specific correlation id


class ToolResponse(BaseModel):
    """One tool result as handed back to the model."""

    name: str
    id: Optional[str] = None
    response: ToolResult


class ModelTurn(BaseModel):
    """What the model returned for one turn: a final answer or tool invocations."""

    text: Optional[str] = None
    tool_invocations: List[ToolInvocation] = Field(default_factory=list)

    @property
    def is_final(self) -> bool:
        return not self.tool_invocations


class HistoryMessage(BaseModel):
    """A prior conversation message used to seed a chat session."""

    role: str  # "user" | "assistant"
    content: str


# ---------------------------------------------------------------------------
# Agent context
# ---------------------------------------------------------------------------
class ToolCallRecord(BaseModel):
    """Log entry for one executed tool call."""

    tool: str
    args: Dict[str, Any] = Field(default_factory=dict)
    success: bool
    error: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)


class GeneratedAsset(BaseModel):
    """A media artifact produced by a tool."""

    url: str
    caption: Optional[str] = None
    prompt: Optional[str] = None
    provider: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)


class GeneratedAssets(BaseModel):
    """Ordered ledger of generated media, one list per kind."""

    images: List[GeneratedAsset] = Field(default_factory=list)
    videos: List[GeneratedAsset] = Field(default_factory=list)
    audio: List[GeneratedAsset] = Field(default_factory=list)

    def latest(self, kind: str) -> Optional[GeneratedAsset]:
        """Most recently generated asset of *kind* (``images``, ``videos`` or ``audio``)."""
        entries: List[GeneratedAsset] = getattr(self, kind)
        return entries[-1] if entries else None


class AgentContext(BaseModel):
    """Per-conversation state owned by a single orchestrator invocation."""

    chat_id: str
    previous_tool_results: Dict[str, ToolResult] = Field(default_factory=dict)
    tool_calls: List[ToolCallRecord] = Field(default_factory=list)
    generated_assets: GeneratedAssets = Field(default_factory=GeneratedAssets)
    original_input: Optional[Dict[str, Any]] = None


class RequestOptions(BaseModel):
    """Per-request overrides.  Unknown keys are kept and passed through."""

    model_config = ConfigDict(extra="allow")

    context_memory: Optional[bool] = None
    timeout_ms: Optional[int] = Field(None, gt=0)
    input: Optional[Dict[str, Any]] = Field(None, description="Attached media URLs and the like")


class ContextSnapshot(BaseModel):
    """The persisted part of an :class:`AgentContext`."""

    tool_calls: List[ToolCallRecord] = Field(default_factory=list)
    generated_assets: GeneratedAssets = Field(default_factory=GeneratedAssets)
    last_updated: int = Field(default_factory=now_ms)


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------
class PlanStep(BaseModel):
    """One independently executable sub-request."""

    step_number: int
    action: str
    tool: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    depends_on: List[int] = Field(default_factory=list)


class Plan(BaseModel):
    """Decomposition of a request as produced by a planner."""

    is_multi_step: bool = False
    steps: List[PlanStep] = Field(default_factory=list)
    fallback: bool = False  # planner itself failed; treat as single-step
    reasoning: Optional[str] = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
class AgentResult(BaseModel):
    """Caller-facing result of an orchestrator invocation."""

    success: bool
    text: Optional[str] = None
    image_url: Optional[str] = None
    image_caption: Optional[str] = None
    video_url: Optional[str] = None
    video_caption: Optional[str] = None
    audio_url: Optional[str] = None
    tools_used: List[str] = Field(default_factory=list)
    iterations: Optional[int] = None
    error: Optional[str] = None
    timeout: bool = False
    multi_step: bool = False
    steps_completed: Optional[int] = None
    total_steps: Optional[int] = None
    step_results: Optional[List["AgentResult"]] = None
