"""
Planner interface for Vesper.

A planner decides whether a request is a single action or a sequence of dependent steps and
returns a :class:`~vesper.core.schema.Plan`.  Planners never raise to their caller: any failure
comes back as ``Plan(fallback=True)`` and the orchestrator runs the request as a single step.

Two back-ends are available:

1. **llm** - asks the model for a JSON plan (tolerant of markdown fences and chatter).
2. **single** - always single-step; useful for tests and low-latency deployments.

Additional planners can be added by subclassing :class:`BasePlanner` and registering via
:func:`register_planner`.
"""

import json
import logging
import re
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    ClassVar,
    Sequence,
    Type,
)

from pydantic import ValidationError

from vesper.agent.model_interface import (
    BaseModelClient,
    ModelTransportError,
)
from vesper.config import settings
from vesper.core.schema import (
    Plan,
    ToolDeclaration,
)

logger = logging.getLogger(__name__)


class PlannerError(RuntimeError):
    """The planner could not produce a usable plan."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PLANNER_REGISTRY: dict[str, Type["BasePlanner"]] = {}


def register_planner(name: str) -> Callable:
    """Decorator to register a planner class under *name*."""

    def wrapper(cls: Type["BasePlanner"]) -> Type["BasePlanner"]:
        _PLANNER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_planner(name: str | None = None, **kwargs: Any) -> "BasePlanner":
    """
    Factory that returns an instantiated planner.

    Fallback order:
    1. *name* arg
    2. ``settings.PLANNER``
    """
    target = name or settings.PLANNER
    cls = _PLANNER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Planner '{target}' is not registered.")
    return cls(**kwargs)


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------
def _sanitize_json_string(content: str) -> str:
    """Clean up JSON strings returned by LLMs."""
    # Strip markdown code blocks if present
    if "```" in content:
        match = re.search(r"```(?:json)?\s*(.+?)```", content, re.DOTALL)
        if match:
            content = match.group(1).strip()

    # Remove control characters except whitespace
    content = "".join(ch for ch in content if ch >= " " or ch in "\n\r\t")

    # Find the outermost matching braces
    open_idx = content.find("{")
    if open_idx >= 0:
        depth = 0
        in_string = False
        escaped = False
        for i in range(open_idx, len(content)):
            ch = content[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    content = content[open_idx : i + 1]
                    break

    # Trailing commas before a closing bracket
    return re.sub(r",\s*([}\]])", r"\1", content)


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _snake_keys(value: Any) -> Any:
    if isinstance(value, dict):
        # "parameters" is tool input; its keys are left alone.
        return {
            _snake(k): (v if k == "parameters" else _snake_keys(v)) for k, v in value.items()
        }
    if isinstance(value, list):
        return [_snake_keys(v) for v in value]
    return value


def parse_plan(content: str) -> Plan:
    """
    Parse a planner reply into a :class:`Plan`.

    camelCase keys (``isMultiStep``, ``stepNumber``, ``dependsOn``) are accepted.  Steps without a
    number are numbered in order.

    Raises
    ------
    PlannerError
        If *content* holds no valid plan.
    """
    cleaned = _sanitize_json_string(content or "")
    try:
        raw = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise PlannerError(f"Planner reply is not JSON: {content!r}") from exc
    if not isinstance(raw, dict):
        raise PlannerError(f"Planner reply is not an object: {content!r}")

    raw = _snake_keys(raw)
    for idx, step in enumerate(raw.get("steps") or [], start=1):
        if isinstance(step, dict):
            step.setdefault("step_number", idx)
            step.setdefault("action", step.get("tool") or "")
    try:
        plan = Plan.model_validate(raw)
    except ValidationError as exc:
        raise PlannerError(f"Planner reply does not match the plan schema: {exc}") from exc

    if plan.is_multi_step and len(plan.steps) < 2:
        # A one-step "multi-step" plan is just a single request.
        plan.is_multi_step = False
    return plan


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BasePlanner(ABC):
    """Abstract planner that converts a request -> Plan."""

    @abstractmethod
    async def plan(self, request_text: str) -> Plan:
        """Return the plan for *request_text*.  Never raises; failures yield ``fallback=True``."""


# ---------------------------------------------------------------------------
# Concrete planners
# ---------------------------------------------------------------------------
@register_planner("single")
class SingleStepPlanner(BasePlanner):
    """Every request is a single step."""

    def __init__(self, **_: Any):
        pass

    async def plan(self, request_text: str) -> Plan:
        return Plan(is_multi_step=False)


@register_planner("llm")
class LLMPlanner(BasePlanner):
    """Asks the model for a JSON plan."""

    SYSTEM_PROMPT: ClassVar[
        str
    ] = """\
You decide whether a user request needs multiple SEQUENTIAL steps.

SINGLE-STEP = one action (one tool call or a plain text answer).
MULTI-STEP  = two or more DIFFERENT actions that must run in order, usually signalled by words such
as "and then", "after that", "then" or their equivalents in the user's language.
Creating media "with <provider>" is a single step with a provider parameter.
A first line such as "[attached image]" means the user attached that media to the request.

Respond with JSON only:
SINGLE: {"is_multi_step": false}
MULTI:  {"is_multi_step": true, "reasoning": "<short>", "steps": [
          {"step_number": 1, "action": "<sub-request in the user's language>",
           "tool": "<tool or null>", "parameters": {...}, "depends_on": []},
          ...]}
"depends_on" lists the step numbers whose output a step needs.
"""

    def __init__(
        self,
        client: BaseModelClient | None = None,
        declarations: Sequence[ToolDeclaration] = (),
    ):
        if client is None:
            from vesper.agent.model_interface import (  # pylint: disable=import-outside-toplevel
                load_model_client,
            )

            client = load_model_client(model=settings.PLANNER_MODEL)
        self._client = client
        self._declarations = list(declarations)

    def _build_prompt(self) -> str:
        prompt = self.SYSTEM_PROMPT
        if self._declarations:
            tools_info = [f"- {d.name}: {d.description}" for d in self._declarations]
            prompt += "\nAvailable tools (exact names):\n" + "\n".join(tools_info)
        return prompt

    async def plan(self, request_text: str) -> Plan:
        try:
            content = await self._client.complete(
                self._build_prompt(), f'REQUEST: "{request_text}"', json_mode=True
            )
            logger.debug("LLM planner response: %s", content)
            plan = parse_plan(content)
        except (PlannerError, ModelTransportError) as exc:
            logger.warning("Planner failed, falling back to single step: %s", exc)
            return Plan(fallback=True)

        logger.info(
            "Planner decided %s",
            f"multi-step ({len(plan.steps)} steps)" if plan.is_multi_step else "single-step",
        )
        return plan
