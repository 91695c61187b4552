from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from rag_core.exceptions import ConfigurationError, StepBudgetExceededError
from rag_core.llm import LanguageModel
from rag_core.prompts import PromptTemplate

from .prompts import AGENT_PROMPT, FORMAT_REMINDER, render_tool_names, render_tools
from .tools import Tool

_log = logging.getLogger(__name__)

FINAL_ANSWER_ACTION = "Final Answer"
INVALID_ACTION = "_Exception"
STOP_SEQUENCE = "\nObservation:"
DEFAULT_MAX_STEPS = 15


class AgentState(str, Enum):
    THINKING = "thinking"
    ACTING_TOOL = "acting_tool"
    OBSERVING = "observing"
    FINISHED = "finished"
    ABORTED = "aborted"


@dataclass
class AgentStep:
    """
    One reason-act step.

    ``action`` is a tool name, ``"Final Answer"`` for the terminal step, or
    ``"_Exception"`` when the model output could not be parsed. ``log`` keeps
    the raw model output so it can be replayed in the scratchpad.
    """

    thought: str = ""
    action: str = ""
    action_input: str = ""
    observation: Optional[str] = None
    log: str = ""


@dataclass
class AgentRun:
    answer: str
    trajectory: List[AgentStep] = field(default_factory=list)
    transitions: List[AgentState] = field(default_factory=list)
    state: AgentState = AgentState.FINISHED


@dataclass(frozen=True)
class ParsedOutput:
    thought: str
    action: Optional[str]
    action_input: str
    error: Optional[str] = None


_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_ACTION_LINES = re.compile(r"Action\s*:\s*(.+?)\s*\n\s*Action\s*Input\s*:\s*(.*)", re.DOTALL)
_FINAL_ANSWER_LINE = re.compile(r"Final Answer\s*:\s*(.*)", re.DOTALL)
_THOUGHT_PREFIX = re.compile(r"^\s*Thought\s*:\s*")
_TRAILING_ACTION = re.compile(r"\s*Action\s*:\s*$")


def _clean_thought(text: str) -> str:
    text = _TRAILING_ACTION.sub("", text)
    return _THOUGHT_PREFIX.sub("", text).strip()


def _input_to_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and len(value) == 1:
        # {"expression": "2+2"} style inputs carry a single argument
        (only,) = value.values()
        return only if isinstance(only, str) else json.dumps(only)
    return json.dumps(value)


def _from_blob(blob: str, thought: str) -> ParsedOutput:
    try:
        payload: Any = json.loads(blob)
    except json.JSONDecodeError as exc:
        return ParsedOutput(thought, None, "", error=f"could not decode action blob: {exc}")

    if isinstance(payload, list) and payload:
        payload = payload[0]
    if not isinstance(payload, dict) or "action" not in payload:
        return ParsedOutput(thought, None, "", error="action blob has no \"action\" key")

    action = str(payload["action"]).strip()
    action_input = _input_to_str(payload.get("action_input", ""))
    return ParsedOutput(thought, action, action_input)


def parse_agent_output(text: str) -> ParsedOutput:
    """
    Parse a model completion into a thought and an action.

    Accepts a fenced JSON blob, a bare JSON object, or ``Action:`` /
    ``Action Input:`` lines (and a ``Final Answer:`` line). Text with no
    action at all is returned with ``action=None`` and the whole text as the
    input; the caller treats that as a direct answer. A blob that is present
    but unusable yields ``error``.
    """
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        return _from_blob(fenced.group(1).strip(), _clean_thought(text[: fenced.start()]))

    stripped = text.strip()
    if stripped.startswith("{"):
        return _from_blob(stripped, "")

    lines = _ACTION_LINES.search(text)
    if lines:
        action_input = lines.group(2).strip().strip('"')
        return ParsedOutput(_clean_thought(text[: lines.start()]), lines.group(1).strip(), action_input)

    final = _FINAL_ANSWER_LINE.search(text)
    if final:
        return ParsedOutput(_clean_thought(text[: final.start()]), FINAL_ANSWER_ACTION, final.group(1).strip())

    if '"action"' in text:
        return ParsedOutput(_clean_thought(text), None, "", error="found an action key outside a json blob")

    return ParsedOutput("", None, stripped)


class AgentExecutor:
    """
    Explicit reason-act loop over a set of tools.

    THINKING asks the model for the next step, ACTING_TOOL dispatches it,
    OBSERVING records the result and control returns to THINKING until the
    model gives a final answer or ``max_steps`` thinking calls are used up.
    """

    def __init__(
        self,
        llm: LanguageModel,
        tools: Sequence[Tool],
        max_steps: int = DEFAULT_MAX_STEPS,
        prompt: PromptTemplate = AGENT_PROMPT,
    ) -> None:
        if max_steps <= 0:
            raise ConfigurationError(f"max_steps must be positive, got {max_steps}", field="max_steps")

        by_name: Dict[str, Tool] = {}
        for tool in tools:
            if tool.name in by_name:
                raise ConfigurationError(f"Duplicate tool name: {tool.name}", field="tools")
            by_name[tool.name] = tool

        self.llm = llm
        self.tools: List[Tool] = list(tools)
        self.max_steps = max_steps
        self.prompt = prompt
        self._by_name = by_name

    def _scratchpad(self, trajectory: List[AgentStep]) -> str:
        return "".join(
            f" {step.log.strip()}\nObservation: {step.observation}\nThought:" for step in trajectory
        )

    def _think(self, question: str, trajectory: List[AgentStep]) -> str:
        prompt = self.prompt.format(
            tools=render_tools(self.tools),
            tool_names=render_tool_names(self.tools),
            input=question,
            agent_scratchpad=self._scratchpad(trajectory),
        )
        return self.llm.complete(prompt, stop=[STOP_SEQUENCE])

    def _act(self, step: AgentStep) -> str:
        tool = self._by_name.get(step.action)
        if tool is None:
            _log.warning("Model chose unknown tool %r", step.action)
            return f"{step.action} is not a valid tool, try one of [{', '.join(self._by_name)}]."
        try:
            return tool.invoke(step.action_input)
        except Exception as exc:  # noqa: BLE001
            _log.warning("Tool %s failed on %r: %s", tool.name, step.action_input, exc)
            return f"Error: {exc}"

    def run(self, question: str) -> AgentRun:
        trajectory: List[AgentStep] = []
        transitions: List[AgentState] = []

        for step_no in range(1, self.max_steps + 1):
            transitions.append(AgentState.THINKING)
            output = self._think(question, trajectory)
            parsed = parse_agent_output(output)

            if parsed.error is not None:
                _log.warning("Step %d: unparseable model output (%s)", step_no, parsed.error)
                step = AgentStep(thought=parsed.thought, action=INVALID_ACTION, action_input=output, log=output)
                transitions.append(AgentState.OBSERVING)
                step.observation = f"{FORMAT_REMINDER} ({parsed.error})"
                trajectory.append(step)
                continue

            if parsed.action is None or parsed.action == FINAL_ANSWER_ACTION:
                trajectory.append(
                    AgentStep(
                        thought=parsed.thought,
                        action=FINAL_ANSWER_ACTION,
                        action_input=parsed.action_input,
                        log=output,
                    )
                )
                transitions.append(AgentState.FINISHED)
                _log.info("Agent finished after %d step(s)", step_no)
                return AgentRun(
                    answer=parsed.action_input,
                    trajectory=trajectory,
                    transitions=transitions,
                    state=AgentState.FINISHED,
                )

            step = AgentStep(
                thought=parsed.thought,
                action=parsed.action,
                action_input=parsed.action_input,
                log=output,
            )
            transitions.append(AgentState.ACTING_TOOL)
            _log.info("Step %d: %s(%r)", step_no, step.action, step.action_input)
            observation = self._act(step)
            transitions.append(AgentState.OBSERVING)
            step.observation = observation
            trajectory.append(step)

        transitions.append(AgentState.ABORTED)
        _log.warning("Agent gave up after %d steps without a final answer", self.max_steps)
        raise StepBudgetExceededError(self.max_steps, trajectory, transitions)


__all__ = [
    "AgentExecutor",
    "AgentRun",
    "AgentState",
    "AgentStep",
    "ParsedOutput",
    "parse_agent_output",
    "FINAL_ANSWER_ACTION",
    "INVALID_ACTION",
    "STOP_SEQUENCE",
]
