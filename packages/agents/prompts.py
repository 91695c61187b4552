from __future__ import annotations

from typing import Sequence

from rag_core.prompts import PromptTemplate

from .tools import Tool

PREFIX = (
    "Respond to the human as helpfully and accurately as possible. "
    "You have access to the following tools:"
)

# Literal JSON braces are doubled for str.format.
FORMAT_INSTRUCTIONS = """Use a json blob to specify a tool by providing an action key (tool name) and an action_input key (tool input).

Valid "action" values: "Final Answer" or {tool_names}

Provide only ONE action per $JSON_BLOB, as shown:

```
{{
  "action": $TOOL_NAME,
  "action_input": $INPUT
}}
```

Follow this format:

Question: input question to answer
Thought: consider previous and subsequent steps
Action:
```
$JSON_BLOB
```
Observation: action result
... (repeat Thought/Action/Observation N times)
Thought: I know what to respond
Action:
```
{{
  "action": "Final Answer",
  "action_input": "Final response to human"
}}
```"""

SUFFIX = (
    "Begin! Reminder to ALWAYS respond with a valid json blob of a single action. "
    "Use tools if necessary. Respond directly if appropriate. "
    "Format is Action:```$JSON_BLOB```then Observation:."
)

AGENT_TEMPLATE = (
    PREFIX
    + "\n\n{tools}\n\n"
    + FORMAT_INSTRUCTIONS
    + "\n\n"
    + SUFFIX
    + "\n\nQuestion: {input}\nThought:{agent_scratchpad}"
)

AGENT_PROMPT = PromptTemplate(AGENT_TEMPLATE, ["tools", "tool_names", "input", "agent_scratchpad"])

FORMAT_REMINDER = (
    "Invalid or incomplete response. Reply with a single json blob inside "
    "a ``` fenced block, with an \"action\" key and an \"action_input\" key."
)


def render_tools(tools: Sequence[Tool]) -> str:
    return "\n".join(f"{tool.name}: {tool.description}" for tool in tools)


def render_tool_names(tools: Sequence[Tool]) -> str:
    return ", ".join(f'"{tool.name}"' for tool in tools)


__all__ = [
    "AGENT_PROMPT",
    "AGENT_TEMPLATE",
    "FORMAT_INSTRUCTIONS",
    "FORMAT_REMINDER",
    "render_tools",
    "render_tool_names",
]
