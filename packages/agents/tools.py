from __future__ import annotations

import ast
import logging
import math
import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

import httpx

from rag_core.exceptions import ToolInvocationError

_log = logging.getLogger(__name__)


@runtime_checkable
class Tool(Protocol):
    """Something the agent can call with a string and get a string back."""

    name: str
    description: str

    def invoke(self, tool_input: str) -> str:
        ...


@dataclass
class FunctionTool:
    """Wrap a plain ``str -> str`` function as a tool."""

    name: str
    description: str
    func: Callable[[str], str]

    def invoke(self, tool_input: str) -> str:
        return str(self.func(tool_input))


_BIN_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: Dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

MAX_EXPONENT = 10_000
# Python refuses str() of ints past 4300 digits.
MAX_INT_BITS = 13_000
MAX_FACTORIAL = 1000


def _too_large(what: str) -> ToolInvocationError:
    return ToolInvocationError(f"{what} is too large", tool="Calculator")


def _checked(value: Any) -> Any:
    if isinstance(value, int) and value.bit_length() > MAX_INT_BITS:
        raise _too_large("result")
    return value


def _factorial(n: Any) -> int:
    if isinstance(n, int) and n > MAX_FACTORIAL:
        raise _too_large(f"factorial argument {n}")
    return math.factorial(n)


_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "factorial": _factorial,
    **{
        name: getattr(math, name)
        for name in (
            "sqrt", "exp", "log", "log10", "log2",
            "sin", "cos", "tan", "asin", "acos", "atan",
            "floor", "ceil",
        )
    },
}

_CONSTANTS: Dict[str, float] = {"pi": math.pi, "e": math.e, "tau": math.tau}


def _check_power(base: Any, exponent: Any) -> None:
    if abs(exponent) > MAX_EXPONENT:
        raise _too_large(f"exponent {exponent}")
    # estimate the result size before computing it
    if isinstance(base, int) and isinstance(exponent, int) and exponent > 0 and abs(base) > 1:
        if exponent * math.log2(abs(base)) > MAX_INT_BITS:
            raise _too_large("result")


def _eval_node(node: ast.AST) -> Any:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return _checked(node.value)
    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        return _checked(_BIN_OPS[type(node.op)](left, right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in _FUNCTIONS
        and not node.keywords
    ):
        return _checked(_FUNCTIONS[node.func.id](*[_eval_node(arg) for arg in node.args]))
    raise ToolInvocationError(f"unsupported expression: {ast.dump(node)[:60]}", tool="Calculator")


def evaluate_expression(expression: str) -> float | int:
    """Safely evaluate an arithmetic expression; ``^`` is read as a power."""
    source = expression.strip().replace("^", "**")
    if not source:
        raise ToolInvocationError("empty expression", tool="Calculator")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise ToolInvocationError(f"cannot parse expression {expression!r}", tool="Calculator") from exc

    result = _eval_node(tree)
    if isinstance(result, bool) or not isinstance(result, (int, float)):
        raise ToolInvocationError(f"expression did not produce a real number: {result!r}", tool="Calculator")
    return result


def format_number(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return str(value)


class Calculator:
    name = "Calculator"
    description = (
        "Useful for getting the result of a math expression. "
        "The input to this tool should be a valid mathematical expression "
        "that could be executed by a simple calculator."
    )

    def invoke(self, tool_input: str) -> str:
        try:
            return format_number(evaluate_expression(tool_input))
        except (ToolInvocationError, ArithmeticError, ValueError, TypeError) as exc:
            _log.info("Calculator could not evaluate %r: %s", tool_input, exc)
            return f"Error: {exc}"


SEARCHAPI_URL = "https://www.searchapi.io/api/v1/search"


class WebSearch:
    """Web search through SearchApi (Google engine by default)."""

    name = "WebSearch"
    description = (
        "A search engine. Useful for when you need to answer questions about "
        "current events. Input should be a search query."
    )

    def __init__(
        self,
        api_key: str,
        engine: str = "google",
        max_results: int = 3,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.engine = engine
        self.max_results = max_results
        self.timeout = timeout
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def _summarize(self, data: Any) -> str:
        if not isinstance(data, dict):
            return "Error: unexpected search response"

        answer_box = data.get("answer_box")
        if isinstance(answer_box, dict):
            for key in ("answer", "snippet"):
                if answer_box.get(key):
                    return str(answer_box[key])

        knowledge_graph = data.get("knowledge_graph")
        if isinstance(knowledge_graph, dict) and knowledge_graph.get("description"):
            return str(knowledge_graph["description"])

        organic = data.get("organic_results")
        if not isinstance(organic, list):
            organic = []
        snippets = [
            str(r["snippet"])
            for r in organic[: self.max_results]
            if isinstance(r, dict) and r.get("snippet")
        ]
        if snippets:
            return "\n".join(snippets)
        return "No good search result found"

    def invoke(self, tool_input: str) -> str:
        query = tool_input.strip()
        if not query:
            return "Error: empty search query"

        try:
            resp = self._get_client().get(
                SEARCHAPI_URL,
                params={"engine": self.engine, "q": query, "api_key": self._api_key},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            _log.warning("SearchApi request failed for %r: %s", query, exc)
            return f"Error: search request failed: {exc}"
        except ValueError:
            return "Error: search returned invalid JSON"

        return self._summarize(data)


__all__ = [
    "Tool",
    "FunctionTool",
    "Calculator",
    "WebSearch",
    "evaluate_expression",
    "format_number",
    "SEARCHAPI_URL",
]
