from __future__ import annotations

from string import Formatter
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

from .exceptions import TemplateError


def template_variables(template: str) -> FrozenSet[str]:
    """Return the names of all ``{name}`` placeholders in ``template``."""
    try:
        parsed = list(Formatter().parse(template))
    except ValueError as exc:
        raise TemplateError(f"Malformed prompt template: {exc}") from exc

    names: set[str] = set()
    for _, field_name, _, _ in parsed:
        if field_name is None:
            continue
        if not field_name.isidentifier():
            raise TemplateError(
                f"Placeholder {{{field_name}}} is not a plain variable name",
                details={"placeholder": field_name},
            )
        names.add(field_name)
    return frozenset(names)


class PromptTemplate:
    """
    A ``str.format`` style template with a declared set of variables.

    The declared variables must be exactly the placeholders of the template;
    a mismatch is a TemplateError at construction. Use ``{{`` and ``}}`` for
    literal braces.
    """

    def __init__(self, template: str, input_variables: Optional[Iterable[str]] = None) -> None:
        found = template_variables(template)
        declared = found if input_variables is None else frozenset(input_variables)
        if declared != found:
            raise TemplateError(
                "Prompt template placeholders do not match its input variables",
                details={
                    "undeclared": sorted(found - declared),
                    "unused": sorted(declared - found),
                },
            )
        self.template = template
        self.input_variables: FrozenSet[str] = declared

    @classmethod
    def from_template(cls, template: str) -> "PromptTemplate":
        return cls(template)

    def format(self, **values: Any) -> str:
        """Fill in every variable; extra keyword arguments are ignored."""
        missing = sorted(self.input_variables - values.keys())
        if missing:
            raise TemplateError(
                f"Missing value for prompt variable(s): {', '.join(missing)}",
                details={"missing": missing},
            )
        return self.template.format(**{name: values[name] for name in self.input_variables})

    def __repr__(self) -> str:
        return f"PromptTemplate(input_variables={sorted(self.input_variables)!r})"


class ChatPromptTemplate:
    """
    A system message template followed by a human message template.

    ``format_messages`` renders both into role/content dicts that a chat
    model accepts; the system part is optional. Variables are shared, so one
    value may fill placeholders in both messages.
    """

    def __init__(
        self,
        human: Union[PromptTemplate, str],
        system: Union[PromptTemplate, str, None] = None,
    ) -> None:
        self.human = human if isinstance(human, PromptTemplate) else PromptTemplate(human)
        if system is None or isinstance(system, PromptTemplate):
            self.system = system
        else:
            self.system = PromptTemplate(system)

    @classmethod
    def from_messages(cls, system_template: Optional[str], human_template: str) -> "ChatPromptTemplate":
        return cls(human_template, system=system_template)

    @property
    def input_variables(self) -> FrozenSet[str]:
        if self.system is None:
            return self.human.input_variables
        return self.system.input_variables | self.human.input_variables

    def format_messages(self, **values: Any) -> List[Dict[str, str]]:
        missing = sorted(self.input_variables - values.keys())
        if missing:
            raise TemplateError(
                f"Missing value for prompt variable(s): {', '.join(missing)}",
                details={"missing": missing},
            )
        messages: list[Dict[str, str]] = []
        if self.system is not None:
            messages.append({"role": "system", "content": self.system.format(**values)})
        messages.append({"role": "user", "content": self.human.format(**values)})
        return messages

    def __repr__(self) -> str:
        return f"ChatPromptTemplate(input_variables={sorted(self.input_variables)!r})"


DEFAULT_QA_TEMPLATE = (
    "Use the following pieces of context to answer the question at the end. "
    "If you don't know the answer, just say that you don't know, don't try to make up an answer.\n\n"
    "{context}\n\n"
    "Question: {question}\n"
    "Helpful Answer:"
)

DEFAULT_QA_PROMPT = PromptTemplate(DEFAULT_QA_TEMPLATE, ["context", "question"])


__all__ = [
    "PromptTemplate",
    "ChatPromptTemplate",
    "template_variables",
    "DEFAULT_QA_TEMPLATE",
    "DEFAULT_QA_PROMPT",
]
