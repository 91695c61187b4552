from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Sequence

from .exceptions import ConfigurationError
from .llm import ChatModel, LanguageModel
from .prompts import ChatPromptTemplate, PromptTemplate

_log = logging.getLogger(__name__)


@dataclass
class LLMChain:
    """Format a prompt template and complete it with a language model."""

    llm: LanguageModel
    prompt: PromptTemplate

    def run(self, **values: Any) -> str:
        return self.llm.complete(self.prompt.format(**values))


@dataclass
class ChatChain:
    """Format a system and human message pair and send it to a chat model."""

    llm: ChatModel
    prompt: ChatPromptTemplate

    def run(self, **values: Any) -> str:
        return self.llm.chat(self.prompt.format_messages(**values))


class SimpleSequentialChain:
    """
    Run chains one after another, feeding each output to the next chain.

    Every chain must take exactly one input variable; the first chain gets the
    caller's text and the last chain's output is returned.
    """

    def __init__(self, chains: Sequence[LLMChain]) -> None:
        if not chains:
            raise ConfigurationError("SimpleSequentialChain needs at least one chain", field="chains")
        for idx, chain in enumerate(chains):
            if len(chain.prompt.input_variables) != 1:
                raise ConfigurationError(
                    f"Chain {idx} must have exactly one input variable, "
                    f"got {sorted(chain.prompt.input_variables)}",
                    field="chains",
                )
        self.chains: List[LLMChain] = list(chains)

    def run(self, text: str) -> str:
        output = text
        for idx, chain in enumerate(self.chains):
            (variable,) = chain.prompt.input_variables
            output = chain.run(**{variable: output}).strip()
            _log.info("Chain %d/%d produced %d chars", idx + 1, len(self.chains), len(output))
        return output


__all__ = ["LLMChain", "ChatChain", "SimpleSequentialChain"]
