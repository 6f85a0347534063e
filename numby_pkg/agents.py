"""Priority-ordered interpreters for one line of input.

Each agent either claims the input (returning an AgentResult), declines it
(returning None) or raises a NumbyError for input that is clearly meant for
it but wrong. The pipeline tries agents in ascending priority and commits the
first result to the context.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .config import (
    ASSIGNMENT_RE,
    CONVERSION_KEYWORDS,
    HISTORY_KEYWORDS,
    VAR_NAME_RE,
)
from .context import Context, HistoryEntry, validate_variable_name
from .evaluator import Evaluator, Scope, apply_percent, history_aggregate
from .formatter import format_value
from .logging_config import get_logger
from .parser import (
    LPAREN,
    NAME,
    OP,
    PERCENT,
    PERCENT_WORD,
    RPAREN,
    SYMBOL,
    Token,
    keyword_positions,
    parse_tokens,
    preprocess,
    tokenize,
)
from .types import ConfigError, IncompatibleUnitsError, ParseError, Value
from .units import convert_value, unit_value

logger = get_logger("agents")


@dataclass(frozen=True)
class AgentResult:
    value: Value
    agent: str
    assign: str | None = None


def _depths(tokens: tuple[Token, ...]) -> list[int]:
    """Parenthesis depth of every token."""
    depths = []
    depth = 0
    for token in tokens:
        if token.kind == RPAREN:
            depth -= 1
        depths.append(depth)
        if token.kind == LPAREN:
            depth += 1
    return depths


def _span(text: str, tokens: tuple[Token, ...]) -> str:
    """The slice of ``text`` covered by ``tokens``."""
    start = tokens[0].pos
    end = tokens[-1].pos + len(tokens[-1].text)
    return text[start:end]


def _tokens_or_none(text: str, scope: Scope) -> tuple[Token, ...] | None:
    try:
        return tokenize(text, scope.locale)
    except ParseError:
        return None


class Agent:
    """Base class for interpreters."""

    name = "agent"
    priority = 0

    def __init__(self) -> None:
        self.pipeline: AgentPipeline | None = None

    def try_interpret(self, text: str, scope: Scope) -> AgentResult | None:
        raise NotImplementedError

    def result(self, value: Value, assign: str | None = None) -> AgentResult:
        return AgentResult(value, self.name, assign)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(priority={self.priority})"


class HistoryAgent(Agent):
    """``prev``, ``sum``, ``average`` and their aliases on their own."""

    name = "history"
    priority = 10

    def try_interpret(self, text: str, scope: Scope) -> AgentResult | None:
        keyword = text.strip()
        if keyword not in HISTORY_KEYWORDS:
            return None
        return self.result(history_aggregate(keyword, scope.history, scope.rates))


class VariableAgent(Agent):
    """Assignments (``name = expr``) and bare references to bound variables."""

    name = "variable"
    priority = 20

    def try_interpret(self, text: str, scope: Scope) -> AgentResult | None:
        match = ASSIGNMENT_RE.match(text)
        if match:
            name = validate_variable_name(match.group("name"))
            value = self.pipeline.resolve(match.group("expr"), scope, exclude=(VariableAgent,)).value
            return self.result(value, assign=name)

        name = text.strip()
        if VAR_NAME_RE.match(name) and name in scope.variables:
            return self.result(scope.variables[name])
        return None


class PercentageAgent(Agent):
    """Percent phrases.

    ``P% of E``, ``P% off E``, ``P% on E`` and ``E + P%`` / ``E - P%`` (where E
    is everything left of the operator). Any other input holding a percent
    sign is evaluated with ``P%`` meaning ``P / 100``; phrases inside
    parentheses are handled by the grammar.
    """

    name = "percentage"
    priority = 30

    def try_interpret(self, text: str, scope: Scope) -> AgentResult | None:
        tokens = _tokens_or_none(text, scope)
        if not tokens or not any(token.kind == PERCENT for token in tokens):
            return None
        depths = _depths(tokens)

        for index, token in enumerate(tokens):
            if token.kind == PERCENT_WORD and depths[index] == 0:
                if index + 1 >= len(tokens):
                    raise ParseError(f"Missing value after '{token.text}'")
                ratio = self._evaluate(text, tokens[:index], scope, only=(UnitAgent, MathAgent))
                base = self._evaluate(text, tokens[index + 1 :], scope)
                return self.result(apply_percent(token.word, base, ratio, scope.rates))

        if tokens[-1].kind == PERCENT:
            for index in range(len(tokens) - 2, 0, -1):
                token = tokens[index]
                if depths[index] != 0 or token.kind != OP or token.text not in ("+", "-"):
                    continue
                if tokens[index - 1].kind == OP:
                    continue
                base = self._evaluate(text, tokens[:index], scope)
                ratio = self._evaluate(text, tokens[index + 1 :], scope, only=(UnitAgent, MathAgent))
                kind = "on" if token.text == "+" else "off"
                return self.result(apply_percent(kind, base, ratio, scope.rates))

        keywords = (*CONVERSION_KEYWORDS, *scope.locale.conversion_keywords)
        if any(depths[index] == 0 for index in keyword_positions(tokens, keywords)):
            return None
        return self.result(Evaluator(scope).evaluate(parse_tokens(tokens)))

    def _evaluate(
        self, text: str, tokens: tuple[Token, ...], scope: Scope, only: tuple[type, ...] | None = None
    ) -> Value:
        if only is None:
            only = (PercentageAgent, UnitAgent, MathAgent)
        return self.pipeline.resolve(_span(text, tokens), scope, only=only).value


class UnitAgent(Agent):
    """Conversions: ``E to U``, ``E in U``, ``E into U``, ``E as U``."""

    name = "unit"
    priority = 40

    def try_interpret(self, text: str, scope: Scope) -> AgentResult | None:
        tokens = _tokens_or_none(text, scope)
        if not tokens:
            return None
        depths = _depths(tokens)
        keywords = (*CONVERSION_KEYWORDS, *scope.locale.conversion_keywords)

        for index in reversed(keyword_positions(tokens, keywords)):
            target_tokens = tokens[index + 1 :]
            if depths[index] != 0 or index == 0 or len(target_tokens) != 1:
                continue
            if target_tokens[0].kind not in (NAME, SYMBOL):
                continue
            target = unit_value(target_tokens[0].text, scope.locale, scope.rates)
            if target is None:
                continue
            source = self.pipeline.resolve(
                _span(text, tokens[:index]), scope, only=(UnitAgent, MathAgent)
            ).value
            if source.is_number:
                raise IncompatibleUnitsError(
                    f"Cannot convert a plain number to {target.unit}"
                )
            return self.result(convert_value(source, target, scope.rates))
        return None


class MathAgent(Agent):
    """Arithmetic on everything no other agent claimed."""

    name = "math"
    priority = 50

    def try_interpret(self, text: str, scope: Scope) -> AgentResult:
        node = parse_tokens(tokenize(text, scope.locale))
        return self.result(Evaluator(scope).evaluate(node))


class AgentPipeline:
    """Runs agents in ascending priority order."""

    def __init__(self, agents: Iterable[Agent]):
        agents = list(agents)
        priorities = [agent.priority for agent in agents]
        if len(set(priorities)) != len(priorities):
            raise ConfigError(
                f"Agent priorities must be unique: {sorted(priorities)}", "DUPLICATE_PRIORITY"
            )
        self.agents = sorted(agents, key=lambda agent: agent.priority)
        for agent in self.agents:
            agent.pipeline = self

    def resolve(
        self,
        text: str,
        scope: Scope,
        exclude: tuple[type, ...] = (),
        only: tuple[type, ...] | None = None,
    ) -> AgentResult:
        """Interpret preprocessed text without touching any context.

        Raises:
            NumbyError: From the first agent that fails definitively
        """
        for agent in self.agents:
            if isinstance(agent, exclude) or (only is not None and not isinstance(agent, only)):
                continue
            result = agent.try_interpret(text, scope)
            if result is not None:
                logger.debug(f"{agent.name} agent interpreted {text!r}")
                return result
        raise ParseError(f"No interpreter accepted {text!r}")

    def evaluate(self, ctx: Context, text: str) -> tuple[AgentResult, HistoryEntry]:
        """Evaluate one line and commit the outcome to ``ctx``.

        Agents run against a snapshot taken under the context lock; the
        variable binding and the history entry are committed under the same
        lock hold, so nothing changes when evaluation fails.

        Raises:
            NumbyError: Any evaluation failure
        """
        cleaned = preprocess(text)
        with ctx.lock:
            scope = ctx.scope()
            try:
                result = self.resolve(cleaned, scope)
            except ParseError as e:
                raise ParseError(f"Could not interpret input: {e}", e.code) from e
            except RecursionError as e:
                raise ParseError("Expression is too complex") from e
            formatted = format_value(result.value, scope.locale)
            entry = ctx.commit(text.strip(), result.value, formatted, assign=result.assign)
        return result, entry


def build_default_pipeline() -> AgentPipeline:
    return AgentPipeline(
        [HistoryAgent(), VariableAgent(), PercentageAgent(), UnitAgent(), MathAgent()]
    )


DEFAULT_PIPELINE = build_default_pipeline()


def evaluate(ctx: Context, text: str) -> tuple[AgentResult, HistoryEntry]:
    return DEFAULT_PIPELINE.evaluate(ctx, text)
