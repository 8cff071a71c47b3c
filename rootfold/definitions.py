"""
Stored host definitions, and extraction of an emittable signature from them.

A host stores a function as one or more rules `lhs -> rhs`, where the left-hand side is a pattern
such as `f(x_, y_)` that binds the parameters, and the right-hand side is the body.
"""
import collections
import dataclasses
import inspect
import logging
import typing as T

import sympy as sp

from . import ast, identifiers
from .diagnostics import Diagnostic, ExtractResult, FunctionDefinition
from .enumerations import DiagnosticKind
from .sympy_conversion import from_sympy

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Blank:
    """A pattern variable that binds one argument, eg. `x_`."""
    name: str


@dataclasses.dataclass(frozen=True)
class PatternList:
    """A list of sub-patterns, eg. `{x_, y_}`."""
    elements: T.Tuple['PatternNode', ...]


@dataclasses.dataclass(frozen=True)
class PatternCall:
    """A head applied to sub-patterns, eg. `f(x_, y_)`."""
    head: str
    args: T.Tuple['PatternNode', ...]


# Literal expressions may appear in patterns too, eg. `f(0, x_)`.
PatternNode = T.Union[Blank, PatternList, PatternCall, ast.Expression]


@dataclasses.dataclass(frozen=True)
class DefinitionRule:
    lhs: PatternCall
    rhs: ast.Expression


@dataclasses.dataclass(frozen=True)
class HostDefinition:
    """
    All rules stored by the host for the function `name`, in the order the host returns them.
    """
    name: str
    rules: T.Tuple[DefinitionRule, ...] = tuple()


def iter_blanks(pattern: PatternNode) -> T.Iterator[Blank]:
    """Yield the pattern variables in `pattern`, left to right."""
    if isinstance(pattern, Blank):
        yield pattern
    elif isinstance(pattern, PatternCall):
        for arg in pattern.args:
            yield from iter_blanks(arg)
    elif isinstance(pattern, PatternList):
        for element in pattern.elements:
            yield from iter_blanks(element)


def extract_definition(host: HostDefinition) -> ExtractResult:
    """
    Extract the name, parameters and body of a stored function.

    Only the first rule is used when the host stores several. Parameters are the pattern variables
    of its left-hand side in order of appearance, each normalized to a python identifier. The body
    is the untouched right-hand side.

    Args:
      host: Rules stored for the function.

    Returns:
      The definition, or None with a `NoDefinitionFound` or `AmbiguousSignature` diagnostic.
    """
    if not host.rules:
        return ExtractResult(
            definition=None,
            diagnostics=(Diagnostic(
                kind=DiagnosticKind.NoDefinitionFound,
                message=f'No definition found for the symbol {host.name}.',
                payload=dict(name=host.name)),))
    if len(host.rules) > 1:
        logger.debug('%s has %d rules, using the first.', host.name, len(host.rules))

    rule = host.rules[0]
    raw_names = [blank.name for blank in iter_blanks(rule.lhs)]
    parameters = tuple(identifiers.normalize(name) for name in raw_names)

    sources: T.Dict[str, T.List[str]] = collections.defaultdict(list)
    for raw, parameter in zip(raw_names, parameters):
        sources[parameter].append(raw)
    duplicates = {name: raws for name, raws in sources.items() if len(raws) > 1}
    if duplicates:
        return ExtractResult(
            definition=None,
            diagnostics=(Diagnostic(
                kind=DiagnosticKind.AmbiguousSignature,
                message=f'Parameters of {host.name} are ambiguous: ' +
                ', '.join(f'{raws} -> {name}' for name, raws in duplicates.items()),
                payload=dict(name=host.name, duplicates=duplicates)),))

    return ExtractResult(
        definition=FunctionDefinition(name=host.name, parameters=parameters, body=rule.rhs))


class DefinitionStore:
    """
    Table of stored rules, keyed by function name. Rules accumulate in definition order.
    """

    def __init__(self) -> None:
        self._rules: T.Dict[str, T.List[DefinitionRule]] = collections.defaultdict(list)

    def define(self, lhs: PatternCall, rhs: T.Any) -> DefinitionRule:
        """
        Store the rule `lhs -> rhs` under `lhs.head`. `rhs` may be an expression tree or a sympy
        expression.
        """
        if not isinstance(rhs, ast.ExpressionTypes):
            rhs = from_sympy(rhs)
        rule = DefinitionRule(lhs=lhs, rhs=rhs)
        self._rules[lhs.head].append(rule)
        return rule

    def lookup(self, name: str) -> HostDefinition:
        """All rules for `name`. Unknown names give a definition with no rules."""
        return HostDefinition(name=name, rules=tuple(self._rules.get(name, ())))

    def __contains__(self, name: str) -> bool:
        return bool(self._rules.get(name))


def create_host_definition(func: T.Callable[..., T.Any],
                           name: T.Optional[str] = None) -> HostDefinition:
    """
    Capture a python function that manipulates sympy expressions as a single-rule definition. The
    function is invoked with one sympy symbol per positional argument, and the returned
    expression becomes the body.

    Args:
      func: Function of sympy symbols returning a sympy expression (or a list of them).
      name: Name of the function. If unspecified, ``func.__name__`` is used.

    Example:
      >>> def energy(m, v):
      >>>     return m * v**2 / 2
      >>> create_host_definition(energy).rules[0].lhs
      PatternCall(head='energy', args=(Blank(name='m'), Blank(name='v')))
    """
    arg_spec = inspect.getfullargspec(func)
    if arg_spec.varargs is not None or arg_spec.varkw is not None:
        raise TypeError(f'Variadic arguments are not supported: {func}')
    name = name or func.__name__
    arguments = [sp.Symbol(arg_name) for arg_name in arg_spec.args]
    body = from_sympy(func(*arguments))
    lhs = PatternCall(head=name, args=tuple(Blank(arg_name) for arg_name in arg_spec.args))
    return HostDefinition(name=name, rules=(DefinitionRule(lhs=lhs, rhs=body),))
