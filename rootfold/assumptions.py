"""
Sign assumptions, and the oracle that answers sign queries under them.

Queries are delegated to the sympy assumption system (`sympy.ask`).
"""
import logging
import typing as T

import sympy as sp

from . import ast
from .enumerations import Sign
from .sympy_conversion import to_sympy

logger = logging.getLogger(__name__)


class _NoAssumptions:
    """
    Sentinel selecting syntactic mode: radicals are combined without any sign verification, as if
    every symbol were real and non-negative.
    """

    _instance: T.Optional['_NoAssumptions'] = None

    def __new__(cls) -> '_NoAssumptions':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'NO_ASSUMPTIONS'


NO_ASSUMPTIONS = _NoAssumptions()


def _relational_to_predicate(rel: T.Any) -> T.Any:
    """Rewrite `lhs <op> rhs` as a `Q` predicate on `lhs - rhs`."""
    difference = rel.lhs - rel.rhs
    if isinstance(rel, sp.StrictGreaterThan):
        return sp.Q.positive(difference)
    elif isinstance(rel, sp.GreaterThan):
        return sp.Q.nonnegative(difference)
    elif isinstance(rel, sp.StrictLessThan):
        return sp.Q.negative(difference)
    elif isinstance(rel, sp.LessThan):
        return sp.Q.nonpositive(difference)
    elif isinstance(rel, sp.Eq):
        return sp.Q.zero(difference)
    elif isinstance(rel, sp.Ne):
        return sp.Q.nonzero(difference)
    raise TypeError(f'Unsupported relational: {rel}')


def _to_proposition(fact: T.Any) -> T.Any:
    """Convert relationals (possibly nested in And/Or/Not) into `Q` predicates."""
    if isinstance(fact, bool):
        return sp.true if fact else sp.false
    if isinstance(fact, sp.core.relational.Relational):
        return _relational_to_predicate(fact)
    if isinstance(fact, (sp.And, sp.Or, sp.Not)):
        return type(fact)(*(_to_proposition(x) for x in fact.args))
    return fact


class AssumptionSet:
    """
    An immutable conjunction of facts about symbol signs.

    Facts are sympy booleans: relationals such as ``sp.Symbol('a') > 0`` or predicates such as
    ``sp.Q.negative(sp.Symbol('b'))``. Symbols are matched by name against the expression tree.
    An empty set is still rigorous: every symbol's sign is then unknown.

    Example:
      >>> a, b = sp.symbols('a b')
      >>> AssumptionSet(a > 0, b < 0)
      AssumptionSet(a > 0, b < 0)
    """

    def __init__(self, *facts: T.Any) -> None:
        flat: T.List[T.Any] = []
        for fact in facts:
            if isinstance(fact, (list, tuple)):
                flat.extend(fact)
            elif isinstance(fact, sp.And):
                flat.extend(fact.args)
            else:
                flat.append(fact)
        self._facts: T.Tuple[T.Any, ...] = tuple(flat)
        self._proposition = sp.And(*(_to_proposition(f) for f in flat))

    @property
    def facts(self) -> T.Tuple[T.Any, ...]:
        return self._facts

    @property
    def proposition(self) -> T.Any:
        """The conjunction of all facts, as `Q` predicates."""
        return self._proposition

    @staticmethod
    def from_signs(signs: T.Mapping[T.Union[ast.Symbol, str], Sign]) -> 'AssumptionSet':
        """
        Build an assumption set from a mapping of symbol (or symbol name) to sign. Entries with
        `Sign.Unknown` contribute nothing.
        """
        predicates = {
            Sign.Positive: sp.Q.positive,
            Sign.Negative: sp.Q.negative,
            Sign.Zero: sp.Q.zero,
        }
        facts = []
        for key, sign in signs.items():
            if sign == Sign.Unknown:
                continue
            name = key.name if isinstance(key, ast.Symbol) else key
            facts.append(predicates[sign](sp.Symbol(name)))
        return AssumptionSet(*facts)

    @staticmethod
    def from_sympy(expr: T.Any) -> 'AssumptionSet':
        """
        Collect the assumptions attached to the symbols of a sympy expression, eg.
        ``sp.Symbol('x', positive=True)`` contributes ``x > 0``.
        """
        facts = []
        for symbol in sorted(expr.free_symbols, key=lambda s: s.name):
            plain = sp.Symbol(symbol.name)
            if symbol.is_positive:
                facts.append(sp.Q.positive(plain))
            elif symbol.is_negative:
                facts.append(sp.Q.negative(plain))
            elif symbol.is_zero:
                facts.append(sp.Q.zero(plain))
            elif symbol.is_nonnegative:
                facts.append(sp.Q.nonnegative(plain))
            elif symbol.is_nonpositive:
                facts.append(sp.Q.nonpositive(plain))
            elif symbol.is_real:
                facts.append(sp.Q.real(plain))
        return AssumptionSet(*facts)

    def __and__(self, other: 'AssumptionSet') -> 'AssumptionSet':
        return AssumptionSet(*(self._facts + other.facts))

    def __eq__(self, other: T.Any) -> bool:
        return isinstance(other, AssumptionSet) and self._facts == other.facts

    def __hash__(self) -> int:
        return hash(self._facts)

    def __repr__(self) -> str:
        return f"AssumptionSet({', '.join(str(f) for f in self._facts)})"


AnyAssumptions = T.Union[AssumptionSet, _NoAssumptions]


def sign_of(expr: ast.Expression, assumptions: AnyAssumptions) -> Sign:
    """
    Determine the sign of `expr` under `assumptions`.

    Never raises for a well formed expression: when sympy cannot decide, or the assumptions are
    inconsistent, the answer is `Sign.Unknown`.

    Args:
      expr: Expression whose sign is queried.
      assumptions: Facts to reason under. `NO_ASSUMPTIONS` always yields `Sign.Unknown`.

    Returns:
      One of the four `Sign` values.
    """
    if assumptions is NO_ASSUMPTIONS:
        return Sign.Unknown
    if isinstance(expr, ast.Number):
        if expr.value > 0:
            return Sign.Positive
        elif expr.value < 0:
            return Sign.Negative
        # nan compares false against everything.
        return Sign.Zero if expr.value == 0 else Sign.Unknown

    target = to_sympy(expr)
    queries = (
        (sp.Q.zero, Sign.Zero),
        (sp.Q.positive, Sign.Positive),
        (sp.Q.negative, Sign.Negative),
    )
    try:
        for predicate, sign in queries:
            if sp.ask(predicate(target), assumptions.proposition) is True:
                return sign
    except (ValueError, NotImplementedError) as e:
        # sympy raises ValueError for inconsistent assumptions.
        logger.debug('Sign query for %s failed under %s: %s', target, assumptions, e)
    return Sign.Unknown
