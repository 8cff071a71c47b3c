"""
Combination of half-integer powers into a single square root:

    a**(n1/2) * b**(n2/2) * rest  -->  rest * sqrt(a**n1 * b**n2)

The rewrite is only exact when the signs of the bases are accounted for, so it is gated on an
assumption set. Without assumptions it runs in syntactic mode and treats every base as
non-negative.
"""
import logging
import typing as T

from . import ast
from .assumptions import NO_ASSUMPTIONS, AnyAssumptions, sign_of
from .diagnostics import CombineResult, Diagnostic
from .enumerations import DiagnosticKind, NegativeBasePolicy, Sign
from .sympy_conversion import to_sympy

logger = logging.getLogger(__name__)


class _Rewriter:
    """State for a single pass over the tree."""

    def __init__(self, assumptions: AnyAssumptions, policy: NegativeBasePolicy) -> None:
        self.assumptions = assumptions
        self.policy = policy
        self.diagnostics: T.List[Diagnostic] = []

    def __call__(self, node: ast.Expression) -> ast.Expression:
        # Bottom up: a combined child may expose a new group in its parent product.
        node = ast.with_children(node, [self(child) for child in ast.children(node)])
        if isinstance(node, ast.Mul):
            return self.combine_product(node)
        return node

    def combine_product(self, mul: ast.Mul) -> ast.Expression:
        radicals: T.List[T.Tuple[ast.Expression, int]] = []
        others: T.List[ast.Expression] = []
        for factor in mul.factors:
            numerator = ast.half_integer_numerator(factor)
            if numerator is None:
                others.append(factor)
            else:
                radicals.append((factor.base, numerator))
        if len(radicals) < 2:
            return mul

        if self.assumptions is NO_ASSUMPTIONS:
            logger.debug('Combining %d radicals without sign checks.', len(radicals))
            return _assemble(others, radicals, negate=False)

        signs = [sign_of(base, self.assumptions) for base, _ in radicals]
        unknown: T.List[ast.Expression] = []
        for (base, _), sign in zip(radicals, signs):
            if sign == Sign.Unknown and base not in unknown:
                unknown.append(base)
        if unknown:
            self.diagnostics.append(_unknown_signs(unknown, mul))
            return mul

        if self.policy == NegativeBasePolicy.ExponentWeighted:
            num_negative = sum(n for (_, n), sign in zip(radicals, signs) if sign == Sign.Negative)
        else:
            num_negative = signs.count(Sign.Negative)

        if self.policy == NegativeBasePolicy.DeclineOdd and num_negative % 2 == 1:
            negative = [base for (base, _), sign in zip(radicals, signs) if sign == Sign.Negative]
            self.diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.OddNegativeRadicand,
                    message=f'Odd number of negative bases: {_format_list(negative)}. '
                    'Combining them would drop an imaginary factor.',
                    payload=dict(negative=negative, expression=mul)))
            return mul

        # Each pair of negative bases contributes i * i = -1 outside the radical.
        negate = (num_negative // 2) % 2 == 1
        logger.debug('Combining %d radicals, %d negative base(s).', len(radicals), num_negative)
        return _assemble(others, radicals, negate=negate)


def _assemble(others: T.Sequence[ast.Expression],
              radicals: T.Sequence[T.Tuple[ast.Expression, int]], negate: bool) -> ast.Expression:
    radicand_factors: T.List[ast.Expression] = []
    for base, n in radicals:
        if n == 1:
            radicand_factors.append(base)
        else:
            radicand_factors.append(ast.pow(base, n))
    root = ast.sqrt(ast.mul(*radicand_factors))
    core = root if not others else ast.Mul(tuple(others) + (root,))
    return ast.Negate(core) if negate else core


def _format_list(exprs: T.Sequence[ast.Expression]) -> str:
    return '[' + ', '.join(str(to_sympy(x)) for x in exprs) + ']'


def _unknown_signs(unknown: T.Sequence[ast.Expression], mul: ast.Mul) -> Diagnostic:
    suggestions = [f'{to_sympy(x)} > 0' for x in unknown]
    message = (f'Variables with unknown signs: {_format_list(unknown)}. Cannot combine square '
               'roots safely without knowing their signs. Try adding assumptions like: ' +
               ' & '.join(suggestions))
    return Diagnostic(
        kind=DiagnosticKind.UnknownSigns,
        message=message,
        payload=dict(unknown=list(unknown), suggestions=suggestions, expression=mul))


def combine_sqrt(expr: ast.Expression,
                 assumptions: AnyAssumptions = NO_ASSUMPTIONS,
                 policy: NegativeBasePolicy = NegativeBasePolicy.PairBases) -> CombineResult:
    """
    Combine products of half-integer powers into single square roots, repeating until the tree
    no longer changes.

    Only products are rewritten; sums keep their structure and each product inside them is
    handled independently. When a product cannot be combined safely it is left untouched and a
    diagnostic is reported instead.

    Args:
      expr: Expression to rewrite.
      assumptions: Facts about the signs of symbols. With the default ``NO_ASSUMPTIONS`` every
        product is combined without checking signs.
      policy: Treatment of negative bases. See :class:`rootfold.enumerations.NegativeBasePolicy`.

    Returns:
      The rewritten expression, and the diagnostics for every product that was left unchanged.

    Example:
      >>> a, b = ast.symbols('a b')
      >>> combine_sqrt(ast.mul(ast.pow(a, Fraction(3, 2)), ast.sqrt(b))).expression
      Pow(base=Mul(factors=(Pow(base=Symbol(name='a'), exponent=Number(value=3)), Symbol(name='b'))), exponent=Number(value=Fraction(1, 2)))
    """
    current = expr
    while True:
        # Every successful rewrite removes at least one radical factor from a product, so this
        # reaches a fixed point after finitely many passes.
        rewriter = _Rewriter(assumptions=assumptions, policy=policy)
        rewritten = rewriter(current)
        if rewritten == current:
            return CombineResult(expression=current, diagnostics=tuple(rewriter.diagnostics))
        current = rewritten
