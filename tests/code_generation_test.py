"""
Test emission of python code from expression trees, and the output helpers.
"""
import fractions
import os
import pathlib
import tempfile
import unittest

import sympy as sp

from rootfold import ast, code_generation
from rootfold.assumptions import NO_ASSUMPTIONS, AssumptionSet
from rootfold.definitions import Blank, DefinitionStore, PatternCall
from rootfold.diagnostics import FunctionDefinition
from rootfold.enumerations import (
    DiagnosticKind,
    NegativeBasePolicy,
    PythonGeneratorTarget,
    RadicalStyle,
)

from .test_base import MathTestBase

F = fractions.Fraction


class CodeGenerationTest(MathTestBase):
    """Test `PythonGenerator` on individual expressions."""

    def setUp(self):
        super().setUp()
        self.gen = code_generation.PythonGenerator()
        self.a, self.b, self.x, self.y = ast.symbols('a b x y')

    def assertEmits(self, expected: str, expr: ast.Expression, gen=None):
        result = (gen or self.gen).emit(expr)
        self.assertEqual(expected, result.code)
        self.assertTrue(result.ok, msg=str(result.diagnostics))

    def test_literals(self):
        self.assertEmits('3', ast.Number(3))
        self.assertEmits('-3', ast.Number(-3))
        self.assertEmits('2.5', ast.Number(2.5))
        self.assertEmits('1/2', ast.rational(1, 2))
        self.assertEmits('-3/4', ast.rational(-3, 4))

    def test_sums(self):
        a, b, x, y = self.a, self.b, self.x, self.y
        self.assertEmits('x + y', ast.add(x, y))
        self.assertEmits('x + y + a', ast.Add((x, ast.Add((y, a)))))
        self.assertEmits('x - y', ast.add(x, ast.Mul((ast.Number(-1), y))))
        self.assertEmits('x - 3', ast.add(x, ast.Number(-3)))
        self.assertEmits('x - 0.5', ast.add(x, ast.Number(-0.5)))
        self.assertEmits('x - 1/2', ast.add(x, ast.rational(-1, 2)))
        self.assertEmits('x - (a + b)', ast.add(x, ast.Negate(ast.add(a, b))))
        self.assertEmits('a - 2*x*y', ast.add(a, ast.mul(ast.Number(-2), x, y)))
        self.assertEmits('-x + y', ast.add(ast.Negate(x), y))
        self.assertEmits('x + 1/y', ast.add(x, ast.pow(y, -1)))

    def test_products(self):
        a, b, x, y = self.a, self.b, self.x, self.y
        self.assertEmits('2*x*y', ast.mul(ast.Number(2), x, y))
        self.assertEmits('-x*y', ast.mul(ast.Number(-1), x, y))
        self.assertEmits('-x*y', ast.mul(x, ast.Negate(y)))
        self.assertEmits('x*y', ast.mul(ast.Number(-1), x, ast.Negate(y)))
        self.assertEmits('(x + y)*(a + b)', ast.mul(ast.add(x, y), ast.add(a, b)))
        self.assertEmits('2.5*x', ast.mul(ast.Number(2.5), x))
        self.assertEmits('2*np.pi*x', ast.mul(ast.Number(2), ast.Symbol('Pi'), x))

    def test_division(self):
        a, b, x, y = self.a, self.b, self.x, self.y
        self.assertEmits('x/y', ast.mul(x, ast.pow(y, -1)))
        self.assertEmits('x/2', ast.mul(ast.rational(1, 2), x))
        self.assertEmits('3*x/2', ast.mul(ast.rational(3, 2), x))
        self.assertEmits('-x/2', ast.mul(ast.rational(-1, 2), x))
        self.assertEmits('2/x', ast.mul(ast.Number(2), ast.pow(x, -1)))
        self.assertEmits('x/(a + b)', ast.mul(x, ast.pow(ast.add(a, b), -1)))
        self.assertEmits('x/(a*b**2)', ast.mul(x, ast.pow(a, -1), ast.pow(b, -2)))
        self.assertEmits('1/x', ast.pow(x, -1))
        self.assertEmits('1/x**2', ast.pow(x, -2))
        self.assertEmits('1/(a*b)', ast.pow(ast.mul(a, b), -1))
        self.assertEmits('1/(-x)', ast.pow(ast.Negate(x), -1))

    def test_powers(self):
        a, b, x, y = self.a, self.b, self.x, self.y
        self.assertEmits('x**2', ast.pow(x, 2))
        self.assertEmits('(x + y)**2', ast.pow(ast.add(x, y), 2))
        self.assertEmits('(a*b)**2', ast.pow(ast.mul(a, b), 2))
        self.assertEmits('x**(3/2)', ast.pow(x, F(3, 2)))
        self.assertEmits('(x**y)**a', ast.pow(ast.pow(x, y), a))
        self.assertEmits('x**y**a', ast.pow(x, ast.pow(y, a)))
        self.assertEmits('x**(-y)', ast.pow(x, ast.Negate(y)))
        self.assertEmits('x**(a + b)', ast.pow(x, ast.add(a, b)))
        self.assertEmits('(-2)**x', ast.pow(ast.Number(-2), x))
        self.assertEmits('(1/2)**x', ast.pow(ast.rational(1, 2), x))
        self.assertEmits('np.e**x', ast.pow(ast.Symbol('E'), x))
        self.assertEmits('np.sin(x)**2', ast.pow(ast.call('Sin', x), 2))

    def test_negation(self):
        a, b, x = self.a, self.b, self.x
        self.assertEmits('-x', ast.Negate(x))
        self.assertEmits('-x**2', ast.Negate(ast.pow(x, 2)))
        self.assertEmits('(-x)**2', ast.pow(ast.Negate(x), 2))
        self.assertEmits('-(a + b)', ast.Negate(ast.add(a, b)))
        self.assertEmits('-(a*b)', ast.Negate(ast.mul(a, b)))
        self.assertEmits('-(-x)', ast.Negate(ast.Negate(x)))
        self.assertEmits('-np.sqrt(a*b)', ast.Negate(ast.sqrt(ast.mul(a, b))))

    def test_radicals(self):
        x, y = self.x, self.y
        self.assertEmits('np.sqrt(x)', ast.sqrt(x))
        self.assertEmits('1/np.sqrt(x)', ast.pow(x, F(-1, 2)))
        self.assertEmits('x/np.sqrt(y)', ast.mul(x, ast.pow(y, F(-1, 2))))
        self.assertEmits('np.sqrt(x)**3', ast.pow(ast.sqrt(x), 3))

        power_gen = code_generation.PythonGenerator(
            code_generation.GeneratorConfig.for_target(radical_style=RadicalStyle.FractionalPower))
        self.assertEmits('x**(1/2)', ast.sqrt(x), gen=power_gen)
        self.assertEmits('(x**(1/2))**3', ast.pow(ast.sqrt(x), 3), gen=power_gen)
        self.assertEmits('1/x**(1/2)', ast.pow(x, F(-1, 2)), gen=power_gen)

    def test_functions_and_constants(self):
        self.assertEmits('np.sin(alpha)', ast.call('Sin', ast.Symbol('alpha')))
        self.assertEmits('np.sin(alpha)', ast.call('Sin', ast.Symbol('\\[Alpha]')))
        self.assertEmits('np.arctan(x)', ast.call('ArcTan', self.x))
        self.assertEmits('np.ceil(x) + np.floor(y)',
                         ast.add(ast.call('Ceiling', self.x), ast.call('Floor', self.y)))
        self.assertEmits('np.sqrt(x + 1)', ast.call('Sqrt', ast.add(self.x, ast.Number(1))))
        self.assertEmits('2*1j', ast.mul(ast.Number(2), ast.Symbol('I')))
        self.assertEmits('np.array([x, 1, np.pi])',
                         ast.ListLiteral((self.x, ast.Number(1), ast.Symbol('Pi'))))

    def test_jax_target(self):
        gen = code_generation.PythonGenerator(
            code_generation.GeneratorConfig.for_target(PythonGeneratorTarget.JAX))
        self.assertEmits('jnp.cos(x)', ast.call('Cos', self.x), gen=gen)
        self.assertEmits('jnp.sqrt(x)*jnp.pi', ast.mul(ast.sqrt(self.x), ast.Symbol('Pi')),
                         gen=gen)
        self.assertEqual('import jax.numpy as jnp', gen.config.import_statement)

    def test_unmapped_function(self):
        """Unmapped calls are emitted verbatim, with one diagnostic per function name."""
        expr = ast.add(
            ast.call('BesselJ', ast.Number(0), self.x), ast.call('BesselJ', ast.Number(1), self.y))
        result = self.gen.emit(expr)
        self.assertEqual('BesselJ(0, x) + BesselJ(1, y)', result.code)
        self.assertDiagnosticKinds([DiagnosticKind.UnmappedFunction], result.diagnostics)
        self.assertEqual('BesselJ', result.diagnostics[0].payload['function'])

    def test_identifier_collision(self):
        result = self.gen.emit(ast.add(ast.Symbol('alpha'), ast.Symbol('\\[Alpha]')))
        self.assertEqual('alpha + alpha', result.code)
        self.assertDiagnosticKinds([DiagnosticKind.IdentifierCollision], result.diagnostics)
        self.assertEqual(['\\[Alpha]', 'alpha'], result.diagnostics[0].payload['sources'])

    def test_reserved_module_alias(self):
        """A symbol named like the module alias would shadow it in generated code."""
        result = self.gen.emit(ast.call('Sin', ast.Symbol('np')))
        self.assertEqual('np.sin(np)', result.code)
        self.assertDiagnosticKinds([DiagnosticKind.IdentifierCollision], result.diagnostics)
        self.assertEqual('np', result.diagnostics[0].payload['identifier'])
        self.assertEqual(['np'], result.diagnostics[0].payload['sources'])

        gen = code_generation.PythonGenerator(
            code_generation.GeneratorConfig.for_target(PythonGeneratorTarget.JAX))
        self.assertDiagnosticKinds([DiagnosticKind.IdentifierCollision],
                                   gen.emit(ast.add(ast.Symbol('jnp'), self.x)).diagnostics)
        self.assertTrue(gen.emit(ast.add(ast.Symbol('np'), self.x)).ok)

        # A parameter shadows the alias even when the body does not mention it.
        definition = FunctionDefinition(
            name='f', parameters=('np', 'x'), body=ast.call('Cos', self.x))
        result = self.gen.emit_function(definition)
        self.assertDiagnosticKinds([DiagnosticKind.IdentifierCollision], result.diagnostics)

        definition = FunctionDefinition(
            name='f', parameters=('np',), body=ast.call('Cos', ast.Symbol('np')))
        result = self.gen.emit_function(definition)
        self.assertDiagnosticKinds([DiagnosticKind.IdentifierCollision], result.diagnostics)

    def test_custom_generator(self):
        """Formatting methods can be overridden by inheriting."""

        class CustomGenerator(code_generation.PythonGenerator):

            def format_call(self, call: ast.Call) -> str:
                if call.function == 'BesselJ':
                    args = ', '.join(self.format(x) for x in call.args)
                    return f'scipy.special.jv({args})'
                return super().format_call(call)

        gen = CustomGenerator()
        self.assertEqual('scipy.special.jv(0, x)*np.cos(x)',
                         gen.format(ast.mul(ast.call('BesselJ', ast.Number(0), self.x),
                                            ast.call('Cos', self.x))))
        with self.assertRaises(TypeError):
            gen.format('x')

    def test_missing_formatter(self):

        class IncompleteGenerator(code_generation.BaseGenerator):

            def format_symbol(self, sym: ast.Symbol) -> str:
                return sym.name

        gen = IncompleteGenerator()
        self.assertEqual('x', gen.format(self.x))
        with self.assertRaises(KeyError):
            gen.format(ast.add(self.x, self.y))

    def test_emit_function(self):
        definition = FunctionDefinition(
            name='f', parameters=('x', 'y'), body=ast.add(self.x, ast.pow(self.y, 2)))
        result = self.gen.emit_function(definition)
        self.assertEqual('def f(x, y):\n    return x + y**2', result.code)
        self.assertTrue(result.ok)

        module = self.gen.emit_module([definition, definition])
        self.assertEqual(
            'import numpy as np\n\n\n' + 'def f(x, y):\n    return x + y**2\n\n\n' +
            'def f(x, y):\n    return x + y**2', module.code)


class ToPythonTest(MathTestBase):
    """Test the public conversion functions and their file output."""

    def setUp(self):
        super().setUp()
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp_dir = pathlib.Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_to_python_string(self):
        x = sp.Symbol('x')
        result = code_generation.to_python_string(sp.sin(x))
        self.assertEqual('np.sin(x)', result.code)
        self.assertTrue(result.ok)

        result = code_generation.to_python_string(ast.sqrt(ast.Symbol('x')))
        self.assertEqual('np.sqrt(x)', result.code)

    def test_write_and_append(self):
        path = self.tmp_dir / 'nested' / 'dirs' / 'out.py'
        x = ast.Symbol('x')

        result = code_generation.to_python_string(ast.pow(x, 2), path=path)
        self.assertTrue(result.ok)
        self.assertEqual('x**2', path.read_text())

        code_generation.to_python_string(ast.pow(x, 3), path=str(path), append=True)
        self.assertEqual('x**2x**3\n', path.read_text())

        code_generation.to_python_string(ast.pow(x, 4), path=path, append=True)
        self.assertEqual('x**2x**3\nx**4\n', path.read_text())

        code_generation.to_python_string(x, path=path)
        self.assertEqual('x', path.read_text())

    def test_function_append_separator(self):
        path = self.tmp_dir / 'functions.py'
        store = DefinitionStore()
        x = sp.Symbol('x')
        store.define(PatternCall('square', (Blank('x'),)), x**2)
        store.define(PatternCall('cube', (Blank('x'),)), x**3)

        code_generation.to_python(store.lookup('square'), path=path, append=True)
        code_generation.to_python(store.lookup('cube'), path=path, append=True)
        self.assertEqual(
            'def square(x):\n    return x**2\n\n' + 'def cube(x):\n    return x**3\n\n',
            path.read_text())

    def test_write_failure(self):
        blocker = self.tmp_dir / 'blocker'
        blocker.write_text('not a directory')
        path = os.path.join(str(blocker), 'out.py')

        with self.assertLogs('rootfold.code_generation', level='WARNING'):
            result = code_generation.to_python_string(ast.Symbol('x'), path=path)
        self.assertEqual('x', result.code)
        self.assertDiagnosticKinds([DiagnosticKind.WriteFailure], result.diagnostics)
        self.assertEqual(path, result.diagnostics[0].payload['path'])

    def test_to_python_no_definition(self):
        store = DefinitionStore()
        path = self.tmp_dir / 'never_written.py'
        with self.assertLogs('rootfold.code_generation', level='WARNING'):
            result = code_generation.to_python(store.lookup('missing'), path=path)
        self.assertEqual('', result.code)
        self.assertDiagnosticKinds([DiagnosticKind.NoDefinitionFound], result.diagnostics)
        self.assertFalse(path.exists())

    def test_to_python_callable(self):

        def kinetic_energy(m, v):
            return m * v**2 / 2

        result = code_generation.to_python(kinetic_energy)
        self.assertTrue(result.ok)
        self.assertTrue(result.code.startswith('def kinetic_energy(m, v):\n    return '))
        self.assertIn('v**2', result.code)

    def test_to_python_with_radicals(self):
        a, b = sp.symbols('a b')
        store = DefinitionStore()
        store.define(PatternCall('g', (Blank('a'), Blank('b'))), sp.sqrt(a) * sp.sqrt(b))

        result = code_generation.to_python(store.lookup('g'), radicals=NO_ASSUMPTIONS)
        self.assertEqual('def g(a, b):\n    return np.sqrt(a*b)', result.code)

        result = code_generation.to_python(
            store.lookup('g'), radicals=AssumptionSet(a < 0, b < 0))
        self.assertEqual('def g(a, b):\n    return -np.sqrt(a*b)', result.code)

        # Unknown sign of `b`: the body is left alone.
        with self.assertLogs('rootfold.code_generation', level='WARNING'):
            result = code_generation.to_python(store.lookup('g'), radicals=AssumptionSet(a > 0))
        self.assertEqual('def g(a, b):\n    return np.sqrt(a)*np.sqrt(b)', result.code)
        self.assertDiagnosticKinds([DiagnosticKind.UnknownSigns], result.diagnostics)

    def test_to_python_module(self):
        """A failing function does not prevent its siblings from being generated."""
        x = sp.Symbol('x')
        store = DefinitionStore()
        store.define(PatternCall('f', (Blank('x'),)), sp.cos(x))
        store.define(PatternCall('h', (Blank('x'), Blank('x$'))), x)

        with self.assertLogs('rootfold.code_generation', level='WARNING'):
            result = code_generation.to_python_module(
                [store.lookup('f'), store.lookup('missing'), store.lookup('h')])
        self.assertEqual('import numpy as np\n\n\ndef f(x):\n    return np.cos(x)', result.code)
        self.assertDiagnosticKinds(
            [DiagnosticKind.NoDefinitionFound, DiagnosticKind.AmbiguousSignature],
            result.diagnostics)

    def test_to_python_string_sympy_functions(self):
        """Sympy functions without a host name are emitted verbatim."""
        x, y = sp.symbols('x y')
        result = code_generation.to_python_string(sp.atan2(y, x))
        self.assertEqual('np.arctan2(y, x)', result.code)
        self.assertTrue(result.ok)

        with self.assertLogs('rootfold.code_generation', level='WARNING'):
            result = code_generation.to_python_string(sp.besselj(0, x) + sp.gamma(y))
        self.assertIn('besselj(0, x)', result.code)
        self.assertIn('gamma(y)', result.code)
        self.assertDiagnosticKinds(
            [DiagnosticKind.UnmappedFunction, DiagnosticKind.UnmappedFunction],
            result.diagnostics)
        self.assertEqual({'besselj', 'gamma'},
                         {d.payload['function'] for d in result.diagnostics})

    def test_to_python_module_conversion_failure(self):
        """A callable that cannot be converted is reported, and its siblings are generated."""

        def good(x, y):
            return sp.atan2(y, x)

        def bad(x):
            return sp.Eq(x, 1)

        with self.assertLogs('rootfold.code_generation', level='WARNING'):
            result = code_generation.to_python_module([good, bad, lambda *args: args[0]])
        self.assertEqual('import numpy as np\n\n\ndef good(x, y):\n    return np.arctan2(y, x)',
                         result.code)
        self.assertDiagnosticKinds(
            [DiagnosticKind.ConversionFailure, DiagnosticKind.ConversionFailure],
            result.diagnostics)
        self.assertEqual('bad', result.diagnostics[0].payload['name'])

        with self.assertLogs('rootfold.code_generation', level='WARNING'):
            result = code_generation.to_python(bad)
        self.assertEqual('', result.code)
        self.assertDiagnosticKinds([DiagnosticKind.ConversionFailure], result.diagnostics)

    def test_to_python_negative_base_policy(self):
        a, b, c = sp.symbols('a b c')
        store = DefinitionStore()
        store.define(
            PatternCall('g', (Blank('a'), Blank('b'), Blank('c'))),
            sp.sqrt(a) * sp.sqrt(b) * sp.sqrt(c))
        assumptions = AssumptionSet(a < 0, b < 0, c < 0)

        result = code_generation.to_python(store.lookup('g'), radicals=assumptions)
        self.assertEqual('def g(a, b, c):\n    return -np.sqrt(a*b*c)', result.code)

        with self.assertLogs('rootfold.code_generation', level='WARNING'):
            result = code_generation.to_python(
                store.lookup('g'), radicals=assumptions, policy=NegativeBasePolicy.DeclineOdd)
        self.assertEqual('def g(a, b, c):\n    return np.sqrt(a)*np.sqrt(b)*np.sqrt(c)',
                         result.code)
        self.assertDiagnosticKinds([DiagnosticKind.OddNegativeRadicand], result.diagnostics)

        with self.assertLogs('rootfold.code_generation', level='WARNING'):
            result = code_generation.to_python_module(
                [store.lookup('g')], radicals=assumptions, policy=NegativeBasePolicy.DeclineOdd)
        self.assertDiagnosticKinds([DiagnosticKind.OddNegativeRadicand], result.diagnostics)


if __name__ == '__main__':
    unittest.main()
