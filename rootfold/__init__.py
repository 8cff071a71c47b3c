"""Symbolic expression to python code generation, with assumption-aware radical combination."""

# ruff: noqa: F401

__version__ = "0.1.0"
__license__ = "MIT"

from .assumptions import NO_ASSUMPTIONS, AssumptionSet, sign_of
from .code_generation import (
    BaseGenerator,
    GeneratorConfig,
    Precedence,
    PythonGenerator,
    mkdir_and_write_file,
    to_python,
    to_python_module,
    to_python_string,
    write_output,
)
from .definitions import (
    Blank,
    DefinitionRule,
    DefinitionStore,
    HostDefinition,
    PatternCall,
    PatternList,
    create_host_definition,
    extract_definition,
)
from .diagnostics import CombineResult, Diagnostic, EmitResult, ExtractResult, FunctionDefinition
from .enumerations import (
    DiagnosticKind,
    NegativeBasePolicy,
    PythonGeneratorTarget,
    RadicalStyle,
    Sign,
)
from .identifiers import find_collisions, normalize
from .radicals import combine_sqrt
from .sympy_conversion import from_sympy, to_sympy
