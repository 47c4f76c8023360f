"""
cellscript: scriptable cellular automaton engine

A topology-agnostic grid of dynamically-typed cell states, advanced one
generation at a time by a user-authored rule script running in a sandbox.
"""

from .config import EngineConfig
from .core.grid import Grid
from .core.stepper import CellFault, Stepper, StepperState, StepReport
from .core.topology import Coordinate, EdgePolicy, Neighbor, Topology, TopologyKind
from .core.value import Value, ValueKind, default_for, equals, from_native
from .errors import (CellscriptError, CompileError, FatalError, OutOfBounds,
                     RuleError, RuleFault, RuleTimeout, StepperFaulted,
                     StepperStateError, TagMismatch, UnsupportedKind)
from .scripting.rules import Rule, compile_rule

__version__ = "0.1.0"

__all__ = [
    'EngineConfig',
    'Grid',
    'Stepper',
    'StepperState',
    'StepReport',
    'CellFault',
    'Coordinate',
    'EdgePolicy',
    'Neighbor',
    'Topology',
    'TopologyKind',
    'Value',
    'ValueKind',
    'default_for',
    'equals',
    'from_native',
    'Rule',
    'compile_rule',
    'CellscriptError',
    'CompileError',
    'FatalError',
    'OutOfBounds',
    'RuleError',
    'RuleFault',
    'RuleTimeout',
    'StepperFaulted',
    'StepperStateError',
    'TagMismatch',
    'UnsupportedKind',
    '__version__',
]
