"""
Checks for missing calls, based on `beniget <https://github.com/serge-sans-paille/beniget>`_.

Some values must be followed by a call: a socket must be closed, and so must an HTTP response.
``uncalled`` statically finds the places where the call is never made::

    sock = socket.create_connection(addr)
    sock.sendall(data)
    # (sock.close() should be here)

Goals and non-goals
===================

The checker only follows values within the block where they are produced, plus one level
into the functions defined nearby. Over-approximations are on the side of silence: a call
made on any path, or on any alias of the value, counts.

- Only intra-procedural analysis.
- No points-to analysis: aliases are plain name-to-name assignments.
- No control-flow reconstruction: statements are walked in order, nested blocks included.

The model
=========

Rules are declarative: they describe the results of a watched call and the call
expected on one of them, see `Rule`. They are loaded from YAML, see `Config`.
For each module, the rules are activated against the module paths the module imports.

The checked modules are analyzed with the def-use chains provided by ``beniget``,
the result types of calls are inferred from the annotations of the callees,
and from the stubs of the imported modules when they are available.

How to use the library
======================

- First, create a `Project` instance
- Then add the modules you want to check with `Project.add_module` or `load_path`
- Call `Project.analyze_project()`
- Run a `Checker` over `Project.state`, diagnostics are collected by the `Reporter`

Or use the command line: ``python -m uncalled PATH``.
"""

from ._analyzer.state import Project, State, MutableState, Options
from ._analyzer.loader import load_path
from ._analyzer.typeinfer import Type
from ._lib.model import (Def, Mod, Cls, Func, Var, Arg, Imp, Comp, Lamb,
                         ClosedScope, OpenScope, Scope, NameDef, Binding)
from ._lib.exceptions import *
from .rules import Rule, Result, Expect, CompiledRule
from .config import Config, load_default_config
from .report import Diagnostic, Reporter
from .checker import Checker
from .tracker import CallFlowTracker, call_followed

__version__ = '0.1.0'

__all__ = (

    "Project",
    "Options",
    "State",
    "MutableState", # not public API
    "load_path",

    "Rule",
    "Result",
    "Expect",
    "CompiledRule",
    "Config",
    "load_default_config",
    "Checker",
    "CallFlowTracker",
    "call_followed",
    "Diagnostic",
    "Reporter",

    "Def",
    "Mod",
    "Cls",
    "Func",
    "Var",
    "Arg",
    "Imp",
    "Scope",
    "Comp",
    "Lamb",
    "ClosedScope",
    "OpenScope",
    "NameDef",
    "Binding",

    "Type",

    "NodeLocation",
    "StaticException",
    "StaticNameError",
    "StaticAttributeError",
    "StaticValueError",
    "StaticStateIncomplete",
    "StaticCodeUnsupported",
    "ConfigError",
    "RuleError",
)
