"""
The uses and definitions of names, as given by the def-use chains.

Each name use or definition of an analyzed module has a `Def`. The ones binding a
name are `NameDef`, the ones opening a scope are `Scope`.
"""
from __future__ import annotations

import ast
import inspect
from typing import Collection, Dict, Optional, Union, cast

import attr as attrs

from .shared import node_name


@attrs.s(eq=False, repr=False)
class Def:
    """
    A node of the chains, and the uses it reaches. Compared by identity.
    """
    node: ast.AST = attrs.ib()
    islive: bool = attrs.ib(default=True, kw_only=True)
    _users: Dict[Def, None] = attrs.ib(factory=dict, init=False)

    def add_user(self, user: Def) -> None:
        self._users[user] = None

    def users(self) -> Collection[Def]:
        """
        The uses reached by this definition, in order.
        """
        return self._users.keys()

    def name(self) -> Optional[str]:
        return None

    def __repr__(self) -> str:
        name = self.name()
        what = f'name={name}' if name else f'node=<{type(self.node).__name__}>'
        return f'<{type(self).__qualname__}({what})>'


class NameDef(Def):
    """
    A definition binding a name.
    """
    node: Union[ast.Module, ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef,
                ast.Name, ast.arg, ast.alias]

    def name(self) -> str:
        return cast(str, node_name(self.node))


class Scope(Def):
    def name(self) -> str:
        raise NotImplementedError()


class OpenScope(Scope):
    """
    Modules and classes: their names can be reached as attributes.
    """
    node: Union[ast.Module, ast.ClassDef]


class ClosedScope(Scope):
    """
    Functions, lambdas and comprehensions: their names are ``<locals>``.
    """


class Lamb(ClosedScope):
    node: ast.Lambda

    def name(self) -> str:
        return '<lambda>'


class Comp(ClosedScope):
    node: Union[ast.GeneratorExp, ast.ListComp, ast.DictComp, ast.SetComp]

    def name(self) -> str:
        return f'<{type(self.node).__name__.lower()}>'


@attrs.s(eq=False, repr=False)
class Mod(NameDef, OpenScope):
    """
    A module. Modules are not in the chains, the state adds them.
    """
    node: ast.Module
    _modname: str = attrs.ib(kw_only=True)
    is_package: bool = attrs.ib(default=False, kw_only=True)
    _filename: Optional[str] = attrs.ib(default=None, kw_only=True)

    def name(self) -> str:
        return self._modname

    def filename(self) -> str:
        return self._filename or self._modname


class Cls(NameDef, OpenScope):
    node: ast.ClassDef


class Func(NameDef, ClosedScope):
    node: Union[ast.FunctionDef, ast.AsyncFunctionDef]


class Var(NameDef):
    """
    A variable store: assignment target, loop variable, ``with ... as`` target.
    """
    node: ast.Name


@attrs.s(eq=False, repr=False)
class Arg(NameDef):
    """
    A function parameter.
    """
    node: ast.arg
    default: Optional[ast.expr] = attrs.ib(default=None, kw_only=True)
    kind: inspect._ParameterKind = attrs.ib(default=inspect.Parameter.POSITIONAL_OR_KEYWORD,
                                            kw_only=True)
    index: Optional[int] = attrs.ib(default=None, kw_only=True)
    """
    The position of the parameter in a call, None for keyword-only and variadic parameters.
    """


@attrs.s(eq=False, repr=False)
class Imp(NameDef):
    """
    A name bound by an import, ``orgname`` is None for ``import x``.
    """
    node: ast.alias
    orgmodule: str = attrs.ib(kw_only=True)
    orgname: Optional[str] = attrs.ib(default=None, kw_only=True)

    def target(self) -> str:
        """
        The qualified name of the imported symbol.
        """
        return f'{self.orgmodule}.{self.orgname}' if self.orgname else self.orgmodule


@attrs.s(frozen=True, auto_attribs=True, repr=False)
class Binding:
    """
    A variable: a name bound in a given scope node.

    All stores of a name in a scope give the same binding, so a binding
    identifies a variable across reassignments.
    """

    scope: ast.AST
    name: str

    def __repr__(self) -> str:
        scopename = getattr(self.scope, 'name', type(self.scope).__name__.lower())
        return f'<Binding({scopename}.{self.name})>'
