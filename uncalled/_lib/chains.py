"""
Def-use chains of a module, computed by ``beniget`` over the ``gast`` tree
and mapped back to the standard library `ast` nodes.
"""
from __future__ import annotations

import ast
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

import gast # type:ignore
from gast.ast3 import Ast3ToGAst # type:ignore
from beniget.beniget import ( # type:ignore
    DefUseChains as BenigetDefUseChains,
    Def as BenigetDef,
)

from .arguments import ArgSpec, iter_arguments
from .exceptions import NodeLocation, StaticCodeUnsupported
from .imports import ImportInfo, parse_imports
from .model import Arg, Cls, Comp, Def, Func, Imp, Lamb, NameDef, Var

Chains = Mapping[ast.AST, Def]
UseChains = Mapping[ast.AST, Sequence[Def]]
Locals = Mapping[ast.AST, Mapping[str, Sequence[Optional[NameDef]]]]

T = TypeVar('T')

_COMPREHENSIONS = (ast.GeneratorExp, ast.ListComp, ast.DictComp, ast.SetComp)
_FUNCTIONS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda)


class _GAstBuilder(Ast3ToGAst):
    # converts to gast, remembering the ast node each gast node comes from.

    def __init__(self) -> None:
        super().__init__()
        self.origin: Dict[gast.AST, ast.AST] = {}

    def visit(self, node: ast.AST) -> gast.AST:
        try:
            new = super().visit(node)
        except StaticCodeUnsupported:
            raise
        except Exception as e:
            raise StaticCodeUnsupported(node, f'syntax, cannot convert to gast: {e}') from e
        if new is not None and not isinstance(node, ast.expr_context):
            self.origin[new] = node
        return new


class _DefUseChains(BenigetDefUseChains):
    """
    Sends the beniget warnings to the project's message callable.
    """

    msg: Optional[Callable[..., None]] = None

    def _report(self, message: str, node: Any) -> None:
        if self.msg is not None:
            self.msg(f'{NodeLocation.make(node, self.filename)}: {message}', thresh=2)

    def unbound_identifier(self, name: str, node: Any) -> None:
        self._report(f'unbound identifier {name!r}', node)

    def warn(self, msg: str, node: Any) -> None:
        self._report(msg, node)


class _Converter:
    """
    Translates the beniget definitions into `Def` instances over `ast` nodes.
    """

    def __init__(self,
                 origin: Mapping[gast.AST, ast.AST],
                 imports: Mapping[ast.alias, ImportInfo],
                 arguments: Mapping[ast.arg, ArgSpec],
                 filename: Optional[str]) -> None:
        self._origin = origin
        self._imports = imports
        self._arguments = arguments
        self._filename = filename
        self._converted: Dict[BenigetDef, Optional[Def]] = {}

    def chains(self, defuse: _DefUseChains) -> Chains:
        result: Dict[ast.AST, Def] = {}
        for bdef in defuse.chains.values():
            converted = self._convert(bdef)
            if converted is not None:
                result[converted.node] = converted
        return result

    def locals(self, defuse: _DefUseChains) -> Locals:
        # call after chains()
        result: Dict[ast.AST, Dict[str, List[Optional[NameDef]]]] = {}
        for scope, bdefs in defuse.locals.items():
            node = self._origin.get(scope)
            if node is None:
                continue
            names = result.setdefault(node, {})
            for bdef in bdefs:
                converted = self._converted.get(bdef)
                if converted is None:
                    # global and nonlocal names
                    continue
                names.setdefault(bdef.name(), []).append(converted) # type:ignore
        return result

    def _convert(self, bdef: BenigetDef) -> Optional[Def]:
        if bdef in self._converted:
            return self._converted[bdef]
        # builtins have no node
        node = self._origin.get(bdef.node) if isinstance(bdef.node, gast.AST) else None
        converted = None if node is None else self._make(node, getattr(bdef, 'islive', True))
        self._converted[bdef] = converted
        if converted is not None:
            for buser in bdef.users():
                user = self._convert(buser)
                if user is not None:
                    converted.add_user(user)
        return converted

    def _lookup(self, table: Mapping[Any, T], node: ast.AST, what: str) -> T:
        try:
            return table[node]
        except KeyError as e:
            raise StaticCodeUnsupported(node, f'{what} was not parsed', filename=self._filename) from e

    def _make(self, node: ast.AST, islive: bool) -> Optional[Def]:
        if isinstance(node, ast.Module):
            # the state adds the modules
            return None
        if isinstance(node, ast.ClassDef):
            return Cls(node, islive=islive)
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            return Func(node, islive=islive)
        if isinstance(node, ast.Lambda):
            return Lamb(node, islive=islive)
        if isinstance(node, _COMPREHENSIONS):
            return Comp(node, islive=islive)
        if isinstance(node, ast.Name) and isinstance(node.ctx, (ast.Store, ast.Del)):
            return Var(node, islive=islive)
        if isinstance(node, ast.arg):
            spec = self._lookup(self._arguments, node, 'argument')
            return Arg(node, islive=islive, default=spec.default, kind=spec.kind, index=spec.index)
        if isinstance(node, ast.alias):
            info = self._lookup(self._imports, node, 'import')
            return Imp(node, islive=islive, orgmodule=info.orgmodule, orgname=info.orgname)
        return Def(node, islive=islive)


def _arguments(node: ast.Module) -> Dict[ast.arg, ArgSpec]:
    return {spec.node: spec
            for func in ast.walk(node) if isinstance(func, _FUNCTIONS)
            for spec in iter_arguments(func.args)}


def defuse_chains_and_locals(
    node: ast.Module,
    modname: str,
    filename: str,
    is_package: bool,
    msg: Optional[Callable[..., None]] = None,
) -> Tuple[Chains, Locals]:
    """
    Compute the def-use chains and the locals of a module.
    """
    builder = _GAstBuilder()
    gast_node = builder.visit(node)

    defuse = _DefUseChains(filename=filename)
    defuse.msg = msg
    # annotations are only resolved by the type inference
    defuse.future_annotations = True
    defuse.visit(gast_node)

    converter = _Converter(builder.origin,
                           parse_imports(node, modname, is_package=is_package),
                           _arguments(node),
                           filename)
    chains = converter.chains(defuse)
    return chains, converter.locals(defuse)


def usedef_chains(chains: Chains) -> UseChains:
    """
    Flip the def-use chains into use-def chains. Uses of builtins are not included,
    names and aliases without definitions map to an empty list.
    """
    result: Dict[ast.AST, List[Def]] = {}
    for definition in chains.values():
        if isinstance(definition.node, (ast.Name, ast.alias)):
            result.setdefault(definition.node, [])
        for use in definition.users():
            result.setdefault(use.node, []).append(definition)
    return result
