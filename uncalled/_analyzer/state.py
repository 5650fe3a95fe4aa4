"""
The analyzed project: modules, chains and the queries the checker makes on them.
"""
from __future__ import annotations

import ast
import sys
import time
from collections import deque
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    TextIO,
    Tuple,
    Type as typingType,
    TypeVar,
    Union,
    cast,
)

import attr as attrs
from typeshed_client import get_stub_file, get_search_context
from typeshed_client.finder import parse_stub_file

from .._lib.shared import node2dottedname
from .._lib.exceptions import (
    NodeLocation,
    StaticAttributeError,
    StaticException,
    StaticNameError,
    StaticStateIncomplete,
    StaticValueError,
)
from .._lib.model import (Binding, ClosedScope, Cls, Def, Imp, Mod, NameDef,
                          Scope, Var)

if TYPE_CHECKING:
    from typing import NoReturn, Protocol
    from .typeinfer import Type
else:
    Protocol = object

T = TypeVar("T", bound=ast.AST)

_COMPREHENSIONS = (ast.SetComp, ast.DictComp, ast.ListComp, ast.GeneratorExp)
_FUNCTIONS = (ast.FunctionDef, ast.AsyncFunctionDef)
_SCOPES = (*_COMPREHENSIONS, *_FUNCTIONS, ast.Lambda, ast.ClassDef, ast.Module)


class _Msg(Protocol):
    def __call__(self, msg: str, ctx: Optional[ast.AST] = None, thresh: int = 0) -> None:
        ...


class State:
    """
    Read access to the analysis of the `Project`.

    The syntax tree parents of the nodes give the statements around a call.
    The def-use chains and the locals of each scope give the definitions of the names,
    from which `get_bindings` finds the variables and `get_type` infers the types.
    """

    def __init__(self, msg: _Msg) -> None:
        self.msg = msg

        self._modules: Dict[str, Mod] = {}
        self._dependencies: Set[Mod] = set()
        self._imports: Dict[Mod, FrozenSet[str]] = {}

        self._parents: Dict[ast.AST, Sequence[ast.AST]] = {}
        self._locals: Dict[ast.AST, Mapping[str, Sequence[Optional[NameDef]]]] = {}
        # node -> its definition, and use -> its reaching definitions
        self._chains: Dict[ast.AST, Def] = {}
        self._usedef: Dict[ast.AST, Sequence[Def]] = {}

    # modules

    def get_module(self, name: str) -> Optional[Mod]:
        """
        The module with this dotted name, or None.
        """
        return self._modules.get(name)

    def get_all_modules(self) -> Iterable[Mod]:
        """
        All the modules, the ones loaded from stubs included.
        """
        return self._modules.values()

    def is_dependency(self, mod: Mod) -> bool:
        """
        Whether the module was loaded from stubs. Those are never checked.
        """
        return mod in self._dependencies

    def get_imports(self, mod: Union[Mod, ast.Module]) -> FrozenSet[str]:
        """
        The module paths the module imports, wherever the import statement is.

        :raises StaticStateIncomplete: If the module has not been analyzed.
        """
        if isinstance(mod, ast.AST):
            mod = cast(Mod, self.get_def(mod))
        try:
            return self._imports[mod]
        except KeyError as e:
            raise StaticStateIncomplete(mod, 'module imports not analyzed') from e

    # syntax tree

    def get_parents(self, node: Union[ast.AST, Def]) -> Sequence[ast.AST]:
        """
        The parents of the node, from the module down to the direct parent.

        :raises StaticStateIncomplete: If the node is not in an analyzed module.
        """
        if isinstance(node, Def):
            node = node.node
        try:
            return self._parents[node]
        except KeyError as e:
            raise StaticStateIncomplete(node, 'node not in an analyzed module') from e

    def get_parent(self, node: Union[ast.AST, Def]) -> ast.AST:
        parents = self.get_parents(node)
        if not parents:
            raise StaticValueError(node, 'a module has no parent')
        return parents[-1]

    def get_parent_instance(self, node: Union[ast.AST, Def],
                            cls: Union[typingType[T], Tuple[typingType[T], ...]]) -> T:
        """
        The closest parent of the given type.

        :raises StaticValueError: If there is none.
        """
        for parent in reversed(self.get_parents(node)):
            if isinstance(parent, cls):
                return parent # type:ignore
        raise StaticValueError(node, f'no parent of type {cls}')

    def get_root(self, node: Union[ast.AST, Def]) -> Mod:
        """
        The module of the node.
        """
        if isinstance(node, Def):
            node = node.node
        if not isinstance(node, ast.Module):
            parents = self.get_parents(node)
            if not parents:
                raise StaticStateIncomplete(node, 'no module')
            node = parents[0]
        return cast(Mod, self.get_def(node))

    def get_filename(self, node: Union[ast.AST, Def]) -> Optional[str]:
        """
        The filename of the node's module, None if the node is not in the project.
        """
        try:
            return self.get_root(node).filename()
        except StaticException:
            return None

    # chains

    def _not_in_chains(self, node: ast.AST, e: KeyError) -> NoReturn:
        if node not in self._parents:
            raise StaticStateIncomplete(node, 'node not in an analyzed module') from e
        raise StaticValueError(node, 'not a name use or definition',
                               filename=self.get_filename(node)) from e

    def get_def(self, node: ast.AST, noraise: bool = False) -> Optional[Def]:
        """
        The `Def` of a definition or a use.

        :param noraise: Return None instead of raising.
        :raises StaticValueError: If the node is neither a definition nor a use.
        :raises StaticStateIncomplete: If the node is not in an analyzed module.
        """
        try:
            return self._chains[node]
        except KeyError as e:
            if noraise:
                return None
            self._not_in_chains(node, e)

    def goto_defs(self, node: ast.AST, noraise: bool = False) -> Sequence[Def]:
        """
        The definitions reaching this use, imports and aliases are not followed.
        Builtins have no definition.

        :param noraise: Return an empty list instead of raising.
        :raises StaticNameError: If the name is unbound.
        """
        try:
            defs = self._usedef[node]
        except KeyError as e:
            if noraise:
                return []
            self._not_in_chains(node, e)
        if isinstance(node, ast.Name):
            defs = [d for d in defs if d.name() == node.id]
        if not defs and not noraise:
            raise StaticNameError(node, filename=self.get_filename(node))
        return defs

    def goto_def(self, node: ast.AST, noraise: bool = False) -> Optional[Def]:
        """
        Like `goto_defs`, but only the first live definition.
        """
        defs = _live(self.goto_defs(node, noraise=noraise))
        return defs[0] if defs else None

    # scopes

    def get_enclosing_scope(self, node: Union[Def, ast.AST]) -> Optional[Scope]:
        """
        The scope the node is in, None for modules.
        """
        if isinstance(node, Def):
            node = node.node
        if isinstance(node, ast.Module):
            return None
        return cast(Scope, self.get_def(self.get_parent_instance(node, _SCOPES)))

    def get_all_enclosing_scopes(self, node: Union[Def, ast.AST]) -> Sequence[Scope]:
        """
        The scopes around the node, innermost first and the module last.
        """
        scopes: List[Scope] = []
        scope = self.get_enclosing_scope(node)
        while scope is not None:
            scopes.append(scope)
            scope = self.get_enclosing_scope(scope)
        return scopes

    def get_qualname(self, definition: Union[NameDef, Scope]) -> str:
        """
        The dotted name of the definition, the one of the target symbol for imports.
        Names local to a function are under ``<locals>``.
        """
        if isinstance(definition, Imp):
            return definition.target()
        scope = self.get_enclosing_scope(definition)
        if scope is None:
            return definition.name()
        sep = '.<locals>.' if isinstance(scope, ClosedScope) else '.'
        return f'{self.get_qualname(scope)}{sep}{definition.name()}'

    def get_locals(self, node: Union[Def, ast.AST]) -> Mapping[str, Sequence[Optional[NameDef]]]:
        """
        The names defined in the scope.

        :raises StaticValueError: If the node is not a scope.
        """
        if isinstance(node, Def):
            node = node.node
        if node in self._locals:
            return self._locals[node]
        if isinstance(self.get_def(node), Scope):
            return {}
        raise StaticValueError(node, f'{type(node).__name__} is not a scope',
                               filename=self.get_filename(node))

    def get_local(self, node: Union[Def, ast.AST], name: str) -> Sequence[Optional[NameDef]]:
        """
        The definitions of the name in the scope, empty if there are none.
        """
        return self.get_locals(node).get(name, [])

    # attributes

    def _bases(self, cls: Cls) -> Iterator[Cls]:
        for base in cls.node.bases:
            if isinstance(base, ast.Subscript):
                # Generic[T], Base[int]
                base = base.value
            try:
                definition = self.goto_definition(base, follow_aliases=True)
            except StaticException as e:
                self.msg(f'unresolved base class: {e.msg()}', ctx=base, thresh=2)
                continue
            if isinstance(definition, Cls):
                yield definition

    def get_mro(self, node: Union[Cls, ast.ClassDef], *,
                include_self: bool = True) -> Iterator[Cls]:
        """
        The class and its resolved bases, depth first, each once.
        """
        cls = cast(Cls, self.get_def(node)) if isinstance(node, ast.AST) else node
        seen: Set[Cls] = set()
        todo = deque([cls])
        while todo:
            current = todo.popleft()
            if current in seen:
                continue
            seen.add(current)
            if include_self or current is not cls:
                yield current
            todo.extendleft(reversed(list(self._bases(current))))

    def _from_wildcards(self, mod: Mod, name: str, seen: Set[Mod]) -> Sequence[NameDef]:
        seen.add(mod)
        for imp in self.get_local(mod, '*'):
            if not isinstance(imp, Imp):
                continue
            other = self.get_module(imp.orgmodule)
            if other is not None and other not in seen:
                found = self.get_attribute(other, name, noraise=True, _seen=seen)
                if found:
                    return found
        return []

    def get_attribute(
        self,
        node: Union[ast.ClassDef, ast.Module, Mod, Cls],
        name: str,
        *,
        noraise: bool = False,
        include_inherited: bool = True,
        _seen: Optional[Set[Mod]] = None,
    ) -> Sequence[NameDef]:
        """
        The live definitions of the attribute ``name`` of a module or a class.

        Classes look into their bases. Packages look for a sub-module,
        then modules look into the names imported with ``from x import *``.

        :raises StaticValueError: If the node is not a module or a class.
        :raises StaticAttributeError: If there is no such attribute.
        """
        scope = self.get_def(node, noraise=noraise) if isinstance(node, ast.AST) else node
        if not isinstance(scope, (Mod, Cls)):
            if noraise:
                return []
            raise StaticValueError(node, 'not a module or a class')
        found = _live([d for d in self.get_local(scope, name) if d])
        if not found and isinstance(scope, Cls) and include_inherited:
            for base in self.get_mro(scope, include_self=False):
                found = _live([d for d in self.get_local(base, name) if d])
                if found:
                    break
        if not found and isinstance(scope, Mod):
            sub = self.get_module(f'{scope.name()}.{name}') if scope.is_package else None
            found = [sub] if sub else self._from_wildcards(scope, name, _seen or set())
        if found or noraise:
            return cast(Sequence[NameDef], found)
        raise StaticAttributeError(scope, attr=name, filename=self.get_filename(scope))

    def goto_definition(self, node: Union[ast.AST, Def], *,
                        follow_aliases: bool = False,
                        follow_imports: bool = True) -> Def:
        r"""
        The definition a name or an attribute expression finally refers to.
        Imports are followed into the imported modules, and with ``follow_aliases``,
        so are assignments of names like ``Alias = mod.Cls``.

        >>> p = Project()
        >>> _ = p.add_module(ast.parse('class Cursor:\n def close(self): ...'), 'dbapi')
        >>> app = p.add_module(ast.parse('from dbapi import Cursor\nCursor.close'), 'app')
        >>> p.analyze_project()
        >>> p.state.goto_definition(app.node.body[-1].value)
        <Func(name=close)>

        :raises StaticException: If the definition can't be found.
        """
        if isinstance(node, Def):
            node = node.node
        if isinstance(node, ast.Attribute):
            owner = self.goto_definition(node.value, follow_aliases=follow_aliases,
                                         follow_imports=follow_imports)
            definition: Def = self.get_attribute(owner, node.attr)[-1] # type:ignore
        elif isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load):
            definition = cast(Def, self.goto_def(node))
        elif isinstance(node, (ast.Name, ast.alias, ast.arg, ast.Module, ast.ClassDef, *_FUNCTIONS)):
            definition = cast(Def, self.get_def(node))
        else:
            raise StaticValueError(node, f'{type(node).__name__} is not a name or an attribute',
                                   filename=self.get_filename(node))

        seen: Set[Def] = set()
        while definition not in seen:
            seen.add(definition)
            if isinstance(definition, Imp) and follow_imports:
                mod = self.get_module(definition.orgmodule)
                if mod is None:
                    raise StaticStateIncomplete(definition, f'module {definition.orgmodule!r} not loaded',
                                                filename=self.get_filename(definition))
                if definition.orgname is None:
                    return mod
                definition = self.get_attribute(mod, definition.orgname)[-1]
            elif isinstance(definition, Var) and follow_aliases:
                assign = self.get_parent(definition)
                if not (isinstance(assign, ast.Assign) and assign.targets == [definition.node]
                        and node2dottedname(assign.value)):
                    return definition
                return self.goto_definition(assign.value, follow_aliases=True,
                                            follow_imports=follow_imports)
            else:
                return definition
        raise StaticValueError(definition, 'cyclic definition',
                               filename=self.get_filename(definition))

    # variables

    def _declared(self, func: ast.AST, name: str) -> Optional[str]:
        # 'global' or 'nonlocal' when the function declares the name so
        todo = deque(ast.iter_child_nodes(func))
        while todo:
            node = todo.popleft()
            if isinstance(node, (ast.Global, ast.Nonlocal)) and name in node.names:
                return type(node).__name__.lower()
            if not isinstance(node, _SCOPES):
                todo.extend(ast.iter_child_nodes(node))
        return None

    def _owner(self, node: ast.AST, name: str) -> ast.AST:
        # the scope node the stored name belongs to
        if isinstance(node, ast.arg):
            return self.get_parent_instance(node, (*_FUNCTIONS, ast.Lambda))
        scope = cast(Scope, self.get_enclosing_scope(node))
        if isinstance(self.get_parent(node), ast.NamedExpr):
            # the target of := binds outside of the comprehensions
            while isinstance(scope.node, _COMPREHENSIONS):
                scope = cast(Scope, self.get_enclosing_scope(scope))
        if isinstance(scope.node, _FUNCTIONS):
            declared = self._declared(scope.node, name)
            if declared == 'global':
                return self.get_root(node).node
            if declared == 'nonlocal':
                for outer in self.get_all_enclosing_scopes(scope):
                    if isinstance(outer.node, _FUNCTIONS) and name in self.get_locals(outer):
                        return outer.node
        return scope.node

    def get_bindings(self, node: ast.AST) -> FrozenSet[Binding]:
        """
        The variables a name denotes.

        A store or a parameter is one variable. A loaded name is any of the variables
        of its reaching definitions, none if the name is unbound.
        """
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load):
            return frozenset(b for d in self.goto_defs(node, noraise=True)
                             if isinstance(d, NameDef) and not isinstance(d, Mod)
                             for b in self.get_bindings(d.node))
        if isinstance(node, (ast.ClassDef, *_FUNCTIONS, ast.alias)):
            definition = self.get_def(node, noraise=True)
            scope = self.get_enclosing_scope(node)
            if not isinstance(definition, NameDef) or scope is None:
                return frozenset()
            return frozenset((Binding(scope.node, definition.name()),))
        name = node.id if isinstance(node, ast.Name) else getattr(node, 'arg', None)
        if not isinstance(name, str):
            return frozenset()
        try:
            return frozenset((Binding(self._owner(node, name), name),))
        except StaticException as e:
            self.msg(f'no variable for {name!r}: {e.msg()}', ctx=node, thresh=2)
            return frozenset()

    # types

    def get_type(self, node: Union[ast.AST, Def]) -> Optional[Type]:
        """
        The inferred type of the expression or definition, None when unknown.
        """
        from .typeinfer import _TypeInference
        if isinstance(node, Def):
            node = node.node
        return _TypeInference(self).get_type(node)

    def get_result_types(self, node: ast.Call) -> Optional[Tuple[Optional[Type], ...]]:
        """
        The types of the call results, in order. A callee returning ``tuple[A, B]``
        has two results, one returning ``None`` has none. None when the callee is unknown.
        """
        from .typeinfer import _TypeInference
        return _TypeInference(self).get_result_types(node)


def _live(defs: Sequence[Def]) -> Sequence[Def]:
    # the live definitions, or the last one when all are killed
    if len(defs) <= 1:
        return defs
    return [d for d in defs if d.islive] or [defs[-1]]


class MutableState(State):
    """
    The `State`, with the methods filling it.
    """
    search_context = None

    def add_module(self, node: ast.Module, name: str, *, is_package: bool,
                   filename: Optional[str] = None) -> Mod:
        if name in self._modules:
            raise StaticValueError(node, f'module {name!r} added twice')
        mod = self._modules[name] = Mod(node, modname=name, is_package=is_package,
                                        filename=filename)
        self._chains[node] = mod
        return mod

    def add_typeshed_module(self, modname: str) -> Optional[Mod]:
        """
        Add the stubs of a module, as found by ``typeshed_client``: the bundled typeshed,
        installed stub packages and typed packages.
        """
        if self.search_context is None:
            self.search_context = get_search_context()
        path = get_stub_file(modname, search_context=self.search_context)
        if path is None:
            self.msg(f'no stubs for module {modname!r}', thresh=1)
            return None
        try:
            node = cast(ast.Module, parse_stub_file(path))
        except (SyntaxError, OSError, ValueError) as e:
            self.msg(f'cannot load the stubs of {modname!r} from {path}: {e.__class__.__name__}: {e}')
            return None
        mod = self.add_module(node, modname, is_package=path.stem == '__init__',
                              filename=Path(path).as_posix())
        self._dependencies.add(mod)
        return mod

    def store_analysis(
        self,
        *,
        defuse: Optional[Mapping[ast.AST, Def]] = None,
        locals: Optional[Mapping[ast.AST, Mapping[str, Sequence[Optional[NameDef]]]]] = None,
        ancestors: Optional[Mapping[ast.AST, Sequence[ast.AST]]] = None,
        usedef: Optional[Mapping[ast.AST, Sequence[Def]]] = None,
        imports: Optional[Mapping[Mod, FrozenSet[str]]] = None,
    ) -> None:
        for store, value in ((self._chains, defuse), (self._locals, locals),
                             (self._parents, ancestors), (self._usedef, usedef),
                             (self._imports, imports)):
            if value is not None:
                store.update(value) # type:ignore


@attrs.s(auto_attribs=True, frozen=True, kw_only=True)
class Options:
    dependencies: Union[bool, int] = False
    """
    Load the stubs of the imported modules. ``True`` follows 8 levels of imports,
    an int gives the number of levels.
    """
    outstream: TextIO = sys.stdout
    verbosity: int = 0


class Project:
    """
    The modules to check, analyzed together.

    >>> p = Project(dependencies=False, verbosity=0)
    >>> src1 = p.add_module(ast.parse('''\\
    ... from dbapi import Rows
    ... def query() -> Rows: ...'''), 'src1')
    >>> p.analyze_project()
    >>> sorted(p.state.get_imports(src1))
    ['dbapi', 'dbapi.Rows']
    """

    def __init__(self, **kw: Any) -> None:
        """
        :param kw: The `Options`.
        """
        self.options = Options(**kw)
        self.state: State = MutableState(msg=self.msg)

    def add_module(self, node: ast.Module, name: str, *,
                   is_package: bool = False, filename: Optional[str] = None) -> Mod:
        """
        Add a module, before `analyze_project` is called.

        :param name: The dotted name of the module.
        :param is_package: Whether the module is the ``__init__.py`` of a package.
        :raises StaticValueError: If there is already a module with this name.
        """
        return cast(MutableState, self.state).add_module(
            node, name, is_package=is_package, filename=filename)

    def add_typeshed_module(self, modname: str) -> Optional[Mod]:
        return cast(MutableState, self.state).add_typeshed_module(modname)

    def analyze_project(self) -> None:
        """
        Analyze the added modules, once.
        """
        from .driver import Analyzer
        start = time.time()
        Analyzer(cast(MutableState, self.state), self.options).analyze()
        self.msg(f'analysis took {time.time() - start:.3f} seconds', thresh=1)

    def msg(self, msg: str, ctx: Optional[Union[ast.AST, Def]] = None, thresh: int = 0) -> None:
        """
        Print a message when the verbosity is at least ``thresh``.
        """
        if self.options.verbosity < thresh:
            return
        if ctx is not None:
            location = NodeLocation.make(ctx, self.state.get_filename(getattr(ctx, 'node', ctx)))
            where = f'{location.filename or "<unknown>"}:{location.lineno or "?"}'
            if location.col_offset:
                where = f'{where}:{location.col_offset}'
            msg = f'{where}: {msg}'
        print(msg, file=self.options.outstream)
