"""
Basic type inference: just enough to know the result types of a call
and the type of a variable, expressed as canonical strings.
"""
from __future__ import annotations

import ast
from typing import (
    Any,
    ClassVar,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    TYPE_CHECKING,
)

import attr as attrs
from attrs import validators

from beniget.beniget import BuiltinsSrc  # type: ignore

from .._lib.model import Def, NameDef, Mod, Cls, Func, Var, Arg, Scope, ClosedScope
from .._lib.shared import node2dottedname, root_name, is_instance_method
from .._lib.arguments import iter_arguments
from .._lib.exceptions import (
    StaticException,
    StaticAttributeError,
    StaticNameError,
    StaticStateIncomplete,
    StaticValueError,
    StaticCodeUnsupported,
)

if TYPE_CHECKING:
    from .state import State

OPTIONAL_MARKER = '?'
"""
Prefix of the canonical form of optional types, the Python counterpart of a reference.
"""

@attrs.s(frozen=True, auto_attribs=True, slots=True)
class Type:
    """
    A type, as much as we can tell.
    """

    name: str = attrs.ib(validator=[validators.instance_of(str),
                                    validators.min_len(1)])
    scope: str = ''
    """
    The qualified name of the scope where the type is defined. This is often a module,
    but it migth be a class or a function in some cases. Empty string for built-ins.
    """

    args: Tuple['Type', ...] = attrs.ib(factory=tuple, converter=tuple, kw_only=True)

    typevar: bool = attrs.ib(default=False, kw_only=True)

    definition: Optional[Def] = attrs.ib(default=None, kw_only=True, eq=False, hash=False, repr=False)
    """
    The type symbol definition, if it has one.
    For callables, it's the function definition.
    """

    receiver: Optional['Type'] = attrs.ib(default=None, kw_only=True, eq=False, hash=False, repr=False)
    """
    For bound methods, the type of the object the method is bound to.
    """

    def __str__(self) -> str:
        return self.canonical

    @property
    def qualname(self) -> str:
        if self.scope:
            return f"{self.scope}.{self.name}"
        return self.name

    @property
    def unknown(self) -> bool:
        return self.qualname == 'typing.Any'

    @property
    def is_union(self) -> bool:
        return self.qualname == 'typing.Union'

    @property
    def is_optional(self) -> bool:
        return self.is_union and any(a.is_none for a in self.args)

    @property
    def is_none(self) -> bool:
        return self.qualname == 'None'

    @property
    def is_tuple(self) -> bool:
        return self.qualname == 'tuple'

    @property
    def is_type(self) -> bool:
        return self.qualname == 'typing.Type'

    @property
    def is_module(self) -> bool:
        return self.qualname == 'types.ModuleType'

    @property
    def is_callable(self) -> bool:
        return self.qualname == 'typing.Callable'

    @property
    def is_typevar(self) -> bool:
        return self.typevar

    @property
    def canonical(self) -> str:
        """
        The canonical form of this type, used to match rules.

        >>> Type('Rows', 'dbapi').canonical
        'dbapi.Rows'
        >>> union(Type('Response', 'http'), Type.NONE).canonical
        '?http.Response'
        >>> Type('dict').add_args([Type('str'), union(Type('int'), Type('str'))]).canonical
        'dict[str, int | str]'
        """
        if self.is_union:
            members = [a for a in self.args if not a.is_none]
            if len(members) == 1 and len(self.args) > 1:
                return OPTIONAL_MARKER + members[0].canonical
            return ' | '.join(a.canonical for a in self.args)
        if self.args:
            args = ', '.join(a.canonical for a in self.args)
            return f'{self.qualname}[{args}]'
        return self.qualname

    def _replace(self, **changes: Any) -> Type:
        return attrs.evolve(self, **changes)

    def add_args(self, args: Iterable[Type]) -> Type:
        """
        Get a copy of the Type with the given args added in the list of args.
        """
        return self._replace(args=(*self.args, *args))

    # Special types:
    Any: ClassVar[Type]
    Union: ClassVar[Type]
    TypeType: ClassVar[Type]
    Callable: ClassVar[Type]
    ModuleType: ClassVar[Type]
    NONE: ClassVar[Type]

Type.Any = Type('Any', 'typing')
Type.Union = Type('Union', 'typing')
Type.TypeType = Type('Type', 'typing')
Type.Callable = Type('Callable', 'typing')
Type.ModuleType = Type('ModuleType', 'types')
Type.NONE = Type('None')


def union(*types: Type) -> Type:
    """
    Get a union of the given types, nested unions are flattened and duplicates removed.
    """
    args: List[Type] = []
    for t in types:
        for member in (t.args if t.is_union else (t,)):
            if member not in args:
                args.append(member)
    if len(args) == 1:
        return args[0]
    return Type.Union._replace(args=args)

def merge(types: Iterable[Type]) -> Type:
    """
    Like `union` but ignores unknown types.
    Returns `Type.Any` if no type is known.
    """
    known = [t for t in types if not t.unknown]
    if not known:
        return Type.Any
    return union(*known)

def substitute(type: Type, bindings: Mapping[Type, Type]) -> Type:
    """
    Replace the type variables by their bound type, unbound type variables become unknown.
    """
    if type.is_typevar:
        return bindings.get(type, Type.Any)
    if not type.args:
        return type
    return type._replace(args=[substitute(a, bindings) for a in type.args])


_redirects = {
    'typing.Dict'           :   'builtins.dict',
    'typing.Tuple'          :   'builtins.tuple',
    'typing.List'           :   'builtins.list',
    'typing.Set'            :   'builtins.set',
    'typing.FrozenSet'      :   'builtins.frozenset',
    'typing.Text'           :   'builtins.str',
    'typing.DefaultDict'    :   'collections.defaultdict',
    'builtins.type'         :   'typing.Type',
}

_specials = frozenset((
    'typing.Any',
    'typing.Union',
    'typing.Optional',
    'typing.Type',
    'typing.Self',
    'typing.Callable',
    'typing.Literal',
    'typing.Annotated',
    'typing.TypeAlias',
))

_awaitables = frozenset((
    'typing.Awaitable',
    'typing.Coroutine',
    'collections.abc.Awaitable',
    'collections.abc.Coroutine',
    'asyncio.Future',
    'asyncio.Task',
    'asyncio.futures.Future',
    'asyncio.tasks.Task',
))

_iterables = frozenset((
    'list',
    'set',
    'frozenset',
    'dict',
    'typing.Iterable',
    'typing.Iterator',
    'typing.Generator',
    'typing.Sequence',
    'collections.abc.Iterable',
    'collections.abc.Iterator',
    'collections.abc.Generator',
    'collections.abc.Sequence',
))

def _normalize_qualname(qualname: str) -> str:
    if qualname.startswith('typing_extensions.'):
        qualname = 'typing.' + qualname[len('typing_extensions.'):]
    return _redirects.get(qualname, qualname)

def SimpleType(qualname:str) -> Type:
    """
    Create a `Type` that is not in the system.
    """
    module, _, name = qualname.rpartition(".")
    if module == 'builtins':
        module = ''
    return Type(name, module)

def SymbolType(state:State, definition:Def, **kw: Any) -> Type:
    """
    Create a `Type` that is defined in the system.
    """
    name = definition.name()
    assert name
    scopedef = state.get_enclosing_scope(definition)
    scope = state.get_qualname(scopedef) if scopedef is not None else ''
    if scope == 'builtins':
        scope = ''
    return Type(name=name,
                scope=scope,
                definition=definition, **kw)

def ClsType(state:State, definition:Cls) -> Type:
    """
    Create the instance `Type` of a classdef.
    """
    return SymbolType(state, definition)

def _lookup_name(state: State, scope: Scope, name: str) -> Sequence[NameDef]:
    # names in annotations: the module first, then the scope and the enclosing functions
    scopes = [scope, *state.get_all_enclosing_scopes(scope)]
    module = scopes.pop()
    order = [module, scopes[0], *(s for s in scopes[1:] if isinstance(s, ClosedScope))] if scopes else [module]
    for candidate in order:
        defs = [d for d in state.get_local(candidate, name) if d and d.islive]
        if defs:
            return defs
    return []

def _qualname_of_expr(state: State, node: ast.AST) -> Optional[str]:
    """
    The qualified name of an expression like ``x.y.z``, by following the chains of ``x``.
    """
    dottedname = node2dottedname(node)
    root = root_name(node)
    if not dottedname or root is None:
        return None
    definition = state.goto_def(root, noraise=True)
    if not isinstance(definition, NameDef):
        return None
    return '.'.join((state.get_qualname(definition), *dottedname[1:]))

def _qualname_in_scope(state: State, scope: Scope, dottedname: Sequence[str]) -> Optional[str]:
    """
    The qualified name of ``x.y.z`` in an annotation, by looking up ``x`` in the scope.
    Annotations are not in the chains when they are strings.
    """
    defs = _lookup_name(state, scope, dottedname[0])
    if not defs:
        return None
    return '.'.join((state.get_qualname(defs[-1]), *dottedname[1:]))

def _defs_of_qualname(state: State, qualname: str) -> Sequence[Def]:
    """
    The definitions of a qualified name, starting from the longest module prefix.

    :raises StaticException: If no module matches or an attribute is missing.
    """
    parts = qualname.split('.')
    for i in range(len(parts), 0, -1):
        mod = state.get_module('.'.join(parts[:i]))
        if mod is not None:
            break
    else:
        raise StaticStateIncomplete(qualname, f'no module for {qualname!r}')
    current: Sequence[Def] = [mod]
    for attr in parts[i:]:
        current = [a for d in current
                   for a in state.get_attribute(d, attr)] # type:ignore
    return current

def _is_typevar(state: State, definition: Def) -> bool:
    if not isinstance(definition, Var):
        return False
    assign = state.get_parent(definition)
    if not isinstance(assign, ast.Assign) or not isinstance(assign.value, ast.Call):
        return False
    qualname = _qualname_of_expr(state, assign.value.func)
    return qualname is not None and _normalize_qualname(qualname) == 'typing.TypeVar'

def AnnotationType(state:State, qualname:str) -> Type:
    """
    Create a `Type` from it's qualified name.

    If the name is not in the system, a type with no definition is returned because
    we can still account for it.
    """
    qualname = _normalize_qualname(qualname)
    if qualname.startswith('builtins.') or qualname in _specials:
        return SimpleType(qualname)
    try:
        defs = _defs_of_qualname(state, qualname)
        definition = state.goto_definition(defs[-1], follow_aliases=True)
    except StaticException:
        return SimpleType(qualname)
    if isinstance(definition, Cls):
        return ClsType(state, definition)
    elif isinstance(definition, Var):
        # a type variable or a type alias, kept nominal.
        return SymbolType(state, definition, typevar=_is_typevar(state, definition))
    return SimpleType(qualname)


class _AnnotationStringParser(ast.NodeTransformer):
    """
    Replaces the strings of an annotation by the expressions they hold,
    except inside `Literal[...]`.
    """

    def __init__(self, filename:str|None) -> None:
        self.filename = filename

    def _parse_string(self, value: str, ctx:ast.AST) -> ast.expr:
        statements = ast.parse(value).body
        if len(statements) != 1:
            raise StaticValueError(ctx, "expected expression, found multiple statements",
                                   filename=self.filename)
        (stmt,) = statements
        if isinstance(stmt, ast.Expr):
            # Expression wrapped in an Expr statement.
            expr = self.visit(stmt.value)
            assert isinstance(expr, ast.expr), expr
            return expr
        else:
            raise StaticValueError(ctx, "expected expression, found statement",
                                   filename=self.filename)

    def visit_Subscript(self, node: ast.Subscript) -> ast.Subscript:
        value = self.visit(node.value)
        if isinstance(value, (ast.Name, ast.Attribute)) and \
                node2dottedname(value) and node2dottedname(value)[-1] == "Literal": # type:ignore
            # Literal[...] expression; don't unstring the arguments.
            slice = node.slice
        else:
            # Other subscript; unstring the slice.
            slice = self.visit(node.slice)
        return ast.fix_missing_locations(
            ast.copy_location(ast.Subscript(value, slice, node.ctx), node))

    def visit_Constant(self, node: ast.Constant) -> ast.expr:
        value = node.value
        if isinstance(value, str):
            return ast.fix_missing_locations(
                ast.copy_location(self._parse_string(value, node), node))
        else:
            const = self.generic_visit(node)
            assert isinstance(const, ast.Constant), const
            return const


class _AnnotationToType(ast.NodeVisitor):
    """
    Converts an annotation into a `Type`.

    :param scope: The scope in which the annotation names are resolved.
    :param typeparams: Type parameters declared with the PEP 695 syntax.
    :param self_type: What ``Self`` stands for.
    """

    def __init__(self, state: State, scope: Scope,
                 typeparams: Optional[Mapping[str, Type]] = None,
                 self_type: Optional[Type] = None) -> None:
        self.state = state
        self.scope = scope
        self.typeparams = typeparams or {}
        self.self_type = self_type

    def generic_visit(self, node: ast.AST) -> Any:
        raise StaticValueError(node, f"unexcepted node in annotation: {type(node).__name__}",
                               filename=self.state.get_filename(node))

    def visit(self, expr: ast.AST) -> Type:
        """
        Callers should catch any `StaticException`.
        """
        return super().visit(expr)

    def _named(self, qualname: str, node: ast.AST) -> Type:
        qualname = _normalize_qualname(qualname)
        if qualname == 'typing.Self':
            if self.self_type is None:
                raise StaticValueError(node, "'Self' outside of a class",
                                       filename=self.state.get_filename(node))
            return self.self_type
        return AnnotationType(self.state, qualname)

    def _resolve(self, node: ast.expr, dottedname: Sequence[str]) -> Optional[str]:
        return (_qualname_of_expr(self.state, node)
                or _qualname_in_scope(self.state, self.scope, dottedname))

    def visit_Name(self, node: ast.Name) -> Type:
        if node.id in self.typeparams:
            return self.typeparams[node.id]
        qualname = self._resolve(node, [node.id])
        if qualname:
            return self._named(qualname, node)
        elif node.id in BuiltinsSrc:
            # the builtin module might not be in the system
            return self._named(f'builtins.{node.id}', node)
        else:
            raise StaticNameError(node, filename=self.state.get_filename(node))

    def visit_Attribute(self, node: ast.Attribute) -> Type:
        dottedname = node2dottedname(node)
        if not dottedname:
            raise StaticValueError(
                node,
                desc="illegal expression in annotation",
                filename=self.state.get_filename(node),
            )
        qualname = self._resolve(node, dottedname)
        if qualname:
            return self._named(qualname, node)
        raise StaticNameError(node, filename=self.state.get_filename(node))

    def visit_Subscript(self, node: ast.Subscript) -> Type:
        left = self.visit(node.value)
        if left.qualname == 'typing.Literal':
            return left
        slicevalue = node.slice
        elements = slicevalue.elts if isinstance(slicevalue, ast.Tuple) else [slicevalue]
        if left.qualname == 'typing.Annotated':
            # the metadata is not a type
            return self.visit(elements[0])
        args = [self._handle_list(el) if isinstance(el, ast.List) else self.visit(el)
                for el in elements]
        if left.qualname == 'typing.Optional':
            return union(*args, Type.NONE)
        if left.is_union:
            return union(*args)
        return left._replace(args=args)

    def visit_BinOp(self, node: ast.BinOp) -> Type:
        # support new style unions
        if isinstance(node.op, ast.BitOr):
            return union(self.visit(node.left), self.visit(node.right))
        raise StaticValueError(node,
            f"binary operation not supported: {node.op.__class__.__name__}",
            filename=self.state.get_filename(node)
        )

    def visit_Constant(self, node: ast.Constant) -> Type:
        value = node.value
        if value is None:
            return Type.NONE
        elif value is Ellipsis:
            return Type("...")
        try:
            # unstring annotations as strings
            expr = _AnnotationStringParser(self.state.get_filename(node)).visit(node)
            if expr is node:
                raise StaticValueError(node, f"unexpected {type(node.value).__name__}",
                        filename=self.state.get_filename(node))
        except SyntaxError as e:
            raise StaticValueError(node, "error in annotation",
                    filename=self.state.get_filename(node)) from e
        return self.visit(expr)

    def _handle_list(self, node: ast.List) -> Type:
        # parameters of a Callable
        params = ', '.join(self.visit(el).canonical for el in node.elts)
        return Type(f'[{params}]')

    visit_List = _handle_list


class _TypeInference:
    """
    Find the `Type` of an expression.
    """

    def __init__(self, state: State) -> None:
        self._state = state
        self._path: Set[ast.AST] = set()

    def get_type(self, expr: ast.AST) -> Optional[Type]:
        try:
            t = self.visit(expr)
        except StaticException as e:
            self._state.msg(f"type inference failed: {e.msg()}", ctx=expr, thresh=2)
            return None
        if t.unknown:
            return None
        return t

    def get_result_types(self, call: ast.Call) -> Optional[Tuple[Optional[Type], ...]]:
        try:
            functype = self.visit(call.func)
            if functype.is_type and functype.args:
                rtype = functype.args[0]
                results: Tuple[Type, ...] = (rtype,)
            else:
                rtype = self._apply(functype, call)
                if rtype.is_none:
                    results = ()
                elif rtype.is_tuple and rtype.args and rtype.args[-1].name != '...':
                    results = rtype.args
                else:
                    results = (rtype,)
        except StaticException as e:
            self._state.msg(f"cannot infer call results: {e.msg()}", ctx=call, thresh=2)
            return None
        return tuple(None if r.unknown else r for r in results)

    def visit(self, node: ast.AST) -> Type:
        if node in self._path:
            raise StaticValueError(node, 'recursive definition',
                                   filename=self._state.get_filename(node))
        clsname = type(node).__name__
        ctx = getattr(node, 'ctx', None)
        visitor = None
        if ctx is not None:
            visitor = getattr(self, f'visit_{clsname}_{type(ctx).__name__}', None)
        visitor = visitor or getattr(self, f'visit_{clsname}', None)
        if visitor is None:
            raise StaticCodeUnsupported(node, f'{clsname} expression',
                                        filename=self._state.get_filename(node))
        self._path.add(node)
        try:
            return visitor(node)
        finally:
            self._path.discard(node)

    def _try_visit(self, node: ast.AST) -> Type:
        try:
            return self.visit(node)
        except StaticException:
            return Type.Any

    #########################################
    ###      expressions                  ###
    #########################################

    def visit_Constant(self, node: ast.Constant) -> Type:
        if node.value is None:
            return Type.NONE
        return Type(type(node.value).__name__)

    def visit_JoinedStr(self, node: ast.JoinedStr) -> Type:
        return Type('str')

    def visit_IfExp(self, node: ast.IfExp) -> Type:
        return merge((self._try_visit(node.body), self._try_visit(node.orelse)))

    def visit_BoolOp(self, node: ast.BoolOp) -> Type:
        return merge(self._try_visit(v) for v in node.values)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> Type:
        return self.visit(node.value)

    def visit_Lambda(self, node: ast.Lambda) -> Type:
        return Type.Callable

    def visit_Await(self, node: ast.Await) -> Type:
        t = self.visit(node.value)
        if t.qualname in _awaitables and t.args:
            return t.args[-1]
        return t

    def visit_Call(self, node: ast.Call) -> Type:
        functype = self.visit(node.func)
        if functype.is_type and functype.args:
            return functype.args[0]
        return self._apply(functype, node)

    def visit_Subscript_Load(self, node: ast.Subscript) -> Type:
        valuetype = self.visit(node.value)
        if valuetype.is_tuple and valuetype.args:
            if len(valuetype.args) == 2 and valuetype.args[1].name == '...':
                return valuetype.args[0]
            index = node.slice
            if isinstance(index, ast.Constant) and isinstance(index.value, int):
                try:
                    return valuetype.args[index.value]
                except IndexError:
                    pass
        elif valuetype.qualname == 'list' and len(valuetype.args) == 1:
            return valuetype.args[0]
        elif valuetype.qualname == 'dict' and len(valuetype.args) == 2:
            return valuetype.args[1]
        raise StaticValueError(node, f'cannot infer subscript of type {valuetype.canonical}',
                               filename=self._state.get_filename(node))

    def visit_Attribute_Load(self, node: ast.Attribute) -> Type:
        return self._attribute_type(self.visit(node.value), node.attr, node)

    def visit_Name_Load(self, node: ast.Name) -> Type:
        defs = self._state.goto_defs(node, noraise=True)
        if not defs:
            if isinstance(BuiltinsSrc.get(node.id), type):
                return Type.TypeType.add_args((Type(node.id),))
            raise StaticNameError(node, filename=self._state.get_filename(node))
        newtype = merge(self._try_visit(d.node) for d in defs)
        if newtype.unknown:
            raise StaticValueError(
                node,
                f"found {len(defs)} definition(s) for name {node.id!r}, but none of them have a known type",
                filename=self._state.get_filename(node),
            )
        return newtype

    def visit_alias(self, node: ast.alias) -> Type:
        return self._definition_type(self._state.goto_definition(node))

    #########################################
    ###      definitions                  ###
    #########################################

    def visit_Module(self, node: ast.Module) -> Type:
        return Type.ModuleType._replace(definition=self._state.get_def(node))

    def visit_ClassDef(self, node: ast.ClassDef) -> Type:
        return Type.TypeType.add_args((ClsType(self._state, self._state.get_def(node)),))

    def visit_FunctionDef(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> Type:
        return Type.Callable._replace(definition=self._state.get_def(node))

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_arg(self, node: ast.arg) -> Type:
        arg_def = self._state.get_def(node)
        assert isinstance(arg_def, Arg)
        func = self._state.get_parent_instance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda))
        if node.annotation is not None:
            annotation = self._annotation(node.annotation, func)
            if arg_def.kind.name == 'VAR_POSITIONAL':
                return Type('tuple').add_args((annotation, Type('...')))
            if arg_def.kind.name == 'VAR_KEYWORD':
                return Type('dict').add_args((Type('str'), annotation))
            return annotation
        if arg_def.index == 0 and isinstance(func, (ast.FunctionDef, ast.AsyncFunctionDef)):
            # implicit 'self' or 'cls'
            parent = self._state.get_parent(func)
            if isinstance(parent, ast.ClassDef):
                decorators = self._decorators(func)
                clstype = ClsType(self._state, self._state.get_def(parent))
                if 'classmethod' in decorators or func.name in ('__new__', '__init_subclass__'):
                    return Type.TypeType.add_args((clstype,))
                if 'staticmethod' not in decorators:
                    return clstype
        if arg_def.default is not None and not (
                isinstance(arg_def.default, ast.Constant) and arg_def.default.value is None):
            return self.visit(arg_def.default)
        raise StaticValueError(node, f'no known type for parameter {node.arg!r}',
                               filename=self._state.get_filename(node))

    def visit_Name_Store(self, node: ast.Name) -> Type:
        path: List[int] = []
        child: ast.AST = node
        parent = self._state.get_parent(node)
        while isinstance(parent, (ast.Tuple, ast.List)):
            path.insert(0, next(i for i, e in enumerate(parent.elts) if e is child))
            child, parent = parent, self._state.get_parent(parent)
        if isinstance(parent, ast.Starred):
            raise StaticCodeUnsupported(node, 'starred assignment',
                                        filename=self._state.get_filename(node))
        if isinstance(parent, ast.AnnAssign) and not path:
            return self._annotation(parent.annotation, node)
        if isinstance(parent, ast.Assign):
            return self._value_at(parent.value, path)
        if isinstance(parent, ast.NamedExpr):
            return self._value_at(parent.value, path)
        if isinstance(parent, ast.withitem) and not path:
            return self._enter_type(parent, node)
        if isinstance(parent, (ast.For, ast.AsyncFor, ast.comprehension)):
            itertype = self._element_type(self.visit(parent.iter), node)
            return self._unpack(itertype, path, node)
        raise StaticCodeUnsupported(node, f'assignment in {type(parent).__name__}',
                                    filename=self._state.get_filename(node))

    #########################################
    ###      type inference helpers       ###
    #########################################

    def _definition_type(self, definition: Def) -> Type:
        if isinstance(definition, (Mod, Cls, Func)) or isinstance(definition.node, ast.arg):
            return self.visit(definition.node)
        if isinstance(definition.node, ast.Name):
            return self.visit(definition.node)
        raise StaticValueError(definition, f'no known type for {definition!r}',
                               filename=self._state.get_filename(definition))

    def _decorators(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> Set[str]:
        names = (node2dottedname(d) for d in node.decorator_list)
        return {n[-1] for n in names if n}

    def _scope_context(self, node: ast.AST) -> Tuple[Scope, Dict[str, Type], Optional[Type]]:
        # returns the scope, PEP 695 type parameters and Self type for the annotations
        # of the given function, or node within a function.
        typeparams: Dict[str, Type] = {}
        self_type: Optional[Type] = None
        scope = self._state.get_enclosing_scope(node)
        assert scope is not None
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            scopes = [self._state.get_def(node), *self._state.get_all_enclosing_scopes(node)]
        else:
            scopes = list(self._state.get_all_enclosing_scopes(node))
        for s in scopes:
            for param in getattr(s.node, 'type_params', ()):
                name = getattr(param, 'name', None)
                if name and name not in typeparams:
                    typeparams[name] = Type(name, self._state.get_qualname(s), typevar=True)
            if self_type is None and isinstance(s, Cls):
                self_type = ClsType(self._state, s)
        return scope, typeparams, self_type

    def _annotation(self, annotation: ast.expr, ctx: ast.AST, self_type: Optional[Type] = None) -> Type:
        scope, typeparams, default_self = self._scope_context(ctx)
        return _AnnotationToType(self._state, scope, typeparams,
                                 self_type or default_self).visit(annotation)

    def _unpack(self, valuetype: Type, path: Sequence[int], ctx: ast.AST) -> Type:
        for i in path:
            if valuetype.is_tuple and len(valuetype.args) > i and \
                    not any(a.name == '...' for a in valuetype.args):
                valuetype = valuetype.args[i]
            else:
                raise StaticValueError(ctx, f'cannot unpack type {valuetype.canonical}',
                                       filename=self._state.get_filename(ctx))
        return valuetype

    def _value_at(self, value: ast.expr, path: Sequence[int]) -> Type:
        while path and isinstance(value, (ast.Tuple, ast.List)) and \
                not any(isinstance(e, ast.Starred) for e in value.elts) and \
                len(value.elts) > path[0]:
            value, path = value.elts[path[0]], path[1:]
        return self._unpack(self.visit(value), path, value)

    def _element_type(self, itertype: Type, ctx: ast.AST) -> Type:
        if itertype.is_tuple and len(itertype.args) == 2 and itertype.args[1].name == '...':
            return itertype.args[0]
        if itertype.qualname in _iterables and itertype.args:
            return itertype.args[0]
        raise StaticValueError(ctx, f'cannot infer iteration over {itertype.canonical}',
                               filename=self._state.get_filename(ctx))

    def _enter_type(self, item: ast.withitem, ctx: ast.AST) -> Type:
        ctxtype = self.visit(item.context_expr)
        method = '__aenter__' if isinstance(self._state.get_parent(item), ast.AsyncWith) else '__enter__'
        try:
            enter = self._attribute_type(ctxtype, method, ctx)
            result = self._apply(enter, None)
        except StaticException:
            return ctxtype
        if result.unknown:
            return ctxtype
        return result

    def _ivar_type(self, cls: Cls, attr: str, ctx: ast.AST) -> Type:
        # instance variables assigned in methods: self.attr = ...
        for base in self._state.get_mro(cls):
            for method in base.node.body:
                if not isinstance(method, (ast.FunctionDef, ast.AsyncFunctionDef)) or \
                        not is_instance_method(method):
                    continue
                for n in ast.walk(method):
                    if isinstance(n, ast.AnnAssign):
                        targets = [n.target]
                    elif isinstance(n, ast.Assign):
                        targets = n.targets
                    else:
                        continue
                    for target in targets:
                        if isinstance(target, ast.Attribute) and target.attr == attr and \
                                isinstance(target.value, ast.Name) and target.value.id == 'self':
                            if isinstance(n, ast.AnnAssign):
                                return self._annotation(n.annotation, target)
                            if n.value is not None:
                                return self.visit(n.value)
        raise StaticAttributeError(cls, attr=attr, filename=self._state.get_filename(cls))

    def _member_type(self, definition: Def, instance: Optional[Type], owner: Type) -> Type:
        # the type of a class member accessed on an instance or on the class itself.
        if isinstance(definition, Func):
            decorators = self._decorators(definition.node)
            if instance is not None and decorators & {'property', 'cached_property'}:
                return self._return_type(self._implementation(definition), None, instance)
            if 'staticmethod' in decorators:
                return self.visit(definition.node)
            if 'classmethod' in decorators:
                return self.visit(definition.node)._replace(receiver=owner)
            if instance is not None:
                return self.visit(definition.node)._replace(receiver=instance)
        return self._definition_type(definition)

    def _attribute_type(self, valuetype: Type, attr: str, ctx: ast.AST) -> Type:
        """
        Get the type of an attribute access ``attr`` on the given ``valuetype``.
        """
        if valuetype.is_union:
            newtype = merge(self._try_attribute_type(m, attr, ctx)
                            for m in valuetype.args if not m.is_none)
            if newtype.unknown:
                raise StaticValueError(ctx, f'attribute {attr!r} not found in any of {valuetype.canonical}',
                                       filename=self._state.get_filename(ctx))
            return newtype
        definition = valuetype.definition
        if valuetype.is_module and isinstance(definition, Mod):
            attrdef = self._state.get_attribute(definition, attr)[-1]
            return self._definition_type(self._state.goto_definition(attrdef))
        if valuetype.is_type and valuetype.args:
            instance = None
            owner = valuetype
            definition = valuetype.args[0].definition
        else:
            instance = owner = valuetype
        if isinstance(definition, Cls):
            attrdefs = self._state.get_attribute(definition, attr, noraise=True)
            if attrdefs:
                return self._member_type(self._state.goto_definition(attrdefs[-1]), instance, owner)
            if instance is not None:
                return self._ivar_type(definition, attr, ctx)
        raise StaticValueError(ctx, f"can't look for attribute {attr!r} on type {valuetype.canonical}",
                               filename=self._state.get_filename(ctx))

    def _try_attribute_type(self, valuetype: Type, attr: str, ctx: ast.AST) -> Type:
        try:
            return self._attribute_type(valuetype, attr, ctx)
        except StaticException:
            return Type.Any

    def _implementation(self, func: Func) -> Func:
        # prefer the implementation over the @overload stubs, else the last overload.
        scope = self._state.get_enclosing_scope(func)
        assert scope is not None
        candidates = [d for d in self._state.get_local(scope, func.name()) if isinstance(d, Func)]
        if len(candidates) <= 1:
            return func
        implementations = [d for d in candidates if 'overload' not in self._decorators(d.node)]
        return (implementations or candidates)[-1]

    def _apply(self, functype: Type, call: Optional[ast.Call]) -> Type:
        """
        Get the result type of calling something of type ``functype``.
        """
        if functype.is_union:
            return merge(self._try_apply(m, call) for m in functype.args)
        definition = functype.definition
        if functype.is_callable and isinstance(definition, Func):
            return self._return_type(self._implementation(definition), call, functype.receiver)
        if isinstance(definition, Cls) and not functype.is_type:
            # instances with a __call__ method
            ctx = call or definition.node
            return self._apply(self._attribute_type(functype, '__call__', ctx), call)
        ctx = call or definition or functype
        raise StaticValueError(ctx, f'cannot infer call result of type {functype.canonical}')

    def _try_apply(self, functype: Type, call: Optional[ast.Call]) -> Type:
        try:
            return self._apply(functype, call)
        except StaticException:
            return Type.Any

    def _return_type(self, func: Func, call: Optional[ast.Call], receiver: Optional[Type]) -> Type:
        node = func.node
        if node.returns is None:
            raise StaticValueError(node, f'no return annotation for {node.name!r}',
                                   filename=self._state.get_filename(node))
        self_type = None
        if receiver is not None:
            self_type = receiver.args[0] if receiver.is_type and receiver.args else receiver
        rtype = self._annotation(node.returns, node, self_type)
        if call is None:
            return substitute(rtype, {})
        return substitute(rtype, self._bind_typevars(func, call, receiver, self_type))

    def _bind_typevars(self, func: Func, call: ast.Call,
                       receiver: Optional[Type], self_type: Optional[Type]) -> Mapping[Type, Type]:
        """
        Bind the type variables of the function's parameters to the type of the call arguments.
        """
        offset = 1 if receiver is not None else 0
        positional = []
        for a in call.args:
            if isinstance(a, ast.Starred):
                break
            positional.append(a)
        keywords = {k.arg: k.value for k in call.keywords if k.arg}
        bindings: Dict[Type, Type] = {}
        for spec in iter_arguments(func.node.args):
            if spec.node.annotation is None:
                continue
            argnode: Optional[ast.expr] = None
            if spec.index is not None and 0 <= spec.index - offset < len(positional):
                argnode = positional[spec.index - offset]
            elif spec.name in keywords:
                argnode = keywords[spec.name]
            if argnode is None:
                continue
            try:
                paramtype = self._annotation(spec.node.annotation, func.node, self_type)
            except StaticException:
                continue
            if paramtype.is_typevar and paramtype not in bindings:
                argtype = self._try_visit(argnode)
                if not argtype.unknown:
                    bindings[paramtype] = argtype
            elif paramtype.is_type and paramtype.args and paramtype.args[0].is_typevar:
                argtype = self._try_visit(argnode)
                if argtype.is_type and argtype.args:
                    bindings.setdefault(paramtype.args[0], argtype.args[0])
        return bindings
