"""
Follow the value bound to an identifier through the statements that run after it,
looking for the call a rule expects on it.

The walk is a short-circuiting pre-order traversal. Any occurrence of the expected
call on any path counts: the question is whether the call is reachable.
"""
from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Sequence, Set, Tuple, Union

from ._lib.arguments import iter_arguments
from ._lib.model import Binding
from ._lib.shared import node2dottedname, root_name, unparse

if TYPE_CHECKING:
    from ._analyzer.state import State
    from .rules import CompiledRule

_FunctionLiteral = Union[ast.FunctionDef, ast.AsyncFunctionDef]


def _pairs(target: ast.expr, value: ast.expr) -> Iterable[Tuple[ast.expr, ast.expr]]:
    # element-wise pairing of tuple-to-tuple assignments
    if isinstance(target, (ast.Tuple, ast.List)) and isinstance(value, (ast.Tuple, ast.List)) \
            and len(target.elts) == len(value.elts) \
            and not any(isinstance(e, ast.Starred) for e in (*target.elts, *value.elts)):
        for t, v in zip(target.elts, value.elts):
            yield from _pairs(t, v)
    else:
        yield target, value


class CallFlowTracker(ast.NodeVisitor):
    """
    Walks statements, tracking the aliases of a value, until the expected call is found.

    :ivar aliases: The alias set, the bindings known to denote the tracked value. It only grows.
    :ivar deferred: The deferred-call table: maps the binding of a function literal
        to the parameter positions and names that are proven to receive the expected call.
    """

    def __init__(self, state: State, rule: CompiledRule, bindings: Iterable[Binding]) -> None:
        self._state = state
        self._rule = rule
        self.aliases: Set[Binding] = set(bindings)
        self.deferred: Dict[Binding, Set[Union[int, str]]] = {}
        self.found = False

    def track(self, nodes: Iterable[ast.AST]) -> bool:
        """
        Walk the nodes in order, returns True as soon as the expected call is found.
        """
        for node in nodes:
            self.visit(node)
            if self.found:
                return True
        return False

    def visit(self, node: ast.AST) -> None:
        if self.found:
            return
        super().visit(node)

    def _tracked(self, node: ast.Name) -> bool:
        return not self.aliases.isdisjoint(self._state.get_bindings(node))

    # assignments

    def _propagate(self, targets: Sequence[ast.expr], value: ast.expr) -> None:
        for target in targets:
            for t, v in _pairs(target, value):
                if isinstance(t, ast.Name) and isinstance(v, ast.Name) and self._tracked(v):
                    self._state.msg(f'alias {t.id!r} of {v.id!r}', ctx=t, thresh=2)
                    self.aliases.update(self._state.get_bindings(t))

    def visit_Assign(self, node: ast.Assign) -> None:
        self._propagate(node.targets, node.value)
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if node.value is not None:
            self._propagate([node.target], node.value)
        self.generic_visit(node)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self._propagate([node.target], node.value)
        self.generic_visit(node)

    # function literals

    def _function_literal(self, node: _FunctionLiteral, bindings: Iterable[Binding]) -> None:
        bindings = frozenset(bindings)
        if not bindings:
            return
        for spec in iter_arguments(node.args):
            if spec.node.annotation is None:
                continue
            paramtype = self._state.get_type(spec.node)
            if paramtype is None or paramtype.canonical not in self._rule.expected_types:
                continue
            tracker = CallFlowTracker(self._state, self._rule, self._state.get_bindings(spec.node))
            if not tracker.track(node.body):
                continue
            self._state.msg(f'parameter {spec.name!r} receives the expected call', ctx=spec.node, thresh=2)
            for b in bindings:
                keys = self.deferred.setdefault(b, set())
                if spec.index is not None:
                    keys.add(spec.index)
                keys.add(spec.name)

    def visit_FunctionDef(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        self._function_literal(node, self._state.get_bindings(node))
        # closures using a tracked name directly count as well
        self.generic_visit(node)

    visit_AsyncFunctionDef = visit_FunctionDef

    # calls

    def _check_receiver(self, root: Optional[ast.Name], name: str) -> bool:
        # the root's type with the selector must be expected, and the root must be tracked.
        if root is None:
            return False
        roottype = self._state.get_type(root)
        if roottype is None:
            return False
        fullname = f'{roottype.canonical}.{name}' if name else roottype.canonical
        if fullname not in self._rule.expected_calls:
            return False
        return self._tracked(root)

    def _check_call(self, call: ast.Call) -> bool:
        dottedname = node2dottedname(call.func)
        if not dottedname:
            return False
        name = '.'.join(dottedname[1:])
        matches = self._rule.matches_call(call, name)
        self._state.msg(f'matches call {".".join(dottedname)}: {matches}', ctx=call, thresh=2)
        if not matches:
            return False
        return self._check_receiver(root_name(call.func), name)

    def _recorded(self, func: ast.expr) -> Set[Union[int, str]]:
        recorded: Set[Union[int, str]] = set()
        if isinstance(func, ast.Name):
            for b in self._state.get_bindings(func):
                recorded.update(self.deferred.get(b, ()))
        return recorded

    def _passes_tracked(self, recorded: Set[Union[int, str]],
                        args: Sequence[ast.expr], keywords: Sequence[ast.keyword]) -> bool:
        for i, arg in enumerate(args):
            if isinstance(arg, ast.Starred):
                break
            if i in recorded and isinstance(arg, ast.Name) and self._tracked(arg):
                return True
        for keyword in keywords:
            if keyword.arg in recorded and isinstance(keyword.value, ast.Name) \
                    and self._tracked(keyword.value):
                return True
        return False

    def _check_deferred(self, call: ast.Call) -> bool:
        if not self.deferred:
            return False
        # the handler called directly: check(rows)
        recorded = self._recorded(call.func)
        if recorded and self._passes_tracked(recorded, call.args, call.keywords):
            return True
        # the handler scheduled with its arguments: atexit.register(check, rows)
        for i, arg in enumerate(call.args):
            if isinstance(arg, ast.Starred):
                break
            recorded = self._recorded(arg)
            if recorded and self._passes_tracked(recorded, call.args[i+1:], call.keywords):
                self._state.msg(f'handler {unparse(arg)} scheduled by {unparse(call.func)}',
                                ctx=call, thresh=2)
                return True
        return False

    def _check_references(self, call: ast.Call) -> bool:
        # rows.close passed as a callback, called later: stack.callback(rows.close)
        if self._rule.expect.args:
            return False
        selector = self._rule.expect.selector
        for arg in (*call.args, *(k.value for k in call.keywords)):
            if isinstance(arg, ast.Starred):
                continue
            dottedname = node2dottedname(arg)
            if not dottedname or '.'.join(dottedname[1:]) != selector:
                continue
            if self._check_receiver(root_name(arg), selector):
                return True
        return False

    def visit_Call(self, node: ast.Call) -> None:
        if self._check_call(node) or self._check_deferred(node) or self._check_references(node):
            self.found = True
            return
        self.generic_visit(node)


def call_followed(state: State, rule: CompiledRule, idents: Sequence[ast.Name],
                  stmts: Sequence[ast.AST]) -> bool:
    """
    Whether the call expected by the rule is made on the value bound to the ``idents``
    (or on one of their aliases) in the given statements. Several names are bound
    to the same value by chained assignments: ``a = b = call()``.
    """
    bindings: Set[Binding] = set()
    for ident in idents:
        state.msg(f'tracking {ident.id!r} for rule {rule.name!r}', ctx=ident, thresh=2)
        bindings.update(state.get_bindings(ident))
    return CallFlowTracker(state, rule, bindings).track(stmts)
