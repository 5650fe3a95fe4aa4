"""
Check the calls of the analyzed modules against the rules.
"""
from __future__ import annotations

import ast
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from ._lib.model import Cls, Mod
from ._lib.shared import node2dottedname, unparse
from ._lib.suffix import rest_of_block
from .report import Diagnostic, Reporter
from .tracker import call_followed

if TYPE_CHECKING:
    from ._analyzer.state import State
    from .config import Config
    from .rules import CompiledRule


class Checker:
    """
    Reports the watched calls whose expected call is not made.

    >>> import ast
    >>> from uncalled import Project, Checker, Reporter, load_default_config
    >>> p = Project()
    >>> _ = p.add_module(ast.parse('import os'), 'mod')
    >>> p.analyze_project()
    >>> reporter = Reporter()
    >>> Checker(p.state, load_default_config(), reporter).check_project()
    >>> len(reporter)
    0
    """

    def __init__(self, state: State, config: Config, reporter: Reporter) -> None:
        self._state = state
        self._config = config
        self._reporter = reporter

    def check_project(self) -> None:
        """
        Check all modules of the project, dependencies loaded from stubs excepted.
        """
        for mod in list(self._state.get_all_modules()):
            if self._state.is_dependency(mod):
                continue
            self.check_module(mod)

    def check_module(self, mod: Mod) -> None:
        imports = self._state.get_imports(mod)
        self._state.msg(f'imports: {", ".join(sorted(imports))}', ctx=mod, thresh=2)
        rules = self._config.activate(imports)
        if not rules:
            self._state.msg('no rules matched code', ctx=mod, thresh=2)
            return
        self._state.msg(f'active rules: {", ".join(r.name for r in rules)}', ctx=mod, thresh=2)

        calls = [n for n in ast.walk(mod.node) if isinstance(n, ast.Call)]
        calls.sort(key=lambda n: (n.lineno, n.col_offset))
        for call in calls:
            self._check_call(call, rules)

    def _check_call(self, call: ast.Call, rules: Sequence[CompiledRule]) -> None:
        results = self._state.get_result_types(call)
        if results is None:
            # unknown callee, the rules might not apply
            return
        callee = node2dottedname(call.func)
        callee_name = callee[-1] if callee else None
        for rule in rules:
            if not rule.matches_callee(callee_name):
                continue
            match = rule.matches_results(results)
            self._state.msg(f'rule {rule.name!r} matches results of {unparse(call.func)}: {match}',
                            ctx=call, thresh=2)
            if match:
                self._check_rule(rule, call)

    def _target(self, rule: CompiledRule, target: ast.expr) -> Optional[ast.expr]:
        if isinstance(target, (ast.Tuple, ast.List)):
            if len(target.elts) != len(rule.rule.results):
                # starred unpacking, can't be tracked
                return target
            return target.elts[rule.expects_index]
        if len(rule.rule.results) > 1:
            # multiple results bound to a single name
            return None
        return target

    def _targets(self, rule: CompiledRule, targets: Sequence[ast.expr]) -> List[ast.expr]:
        return [t for t in (self._target(rule, t) for t in targets) if t is not None]

    def _bound_targets(self, rule: CompiledRule, call: ast.Call,
                       stmts: Optional[List[ast.stmt]]) -> Tuple[List[ast.expr], Sequence[ast.AST]]:
        # returns the targets bound to the expected result and the statements
        # to walk after the binding.
        if not stmts:
            return [], ()
        stmt, rest = stmts[0], stmts[1:]
        value, parent = self._value_and_parent(call)

        if isinstance(parent, ast.NamedExpr) and parent.value is value:
            if len(rule.rule.results) > 1:
                return [], ()
            return [parent.target], stmts
        if isinstance(parent, ast.Assign) and parent is stmt and parent.value is value:
            # a = b = call()
            return self._targets(rule, parent.targets), rest
        if isinstance(parent, ast.AnnAssign) and parent is stmt and parent.value is value:
            return self._targets(rule, [parent.target]), rest
        if isinstance(parent, ast.withitem) and parent.context_expr is value \
                and parent.optional_vars is not None:
            with_stmt = self._state.get_parent(parent)
            assert isinstance(with_stmt, (ast.With, ast.AsyncWith))
            return self._targets(rule, [parent.optional_vars]), [*with_stmt.body, *rest]
        return [], ()

    def _value_and_parent(self, call: ast.Call) -> Tuple[ast.expr, ast.AST]:
        value: ast.expr = call
        parent = self._state.get_parent(call)
        if isinstance(parent, ast.Await):
            value, parent = parent, self._state.get_parent(parent)
        return value, parent

    def _exited_by_with(self, rule: CompiledRule, call: ast.Call) -> bool:
        # 'with call():' calls the exit method of the expected result
        # when the block ends, it takes the place of the expected call.
        value, parent = self._value_and_parent(call)
        if not isinstance(parent, ast.withitem) or parent.context_expr is not value:
            return False
        results = self._state.get_result_types(call)
        expected = results[rule.expects_index] if results else None
        if expected is None:
            return False
        is_async = isinstance(self._state.get_parent(parent), ast.AsyncWith)
        method = '__aexit__' if is_async else '__exit__'
        members = [a for a in expected.args if not a.is_none] if expected.is_union else [expected]
        for member in members:
            if not isinstance(member.definition, Cls):
                return False
            if not self._state.get_attribute(member.definition, method, noraise=True):
                return False
        self._state.msg(f'{expected.canonical} is exited by the with statement', ctx=call, thresh=2)
        return True

    def _check_rule(self, rule: CompiledRule, call: ast.Call) -> None:
        if self._exited_by_with(rule, call):
            return
        stack = [*self._state.get_parents(call), call]
        stmts = rest_of_block(stack)
        targets, walk = self._bound_targets(rule, call, stmts)
        if not targets:
            self._state.msg('return not assigned', ctx=call, thresh=2)
            self.report(call, rule, None)
            return

        names = [t for t in targets if isinstance(t, ast.Name)]
        if len(names) != len(targets):
            for target in targets:
                if not isinstance(target, ast.Name):
                    self._state.msg(f'cannot track {unparse(target)}: not a plain name',
                                    ctx=target, thresh=1)
            return
        ident = names[0]

        if not walk:
            # the call is the last statement of the block
            self._state.msg('no statements', ctx=ident, thresh=2)
            self.report(ident, rule, ident.id)
            return

        if not call_followed(self._state, rule, names, walk):
            self.report(ident, rule, ident.id)

    def report(self, node: ast.AST, rule: CompiledRule, ident: Optional[str]) -> None:
        """
        Report a missing call for the rule at the node, for the variable ``ident``.
        """
        category = rule.category or self._config.default_category
        message = f'{rule.describe(ident)} must be called'
        self._state.msg(f'rule {rule.name!r}: {message}', ctx=node, thresh=2)
        self._reporter.report(Diagnostic.make(node,
                                              filename=self._state.get_filename(node),
                                              category=category,
                                              message=message,
                                              rule=rule.name))
