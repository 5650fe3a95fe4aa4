import ast
from textwrap import dedent
from typing import List
from unittest import TestCase

from uncalled import Binding

from . import make_project

def names(src: str, name: str):
    p = make_project({'test': dedent(src)})
    mod = p.state.get_module('test')
    nodes: List[ast.Name] = [n for n in ast.walk(mod.node)
                             if isinstance(n, ast.Name) and n.id == name]
    nodes.sort(key=lambda n: (n.lineno, n.col_offset))
    return p.state, nodes

class TestBindings(TestCase):
    def test_reassignment(self):
        state, (a1, a2, a3) = names('''
        a = 1
        a = 2
        print(a)
        ''', 'a')
        assert state.get_bindings(a1) == state.get_bindings(a2) == state.get_bindings(a3)
        b, = state.get_bindings(a1)
        assert b == Binding(state.get_module('test').node, 'a')

    def test_shadowed(self):
        state, (outer, inner, use) = names('''
        a = 1
        def f():
            a = 2
            return a
        ''', 'a')
        assert state.get_bindings(outer) != state.get_bindings(inner)
        assert state.get_bindings(inner) == state.get_bindings(use)

    def test_global(self):
        state, (outer, inner, use) = names('''
        a = 1
        def f():
            global a
            a = 2
        print(a)
        ''', 'a')
        assert state.get_bindings(outer) == state.get_bindings(inner)
        assert state.get_bindings(outer) <= state.get_bindings(use)

    def test_nonlocal(self):
        state, (outer, inner, use) = names('''
        def f():
            a = 1
            def g():
                nonlocal a
                a = 2
            g()
            return a
        ''', 'a')
        assert state.get_bindings(outer) == state.get_bindings(inner)
        assert state.get_bindings(outer) <= state.get_bindings(use)

    def test_walrus_in_comprehension(self):
        state, (store, use) = names('''
        def f(items):
            [(a := i) for i in items]
            return a
        ''', 'a')
        b, = state.get_bindings(store)
        assert isinstance(b.scope, ast.FunctionDef)
        assert state.get_bindings(use) == {b}

    def test_comprehension_variable(self):
        state, (outer, use, store) = names('''
        i = 0
        [i for i in range(3)]
        ''', 'i')
        assert state.get_bindings(store) != state.get_bindings(outer)
        assert state.get_bindings(use) == state.get_bindings(store)

    def test_parameter(self):
        state, (use,) = names('''
        def f(a):
            return a
        ''', 'a')
        func = state.get_module('test').node.body[0]
        param = func.args.args[0]
        assert state.get_bindings(param) == state.get_bindings(use) == {Binding(func, 'a')}

    def test_unbound(self):
        state, (use,) = names('print(a)', 'a')
        assert state.get_bindings(use) == frozenset()

    def test_function_name(self):
        state, (use,) = names('''
        def check(): ...
        check()
        ''', 'check')
        func = state.get_module('test').node.body[0]
        assert state.get_bindings(func) == state.get_bindings(use)
