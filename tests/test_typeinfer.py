from __future__ import annotations

import ast
import sys
from textwrap import dedent
from typing import List, Optional

import pytest

from uncalled import Type
from uncalled._analyzer.typeinfer import union, merge, substitute

from . import make_project, DBAPI, CTX

def project(src: str):
    return make_project({'dbapi': DBAPI, 'ctx': CTX, 'test': src})

def last_value(p, name: str = 'test') -> ast.expr:
    mod = p.state.get_module(name)
    assert mod is not None
    stmt = mod.node.body[-1]
    assert isinstance(stmt, ast.Expr)
    return stmt.value

@pytest.mark.parametrize(
        ("source", "expected"),
        [
        ("var: None", 'None'),
        ("var: int", 'int'),
        ("var: 'int'", 'int'),
        ("import dbapi\nvar: dbapi.Rows", 'dbapi.Rows'),
        ("import dbapi\nvar: 'dbapi.Rows'", 'dbapi.Rows'),
        ("from dbapi import Rows as R\nvar: R", 'dbapi.Rows'),
        ("import dbapi\nfrom typing import Optional\nvar: Optional[dbapi.Rows]", '?dbapi.Rows'),
        ("import dbapi\nvar: dbapi.Rows | None", '?dbapi.Rows'),
        ("import dbapi\nvar: None | dbapi.Rows", '?dbapi.Rows'),
        ("from typing import Union\nvar: Union[int, str]", 'int | str'),
        ("from typing import Optional, Union\nvar: Optional[Union[int, str]]", 'int | str | None'),
        ("var: int | str | None", 'int | str | None'),
        ("var: list[int]", 'list[int]'),
        ("import typing as t\nvar: t.List[int]", 'list[int]'),
        ("import typing as t\nvar: t.Dict[str, t.Tuple[int, ...]]", 'dict[str, tuple[int, ...]]'),
        ("var: type[int]", 'typing.Type[int]'),
        ("from typing import Annotated\nvar: Annotated[int, 'meta']", 'int'),
        ("from typing import Callable\nvar: Callable[[int, str], None]", 'typing.Callable[[int, str], None]'),
        ("import ctx\nvar: ctx.CancelFunc", 'ctx.CancelFunc'),
        ("class Local: ...\nvar: list[Local]", 'list[test.Local]'),
        ("class Outer:\n class Inner: ...\nvar: Outer.Inner", 'test.Outer.Inner'),
        ]
    )
def test_annotation_canonical(source: str, expected: str) -> None:
    p = project(source)
    mod = p.state.get_module('test')
    stmt = mod.node.body[-1]
    assert isinstance(stmt, ast.AnnAssign)
    t = p.state.get_type(stmt.target)
    assert t is not None
    assert t.canonical == expected

@pytest.mark.parametrize('expr, type', [
    ('1',                   'int'),
    ('"hi"',                'str'),
    ('f"hi"',               'str'),
    ('b"hi"',               'bytes'),
    ('None',                'None'),
    ('True',                'bool'),
    ('1 if x else None',    '?int'),
    ('x or 1.2',            'float'),
    ('(y := 1)',            'int'),
    ('dbapi.open("x")',     'dbapi.DB'),
    ('dbapi.DB().query("x")[0]', 'dbapi.Rows'),
    ('dbapi.Rows().err()',  '?Exception'),
    ('int',                 'typing.Type[int]'),
])
def test_expr(expr: str, type: str) -> None:
    p = project(f'import dbapi\n{expr}')
    t = p.state.get_type(last_value(p))
    assert t is not None
    assert t.canonical == type

@pytest.mark.parametrize('expr', [
    'x',
    'unknown()',
    '[1, 2]',
    'dbapi.DB().nothing',
])
def test_cannot_infer_expr(expr: str) -> None:
    p = project(f'import dbapi\n{expr}')
    assert p.state.get_type(last_value(p)) is None

@pytest.mark.parametrize(
        ("source", "expected"),
        [
        # functions
        ('dbapi.open("x")', ['dbapi.DB']),
        ('db.query("x")', ['dbapi.Rows', '?Exception']),
        ('db.cursor()', ['dbapi.Cursor']),
        ('db.cursor().close()', []),
        ('db.acursor()', ['dbapi.Cursor']),

        # classes
        ('dbapi.Rows()', ['dbapi.Rows']),
        ('from dbapi import Cursor\nCursor()', ['dbapi.Cursor']),

        # type variables bound from the arguments
        ('db.query_as("x", int)', ['dbapi.Rows', 'int']),
        ('db.query_as("x", kind=str)', ['dbapi.Rows', 'str']),
        ('db.query_as("x", dbapi.Cursor)', ['dbapi.Rows', 'dbapi.Cursor']),
        ('db.query_as("x", unknown)', ['dbapi.Rows', None]),

        # type aliases stay nominal
        ('import ctx\nctx.with_cancel(ctx.Context())', ['ctx.Context', 'ctx.CancelFunc']),

        # inherited methods
        ('class Sub(dbapi.DB): ...\nSub().cursor()', ['dbapi.Cursor']),

        # callable instances
        ('''
         class Factory:
             def __call__(self) -> dbapi.Cursor: ...
         Factory()()
         ''', ['dbapi.Cursor']),

        # overloads use the implementation
        ('''
         from typing import overload
         @overload
         def get(x: int) -> int: ...
         @overload
         def get(x: str) -> str: ...
         def get(x) -> 'int | str': ...
         get(1)
         ''', ['int | str']),

        # Self is the receiver
        ('''
         from typing import Self
         class Conn:
             @classmethod
             def connect(cls) -> Self: ...
             def clone(self) -> Self: ...
         class SubConn(Conn): ...
         SubConn.connect()
         ''', ['test.SubConn']),

        # properties
        ('''
         class Conn:
             @property
             def cursor(self) -> dbapi.Cursor: ...
             @staticmethod
             def make() -> 'Conn': ...
         Conn.make().cursor.close()
         ''', []),

        # instance variables
        ('''
         class Conn:
             def __init__(self, db: dbapi.DB) -> None:
                 self.db = db
         Conn(db).db.cursor()
         ''', ['dbapi.Cursor']),

        # with statements
        ('''
         class Tx:
             def __enter__(self) -> dbapi.Cursor: ...
         with Tx() as cur:
             cur.execute('x')
         cur.close()
         ''', []),
        ]
    )
def test_result_types(source: str, expected: List[Optional[str]]) -> None:
    p = project(dedent('''
    import dbapi
    db = dbapi.open('memory')
    ''') + dedent(source))
    results = p.state.get_result_types(last_value(p))
    assert results is not None
    assert [r.canonical if r else None for r in results] == expected

@pytest.mark.parametrize('source', [
    'unknown()',
    'def f(): ...\nf()',
    'x = 1\nx()',
    'dbapi.DB().nothing()',
])
def test_unknown_callee(source: str) -> None:
    p = project(f'import dbapi\n{source}')
    assert p.state.get_result_types(last_value(p)) is None

@pytest.mark.skipif(sys.version_info < (3, 12), reason='type parameter syntax')
def test_type_params() -> None:
    p = project(dedent('''
    import dbapi
    def ident[T](x: T) -> T: ...
    ident(dbapi.Rows())
    '''))
    results = p.state.get_result_types(last_value(p))
    assert results is not None
    assert [r.canonical for r in results] == ['dbapi.Rows']

def test_type_helpers() -> None:
    rows = Type('Rows', 'dbapi')
    assert union(rows, Type.NONE, rows) == union(rows, Type.NONE)
    assert union(union(Type('int'), Type('str')), Type.NONE).canonical == 'int | str | None'
    assert union(rows) is rows
    assert merge([Type.Any, rows]) is rows
    assert merge([Type.Any]).unknown

    t = Type('T', 'dbapi', typevar=True)
    pair = Type('tuple').add_args([rows, t])
    assert substitute(pair, {t: Type('int')}).canonical == 'tuple[dbapi.Rows, int]'
    assert substitute(pair, {}).args[1].unknown

    # the definition is not compared
    assert Type('Rows', 'dbapi', definition=object()) == rows
    with pytest.raises(ValueError):
        Type('')
