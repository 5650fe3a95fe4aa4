import ast
from textwrap import dedent
from typing import Any, Mapping

from uncalled import Project, Checker, Reporter, Config

def make_project(modules: Mapping[str, str], **kw: Any) -> Project:
    """
    Create an analyzed project from sources, module names ending with
    ``.__init__`` are packages.
    """
    p = Project(**kw)
    for name, src in modules.items():
        is_package = name.endswith('.__init__')
        modname = name[:-len('.__init__')] if is_package else name
        p.add_module(ast.parse(dedent(src)), modname,
                     is_package=is_package,
                     filename=name.replace('.', '/') + '.py')
    p.analyze_project()
    return p

def check(modules: Mapping[str, str], config: Config, **kw: Any) -> Reporter:
    p = make_project(modules, **kw)
    reporter = Reporter()
    Checker(p.state, config, reporter).check_project()
    return reporter

DBAPI = '''
from typing import Optional, TypeVar, Generic
T = TypeVar('T')

class Rows:
    def next(self) -> bool: ...
    def err(self) -> Optional[Exception]: ...
    def close(self) -> None: ...

class Cursor:
    def execute(self, sql: str) -> None: ...
    def close(self) -> None: ...
    def __enter__(self) -> Cursor: ...
    def __exit__(self, *exc: object) -> None: ...

class DB:
    def query(self, sql: str) -> tuple[Rows, Optional[Exception]]: ...
    def query_as(self, sql: str, kind: type[T]) -> tuple[Rows, T]: ...
    def cursor(self) -> Cursor: ...
    async def acursor(self) -> Cursor: ...

def open(dsn: str) -> DB: ...
'''

WEB = '''
from typing import Optional

class Body:
    def read(self) -> bytes: ...
    def close(self) -> None: ...

class Response:
    body: Body
    status: int

def get(url: str) -> tuple[Response, Optional[Exception]]: ...
'''

CTX = '''
from typing import Callable

class Context: ...

CancelFunc = Callable[[], None]

def with_cancel(parent: Context) -> tuple[Context, CancelFunc]: ...
'''

TEST_CONFIG = '''
rules:
  - name: dbapi-rows-err
    category: dbapi
    packages: [dbapi]
    results:
      - type: .Rows
        expect:
          call: .err
          args: []
      - type: _
  - name: dbapi-cursor-close
    packages: [dbapi]
    results:
      - type: .Cursor
        expect:
          call: .close
  - name: web-response-body-close
    category: web
    packages: [web]
    results:
      - type: .Response
        expect:
          call: .body.close
      - type: _
  - name: ctx-cancel
    category: ctx
    packages: [ctx]
    results:
      - type: .Context
      - type: .CancelFunc
        expect:
          call:
          args: []
'''
