"""
What the import statements of a module refer to.
"""
from __future__ import annotations

import ast
from typing import Dict, NamedTuple, Optional, Set, Tuple


class ImportInfo(NamedTuple):
    """
    The module and name an `ast.alias` imports. ``orgname`` is None
    for ``import x`` and ``*`` for wildcard imports.
    """
    orgmodule: str
    orgname: Optional[str] = None

    def modules(self) -> Tuple[str, ...]:
        """
        The module paths this import might load: ``from a import b``
        is the name ``b`` of module ``a``, or the module ``a.b``.
        """
        if not self.orgname or self.orgname == '*':
            return (self.orgmodule,)
        if not self.orgmodule:
            return (self.orgname,)
        return (self.orgmodule, f'{self.orgmodule}.{self.orgname}')


def _source_module(node: ast.ImportFrom, modname: str, is_package: bool) -> str:
    """
    The absolute module path of a ``from ... import`` statement.

    >>> stmt = ast.parse('from ..db import api').body[0]
    >>> _source_module(stmt, 'app.views.users', is_package=False)
    'app.db'
    """
    if node.level == 0:
        return node.module or ''
    parts = modname.split('.')
    # the package of a module is its parent, a package is its own
    keep = len(parts) - (node.level if not is_package else node.level - 1)
    if keep <= 0:
        # too many dots, keep them so the module is never found
        return '.' * node.level + (node.module or '')
    return '.'.join([*parts[:keep], *filter(None, [node.module])])


def _import_infos(node: ast.stmt, modname: str, is_package: bool) -> Dict[ast.alias, ImportInfo]:
    if isinstance(node, ast.Import):
        # 'import a.b' binds 'a', 'import a.b as c' binds 'a.b'
        return {al: ImportInfo(al.name if al.asname else al.name.partition('.')[0])
                for al in node.names}
    if isinstance(node, ast.ImportFrom):
        source = _source_module(node, modname, is_package)
        return {al: ImportInfo(source, al.name) for al in node.names}
    return {}


def parse_imports(node: ast.Module, modname: str, *, is_package: bool) -> Dict[ast.alias, ImportInfo]:
    """
    Map each `ast.alias` of the module to what it imports.
    """
    result: Dict[ast.alias, ImportInfo] = {}
    for stmt in ast.walk(node):
        result.update(_import_infos(stmt, modname, is_package)) # type:ignore
    return result


def imported_modules(node: ast.Module, modname: str, *, is_package: bool) -> Set[str]:
    """
    Collect the module paths imported by the given module, at any depth.

    >>> sorted(imported_modules(ast.parse('import a.b\\nfrom c import d\\nfrom . import e'), 'pkg.mod', is_package=False))
    ['a.b', 'c', 'c.d', 'pkg', 'pkg.e']
    """
    modules: Set[str] = set()
    for stmt in ast.walk(node):
        if isinstance(stmt, ast.Import):
            modules.update(al.name for al in stmt.names)
        elif isinstance(stmt, ast.ImportFrom):
            for info in _import_infos(stmt, modname, is_package).values():
                modules.update(m for m in info.modules() if m and not m.startswith('.'))
    return modules
