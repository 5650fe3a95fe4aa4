"""
Load a project form a python package/module path in the filesystem.
"""
from __future__ import annotations

from fnmatch import fnmatch
from functools import partial
from pathlib import Path
import ast
from typing import Optional, Sequence, Set, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .state import Project

_parse = partial(ast.parse, type_comments=True)

def _parse_file(project: Project, path: Path) -> ast.Module | None:
    """Parse the contents of a Python source file."""
    with open(path, 'rb') as f:
        src = f.read() + b'\n'
    try:
        return _parse(src, filename=str(path))
    except SyntaxError as e:
        project.msg(f'cannot parse file: {e}')
        return None

def _is_excluded(path: Path, exclude: Sequence[str]) -> bool:
    return any(fnmatch(path.as_posix(), pattern) or fnmatch(path.name, pattern)
               for pattern in exclude)

def _load_path(project:Project,
               path:Path,
               added:Set[Path],
               exclude:Sequence[str],
               parent:Tuple[str,...]=()) -> None:
    if path in added or _is_excluded(path, exclude):
        return
    if path.is_dir():
        init_file = (path / '__init__.py')
        if not init_file.is_file():
            project.msg(f'skipping directory {path.as_posix()}: not a package', thresh=1)
            return
        mod = _parse_file(project, init_file)
        curr_pack = parent + (path.name,)
        if mod:
            project.add_module(mod, '.'.join(curr_pack),
                            is_package=True,
                            filename=init_file.as_posix())
            added.add(init_file)
            for p in sorted(path.iterdir()):
                _load_path(project, p, added, exclude, parent=curr_pack)
    elif path.is_file() and path.suffix == '.py':
        mod = _parse_file(project, path)
        if mod:
            project.add_module(mod, '.'.join(parent + (path.stem,)),
                            filename=path.as_posix())
            added.add(path)

def load_path(project:Project, path:Path, exclude:Optional[Sequence[str]]=None) -> None:
    """
    Load a project form a python package/module path in the filesystem.
    Project.analyze_project() must still be called after loading a path into the project.

    >>> from uncalled import Project
    >>> p = Project()
    >>> load_path(p, Path('./uncalled'), exclude=['*/tests/*'])
    >>> # then call p.analyze_project()

    :param exclude: fnmatch-like patterns of files or directories to skip,
        matched against the full path and the file name.
    """
    _load_path(project, path.resolve() if path.name in ('', '.', '..') else path,
               set(), exclude or ())
