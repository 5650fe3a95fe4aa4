"""
Computes the analyses stored in the `State`, loading dependencies from stubs when asked to.
"""
from __future__ import annotations

from typing import Iterable, Set

from .._lib.chains import defuse_chains_and_locals, usedef_chains
from .._lib.ancestors import Ancestors
from .._lib.imports import imported_modules
from .._lib.model import Mod
from .state import MutableState, Options


def _with_parents(modnames: Iterable[str]) -> Set[str]:
    # 'import a.b.c' also imports 'a' and 'a.b'
    result: Set[str] = set()
    for name in modnames:
        parts = name.split('.')
        result.update('.'.join(parts[:i]) for i in range(1, len(parts) + 1))
    return result


class Analyzer:
    """
    Analyzes the modules of the project, then the stubs of the modules they import,
    level by level.
    """
    max_levels = 8

    def __init__(self, state: MutableState, options: Options) -> None:
        self._options = options
        self._state = state

    def _levels(self) -> int:
        dependencies = self._options.dependencies
        if isinstance(dependencies, bool):
            return self.max_levels if dependencies else 0
        return int(dependencies)

    def _analyze_module(self, mod: Mod) -> None:
        self._state.msg(f'analyzing {mod.name()}', thresh=1)
        node = mod.node

        # parents first, they give the filename of every node in messages
        ancestors = Ancestors()
        ancestors.visit(node)
        self._state.store_analysis(ancestors=ancestors.parents)

        defuse, locals = defuse_chains_and_locals(
            node,
            modname=mod.name(),
            filename=mod.filename(),
            is_package=mod.is_package,
            msg=self._state.msg,
        )
        self._state.store_analysis(defuse=defuse, locals=locals, usedef=usedef_chains(defuse))

        # the rules are activated by the imported modules
        imports = imported_modules(node, mod.name(), is_package=mod.is_package)
        self._state.store_analysis(imports={mod: frozenset(imports)})

    def analyze(self) -> None:
        levels = self._levels()
        analyzed: Set[str] = set()
        missing: Set[str] = set()
        todo = sorted(mod.name() for mod in self._state.get_all_modules())
        level = 0
        while todo:
            imported: Set[str] = set()
            for name in todo:
                mod = self._state.get_module(name) or self._state.add_typeshed_module(name)
                if mod is None:
                    missing.add(name)
                    continue
                self._analyze_module(mod)
                analyzed.add(name)
                imported |= _with_parents(self._state.get_imports(mod))
            todo = sorted(imported - analyzed - missing)
            if not todo:
                break
            if level >= levels:
                if levels:
                    self._state.msg(f'stopping after {levels} levels of imports, skipping '
                                    f'{len(todo)} modules: {", ".join(todo)}', thresh=1)
                break
            level += 1
            self._state.msg(f'loading {len(todo)} imported modules, level {level}', thresh=1)
