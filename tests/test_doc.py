import doctest
from importlib import import_module

import pytest

MODULES = [
    'uncalled',
    'uncalled.rules',
    'uncalled.config',
    'uncalled.checker',
    'uncalled._analyzer.state',
    'uncalled._analyzer.typeinfer',
    'uncalled._analyzer.loader',
    'uncalled._lib.arguments',
    'uncalled._lib.imports',
    'uncalled._lib.suffix',
    'uncalled._lib.shared',
    'uncalled._lib.exceptions',
]

@pytest.mark.parametrize('modname', MODULES)
def test_lib_doctests(modname: str) -> None:
    failed, _ = doctest.testmod(import_module(modname),
                                optionflags=doctest.ELLIPSIS|doctest.IGNORE_EXCEPTION_DETAIL)
    assert failed == 0
