from __future__ import annotations

import ast
import inspect
from typing import Iterator
import dataclasses

@dataclasses.dataclass(frozen=True)
class ArgSpec:
    node: ast.arg
    kind: inspect._ParameterKind
    default: ast.expr | None = None
    index: int | None = None
    """
    Position of the parameter in a call, None for keyword-only and variadic parameters.
    """

    @property
    def name(self) -> str:
        return self.node.arg


def iter_arguments(args: ast.arguments) -> Iterator[ArgSpec]:
    """
    Yields all arguments of the given `ast.arguments` node as `ArgSpec` instances.

    >>> node = ast.parse('def f(a:int, b:object=None, *, key:Callable, **kwargs):...')
    >>> [(a.name, a.index) for a in iter_arguments(node.body[0].args)]
    [('a', 0), ('b', 1), ('key', None), ('kwargs', None)]
    """
    posonlyargs = args.posonlyargs

    num_pos_args = len(posonlyargs) + len(args.args)
    defaults = args.defaults
    default_offset = num_pos_args - len(defaults)

    def get_default(index: int) -> ast.expr | None:
        assert 0 <= index < num_pos_args, index
        index -= default_offset
        return None if index < 0 else defaults[index]

    for i, arg in enumerate(posonlyargs):
        yield ArgSpec(arg, inspect.Parameter.POSITIONAL_ONLY, default=get_default(i), index=i)
    for i, arg in enumerate(args.args, start=len(posonlyargs)):
        yield ArgSpec(arg, inspect.Parameter.POSITIONAL_OR_KEYWORD, default=get_default(i), index=i)
    if args.vararg:
        yield ArgSpec(args.vararg, inspect.Parameter.VAR_POSITIONAL)
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        yield ArgSpec(arg, inspect.Parameter.KEYWORD_ONLY, default=default)
    if args.kwarg:
        yield ArgSpec(args.kwarg, inspect.Parameter.VAR_KEYWORD)
