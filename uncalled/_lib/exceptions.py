"""
Errors of the analysis and of the configuration.

Analysis errors point at the node they are about. They never escape the checker:
an unknown type or an unbound name only means that a rule does not apply.
Configuration errors are fatal.
"""
from __future__ import annotations

import ast
from typing import Optional

import attr as attrs

from .shared import node_name


@attrs.s(auto_attribs=True, kw_only=True, frozen=True, str=False)
class NodeLocation:
    """
    Where a node is, for messages.

    >>> print(NodeLocation(filename='app.py', nodecls='ast.Call', lineno=3, col_offset=4))
    ast.Call at app.py:3:4
    """
    filename: Optional[str] = None
    nodecls: Optional[str] = None
    lineno: Optional[int] = None
    col_offset: Optional[int] = attrs.ib(default=None, eq=False)

    @classmethod
    def make(cls, thing: object, filename: Optional[str] = None) -> NodeLocation:
        """
        :param thing: An ast node, or a definition holding one.
        """
        node = getattr(thing, 'node', thing)
        if not isinstance(node, ast.AST):
            return cls(filename=filename)
        return cls(filename=filename,
                   nodecls=f'ast.{type(node).__name__}',
                   lineno=getattr(node, 'lineno', None),
                   col_offset=getattr(node, 'col_offset', None))

    def __str__(self) -> str:
        if self.nodecls is None:
            return f'{self.filename}:?' if self.filename else '?'
        where = f'{self.filename or "?"}:{"?" if self.lineno is None else self.lineno}'
        if self.col_offset:
            where = f'{where}:{self.col_offset}'
        return f'{self.nodecls} at {where}'


@attrs.s(auto_attribs=True)
class StaticException(Exception):
    """
    Base class of the analysis errors.
    """
    node: object
    desc: Optional[str] = None
    filename: Optional[str] = attrs.ib(kw_only=True, default=None)

    def location(self) -> NodeLocation:
        return NodeLocation.make(self.node, self.filename)

    def msg(self) -> str:
        return f'Error, {self.desc}'

    def __str__(self) -> str:
        return f'{self.location()}: {self.msg()}'


class StaticValueError(StaticException):
    """
    The syntax tree is not what was expected.
    """


class StaticStateIncomplete(StaticException):
    """
    A node or a module is missing from the analyzed state.
    """

    def msg(self) -> str:
        return f'Incomplete state, {self.desc}'


class StaticCodeUnsupported(StaticException):
    """
    The syntax is valid but not supported.
    """

    def msg(self) -> str:
        return f'Unsupported {self.desc}'


class StaticNameError(StaticException):
    """
    A name with no reaching definition.
    """

    def msg(self) -> str:
        return f'Unbound name {node_name(self.node)!r}'


@attrs.s
class StaticAttributeError(StaticException):
    """
    A module or a class without the looked up attribute.
    """
    attr: str = attrs.ib(kw_only=True)

    def msg(self) -> str:
        name = self.node.name() if callable(getattr(self.node, 'name', None)) else '?'
        return f'Attribute {self.attr!r} not found in {name!r}'


class ConfigError(ValueError):
    """
    The configuration can't be used, this is always fatal.
    """


class RuleError(ConfigError):
    """
    A rule of the configuration is invalid.
    """

    def __init__(self, rule: str, reason: str) -> None:
        super().__init__(f'rule {rule!r}: {reason}')
        self.rule = rule
        self.reason = reason
