"""
Diagnostics and their reporting.
"""
from __future__ import annotations

import ast
import json
from typing import Any, Dict, Iterator, List, Optional, TextIO

import attr as attrs


@attrs.s(auto_attribs=True, frozen=True, kw_only=True)
class Diagnostic:
    """
    A missing call, located in the source.
    """

    filename: Optional[str]
    lineno: int
    col_offset: int
    end_lineno: Optional[int] = None
    end_col_offset: Optional[int] = None
    category: str
    message: str
    rule: str

    @classmethod
    def make(cls, node: ast.AST, *, filename: Optional[str],
             category: str, message: str, rule: str) -> Diagnostic:
        return cls(filename=filename,
                   lineno=getattr(node, 'lineno', 0),
                   col_offset=getattr(node, 'col_offset', 0),
                   end_lineno=getattr(node, 'end_lineno', None),
                   end_col_offset=getattr(node, 'end_col_offset', None),
                   category=category,
                   message=message,
                   rule=rule)

    def __str__(self) -> str:
        return f'{self.filename or "<unknown>"}:{self.lineno}:{self.col_offset}: {self.message}'

    def to_dict(self) -> Dict[str, Any]:
        return attrs.asdict(self)


class Reporter:
    """
    Collects diagnostics, in the order they are reported.
    """

    formats = ('text', 'json')

    def __init__(self) -> None:
        self.diagnostics: List[Diagnostic] = []

    def report(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.diagnostics)

    def __len__(self) -> int:
        return len(self.diagnostics)

    def render(self, format: str = 'text') -> Iterator[str]:
        """
        Yields one line per diagnostic. The json format gives JSON lines.
        """
        if format not in self.formats:
            raise ValueError(f'unknown format {format!r}')
        for d in self.diagnostics:
            if format == 'json':
                yield json.dumps(d.to_dict())
            else:
                yield f'{d} [{d.category}]'

    def write(self, stream: TextIO, format: str = 'text') -> None:
        for line in self.render(format):
            print(line, file=stream)
