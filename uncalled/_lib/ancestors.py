import ast
from typing import Dict, List, Tuple


class Ancestors(ast.NodeVisitor):
    """
    Maps each node to its parents in the syntax tree, the module first.

    The parents of a call hold the blocks around it, the checker
    looks there for the statements that follow the call.
    """

    def __init__(self) -> None:
        self.parents: Dict[ast.AST, Tuple[ast.AST, ...]] = {}
        self._stack: List[ast.AST] = []

    def generic_visit(self, node: ast.AST) -> None:
        self.parents[node] = tuple(self._stack)
        self._stack.append(node)
        try:
            super().generic_visit(node)
        finally:
            self._stack.pop()
