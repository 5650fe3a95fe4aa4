"""
Locate the statements that run after a given node, in its innermost block.
"""
from __future__ import annotations

import ast
from typing import List, Optional, Sequence

_BLOCK_FIELDS = ('body', 'orelse', 'finalbody')

def rest_of_block(stack: Sequence[ast.AST]) -> Optional[List[ast.stmt]]:
    """
    Given the syntax stack of a node (the module first, the node itself last),
    returns the statements of the innermost enclosing block, starting at the
    statement that contains the node.

    Returns None if no block is found, or if the node is part of a lambda body,
    which is an expression rather than a block.

    >>> mod = ast.parse('if x:\\n a = f()\\n a.close()\\nprint()')
    >>> call = mod.body[0].body[0].value
    >>> [ast.unparse(s) for s in rest_of_block([mod, mod.body[0], mod.body[0].body[0], call])]
    ['a = f()', 'a.close()']
    """
    for i in range(len(stack)-1, 0, -1):
        child, parent = stack[i], stack[i-1]
        if isinstance(parent, ast.Lambda):
            return None
        if not isinstance(child, ast.stmt):
            continue
        for field in _BLOCK_FIELDS:
            block = getattr(parent, field, None)
            if not isinstance(block, list):
                continue
            for index, stmt in enumerate(block):
                if stmt is child:
                    return block[index:]
    return None
