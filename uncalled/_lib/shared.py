"""
Helpers on `ast` nodes, shared by the analysis and the checker.
"""
import ast
from typing import Any, List, Optional, Union

_NOT_INSTANCE_METHODS = frozenset(('__new__', '__init_subclass__', '__class_getitem__'))

def root_name(node: Optional[ast.AST]) -> Optional[ast.Name]:
    """
    Find the root name ``x`` in a chain of attributes ``x.y.z``, or None if the chain
    is not rooted at a plain name.
    """
    while isinstance(node, ast.Attribute):
        node = node.value
    return node if isinstance(node, ast.Name) else None

def node2dottedname(node: Optional[ast.AST]) -> Optional[List[str]]:
    """
    The names of an expression like ``x.y.z``, or None if the expression is
    not only made of attributes over a name.

    >>> node2dottedname(ast.parse('rows.body.close', mode='eval').body)
    ['rows', 'body', 'close']
    >>> node2dottedname(ast.parse('f().close', mode='eval').body) is None
    True
    """
    root = root_name(node)
    if root is None:
        return None
    attributes: List[str] = []
    while isinstance(node, ast.Attribute):
        attributes.insert(0, node.attr)
        node = node.value
    return [root.id, *attributes]

def node_name(node: Any) -> Optional[str]:
    """
    The name bound by a definition node: ``import a.b`` binds ``a``.
    Returns None for nodes that bind no name.
    """
    if isinstance(node, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
        return node.name
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.arg):
        return node.arg
    if isinstance(node, ast.alias):
        return node.asname or node.name.partition('.')[0]
    return None

def unparse(node: ast.AST) -> str:
    # for messages only
    try:
        return ast.unparse(node)
    except (ValueError, TypeError, AttributeError):
        return '??'

def is_instance_method(node: Union[ast.FunctionDef, ast.AsyncFunctionDef]) -> bool:
    """
    Whether this function is a method taking the instance as ``self``.
    """
    if node.name in _NOT_INSTANCE_METHODS:
        return False
    decorators = {getattr(d, 'id', None) for d in node.decorator_list}
    if decorators & {'classmethod', 'staticmethod'}:
        return False
    positional = [*node.args.posonlyargs, *node.args.args]
    return bool(positional) and positional[0].arg == 'self'
