"""
The rule model: declarative descriptions of the calls to watch, compiled into matchers.

A rule describes the results of a watched call, positionally. Exactly one
of these results carries an `Expect`: the method that must be called on it::

    >>> rule = Rule(name='dbapi-rows-err', packages=['dbapi'],
    ...             results=[Result('.Rows', expect=Expect('.err')), Result('_')])
    >>> compiled = rule.validate()
    >>> sorted(compiled.expected_calls)
    ['dbapi.Rows.err']
    >>> compiled.describe('rows')
    'rows.err()'
"""
from __future__ import annotations

import ast
import re
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    FrozenSet,
    Iterable,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    cast,
)

import attr as attrs

from ._lib.exceptions import ConfigError, RuleError
from ._analyzer.typeinfer import OPTIONAL_MARKER

if TYPE_CHECKING:
    from ._analyzer.typeinfer import Type

ANY_TYPE = '_'
"""
The wildcard result type, matches any known type.
"""

_RULE_NAME = re.compile(r'^[a-z0-9-]+$')


def is_imported(package: str, imports: Iterable[str]) -> bool:
    """
    Whether the package counts as imported: it's imported itself
    or it's a sub-module of an imported module.

    >>> is_imported('requests.models', {'requests'})
    True
    >>> is_imported('requests', {'requests.models'})
    False
    """
    for imp in imports:
        if package == imp or package.startswith(f'{imp}.'):
            return True
    return False


def _check_keys(what: str, data: Any, allowed: Iterable[str]) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ConfigError(f'{what}: expected a mapping, got {type(data).__name__}')
    unknown = set(data) - set(allowed)
    if unknown:
        raise ConfigError(f'{what}: unknown key(s): {", ".join(sorted(map(str, unknown)))}')
    return data


def _strings(what: str, data: Any) -> Tuple[str, ...]:
    if data is None:
        return ()
    if isinstance(data, str) or not isinstance(data, Sequence) or \
            not all(isinstance(s, str) for s in data):
        raise ConfigError(f'{what}: expected a list of strings')
    return tuple(data)


@attrs.s(auto_attribs=True, frozen=True)
class Expect:
    """
    The call expected on a result.
    """

    call: str = ''
    """
    The selector to call on the result: ``.close``, ``.body.close`` or the empty string
    for calling the result itself.
    """

    args: Tuple[str, ...] = attrs.ib(default=(), converter=tuple)
    """
    The arguments passed to the call, only their number matters.
    """

    @property
    def selector(self) -> str:
        """
        The call without the leading dot.
        """
        return self.call[1:] if self.call.startswith('.') else self.call

    def to_dict(self) -> Dict[str, Any]:
        return {'call': self.call, 'args': list(self.args)}

    @classmethod
    def from_dict(cls, data: Any) -> Expect:
        data = _check_keys('expect', data or {}, ('call', 'args'))
        call = data.get('call') or ''
        if not isinstance(call, str):
            raise ConfigError('expect: call must be a string')
        return cls(call, _strings('expect: args', data.get('args')))


@attrs.s(auto_attribs=True, frozen=True)
class Result:
    """
    One positional result of a watched call.
    """

    type: str
    """
    ``_`` matches any type, a name starting with a dot is relative to each of
    the rule's packages, other names are fully qualified (or builtins).
    """

    pointer: bool = False
    """
    Whether the result is optional: ``Optional[T]`` is the Python counterpart of a reference.
    """

    expect: Optional[Expect] = None

    def name(self, package: str) -> str:
        """
        The canonical type name of this result, for the given package.
        Empty string for the wildcard.

        >>> Result('.Response', pointer=True).name('requests.models')
        '?requests.models.Response'
        """
        if self.type == ANY_TYPE:
            return ''
        marker = OPTIONAL_MARKER if self.pointer else ''
        if self.type.startswith('.'):
            return f'{marker}{package}{self.type}'
        return f'{marker}{self.type}'

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {'type': self.type, 'pointer': self.pointer}
        if self.expect is not None:
            d['expect'] = self.expect.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: Any) -> Result:
        data = _check_keys('result', data, ('type', 'pointer', 'expect'))
        type = data.get('type')
        if not isinstance(type, str) or not type:
            raise ConfigError('result: type must be a non-empty string')
        expect = Expect.from_dict(data['expect']) if 'expect' in data else None
        return cls(type, bool(data.get('pointer', False)), expect)


@attrs.s(auto_attribs=True, frozen=True)
class ResultMatcher:
    """
    Matches the type of one result.
    ``names`` is None for the wildcard.
    """

    names: Optional[FrozenSet[str]]

    def __call__(self, type: Optional[Type]) -> bool:
        if type is None:
            return False
        if self.names is None:
            return True
        return type.canonical in self.names


@attrs.s(auto_attribs=True, frozen=True, kw_only=True)
class Rule:
    """
    A watched call and the call required on one of its results.
    Rules are immutable, `activate` builds a new rule.
    """

    name: str
    packages: Tuple[str, ...] = attrs.ib(default=(), converter=tuple)
    """
    Import paths activating the rule, a rule is inert for modules
    that import none of them.
    """

    results: Tuple[Result, ...] = attrs.ib(default=(), converter=tuple)
    disabled: bool = False
    category: str = ''
    methods: Tuple[str, ...] = attrs.ib(default=(), converter=tuple)
    """
    Restricts the watched callees by name. Empty means any callee.
    """

    def validate(self) -> CompiledRule:
        """
        Check the rule and build its matchers.

        :raises RuleError: If the rule is invalid.
        """
        if not _RULE_NAME.match(self.name):
            raise RuleError(self.name, 'contains non alpha numeric or uppercase characters')
        if not self.packages:
            raise RuleError(self.name, 'no packages')
        if not self.results:
            raise RuleError(self.name, 'no call results')

        expects_index: Optional[int] = None
        for i, result in enumerate(self.results):
            if result.expect is None:
                continue
            if expects_index is not None:
                raise RuleError(self.name, 'multiple results expecting a method')
            expects_index = i

        if expects_index is None:
            raise RuleError(self.name, 'no result expecting a method')

        expects = self.results[expects_index]
        if expects.type == ANY_TYPE:
            raise RuleError(self.name, f'result idx {expects_index} is expected and wildcard')

        selector = cast(Expect, expects.expect).selector
        owners = frozenset(expects.name(p) for p in self.packages)
        calls = frozenset(f'{o}.{selector}' if selector else o for o in owners)
        matchers = tuple(
            ResultMatcher(None if r.type == ANY_TYPE else frozenset(r.name(p) for p in self.packages))
            for r in self.results
        )
        return CompiledRule(self, expects_index, calls, owners, matchers)

    def activate(self, imports: Iterable[str]) -> Optional[CompiledRule]:
        """
        Narrow the packages to the imported ones and compile the rule.

        Returns None if the rule is disabled or none of its packages is imported.

        :raises RuleError: If the rule is invalid.
        """
        if self.disabled:
            return None
        imports = frozenset(imports)
        packages = tuple(p for p in self.packages if is_imported(p, imports))
        if not packages:
            return None
        return attrs.evolve(self, packages=packages).validate()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'disabled': self.disabled,
            'category': self.category,
            'packages': list(self.packages),
            'methods': list(self.methods),
            'results': [r.to_dict() for r in self.results],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Rule:
        data = _check_keys('rule', data, ('name', 'disabled', 'category',
                                          'packages', 'methods', 'results'))
        name = data.get('name')
        if not isinstance(name, str):
            raise ConfigError('rule: name must be a string')
        results = data.get('results') or ()
        if not isinstance(results, Sequence):
            raise RuleError(name, 'results must be a list')
        return cls(
            name=name,
            disabled=bool(data.get('disabled', False)),
            category=data.get('category') or '',
            packages=_strings(f'rule {name!r}: packages', data.get('packages')),
            methods=_strings(f'rule {name!r}: methods', data.get('methods')),
            results=[Result.from_dict(r) for r in results],
        )


@attrs.s(auto_attribs=True, frozen=True)
class CompiledRule:
    """
    A validated rule, with its matchers.
    """

    rule: Rule
    expects_index: int
    """
    The index of the result expecting a call.
    """

    expected_calls: FrozenSet[str]
    """
    The canonical type names of the expecting result, followed by the selector:
    ``dbapi.Rows.err``, ``?requests.models.Response.close`` or ``ctx.CancelFunc``.
    """

    expected_types: FrozenSet[str]
    """
    The canonical type names of the expecting result.
    """

    matchers: Tuple[ResultMatcher, ...]

    @property
    def name(self) -> str:
        return self.rule.name

    @property
    def category(self) -> str:
        return self.rule.category

    @property
    def expects(self) -> Result:
        return self.rule.results[self.expects_index]

    @property
    def expect(self) -> Expect:
        # validated to be set on the expecting result
        return cast(Expect, self.expects.expect)

    def matches_results(self, types: Sequence[Optional[Type]]) -> bool:
        """
        Whether the result types of a call match this rule's results, positionally.
        """
        if len(types) != len(self.matchers):
            return False
        return all(match(t) for match, t in zip(self.matchers, types))

    def matches_call(self, call: ast.Call, name: str) -> bool:
        """
        Whether the call has the expected number of arguments and the
        given selector ``name`` is the expected one.
        """
        if len(call.args) + len(call.keywords) != len(self.expect.args):
            return False
        return name == self.expect.selector

    def matches_callee(self, name: Optional[str]) -> bool:
        """
        Whether the callee, given by its last name component, is watched.
        """
        if not self.rule.methods:
            return True
        return name in self.rule.methods

    def describe(self, ident: Optional[str] = None) -> str:
        """
        The expected call on the identifier, or the bare type name if there is none.
        """
        if not ident:
            ident = self.expects.type.lstrip('.').rsplit('.', 1)[-1]
        args = ','.join(self.expect.args)
        return f'{ident}{self.expect.call}({args})'
