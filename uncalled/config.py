"""
The checker configuration, loaded from YAML.

>>> config = load_default_config()
>>> 'socket-close' in [r.name for r in config.rules]
True
>>> [r.name for r in config.activate({'socket'})]
['socket-close']
"""
from __future__ import annotations

import functools
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

import attr as attrs
import yaml

from ._lib.exceptions import ConfigError, RuleError
from .rules import CompiledRule, Rule

DEFAULT_CONFIG = Path(__file__).parent / 'default.yaml'

_KEYS = ('default-category', 'disable-all', 'disabled', 'enabled', 'rules')


@attrs.s(auto_attribs=True, frozen=True, kw_only=True)
class Config:
    """
    The configuration: rules and global switches.

    A config is an immutable value, modifiers return new instances.
    """

    default_category: str = 'uncalled'
    """
    The category of diagnostics for rules that don't specify one.
    """

    disable_all: bool = False
    disabled: Tuple[str, ...] = attrs.ib(default=(), converter=tuple)
    enabled: Tuple[str, ...] = attrs.ib(default=(), converter=tuple)
    """
    Enables specific rules, in combination with `disable_all`.
    """

    rules: Tuple[Rule, ...] = attrs.ib(default=(), converter=tuple)

    def is_active(self, rule: Rule) -> bool:
        if rule.name in self.enabled:
            return True
        return not self.disable_all and not rule.disabled and rule.name not in self.disabled

    def validate(self) -> Tuple[Rule, ...]:
        """
        Validates the configuration and returns the active rules.

        :raises RuleError: If any rule is invalid, or the enabled and disabled
            lists are inconsistent.
        """
        names = set()
        for rule in self.rules:
            rule.validate()
            names.add(rule.name)

        for name in self.disabled:
            if name not in names:
                raise RuleError(name, 'in disabled unknown')

        for name in self.enabled:
            if name not in names:
                raise RuleError(name, 'in enabled unknown')
            if name in self.disabled:
                raise RuleError(name, 'in both enabled and disabled')

        return tuple(r for r in self.rules if self.is_active(r))

    def merge(self, other: Config) -> Config:
        """
        Returns a new config: ``other`` overrides the global switches,
        replaces the rules with the same name and adds its new rules.
        """
        rules = list(self.rules)
        index = {r.name: i for i, r in enumerate(rules)}
        for rule in other.rules:
            if rule.name in index:
                rules[index[rule.name]] = rule
            else:
                index[rule.name] = len(rules)
                rules.append(rule)
        merged = attrs.evolve(self,
                              default_category=other.default_category,
                              disable_all=other.disable_all,
                              disabled=other.disabled,
                              enabled=other.enabled,
                              rules=rules)
        merged.validate()
        return merged

    def activate(self, imports: Iterable[str]) -> Tuple[CompiledRule, ...]:
        """
        Compile the active rules for a module importing the given module paths.
        The config itself is left untouched, so it can be shared between threads.
        """
        imports = frozenset(imports)
        compiled = []
        for rule in self.rules:
            if not self.is_active(rule):
                continue
            if rule.disabled:
                # explicitly enabled
                rule = attrs.evolve(rule, disabled=False)
            c = rule.activate(imports)
            if c is not None:
                compiled.append(c)
        return tuple(compiled)

    def copy(self) -> Config:
        """
        Deep copy, through YAML.
        """
        return Config.from_yaml(self.to_yaml())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'default-category': self.default_category,
            'disable-all': self.disable_all,
            'disabled': list(self.disabled),
            'enabled': list(self.enabled),
            'rules': [r.to_dict() for r in self.rules],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        """
        Build a config from its mapping form, it's not validated.
        """
        if not isinstance(data, Mapping):
            raise ConfigError(f'config: expected a mapping, got {type(data).__name__}')
        unknown = set(data) - set(_KEYS)
        if unknown:
            raise ConfigError(f'config: unknown key(s): {", ".join(sorted(map(str, unknown)))}')
        rules = data.get('rules') or ()
        if not isinstance(rules, (list, tuple)):
            raise ConfigError('config: rules must be a list')
        return cls(
            default_category=data.get('default-category') or 'uncalled',
            disable_all=bool(data.get('disable-all', False)),
            disabled=data.get('disabled') or (),
            enabled=data.get('enabled') or (),
            rules=[Rule.from_dict(r) for r in rules],
        )

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False)

    @classmethod
    def from_yaml(cls, text: str) -> Config:
        """
        Parse and validate a YAML configuration.

        :raises ConfigError: If the configuration is invalid.
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f'decode config: {e}') from e
        config = cls.from_dict(data or {})
        config.validate()
        return config

    @classmethod
    def load(cls, path: Union[str, Path]) -> Config:
        """
        Load and validate the configuration file.

        :raises ConfigError: If the file can't be read or the configuration is invalid.
        """
        try:
            text = Path(path).read_text(encoding='utf-8')
        except OSError as e:
            raise ConfigError(f'load config: {e}') from e
        return cls.from_yaml(text)


@functools.lru_cache(maxsize=None)
def load_default_config() -> Config:
    """
    The embedded default configuration, loaded once.
    """
    return Config.load(DEFAULT_CONFIG)
