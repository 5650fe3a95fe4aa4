import ast
from unittest import TestCase

import pytest

from uncalled import Rule, Result, Expect, RuleError, ConfigError, Type
from uncalled._analyzer.typeinfer import union
from uncalled.rules import is_imported

def rows_rule(**kw):
    kw.setdefault('name', 'sql-rows-err')
    kw.setdefault('packages', ['dbapi', 'otherdb'])
    kw.setdefault('results', [Result('.Rows', pointer=True, expect=Expect('.err')),
                              Result('Exception')])
    return Rule(**kw)

@pytest.mark.parametrize(
        ("rule", "error"),
        [
        (Rule(name='Bad Name'),
         "rule 'Bad Name': contains non alpha numeric or uppercase characters"),

        (Rule(name='my-rule'),
         "rule 'my-rule': no packages"),

        (Rule(name='my-rule', packages=['ctx']),
         "rule 'my-rule': no call results"),

        (Rule(name='my-rule', packages=['ctx'], results=[
            Result('.Context', expect=Expect()),
            Result('.Other', expect=Expect())]),
         "rule 'my-rule': multiple results expecting a method"),

        (Rule(name='my-rule', packages=['ctx'], results=[Result('.Context')]),
         "rule 'my-rule': no result expecting a method"),

        (Rule(name='my-rule', packages=['ctx'], results=[
            Result('.Context'),
            Result('_', expect=Expect('.cancel'))]),
         "rule 'my-rule': result idx 1 is expected and wildcard"),
        ]
    )
def test_validate_errors(rule:Rule, error:str) -> None:
    with pytest.raises(RuleError) as e:
        rule.validate()
    assert str(e.value) == error
    assert isinstance(e.value, ConfigError)

class TestCompiledRule(TestCase):
    def test_expected_calls_and_types(self):
        compiled = rows_rule().validate()
        assert compiled.expects_index == 0
        assert compiled.expected_calls == {'?dbapi.Rows.err', '?otherdb.Rows.err'}
        assert compiled.expected_types == {'?dbapi.Rows', '?otherdb.Rows'}

    def test_expected_calls_nested_selector(self):
        compiled = Rule(name='r', packages=['web'],
            results=[Result('.Response', expect=Expect('.body.close'))]).validate()
        assert compiled.expected_calls == {'web.Response.body.close'}
        assert compiled.expected_types == {'web.Response'}

    def test_expected_calls_empty_call(self):
        compiled = Rule(name='ctx-cancel', packages=['ctx'],
            results=[Result('.Context'), Result('.CancelFunc', expect=Expect())]).validate()
        assert compiled.expected_calls == {'ctx.CancelFunc'}
        assert compiled.expects_index == 1

    def test_matches_results(self):
        compiled = rows_rule().validate()
        rows = Type('Rows', 'dbapi')
        optional_rows = union(rows, Type.NONE)
        assert compiled.matches_results([optional_rows, Type('Exception')])
        assert compiled.matches_results([union(Type('Rows', 'otherdb'), Type.NONE), Type('Exception')])

        # not optional
        assert not compiled.matches_results([rows, Type('Exception')])
        # length differ
        assert not compiled.matches_results([optional_rows])
        assert not compiled.matches_results([optional_rows, Type('Exception'), Type('int')])
        # unknown
        assert not compiled.matches_results([optional_rows, None])
        # order matters
        assert not compiled.matches_results([Type('Exception'), optional_rows])

    def test_wildcard_rejects_unknown(self):
        compiled = Rule(name='r', packages=['p'],
            results=[Result('.A', expect=Expect('.close')), Result('_')]).validate()
        assert compiled.matches_results([Type('A', 'p'), Type('whatever')])
        assert not compiled.matches_results([Type('A', 'p'), None])

    def test_absolute_types(self):
        compiled = Rule(name='r', packages=['p'],
            results=[Result('socket.socket', expect=Expect('.close'))]).validate()
        assert compiled.expected_calls == {'socket.socket.close'}
        assert compiled.matches_results([Type('socket', 'socket')])

    def test_matches_call(self):
        compiled = rows_rule().validate()
        call = ast.parse('rows.err()').body[0].value
        assert compiled.matches_call(call, 'err')
        assert not compiled.matches_call(call, 'close')
        call = ast.parse('rows.err(1)').body[0].value
        assert not compiled.matches_call(call, 'err')

        compiled = Rule(name='r', packages=['p'],
            results=[Result('.A', expect=Expect('.wait', ['timeout']))]).validate()
        assert compiled.matches_call(ast.parse('a.wait(1)').body[0].value, 'wait')
        assert compiled.matches_call(ast.parse('a.wait(timeout=1)').body[0].value, 'wait')
        assert not compiled.matches_call(ast.parse('a.wait()').body[0].value, 'wait')

    def test_matches_callee(self):
        compiled = rows_rule().validate()
        assert compiled.matches_callee('query')
        assert compiled.matches_callee(None)
        compiled = rows_rule(methods=['query']).validate()
        assert compiled.matches_callee('query')
        assert not compiled.matches_callee('exec')
        assert not compiled.matches_callee(None)

    def test_describe(self):
        compiled = rows_rule().validate()
        assert compiled.describe('rows') == 'rows.err()'
        assert compiled.describe(None) == 'Rows.err()'
        compiled = Rule(name='r', packages=['p'],
            results=[Result('.A', expect=Expect('.wait', ['timeout', 'block']))]).validate()
        assert compiled.describe('a') == 'a.wait(timeout,block)'
        compiled = Rule(name='r', packages=['ctx'],
            results=[Result('.CancelFunc', expect=Expect())]).validate()
        assert compiled.describe('cancel') == 'cancel()'
        assert compiled.describe('') == 'CancelFunc()'

class TestActivate(TestCase):
    def test_narrows_packages(self):
        rule = rows_rule()
        compiled = rule.activate({'dbapi', 'os'})
        assert compiled is not None
        assert compiled.rule.packages == ('dbapi',)
        assert compiled.expected_calls == {'?dbapi.Rows.err'}
        # the rule itself is untouched
        assert rule.packages == ('dbapi', 'otherdb')

    def test_not_imported(self):
        assert rows_rule().activate({'os', 'dbapi2'}) is None
        assert rows_rule().activate(()) is None

    def test_disabled(self):
        assert rows_rule(disabled=True).activate({'dbapi'}) is None

    def test_submodule_of_imported(self):
        rule = Rule(name='r', packages=['requests.models'],
            results=[Result('.Response', expect=Expect('.close'))])
        compiled = rule.activate({'requests'})
        assert compiled is not None
        assert compiled.expected_calls == {'requests.models.Response.close'}
        assert is_imported('requests.models', {'requests'})
        assert not is_imported('requests', {'requests.models'})
        assert not is_imported('requestsfoo', {'requests'})

    def test_invalid_rule_raises(self):
        rule = Rule(name='r', packages=['dbapi'], results=[Result('.Rows')])
        with pytest.raises(RuleError):
            rule.activate({'dbapi'})

class TestDictForm(TestCase):
    def test_from_dict(self):
        rule = Rule.from_dict({
            'name': 'r',
            'packages': ['p'],
            'results': [{'type': '.A', 'pointer': True,
                         'expect': {'call': '.close', 'args': None}},
                        {'type': '_'}],
        })
        assert rule == Rule(name='r', packages=['p'],
            results=[Result('.A', True, Expect('.close')), Result('_')])
        assert Rule.from_dict(rule.to_dict()) == rule

    def test_from_dict_empty_call(self):
        rule = Rule.from_dict({'name': 'r', 'packages': ['p'],
            'results': [{'type': '.A', 'expect': {'call': None, 'args': []}}]})
        assert rule.results[0].expect == Expect('')

    def test_from_dict_errors(self):
        with pytest.raises(ConfigError):
            Rule.from_dict({'name': 'r', 'unknown': 1})
        with pytest.raises(ConfigError):
            Rule.from_dict({'name': 'r', 'packages': 'p'})
        with pytest.raises(ConfigError):
            Rule.from_dict({'name': 'r', 'results': [{'pointer': True}]})
