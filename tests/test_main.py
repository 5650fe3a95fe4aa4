import json
from pathlib import Path
from textwrap import dedent

import pytest
import yaml

from uncalled.__main__ import main, effective_config
from uncalled import Config, ConfigError, load_default_config

from . import DBAPI, TEST_CONFIG

SOCKET_SRC = '''
import socket

def send(data: bytes) -> None:
    sock = socket.create_connection(('localhost', 8080))
    sock.sendall(data)

def send_and_close(data: bytes) -> None:
    sock = socket.create_connection(('localhost', 8080))
    sock.sendall(data)
    sock.close()

def send_with(data: bytes) -> None:
    with socket.create_connection(('localhost', 8080)) as sock:
        sock.sendall(data)
'''

@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / 'dbapi.py').write_text(dedent(DBAPI))
    (tmp_path / 'app.py').write_text(dedent('''
    import dbapi
    db = dbapi.open('memory')
    cur = db.cursor()
    rows, err = db.query('select')
    rows.err()
    '''))
    (tmp_path / 'uncalled.yaml').write_text(TEST_CONFIG)
    return tmp_path

def test_print_config(capsys: pytest.CaptureFixture) -> None:
    assert main(['--print-config']) == 0
    out = capsys.readouterr().out
    assert Config.from_dict(yaml.safe_load(out)) == load_default_config()

def test_print_effective_config(project: Path, capsys: pytest.CaptureFixture) -> None:
    assert main(['--print-config', '-c', str(project / 'uncalled.yaml'),
                 '--disable-all', '--enable', 'ctx-cancel']) == 0
    config = Config.from_yaml(capsys.readouterr().out)
    assert config.disable_all
    assert config.enabled == ('ctx-cancel',)
    assert [r.name for r in config.validate()] == ['ctx-cancel']
    assert len(config.rules) == len(load_default_config().rules) + 4

@pytest.mark.parametrize('argv', [
    ['--disable', 'not-a-rule'],
    ['--enable', 'not-a-rule'],
    ['-c', 'missing-config.yaml'],
])
def test_config_errors(argv, capsys: pytest.CaptureFixture) -> None:
    assert main(argv) == 2
    assert capsys.readouterr().err.startswith('uncalled: ')

def test_missing_path(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    assert main([str(tmp_path / 'nothing.py')]) == 2
    assert "doesn't exist" in capsys.readouterr().err

def test_effective_config() -> None:
    config = effective_config(None, disable=['socket-close'])
    assert config.disabled == ('socket-close',)
    assert 'socket-close' not in [r.name for r in config.validate()]
    config = effective_config(None)
    assert config is load_default_config()
    with pytest.raises(ConfigError):
        effective_config(None, disable=['socket-close'], enable=['socket-close'])

def test_check(project: Path, capsys: pytest.CaptureFixture) -> None:
    assert main([str(project / 'app.py'), str(project / 'dbapi.py'),
                 '-c', str(project / 'uncalled.yaml'), '-d', '0']) == 1
    out = capsys.readouterr().out.splitlines()
    assert out == [f'{(project / "app.py").as_posix()}:4:0: cur.close() must be called [uncalled]']

def test_check_clean(project: Path, capsys: pytest.CaptureFixture) -> None:
    assert main([str(project / 'app.py'), str(project / 'dbapi.py'),
                 '-c', str(project / 'uncalled.yaml'), '-d', '0',
                 '--disable', 'dbapi-cursor-close']) == 0
    assert capsys.readouterr().out == ''

def test_check_json(project: Path, capsys: pytest.CaptureFixture) -> None:
    assert main([str(project / 'app.py'), str(project / 'dbapi.py'),
                 '-c', str(project / 'uncalled.yaml'), '-d', '0', '--format', 'json']) == 1
    line, = capsys.readouterr().out.splitlines()
    assert json.loads(line) == {
        'filename': (project / 'app.py').as_posix(),
        'lineno': 4,
        'col_offset': 0,
        'end_lineno': 4,
        'end_col_offset': 3,
        'category': 'uncalled',
        'message': 'cur.close() must be called',
        'rule': 'dbapi-cursor-close',
    }

def test_exclude(project: Path, capsys: pytest.CaptureFixture) -> None:
    assert main([str(project / 'app.py'), str(project / 'dbapi.py'),
                 '-c', str(project / 'uncalled.yaml'),
                 '-d', '0', '--exclude', 'app.py']) == 0
    assert capsys.readouterr().out == ''

def test_socket_stubs(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    pytest.importorskip('typeshed_client')
    (tmp_path / 'client.py').write_text(dedent(SOCKET_SRC))
    assert main([str(tmp_path / 'client.py'), '-d', '2']) == 1
    out = capsys.readouterr().out.splitlines()
    assert out == [f'{(tmp_path / "client.py").as_posix()}:5:4: sock.close() must be called [socket]']

def test_socket_without_stubs(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    (tmp_path / 'client.py').write_text(dedent(SOCKET_SRC))
    assert main([str(tmp_path / 'client.py'), '-d', '0']) == 0
