import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest

import cli
from ingest.errors import AuthenticationError
from storage.cache import ResponseCache


def _args(**overrides):
    base = {'out_file': '', 'start': '2025-01-10'}
    base.update(overrides)
    return SimpleNamespace(**base)


def test_write_output_creates_file(tmp_path, capsys):
    target = tmp_path / 'nested' / 'report.md'
    cli.write_output('md', '# Report', _args(out_file=str(target)))
    assert target.read_text(encoding='utf-8') == '# Report'
    assert 'Wrote report to' in capsys.readouterr().out


def test_write_output_prints_without_file(capsys):
    cli.write_output('md', '# Report', _args())
    assert capsys.readouterr().out.strip() == '# Report'


def test_write_output_auto_name(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cli.write_output('text', 'summary', _args(out_file='auto'))
    files = list(Path(tmp_path).glob('gitlab_activity_2025-01-10_*.txt'))
    assert len(files) == 1


def test_resolve_settings_reads_environment(monkeypatch):
    monkeypatch.setenv('GITLAB_BASE_URL', 'https://gitlab.example.com/api/v4')
    monkeypatch.setenv('GITLAB_ACCESS_TOKEN', 'envtok')
    parser = cli.build_parser()
    args = parser.parse_args(['--start', '2025-01-10'])
    cli._resolve_settings(args, parser)
    assert args.base_url == 'https://gitlab.example.com/api/v4'
    assert args.token == 'envtok'


def test_resolve_settings_missing_token_exits(monkeypatch):
    monkeypatch.delenv('GITLAB_BASE_URL', raising=False)
    monkeypatch.delenv('GITLAB_ACCESS_TOKEN', raising=False)
    parser = cli.build_parser()
    args = parser.parse_args(['--start', '2025-01-10', '--base-url', 'https://gitlab.example.com/api/v4'])
    with pytest.raises(SystemExit):
        cli._resolve_settings(args, parser)


def test_build_options_applies_flags():
    parser = cli.build_parser()
    args = parser.parse_args(['--group-by', 'category', '--show-match-reasons', '--no-statistics', '--max-description-length', '40'])
    opts = cli._build_options(args)
    assert opts.group_by == 'category'
    assert opts.show_match_reasons is True
    assert opts.show_statistics is False
    assert opts.max_description_length == 40


def _cli_base(tmp_path):
    return ['--base-url', 'https://gitlab.example.com/api/v4', '--token', 'tok', '--cache', str(tmp_path / 'cache.json')]


def test_cache_info_prints_stats(tmp_path, capsys):
    cache = ResponseCache(str(tmp_path / 'cache.json'), access_token='tok')
    cache.set_project(1, {'id': 1, 'name': 'Alpha'})
    cache.close()
    assert cli.main(_cli_base(tmp_path) + ['--cache-info']) == 0
    assert json.loads(capsys.readouterr().out) == {'users': 0, 'projects': 1}


def test_cache_clear_force(tmp_path, capsys):
    cache = ResponseCache(str(tmp_path / 'cache.json'), access_token='tok')
    cache.set_user(1, {'id': 1})
    cache.close()
    assert cli.main(_cli_base(tmp_path) + ['--cache-clear', '--force']) == 0
    assert 'Cleared cache' in capsys.readouterr().out
    assert ResponseCache(str(tmp_path / 'cache.json'), access_token='tok').stats() == {'users': 0, 'projects': 0}


def test_cache_clear_aborts_without_confirmation(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr('builtins.input', lambda prompt: 'n')
    cache = ResponseCache(str(tmp_path / 'cache.json'), access_token='tok')
    cache.set_user(1, {'id': 1})
    cache.close()
    cli.main(_cli_base(tmp_path) + ['--cache-clear'])
    assert 'Aborted' in capsys.readouterr().out
    assert ResponseCache(str(tmp_path / 'cache.json'), access_token='tok').stats()['users'] == 1


def test_main_requires_start(tmp_path):
    with pytest.raises(SystemExit):
        cli.main(_cli_base(tmp_path))


def test_main_rejects_bad_date(tmp_path):
    with pytest.raises(SystemExit):
        cli.main(_cli_base(tmp_path) + ['--start', '2025-13-01'])


def test_main_prints_report(tmp_path, capsys):
    with patch('cli.build_report', return_value=(None, 'REPORT TEXT')) as mocked:
        assert cli.main(_cli_base(tmp_path) + ['--start', '2025-01-10', '--end', '2025-01-12', '--output', 'text', '--source', 'commits']) == 0
    assert 'REPORT TEXT' in capsys.readouterr().out
    _, kwargs = mocked.call_args
    assert kwargs['fmt'] == 'text'
    assert kwargs['source'] == 'commits'


def test_main_reports_failure(tmp_path, capsys):
    with patch('cli.build_report', side_effect=AuthenticationError('Authentication failed', 401)):
        assert cli.main(_cli_base(tmp_path) + ['--start', '2025-01-10']) == 1
    assert 'Failed to build the GitLab activity report: Authentication failed' in capsys.readouterr().out
