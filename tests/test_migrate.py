"""Tests for the command-line entry point."""

import logging
import sys

import pytest
import yaml

import migrate


@pytest.fixture
def cli(monkeypatch, tmp_path, export_dir):
    """Write a config file and run main() with the given extra arguments."""
    monkeypatch.setattr(migrate, 'setup_logging', lambda **kwargs: logging.getLogger('kibela_esa_migrator'))

    config_path = tmp_path / 'config.yaml'
    config_path.write_text(yaml.safe_dump({
        'kibela': {'export_dir': str(export_dir), 'team': 'team.example', 'session_id': 'sid'},
        'esa': {'team': 'dest', 'access_token': 'token'},
        'migration': {'root_category': 'Kibela', 'output_path': str(tmp_path / 'out.tsv')}
    }), encoding='utf-8')

    def _run(*args):
        monkeypatch.setattr(sys, 'argv', ['migrate.py', '--config', str(config_path), *args])
        return migrate.main()
    return _run


class TestMain:
    """Exit codes and error reporting."""

    def test_config_error_exit_code(self, cli, monkeypatch, tmp_path):
        monkeypatch.setattr(sys, 'argv', ['migrate.py', '--config', str(tmp_path / 'absent.yaml')])

        assert migrate.main() == 2

    def test_runs_migration_with_settings(self, cli, monkeypatch):
        seen = []
        monkeypatch.setattr(migrate, 'run_migration', lambda config, logger: seen.append(config) or 0)

        assert cli('--dry-run') == 0
        assert seen[0].dry_run is True
        assert seen[0].esa_team == 'dest'

    def test_runtime_value_error_not_reported_as_config_error(self, cli, monkeypatch, capsys):
        def fail(config, logger):
            raise ValueError("Note 7 already has an esa post")
        monkeypatch.setattr(migrate, 'run_migration', fail)

        with pytest.raises(ValueError, match='already has an esa post'):
            cli()
        assert 'Configuration error' not in capsys.readouterr().err
