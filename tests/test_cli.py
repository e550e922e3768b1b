"""Tests for the edit-sessions command line."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest
from typer.testing import CliRunner

from edit_sessions.cli.main import app

requires_git = pytest.mark.skipif(shutil.which('git') is None, reason='git executable not available')

runner = CliRunner()


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    return tmp_path / 'store'


@pytest.fixture
def plain_folder(tmp_path: Path) -> Path:
    path = tmp_path / 'machine-b' / 'project'
    path.mkdir(parents=True)
    return path


@requires_git
def test_store_without_changes(plain_folder: Path, store_dir: Path) -> None:
    result = runner.invoke(app, ['store', '-F', str(plain_folder), '-s', str(store_dir)])

    assert result.exit_code == 0, result.output
    assert 'No edits to store.' in result.output


def test_list_empty_store(store_dir: Path) -> None:
    result = runner.invoke(app, ['list', '-s', str(store_dir)])

    assert result.exit_code == 0
    assert 'No edit sessions stored.' in result.output


def test_show_missing_session(store_dir: Path) -> None:
    result = runner.invoke(app, ['show', '-s', str(store_dir)])

    assert result.exit_code == 1
    assert 'Edit session not found: latest' in result.output


def test_resume_with_nothing_stored(plain_folder: Path, store_dir: Path) -> None:
    result = runner.invoke(app, ['resume', '-F', str(plain_folder), '-s', str(store_dir)])

    assert result.exit_code == 0
    assert 'No edit session to resume.' in result.output


def test_resume_rejects_uri_without_ref(plain_folder: Path, store_dir: Path) -> None:
    result = runner.invoke(app, ['resume', 'vscode://folder/project', '-F', str(plain_folder), '-s', str(store_dir)])

    assert result.exit_code == 1
    assert 'does not carry an editSessionId' in result.output


def test_missing_workspace_folder(tmp_path: Path, store_dir: Path) -> None:
    result = runner.invoke(app, ['store', '-F', str(tmp_path / 'absent'), '-s', str(store_dir)])

    assert result.exit_code == 1
    assert 'Workspace folder does not exist' in result.output


def test_gist_store_requires_token(plain_folder: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv('GITHUB_TOKEN', raising=False)

    result = runner.invoke(app, ['store', '-F', str(plain_folder), '-s', 'gist://'])

    assert result.exit_code == 1
    assert 'GitHub token required' in result.output


@requires_git
def test_store_show_and_resume_across_folders(tmp_path: Path, plain_folder: Path, store_dir: Path) -> None:
    source = tmp_path / 'machine-a' / 'project'
    source.mkdir(parents=True)
    subprocess.run(['git', 'init', '--quiet'], cwd=source, check=True)
    (source / 'a.txt').write_text('hello')

    stored = runner.invoke(app, ['store', '-F', str(source), '-s', str(store_dir)])
    assert stored.exit_code == 0, stored.output
    assert 'Edit session stored!' in stored.output

    shown = runner.invoke(app, ['show', '-s', str(store_dir)])
    assert shown.exit_code == 0
    assert '+ a.txt' in shown.output

    resumed = runner.invoke(app, ['resume', '-F', str(plain_folder), '-s', str(store_dir), '--yes'])
    assert resumed.exit_code == 0, resumed.output
    assert 'Changes applied: 1' in resumed.output
    assert (plain_folder / 'a.txt').read_text() == 'hello'

    listed = runner.invoke(app, ['list', '-s', str(store_dir)])
    assert 'No edit sessions stored.' in listed.output
