"""Shared fixtures: settings, an on-disk Kibela export and a fake esa client."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import pytest
import yaml

from config_loader import MigrationConfig
from importers.esa_client import EsaApiError

KIBELA_TEAM = 'team.example'
ESA_TEAM = 'dest'


class CorpusBuilder:
    """Writes Kibela export files below a temporary directory."""

    def __init__(self, root: Path, team: str = KIBELA_TEAM):
        self.root = root
        self.team = team
        self.root.mkdir(parents=True, exist_ok=True)

    def export_root(self, index: int = 1) -> Path:
        path = self.root / f"kibela-{self.team}-{index}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def add_note(
        self,
        note_id: int,
        name: str,
        body: str,
        kind: str = 'notes',
        author: str = '@alice',
        published_at: str = '2021-03-04T10:20:30+09:00',
        folders: Optional[list] = None,
        comments: Optional[list] = None,
        index: int = 1,
        subdir: str = '',
        extra: Optional[Dict[str, Any]] = None
    ) -> Path:
        front_matter = {
            'id': f"/{kind}/{note_id}",
            'author': author,
            'published_at': published_at,
            'folders': folders or [],
            'coediting': False,
            'comments': comments or []
        }
        front_matter.update(extra or {})
        text = "---\n" + yaml.safe_dump(front_matter, allow_unicode=True, sort_keys=False) + "---\n" + body
        return self.write_raw(f"{kind}/{subdir}{note_id}-{name}.md", text, index)

    def write_raw(self, relative: str, text: str, index: int = 1) -> Path:
        path = self.export_root(index) / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding='utf-8')
        return path

    def add_attachment(self, name: str, data: bytes = b'\x89PNG', index: int = 1) -> Path:
        path = self.export_root(index) / 'attachments' / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path


class FakeEsaClient:
    """In-memory stand-in for EsaClient that numbers posts from 101."""

    def __init__(self, fail_titles=(), fail_uploads=(), fail_comments=False):
        self.fail_titles = set(fail_titles)
        self.fail_uploads = set(fail_uploads)
        self.fail_comments = fail_comments
        self.posts: Dict[int, Dict[str, Any]] = {}
        self.updates = []
        self.comments = []
        self.uploads = []
        self._next_number = 100

    def create_post(self, payload):
        if payload['post']['name'] in self.fail_titles:
            raise EsaApiError(500, 'internal_server_error', 'boom')
        self._next_number += 1
        self.posts[self._next_number] = payload
        return {'number': self._next_number, 'url': f"https://{ESA_TEAM}.esa.io/posts/{self._next_number}"}

    def update_post(self, number, payload):
        self.updates.append((number, payload))
        return {'number': number}

    def create_comment(self, number, payload):
        if self.fail_comments:
            raise EsaApiError(500, 'internal_server_error', 'comment failed')
        self.comments.append((number, payload))
        return {'id': len(self.comments)}

    def upload_attachment(self, path):
        name = os.path.basename(path)
        if name in self.fail_uploads:
            raise EsaApiError(400, 'bad_request', 'upload rejected')
        self.uploads.append(path)
        return {'attachment': {'url': f"https://dest/files/{name}"}}


@pytest.fixture
def export_dir(tmp_path):
    path = tmp_path / 'export'
    path.mkdir()
    return path


@pytest.fixture
def corpus(export_dir):
    return CorpusBuilder(export_dir)


@pytest.fixture
def make_config(export_dir, tmp_path):
    def _make(**overrides):
        values = dict(
            kibela_dir=str(export_dir),
            kibela_team=KIBELA_TEAM,
            esa_team=ESA_TEAM,
            root_category='Kibela',
            esa_access_token='token',
            user_mappings={'alice': 'alice_esa'},
            output_path=str(tmp_path / 'post_mappings.tsv'),
            request_delay=0
        )
        values.update(overrides)
        return MigrationConfig(**values)
    return _make


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def fake_client():
    return FakeEsaClient()
