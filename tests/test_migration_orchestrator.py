"""End-to-end tests for the staged migration against a fake esa client."""

import json
import logging
from pathlib import Path

import pytest

from conftest import FakeEsaClient
from converters import ContentTransformer
from fetchers.note_reader import MissingTitleError
from importers import IdMappingTracker
from orchestrator.migration_orchestrator import MigrationOrchestrator
from orchestrator.migration_report import MigrationReport


ALPHA_BODY = (
    "# Alpha\n"
    "\n"
    "See https://team.example.kibe.la/notes/2 for details.\n"
    "\n"
    "<img src=\"attachments/10.png\">\n"
)
BETA_BODY = "# Beta\n\n##Usage\nNothing linked here.\n"


@pytest.fixture
def two_note_corpus(corpus):
    corpus.add_note(1, 'alpha', ALPHA_BODY, folders=['Team / Docs'])
    corpus.add_note(
        2, 'beta', BETA_BODY, author='@bob',
        comments=[
            {'content': '##Reply <img src="attachments/10.png">', 'author': '@bob',
             'published_at': '2021-03-06T09:00:00+09:00'},
            {'content': 'From alice', 'author': '@alice',
             'published_at': '2021-03-07T09:00:00+09:00'}
        ]
    )
    corpus.add_attachment('10.png')
    return corpus


def run(config, client, **kwargs):
    orchestrator = MigrationOrchestrator(config, client=client, redirect_lookup={}.get, sleep=lambda s: None)
    return orchestrator, orchestrator.orchestrate_migration(**kwargs)


class TestEndToEnd:
    """A links to B: both created, A updated with a link to B's post."""

    def test_posts_created_and_linked(self, two_note_corpus, config):
        client = FakeEsaClient()

        orchestrator, report = run(config, client)

        alpha_post = client.posts[101]['post']
        beta_post = client.posts[102]['post']
        assert alpha_post['name'] == 'Alpha'
        assert alpha_post['category'] == 'Kibela/Docs'
        assert alpha_post['user'] == 'alice_esa'
        assert beta_post['user'] == 'esa_bot'

        # Created body: title stripped, image rewritten, reference not yet resolved
        assert alpha_post['body_md'].startswith("See https://team.example.kibe.la/notes/2 for details.")
        assert '<img src="https://dest/files/10.png">' in alpha_post['body_md']
        assert '> この記事は Kibela からの移行記事です。' in alpha_post['body_md']
        assert beta_post['body_md'].startswith("## Usage\n")

        assert len(client.updates) == 1
        number, payload = client.updates[0]
        assert number == 101
        assert payload['post']['body_md'].startswith("See [102: Beta](/posts/102) for details.")
        assert payload['post']['body_md'].count('この記事は Kibela からの移行記事です') == 1

        assert report['summary']['posts_created'] == 2
        assert report['summary']['posts_updated'] == 1
        assert report['summary']['total_errors'] == 0
        assert orchestrator.mapping.is_frozen

    def test_comments(self, two_note_corpus, config):
        client = FakeEsaClient()

        run(config, client)

        assert [number for number, _ in client.comments] == [102, 102]
        first = client.comments[0][1]['comment']
        second = client.comments[1][1]['comment']
        assert first['body_md'] == '## Reply <img src="https://dest/files/10.png">\n\n(投稿者：bob)'
        assert first['user'] == 'esa_bot'
        assert first['created_at'] == '2021-03-06 09:00:00'
        assert second['body_md'] == 'From alice'
        assert second['user'] == 'alice_esa'

    def test_post_mapping_report(self, two_note_corpus, config):
        run(config, FakeEsaClient())

        lines = Path(config.output_path).read_text(encoding='utf-8').splitlines()
        assert lines == [
            '"Alpha"\t"https://team.example.kibe.la/notes/1"\t"https://dest.esa.io/posts/101"',
            '"Beta"\t"https://team.example.kibe.la/notes/2"\t"https://dest.esa.io/posts/102"',
        ]

    def test_json_report_exported(self, two_note_corpus, make_config, tmp_path):
        report_path = tmp_path / 'report.json'

        run(make_config(report_path=str(report_path)), FakeEsaClient())

        data = json.loads(report_path.read_text(encoding='utf-8'))
        assert data['summary']['mappings_written'] == 2

    def test_wiki_reference_resolved_through_lookup(self, corpus, config):
        corpus.add_note(1, 'alpha', "# Alpha\nhttps://team.example.kibe.la/wikis/900\n")
        corpus.add_note(2, 'beta', "# Beta\n")
        client = FakeEsaClient()

        orchestrator = MigrationOrchestrator(
            config, client=client, redirect_lookup={'900': '2'}.get, sleep=lambda s: None
        )
        orchestrator.orchestrate_migration()

        assert client.updates[0][1]['post']['body_md'].startswith('[102: Beta](/posts/102)')


class TestFailures:
    """Per-item failures are recorded and the run continues."""

    def test_failed_post_does_not_stop_run(self, two_note_corpus, config):
        client = FakeEsaClient(fail_titles={'Alpha'})

        orchestrator, report = run(config, client)

        assert [p['post']['name'] for p in client.posts.values()] == ['Beta']
        assert client.updates == []
        assert report['summary']['posts_created'] == 1
        assert report['summary']['total_errors'] == 1
        assert report['errors'][0]['phase'] == 'create'
        assert report['errors'][0]['note_id'] == '1'

        lines = Path(config.output_path).read_text(encoding='utf-8').splitlines()
        assert lines == ['"Beta"\t"https://team.example.kibe.la/notes/2"\t"https://dest.esa.io/posts/101"']

    def test_failed_upload_leaves_link(self, two_note_corpus, config):
        client = FakeEsaClient(fail_uploads={'10.png'})

        _, report = run(config, client)

        assert '<img src="attachments/10.png">' in client.posts[101]['post']['body_md']
        assert report['phases']['upload']['failed'] == 1
        assert report['summary']['unresolved_links'] >= 1

    def test_failed_comments_recorded(self, two_note_corpus, config):
        client = FakeEsaClient(fail_comments=True)

        _, report = run(config, client)

        assert report['phases']['create']['comments_failed'] == 2
        assert report['summary']['posts_created'] == 2

    def test_unmigrated_reference_left_unchanged(self, corpus, config):
        corpus.add_note(1, 'alpha', "# Alpha\nhttps://team.example.kibe.la/notes/999\n")
        client = FakeEsaClient()

        _, report = run(config, client)

        assert client.updates[0][1]['post']['body_md'].startswith('https://team.example.kibe.la/notes/999')
        assert report['summary']['unresolved_links'] == 1

    def test_invalid_note_skipped(self, two_note_corpus, config):
        two_note_corpus.add_note(3, 'broken', "no heading\n")
        client = FakeEsaClient()

        _, report = run(config, client)

        assert len(client.posts) == 2
        assert report['errors'][0]['phase'] == 'read'

    def test_invalid_note_aborts_when_configured(self, two_note_corpus, make_config):
        two_note_corpus.add_note(3, 'broken', "no heading\n")
        client = FakeEsaClient()

        with pytest.raises(MissingTitleError):
            run(make_config(skip_invalid_notes=False), client)

        assert client.posts == {}


class TestDryRun:
    """Dry run builds payloads but never calls esa."""

    def test_no_calls_and_no_report(self, two_note_corpus, config):
        client = FakeEsaClient()

        _, report = run(config, client, dry_run=True)

        assert client.posts == {}
        assert client.uploads == []
        assert client.comments == []
        assert client.updates == []
        assert not Path(config.output_path).exists()
        assert report['summary']['dry_run'] is True
        assert 'report' not in report['phases']

    def test_dry_run_from_config(self, two_note_corpus, make_config):
        client = FakeEsaClient()

        run(make_config(dry_run=True), client)

        assert client.posts == {}

    def test_no_redirect_lookups(self, corpus, make_config):
        corpus.add_note(1, 'alpha', "# Alpha\nhttps://team.example.kibe.la/wikis/900\n")
        lookups = []

        orchestrator = MigrationOrchestrator(
            make_config(dry_run=True), redirect_lookup=lookups.append, sleep=lambda s: None
        )
        report = orchestrator.orchestrate_migration()

        assert lookups == []
        assert report['phases']['rewrite']['candidates'] == 1

    def test_update_payloads_logged(self, two_note_corpus, make_config, caplog):
        caplog.set_level(logging.INFO)
        client = FakeEsaClient()

        _, report = run(make_config(dry_run=True), client)

        update_logs = [
            r.getMessage() for r in caplog.records
            if r.getMessage().startswith('[DRY RUN] Would update post for note 1')
        ]
        assert len(update_logs) == 1
        assert "'name': 'Alpha'" in update_logs[0]
        assert client.updates == []
        assert report['phases']['rewrite']['candidates'] == 1
        assert report['phases']['rewrite']['updated'] == 0


class TestLogging:
    """Component loggers sit under the application logger."""

    def test_default_loggers_are_children(self, config):
        orchestrator = MigrationOrchestrator(config, client=FakeEsaClient())

        loggers = [
            orchestrator.logger,
            orchestrator.transformer.logger,
            orchestrator.report_generator.logger,
            orchestrator.mapping.logger,
            ContentTransformer().logger,
            MigrationReport().logger,
            IdMappingTracker().logger
        ]
        assert all(lg.name.startswith('kibela_esa_migrator.') for lg in loggers)
