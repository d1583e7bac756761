"""Tests for attachment and cross-reference link rewriting."""

from converters.link_rewriter import LinkRewriter
from fetchers.attachment_registry import AttachmentRegistry
from importers.id_mapping_tracker import IdMappingTracker
from models import Attachment


def make_registry(*attachments):
    registry = AttachmentRegistry()
    for attachment in attachments:
        registry.add(attachment)
    return registry


class TestAttachmentLinks:
    """Relative attachment image URLs point at uploaded esa files."""

    def setup_method(self):
        self.registry = make_registry(
            Attachment('42.png', '/export/attachments/42.png', 'https://dest/files/abc'),
            Attachment('7.JPG', '/export/attachments/7.JPG', 'https://dest/files/seven'),
            Attachment('8.gif', '/export/attachments/8.gif')
        )
        self.rewriter = LinkRewriter('team.example')

    def test_img_src_rewritten(self):
        body = '<img src="attachments/42.png">'
        assert self.rewriter.rewrite_attachment_links(body, self.registry) == '<img src="https://dest/files/abc">'
        assert self.rewriter.stats['attachment_links_rewritten'] == 1

    def test_parent_relative_src(self):
        body = 'Look: <img width="300" src="../../attachments/42.png" alt="x" />'
        result = self.rewriter.rewrite_attachment_links(body, self.registry)
        assert result == 'Look: <img width="300" src="https://dest/files/abc" alt="x" />'

    def test_uppercase_extension(self):
        body = '<img src="attachments/7.JPG">'
        assert self.rewriter.rewrite_attachment_links(body, self.registry) == '<img src="https://dest/files/seven">'

    def test_markdown_image(self):
        body = 'before ![diagram](attachments/42.png) after'
        result = self.rewriter.rewrite_attachment_links(body, self.registry)
        assert result == 'before ![diagram](https://dest/files/abc) after'

    def test_unknown_attachment_left_unchanged(self):
        body = '<img src="attachments/99.png">'
        assert self.rewriter.rewrite_attachment_links(body, self.registry, 'note 1') == body
        unresolved = self.rewriter.get_stats()['unresolved']
        assert len(unresolved) == 1
        assert unresolved[0]['type'] == 'attachment'
        assert unresolved[0]['context'] == 'note 1'

    def test_not_uploaded_left_unchanged(self):
        body = '<img src="attachments/8.gif">'
        assert self.rewriter.rewrite_attachment_links(body, self.registry) == body

    def test_absolute_url_ignored(self):
        body = '<img src="https://cdn.example.com/attachments/42.png">'
        assert self.rewriter.rewrite_attachment_links(body, self.registry) == body
        assert self.rewriter.get_stats()['unresolved'] == []

    def test_surrounding_markdown_untouched(self):
        body = '# Title\n\n* item\n\n<img src="attachments/42.png">\n\n```\ncode\n```\n'
        result = self.rewriter.rewrite_attachment_links(body, self.registry)
        assert result == '# Title\n\n* item\n\n<img src="https://dest/files/abc">\n\n```\ncode\n```\n'


class TestCrossReferences:
    """Kibela note and wiki URLs become esa post links."""

    def setup_method(self):
        self.mapping = {'7': (101, 'Intro')}

    def test_note_url_rewritten(self):
        rewriter = LinkRewriter('team.example')
        body = 'See https://team.example.kibe.la/notes/7 for details'
        result = rewriter.rewrite_cross_references(body, self.mapping)
        assert result == 'See [101: Intro](/posts/101) for details'
        assert rewriter.stats['cross_references_rewritten'] == 1

    def test_unmapped_note_left_unchanged(self):
        rewriter = LinkRewriter('team.example')
        body = 'See https://team.example.kibe.la/notes/999'
        assert rewriter.rewrite_cross_references(body, self.mapping) == body
        assert rewriter.get_stats()['unresolved'][0]['type'] == 'reference'

    def test_nested_path_uses_last_id(self):
        rewriter = LinkRewriter('team.example')
        body = 'https://team.example.kibe.la/groups/3/notes/7'
        assert rewriter.rewrite_cross_references(body, self.mapping) == '[101: Intro](/posts/101)'

    def test_wiki_url_uses_redirect_lookup(self):
        lookups = []

        def lookup(wiki_id):
            lookups.append(wiki_id)
            return {'55': '7'}.get(wiki_id)

        rewriter = LinkRewriter('team.example', redirect_lookup=lookup)
        body = 'https://team.example.kibe.la/wikis/55 and https://team.example.kibe.la/wikis/56'
        result = rewriter.rewrite_cross_references(body, self.mapping)
        assert result == '[101: Intro](/posts/101) and https://team.example.kibe.la/wikis/56'
        assert lookups == ['55', '56']

    def test_wiki_url_without_lookup(self):
        rewriter = LinkRewriter('team.example')
        body = 'https://team.example.kibe.la/wikis/7'
        assert rewriter.rewrite_cross_references(body, self.mapping) == body

    def test_other_team_ignored(self):
        rewriter = LinkRewriter('team.example')
        body = 'https://other.kibe.la/notes/7'
        assert not rewriter.has_cross_references(body)
        assert rewriter.rewrite_cross_references(body, self.mapping) == body

    def test_has_cross_references(self):
        rewriter = LinkRewriter('team.example')
        assert rewriter.has_cross_references('x https://team.example.kibe.la/notes/1 y')
        assert not rewriter.has_cross_references('no links')
        assert not rewriter.has_cross_references('')

    def test_works_with_mapping_tracker(self):
        tracker = IdMappingTracker()
        tracker.add_mapping('7', 101, 'Intro', 'https://dest.esa.io/posts/101')
        tracker.freeze()

        rewriter = LinkRewriter('team.example')
        result = rewriter.rewrite_cross_references('https://team.example.kibe.la/notes/7', tracker)
        assert result == '[101: Intro](/posts/101)'
