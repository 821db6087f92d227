"""Tests for the per change transformation context."""

import os
import re

import pytest

from repo_migrate.exceptions import ValidationException
from repo_migrate.migration.transform_work import (
    AUTHOR_LABEL,
    CURRENT_MESSAGE_TITLE_LABEL,
    CURRENT_REV_LABEL,
    LAST_REV_LABEL,
    Metadata,
    Runnable,
    TransformWork,
)
from repo_migrate.models import Author, Change, Revision
from repo_migrate.testing import TestingConsole
from repo_migrate.transform import Replace
from repo_migrate.utils.glob import Glob


class TestTransformWork:
    """Test TransformWork operations."""

    def setup_method(self):
        """Set up test fixtures."""
        self.author = Author.parse('Origin <origin@example.com>')

    def make_work(self, checkout_dir, message='Title\n\nBody\n', **kwargs):
        return TransformWork(
            checkout_dir=checkout_dir,
            metadata=Metadata(message=message, author=self.author),
            console=TestingConsole(),
            origin_label='DummyOrigin-RevId',
            resolved_reference=kwargs.pop(
                'resolved_reference', Revision(id='5', labels={'RESOLVED': ['r']})
            ),
            **kwargs,
        )

    def test_immutable_updates(self, tmp_path):
        """Test that metadata updates return new contexts."""
        work = self.make_work(tmp_path)
        other = work.with_message('New\n').with_author(Author.parse('A <a@example.com>'))

        assert work.message == 'Title\n\nBody\n'
        assert other.message == 'New\n'
        assert str(other.author) == 'A <a@example.com>'

    def test_labels(self, tmp_path):
        """Test adding, replacing and removing message labels."""
        work = self.make_work(tmp_path)

        work = work.add_label('Bug', '1')
        assert work.message == 'Title\n\nBody\n\nBug=1\n'

        work = work.add_or_replace_label('Bug', '2', separator=': ')
        assert work.message == 'Title\n\nBody\n\nBug: 2\n'

        work = work.add_text_before_labels('More body')
        assert work.message == 'Title\n\nBody\nMore body\n\nBug: 2\n'

        work = work.remove_label('Bug')
        assert 'Bug' not in work.message

    def test_hidden_labels(self, tmp_path):
        """Test that hidden labels are found but not written."""
        work = self.make_work(tmp_path).add_label('Secret', 'x', hidden=True)

        assert 'Secret' not in work.message
        assert work.find_label('Secret') == 'x'
        assert work.metadata.hidden_labels == (('Secret', 'x'),)

    def test_find_label_order(self, tmp_path):
        """Test lookup order: message, hidden labels, changes, resolved reference."""
        change = Change(
            revision=Revision(id='4', labels={'FROM_CHANGE': ['c']}),
            author=self.author,
            message='Change\n\nIN_CHANGE=m\n',
        )
        work = self.make_work(tmp_path, message='Title\n\nSHARED=message\n', changes=(change,))
        work = work.with_hidden_labels({'SHARED': ['hidden'], 'ONLY_HIDDEN': ['h']})

        assert work.find_label('SHARED') == 'message'
        assert work.find_label('ONLY_HIDDEN') == 'h'
        assert work.find_label('IN_CHANGE') == 'm'
        assert work.find_label('FROM_CHANGE') == 'c'
        assert work.find_label('RESOLVED') == 'r'
        assert work.find_label('MISSING') is None
        assert work.find_all_labels('SHARED') == ['message', 'hidden']

    def test_core_labels(self, tmp_path):
        """Test labels computed from the context."""
        work = self.make_work(
            tmp_path, last_rev=Revision(id='3 snapshot'), current_rev=Revision(id='4')
        )

        assert work.find_label(LAST_REV_LABEL) == '3'
        assert work.find_label(CURRENT_REV_LABEL) == '4'
        assert work.find_label(AUTHOR_LABEL) == 'Origin <origin@example.com>'
        assert work.find_label(CURRENT_MESSAGE_TITLE_LABEL) == 'Title'

    def test_changes_and_revisions_updates(self, tmp_path):
        """Test replacing the changes and the revisions of a context."""
        change = Change(
            revision=Revision(id='4'), author=self.author, message='Change\n\nIN_CHANGE=m\n'
        )
        work = self.make_work(tmp_path)

        updated = (
            work.with_changes([change])
            .with_last_rev(Revision(id='3'))
            .with_current_rev(Revision(id='4'))
        )

        assert work.changes == ()
        assert work.find_label(LAST_REV_LABEL) is None
        assert updated.changes[0] is change
        assert updated.find_label('IN_CHANGE') == 'm'
        assert updated.find_label(LAST_REV_LABEL) == '3'
        assert updated.find_label(CURRENT_REV_LABEL) == '4'
        assert updated.with_last_rev(None).find_label(LAST_REV_LABEL) is None

    def test_paths_confined_to_checkout(self, tmp_path):
        """Test reading and writing files of the checkout."""
        work = self.make_work(tmp_path)

        work.write_path('dir/file.txt', 'content')
        assert work.read_path('dir/file.txt') == 'content'

        with pytest.raises(ValidationException):
            work.write_path('../outside.txt', 'content')

    def test_create_symlink(self, tmp_path):
        """Test creating relative symlinks inside the checkout."""
        work = self.make_work(tmp_path)
        work.write_path('target.txt', 'content')

        work.create_symlink('links/link', 'target.txt')

        assert os.readlink(tmp_path / 'links' / 'link') == '../target.txt'
        with pytest.raises(ValidationException, match='is a symlink'):
            work.create_symlink('links/link', 'target.txt')
        with pytest.raises(ValidationException, match='regular file'):
            work.create_symlink('target.txt', 'links/link')

    def test_now_as_string(self, tmp_path):
        """Test formatting the current date."""
        value = self.make_work(tmp_path).now_as_string('yyyy-MM-dd HH:mm')

        assert re.fullmatch(r'\d{4}-\d{2}-\d{2} \d{2}:\d{2}', value)

    def test_run_glob(self, tmp_path):
        """Test running a glob against the checkout."""
        work = self.make_work(tmp_path)
        work.write_path('a.txt', 'a')
        work.write_path('b.md', 'b')

        _, files = work.run(Runnable.of_glob(Glob(['*.txt'])))

        assert files == ['a.txt']

    def test_run_transform(self, tmp_path):
        """Test running a transformation refreshes the tree state."""
        work = self.make_work(tmp_path)
        work.write_path('a.txt', 'foo')
        work.tree_state.fingerprints()

        result, files = work.run(Runnable.of_transform(Replace('foo', 'bar')))

        assert files == []
        assert work.read_path('a.txt') == 'bar'
        assert result.tree_state.differs_from(work.tree_state)
