"""Tests for transformations."""

import pytest

from repo_migrate.exceptions import (
    NonReversibleValidationException,
    ValidationException,
    VoidOperationException,
)
from repo_migrate.migration.transform_work import Metadata, TransformWork
from repo_migrate.models import Author, Revision
from repo_migrate.testing import MessageType, TestingConsole
from repo_migrate.transform import ExplicitTransform, MapAuthor, Move, Replace, Sequence
from repo_migrate.transform.base import Transformation
from repo_migrate.utils.glob import Glob

AUTHOR = Author.parse('Origin <origin@example.com>')


def make_work(checkout_dir, console=None, message='Change message\n', author=AUTHOR):
    return TransformWork(
        checkout_dir=checkout_dir,
        metadata=Metadata(message=message, author=author),
        console=console or TestingConsole(),
        origin_label='DummyOrigin-RevId',
        resolved_reference=Revision(id='1'),
    )


def write(root, path, content):
    target = root / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)


class RecordingTransformation(Transformation):
    """Appends its name to the message, for ordering assertions."""

    def __init__(self, name):
        self.name = name

    def transform(self, work):
        return work.with_message(work.message + self.name)

    def reverse(self):
        return RecordingTransformation(self.name + "'")

    def describe(self):
        return self.name


class TestMove:
    """Test the move transformation."""

    def test_move_file(self, tmp_path):
        """Test moving a single file to a new directory."""
        write(tmp_path, 'a.txt', 'a')

        Move('a.txt', 'dir/b.txt').transform(make_work(tmp_path))

        assert not (tmp_path / 'a.txt').exists()
        assert (tmp_path / 'dir' / 'b.txt').read_text() == 'a'

    def test_move_directory(self, tmp_path):
        """Test moving a directory removes the source."""
        write(tmp_path, 'foo/one.txt', '1')
        write(tmp_path, 'foo/sub/two.txt', '2')

        Move('foo', 'bar').transform(make_work(tmp_path))

        assert not (tmp_path / 'foo').exists()
        assert (tmp_path / 'bar' / 'one.txt').read_text() == '1'
        assert (tmp_path / 'bar' / 'sub' / 'two.txt').read_text() == '2'

    def test_move_root_into_subdirectory(self, tmp_path):
        """Test moving the whole tree into a subdirectory."""
        write(tmp_path, 'README', 'readme')
        write(tmp_path, 'src/main.py', 'main')

        Move('', 'third_party/lib').transform(make_work(tmp_path))

        assert (tmp_path / 'third_party' / 'lib' / 'README').read_text() == 'readme'
        assert (tmp_path / 'third_party' / 'lib' / 'src' / 'main.py').read_text() == 'main'
        assert not (tmp_path / 'src').exists()

    def test_move_with_paths(self, tmp_path):
        """Test that only the selected files of the directory are moved."""
        write(tmp_path, 'foo/a.java', 'a')
        write(tmp_path, 'foo/b.txt', 'b')

        Move('foo', 'bar', paths=Glob(['*.java'])).transform(make_work(tmp_path))

        assert (tmp_path / 'bar' / 'a.java').exists()
        assert (tmp_path / 'foo' / 'b.txt').exists()

    def test_missing_source_is_noop(self, tmp_path):
        """Test that moving a missing path fails unless no-ops are ignored."""
        with pytest.raises(VoidOperationException):
            Move('missing', 'other').transform(make_work(tmp_path))

        console = TestingConsole()
        work = make_work(tmp_path, console=console)
        work = work.with_inside_explicit_transform(ignore_noop=True)
        Move('missing', 'other').transform(work)

        assert console.count(MessageType.WARNING, ".*'missing'.*doesn't exist.*") == 1

    def test_existing_target(self, tmp_path):
        """Test that existing targets are only replaced with overwrite."""
        write(tmp_path, 'a.txt', 'a')
        write(tmp_path, 'b.txt', 'b')

        with pytest.raises(ValidationException, match='already exists'):
            Move('a.txt', 'b.txt').transform(make_work(tmp_path))

        Move('a.txt', 'b.txt', overwrite=True).transform(make_work(tmp_path))
        assert (tmp_path / 'b.txt').read_text() == 'a'

    def test_invalid_paths(self):
        """Test that moves are validated when created."""
        with pytest.raises(ValidationException):
            Move('foo', 'foo')
        with pytest.raises(ValidationException):
            Move('/abs', 'foo')
        with pytest.raises(ValidationException):
            Move('../up', 'foo')

    def test_reverse(self, tmp_path):
        """Test that the reverse move restores the tree."""
        write(tmp_path, 'foo/a.txt', 'a')
        move = Move('foo', 'bar')

        move.transform(make_work(tmp_path))
        move.reverse().transform(make_work(tmp_path))

        assert (tmp_path / 'foo' / 'a.txt').read_text() == 'a'
        assert not (tmp_path / 'bar').exists()


class TestReplace:
    """Test the replace transformation."""

    def test_simple_replace(self, tmp_path):
        """Test replacing a literal string."""
        write(tmp_path, 'a.txt', 'hello foo\nfoo again\n')

        Replace('foo', 'bar').transform(make_work(tmp_path))

        assert (tmp_path / 'a.txt').read_text() == 'hello bar\nbar again\n'

    def test_regex_groups(self, tmp_path):
        """Test templates with named groups."""
        write(tmp_path, 'Main.java', 'import com.example.Foo;\n')

        Replace(
            'import ${pkg}.Foo', 'import ${pkg}.Bar', regex_groups={'pkg': '[a-z.]+'}
        ).transform(make_work(tmp_path))

        assert (tmp_path / 'Main.java').read_text() == 'import com.example.Bar;\n'

    def test_paths(self, tmp_path):
        """Test that only the selected files are changed."""
        write(tmp_path, 'a.txt', 'foo')
        write(tmp_path, 'b.md', 'foo')

        Replace('foo', 'bar', paths=Glob(['*.txt'])).transform(make_work(tmp_path))

        assert (tmp_path / 'a.txt').read_text() == 'bar'
        assert (tmp_path / 'b.md').read_text() == 'foo'

    def test_noop(self, tmp_path):
        """Test that a replace that changes nothing is a no-op."""
        write(tmp_path, 'a.txt', 'nothing here')

        with pytest.raises(VoidOperationException):
            Replace('foo', 'bar').transform(make_work(tmp_path))

    def test_validation(self):
        """Test that templates and groups are validated."""
        with pytest.raises(ValidationException):
            Replace('', 'bar')
        with pytest.raises(ValidationException):
            Replace('${x}', 'bar')
        with pytest.raises(ValidationException):
            Replace('foo', '${x}', regex_groups={'x': '.*'})
        with pytest.raises(ValidationException):
            Replace('foo', 'bar', regex_groups={'unused': '.*'})

    def test_reverse(self, tmp_path):
        """Test that the reverse replace restores the content."""
        write(tmp_path, 'a.txt', 'foo-1\n')
        replace = Replace('foo-${n}', 'bar-${n}', regex_groups={'n': '[0-9]+'})

        replace.transform(make_work(tmp_path))
        assert (tmp_path / 'a.txt').read_text() == 'bar-1\n'

        replace.reverse().transform(make_work(tmp_path))
        assert (tmp_path / 'a.txt').read_text() == 'foo-1\n'

    def test_not_reversible(self):
        """Test that dropping a group makes the replace non reversible."""
        replace = Replace('foo${x}', 'bar', regex_groups={'x': '[0-9]'})

        with pytest.raises(NonReversibleValidationException):
            replace.reverse()


class TestMapAuthor:
    """Test the author mapping transformation."""

    def setup_method(self):
        """Set up test fixtures."""
        self.mapping = MapAuthor.create(
            {
                'Foo <foo@example.com>': 'Bar <bar@example.com>',
                'baz@example.com': 'Baz <baz@example.org>',
                'qux': 'Qux <qux@example.org>',
            }
        )

    def test_tiers(self, tmp_path):
        """Test lookups by author, by email and by name."""
        cases = {
            'Foo <foo@example.com>': 'Bar <bar@example.com>',
            'Other Name <baz@example.com>': 'Baz <baz@example.org>',
            'qux <unknown@example.com>': 'Qux <qux@example.org>',
            'Nobody <nobody@example.com>': 'Nobody <nobody@example.com>',
        }
        for origin, expected in cases.items():
            work = self.mapping.transform(make_work(tmp_path, author=Author.parse(origin)))
            assert str(work.author) == expected

    def test_author_tier_wins_over_email(self, tmp_path):
        """Test that an exact author entry is used before an email entry."""
        mapping = MapAuthor.create(
            {
                'A <a@example.com>': 'B <b@example.com>',
                'a@example.com': 'C <c@example.com>',
            }
        )

        work = mapping.transform(make_work(tmp_path, author=Author.parse('A <a@example.com>')))

        assert str(work.author) == 'B <b@example.com>'

    def test_fail_if_not_found(self, tmp_path):
        """Test that unmapped authors fail when configured."""
        mapping = MapAuthor.create({'a@example.com': 'A <a@example.org>'}, fail_if_not_found=True)

        with pytest.raises(ValidationException, match='Cannot find a mapping'):
            mapping.transform(make_work(tmp_path))

    def test_invalid_value(self):
        """Test that mapped values must be authors."""
        with pytest.raises(ValidationException):
            MapAuthor.create({'foo@example.com': 'not an author'})

    def test_reverse(self, tmp_path):
        """Test reversing an author to author mapping."""
        mapping = MapAuthor.create(
            {'Foo <foo@example.com>': 'Bar <bar@example.com>'}, reversible=True
        )
        work = make_work(tmp_path, author=Author.parse('Bar <bar@example.com>'))

        assert str(mapping.reverse().transform(work).author) == 'Foo <foo@example.com>'

    def test_not_reversible(self):
        """Test mappings that cannot be reversed."""
        with pytest.raises(NonReversibleValidationException):
            self.mapping.reverse()

        with pytest.raises(NonReversibleValidationException, match='mail -> author'):
            MapAuthor.create({'baz@example.com': 'Baz <b@example.org>'}, reversible=True).reverse()

        duplicated = MapAuthor.create(
            {
                'A <a@example.com>': 'C <c@example.com>',
                'B <b@example.com>': 'C <c@example.com>',
            },
            reversible=True,
        )
        with pytest.raises(NonReversibleValidationException, match='value already present'):
            duplicated.reverse()


class TestSequence:
    """Test ordered composition."""

    def test_order_and_progress(self, tmp_path):
        """Test that elements run in order and report progress."""
        console = TestingConsole()
        sequence = Sequence([RecordingTransformation('a'), RecordingTransformation('b')])

        work = sequence.transform(make_work(tmp_path, console=console, message='>'))

        assert work.message == '>ab'
        assert work.console is console
        assert console.texts(MessageType.PROGRESS) == ['[ 1/2] Transform a', '[ 2/2] Transform b']

    def test_reverse(self, tmp_path):
        """Test that the reverse reverses each element and the order."""
        sequence = Sequence([RecordingTransformation('a'), RecordingTransformation('b')])

        work = sequence.reverse().transform(make_work(tmp_path, message='>'))

        assert work.message == ">b'a'"

    def test_reverse_fails_on_first_non_reversible(self):
        """Test that a non reversible element aborts the reversal."""
        sequence = Sequence([RecordingTransformation('a'), MapAuthor.create({})])

        with pytest.raises(NonReversibleValidationException):
            sequence.reverse()

    def test_create_does_not_nest(self):
        """Test that a single sequence is not wrapped twice."""
        inner = Sequence([RecordingTransformation('a')])

        assert Sequence.create([inner]) is inner
        assert Sequence.create([RecordingTransformation('a')]).sequence[0].name == 'a'


class TestExplicitTransform:
    """Test nested transformation groups."""

    def test_runs_elements(self, tmp_path):
        """Test that the group applies its elements."""
        write(tmp_path, 'a.txt', 'foo')

        work = ExplicitTransform(
            [Replace('foo', 'bar'), RecordingTransformation('!')]
        ).transform(make_work(tmp_path, message='>'))

        assert (tmp_path / 'a.txt').read_text() == 'bar'
        assert work.message == '>!'

    def test_noop_group(self, tmp_path):
        """Test that a group that changes nothing fails."""
        write(tmp_path, 'a.txt', 'nothing')

        with pytest.raises(VoidOperationException):
            ExplicitTransform([Replace('foo', 'bar')]).transform(make_work(tmp_path))

    def test_author_rename_is_not_noop(self, tmp_path):
        """Test that renaming an author with the same email counts as a change."""
        write(tmp_path, 'a.txt', 'nothing')
        rename = MapAuthor.create({str(AUTHOR): 'Renamed <origin@example.com>'})

        work = ExplicitTransform([rename]).transform(make_work(tmp_path))

        assert str(work.author) == 'Renamed <origin@example.com>'

    def test_ignore_noop(self, tmp_path):
        """Test that ignore_noop turns no-ops into warnings."""
        write(tmp_path, 'a.txt', 'nothing')
        console = TestingConsole()

        ExplicitTransform([Replace('foo', 'bar')], ignore_noop=True).transform(
            make_work(tmp_path, console=console)
        )

        assert console.count(MessageType.WARNING, '.*was a no-op.*') >= 1

    def test_reverse(self, tmp_path):
        """Test explicit and automatic reversals."""
        explicit = ExplicitTransform(
            [RecordingTransformation('a')], reversal=[RecordingTransformation('z')]
        )
        automatic = ExplicitTransform([RecordingTransformation('a'), RecordingTransformation('b')])

        assert explicit.reverse().transform(make_work(tmp_path, message='>')).message == '>z'
        assert automatic.reverse().transform(make_work(tmp_path, message='>')).message == ">b'a'"
