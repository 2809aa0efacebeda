# Copyright (c) 2013-2026 NASK. All rights reserved.

import gzip
import pathlib
import shutil
import tempfile
import unittest

import pytest
from unittest_expander import (
    expand,
    foreach,
    param,
)

from n6mime.body_stores import (
    CutoffStoreChooser,
    FileBodyStore,
    ScalarBodyStore,
    StoreKind,
    StoreSpec,
    make_store,
)
from n6mime.io_helpers import MimeIOUsageError


_GZIP_AVAILABLE = shutil.which('gzip') is not None


class _TmpDirMixin:

    def setUp(self):
        tmp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(tmp_dir.cleanup)
        self.tmp_dir = pathlib.Path(tmp_dir.name)


@expand
class TestScalarBodyStore(unittest.TestCase):

    def test_initial_data(self):
        store = ScalarBodyStore(b'a\r\nb')
        assert store.as_bytes() == b'a\r\nb'
        assert store.as_lines() == [b'a\r\n', b'b']
        assert store.size == 4
        assert store.is_in_core
        assert store.path is None

    def test_opening_for_writing_truncates(self):
        store = ScalarBodyStore(b'old content')
        with store.open('w') as out_io:
            out_io.print(b'new')
        assert store.as_bytes() == b'new'

    def test_many_readers(self):
        store = ScalarBodyStore(b'0123456789')
        first = store.open('r')
        second = store.open('r')
        assert first.read(3) == b'012'
        assert second.read(5) == b'01234'
        assert first.seek(-100) == 0
        assert first.seek(100) == 10
        assert second.read() == b'56789'

    def test_purge(self):
        store = ScalarBodyStore(b'abc')
        store.purge()
        store.purge()
        assert store.is_purged
        assert store.size == 0
        with self.assertRaises(MimeIOUsageError):
            store.open('r')

    @foreach(['', 'rw', 'a', 'rb', None])
    def test_illegal_mode(self, mode):
        with self.assertRaises(ValueError):
            ScalarBodyStore().open(mode)


@expand
class TestFileBodyStore(_TmpDirMixin, unittest.TestCase):

    def test_writing_and_reading(self):
        path = self.tmp_dir / 'body.doc'
        store = FileBodyStore(str(path))
        assert store.path == path
        assert not store.is_in_core

        with store.open('w') as out_io:
            out_io.print(b'line 1\r\n', b'line 2\rline 3')

        assert path.read_bytes() == b'line 1\r\nline 2\rline 3'
        assert store.as_lines() == [b'line 1\r\n', b'line 2\r', b'line 3']
        with store.open('r') as in_io:
            assert in_io.getline() == b'line 1\r\n'
            in_io.seek(0)
            assert in_io.read(4) == b'line'

    def test_opening_for_writing_truncates(self):
        path = self.tmp_dir / 'body.doc'
        path.write_bytes(b'some old and long content')
        store = FileBodyStore(path)
        with store.open('w') as out_io:
            out_io.print(b'new')
        assert store.as_bytes() == b'new'

    def test_purge_removes_file(self):
        path = self.tmp_dir / 'body.doc'
        store = FileBodyStore(path)
        with store.open('w') as out_io:
            out_io.print(b'abc')
        assert path.exists()

        store.purge()

        assert not path.exists()
        assert store.is_purged
        with self.assertRaises(MimeIOUsageError):
            store.open('w')

    def test_purge_of_never_written_store(self):
        store = FileBodyStore(self.tmp_dir / 'nonexistent.doc')
        store.purge()
        assert store.is_purged

    def test_reading_nonexistent_file(self):
        store = FileBodyStore(self.tmp_dir / 'nonexistent.doc')
        with self.assertRaises(OSError):
            store.open('r')

    @pytest.mark.skipif(not _GZIP_AVAILABLE, reason='the `gzip` command is not available')
    def test_filter_commands(self):
        path = self.tmp_dir / 'body.doc.gz'
        store = FileBodyStore(
            path,
            reader_command=['gzip', '-dc'],
            writer_command=['gzip', '-c'])
        data = b'Hello, World!\n' * 1000

        with store.open('w') as out_io:
            out_io.print(data)

        assert gzip.decompress(path.read_bytes()) == data
        assert len(path.read_bytes()) < len(data)
        assert store.as_bytes() == data
        assert store.as_lines() == [b'Hello, World!\n'] * 1000

    @pytest.mark.skipif(not _GZIP_AVAILABLE, reason='the `gzip` command is not available')
    def test_failing_reader_command(self):
        path = self.tmp_dir / 'body.doc'
        path.write_bytes(b'this is not gzipped data')
        store = FileBodyStore(path, reader_command=['gzip', '-dc'])

        in_io = store.open('r')
        in_io.read()
        with self.assertRaises(OSError):
            in_io.close()

    def test_nonexistent_command(self):
        store = FileBodyStore(
            self.tmp_dir / 'body.doc',
            writer_command=['/nonexistent/n6mime-test-filter-command'])
        with self.assertRaises(OSError):
            store.open('w')


@expand
class TestStoreChoosing(unittest.TestCase):

    def setUp(self):
        self.made_paths = []

    def _path_maker(self, head):
        path = pathlib.Path(f'/tmp/body-{len(self.made_paths)}.doc')
        self.made_paths.append((path, head))
        return path

    @foreach(
        param(output_to_core='ALL', declared_length=None, expected_kind=StoreKind.SCALAR),
        param(output_to_core='all', declared_length=10**9, expected_kind=StoreKind.SCALAR),
        param(output_to_core='NONE', declared_length=0, expected_kind=StoreKind.FILE),
        param(output_to_core='none', declared_length=None, expected_kind=StoreKind.FILE),
        param(output_to_core=0, declared_length=0, expected_kind=StoreKind.SCALAR),
        param(output_to_core=0, declared_length=1, expected_kind=StoreKind.FILE),
        param(output_to_core=1000, declared_length=1000, expected_kind=StoreKind.SCALAR),
        param(output_to_core=1000, declared_length=1001, expected_kind=StoreKind.FILE),
        param(output_to_core=1000, declared_length=None, expected_kind=StoreKind.FILE)
            .label('unknown length'),
    )
    def test_cutoff(self, output_to_core, declared_length, expected_kind):
        chooser = CutoffStoreChooser(output_to_core, self._path_maker)
        head = object()

        spec = chooser.choose_store(declared_length, head)

        assert spec.kind is expected_kind
        if expected_kind is StoreKind.FILE:
            assert self.made_paths == [(spec.path, head)]
        else:
            assert spec.path is None
            assert self.made_paths == []

    def test_filter_commands_passed_to_file_specs(self):
        chooser = CutoffStoreChooser(
            'NONE', self._path_maker,
            reader_command=['gzip', '-dc'],
            writer_command=['gzip', '-c'])

        spec = chooser.choose_store(None, None)

        assert spec == StoreSpec(
            StoreKind.FILE,
            pathlib.Path('/tmp/body-0.doc'),
            reader_command=['gzip', '-dc'],
            writer_command=['gzip', '-c'])

    @foreach(
        param(output_to_core='SOME', exc_class=ValueError),
        param(output_to_core=-1, exc_class=ValueError),
        param(output_to_core=1.5, exc_class=TypeError),
        param(output_to_core=True, exc_class=TypeError),
        param(output_to_core=None, exc_class=TypeError),
    )
    def test_illegal_output_to_core(self, output_to_core, exc_class):
        with self.assertRaises(exc_class):
            CutoffStoreChooser(output_to_core, self._path_maker)

    @foreach('NONE', 100)
    def test_path_maker_required(self, output_to_core):
        with self.assertRaises(TypeError):
            CutoffStoreChooser(output_to_core)

    def test_path_maker_not_required_for_all(self):
        CutoffStoreChooser('ALL')


class TestMakeStore(_TmpDirMixin, unittest.TestCase):

    def test_scalar(self):
        store = make_store(StoreSpec(StoreKind.SCALAR))
        assert isinstance(store, ScalarBodyStore)
        assert store.as_bytes() == b''

    def test_file(self):
        path = self.tmp_dir / 'x.doc'
        store = make_store(StoreSpec(StoreKind.FILE, path, reader_command=['cat']))
        assert isinstance(store, FileBodyStore)
        assert store.path == path
        assert store.reader_command == ['cat']
        assert store.writer_command is None

    def test_file_spec_without_path(self):
        with self.assertRaises(ValueError):
            StoreSpec(StoreKind.FILE)
