# Copyright (c) 2013-2026 NASK. All rights reserved.

"""
Body stores: the sinks (and, later, sources) of decoded entity bodies.

A body store is populated once -- through a MIME I/O handle obtained
with `store.open('w')` -- and then can be read any number of times
-- through handles obtained with `store.open('r')`.  Opening a store
for writing truncates its previous content.

There are two concrete implementations:

* `ScalarBodyStore` -- keeping the data in memory;

* `FileBodyStore` -- keeping the data in a file, optionally passing
  them through external *filter commands* (e.g., to keep the file
  compressed).

Which store is created for a particular entity is decided by a *store
chooser* (see: `StoreChooser`, `CutoffStoreChooser`) that returns a
`StoreSpec`; `make_store()` turns the spec into a store.
"""

import abc
import dataclasses
import enum
import os
import pathlib
import subprocess
from collections.abc import Callable
from typing import (
    Optional,
    Protocol,
    Union,
)

from n6mime.class_helpers import attr_repr
from n6mime.common_helpers import (
    as_path,
    open_file,
)
from n6mime.io_helpers import (
    BufferIO,
    MimeIO,
    MimeIOUsageError,
    StreamIO,
)
from n6mime.log_helpers import get_logger
from n6mime.typing_helpers import (
    FilePath,
    FilterCommand,
)


LOGGER = get_logger(__name__)


class BodyStore(abc.ABC):

    """
    The abstract base class of body stores.
    """

    LEGAL_OPEN_MODES = frozenset({'r', 'w'})

    # the nominal path of the backing file (`None` for in-memory stores)
    path: Optional[pathlib.Path] = None

    def __init__(self):
        self._purged = False

    @property
    def is_purged(self) -> bool:
        return self._purged

    @property
    def is_in_core(self) -> bool:
        return self.path is None

    def open(self, mode: str = 'r') -> MimeIO:
        """
        Get a MIME I/O handle bound to this store, for reading (`mode`
        being `'r'`) or for writing (`mode` being `'w'`; note that then
        the previous content of the store is discarded).

        Raises:
            `ValueError` -- if `mode` is not `'r'` or `'w'`;
            `MimeIOUsageError` -- if the store has been purged;
            `OSError` -- on I/O problems (file stores only).
        """
        if mode not in self.LEGAL_OPEN_MODES:
            raise ValueError(f'illegal body store opening mode: {mode!a}')
        if self._purged:
            raise MimeIOUsageError(f'{self!a} has been purged')
        if mode == 'r':
            return self._open_for_reading()
        return self._open_for_writing()

    def as_bytes(self) -> bytes:
        """Get the whole content of the store."""
        with self.open('r') as in_io:
            return in_io.read()

    def as_lines(self) -> list[bytes]:
        """Get the whole content of the store as a list of lines."""
        with self.open('r') as in_io:
            return in_io.getlines()

    def purge(self) -> None:
        """
        Discard the content of the store (for file stores: remove the
        file); after that, the store cannot be opened anymore.
        """
        if not self._purged:
            self._purge()
            self._purged = True

    @abc.abstractmethod
    def _open_for_reading(self) -> MimeIO:
        raise NotImplementedError

    @abc.abstractmethod
    def _open_for_writing(self) -> MimeIO:
        raise NotImplementedError

    @abc.abstractmethod
    def _purge(self) -> None:
        raise NotImplementedError


class ScalarBodyStore(BodyStore):

    r"""
    An in-memory body store.

    >>> store = ScalarBodyStore()
    >>> with store.open('w') as out_io:
    ...     out_io.print(b'Hello\n', b'World\n')
    ...
    >>> store.as_bytes()
    b'Hello\nWorld\n'
    >>> with store.open('w') as out_io:
    ...     out_io.print(b'Bye')
    ...
    >>> store.as_lines()
    [b'Bye']
    >>> store.size
    3
    >>> store.path is None and store.is_in_core
    True
    """

    __repr__ = attr_repr('size')

    def __init__(self, data: bytes = b''):
        super().__init__()
        self._data = bytearray(data)

    @property
    def size(self) -> int:
        return len(self._data)

    def _open_for_reading(self):
        return BufferIO(self._data, 'r')

    def _open_for_writing(self):
        del self._data[:]
        return BufferIO(self._data, 'w')

    def _purge(self):
        del self._data[:]


class _FilterProcessStreamIO(StreamIO):

    # A handle wrapping a pipe of an external filter process; closing
    # it also waits for the process to finish (then a non-zero exit
    # status causes `OSError`).

    def __init__(self, process, file, mode):
        super().__init__(
            process.stdout if mode == 'r' else process.stdin,
            mode,
            close_stream=True)
        self._process = process
        self._file = file

    def _close(self):
        try:
            super()._close()
            returncode = self._process.wait()
        finally:
            self._file.close()
        if returncode != 0:
            raise OSError(
                f'filter command {self._process.args!a} exited '
                f'with non-zero status {returncode}')


class FileBodyStore(BodyStore):

    r"""
    A file-backed body store.

    Args:
        `path`:
            The path of the backing file.

    Kwargs:
        `reader_command` (optional):
            If specified, it should be an external command (a list of
            arguments) to be used as a filter when reading: the file
            is passed to its standard input and its standard output
            is what is read from the store, e.g.: `['gzip', '-dc']`.
        `writer_command` (optional):
            If specified, it should be an external command (a list of
            arguments) to be used as a filter when writing: the data
            written to the store are passed to its standard input and
            its standard output is written to the file, e.g.:
            `['gzip', '-c']`.

    >>> import tempfile
    >>> with tempfile.TemporaryDirectory() as tmp_dir:
    ...     store = FileBodyStore(pathlib.Path(tmp_dir) / 'body.txt')
    ...     with store.open('w') as out_io:
    ...         out_io.print(b'Hello\n')
    ...     print(store.as_bytes(), store.path.read_bytes(), store.path.name)
    ...     store.purge()
    ...     print(store.path.exists(), store.is_purged)
    ...
    b'Hello\n' b'Hello\n' body.txt
    False True
    """

    __repr__ = attr_repr('path', 'reader_command', 'writer_command')

    def __init__(self,
                 path: FilePath,
                 *,
                 reader_command: Optional[FilterCommand] = None,
                 writer_command: Optional[FilterCommand] = None):
        super().__init__()
        self.path = as_path(path)
        self.reader_command = reader_command
        self.writer_command = writer_command

    def _open_for_reading(self):
        f = open_file(self.path, 'rb')
        if self.reader_command is None:
            return StreamIO(f, 'r', close_stream=True)
        return self._spawn_filter(self.reader_command, f, 'r')

    def _open_for_writing(self):
        f = open_file(self.path, 'wb')
        if self.writer_command is None:
            return StreamIO(f, 'w', close_stream=True)
        return self._spawn_filter(self.writer_command, f, 'w')

    def _spawn_filter(self, command, f, mode):
        try:
            if mode == 'r':
                process = subprocess.Popen(list(command), stdin=f, stdout=subprocess.PIPE)
            else:
                process = subprocess.Popen(list(command), stdin=subprocess.PIPE, stdout=f)
        except BaseException:
            f.close()
            raise
        return _FilterProcessStreamIO(process, f, mode)

    def _purge(self):
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            LOGGER.debug('The file %a of %a did not exist when purging', str(self.path), self)


#
# Choosing stores
#

class StoreKind(enum.Enum):
    SCALAR = 'SCALAR'
    FILE = 'FILE'


@dataclasses.dataclass(frozen=True)
class StoreSpec:

    """
    The description of a body store to be made (see: `make_store()`).
    """

    kind: StoreKind
    path: Optional[pathlib.Path] = None
    reader_command: Optional[FilterCommand] = None
    writer_command: Optional[FilterCommand] = None

    def __post_init__(self):
        if self.kind is StoreKind.FILE and self.path is None:
            raise ValueError('a path is required for a FILE store spec')


def make_store(spec: StoreSpec) -> BodyStore:
    """
    Make a body store according to the given spec.

    >>> make_store(StoreSpec(StoreKind.SCALAR))
    <ScalarBodyStore size=0>
    >>> make_store(StoreSpec(StoreKind.FILE, pathlib.Path('/tmp/x.doc'), ['zcat']))
    <FileBodyStore path=PosixPath('/tmp/x.doc'), reader_command=['zcat'], writer_command=None>
    """
    if spec.kind is StoreKind.SCALAR:
        return ScalarBodyStore()
    assert spec.kind is StoreKind.FILE
    return FileBodyStore(
        spec.path,
        reader_command=spec.reader_command,
        writer_command=spec.writer_command)


class StoreChooser(Protocol):

    """
    The policy hook deciding where the body of an entity goes.
    """

    def choose_store(self, declared_length: Optional[int], head) -> StoreSpec:
        """
        Args:
            `declared_length`:
                The body length declared in the entity's header
                (`Content-Length`), or `None` if not declared.
            `head`:
                The entity's header (a `n6mime.mime_head.MimeHead`).

        Returns:
            A `StoreSpec` instance.
        """


OutputToCore = Union[str, int]       # 'ALL' | 'NONE' | <cutoff>

class CutoffStoreChooser:

    r"""
    The default store chooser.

    Args:
        `output_to_core`:
            `'ALL'` -- all bodies are kept in memory;
            `'NONE'` -- all bodies go to files;
            an `int` (*cutoff*) -- a body is kept in memory only if its
            declared length is known and is not greater than the cutoff
            (otherwise it goes to a file).
        `output_path_maker`:
            A callable that takes the header and returns the path of
            the file for the body (not needed if `output_to_core` is
            `'ALL'`).

    Kwargs:
        `reader_command`, `writer_command` (optional):
            Filter commands for file stores (see: `FileBodyStore`).

    >>> chooser = CutoffStoreChooser(100, lambda head: pathlib.Path('/tmp/x.doc'))
    >>> chooser.choose_store(100, None)
    StoreSpec(kind=<StoreKind.SCALAR: 'SCALAR'>, path=None, reader_command=None, writer_command=None)
    >>> chooser.choose_store(101, None).kind, chooser.choose_store(None, None).kind
    (<StoreKind.FILE: 'FILE'>, <StoreKind.FILE: 'FILE'>)
    >>> CutoffStoreChooser('ALL').choose_store(None, None).kind
    <StoreKind.SCALAR: 'SCALAR'>
    """

    __repr__ = attr_repr('output_to_core')

    def __init__(self,
                 output_to_core: OutputToCore = 'NONE',
                 output_path_maker: Optional[Callable[..., pathlib.Path]] = None,
                 *,
                 reader_command: Optional[FilterCommand] = None,
                 writer_command: Optional[FilterCommand] = None):
        if isinstance(output_to_core, str):
            output_to_core = output_to_core.upper()
            if output_to_core not in ('ALL', 'NONE'):
                raise ValueError(f'illegal `output_to_core` value: {output_to_core!a}')
        elif isinstance(output_to_core, bool) or not isinstance(output_to_core, int):
            raise TypeError(f'illegal `output_to_core` value: {output_to_core!a}')
        elif output_to_core < 0:
            raise ValueError('`output_to_core` cutoff must not be negative')
        if output_to_core != 'ALL' and output_path_maker is None:
            raise TypeError('`output_path_maker` is needed when bodies may go to files')
        self.output_to_core = output_to_core
        self._output_path_maker = output_path_maker
        self._reader_command = reader_command
        self._writer_command = writer_command

    def choose_store(self, declared_length: Optional[int], head) -> StoreSpec:
        if self.output_to_core == 'ALL' or (
                isinstance(self.output_to_core, int)
                and declared_length is not None
                and declared_length <= self.output_to_core):
            return StoreSpec(StoreKind.SCALAR)
        return StoreSpec(
            StoreKind.FILE,
            self._output_path_maker(head),
            reader_command=self._reader_command,
            writer_command=self._writer_command)
