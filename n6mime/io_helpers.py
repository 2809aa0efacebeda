# Copyright (c) 2013-2026 NASK. All rights reserved.

"""
The I/O handle abstraction all MIME decomposition machinery operates on.

A *MIME I/O handle* (an instance of a concrete subclass of `MimeIO`)
is a binary, line-oriented handle, opened either for reading (mode
`'r'`) or for writing (mode `'w'`):

* reading: `read(size)`, `getline()`, `getlines()`, iteration over
  lines, and (*only* for handles opened for reading) `seek()` and
  `tell()`;

* writing: `print(*data)` (and its single-argument alias: `write()`);

* both: `close()` (the context manager protocol is also supported).

Lines are returned *verbatim*, together with their terminators; any
of LF, CR+LF, LF+CR and a lone CR is recognized as a line terminator
(so that input using the legacy CR-only convention is also split into
lines). LF+CR is taken as one terminator unless its CR starts a CR+LF
which is not followed by another CR (see:
`n6mime.common_helpers.splitlines_asc()`).

There are two concrete implementations:

* `StreamIO` -- wrapping a native binary stream (such as an opened
  binary file, a pipe or a `tempfile.SpooledTemporaryFile`);

* `BufferIO` -- operating on an in-memory `bytearray`.

Any misuse (e.g., reading from a handle opened for writing, or calling
`seek()` on a handle opened for writing, or using a closed handle)
causes `MimeIOUsageError`.
"""

import abc
import io
from collections.abc import Iterator
from typing import (
    ClassVar,
    Optional,
    Union,
)

from n6mime.class_helpers import attr_repr
from n6mime.common_helpers import ASCII_LINE_BOUNDARY_BIN_REGEX
from n6mime.typing_helpers import BytesLike


class MimeIOUsageError(Exception):
    """Raised when a MIME I/O handle is used in a wrong way."""


_MAX_TERMINATOR_LOOKAHEAD = 3


class MimeIO(abc.ABC):

    """
    The abstract base class of MIME I/O handles (see the module docs).
    """

    LEGAL_MODES: ClassVar[frozenset[str]] = frozenset({'r', 'w'})

    def __init__(self, mode: str = 'r'):
        if mode not in self.LEGAL_MODES:
            raise ValueError(
                f'illegal I/O handle mode: {mode!a} (should be '
                f'one of: {", ".join(map(ascii, sorted(self.LEGAL_MODES)))})')
        self._mode = mode
        self._closed = False

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, tb):
        self.close()

    def __iter__(self) -> Iterator[bytes]:
        return iter(self.getline, None)

    #
    # Reading

    def read(self, size: int = -1) -> bytes:
        """
        Read and return at most `size` bytes (if `size` is negative or
        not specified: until the end of data).  At the end of data an
        empty `bytes` object is returned.
        """
        self._check_mode('r', 'read')
        return self._read(size)

    def getline(self) -> Optional[bytes]:
        """
        Read and return the next line (together with its terminator,
        if any); return `None` when there are no more lines.
        """
        self._check_mode('r', 'getline')
        line = self._getline()
        return line if line else None

    def getlines(self) -> list[bytes]:
        """Read and return all remaining lines."""
        return list(self)

    def seek(self, pos: int, whence: int = io.SEEK_SET) -> int:
        self._check_mode('r', 'seek')
        return self._seek(pos, whence)

    def tell(self) -> int:
        self._check_mode('r', 'tell')
        return self._tell()

    #
    # Writing

    def print(self, *data: BytesLike) -> None:
        """
        Write all the given binary data items (in the given order).
        """
        self._check_mode('w', 'print')
        for item in data:
            if not isinstance(item, (bytes, bytearray, memoryview)):
                raise TypeError(
                    f'a bytes-like object is required (got an instance '
                    f'of {type(item).__qualname__})')
            if item:
                self._write(item)

    def write(self, data: BytesLike) -> int:
        self.print(data)
        return len(data)

    #
    # Closing

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._close()

    #
    # Implementation-specific stuff

    @abc.abstractmethod
    def _read(self, size: int) -> bytes:
        raise NotImplementedError

    @abc.abstractmethod
    def _getline(self) -> bytes:
        # should return `b''` at the end of data
        raise NotImplementedError

    @abc.abstractmethod
    def _seek(self, pos: int, whence: int) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    def _tell(self) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    def _write(self, data: BytesLike) -> None:
        raise NotImplementedError

    def _close(self) -> None:
        pass

    #
    # Private helpers

    def _check_mode(self, required_mode, method_name):
        if self._closed:
            raise MimeIOUsageError(
                f'cannot {method_name}() using a closed I/O handle ({self!a})')
        if self._mode != required_mode:
            raise MimeIOUsageError(
                f'cannot {method_name}() using an I/O handle '
                f'opened in mode {self._mode!a} ({self!a})')


class StreamIO(MimeIO):

    r"""
    A MIME I/O handle wrapping a native binary stream.

    Args:
        `stream`:
            A binary file-like object (for reading: it must provide the
            `read()` method; for writing: the `write()` method; `seek()`
            and `tell()` are needed only if the respective methods of
            the handle are to be used).
        `mode` (default: `'r'`):
            `'r'` or `'w'`.

    Kwargs:
        `close_stream` (default: `False`):
            Whether closing the handle should also close the wrapped
            stream.
        `block_size` (default: 8192):
            The size of the blocks the underlying stream is read in.

    >>> handle = StreamIO(io.BytesIO(b'abc\r\ndef\rghi\n\njkl'))
    >>> handle.getline()
    b'abc\r\n'
    >>> handle.getlines()
    [b'def\r', b'ghi\n', b'\n', b'jkl']
    >>> handle.getline() is None
    True
    >>> handle.read()
    b''

    >>> out = io.BytesIO()
    >>> with StreamIO(out, 'w') as handle:
    ...     handle.print(b'abc', bytearray(b'def'), b'\n')
    ...
    >>> out.getvalue()
    b'abcdef\n'
    >>> out.closed
    False
    """

    __repr__ = attr_repr('stream', 'mode')

    def __init__(self, stream, mode: str = 'r', *,
                 close_stream: bool = False,
                 block_size: int = 8192):
        super().__init__(mode)
        self.stream = stream
        self._close_stream = close_stream
        self._block_size = block_size
        self._pending = bytearray()
        self._scan_from = 0
        self._at_eof = False

    def _read(self, size):
        if size is None or size < 0:
            data = bytes(self._pending) + self.stream.read()
            self._clear_pending()
            self._at_eof = True
            return data
        while len(self._pending) < size and self._fill():
            pass
        data = bytes(self._pending[:size])
        del self._pending[:size]
        self._scan_from = 0
        return data

    def _getline(self):
        pending = self._pending
        while True:
            match = ASCII_LINE_BOUNDARY_BIN_REGEX.search(pending, self._scan_from)
            if match is not None:
                # deciding which terminator it is needs
                # up to 3 more characters after the first one
                if self._at_eof or match.start() + _MAX_TERMINATOR_LOOKAHEAD < len(pending):
                    return self._pop_pending(match.end())
                self._scan_from = match.start()
                self._fill()
                continue
            self._scan_from = len(pending)
            if not self._fill():
                return self._pop_pending(len(pending))

    def _seek(self, pos, whence):
        if whence == io.SEEK_CUR:
            pos -= len(self._pending)
        try:
            result = self.stream.seek(pos, whence)
        except (io.UnsupportedOperation, AttributeError) as exc:
            raise MimeIOUsageError(f'the stream of {self!a} is not seekable') from exc
        self._clear_pending()
        self._at_eof = False
        return result

    def _tell(self):
        try:
            return self.stream.tell() - len(self._pending)
        except (io.UnsupportedOperation, AttributeError) as exc:
            raise MimeIOUsageError(f'the stream of {self!a} is not seekable') from exc

    def _write(self, data):
        self.stream.write(data)

    def _close(self):
        self._clear_pending()
        if self._close_stream:
            self.stream.close()

    def _fill(self):
        if self._at_eof:
            return False
        block = self.stream.read(self._block_size)
        if not block:
            self._at_eof = True
            return False
        self._pending += block
        return True

    def _pop_pending(self, end):
        data = bytes(self._pending[:end])
        del self._pending[:end]
        self._scan_from = 0
        return data

    def _clear_pending(self):
        del self._pending[:]
        self._scan_from = 0


class BufferIO(MimeIO):

    r"""
    A MIME I/O handle operating on an in-memory `bytearray`.

    Args:
        `buffer`:
            A `bytearray` (it is used directly, not copied, so that
            data written through the handle land in it); if a `bytes`
            object is given, a `bytearray` copy of it is used.
        `mode` (default: `'r'`):
            `'r'` or `'w'`.

    Writing always appends data at the end of the buffer.  For a handle
    opened for reading, `seek()` clamps the position to the range from
    0 to the buffer length.

    >>> buf = bytearray()
    >>> with BufferIO(buf, 'w') as handle:
    ...     handle.print(b'Line 1\r\n', b'Line 2\r', b'Line 3')
    ...
    >>> buf
    bytearray(b'Line 1\r\nLine 2\rLine 3')
    >>> handle = BufferIO(buf)
    >>> handle.getlines()
    [b'Line 1\r\n', b'Line 2\r', b'Line 3']
    >>> handle.seek(-10)
    0
    >>> handle.read(4)
    b'Line'
    >>> handle.seek(1000)
    21
    >>> handle.getline() is None
    True
    """

    __repr__ = attr_repr('mode')

    def __init__(self, buffer: Union[bytearray, bytes] = b'', mode: str = 'r'):
        super().__init__(mode)
        if not isinstance(buffer, bytearray):
            buffer = bytearray(buffer)
        self.buffer = buffer
        self._pos = 0

    def _read(self, size):
        end = len(self.buffer) if size is None or size < 0 else self._pos + size
        data = bytes(self.buffer[self._pos:end])
        self._pos += len(data)
        return data

    def _getline(self):
        buffer = self.buffer
        match = ASCII_LINE_BOUNDARY_BIN_REGEX.search(buffer, self._pos)
        end = len(buffer) if match is None else match.end()
        line = bytes(buffer[self._pos:end])
        self._pos = end
        return line

    def _seek(self, pos, whence):
        if whence == io.SEEK_CUR:
            pos += self._pos
        elif whence == io.SEEK_END:
            pos += len(self.buffer)
        elif whence != io.SEEK_SET:
            raise ValueError(f'illegal `whence` value: {whence!a}')
        self._pos = max(0, min(pos, len(self.buffer)))
        return self._pos

    def _tell(self):
        return self._pos

    def _write(self, data):
        self.buffer += data


def as_mime_io(obj) -> MimeIO:
    """
    Coerce the given object to a MIME I/O handle opened for reading.

    Args:
        `obj`:
            A `MimeIO` instance (returned intact), or a `bytes`/
            `bytearray` object (wrapped with `BufferIO`), or a binary
            file-like object (wrapped with `StreamIO`; note that the
            wrapped stream will *not* be closed when the resultant
            handle is closed).

    Raises:
        `TypeError` for other objects.

    >>> as_mime_io(b'abc').read()
    b'abc'
    >>> as_mime_io(io.BytesIO(b'abc')).read()
    b'abc'
    >>> as_mime_io(io.StringIO('abc'))               # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
      ...
    TypeError: ...
    """
    if isinstance(obj, MimeIO):
        return obj
    if isinstance(obj, (bytes, bytearray)):
        return BufferIO(bytes(obj))
    if isinstance(obj, io.TextIOBase) or not callable(getattr(obj, 'read', None)):
        raise TypeError(
            f'expected a MimeIO instance or bytes or a binary file-like '
            f'object (got an instance of {type(obj).__qualname__})')
    return StreamIO(obj)
