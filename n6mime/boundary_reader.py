# Copyright (c) 2013-2026 NASK. All rights reserved.

"""
Boundary-aware reading of MIME data, line by line.

A `BoundaryContext` keeps a stack of the multipart boundary tokens
that are *active* at the current nesting level (innermost first) and,
optionally, a set of explicit *terminator* lines (e.g., the empty line
ending a header).  Its `read_chunk()` method copies lines from the
input to the output until a line is found that is a delimiter or
close-delimiter line of *any* of the active boundaries, or is one of
the terminators; that line is consumed and reported as a
`Termination`.

Whenever a multipart body nested inside another one is to be read,
a new context is derived from the current one with `spawn()` and then
the new innermost boundary is added to it with `add_boundary()`; the
parent context is not modified.  All contexts spawned (directly or
indirectly) from one *root* context share the single *termination
cell* that holds the most recent termination, so that, after some
nested reading has finished, an outer level can see which line ended
it (see: `BoundaryContext.eos` and `BoundaryContext.eos_type()`).
"""

import dataclasses
import enum
from typing import (
    ClassVar,
    Optional,
)

from n6mime.class_helpers import attr_repr
from n6mime.common_helpers import splitlines_asc
from n6mime.const import (
    BOUNDARY_REGEX,
    EOL_VARIANTS,
)
from n6mime.io_helpers import (
    BufferIO,
    MimeIO,
)
from n6mime.typing_helpers import SupportsPrint


class EosType(enum.Enum):

    """
    The types of *end of stream* conditions a read can stop at.

    `EXT` is never the kind of a `Termination` object itself: it is
    what `BoundaryContext.eos_type()` reports for a `DELIM` or `CLOSE`
    termination whose boundary is *not* the innermost one of that
    context (i.e., the termination belongs to some *outer* level).
    """

    DELIM = 'DELIM'
    CLOSE = 'CLOSE'
    DONE = 'DONE'
    EOF = 'EOF'
    EXT = 'EXT'

    def __repr__(self):
        return f'{type(self).__qualname__}.{self.name}'


@dataclasses.dataclass(frozen=True)
class Termination:

    r"""
    The result of one `BoundaryContext.read_chunk()` invocation.

    Attributes:
        `kind`:
            One of `EosType.DELIM`, `EosType.CLOSE`, `EosType.DONE`,
            `EosType.EOF`.
        `value`:
            For `DELIM`/`CLOSE` -- the boundary token (a `str`);
            for `DONE` -- the terminator line (a `bytes`, without its
            line terminator); for `EOF` -- `None`.

    >>> Termination.delim('abc')
    Termination(kind=EosType.DELIM, value='abc')
    >>> Termination.close('abc').is_boundary
    True
    >>> Termination.done(b'').is_boundary
    False
    >>> Termination.EOF
    Termination(kind=EosType.EOF, value=None)
    """

    EOF: ClassVar['Termination']

    kind: EosType
    value: object = None

    def __post_init__(self):
        if self.kind is EosType.EXT:
            raise ValueError('EXT is not a legal kind of a termination')

    @classmethod
    def delim(cls, token: str) -> 'Termination':
        return cls(EosType.DELIM, token)

    @classmethod
    def close(cls, token: str) -> 'Termination':
        return cls(EosType.CLOSE, token)

    @classmethod
    def done(cls, terminator: bytes) -> 'Termination':
        return cls(EosType.DONE, terminator)

    @property
    def is_boundary(self) -> bool:
        return self.kind in (EosType.DELIM, EosType.CLOSE)

Termination.EOF = Termination(EosType.EOF)


class TerminationCell:

    """
    The mutable slot shared by all contexts of one parse, holding
    the most recent termination (or `None` if nothing has been read
    yet).
    """

    __repr__ = attr_repr('value')

    def __init__(self):
        self.value: Optional[Termination] = None


def is_legal_boundary(token) -> bool:
    """
    Check whether the given object is a legal multipart boundary token.

    >>> is_legal_boundary('----=_Part_123.456:7?(x)+y,z/')
    True
    >>> is_legal_boundary('with space inside')
    True
    >>> is_legal_boundary('')
    False
    >>> is_legal_boundary('not"legal"')
    False
    >>> is_legal_boundary('zażółć')
    False
    >>> is_legal_boundary(None)
    False
    """
    return isinstance(token, str) and BOUNDARY_REGEX.search(token) is not None


def strip_eol(line: bytes) -> bytes:
    r"""
    Strip one line terminator (any of the recognized variants) off the
    end of the given line.

    >>> [strip_eol(line) for line in [b'abc', b'abc\r', b'abc\n', b'abc\r\n', b'abc\n\r']]
    [b'abc', b'abc', b'abc', b'abc', b'abc']
    >>> strip_eol(b'abc\n\n')
    b'abc\n'
    """
    for eol in EOL_VARIANTS:
        if line.endswith(eol):
            return line[:-len(eol)]
    return line


class BoundaryContext:

    r"""
    A stack of active boundary tokens plus a set of terminator lines
    (see the module docs).

    >>> data = BufferIO(
    ...     b'Preamble\r\n'
    ...     b'--outer\r\n'
    ...     b'Content-Type: text/plain\r\n'
    ...     b'\r\n'
    ...     b'Hello!\r\n'
    ...     b'--outer--  \r\n'
    ...     b'Epilogue\r\n')
    >>> root = BoundaryContext()
    >>> ctx = root.spawn().add_boundary('outer')
    >>> ctx.read_lines(data)
    [b'Preamble']
    >>> ctx.eos, ctx.eos_type()
    (Termination(kind=EosType.DELIM, value='outer'), EosType.DELIM)
    >>> ctx.spawn().add_terminator(b'').read_lines(data)
    [b'Content-Type: text/plain\r\n']
    >>> ctx.eos_type()
    EosType.DONE
    >>> ctx.read_lines(data)
    [b'Hello!']
    >>> ctx.eos_type()
    EosType.CLOSE
    >>> root.read_lines(data)
    [b'Epilogue\r\n']
    >>> root.eos_type()
    EosType.EOF
    """

    __repr__ = attr_repr('boundaries', 'eos')

    def __init__(self):
        self._tokens: list[str] = []
        self._line_to_termination: dict[bytes, Termination] = {}
        self._cell = TerminationCell()

    def spawn(self) -> 'BoundaryContext':
        """
        Derive a new context: with a copy of this context's boundary
        tokens and terminators, but sharing the termination cell.
        """
        new = type(self).__new__(type(self))
        new._tokens = list(self._tokens)
        new._line_to_termination = dict(self._line_to_termination)
        new._cell = self._cell
        return new

    def add_boundary(self, token: str) -> 'BoundaryContext':
        """
        Push the given token as the new innermost boundary (`ValueError`
        is raised if it is not a legal boundary token).  Return `self`.
        """
        if not is_legal_boundary(token):
            raise ValueError(f'illegal boundary token: {token!a}')
        bin_token = token.encode('ascii')
        self._tokens.insert(0, token)
        self._line_to_termination[b'--' + bin_token] = Termination.delim(token)
        self._line_to_termination[b'--' + bin_token + b'--'] = Termination.close(token)
        return self

    def add_terminator(self, terminator: bytes) -> 'BoundaryContext':
        """
        Register the given line (without a line terminator) as a line
        the reading should stop at.  Return `self`.
        """
        self._line_to_termination[bytes(terminator)] = Termination.done(bytes(terminator))
        return self

    @property
    def boundaries(self) -> tuple[str, ...]:
        """The active boundary tokens, innermost first."""
        return tuple(self._tokens)

    @property
    def eos(self) -> Optional[Termination]:
        """The most recent termination (shared by all related contexts)."""
        return self._cell.value

    def eos_type(self, termination: Optional[Termination] = None) -> Optional[EosType]:
        """
        Get the type of the given termination (by default: the most
        recent one) *from the point of view of this context*: any
        `DELIM`/`CLOSE` termination whose token is not this context's
        innermost boundary is reported as `EosType.EXT`.
        """
        if termination is None:
            termination = self.eos
            if termination is None:
                return None
        if termination.is_boundary and (
                not self._tokens or termination.value != self._tokens[0]):
            return EosType.EXT
        return termination.kind

    def match(self, line: bytes) -> Optional[Termination]:
        r"""
        Get the termination the given line represents (or `None`).

        >>> ctx = BoundaryContext().add_boundary('a').add_boundary('b').add_terminator(b'')
        >>> ctx.match(b'--a\n')
        Termination(kind=EosType.DELIM, value='a')
        >>> ctx.match(b'--b-- \t\r\n')
        Termination(kind=EosType.CLOSE, value='b')
        >>> ctx.match(b'\r\n')
        Termination(kind=EosType.DONE, value=b'')
        >>> [ctx.match(line) for line in [b'--A\n', b'--ab\n', b' --a\n', b'--b---\n', b' \n']]
        [None, None, None, None, None]
        """
        content = strip_eol(line)
        termination = self._line_to_termination.get(content)
        if termination is None:
            # trailing whitespace is allowed after a boundary line
            stripped = content.rstrip(b' \t')
            if stripped != content:
                termination = self._line_to_termination.get(stripped)
                if termination is not None and not termination.is_boundary:
                    termination = None
        return termination

    def read_chunk(self, in_io: MimeIO, out_io: Optional[SupportsPrint] = None) -> Termination:
        """
        Copy lines from `in_io` to `out_io` (if not `None`) until a
        matching line (see: `match()`) or the end of the input is
        encountered.

        The matching line itself is consumed but *not* copied.  If it
        is a boundary line, the line terminator of the line preceding
        it is *not* copied either (as it belongs to the delimiter, not
        to the content).

        The termination is recorded in the shared termination cell,
        and returned.
        """
        held = None
        termination = Termination.EOF
        for line in in_io:
            matched = self.match(line)
            if matched is not None:
                termination = matched
                break
            if held is not None and out_io is not None:
                out_io.print(held)
            held = line
        if held is not None and out_io is not None:
            if termination.is_boundary:
                held = strip_eol(held)
            out_io.print(held)
        self._cell.value = termination
        return termination

    def read_lines(self, in_io: MimeIO) -> list[bytes]:
        """
        Like `read_chunk()` but return the read content as a list of
        lines.
        """
        buf = bytearray()
        with BufferIO(buf, 'w') as out_io:
            self.read_chunk(in_io, out_io)
        return splitlines_asc(bytes(buf), keepends=True)
