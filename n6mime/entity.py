# Copyright (c) 2013-2026 NASK. All rights reserved.

"""
The MIME entity tree (see: `Entity`).
"""

import enum
import itertools
import os
import sys
import time
from collections.abc import (
    Iterable,
    Iterator,
)
from typing import (
    Optional,
    Union,
)

from n6mime.body_stores import (
    BodyStore,
    ScalarBodyStore,
)
from n6mime.common_helpers import as_bytes
from n6mime.const import (
    CANONICAL_EOL,
    IDENTITY_TRANSFER_ENCODINGS,
    XBIT_MAX_LINE_LENGTH,
)
from n6mime.io_helpers import BufferIO
from n6mime.log_helpers import get_logger
from n6mime.mime_head import MimeHead
from n6mime.transfer_codecs import (
    CodecRegistry,
    make_default_registry,
)
from n6mime.typing_helpers import (
    BytesLike,
    SupportsPrint,
)


LOGGER = get_logger(__name__)


class EntityStructureError(ValueError):
    """Raised on attempts to violate the structure rules of an entity tree."""


class Packaging(enum.Enum):

    """
    How an entity is packaged within the tree.

    * `TOP` -- it is the root of a tree (or a detached entity);
    * `PART` -- it is a child of another entity;
    * `PREAMBLE_DISCARDED`, `EPILOGUE_DISCARDED` -- it is a
      pseudo-entity holding the preamble/epilogue text of a multipart
      entity (see: `Entity.all_parts()`); never a real part.
    """

    TOP = 'TOP'
    PART = 'PART'
    PREAMBLE_DISCARDED = 'PREAMBLE_DISCARDED'
    EPILOGUE_DISCARDED = 'EPILOGUE_DISCARDED'

    def __repr__(self):
        return f'{type(self).__qualname__}.{self.name}'


_boundary_counter = itertools.count(1)

def make_boundary() -> str:
    """
    Make a new (unique within the process) multipart boundary token.
    """
    return f'----------=_{int(time.time())}-{os.getpid()}-{next(_boundary_counter)}'


class _EolGuardingPrinter:

    # The reader takes a LF directly followed by a CR (as well as a CR
    # directly followed by a LF) as one line terminator, so the line
    # terminators printed around the data must not form such pairs
    # with the data's first or last octet.

    def __init__(self, out: SupportsPrint, *, eol_first: bool = False):
        self._out = out
        self._eol_pending = eol_first
        self.last_octet = b''

    def print(self, *data: BytesLike) -> None:
        data = [chunk for chunk in data if chunk]
        if data:
            if self._eol_pending:
                self._print_leading_eol(next_octet=bytes(data[0][:1]))
            self.last_octet = bytes(data[-1][-1:])
            self._out.print(*data)

    def print_eol_before_delimiter(self) -> None:
        self.finish()
        self._out.print(b'\r\n' if self.last_octet == b'\r' else CANONICAL_EOL)

    def finish(self) -> None:
        if self._eol_pending:
            self._print_leading_eol(next_octet=b'')

    def _print_leading_eol(self, next_octet):
        eol = b'\n\r' if next_octet == b'\r' else CANONICAL_EOL
        self._eol_pending = False
        self.last_octet = eol[-1:]
        self._out.print(eol)


def suggest_encoding(mime_type: str, data: bytes) -> str:
    r"""
    Suggest a transfer encoding appropriate for the given body.

    >>> suggest_encoding('text/plain', b'Hello!\n')
    '7bit'
    >>> suggest_encoding('text/plain', b'Za\xc5\xbc\xc3\xb3\xc5\x82\xc4\x87\n')
    'quoted-printable'
    >>> suggest_encoding('message/rfc822', b'Subject: Hi\n\nZa\xc5\xbc\n')
    '8bit'
    >>> suggest_encoding('image/gif', b'GIF89a')
    'base64'
    """
    major_type = mime_type.partition('/')[0]
    if major_type in ('multipart', 'message'):
        return '7bit' if data.isascii() else '8bit'
    if major_type == 'text':
        lines = data.split(CANONICAL_EOL)
        if data.isascii() and b'\r' not in data and all(
                len(line) <= XBIT_MAX_LINE_LENGTH for line in lines):
            return '7bit'
        return 'quoted-printable'
    return 'base64'


class Entity:

    r"""
    A node of a MIME entity tree.

    An entity has a header (a `MimeHead`) and *either* a body (a
    `BodyStore`, see the `bodyhandle` attribute) *or* parts (child
    entities, see: `parts`, `add_part()`); never both.  A multipart
    entity has its parts; an entity of a `message/*` type may have
    its embedded message as the only part (if the message has been
    parsed in the *NEST* mode); any other entity is a leaf (with its
    body).

    Composing:

    >>> top = Entity.build(type='multipart/mixed', boundary='xyz',
    ...                    headers=[('Subject', 'Greetings')])
    >>> text = top.attach(data=b'Hello!\n')
    >>> image = top.attach(type='image/gif', data=b'GIF89a...', filename='x.gif')
    >>> print(top.as_bytes().decode())
    MIME-Version: 1.0
    Content-Type: multipart/mixed; boundary="xyz"
    Subject: Greetings
    <BLANKLINE>
    --xyz
    Content-Type: text/plain
    Content-Transfer-Encoding: 7bit
    <BLANKLINE>
    Hello!
    <BLANKLINE>
    --xyz
    Content-Type: image/gif; name="x.gif"
    Content-Transfer-Encoding: base64
    Content-Disposition: attachment; filename="x.gif"
    <BLANKLINE>
    R0lGODlhLi4u
    <BLANKLINE>
    --xyz--
    <BLANKLINE>
    >>> top.dump_skeleton()
    Content-type: multipart/mixed
    Body-file: NONE
    Subject: Greetings
    Num-parts: 2
    --
        Content-type: text/plain
        Body-file: IN-CORE
        --
        Content-type: image/gif
        Body-file: IN-CORE
        --
    >>> [e.mime_type for e in top.parts_DFS()]
    ['multipart/mixed', 'text/plain', 'image/gif']
    >>> image.packaging
    Packaging.PART
    """

    def __init__(self,
                 head: Optional[MimeHead] = None,
                 *,
                 packaging: Packaging = Packaging.TOP,
                 bodyhandle: Optional[BodyStore] = None):
        self.head = head if head is not None else MimeHead()
        self.packaging = packaging
        self._bodyhandle = bodyhandle
        self._parts: list['Entity'] = []
        # the captured preamble/epilogue lines (if any) of a multipart entity
        self.preamble: Optional[list[bytes]] = None
        self.epilogue: Optional[list[bytes]] = None

    def __repr__(self):
        return (f'<{type(self).__qualname__} '
                f'{self.mime_type} '
                f'packaging={self.packaging!r} '
                f'bodyhandle={self._bodyhandle!r} '
                f'parts={len(self._parts)}>')

    #
    # Structure

    @property
    def bodyhandle(self) -> Optional[BodyStore]:
        return self._bodyhandle

    @bodyhandle.setter
    def bodyhandle(self, store: Optional[BodyStore]) -> None:
        if store is not None and self._parts:
            raise EntityStructureError(f'cannot set a body of {self!a} which has parts')
        self._bodyhandle = store

    @property
    def parts(self) -> tuple['Entity', ...]:
        return tuple(self._parts)

    def add_part(self, part: 'Entity', index: Optional[int] = None) -> 'Entity':
        """
        Add the given entity as a part (at the end, by default).
        Return it.
        """
        if self._bodyhandle is not None:
            raise EntityStructureError(f'cannot add a part to {self!a} which has a body')
        if part is self:
            raise EntityStructureError('an entity cannot be a part of itself')
        part.packaging = Packaging.PART
        if index is None:
            self._parts.append(part)
        else:
            self._parts.insert(index, part)
        return part

    def replace_part(self, old: 'Entity', new: 'Entity') -> None:
        """
        Put `new` in place of the part `old` (`new` takes over the
        packaging of `old`).
        """
        for i, part in enumerate(self._parts):
            if part is old:
                new.packaging = old.packaging
                self._parts[i] = new
                return
        raise EntityStructureError(f'{old!a} is not a part of {self!a}')

    def parts_DFS(self) -> Iterator['Entity']:
        """
        Iterate over this entity and all its descendants (depth-first,
        pre-order).
        """
        yield self
        for part in self._parts:
            yield from part.parts_DFS()

    def all_parts(self) -> Iterator['Entity']:
        """
        Iterate over the parts, preceded by a pseudo-entity holding the
        captured preamble (if any) and followed by a pseudo-entity
        holding the captured epilogue (if any).
        """
        if self.preamble is not None:
            yield self._make_pseudo_entity(self.preamble, Packaging.PREAMBLE_DISCARDED)
        yield from self._parts
        if self.epilogue is not None:
            yield self._make_pseudo_entity(self.epilogue, Packaging.EPILOGUE_DISCARDED)

    def is_multipart(self) -> bool:
        """Whether the (effective) MIME type is a `multipart/*` one."""
        return self.mime_type.startswith('multipart/')

    @property
    def mime_type(self) -> str:
        return self.head.mime_type

    def check_invariant(self) -> None:
        """
        Check (recursively) that each entity has exactly one of: a body,
        a non-empty list of parts.
        """
        for entity in self.parts_DFS():
            if (entity._bodyhandle is None) == (not entity._parts):
                raise EntityStructureError(
                    f'{entity!a} should have either a body or parts '
                    f'(exactly one of them)')

    def purge(self) -> None:
        """Purge (recursively) the bodies of this entity and its parts."""
        for entity in self.parts_DFS():
            if entity._bodyhandle is not None:
                entity._bodyhandle.purge()

    #
    # Dumping the structure

    def format_skeleton(self, indent: int = 0) -> str:
        lines = []
        self._format_skeleton_lines(lines, indent)
        return ''.join(line + '\n' for line in lines)

    def dump_skeleton(self, out=None) -> None:
        """
        Write a human-readable description of the tree structure to
        `out` (a text stream; by default: `sys.stdout`).
        """
        if out is None:
            out = sys.stdout
        out.write(self.format_skeleton())

    def _format_skeleton_lines(self, lines, indent):
        prefix = ' ' * indent
        if self._bodyhandle is None:
            body_file = 'NONE'
        elif self._bodyhandle.path is None:
            body_file = 'IN-CORE'
        else:
            body_file = str(self._bodyhandle.path)
        lines.append(f'{prefix}Content-type: {self.mime_type}')
        lines.append(f'{prefix}Body-file: {body_file}')
        subject = self.head.get('Subject')
        if subject is not None:
            lines.append(f'{prefix}Subject: {" ".join(subject.split())}')
        if self._parts:
            lines.append(f'{prefix}Num-parts: {len(self._parts)}')
        lines.append(f'{prefix}--')
        for part in self._parts:
            part._format_skeleton_lines(lines, indent + 4)

    #
    # Output

    def print(self, out: SupportsPrint, registry: Optional[CodecRegistry] = None) -> None:
        """
        Write the entity (header, blank line, body) to `out` (e.g., a
        `MimeIO` opened for writing).

        The body of a leaf entity is encoded with the codec of the
        entity's transfer encoding; a multipart body consists of the
        (captured) preamble, the parts separated with delimiter lines,
        the close-delimiter line and the (captured) epilogue; an
        embedded message is written as the body of its `message/*`
        entity.
        """
        out.print(self.head.as_bytes())
        body_out = _EolGuardingPrinter(out, eol_first=True)
        self.print_body(body_out, registry)
        body_out.finish()

    def print_body(self, out: SupportsPrint, registry: Optional[CodecRegistry] = None) -> None:
        if registry is None:
            registry = make_default_registry()
        if self._parts and self.is_multipart():
            self._print_multipart_body(out, registry)
        elif self._parts:
            self._print_embedded_message(out, registry)
        elif self._bodyhandle is not None:
            self._print_encoded_body(out, registry)

    def as_bytes(self, registry: Optional[CodecRegistry] = None) -> bytes:
        with BufferIO(mode='w') as out:
            self.print(out, registry)
            return bytes(out.buffer)

    def body_as_bytes(self, registry: Optional[CodecRegistry] = None) -> bytes:
        """Get the body -- as it would be written by `print_body()`."""
        with BufferIO(mode='w') as out:
            self.print_body(out, registry)
            return bytes(out.buffer)

    def _print_multipart_body(self, out, registry):
        boundary = self.head.multipart_boundary
        if not boundary:
            raise EntityStructureError(f'{self!a} is multipart but has no boundary')
        delimiter = b'--' + boundary.encode('ascii')
        if self.preamble:
            preamble_out = _EolGuardingPrinter(out)
            preamble_out.print(*self.preamble)
            preamble_out.print_eol_before_delimiter()
        for part in self._parts:
            out.print(delimiter, CANONICAL_EOL)
            part_out = _EolGuardingPrinter(out)
            part.print(part_out, registry)
            part_out.print_eol_before_delimiter()
        out.print(delimiter, b'--')
        epilogue_out = _EolGuardingPrinter(out, eol_first=True)
        if self.epilogue:
            epilogue_out.print(*self.epilogue)
        epilogue_out.finish()

    def _print_embedded_message(self, out, registry):
        [message] = self._parts
        encoding = self.head.mime_encoding
        if encoding in IDENTITY_TRANSFER_ENCODINGS:
            message.print(out, registry)
        else:
            codec = self._get_codec(registry, encoding)
            codec.encode(BufferIO(message.as_bytes(registry)), out)

    def _print_encoded_body(self, out, registry):
        codec = self._get_codec(registry, self.head.mime_encoding)
        with self._bodyhandle.open('r') as in_io:
            codec.encode(in_io, out)

    def _get_codec(self, registry, encoding):
        codec, is_fallback = registry.get_or_fallback(encoding)
        if is_fallback:
            LOGGER.warning('Unsupported transfer encoding %a (when writing '
                           'the body of a %s entity); writing the body as binary',
                           encoding, self.mime_type)
        return codec

    def _make_pseudo_entity(self, lines, packaging):
        return type(self)(
            packaging=packaging,
            bodyhandle=ScalarBodyStore(b''.join(lines)))

    #
    # Composing

    @classmethod
    def build(cls,
              *,
              type: str = 'text/plain',
              data: Union[bytes, str, Iterable[Union[bytes, str]], None] = None,
              encoding: Optional[str] = None,
              charset: Optional[str] = None,
              filename: Optional[str] = None,
              disposition: Optional[str] = None,
              boundary: Optional[str] = None,
              headers: Iterable[tuple[str, str]] = (),
              top: bool = True) -> 'Entity':
        """
        Build a new entity.

        Kwargs:
            `type` (default: `'text/plain'`):
                The MIME type.
            `data` (ignored for `multipart/*` types):
                The body (`bytes`, or `str` -- to be UTF-8-encoded, or an
                iterable of such items -- to be concatenated).
            `encoding` (optional):
                The transfer encoding; if not given, it is chosen with
                `suggest_encoding()`.
            `charset`, `filename` (optional):
                Parameters to be included in the header.
            `disposition` (optional):
                `'inline'` or `'attachment'` (the latter is the default
                if `filename` is given).
            `boundary` (optional; only for `multipart/*` types):
                If not given, `make_boundary()` is used.
            `headers` (optional):
                Any additional header fields (name-value pairs).
            `top` (default: `True`):
                Whether a `MIME-Version` field is to be added.
        """
        type = type.lower()
        head = MimeHead()
        if top:
            head.add('MIME-Version', '1.0')
        if type.startswith('multipart/'):
            if boundary is None:
                boundary = make_boundary()
            head.add('Content-Type', f'{type}; boundary="{boundary}"')
            for name, value in headers:
                head.add(name, value)
            entity = cls(head)
        else:
            body = cls._coerce_data(data)
            content_type = type
            if charset is not None:
                content_type += f'; charset="{charset}"'
            if filename is not None:
                content_type += f'; name="{filename}"'
            head.add('Content-Type', content_type)
            head.add('Content-Transfer-Encoding',
                     encoding if encoding is not None else suggest_encoding(type, body))
            if filename is not None or disposition is not None:
                disposition_value = disposition or 'attachment'
                if filename is not None:
                    disposition_value += f'; filename="{filename}"'
                head.add('Content-Disposition', disposition_value)
            for name, value in headers:
                head.add(name, value)
            entity = cls(head, bodyhandle=ScalarBodyStore(body))
        if not top:
            entity.packaging = Packaging.PART
        return entity

    def make_multipart(self, subtype: str = 'mixed') -> None:
        """
        Turn this entity into a `multipart/<subtype>` one whose only
        part holds the former content (and the content-related header
        fields) of this entity.  Does nothing if it is already
        multipart.
        """
        if self.is_multipart():
            return
        part_head = MimeHead()
        top_head = MimeHead()
        for name, value in self.head.items():
            if name.lower().startswith('content-'):
                part_head.add(name, value)
            else:
                top_head.add(name, value)
        part = type(self)(part_head)
        if self._parts:
            part._parts = self._parts
        else:
            part._bodyhandle = self._bodyhandle
        top_head.add('Content-Type', f'multipart/{subtype}; boundary="{make_boundary()}"')
        self.head = top_head
        self._bodyhandle = None
        self._parts = []
        self.add_part(part)

    def attach(self, **build_kwargs) -> 'Entity':
        """
        Build a new entity (see: `build()`; `top` is false by default)
        and add it as a part (first, if needed, turning this entity into
        a multipart one, see: `make_multipart()`).  Return the new part.
        """
        build_kwargs.setdefault('top', False)
        if not self.is_multipart():
            self.make_multipart()
        return self.add_part(self.build(**build_kwargs))

    @staticmethod
    def _coerce_data(data):
        if data is None:
            return b''
        if isinstance(data, (str, bytes, bytearray, memoryview)):
            return as_bytes(data)
        return b''.join(map(as_bytes, data))
