# Copyright (c) 2013-2026 NASK. All rights reserved.

"""
The MIME parser: decomposing a MIME message into a tree of entities.

A typical use:

    parser = MimeParser({'mime_parser.output_dir': '/tmp/mime-parts'})
    entity = parser.parse_open('/path/to/message.eml')
    ...
    for part in entity.parts_DFS():
        ...
    ...
    entity.purge()   # (if the body files are no longer needed)

Any malformed-but-recoverable input is handled leniently (a warning
is logged and recorded in the parser's `results`); any other problem
(typically, an I/O failure) makes the parse fail with `MimeParseError`
(which carries the partial entity tree and the parse results).

The library only emits log records (through the `n6mime.*` loggers),
it never configures logging by itself.  An application is expected to
do that at its startup, typically by calling:

    from n6mime.log_helpers import configure_logging
    configure_logging()

(which loads `logging.conf` from `/etc/n6mime` and/or `~/.n6mime`;
see `etc/n6mime/logging.conf` in the source tree for an example).
"""

import enum
import itertools
import logging
import os
import pathlib
import re
import shutil
import tempfile
import threading
import time
from typing import Optional

from n6mime.body_stores import (
    BodyStore,
    CutoffStoreChooser,
    StoreChooser,
    make_store,
)
from n6mime.boundary_reader import (
    BoundaryContext,
    EosType,
    is_legal_boundary,
)
from n6mime.common_helpers import (
    as_bytes,
    make_exc_ascii_str,
    open_file,
)
from n6mime.config import ConfigMixin
from n6mime.const import (
    DEFAULT_CONTENT_TYPE,
    DIGEST_PART_DEFAULT_CONTENT_TYPE,
    IDENTITY_TRANSFER_ENCODINGS,
    NESTED_MESSAGE_CONTENT_TYPES,
    TOPLEVEL_N6MIME_PACKAGES,
)
from n6mime.entity import (
    Entity,
    make_boundary,
)
from n6mime.io_helpers import (
    BufferIO,
    MimeIO,
    StreamIO,
    as_mime_io,
)
from n6mime.log_helpers import (
    RecordCollectingHandler,
    get_logger,
)
from n6mime.mime_head import MimeHead
from n6mime.transfer_codecs import (
    BinaryCodec,
    CodecError,
    CodecRegistry,
    make_default_registry,
)
from n6mime.typing_helpers import (
    FilePath,
    MessageData,
)


LOGGER = get_logger(__name__)


class MimeParseError(Exception):

    """
    Raised when a parse fails.

    Attributes:
        `entity`:
            The partial entity tree built so far (or `None`).
        `results`:
            The `ParseResults` of the failed parse.
    """

    def __init__(self, msg, *, entity=None, results=None):
        super().__init__(msg)
        self.entity = entity
        self.results = results


class NestedMessagesPolicy(enum.Enum):

    """
    What to do with the body of a `message/rfc822` or `message/news`
    entity:

    * `NEST` -- parse it as an embedded message, being the only part
      of that entity;
    * `REPLACE` -- parse it as an embedded message, and put it in the
      tree in place of that entity;
    * `NONE` -- treat it as any other (leaf) body.
    """

    NEST = 'NEST'
    REPLACE = 'REPLACE'
    NONE = 'NONE'

    def __repr__(self):
        return f'{type(self).__qualname__}.{self.name}'


def _nested_messages_policy_converter(s):
    return NestedMessagesPolicy(s.strip().upper())


def _output_to_core_converter(s):
    """
    >>> _output_to_core_converter('all'), _output_to_core_converter(' NONE')
    ('ALL', 'NONE')
    >>> _output_to_core_converter('1024')
    1024
    """
    s = s.strip().upper()
    if s in ('ALL', 'NONE'):
        return s
    cutoff = int(s)
    if cutoff < 0:
        raise ValueError('the cutoff must not be negative')
    return cutoff


class ParseResults:

    r"""
    The diagnostic results of one parse.

    All warnings and errors logged (by any of the `n6mime.*` loggers,
    in the parsing thread) during the parse are recorded here.

    >>> results = ParseResults()
    >>> results.record('warning', 'Hmm...')
    >>> results.record('error', 'Oops!')
    >>> results.msgs()
    ['warning: Hmm...', 'error: Oops!']
    >>> results.warnings(), results.errors(), results.had_problems
    (['Hmm...'], ['Oops!'], True)
    """

    def __init__(self):
        self._records: list[tuple[str, str]] = []
        self.top_head: Optional[MimeHead] = None
        self.top_entity: Optional[Entity] = None
        # the current and the maximum nesting level
        self.level = 0
        self.max_level = 0

    def __repr__(self):
        return (f'<{type(self).__qualname__} '
                f'warnings={len(self.warnings())} '
                f'errors={len(self.errors())} '
                f'max_level={self.max_level}>')

    def __str__(self):
        return '\n'.join(self.msgs())

    def record(self, level_name: str, msg: str) -> None:
        self._records.append((level_name, msg))

    def msgs(self) -> list[str]:
        return [f'{level_name}: {msg}' for level_name, msg in self._records]

    def warnings(self) -> list[str]:
        return [msg for level_name, msg in self._records if level_name == 'warning']

    def errors(self) -> list[str]:
        return [msg for level_name, msg in self._records
                if level_name in ('error', 'critical')]

    @property
    def had_problems(self) -> bool:
        return bool(self._records)

    def enter_level(self) -> None:
        self.level += 1
        self.max_level = max(self.max_level, self.level)

    def leave_level(self) -> None:
        self.level -= 1


class MimeParser(ConfigMixin):

    r"""
    The MIME parser.

    Args:
        `settings` (optional):
            A Pyramid-like *settings* mapping; if not given (or `None`),
            the configuration is read from the config files (see:
            `n6mime.config`; the section is `mime_parser`, see the
            `config_spec` attribute below).

    Kwargs:
        `registry` (optional):
            The `CodecRegistry` to be used (by default, a new one with
            the default codecs).
        `store_chooser` (optional):
            The policy object deciding where decoded bodies are stored
            (by default, a `CutoffStoreChooser` configured with the
            `output_to_core` option, making file paths with the
            `output_path()` method).

    >>> parser = MimeParser({'mime_parser.output_to_core': 'ALL'})
    >>> entity = parser.parse_data(
    ...     b'Content-Type: multipart/alternative; boundary="b1"\r\n'
    ...     b'\r\n'
    ...     b'--b1\r\n'
    ...     b'\r\n'
    ...     b'Hello!\r\n'
    ...     b'--b1\r\n'
    ...     b'Content-Type: text/html\r\n'
    ...     b'Content-Transfer-Encoding: base64\r\n'
    ...     b'\r\n'
    ...     b'PGI+SGVsbG8hPC9iPg==\r\n'
    ...     b'--b1--\r\n')
    >>> [part.bodyhandle.as_bytes() for part in entity.parts]
    [b'Hello!', b'<b>Hello!</b>']
    >>> parser.results.had_problems
    False
    """

    config_spec = '''
        [mime_parser]
        output_dir = .                      :: path
        output_prefix = msg                 :: str
        output_to_core = NONE               :: output_to_core
        tmp_to_core = 65536                 :: int
        extract_nested_messages = NEST      :: nested_messages_policy
        keep_preamble = false               :: bool
        keep_epilogue = false               :: bool
        decode_headers = false              :: bool
    '''

    custom_converters = {
        'output_to_core': _output_to_core_converter,
        'nested_messages_policy': _nested_messages_policy_converter,
    }

    _raw_copy_codec = BinaryCodec()

    def __init__(self,
                 settings=None,
                 *,
                 registry: Optional[CodecRegistry] = None,
                 store_chooser: Optional[StoreChooser] = None):
        self.config = self.get_config_section(settings)
        self.registry = (registry if registry is not None
                         else make_default_registry())
        self.store_chooser = (store_chooser if store_chooser is not None
                              else CutoffStoreChooser(self.config['output_to_core'],
                                                      self.output_path))
        self.results: Optional[ParseResults] = None
        self._output_file_counter = itertools.count(1)

    #
    # Public interface

    def parse(self, stream) -> Entity:
        """
        Parse the MIME message from the given input (a `MimeIO` or a
        binary file-like object) and return the top entity.

        Raises:
            `MimeParseError` (see the module docs).
        """
        in_io = as_mime_io(stream)
        results = self.results = ParseResults()
        handler = RecordCollectingHandler(results.record)
        thread_ident = threading.get_ident()
        handler.addFilter(lambda record: record.thread in (thread_ident, None))
        toplevel_logger = logging.getLogger(TOPLEVEL_N6MIME_PACKAGES[0])
        with handler.attached_to(toplevel_logger):
            try:
                entity = self._parse_entity(in_io, BoundaryContext())
            except Exception as exc:
                LOGGER.error('Could not parse the MIME message (%s)', make_exc_ascii_str(exc))
                raise MimeParseError(
                    f'MIME parsing failed ({make_exc_ascii_str(exc)})',
                    entity=results.top_entity,
                    results=results) from exc
        return entity

    def parse_data(self, data: MessageData) -> Entity:
        """
        Parse the MIME message from the given data: a `bytes`/`bytearray`
        or a `str`, or an iterable of such items (lines).
        """
        if isinstance(data, (bytes, bytearray, str)):
            data = as_bytes(data)
        else:
            data = b''.join(map(as_bytes, data))
        return self.parse(BufferIO(data))

    def parse_open(self, path: FilePath) -> Entity:
        """Parse the MIME message from the file of the given path."""
        with open_file(path, 'rb') as f:
            return self.parse(f)

    def parse_two(self, head_path: FilePath, body_path: FilePath) -> Entity:
        """
        Parse the MIME message whose header is in one file (including
        the blank line separating the header from the body) and the
        body in another.
        """
        with self._spooled_tmp() as tmp:
            for path in (head_path, body_path):
                with open_file(path, 'rb') as f:
                    shutil.copyfileobj(f, tmp)
            tmp.seek(0)
            return self.parse(tmp)

    _EVIL_FILENAME_CHARS_REGEX = re.compile(r'[\\/:\[\]\x00-\x1f\x7f-\U0010ffff]')

    def evil_filename(self, name: str) -> bool:
        r"""
        Whether the given (recommended) file name is unsafe to be used.

        >>> parser = MimeParser({})
        >>> [parser.evil_filename(name) for name in ['report.pdf', 'foo bar.txt', 'x']]
        [False, False, False]
        >>> [parser.evil_filename(name) for name in [
        ...     '', ' x.pdf', 'x.pdf\t', '.', '..', '../etc/passwd', 'a\\b', 'c:x',
        ...     '[x]', 'a\x00b', 'zażółć.txt']]
        [True, True, True, True, True, True, True, True, True, True, True]
        """
        return bool(
            not name
            or name != name.strip()
            or not name.strip('.')
            or self._EVIL_FILENAME_CHARS_REGEX.search(name))

    def output_path(self, head: MimeHead) -> pathlib.Path:
        """
        Get the path of the file for the body of an entity: based on
        the recommended file name if there is one, and it is not evil,
        and such a file does not exist yet; otherwise, a new unique
        name is generated.
        """
        output_dir = self.config['output_dir']
        filename = head.recommended_filename
        if filename is not None:
            if self.evil_filename(filename):
                LOGGER.warning('Not using an unsafe recommended file name: %a', filename)
            else:
                path = output_dir / filename
                if not path.exists():
                    return path
        while True:
            path = output_dir / (
                f'{self.config["output_prefix"]}-{int(time.time())}'
                f'-{os.getpid()}-{next(self._output_file_counter)}.doc')
            if not path.exists():
                return path

    def new_body_for(self, head: MimeHead) -> BodyStore:
        """
        Make a new (empty) body store for an entity with the given header.
        """
        spec = self.store_chooser.choose_store(head.content_length, head)
        return make_store(spec)

    #
    # Parsing machinery

    def _parse_entity(self,
                      in_io: MimeIO,
                      ctx: BoundaryContext,
                      *,
                      parent: Optional[Entity] = None,
                      default_type: str = DEFAULT_CONTENT_TYPE) -> Entity:
        # Parse one entity (its header and body).  Return the resultant
        # entity (note: it may be an entity different from the one that
        # has been added to `parent`, if nested messages are *replaced*).
        results = self.results
        results.enter_level()
        try:
            head, header_terminated = self._read_head(in_io, ctx, default_type)
            entity = Entity(head)
            if parent is not None:
                parent.add_part(entity)
            else:
                results.top_head = head
                results.top_entity = entity

            if not header_terminated:
                LOGGER.warning('The header of a %s entity is not terminated '
                               'with a blank line (assuming an empty body)',
                               head.mime_type)
                store = self.new_body_for(head)
                store.open('w').close()
                entity.bodyhandle = store
                return entity

            mime_type = head.mime_type
            policy = self.config['extract_nested_messages']
            if mime_type.startswith('multipart/'):
                self._parse_multipart(in_io, ctx, entity)
            elif (mime_type in NESTED_MESSAGE_CONTENT_TYPES
                  and policy is not NestedMessagesPolicy.NONE):
                nested = self._parse_nested_message(in_io, ctx, entity)
                if policy is NestedMessagesPolicy.REPLACE and nested is not entity:
                    if parent is not None:
                        parent.replace_part(entity, nested)
                    else:
                        nested.packaging = entity.packaging
                        results.top_head = nested.head
                        results.top_entity = nested
                    return nested
            else:
                self._parse_leaf(in_io, ctx, entity)
            return entity
        finally:
            results.leave_level()

    def _read_head(self, in_io, ctx, default_type):
        head_ctx = ctx.spawn().add_terminator(b'')
        buf = bytearray()
        with BufferIO(buf, 'w') as out_io:
            termination = head_ctx.read_chunk(in_io, out_io)
        head = MimeHead.from_bytes(bytes(buf), default_type=default_type)
        if self.config['decode_headers']:
            head.decode()
        return head, (termination.kind is EosType.DONE)

    def _parse_multipart(self, in_io, ctx, entity):
        head = entity.head
        boundary = head.multipart_boundary
        if not is_legal_boundary(boundary):
            synthesized = make_boundary()
            LOGGER.warning('Illegal or missing boundary %a of a %s entity '
                           '(using a synthesized one: %a)',
                           boundary, head.mime_type, synthesized)
            boundary = synthesized
        part_ctx = ctx.spawn().add_boundary(boundary)
        part_default_type = (DIGEST_PART_DEFAULT_CONTENT_TYPE
                             if head.mime_type == 'multipart/digest'
                             else DEFAULT_CONTENT_TYPE)

        with self._spooled_tmp() as preamble_tmp:
            with StreamIO(preamble_tmp, 'w') as out_io:
                part_ctx.read_chunk(in_io, out_io)
            preamble_tmp.seek(0)
            if part_ctx.eos_type() is not EosType.DELIM:
                LOGGER.warning('No parts found in the body of a %s entity '
                               '(storing the whole body as is)', head.mime_type)
                entity.bodyhandle = self._copy_raw_into_new_body(head, preamble_tmp)
                if part_ctx.eos_type() is EosType.CLOSE:
                    self._read_epilogue(in_io, ctx, entity)
                return
            if self.config['keep_preamble']:
                with StreamIO(preamble_tmp) as preamble_in:
                    entity.preamble = preamble_in.getlines()

        while part_ctx.eos_type() is EosType.DELIM:
            self._parse_entity(in_io, part_ctx, parent=entity, default_type=part_default_type)

        eos_type = part_ctx.eos_type()
        if eos_type is EosType.CLOSE:
            self._read_epilogue(in_io, ctx, entity)
        elif eos_type is EosType.EXT:
            LOGGER.warning('The body of a %s entity (boundary: %a) is not closed '
                           '(an outer boundary has been encountered)',
                           head.mime_type, boundary)
        else:
            LOGGER.warning('The body of a %s entity (boundary: %a) is not closed '
                           '(unexpected end of data)', head.mime_type, boundary)

    def _read_epilogue(self, in_io, ctx, entity):
        if self.config['keep_epilogue']:
            entity.epilogue = ctx.read_lines(in_io)
        else:
            ctx.read_chunk(in_io)

    def _parse_nested_message(self, in_io, ctx, entity):
        head = entity.head
        encoding = head.mime_encoding
        if encoding in IDENTITY_TRANSFER_ENCODINGS:
            return self._parse_entity(in_io, ctx, parent=entity)

        with self._spooled_tmp() as raw_tmp:
            with StreamIO(raw_tmp, 'w') as out_io:
                ctx.read_chunk(in_io, out_io)
            raw_tmp.seek(0)
            if not self.registry.is_supported(encoding):
                LOGGER.warning('Unsupported transfer encoding %a of a %s entity '
                               '(not parsing the embedded message; storing the '
                               'body undecoded)', encoding, head.mime_type)
                entity.bodyhandle = self._copy_raw_into_new_body(head, raw_tmp)
                return entity
            codec = self.registry.get(encoding)
            with self._spooled_tmp() as decoded_tmp:
                try:
                    with StreamIO(raw_tmp) as raw_in, \
                         StreamIO(decoded_tmp, 'w') as decoded_out:
                        codec.decode(raw_in, decoded_out)
                except CodecError as exc:
                    LOGGER.warning('Could not decode the body of a %s entity (%s); '
                                   'not parsing the embedded message, storing the '
                                   'body undecoded', head.mime_type, make_exc_ascii_str(exc))
                    raw_tmp.seek(0)
                    entity.bodyhandle = self._copy_raw_into_new_body(head, raw_tmp)
                    return entity
                decoded_tmp.seek(0)
                with StreamIO(decoded_tmp) as nested_in:
                    return self._parse_entity(nested_in, BoundaryContext(), parent=entity)

    def _parse_leaf(self, in_io, ctx, entity):
        head = entity.head
        with self._spooled_tmp() as raw_tmp:
            with StreamIO(raw_tmp, 'w') as out_io:
                ctx.read_chunk(in_io, out_io)
            raw_tmp.seek(0)
            entity.bodyhandle = self._decode_into_new_body(head, raw_tmp)

    def _decode_into_new_body(self, head, raw_tmp):
        encoding = head.mime_encoding
        codec, is_fallback = self.registry.get_or_fallback(encoding)
        if is_fallback:
            LOGGER.warning('Unsupported transfer encoding %a of a %s entity '
                           '(storing the body undecoded)', encoding, head.mime_type)
        store = self.new_body_for(head)
        try:
            with StreamIO(raw_tmp) as raw_in, store.open('w') as out_io:
                codec.decode(raw_in, out_io)
        except CodecError as exc:
            LOGGER.warning('Could not decode the body of a %s entity (%s); '
                           'storing the body undecoded',
                           head.mime_type, make_exc_ascii_str(exc))
            store.purge()
            raw_tmp.seek(0)
            store = self._copy_raw_into_new_body(head, raw_tmp)
        return store

    def _copy_raw_into_new_body(self, head, raw_tmp):
        store = self.new_body_for(head)
        with StreamIO(raw_tmp) as raw_in, store.open('w') as out_io:
            self._raw_copy_codec.decode(raw_in, out_io)
        return store

    def _spooled_tmp(self):
        return tempfile.SpooledTemporaryFile(max_size=self.config['tmp_to_core'])
