# Copyright (c) 2013-2026 NASK. All rights reserved.

"""
Content-Transfer-Encoding codecs and their registry.

Each codec is an instance of a concrete `Codec` subclass; it provides
the `decode(in_io, out_io)` and `encode(in_io, out_io)` methods, each
reading from a MIME I/O handle opened for reading and writing to one
opened for writing (see: `n6mime.io_helpers`).  Codecs keep no state
related to any particular stream, so one instance can be used many
times.  A failure of the underlying decoding/encoding machinery is
signalled with `CodecError` (then the output should be considered
garbage).

A `CodecRegistry` maps (case-insensitive) encoding names to codecs.
There is no process-wide registry: each user (in particular, each
`n6mime.parser.MimeParser`) owns its own registry; the default
contents are provided by `make_default_registry()`.
"""

import binascii
import enum
import gzip
import re
import tempfile
import unicodedata
import zlib
from collections.abc import (
    Iterator,
    Mapping,
)
from typing import (
    ClassVar,
    Optional,
)

from n6mime.class_helpers import attr_repr
from n6mime.common_helpers import (
    ascii_str,
    make_exc_ascii_str,
)
from n6mime.const import (
    BASE64_ENCODED_CHUNK_SIZE,
    BINARY_COPY_BLOCK_SIZE,
    CANONICAL_EOL,
    QP_MAX_LINE_LENGTH,
    XBIT_MAX_LINE_LENGTH,
)
from n6mime.io_helpers import (
    MimeIO,
    StreamIO,
)
from n6mime.log_helpers import get_logger


LOGGER = get_logger(__name__)


class CodecError(Exception):
    """Raised when decoding or encoding fails."""


class UnsupportedEncodingError(LookupError):

    """
    Raised when no codec is registered for the requested encoding name.

    >>> print(UnsupportedEncodingError('x-foo'))
    unsupported transfer encoding: 'x-foo'
    """

    def __init__(self, encoding_name):
        super().__init__(encoding_name)
        self.encoding_name = encoding_name

    def __str__(self):
        return f'unsupported transfer encoding: {ascii_str(self.encoding_name)!r}'


# exceptions raised by the underlying (de|en)coding machinery
_CODEC_FAILURE_EXCEPTIONS = (
    binascii.Error,
    zlib.error,
    gzip.BadGzipFile,
    EOFError,
    UnicodeError,
)


class Codec:

    """
    The base class of transfer encoding codecs.

    Concrete subclasses implement `_decode()` and `_encode()`; the
    public `decode()` and `encode()` methods translate failures of the
    underlying machinery into `CodecError`.
    """

    name: ClassVar[str] = None

    __repr__ = attr_repr('name')

    def decode(self, in_io: MimeIO, out_io: MimeIO) -> None:
        """Decode data read from `in_io`, writing the result to `out_io`."""
        try:
            self._decode(in_io, out_io)
        except _CODEC_FAILURE_EXCEPTIONS as exc:
            raise CodecError(
                f'{self.name} decoding failed ({make_exc_ascii_str(exc)})') from exc

    def encode(self, in_io: MimeIO, out_io: MimeIO) -> None:
        """Encode data read from `in_io`, writing the result to `out_io`."""
        try:
            self._encode(in_io, out_io)
        except _CODEC_FAILURE_EXCEPTIONS as exc:
            raise CodecError(
                f'{self.name} encoding failed ({make_exc_ascii_str(exc)})') from exc

    def _decode(self, in_io: MimeIO, out_io: MimeIO) -> None:
        raise NotImplementedError

    def _encode(self, in_io: MimeIO, out_io: MimeIO) -> None:
        raise NotImplementedError


#
# Auxiliary helpers
#

def _split_eol(line: bytes) -> tuple[bytes, bool]:
    # -> (<line without terminator>, <whether there was a terminator>)
    if line.endswith(b'\r\n') or line.endswith(b'\n\r'):
        return line[:-2], True
    if line.endswith((b'\r', b'\n')):
        return line[:-1], True
    return line, False


def _iter_lf_lines(in_io: MimeIO) -> Iterator[bytes]:
    # Split the input at LF characters *only* (yielding lines with
    # their LF terminators; the last one may lack it).
    pending = b''
    while block := in_io.read(BINARY_COPY_BLOCK_SIZE):
        pending += block
        *lines, pending = pending.split(b'\n')
        for line in lines:
            yield line + b'\n'
    if pending:
        yield pending


def _copy_blocks(in_io: MimeIO, out_io: MimeIO) -> None:
    while block := in_io.read(BINARY_COPY_BLOCK_SIZE):
        out_io.print(block)


#
# Concrete codecs
#

class BinaryCodec(Codec):

    r"""
    The `binary` codec: the data are copied intact (in blocks).

    >>> from n6mime.io_helpers import BufferIO
    >>> out = BufferIO(mode='w')
    >>> BinaryCodec().decode(BufferIO(b'\x00\r\xff\n'), out)
    >>> out.buffer
    bytearray(b'\x00\r\xff\n')
    """

    name = 'binary'

    def _decode(self, in_io, out_io):
        _copy_blocks(in_io, out_io)

    def _encode(self, in_io, out_io):
        _copy_blocks(in_io, out_io)


class Base64Codec(Codec):

    r"""
    The `base64` codec.

    Decoding is tolerant: any characters outside the base64 alphabet
    (including padding characters) are ignored; a trailing incomplete
    group of 2 or 3 characters is padded as needed; a single dangling
    character (which cannot encode any octet) is dropped, with a
    warning.

    >>> from n6mime.io_helpers import BufferIO
    >>> out = BufferIO(mode='w')
    >>> Base64Codec().encode(BufferIO(b'Hello, World!'), out)
    >>> out.buffer
    bytearray(b'SGVsbG8sIFdvcmxkIQ==\n')
    >>> out = BufferIO(mode='w')
    >>> Base64Codec().decode(BufferIO(b'SGVs bG8s\r\n*IFdv\ncmxkIQ'), out)
    >>> out.buffer
    bytearray(b'Hello, World!')
    """

    name = 'base64'

    _NON_BASE64_CHARS_REGEX = re.compile(rb'[^A-Za-z0-9+/]+')

    def _decode(self, in_io, out_io):
        pending = b''
        for line in in_io:
            pending += self._NON_BASE64_CHARS_REGEX.sub(b'', line)
            if len(pending) >= 4:
                cut = len(pending) - len(pending) % 4
                out_io.print(binascii.a2b_base64(pending[:cut]))
                pending = pending[cut:]
        if len(pending) == 1:
            LOGGER.warning('Dropping a dangling base64 character (%a) '
                           'found at the end of the encoded data', pending)
        elif pending:
            out_io.print(binascii.a2b_base64(pending + b'=' * (4 - len(pending))))

    def _encode(self, in_io, out_io):
        while chunk := in_io.read(BASE64_ENCODED_CHUNK_SIZE):
            out_io.print(binascii.b2a_base64(chunk, newline=True))


class QuotedPrintableCodec(Codec):

    r"""
    The `quoted-printable` codec.

    When encoding, the LF character is the only line break; any other
    octet outside the safe set (printable ASCII characters except `=`,
    plus space and tab) is escaped, as well as a space or tab at the end
    of a line.  Long lines are broken with *soft line breaks*, so that
    no encoded line is longer than 73 characters (including the
    trailing `=`).

    When decoding, whitespace at the end of each line is ignored, a
    trailing `=` is a soft line break, any line terminator is output as
    LF.

    >>> from n6mime.io_helpers import BufferIO
    >>> out = BufferIO(mode='w')
    >>> QuotedPrintableCodec().encode(BufferIO(b'caf\xe9 = 1 \nbye\r\n'), out)
    >>> out.buffer
    bytearray(b'caf=E9 =3D 1=20\nbye=0D\n')
    >>> out = BufferIO(mode='w')
    >>> QuotedPrintableCodec().decode(BufferIO(b'caf=E9 =3D 1=20  \r\nlong =\r\nline\r\n'), out)
    >>> out.buffer
    bytearray(b'caf\xe9 = 1 \nlong line\n')
    """

    name = 'quoted-printable'

    _SAFE_OCTETS = frozenset(
        [0x09, 0x20]
        + list(range(0x21, 0x3D))       # `!` .. `<`
        + list(range(0x3E, 0x7F)))      # `>` .. `~`
    _WHITESPACE_OCTETS = frozenset([0x09, 0x20])

    def _decode(self, in_io, out_io):
        for line in in_io:
            content, had_eol = _split_eol(line)
            content = content.rstrip(b' \t')
            if content.endswith(b'='):
                out_io.print(binascii.a2b_qp(content[:-1]))
            else:
                out_io.print(binascii.a2b_qp(content),
                             CANONICAL_EOL if had_eol else b'')

    def _encode(self, in_io, out_io):
        for line in _iter_lf_lines(in_io):
            had_eol = line.endswith(b'\n')
            if had_eol:
                line = line[:-1]
            for encoded_line in self._iter_encoded_lines(line):
                out_io.print(encoded_line)
            if had_eol:
                out_io.print(CANONICAL_EOL)

    def _iter_encoded_lines(self, line):
        # (yields the encoded line, possibly split into
        # parts, each but the last one with a soft break)
        max_content_length = QP_MAX_LINE_LENGTH - 1
        current = bytearray()
        last_index = len(line) - 1
        for i, octet in enumerate(line):
            if octet in self._SAFE_OCTETS and not (
                    i == last_index and octet in self._WHITESPACE_OCTETS):
                token = bytes([octet])
            else:
                token = b'=%02X' % octet
            if len(current) + len(token) > max_content_length:
                yield bytes(current) + b'=' + CANONICAL_EOL
                current = bytearray()
            current += token
        yield bytes(current)


class Encode8Strategy(enum.Enum):

    """
    How the 7-bit encoder deals with octets that have the 8th bit set.

    * `APPROX` -- replace the (Latin-1) character with its approximate
      ASCII representation (`?` if there is no such one);
    * `CLEARBIT8` -- clear the 8th bit;
    * `STRIP` -- remove the octet;
    * `ENTITY` -- replace it with an HTML numeric entity (`&#NNN;`).
    """

    APPROX = 'APPROX'
    CLEARBIT8 = 'CLEARBIT8'
    STRIP = 'STRIP'
    ENTITY = 'ENTITY'


# (Latin-1 characters whose Unicode decomposition
# does not provide any useful ASCII approximation)
_LATIN1_ASCII_APPROXIMATIONS = {
    '\xa0': ' ', '\xa1': '!', '\xa2': 'c', '\xa3': 'L', '\xa4': '*',
    '\xa5': 'Y', '\xa6': '|', '\xa7': 'S', '\xa9': '(c)', '\xab': '<<',
    '\xac': '-', '\xad': '-', '\xae': '(r)', '\xb0': 'o', '\xb1': '+-',
    '\xb5': 'u', '\xb6': 'P', '\xb7': '.', '\xbb': '>>', '\xbf': '?',
    '\xc6': 'AE', '\xd0': 'D', '\xd7': 'x', '\xd8': 'O', '\xde': 'TH',
    '\xdf': 'ss', '\xe6': 'ae', '\xf0': 'd', '\xf7': '/', '\xf8': 'o',
    '\xfe': 'th',
}

def _make_approx_table() -> dict[int, bytes]:
    table = {}
    for octet in range(0x80, 0x100):
        char = chr(octet)
        approx = _LATIN1_ASCII_APPROXIMATIONS.get(char)
        if approx is None:
            approx = unicodedata.normalize('NFKD', char).encode('ascii', 'ignore').decode('ascii')
            approx = approx.strip() or '?'
        table[octet] = approx.encode('ascii')
    return table

_APPROX_TABLE = _make_approx_table()

_8BIT_OCTET_REGEX = re.compile(rb'[\x80-\xff]')

def encode_8bit(data: bytes, strategy: Encode8Strategy = Encode8Strategy.APPROX) -> bytes:
    r"""
    Get a copy of `data` with all 8-bit octets replaced according to
    the given strategy (see: `Encode8Strategy`).

    >>> encode_8bit(b'Gar\xe7on na\xefve \xabStra\xdfe\xbb')
    b'Garcon naive <<Strasse>>'
    >>> encode_8bit(b'Gar\xe7on', Encode8Strategy.CLEARBIT8)
    b'Gargon'
    >>> encode_8bit(b'Gar\xe7on', Encode8Strategy.STRIP)
    b'Garon'
    >>> encode_8bit(b'Gar\xe7on', Encode8Strategy.ENTITY)
    b'Gar&#231;on'
    """
    if strategy is Encode8Strategy.APPROX:
        replace = lambda match: _APPROX_TABLE[match.group()[0]]
    elif strategy is Encode8Strategy.CLEARBIT8:
        replace = lambda match: bytes([match.group()[0] & 0x7F])
    elif strategy is Encode8Strategy.STRIP:
        replace = b''
    elif strategy is Encode8Strategy.ENTITY:
        replace = lambda match: b'&#%d;' % match.group()[0]
    else:
        raise ValueError(f'unknown strategy: {strategy!a}')
    return _8BIT_OCTET_REGEX.sub(replace, data)


class XbitCodec(Codec):

    r"""
    The `7bit` and `8bit` codecs.

    Decoding only normalizes line terminators (CR+LF, LF+CR and a lone
    CR become LF).  Encoding splits lines longer than 990 octets and --
    in the 7-bit variant -- replaces 8-bit octets (according to the
    given `Encode8Strategy`; note that this is *lossy*).

    >>> from n6mime.io_helpers import BufferIO
    >>> out = BufferIO(mode='w')
    >>> XbitCodec('7bit').decode(BufferIO(b'one\r\ntwo\rthree\nfour'), out)
    >>> out.buffer
    bytearray(b'one\ntwo\nthree\nfour')
    >>> out = BufferIO(mode='w')
    >>> XbitCodec('7bit').encode(BufferIO(b'na\xefve\n'), out)
    >>> out.buffer
    bytearray(b'naive\n')
    >>> out = BufferIO(mode='w')
    >>> XbitCodec('8bit').encode(BufferIO(b'na\xefve\n'), out)
    >>> out.buffer
    bytearray(b'na\xefve\n')
    """

    __repr__ = attr_repr('name', 'encode8_strategy')

    def __init__(self, name: str = '7bit',
                 encode8_strategy: Encode8Strategy = Encode8Strategy.APPROX):
        if name not in ('7bit', '8bit'):
            raise ValueError(f'illegal name of an xbit codec: {name!a}')
        self.name = name
        self.encode8_strategy = encode8_strategy

    @property
    def is_7bit(self) -> bool:
        return self.name == '7bit'

    def _decode(self, in_io, out_io):
        for line in in_io:
            content, had_eol = _split_eol(line)
            out_io.print(content, CANONICAL_EOL if had_eol else b'')

    def _encode(self, in_io, out_io):
        found_8bit = False
        for line in _iter_lf_lines(in_io):
            if self.is_7bit and _8BIT_OCTET_REGEX.search(line):
                found_8bit = True
                line = encode_8bit(line, self.encode8_strategy)
            while len(line) > XBIT_MAX_LINE_LENGTH + 1 or (
                    len(line) > XBIT_MAX_LINE_LENGTH and not line.endswith(b'\n')):
                out_io.print(line[:XBIT_MAX_LINE_LENGTH], CANONICAL_EOL)
                line = line[XBIT_MAX_LINE_LENGTH:]
            out_io.print(line)
        if found_8bit:
            LOGGER.warning('8-bit data found when encoding with the 7bit encoding; '
                           'the offending octets have been replaced (strategy: %s)',
                           self.encode8_strategy.name)


class UUEncodeCodec(Codec):

    r"""
    The `x-uuencode` codec.

    >>> from n6mime.io_helpers import BufferIO
    >>> out = BufferIO(mode='w')
    >>> UUEncodeCodec().encode(BufferIO(b'Cat'), out)
    >>> out.buffer
    bytearray(b'begin 644 file\n#0V%T\n`\nend\n')
    >>> decoded = BufferIO(mode='w')
    >>> UUEncodeCodec().decode(BufferIO(b'junk\n' + out.buffer), decoded)
    >>> decoded.buffer
    bytearray(b'Cat')
    """

    name = 'x-uuencode'

    __repr__ = attr_repr('name', 'filename')

    def __init__(self, filename: str = 'file', file_mode: int = 0o644):
        self.filename = filename
        self.file_mode = file_mode

    def _decode(self, in_io, out_io):
        for line in in_io:
            if line.startswith(b'begin '):
                break
        else:
            raise CodecError('no "begin" line found in the x-uuencode data')
        for line in in_io:
            data_line, _ = _split_eol(line)
            if data_line.rstrip() == b'end':
                break
            if not data_line.strip():
                continue
            try:
                data = binascii.a2b_uu(data_line)
            except binascii.Error:
                # Workaround for broken encoders (as in the
                # standard library's former `uu` module).
                nbytes = (((data_line[0] - 32) & 63) * 4 + 5) // 3
                data = binascii.a2b_uu(data_line[:nbytes])
            out_io.print(data)
        else:
            LOGGER.warning('The x-uuencode data are truncated (no "end" line)')

    def _encode(self, in_io, out_io):
        out_io.print(b'begin %o %s\n' % (self.file_mode, self.filename.encode('ascii')))
        while chunk := in_io.read(BASE64_ENCODED_CHUNK_SIZE):
            out_io.print(binascii.b2a_uu(chunk, backtick=True))
        out_io.print(b'`\nend\n')


class Gzip64Codec(Codec):

    r"""
    The `x-gzip64` codec: gzip-compressed data encoded with base64.

    Note: this is *not* a standard MIME encoding.

    >>> from n6mime.io_helpers import BufferIO
    >>> encoded = BufferIO(mode='w')
    >>> Gzip64Codec().encode(BufferIO(b'Hello! ' * 100), encoded)
    >>> decoded = BufferIO(mode='w')
    >>> Gzip64Codec().decode(BufferIO(encoded.buffer), decoded)
    >>> decoded.buffer == b'Hello! ' * 100
    True
    """

    name = 'x-gzip64'

    def __init__(self, spool_max_size: int = 1024 * 1024):
        self.spool_max_size = spool_max_size
        self._base64 = Base64Codec()

    def _decode(self, in_io, out_io):
        with tempfile.SpooledTemporaryFile(max_size=self.spool_max_size) as tmp:
            with StreamIO(tmp, 'w') as compressed_out:
                self._base64._decode(in_io, compressed_out)
            tmp.seek(0)
            with gzip.GzipFile(fileobj=tmp, mode='rb') as gz:
                while block := gz.read(BINARY_COPY_BLOCK_SIZE):
                    out_io.print(block)

    def _encode(self, in_io, out_io):
        LOGGER.warning('Encoding with x-gzip64 which is not a standard MIME encoding')
        with tempfile.SpooledTemporaryFile(max_size=self.spool_max_size) as tmp:
            with gzip.GzipFile(fileobj=tmp, mode='wb', mtime=0) as gz:
                while block := in_io.read(BINARY_COPY_BLOCK_SIZE):
                    gz.write(block)
            tmp.seek(0)
            with StreamIO(tmp, 'r') as compressed_in:
                self._base64._encode(compressed_in, out_io)


#
# The registry
#

class CodecRegistry:

    """
    A mapping of transfer encoding names to codecs.

    Names are case-insensitive (and leading/trailing whitespace is
    ignored).  If the `codecs` argument is not given (or is `None`),
    the registry is populated with the default codecs (see:
    `make_default_registry()`).

    >>> registry = CodecRegistry()
    >>> registry.get('BASE64')
    <Base64Codec name='base64'>
    >>> registry.get('x-foo')                    # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
      ...
    n6mime.transfer_codecs.UnsupportedEncodingError: unsupported transfer encoding: 'x-foo'
    >>> registry.get_or_fallback('x-foo')
    (<BinaryCodec name='binary'>, True)
    >>> registry.register('X-Foo', QuotedPrintableCodec())
    >>> registry.get_or_fallback('x-foo')
    (<QuotedPrintableCodec name='quoted-printable'>, False)
    >>> 'x-foo' in registry.names() and not CodecRegistry().is_supported('x-foo')
    True
    """

    def __init__(self, codecs: Optional[Mapping[str, Codec]] = None):
        self._name_to_codec: dict[str, Codec] = {}
        if codecs is None:
            codecs = _get_default_codecs()
        for name, codec in codecs.items():
            self.register(name, codec)

    def __repr__(self):
        return f'<{type(self).__qualname__} names={self.names()!r}>'

    def register(self, name: str, codec: Codec) -> None:
        if not isinstance(codec, Codec):
            raise TypeError(f'{codec!a} is not a Codec instance')
        self._name_to_codec[self._normalize(name)] = codec

    def unregister(self, name: str) -> None:
        try:
            del self._name_to_codec[self._normalize(name)]
        except KeyError:
            raise UnsupportedEncodingError(name) from None

    def get(self, name: str) -> Codec:
        try:
            return self._name_to_codec[self._normalize(name)]
        except KeyError:
            raise UnsupportedEncodingError(name) from None

    def get_or_fallback(self, name: str, fallback: str = 'binary') -> tuple[Codec, bool]:
        """
        Get the codec for `name` or, if it is not supported, for
        `fallback`.  Return a pair: the codec and a flag indicating
        whether the fallback has been used.
        """
        try:
            return self.get(name), False
        except UnsupportedEncodingError:
            return self.get(fallback), True

    def is_supported(self, name: str) -> bool:
        return self._normalize(name) in self._name_to_codec

    def names(self) -> list[str]:
        return sorted(self._name_to_codec)

    def copy(self) -> 'CodecRegistry':
        return type(self)(self._name_to_codec)

    @staticmethod
    def _normalize(name):
        return name.strip().lower()


def _get_default_codecs() -> dict[str, Codec]:
    binary = BinaryCodec()
    uuencode = UUEncodeCodec()
    return {
        '7bit': XbitCodec('7bit'),
        '8bit': XbitCodec('8bit'),
        'base64': Base64Codec(),
        'binary': binary,
        'none': binary,
        'quoted-printable': QuotedPrintableCodec(),
        'x-uuencode': uuencode,
        'x-uue': uuencode,
        'uuencode': uuencode,
        'x-gzip64': Gzip64Codec(),
    }


def make_default_registry() -> CodecRegistry:
    """Make a new registry containing the default codecs."""
    return CodecRegistry()
