# Copyright (c) 2013-2026 NASK. All rights reserved.

import os
import unittest

from unittest_expander import (
    expand,
    foreach,
    param,
    paramseq,
)

from n6mime.io_helpers import BufferIO
from n6mime.transfer_codecs import (
    LOGGER as module_logger,
    Base64Codec,
    BinaryCodec,
    Codec,
    CodecError,
    CodecRegistry,
    Encode8Strategy,
    Gzip64Codec,
    QuotedPrintableCodec,
    UUEncodeCodec,
    UnsupportedEncodingError,
    XbitCodec,
    encode_8bit,
    make_default_registry,
)
from n6mime.unit_test_helpers import TestCaseMixin


def _encode(codec, data):
    out_io = BufferIO(mode='w')
    codec.encode(BufferIO(data), out_io)
    return bytes(out_io.buffer)


def _decode(codec, data):
    out_io = BufferIO(mode='w')
    codec.decode(BufferIO(data), out_io)
    return bytes(out_io.buffer)


@paramseq
def _arbitrary_byte_strings():
    yield param(data=b'').label('empty')
    yield param(data=b'x').label('1 octet')
    yield param(data=b'xy').label('2 octets')
    yield param(data=b'Hello, World!\n').label('ASCII text')
    yield param(data=b'Hello,\r\nWorld!\r\n').label('CRLF text')
    yield param(data=b'no final newline\nat all').label('no final newline')
    yield param(data=b'trailing spaces   \nand tabs\t\t\n').label('trailing whitespace')
    yield param(data=b'=3D=' * 50).label('equal signs')
    yield param(data=bytes(range(256)) * 3).label('all octets')
    yield param(data=b'x' * 5000 + b'\n' + b'y' * 77).label('long lines')
    yield param(data=b'\r\r\n\n\r').label('stray line terminators')
    yield param(data=os.urandom(1001)).label('random')


@paramseq
def _lossless_codecs():
    yield param(codec=Base64Codec()).label('base64')
    yield param(codec=QuotedPrintableCodec()).label('quoted-printable')
    yield param(codec=BinaryCodec()).label('binary')
    yield param(codec=UUEncodeCodec()).label('x-uuencode')
    yield param(codec=Gzip64Codec()).label('x-gzip64')


@expand
class TestLosslessCodecs(TestCaseMixin, unittest.TestCase):

    @foreach(_lossless_codecs)
    @foreach(_arbitrary_byte_strings)
    def test_decode_of_encode_is_identity(self, codec, data):
        encoded = _encode(codec, data)
        assert _decode(codec, encoded) == data


@expand
class TestBase64Codec(TestCaseMixin, unittest.TestCase):

    def test_encoded_line_length(self):
        encoded = _encode(Base64Codec(), b'x' * 100)
        lines = encoded.split(b'\n')
        assert lines[-1] == b''
        assert [len(line) for line in lines[:-1]] == [60, 60, 16]

    @foreach(
        param(encoded=b'SGVsbG8=', expected=b'Hello'),
        param(encoded=b'SGVsbG8', expected=b'Hello').label('missing padding'),
        param(encoded=b'SGVs\r\nbG8=\r\n', expected=b'Hello'),
        param(encoded=b' S G V s b G 8 = ', expected=b'Hello').label('spaces'),
        param(encoded=b'SGV*sbG8!', expected=b'Hello').label('junk'),
        param(encoded=b'SG\nVs\nbG\n8=\n', expected=b'Hello').label('short lines'),
        param(encoded=b'', expected=b''),
    )
    def test_tolerant_decoding(self, encoded, expected):
        with self.assertNoLogWarnings(module_logger):
            assert _decode(Base64Codec(), encoded) == expected

    def test_dangling_character(self):
        with self.assertLogWarningRegexes(module_logger, [r'dangling base64 character']):
            assert _decode(Base64Codec(), b'SGVsbG8hX') == b'Hello!'


@expand
class TestQuotedPrintableCodec(unittest.TestCase):

    def test_no_encoded_line_longer_than_73(self):
        data = (b'a' * 70 + b'\xff' * 10 + b' ' * 3 + b'\n') * 3 + b'=' * 200
        encoded = _encode(QuotedPrintableCodec(), data)
        assert max(map(len, encoded.split(b'\n'))) <= 73

    def test_escape_sequences_not_split(self):
        data = b'\xff' * 100
        encoded = _encode(QuotedPrintableCodec(), data)
        for line in encoded.split(b'\n'):
            content = line[:-1] if line.endswith(b'=') else line
            assert len(content) % 3 == 0

    @foreach(
        param(data=b'abc \n', expected=b'abc=20\n'),
        param(data=b'abc\t', expected=b'abc=09'),
        param(data=b'a b\n', expected=b'a b\n'),
        param(data=b'\r\n', expected=b'=0D\n'),
        param(data=b'x=1\n', expected=b'x=3D1\n'),
    )
    def test_encoding(self, data, expected):
        assert _encode(QuotedPrintableCodec(), data) == expected

    @foreach(
        param(encoded=b'abc=20\n', expected=b'abc \n'),
        param(encoded=b'abc   \r\n', expected=b'abc\n').label('trailing whitespace'),
        param(encoded=b'soft =\r\nbreak', expected=b'soft break'),
        param(encoded=b'soft=  \r\nbreak\r\n', expected=b'softbreak\n'),
        param(encoded=b'lower=e9case\r', expected=b'lower\xe9case\n'),
    )
    def test_decoding(self, encoded, expected):
        assert _decode(QuotedPrintableCodec(), encoded) == expected


@expand
class TestXbitCodec(TestCaseMixin, unittest.TestCase):

    @foreach(
        param(data=b'Hello!\nWorld\n'),
        param(data=b'no final newline'),
        param(data=b'x' * 990 + b'\n'),
        param(data=b''),
    )
    def test_7bit_encode_of_decode_is_identity_for_compliant_input(self, data):
        codec = XbitCodec('7bit')
        with self.assertNoLogWarnings(module_logger):
            assert _encode(codec, _decode(codec, data)) == data

    @foreach(list(Encode8Strategy))
    def test_7bit_encode_of_8bit_data(self, strategy):
        codec = XbitCodec('7bit', encode8_strategy=strategy)
        data = bytes(range(256)).replace(b'\n', b'') + b'\n'
        with self.assertLogWarningRegexes(module_logger, [r'8-bit data found']):
            encoded = _encode(codec, data)
        assert encoded.isascii()

    def test_8bit_encode_keeps_8bit_data(self):
        assert _encode(XbitCodec('8bit'), b'\xe9t\xe9\n') == b'\xe9t\xe9\n'

    def test_long_lines_are_split(self):
        encoded = _encode(XbitCodec('8bit'), b'x' * 2000 + b'\n')
        assert encoded == b'x' * 990 + b'\n' + b'x' * 990 + b'\n' + b'x' * 20 + b'\n'

    @foreach(
        param(data=b'a\r\nb\rc\nd', expected=b'a\nb\nc\nd'),
        param(data=b'a\r\n\r\n', expected=b'a\n\n'),
        param(data=b'a\n\rb\n\r\n\rc', expected=b'a\nb\n\nc').label('LF+CR'),
    )
    def test_decoding_normalizes_eols(self, data, expected):
        assert _decode(XbitCodec('7bit'), data) == expected

    @foreach(
        param(strategy=Encode8Strategy.APPROX, expected=b'Cafe a la creme, 5 EUR/100 g (c)'),
        param(strategy=Encode8Strategy.CLEARBIT8, expected=b'Cafi ` la crhme, 5 EUR/100 g )'),
        param(strategy=Encode8Strategy.STRIP, expected=b'Caf  la crme, 5 EUR/100 g '),
        param(strategy=Encode8Strategy.ENTITY,
              expected=b'Caf&#233; &#224; la cr&#232;me, 5 EUR/100 g &#169;'),
    )
    def test_encode_8bit_strategies(self, strategy, expected):
        data = b'Caf\xe9 \xe0 la cr\xe8me, 5 EUR/100 g \xa9'
        assert encode_8bit(data, strategy) == expected

    def test_illegal_name(self):
        with self.assertRaises(ValueError):
            XbitCodec('16bit')


@expand
class TestUUEncodeCodec(TestCaseMixin, unittest.TestCase):

    def test_no_begin_line(self):
        with self.assertRaises(CodecError):
            _decode(UUEncodeCodec(), b'just\nsome\ntext\n')

    def test_no_end_line(self):
        encoded = _encode(UUEncodeCodec(), b'Hello!')
        truncated = encoded.replace(b'`\nend\n', b'')
        with self.assertLogWarningRegexes(module_logger, [r'no "end" line']):
            assert _decode(UUEncodeCodec(), truncated) == b'Hello!'

    def test_custom_file_name_and_mode(self):
        encoded = _encode(UUEncodeCodec('data.bin', 0o600), b'x')
        assert encoded.startswith(b'begin 600 data.bin\n')


@expand
class TestGzip64Codec(TestCaseMixin, unittest.TestCase):

    def test_encoding_warns(self):
        with self.assertLogWarningRegexes(module_logger, [r'not a standard MIME encoding']):
            _encode(Gzip64Codec(), b'abc')

    def test_garbage_causes_codec_error(self):
        with self.assertRaises(CodecError):
            _decode(Gzip64Codec(), b'bm90IGEgZ3ppcCBzdHJlYW0=\n')

    def test_small_spool(self):
        data = os.urandom(10000)
        codec = Gzip64Codec(spool_max_size=100)
        with self.assertLogWarningRegexes(module_logger, [r'not a standard MIME encoding']):
            encoded = _encode(codec, data)
        assert _decode(codec, encoded) == data


@expand
class TestCodecRegistry(unittest.TestCase):

    @foreach(
        '7bit', '8bit', 'base64', 'binary', 'none', 'quoted-printable',
        'x-uuencode', 'x-uue', 'uuencode', 'x-gzip64',
    )
    def test_default_codecs(self, name):
        registry = make_default_registry()
        assert registry.is_supported(name)
        assert registry.is_supported(name.upper())
        assert isinstance(registry.get(f' {name.title()} '), Codec)

    def test_none_is_alias_for_binary(self):
        registry = CodecRegistry()
        assert registry.get('none') is registry.get('binary')

    def test_unknown_name(self):
        registry = CodecRegistry()
        with self.assertRaises(UnsupportedEncodingError) as cm:
            registry.get('x-unknown')
        assert cm.exception.encoding_name == 'x-unknown'
        assert isinstance(cm.exception, LookupError)

    def test_fallback(self):
        registry = CodecRegistry()
        codec, is_fallback = registry.get_or_fallback('x-unknown')
        assert isinstance(codec, BinaryCodec)
        assert is_fallback
        codec, is_fallback = registry.get_or_fallback('BASE64')
        assert isinstance(codec, Base64Codec)
        assert not is_fallback

    def test_registration_does_not_affect_other_registries(self):
        registry = CodecRegistry()
        other = registry.copy()
        registry.register('X-Custom', Base64Codec())
        registry.unregister('7bit')

        assert registry.is_supported('x-custom')
        assert not registry.is_supported('7bit')
        assert not other.is_supported('x-custom')
        assert other.is_supported('7bit')
        assert not make_default_registry().is_supported('x-custom')

    def test_empty_registry(self):
        registry = CodecRegistry({})
        assert registry.names() == []
        with self.assertRaises(UnsupportedEncodingError):
            registry.unregister('binary')

    def test_non_codec_rejected(self):
        with self.assertRaises(TypeError):
            CodecRegistry().register('x-foo', object())
