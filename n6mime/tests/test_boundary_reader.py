# Copyright (c) 2013-2026 NASK. All rights reserved.

import unittest

from unittest_expander import (
    expand,
    foreach,
    param,
)

from n6mime.boundary_reader import (
    BoundaryContext,
    EosType,
    Termination,
    is_legal_boundary,
)
from n6mime.io_helpers import BufferIO


def _read(ctx, data):
    in_io = BufferIO(data)
    out_io = BufferIO(mode='w')
    termination = ctx.read_chunk(in_io, out_io)
    return bytes(out_io.buffer), termination, in_io.read()


@expand
class TestBoundaryMatching(unittest.TestCase):

    @foreach(
        param(line=b'--Boundary_1'),
        param(line=b'--Boundary_1\r\n'),
        param(line=b'--Boundary_1\n'),
        param(line=b'--Boundary_1\r'),
        param(line=b'--Boundary_1\n\r'),
        param(line=b'--Boundary_1 \t \r\n').label('trailing whitespace'),
    )
    def test_delimiter_matches(self, line):
        ctx = BoundaryContext().add_boundary('Boundary_1')
        assert ctx.match(line) == Termination.delim('Boundary_1')

    @foreach(
        param(line=b'--Boundary_1--\r\n'),
        param(line=b'--Boundary_1--  \n'),
        param(line=b'--Boundary_1--'),
    )
    def test_close_delimiter_matches(self, line):
        ctx = BoundaryContext().add_boundary('Boundary_1')
        assert ctx.match(line) == Termination.close('Boundary_1')

    @foreach(
        param(line=b'--boundary_1\r\n').label('case differs'),
        param(line=b'--BOUNDARY_1\r\n').label('case differs (2)'),
        param(line=b'--Boundary_12\r\n'),
        param(line=b'--Boundary_\r\n'),
        param(line=b' --Boundary_1\r\n').label('leading space'),
        param(line=b'-Boundary_1\r\n'),
        param(line=b'Boundary_1\r\n'),
        param(line=b'--Boundary_1-\r\n'),
        param(line=b'--Boundary_1---\r\n'),
        param(line=b'--Boundary_1 x\r\n'),
        param(line=b'---Boundary_1\r\n'),
        param(line=b'\r\n'),
    )
    def test_near_misses_do_not_match(self, line):
        ctx = BoundaryContext().add_boundary('Boundary_1')
        assert ctx.match(line) is None
        output, termination, rest = _read(ctx, b'Body\r\n' + line + b'More\r\n')
        assert termination == Termination.EOF
        assert output == b'Body\r\n' + line + b'More\r\n'
        assert rest == b''

    def test_terminator_matched_exactly(self):
        ctx = BoundaryContext().add_terminator(b'')
        assert ctx.match(b'\r\n') == Termination.done(b'')
        assert ctx.match(b'') == Termination.done(b'')
        assert ctx.match(b' \r\n') is None
        assert ctx.match(b'\t\n') is None

    @foreach(['', 'with"quote', "with'apostrophe", 'with;semicolon', 'tab\tinside', None, b'bytes'])
    def test_illegal_boundary_rejected(self, token):
        assert not is_legal_boundary(token)
        with self.assertRaises(ValueError):
            BoundaryContext().add_boundary(token)


@expand
class TestReadChunk(unittest.TestCase):

    def test_eol_before_boundary_is_dropped(self):
        ctx = BoundaryContext().add_boundary('b')

        output, termination, rest = _read(ctx, b'line 1\r\nline 2\r\n\r\n--b\r\nafter\r\n')

        assert output == b'line 1\r\nline 2\r\n'
        assert termination == Termination.delim('b')
        assert rest == b'after\r\n'

    def test_eol_before_terminator_is_kept(self):
        ctx = BoundaryContext().add_terminator(b'')

        output, termination, rest = _read(ctx, b'Subject: x\r\nTo: y\r\n\r\nbody\r\n')

        assert output == b'Subject: x\r\nTo: y\r\n'
        assert termination == Termination.done(b'')
        assert rest == b'body\r\n'

    def test_lf_cr_line_terminators(self):
        ctx = BoundaryContext().add_terminator(b'')

        output, termination, rest = _read(ctx, b'Subject: x\n\rTo: y\n\r\n\rbody\n\r--b\n\r')

        assert output == b'Subject: x\n\rTo: y\n\r'
        assert termination == Termination.done(b'')

        ctx = BoundaryContext().add_boundary('b')

        output, termination, rest = _read(ctx, rest)

        assert output == b'body'
        assert termination == Termination.delim('b')
        assert rest == b''

    def test_eof(self):
        ctx = BoundaryContext().add_boundary('b')

        output, termination, rest = _read(ctx, b'line 1\nline 2')

        assert output == b'line 1\nline 2'
        assert termination == Termination.EOF
        assert ctx.eos_type() is EosType.EOF

    def test_immediate_boundary_gives_empty_output(self):
        ctx = BoundaryContext().add_boundary('b')

        output, termination, rest = _read(ctx, b'--b--\nepilogue\n')

        assert output == b''
        assert ctx.eos_type() is EosType.CLOSE
        assert rest == b'epilogue\n'

    def test_without_output(self):
        ctx = BoundaryContext().add_boundary('b')
        in_io = BufferIO(b'skipped\n--b\nkept\n')

        termination = ctx.read_chunk(in_io)

        assert termination == Termination.delim('b')
        assert in_io.read() == b'kept\n'

    def test_read_lines(self):
        ctx = BoundaryContext().add_boundary('b')
        in_io = BufferIO(b'one\r\ntwo\rthree\n--b\n')

        lines = ctx.read_lines(in_io)

        assert lines == [b'one\r\n', b'two\r', b'three']

    @foreach(
        param(eol=b'\r\n').label('CRLF'),
        param(eol=b'\n').label('LF'),
        param(eol=b'\r').label('CR'),
        param(eol=b'\n\r').label('LFCR'),
    )
    def test_any_eol_convention(self, eol):
        ctx = BoundaryContext().add_boundary('b')
        data = eol.join([b'text', b'', b'--b--', b''])

        output, termination, rest = _read(ctx, data)

        assert output == b'text' + eol
        assert ctx.eos_type() is EosType.CLOSE


@expand
class TestNestedContexts(unittest.TestCase):

    def test_spawned_context_copies_tokens_and_shares_cell(self):
        root = BoundaryContext()
        outer = root.spawn().add_boundary('outer')
        inner = outer.spawn().add_boundary('inner')

        assert root.boundaries == ()
        assert outer.boundaries == ('outer',)
        assert inner.boundaries == ('inner', 'outer')

        inner.read_chunk(BufferIO(b'--outer\n'))

        assert root.eos == outer.eos == inner.eos == Termination.delim('outer')
        assert inner.eos_type() is EosType.EXT
        assert outer.eos_type() is EosType.DELIM
        assert root.eos_type() is EosType.EXT

    def test_terminators_not_leaking_to_parent(self):
        ctx = BoundaryContext().add_boundary('b')
        head_ctx = ctx.spawn().add_terminator(b'')

        assert head_ctx.match(b'\n') is not None
        assert ctx.match(b'\n') is None

    def test_eos_type_of_explicit_termination(self):
        ctx = BoundaryContext().add_boundary('a').add_boundary('b')

        assert ctx.eos_type() is None
        assert ctx.eos_type(Termination.delim('b')) is EosType.DELIM
        assert ctx.eos_type(Termination.close('b')) is EosType.CLOSE
        assert ctx.eos_type(Termination.close('a')) is EosType.EXT
        assert ctx.eos_type(Termination.done(b'')) is EosType.DONE
        assert ctx.eos_type(Termination.EOF) is EosType.EOF

    def test_ext_line_is_consumed_and_outer_level_resumes_after_it(self):
        outer = BoundaryContext().add_boundary('outer')
        inner = outer.spawn().add_boundary('inner')
        in_io = BufferIO(
            b'inner part text\n'
            b'--outer\n'
            b'next outer part\n'
            b'--outer--\n')

        inner_output = BufferIO(mode='w')
        inner.read_chunk(in_io, inner_output)

        assert inner_output.buffer == b'inner part text'
        assert inner.eos_type() is EosType.EXT
        assert outer.eos_type() is EosType.DELIM

        outer_output = BufferIO(mode='w')
        outer.read_chunk(in_io, outer_output)

        assert outer_output.buffer == b'next outer part'
        assert outer.eos_type() is EosType.CLOSE

    def test_content_after_inner_close_belongs_to_outer_level(self):
        outer = BoundaryContext().add_boundary('outer')
        inner = outer.spawn().add_boundary('inner')
        in_io = BufferIO(
            b'inner part\n'
            b'--inner--\n'
            b'inner epilogue\n'
            b'--outer\n'
            b'outer part\n')

        inner.read_chunk(in_io)
        assert inner.eos_type() is EosType.CLOSE

        # the inner epilogue is read with the *outer* context
        epilogue = outer.read_lines(in_io)

        assert epilogue == [b'inner epilogue']
        assert outer.eos_type() is EosType.DELIM
        assert in_io.read() == b'outer part\n'
