# Copyright (c) 2013-2026 NASK. All rights reserved.

import os
import pathlib
import re
import sys


def ascii_str(obj):

    r"""
    Safely convert the given object to an ASCII-only `str`.

    This function does its best to obtain a string representation
    (possibly `str`-like or `bytes`-like converted to str, though
    `repr()` can also be used as the last-resort fallback) and then
    escapes any non-ASCII characters -- *not raising* any
    encoding/decoding exceptions.

    >>> ascii_str('')
    ''
    >>> ascii_str(b'Ala ma kota\nA kot?\n2=2 ')
    'Ala ma kota\nA kot?\n2=2 '
    >>> ascii_str('Ech, ale błąd!')
    'Ech, ale b\\u0142\\u0105d!'
    >>> ascii_str(b'Ech, ale b\xc5\x82\xc4\x85d!')
    'Ech, ale b\\u0142\\u0105d!'
    >>> ascii_str(b'\xee\xdd \tja\xc5\xba\xc5\x84')
    '\\udcee\\udcdd \tja\\u017a\\u0144'
    >>> ascii_str(bytearray(b'\xee\xdd'))
    '\\udcee\\udcdd'
    >>> ascii_str(ValueError('Ech, ale błąd!'))
    'Ech, ale b\\u0142\\u0105d!'
    >>> ascii_str(42)
    '42'

    >>> class Nasty(object):
    ...     def __str__(self): raise UnicodeError
    ...     def __repr__(self): return 'quite nasŧy'
    ...
    >>> ascii_str(Nasty())
    'quite nas\\u0167y'
    """
    if isinstance(obj, str):
        s = obj
    else:
        if isinstance(obj, memoryview):
            obj = bytes(obj)
        if isinstance(obj, (bytes, bytearray)):
            s = obj.decode('utf-8', 'surrogateescape')
        else:
            try:
                s = str(obj)
            except ValueError:
                s = repr(obj)
    return s.encode('ascii', 'backslashreplace').decode('ascii')


def make_exc_ascii_str(exc=None):
    r"""
    Generate an ASCII-only string representing the (given) exception.

    Args:
        `exc`:
            The given exception instance. If not given or `None`
            it will be retrieved automatically with `sys.exc_info()`.

    Returns:
        A textual representation (coerced to be an ASCII-only `str`)
        of the exception, containing the name of its class and,
        typically, also its normal `str()`-representation.  If `exc`
        was not given (or given as `None`) and auto-retrieval failed
        then the `'Unknown exception (if any)'` string is returned.

    >>> make_exc_ascii_str(RuntimeError('whoops!'))
    'RuntimeError: whoops!'
    >>> make_exc_ascii_str(ValueError('Zaż\xf3łć!'))
    'ValueError: Za\\u017c\\xf3\\u0142\\u0107!'
    >>> make_exc_ascii_str(KeyError())
    'KeyError'

    >>> try:
    ...     raise RuntimeError('whoops!')
    ... except Exception:
    ...     exc_string = make_exc_ascii_str()
    ...
    >>> exc_string
    'RuntimeError: whoops!'

    >>> make_exc_ascii_str()
    'Unknown exception (if any)'
    """
    if exc is None:
        exc = sys.exc_info()[1]
    if exc is None:
        return 'Unknown exception (if any)'
    # Note: to be consistent with standard error displays
    # we use the exc type's `__name__`, not `__qualname__`.
    exc_type_name = ascii_str(type(exc).__name__)
    exc_str = ascii_str(exc)
    return (f'{exc_type_name}: {exc_str}' if exc_str
            else exc_type_name)


# `\n\r` is one line boundary unless it is followed by
# a `\n` which does not start another `\n\r`
_ASCII_LINE_BOUNDARY_PATTERN = r'\r\n|\n\r(?!\n(?!\r))|\r|\n'

ASCII_LINE_BOUNDARY_BIN_REGEX = re.compile(_ASCII_LINE_BOUNDARY_PATTERN.encode('ascii'))
ASCII_LINE_BOUNDARY_TEXT_REGEX = re.compile(_ASCII_LINE_BOUNDARY_PATTERN)

def splitlines_asc(s, keepends=False):
    r"""
    Like the built-in `{str/bytes/bytearray}.splitlines()` method, but
    split only at ASCII line boundaries (`\n`, `\r\n`, `\r`, and also
    `\n\r`), even if the argument is a `str`.

    >>> splitlines_asc(b'abc\ndef\rghi\x0bjkl\r\npqr\n')
    [b'abc', b'def', b'ghi\x0bjkl', b'pqr']
    >>> splitlines_asc(b'abc\ndef\rghi\x0bjkl\r\npqr\n', True)
    [b'abc\n', b'def\r', b'ghi\x0bjkl\r\n', b'pqr\n']
    >>> splitlines_asc(b'abc\n\rdef\n\r\n\rghi\n\r', True)
    [b'abc\n\r', b'def\n\r', b'\n\r', b'ghi\n\r']
    >>> splitlines_asc(b'abc\n\r\ndef', True)
    [b'abc\n', b'\r\n', b'def']
    >>> splitlines_asc('abc def\nxyz', True)
    ['abc def\n', 'xyz']
    >>> splitlines_asc(b'')
    []
    """
    regex = (ASCII_LINE_BOUNDARY_TEXT_REGEX if isinstance(s, str)
             else ASCII_LINE_BOUNDARY_BIN_REGEX)
    result = []
    pos = 0
    for match in regex.finditer(s):
        end = match.end() if keepends else match.start()
        result.append(s[pos:end])
        pos = match.end()
    if pos < len(s):
        result.append(s[pos:])
    return result


def as_bytes(obj, encode_error_handling='surrogateescape'):
    r"""
    Convert the given object to `bytes`.

    If the given object is a `str` -- encode it using `utf-8` with the
    error handler specified as the second argument (whose default
    value is `'surrogateescape'`, so that any data decoded with
    `ascii_str()`'s counterpart can be restored exactly).

    If the given object is a `bytes`, `bytearray` or `memoryview` --
    coerce it with the `bytes()` constructor.

    In any other case -- raise `TypeError`.

    >>> as_bytes('zaż\xf3łć')
    b'za\xc5\xbc\xc3\xb3\xc5\x82\xc4\x87'
    >>> as_bytes(bytearray(b'abc'))
    b'abc'
    >>> as_bytes(42)                                      # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
      ...
    TypeError: cannot convert 42 to bytes
    """
    if isinstance(obj, str):
        return obj.encode('utf-8', encode_error_handling)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return bytes(obj)
    raise TypeError(f'cannot convert {obj!a} to bytes')


def as_path(file_path):
    """
    Coerce the given file path to a `pathlib.Path`.

    >>> as_path('/etc/n6mime') == pathlib.Path('/etc/n6mime')
    True
    >>> as_path(b'/etc/n6mime') == pathlib.Path('/etc/n6mime')
    True
    """
    if isinstance(file_path, bytes):
        file_path = os.fsdecode(file_path)
    return pathlib.Path(file_path)


def open_file(file, mode='r', **open_kwargs):
    """
    Open `file` and return a corresponding file object. Similar to
    the built-in function `open()` but if `mode` does *not* contain
    the `'b'` marker (i.e., if the file is being opened in a text mode)
    *and* keyword arguments do *not* include `encoding` then the
    `encoding` argument is automatically set to `'utf-8'`.
    """
    if 'b' not in mode:
        open_kwargs.setdefault('encoding', 'utf-8')
    return open(file, mode, **open_kwargs)
