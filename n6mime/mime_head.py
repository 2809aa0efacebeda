# Copyright (c) 2013-2026 NASK. All rights reserved.

"""
The header of a MIME entity (see: `MimeHead`).
"""

import email.errors
import email.header
import email.message
import email.parser
import email.policy
import email.utils
import logging
import re
from collections.abc import (
    Iterable,
    Iterator,
)
from typing import Optional

from n6mime.common_helpers import (
    ascii_str,
    splitlines_asc,
)
from n6mime.const import (
    CANONICAL_EOL,
    DEFAULT_CONTENT_TYPE,
    DEFAULT_TRANSFER_ENCODING,
)
from n6mime.log_helpers import get_logger


LOGGER = get_logger(__name__)


class MimeHeadPolicy(email.policy.Compat32):

    """
    The `email` policy used to parse headers: `compat32`-like (so that
    field values are kept raw), but with header defects being logged.
    """

    # This-class-specific customizable attribute:
    defect_log_level: Optional[int] = logging.WARNING

    def register_defect(self, obj, defect):
        super().register_defect(obj, defect)
        if self.defect_log_level is not None:
            defect_class_name = defect.__class__.__name__
            defect_msg = str(defect)
            LOGGER.log(
                self.defect_log_level,
                'A MIME header defect has been found (%s).',
                ascii_str(f'{defect_class_name}: {defect_msg}' if defect_msg
                          else defect_class_name))

mime_head_policy = MimeHeadPolicy()


_FOLDING_EOL_REGEX = re.compile(r'(?:\r\n|\n\r|\r|\n)(?=[ \t])')
_TRAILING_EOL_REGEX = re.compile(r'[\r\n]+\Z')
_RFC2047_ENCODED_WORD_REGEX = re.compile(r'=\?[^?\s]+\?[bBqQ]\?[^?\s]*\?=')


def unfold_value(value: str) -> str:
    r"""
    Remove the line breaks that fold the given header field value.

    >>> unfold_value('multipart/mixed;\r\n\tboundary="abc"\r\n')
    'multipart/mixed;\tboundary="abc"'
    """
    return _TRAILING_EOL_REGEX.sub('', _FOLDING_EOL_REGEX.sub('', value))


def decode_rfc2047(value: str) -> str:
    """
    Decode any RFC 2047 *encoded words* in the given header value.

    If decoding fails, a warning is logged and the value is returned
    as is.

    >>> decode_rfc2047('=?utf-8?q?Za=C5=BC=C3=B3=C5=82=C4=87?= =?iso-8859-2?b?Z+pzbA==?=')
    'Zażółćgęsl'
    >>> decode_rfc2047('Plain text')
    'Plain text'
    """
    if not _RFC2047_ENCODED_WORD_REGEX.search(value):
        return value
    try:
        return str(email.header.make_header(email.header.decode_header(value)))
    except (email.errors.HeaderParseError, LookupError, UnicodeError) as exc:
        LOGGER.warning('Could not decode the RFC 2047 encoded words in %a (%s)',
                       value, ascii_str(exc))
        return value


class MimeHead:

    r"""
    An ordered collection of header fields -- (name, value) pairs --
    plus access to the MIME attributes derived from them.

    Field names are case-insensitive when looked up; field values are
    `str` objects, kept *raw* (possibly folded; non-ASCII octets of
    parsed headers are represented as surrogate escapes, see the
    `surrogateescape` error handler).

    >>> head = MimeHead.from_bytes(
    ...     b'Subject: Hello\r\n'
    ...     b'Content-Type: multipart/mixed;\r\n'
    ...     b'  boundary="----=_xyz"\r\n'
    ...     b'Received: from a\r\n'
    ...     b'Received: from b\r\n')
    >>> head.mime_type, head.mime_encoding, head.multipart_boundary
    ('multipart/mixed', '7bit', '----=_xyz')
    >>> head.get('received', 1), head.count('Received'), head.get('X-Foo') is None
    ('from b', 2, True)
    >>> head.get('Content-Type')
    'multipart/mixed;\n  boundary="----=_xyz"'
    >>> head.replace('Subject', 'Bye')
    >>> head.delete('Received')
    2
    >>> print(head.as_bytes().decode())
    Subject: Bye
    Content-Type: multipart/mixed;
      boundary="----=_xyz"
    <BLANKLINE>
    """

    def __init__(self,
                 fields: Iterable[tuple[str, str]] = (),
                 *,
                 default_type: str = DEFAULT_CONTENT_TYPE):
        self._fields: list[tuple[str, str]] = [
            (str(name), str(value))
            for name, value in fields]
        self._default_type = default_type

    @classmethod
    def from_bytes(cls, data: bytes, **kwargs) -> 'MimeHead':
        """
        Parse the given header text (without the blank line that
        separates the header from the body).

        Any of the LF, CR+LF, LF+CR and lone CR line terminators is accepted
        (also mixed); in the stored values, folded lines are separated
        with LF.
        """
        normalized = b''.join(
            line + CANONICAL_EOL
            for line in splitlines_asc(bytes(data)))
        parser = email.parser.BytesHeaderParser(policy=mime_head_policy)
        msg = parser.parsebytes(normalized)
        fields = list(msg.raw_items())
        unparsed = msg.get_payload()
        if isinstance(unparsed, str) and unparsed.strip():
            LOGGER.warning('Some header lines could not be parsed as fields '
                           '(ignoring %a)', unparsed)
        return cls(fields, **kwargs)

    def __repr__(self):
        return f'<{type(self).__qualname__} fields={self._fields!r}>'

    def __eq__(self, other):
        if isinstance(other, MimeHead):
            return self._fields == other._fields
        return NotImplemented

    __hash__ = None

    def __len__(self):
        return len(self._fields)

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._fields)

    def __contains__(self, name):
        return self.count(name) > 0

    def copy(self) -> 'MimeHead':
        return type(self)(self._fields, default_type=self._default_type)

    #
    # Access to fields

    def items(self) -> list[tuple[str, str]]:
        return list(self._fields)

    def get(self, name: str, index: int = 0) -> Optional[str]:
        """
        Get the value of the `index`-th field with the given name (the
        first one by default), or `None` if there is no such field.
        """
        values = self.get_all(name)
        try:
            return values[index]
        except IndexError:
            return None

    def get_all(self, name: str) -> list[str]:
        name = name.lower()
        return [v for n, v in self._fields if n.lower() == name]

    def count(self, name: str) -> int:
        return len(self.get_all(name))

    def add(self, name: str, value: str, index: Optional[int] = None) -> None:
        """
        Add a new field: at the end (by default) or at the given
        position.
        """
        if not name or ':' in name or any(c.isspace() for c in name):
            raise ValueError(f'illegal header field name: {name!a}')
        if index is None:
            self._fields.append((name, value))
        else:
            self._fields.insert(index, (name, value))

    def replace(self, name: str, value: str) -> None:
        """
        Set the value of the first field with the given name (removing
        any further ones); if there is no such field, add it.
        """
        lowercase_name = name.lower()
        new_fields = []
        replaced = False
        for n, v in self._fields:
            if n.lower() == lowercase_name:
                if replaced:
                    continue
                v = value
                replaced = True
            new_fields.append((n, v))
        self._fields = new_fields
        if not replaced:
            self.add(name, value)

    def delete(self, name: str) -> int:
        """
        Remove all fields with the given name.  Return their number.
        """
        lowercase_name = name.lower()
        old_len = len(self._fields)
        self._fields = [(n, v) for n, v in self._fields if n.lower() != lowercase_name]
        return old_len - len(self._fields)

    def unfold(self) -> 'MimeHead':
        """Unfold all field values (in place).  Return `self`."""
        self._fields = [(n, unfold_value(v)) for n, v in self._fields]
        return self

    def decode(self) -> 'MimeHead':
        """
        Decode any RFC 2047 encoded words in all field values (in
        place; the values are also unfolded).  Return `self`.
        """
        self._fields = [(n, decode_rfc2047(unfold_value(v))) for n, v in self._fields]
        return self

    def as_bytes(self) -> bytes:
        """
        Get the header formatted as text (each field terminated with LF;
        the blank line separating the header from the body not included).
        """
        return b''.join(
            f'{name}: {value}\n'.encode('utf-8', 'surrogateescape')
            for name, value in self._fields)

    #
    # MIME attributes

    @property
    def default_type(self) -> str:
        return self._default_type

    def set_default_type(self, mime_type: str) -> None:
        """
        Set the MIME type the entity is assumed to be of if it has no
        (valid) `Content-Type`.
        """
        self._default_type = mime_type

    @property
    def mime_type(self) -> str:
        """
        The effective MIME type (lowercase), e.g.: `'text/plain'`.

        >>> MimeHead([('Content-Type', 'Text/HTML; charset=utf-8')]).mime_type
        'text/html'
        >>> MimeHead([('Content-Type', 'garbage')]).mime_type
        'text/plain'
        >>> MimeHead([], default_type='message/rfc822').mime_type
        'message/rfc822'
        """
        return self._get_aux_message().get_content_type()

    @property
    def mime_encoding(self) -> str:
        """
        The transfer encoding name (lowercase); if the header has no
        (or an empty) `Content-Transfer-Encoding`, `'7bit'`.

        >>> MimeHead([('Content-Transfer-Encoding', ' Base64 (ok)')]).mime_encoding
        'base64'
        >>> MimeHead().mime_encoding
        '7bit'
        """
        value = self.get('Content-Transfer-Encoding')
        if value is not None:
            tokens = unfold_value(value).split()
            if tokens:
                return tokens[0].lower()
        return DEFAULT_TRANSFER_ENCODING

    @property
    def multipart_boundary(self) -> Optional[str]:
        """
        The `boundary` parameter of `Content-Type` (or `None`).
        """
        return self._get_aux_message().get_boundary()

    @property
    def recommended_filename(self) -> Optional[str]:
        """
        The file name suggested by the header (the `filename` parameter
        of `Content-Disposition` or, if absent, the `name` parameter of
        `Content-Type`), with RFC 2047 encoded words decoded; `None` if
        there is no (non-blank) suggestion.

        >>> MimeHead([
        ...     ('Content-Type', 'image/gif; name="x.gif"'),
        ...     ('Content-Disposition', 'attachment; filename="=?utf-8?q?=C5=BC.gif?="'),
        ... ]).recommended_filename
        'ż.gif'
        >>> MimeHead([('Content-Type', "image/gif; name*=utf-8''%C5%BC.gif")]).recommended_filename
        'ż.gif'
        """
        filename = self._get_aux_message().get_filename()
        if filename is None:
            return None
        filename = decode_rfc2047(filename).strip()
        return filename or None

    @property
    def content_length(self) -> Optional[int]:
        """
        The declared body length (`Content-Length`, if valid; otherwise
        `None`).
        """
        value = self.get('Content-Length')
        if value is not None:
            value = unfold_value(value).strip()
            if value.isascii() and value.isdigit():
                return int(value)
        return None

    def get_param(self, param: str, field_name: str = 'Content-Type') -> Optional[str]:
        """
        Get the value of the given parameter of the given field (by
        default: of `Content-Type`), or `None`.

        >>> MimeHead([('Content-Type', 'text/plain; charset="ISO-8859-2"')]).get_param('charset')
        'ISO-8859-2'
        """
        value = self._get_aux_message().get_param(param, header=field_name)
        if value is None:
            return None
        return email.utils.collapse_rfc2231_value(value)

    def _get_aux_message(self):
        msg = email.message.Message(policy=mime_head_policy)
        msg.set_default_type(self._default_type)
        for name in ('Content-Type', 'Content-Disposition'):
            value = self.get(name)
            if value is not None:
                msg[name] = unfold_value(value)
        return msg
