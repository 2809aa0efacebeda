# Copyright (c) 2013-2026 NASK. All rights reserved.

import base64


def _to_crlf(data):
    return data.replace(b'\n', b'\r\n')


def _make_fake_gif(size, seed):
    # (only the signature is real; the rest is a deterministic filler)
    signature = b'GIF89a'
    return signature + bytes((seed * 31 + i * 7) % 256 for i in range(size - len(signature)))


GIF_419 = _make_fake_gif(419, seed=1)
GIF_357 = _make_fake_gif(357, seed=2)


SINGLE_PART_MESSAGE = _to_crlf(
    b'From: Alice <alice@example.com>\n'
    b'To: Bob <bob@example.com>\n'
    b'Subject: Just a text\n'
    b'Content-Type: text/plain; charset=us-ascii\n'
    b'\n'
    b'First line.\n'
    b'Second line.\n')

SINGLE_PART_MESSAGE_DECODED_BODY = b'First line.\nSecond line.\n'


MULTIPART_WITH_IMAGES_MESSAGE = _to_crlf(
    b'MIME-Version: 1.0\n'
    b'From: Alice <alice@example.com>\n'
    b'Subject: Two images\n'
    b'Content-Type: multipart/mixed;\n'
    b'\tboundary="----=_Part_0_1234.5678"\n'
    b'\n'
    b'This is a multi-part message in MIME format.\n'
    b'\n'
    b'------=_Part_0_1234.5678\n'
    b'Content-Type: text/plain\n'
    b'\n'
    b'Two images are attached.\n'
    b'\n'
    b'------=_Part_0_1234.5678\n'
    b'Content-Type: image/gif; name="first.gif"\n'
    b'Content-Transfer-Encoding: base64\n'
    b'Content-Disposition: attachment; filename="first.gif"\n'
    b'Content-Length: 419\n'
    b'\n'
    + base64.encodebytes(GIF_419) +
    b'------=_Part_0_1234.5678\n'
    b'Content-Type: image/gif; name="second.gif"\n'
    b'Content-Transfer-Encoding: base64\n'
    b'Content-Disposition: attachment; filename="second.gif"\n'
    b'Content-Length: 357\n'
    b'\n'
    + base64.encodebytes(GIF_357) +
    b'------=_Part_0_1234.5678--\n')


FORWARDED_MESSAGE = (
    b'From: Carol <carol@example.com>\n'
    b'Subject: The forwarded one\n'
    b'Content-Type: multipart/alternative; boundary="inner-boundary"\n'
    b'\n'
    b'--inner-boundary\n'
    b'Content-Type: text/plain\n'
    b'\n'
    b'Plain version.\n'
    b'--inner-boundary\n'
    b'Content-Type: text/html\n'
    b'\n'
    b'<p>HTML version.</p>\n'
    b'--inner-boundary--\n')

MESSAGE_WITH_NESTED_MESSAGE = _to_crlf(
    b'MIME-Version: 1.0\n'
    b'Subject: Fwd: The forwarded one\n'
    b'Content-Type: multipart/mixed; boundary="outer-boundary"\n'
    b'\n'
    b'--outer-boundary\n'
    b'Content-Type: text/plain\n'
    b'\n'
    b'See the forwarded message.\n'
    b'--outer-boundary\n'
    b'Content-Type: message/rfc822\n'
    b'Content-Disposition: inline\n'
    b'\n'
    + FORWARDED_MESSAGE +
    b'--outer-boundary--\n')

MESSAGE_WITH_BASE64_NESTED_MESSAGE = _to_crlf(
    b'Subject: Fwd: encoded\n'
    b'Content-Type: multipart/mixed; boundary="outer-boundary"\n'
    b'\n'
    b'--outer-boundary\n'
    b'Content-Type: text/plain\n'
    b'\n'
    b'See the forwarded message.\n'
    b'--outer-boundary\n'
    b'Content-Type: message/rfc822\n'
    b'Content-Transfer-Encoding: base64\n'
    b'\n'
    + base64.encodebytes(FORWARDED_MESSAGE) +
    b'--outer-boundary--\n')


# (to be converted to the CRLF, LF and CR line terminator conventions)
LF_MESSAGE_WITH_VARIOUS_ENCODINGS = (
    b'MIME-Version: 1.0\n'
    b'Subject: A folded\n'
    b'  subject\n'
    b'Content-Type: multipart/mixed;\n'
    b'  boundary="==b=="\n'
    b'\n'
    b'Preamble.\n'
    b'--==b==\n'
    b'Content-Type: text/plain\n'
    b'\n'
    b'Plain 7-bit text,\n'
    b'\n'
    b'with an empty line.\n'
    b'\n'
    b'--==b==\n'
    b'Content-Type: text/plain; charset=iso-8859-1\n'
    b'Content-Transfer-Encoding: quoted-printable\n'
    b'\n'
    b'Caf=E9 au lait, a very long line with a soft line =\n'
    b'break, and trailing spaces   \n'
    b'--==b==\n'
    b'Content-Type: application/octet-stream\n'
    b'Content-Transfer-Encoding: base64\n'
    b'\n'
    b'AAEC/f7/\n'
    b'SGVsbG8=\n'
    b'--==b==--\n'
    b'Epilogue.\n')

VARIOUS_ENCODINGS_DECODED_BODIES = [
    b'Plain 7-bit text,\n\nwith an empty line.\n',
    b'Caf\xe9 au lait, a very long line with a soft line break, and trailing spaces',
    b'\x00\x01\x02\xfd\xfe\xffHello',
]


DIGEST_MESSAGE = _to_crlf(
    b'Subject: Digest\n'
    b'Content-Type: multipart/digest; boundary="digest"\n'
    b'\n'
    b'--digest\n'
    b'\n'
    b'From: dave@example.com\n'
    b'Subject: First\n'
    b'\n'
    b'First body.\n'
    b'--digest\n'
    b'Content-Type: text/plain\n'
    b'\n'
    b'Not a message.\n'
    b'--digest--\n')


NESTED_MULTIPART_MESSAGE = _to_crlf(
    b'Content-Type: multipart/mixed; boundary="outer"\n'
    b'\n'
    b'Outer preamble.\n'
    b'--outer\n'
    b'Content-Type: multipart/alternative; boundary="inner"\n'
    b'\n'
    b'Inner preamble.\n'
    b'--inner\n'
    b'\n'
    b'Inner 1.\n'
    b'--inner\n'
    b'\n'
    b'Inner 2.\n'
    b'--inner--\n'
    b'Inner epilogue.\n'
    b'--outer\n'
    b'\n'
    b'Outer 2.\n'
    b'--outer--\n'
    b'Outer epilogue.\n')


# (the inner multipart is not closed)
NESTED_MULTIPART_WITHOUT_INNER_CLOSE_MESSAGE = _to_crlf(
    b'Content-Type: multipart/mixed; boundary="outer"\n'
    b'\n'
    b'--outer\n'
    b'Content-Type: multipart/alternative; boundary="inner"\n'
    b'\n'
    b'--inner\n'
    b'\n'
    b'Inner 1.\n'
    b'--inner\n'
    b'\n'
    b'Inner 2.\n'
    b'--outer\n'
    b'\n'
    b'Outer 2.\n'
    b'--outer--\n')
