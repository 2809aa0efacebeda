# Copyright (c) 2013-2026 NASK. All rights reserved.

import os.path as osp
import re


TOPLEVEL_N6MIME_PACKAGES = 'n6mime',


ETC_DIR = '/etc/n6mime'
USER_DIR = osp.expanduser('~/.n6mime')


# the line terminator variants recognized when matching
# boundary/terminator lines (the longest ones must go first)
EOL_VARIANTS = (b'\r\n', b'\n\r', b'\r', b'\n')

# the only line terminator emitted by the decoders and encoders
CANONICAL_EOL = b'\n'

# the characters allowed in multipart boundary tokens (alphanumerics
# plus `()+_,-./:=?` and space)
BOUNDARY_REGEX = re.compile(r'\A[0-9A-Za-z()+_,\-./:=? ]+\Z')

# transfer-encoding-related limits
BASE64_ENCODED_CHUNK_SIZE = 45
BINARY_COPY_BLOCK_SIZE = 4096
QP_MAX_LINE_LENGTH = 73
XBIT_MAX_LINE_LENGTH = 990

# the Content-Transfer-Encoding assumed when the header field is absent
DEFAULT_TRANSFER_ENCODING = '7bit'

# transfer encodings that leave the body octets as they are
IDENTITY_TRANSFER_ENCODINGS = frozenset({'7bit', '8bit', 'binary', 'none'})

DEFAULT_CONTENT_TYPE = 'text/plain'
DIGEST_PART_DEFAULT_CONTENT_TYPE = 'message/rfc822'
NESTED_MESSAGE_CONTENT_TYPES = frozenset({'message/rfc822', 'message/news'})
