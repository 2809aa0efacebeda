# Copyright (c) 2020-2026 NASK. All rights reserved.

import os
from collections.abc import Iterable
from typing import (
    Protocol,
    Union,
)


BytesLike = Union[bytes, bytearray, memoryview]
FilePath = Union[str, bytes, os.PathLike]

# what `MimeParser.parse_data()` accepts
MessageData = Union[bytes, bytearray, str, Iterable[Union[bytes, str]]]

# the command spec of an external filter process (see: `n6mime.body_stores`)
FilterCommand = Union[list[str], tuple[str, ...]]

class SupportsPrint(Protocol):
    def print(self, *data: BytesLike) -> None: ...
