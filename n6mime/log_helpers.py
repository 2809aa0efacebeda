# Copyright (c) 2013-2026 NASK. All rights reserved.

import collections
import contextlib
import functools
import logging
import logging.config
import os.path
import sys

from n6mime.common_helpers import (
    ascii_str,
    make_exc_ascii_str,
)
from n6mime.const import (
    ETC_DIR,
    USER_DIR,
    TOPLEVEL_N6MIME_PACKAGES,
)


#
# Logging preparation'n'configuration

def early_Formatter_class_monkeypatching():  # called in n6mime/__init__.py
    """
    Do logging.Formatter monkey-patching to use *always* UTC time.
    """
    from time import gmtime, strftime

    @functools.wraps(logging.Formatter.formatTime)
    def formatTime(self, record, datefmt=None):
        converter = self.converter
        ct = converter(record.created)
        if datefmt:
            s = strftime(datefmt, ct)
        else:
            t = strftime("%Y-%m-%d %H:%M:%S", ct)
            s = "%s,%03d" % (t, record.msecs)
        if converter is gmtime:
            # the ' UTC' suffix is added *only* if it
            # is certain that we have a UTC time
            s += ' UTC'
        else:
            s += ' <UNCERTAIN TIMEZONE>'
        return s

    logging.Formatter.converter = gmtime
    logging.Formatter.formatTime = formatTime


def get_logger(name=None):
    """
    Like logging.getLogger(...) but replacing '__main__' with a sensible name.

    For example, if the script path is '/whatever/n6mime/tools/foo.py'
    get_logger('__main__') is equivalent to logging.getLogger('n6mime.tools.foo').
    """
    if name == '__main__':
        # try to get the script path from __main__.__file__
        script_path = getattr(sys.modules['__main__'], '__file__', None)
        if not script_path:
            # or, if __main__ does not have a non-blank __file__ attribute,
            # extract the script path from sys.argv...
            script_path = sys.argv[0]
        # strip off the filename extension...
        remaining = os.path.splitext(script_path)[0]
        # ..and pop path name segments up to
        # (and including) the toplevel package name
        aggregated_segments = collections.deque()
        while True:
            remaining, segment = os.path.split(remaining)
            segment = segment.replace('.', 'D')  # just in case of '.' or '..'
            aggregated_segments.appendleft(segment)
            if segment in TOPLEVEL_N6MIME_PACKAGES or remaining in ('', '/'):
                break
        name = '.'.join(aggregated_segments)
    return logging.getLogger(name)


_LOGGER = get_logger(__name__)

_loaded_configuration_paths = set()

def configure_logging(suffix=None):
    """
    Load the logging configuration from `logging.conf` (or, if `suffix`
    is given, from `logging-<suffix>.conf`) files placed in the system
    and/or user config directory (`/etc/n6mime`, `~/.n6mime`).

    Each file is loaded at most once per process.  `RuntimeError` is
    raised if a configuration file is malformed or if no file could
    be loaded at all.

    This function is to be called by an application which uses
    `n6mime` (at its startup); nothing in `n6mime` calls it, as the
    library itself never configures logging.
    """
    file_name = ('logging.conf' if suffix is None
                 else 'logging-{0}.conf'.format(suffix))
    file_paths = [os.path.join(config_dir, file_name)
                  for config_dir in (ETC_DIR, USER_DIR)]
    for path in file_paths:
        if path in _loaded_configuration_paths:
            _LOGGER.warning('ignored attempt to load logging configuration '
                            'file %a that has already been used', path)
            continue
        try:
            _try_reading(path)
        except OSError:
            pass
        else:
            try:
                logging.config.fileConfig(path, disable_existing_loggers=False)
            except Exception as exc:
                raise RuntimeError('error while configuring logging, '
                                   'using settings from configuration file {0!a}: {1}'
                                   .format(path, make_exc_ascii_str(exc))) from exc
            else:
                _LOGGER.info('logging configuration loaded from %a', path)
                _loaded_configuration_paths.add(path)
    if not _loaded_configuration_paths:
        raise RuntimeError('logging configuration not loaded: '
                           'could not open any of the files: {0}'
                           .format(', '.join(map(ascii, file_paths))))


def _try_reading(path):
    open(path).close()


#
# Custom log handlers

class RecordCollectingHandler(logging.Handler):

    """
    A log handler that passes each handled record's level name (in
    lower case) and ASCII-safe message to the given callback.

    >>> collected = []
    >>> logger = logging.getLogger('n6mime.some_doctest_logger')
    >>> logger.propagate = False
    >>> handler = RecordCollectingHandler(lambda *args: collected.append(args))
    >>> with handler.attached_to(logger):
    ...     logger.warning('Something %s happened', 'strange')
    ...
    >>> logger.warning('Not collected')
    >>> collected
    [('warning', 'Something strange happened')]
    """

    def __init__(self, callback, level=logging.WARNING):
        super().__init__(level)
        self._callback = callback

    def emit(self, record):
        try:
            msg = ascii_str(record.getMessage())
            self._callback(record.levelname.lower(), msg)
        except Exception:
            self.handleError(record)

    @contextlib.contextmanager
    def attached_to(self, logger):
        logger.addHandler(self)
        try:
            yield self
        finally:
            logger.removeHandler(self)
