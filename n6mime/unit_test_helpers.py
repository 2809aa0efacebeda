# Copyright (c) 2013-2026 NASK. All rights reserved.

import contextlib
import logging
import re
import unittest
from collections.abc import (
    Iterable,
    Sequence,
)
from typing import (
    Optional,
    Union,
)


class TestCaseMixin:

    def assertLogWarningRegexes(self,                                   # noqa
                                logger_name_or_obj: str, /,
                                expected_log_regexes: Union[
                                    str,
                                    re.Pattern[str],
                                    Iterable[Union[str, re.Pattern[str]]],
                                    None,
                                ]):
        return self.assertLogRegexes(
            logger_name_or_obj,
            expected_log_regexes,
            min_level=logging.WARNING,
            max_level=logging.WARNING)


    def assertNoLogWarnings(self, logger_name_or_obj: str, /):          # noqa
        return self.assertLogWarningRegexes(
            logger_name_or_obj,
            expected_log_regexes=None)


    @contextlib.contextmanager
    def assertLogRegexes(self,                                          # noqa
                         logger_name_or_obj: str, /,
                         expected_log_regexes: Union[
                             str,
                             re.Pattern[str],
                             Iterable[Union[str, re.Pattern[str]]],
                             None,
                         ],
                         *,
                         min_level: Optional[int] = logging.INFO,
                         max_level: Optional[int] = None):

        assert isinstance(self, unittest.TestCase), f'test helper expectation failed by {self=!a}'

        if expected_log_regexes is None:
            expected_log_regexes = ()
        expected_log_regexes: Sequence[Union[str, re.Pattern[str]]] = (
            [expected_log_regexes] if isinstance(expected_log_regexes, (str, re.Pattern))
            else list(expected_log_regexes))

        if min_level is None:
            min_level = 0

        cm = self.assertLogs(logger_name_or_obj, level=min_level)       # noqa
        cm_enter = type(cm).__enter__
        cm_exit = type(cm).__exit__

        cm_target = cm_enter(cm)
        try:
            yield cm_target
        except BaseException as exc:
            exc_info = type(exc), exc, exc.__traceback__
            raise
        else:
            exc_info = None, None, None
        finally:
            try:
                with contextlib.suppress(AssertionError):
                    cm_exit(cm, *exc_info)                              # noqa
            finally:
                # Break the traceback-related reference cycle (if any):
                exc_info = None                                         # noqa

        actual_logs: list[str] = (
            cm_target.output if max_level is None
            else [log for log, log_rec in zip(cm_target.output, cm_target.records)
                  if log_rec.levelno <= max_level])

        for i, regex in enumerate(expected_log_regexes):
            if i >= len(actual_logs):
                remaining_regexes_repr = ', '.join(map(ascii, expected_log_regexes[i:]))
                self.fail(
                    f'no logs to match these regexes against: '
                    f'{remaining_regexes_repr}\n(full info:\n'
                    f'{expected_log_regexes=!a},\n{actual_logs=!a})')
            log = actual_logs[i]
            if not self.regex_search(regex, log):
                self.fail(
                    f'regex {regex!a} does not match log string {log!a}\n'
                    f'(full info:\n{expected_log_regexes=!a},\n{actual_logs=!a})')

        if len(expected_log_regexes) < len(actual_logs):
            remaining_logs_repr = ', '.join(map(ascii, actual_logs[len(expected_log_regexes):]))
            self.fail(
                f'extra (unexpected) logs found: {remaining_logs_repr}\n'
                f'(full info:\n{expected_log_regexes=!a},\n{actual_logs=!a})')


    #
    # Other helper methods

    @staticmethod
    def regex_search(regex, text):
        if isinstance(regex, (str, bytes)):
            regex = re.compile(regex)
        return regex.search(text)
