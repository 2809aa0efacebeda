# Copyright (c) 2013-2026 NASK. All rights reserved.

import configparser
import json
import os
import os.path as osp
import pathlib
import re
from collections.abc import (
    Callable,
    Mapping,
)
from typing import (
    Any,
    ClassVar,
    Final,
    Optional,
)

from n6mime.class_helpers import (
    attr_repr,
    get_class_name,
)
from n6mime.common_helpers import ascii_str
from n6mime.const import (
    ETC_DIR,
    USER_DIR,
)
from n6mime.log_helpers import get_logger


LOGGER = get_logger(__name__)


OptConverter = Callable[[str], Any]


class ConfigError(Exception):

    """
    A generic, `Config`-related, exception class.

    >>> print(ConfigError('Some Message'))
    [configuration-related error] Some Message
    """

    def __str__(self):
        # (`Exception.__str__()` is used explicitly, as for the `KeyError`
        # subclasses defined below we do not want `KeyError.__str__()`)
        return '[configuration-related error] ' + Exception.__str__(self)


class NoConfigSectionError(ConfigError, KeyError):

    """
    Raised by `Config.__getitem__()` when the specified section is missing.

    >>> exc = NoConfigSectionError('some_sect')
    >>> isinstance(exc, ConfigError) and isinstance(exc, KeyError)
    True
    >>> print(exc)
    [configuration-related error] no config section `some_sect`
    >>> exc.sect_name
    'some_sect'
    """

    def __init__(self, sect_name=None):
        sect_ref = f'`{sect_name}`' if sect_name is not None else '<unspecified>'
        super().__init__(f'no config section {sect_ref}')
        self.sect_name = sect_name


class NoConfigOptionError(ConfigError, KeyError):

    """
    Raised by `ConfigSection.__getitem__()` when the specified option is missing.

    >>> exc = NoConfigOptionError('mysect', 'myopt')
    >>> isinstance(exc, ConfigError) and isinstance(exc, KeyError)
    True
    >>> print(exc)
    [configuration-related error] no config option `myopt` in section `mysect`
    """

    def __init__(self, sect_name=None, opt_name=None):
        sect_ref = f'`{sect_name}`' if sect_name is not None else '<unspecified>'
        opt_ref = f'`{opt_name}`' if opt_name is not None else '<unspecified>'
        super().__init__(f'no config option {opt_ref} in section {sect_ref}')
        self.sect_name = sect_name
        self.opt_name = opt_name


#
# Config spec parsing
#

class _OptSpec:

    __repr__ = attr_repr('name', 'default', 'converter_spec')

    def __init__(self, name, default, converter_spec):
        self.name = name
        self.default = default                  # (`None` means: the option is required)
        self.converter_spec = converter_spec


class _SectSpec:

    __repr__ = attr_repr('name', 'opt_specs', 'free_opts_allowed')

    def __init__(self, name):
        self.name = name
        self.opt_specs = []
        self.free_opts_allowed = False
        self.free_opts_converter_spec = Config.DEFAULT_CONVERTER_SPEC

    @property
    def required(self):
        return any(opt_spec.default is None for opt_spec in self.opt_specs)


_SECT_HEADER_REGEX = re.compile(r'\A\[\s*(?P<sect_name>[^\[\]\s]+)\s*\]\Z')
_OPT_NAME_REGEX = re.compile(r'\A[^\s=:;#\[\]]+\Z')

def parse_config_spec(config_spec):
    r"""
    Parse the given *config spec* (a `str`), returning a list of
    section specifications.

    The format of a *config spec* is similar to the format of the
    configuration files, except that:

    * option values are *default values* (an option without any value
      specified -- i.e., without the `=` sign -- is a *required* one);

    * each option may specify (after the `::` marker) the name of its
      *converter* (by default it is `str`);

    * the `...` pseudo-option (possibly with a `:: <converter>` part)
      means that *free options* (not declared explicitly) are allowed
      in the section.

    A section that contains at least one required option is a required
    section.

    >>> sects = parse_config_spec('''
    ...     [some_sect]
    ...     some_opt = 42 :: int
    ...     required_opt :: float
    ...     ; a comment
    ...     yet_another = foo ::bar:: str
    ...
    ...     [other]
    ...     ... :: json
    ... ''')
    >>> [(s.name, s.required, s.free_opts_allowed) for s in sects]
    [('some_sect', True, False), ('other', False, True)]
    >>> [(o.name, o.default, o.converter_spec) for o in sects[0].opt_specs]
    [('some_opt', '42', 'int'), ('required_opt', None, 'float'), ('yet_another', 'foo ::bar', 'str')]
    >>> sects[1].free_opts_converter_spec
    'json'
    """
    sect_specs = []
    current = None
    for line_no, raw_line in enumerate(config_spec.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith((';', '#')):
            continue
        match = _SECT_HEADER_REGEX.search(line)
        if match:
            current = _SectSpec(match.group('sect_name'))
            if any(s.name == current.name for s in sect_specs):
                raise ConfigError(f'duplicate section {current.name!a} in config spec')
            sect_specs.append(current)
            continue
        if current is None:
            raise ConfigError(f'config spec line #{line_no} ({line!a}) '
                              f'is not preceded by any section header')
        opt_part, sep, converter_spec = line.rpartition('::')
        if sep:
            converter_spec = converter_spec.strip()
        else:
            opt_part = line
            converter_spec = Config.DEFAULT_CONVERTER_SPEC
        name, eq, default = opt_part.partition('=')
        name = name.strip()
        default = default.strip() if eq else None
        if name == '...':
            current.free_opts_allowed = True
            current.free_opts_converter_spec = converter_spec
            continue
        if not _OPT_NAME_REGEX.search(name):
            raise ConfigError(f'illegal option name {name!a} in config spec')
        current.opt_specs.append(_OptSpec(name, default, converter_spec))
    return sect_specs


#
# Converters
#

def str_to_bool(s):
    """
    >>> str_to_bool('yes'), str_to_bool('Off'), str_to_bool(' TRUE ')
    (True, False, True)
    >>> str_to_bool('maybe')                              # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
      ...
    ValueError: ...
    """
    norm = s.strip().lower()
    if norm in ('1', 'y', 'yes', 't', 'true', 'on'):
        return True
    if norm in ('0', 'n', 'no', 'f', 'false', 'off'):
        return False
    raise ValueError(f'{s!a} cannot be converted to a bool')


def _path_with_expanded_user_converter(s):
    if not s.strip():
        raise ValueError('path is not allowed to be empty or whitespace-only')
    return pathlib.Path(s.strip()).expanduser()


def _make_list_converter(item_converter, name, delimiter=','):

    def converter(s):
        s = s.strip()
        if s.endswith(delimiter):
            # remove trailing delimiter
            s = s[:-len(delimiter)].rstrip()
        if s:
            return [item_converter(item.strip())
                    for item in s.split(delimiter)]
        else:
            return []

    converter.__name__ = name
    return converter


#
# Actual configuration stuff
#

class ConfigSection(dict):

    """
    A subclass of `dict`; its instances are values of `Config` mappings.

    Lookup-by-key failures are signalled with `NoConfigOptionError`
    (which is a subclass of both `KeyError` and `ConfigError`).

    >>> s = ConfigSection('some_sect', {'some_opt': 'FOO_bar,spam'})
    >>> s
    ConfigSection('some_sect', {'some_opt': 'FOO_bar,spam'})
    >>> s.sect_name
    'some_sect'
    >>> s['some_opt']
    'FOO_bar,spam'
    >>> s['another_opt']                                   # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    n6mime.config.NoConfigOptionError: [conf... `another_opt` in section `some_sect`
    """

    def __init__(self, sect_name, opt_name_to_value=None):
        self.sect_name = sect_name
        super().__init__(opt_name_to_value or {})

    def __missing__(self, key):
        raise NoConfigOptionError(self.sect_name, key)

    def __eq__(self, other):
        if isinstance(other, ConfigSection) and other.sect_name != self.sect_name:
            return False
        return super().__eq__(other)

    __hash__ = None

    def __repr__(self):
        return f'{type(self).__qualname__}({self.sect_name!r}, {dict(self)!r})'


class Config(dict):

    r"""
    Parse the configuration and provide a `dict`-like access to it.

    A `Config` instance maps configuration section names (`str`) to
    `ConfigSection` instances; lookup-by-key failures are signalled
    with `NoConfigSectionError`.

    Constructor args/kwargs:
        `config_spec` (positional-only; a `str`):
            The *config spec* (see: `parse_config_spec()`) declaring
            the sections and options (with their default values and
            converters).
        `settings` (optional; a mapping or `None`):
            If not `None`, it should be a Pyramid-like *settings* dict,
            mapping `'<section name>.<option name>'` keys to `str`
            values; then no config files are read.  If `None` (the
            default), the configuration is read from the `*.conf` files
            whose names start with two digits and an underscore (e.g.:
            `00_mime_parser.conf`), placed in `/etc/n6mime` and/or
            `~/.n6mime`.
        `custom_converters` (optional; a mapping or `None`):
            Additional option value converters (mapping their names to
            callables that take a `str` and return a converted value).

    Raises:
        `ConfigError` -- if the configuration does not conform to the
        *config spec* (e.g., a required option is missing, a converter
        has failed or an undeclared option is present in a section
        that does not allow free options).

    >>> config = Config('''
    ...     [foo]
    ...     bar = 42 :: int
    ...     spam :: list_of_str
    ... ''', settings={'foo.spam': 'ham, eggs,'})
    >>> config['foo']['bar'], config['foo']['spam']
    (42, ['ham', 'eggs'])
    >>> Config.section('''
    ...     [foo]
    ...     bar = 42 :: int
    ... ''', settings={'foo.bar': '43'})
    ConfigSection('foo', {'bar': 43})
    >>> Config('[foo]\nbar :: int', settings={})          # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    n6mime.config.ConfigError: [configuration-related error] missing required config sections: foo
    """

    DEFAULT_CONVERTER_SPEC: Final[str] = 'str'
    BASIC_CONVERTERS: ClassVar[Mapping[str, OptConverter]] = {
        'str': str,
        'bool': str_to_bool,
        'int': int,
        'float': float,
        'path': _path_with_expanded_user_converter,
        'list_of_str': _make_list_converter(str, 'list_of_str'),
        'list_of_int': _make_list_converter(int, 'list_of_int'),
        'json': json.loads,
    }

    DEFAULT_CONFIG_FILENAME_REGEX: Final[str] = r'\A[0-9][0-9]_.*\.conf\Z'

    _NOT_CONVERTED = object()

    def __init__(self,
                 config_spec: str,
                 /,
                 *,
                 settings: Optional[Mapping] = None,
                 custom_converters: Optional[Mapping[str, OptConverter]] = None):
        super().__init__()
        sect_specs = parse_config_spec(config_spec)
        converters = {
            **self.BASIC_CONVERTERS,
            **(custom_converters or {}),
        }
        try:
            if settings is None:
                sect_name_to_opt_dict = self._load_config_files()
            else:
                sect_name_to_opt_dict = self._convert_settings_mapping(settings)
            self.update(
                (config_sect.sect_name, config_sect)
                for config_sect in self._make_config_sections(
                    sect_name_to_opt_dict,
                    sect_specs,
                    converters))
        except ConfigError as exc:
            LOGGER.error('%s', ascii_str(exc))
            raise

    @classmethod
    def section(cls, config_spec, /, **kwargs) -> ConfigSection:
        """
        Create a `Config` and return its only section.

        The *config spec* must declare exactly one section (otherwise
        `ValueError` is raised).
        """
        sect_specs = parse_config_spec(config_spec)
        if len(sect_specs) != 1:
            raise ValueError(
                f'the config spec should declare exactly one section '
                f'(got {len(sect_specs)} sections declared)')
        [sect_name] = (s.name for s in sect_specs)
        return cls(config_spec, **kwargs)[sect_name]

    def __missing__(self, key):
        raise NoConfigSectionError(key)

    __hash__ = None

    def __repr__(self):
        return f'{type(self).__qualname__}({dict(self)!r})'

    def _convert_settings_mapping(self, settings):
        sect_name_to_opt_dict = {}
        for key, value in settings.items():
            if not isinstance(key, str):
                LOGGER.warning('Ignoring non-`str` settings key %a', key)
                continue
            if not isinstance(value, str):
                LOGGER.warning(
                    'Coercing non-`str` value %a (of setting %s) '
                    'to `str` (before further conversion)',
                    value, ascii_str(key))
                value = str(value)
            first, dotted, second = key.partition('.')
            if dotted:
                sect_name = first
                opt_name = second
            else:
                sect_name = ''
                opt_name = first
            opt_name_to_value = sect_name_to_opt_dict.setdefault(sect_name, {})
            opt_name_to_value[opt_name] = value
        return sect_name_to_opt_dict

    def _make_config_sections(self, sect_name_to_opt_dict, sect_specs, converters):
        resultant_config_sections = []
        conversion_errors = []
        missing_sect_names = []
        missing_opt_locations = []
        illegal_opt_locations = []

        for sect_spec in sect_specs:
            input_opt_dict = sect_name_to_opt_dict.get(sect_spec.name)
            if input_opt_dict is None:
                if sect_spec.required:
                    missing_sect_names.append(sect_spec.name)
                    continue
                input_opt_dict = {}

            resultant_config_sect = ConfigSection(sect_spec.name)
            for opt_spec in sect_spec.opt_specs:
                opt_location = '{0}.{1}'.format(sect_spec.name, opt_spec.name)
                opt_value = input_opt_dict.get(opt_spec.name)
                if opt_value is None:
                    if opt_spec.default is None:
                        missing_opt_locations.append(opt_location)
                        continue
                    opt_value = opt_spec.default
                converter = self._get_converter(
                    opt_location,
                    opt_spec.converter_spec,
                    converters,
                    conversion_errors)
                if converter is None:
                    continue
                opt_value = self._apply_value_converter(
                    opt_location,
                    opt_value,
                    converter,
                    conversion_errors)
                if opt_value is self._NOT_CONVERTED:
                    continue
                resultant_config_sect[opt_spec.name] = opt_value

            free_opt_names = sorted(
                input_opt_dict.keys() - {opt_spec.name for opt_spec in sect_spec.opt_specs})
            if free_opt_names:
                if sect_spec.free_opts_allowed:
                    converter = self._get_converter(
                        'free options in section {0}'.format(sect_spec.name),
                        sect_spec.free_opts_converter_spec,
                        converters,
                        conversion_errors)
                    if converter is None:
                        continue
                    for opt_name in free_opt_names:
                        opt_value = self._apply_value_converter(
                            '{0}.{1}'.format(sect_spec.name, opt_name),
                            input_opt_dict[opt_name],
                            converter,
                            conversion_errors)
                        if opt_value is self._NOT_CONVERTED:
                            continue
                        resultant_config_sect[opt_name] = opt_value
                else:
                    illegal_opt_locations.extend(
                        '{0}.{1}'.format(sect_spec.name, opt_name)
                        for opt_name in free_opt_names)

            resultant_config_sections.append(resultant_config_sect)

        if (conversion_errors or
              missing_sect_names or
              missing_opt_locations or
              illegal_opt_locations):
            error_msg = '; '.join(filter(None, [
                    ("missing required config sections: {0}".format(
                        ", ".join(map(ascii_str, missing_sect_names)))
                     if missing_sect_names else None),
                    ("missing required config options: {0}".format(
                        ", ".join(map(ascii_str, missing_opt_locations)))
                     if missing_opt_locations else None),
                    ("illegal config options: {0}".format(
                        ", ".join(map(ascii_str, illegal_opt_locations)))
                     if illegal_opt_locations else None)
                ] + conversion_errors))
            raise ConfigError(error_msg)

        return resultant_config_sections

    def _get_converter(self, opt_location, converter_spec, converters, conversion_errors):
        try:
            return converters[converter_spec]
        except KeyError:
            conversion_errors.append(
                'unknown config value converter '
                '`{0}` (for {1})'.format(converter_spec, ascii_str(opt_location)))
            return None

    def _apply_value_converter(self, opt_location, opt_value, converter, conversion_errors):
        try:
            return converter(opt_value)
        except Exception as exc:
            conversion_errors.append(
                'error when applying config value converter {0!a} '
                'to {1}={2!a} ({3}: {4})'.format(
                    getattr(converter, '__name__', converter),
                    ascii_str(opt_location),
                    opt_value,
                    get_class_name(exc),
                    ascii_str(exc)))
            # We use this special sentinel object because `None` is a valid value.
            return self._NOT_CONVERTED

    @classmethod
    def _load_config_files(cls):
        sect_name_to_opt_dict = {}
        config_parser = configparser.ConfigParser(interpolation=None)
        config_files = []
        config_files.extend(cls._get_config_file_paths(ETC_DIR))
        config_files.extend(cls._get_config_file_paths(USER_DIR))
        if not config_files:
            LOGGER.info('No config files to read (the defaults will be used)')
            return sect_name_to_opt_dict

        ok_config_files = config_parser.read(config_files, encoding='utf-8')
        err_config_files = set(config_files).difference(ok_config_files)
        if err_config_files:
            LOGGER.warning(
                'Config files that could not be read '
                '(check their permission modes?): %s', ', '.join(
                    '"{0}"'.format(ascii_str(name))
                    for name in sorted(
                        err_config_files,
                        key=config_files.index)))
        if ok_config_files:
            LOGGER.info('Config files read properly: %s', ', '.join(
                '"{0}"'.format(ascii_str(name))
                for name in ok_config_files))
        else:
            LOGGER.warning('No config files read properly')

        for sect_name in config_parser.sections():
            sect_name_to_opt_dict[sect_name] = dict(config_parser.items(sect_name))
        return sect_name_to_opt_dict

    @staticmethod
    def _get_config_file_paths(path):
        config_filename_regex = re.compile(Config.DEFAULT_CONFIG_FILENAME_REGEX)
        config_files = []
        for directory, _, fnames in os.walk(path):
            for fname in fnames:
                if config_filename_regex.search(fname):
                    config_files.append(osp.join(directory, fname))
        return sorted(config_files)


class ConfigMixin:

    r"""
    A convenience mixin for classes that make use of `Config` stuff.

    The subclass is expected to define the `config_spec` attribute
    (a *config spec* string, see: `parse_config_spec()`); optionally,
    also the `custom_converters` attribute (a mapping).

    >>> class MyParser(ConfigMixin):
    ...     config_spec = '''
    ...         [my_parser]
    ...         depth = 3 :: int
    ...     '''
    ...     def __init__(self, settings=None):
    ...         self.config = self.get_config_section(settings)
    ...
    >>> MyParser({'my_parser.depth': '7'}).config
    ConfigSection('my_parser', {'depth': 7})
    """

    config_spec: ClassVar[Optional[str]] = None
    custom_converters: ClassVar[Optional[Mapping[str, OptConverter]]] = None

    def get_config_full(self, settings=None, /) -> Config:
        """
        Get a `Config` containing stuff from files or from `settings`.
        """
        return Config(self.__get_config_spec(),
                      settings=settings,
                      custom_converters=self.custom_converters)

    def get_config_section(self, settings=None, /) -> ConfigSection:
        """
        Get a `ConfigSection` containing stuff from files or from
        `settings` (`config_spec` must declare exactly one section).
        """
        return Config.section(self.__get_config_spec(),
                              settings=settings,
                              custom_converters=self.custom_converters)

    def __get_config_spec(self):
        config_spec = getattr(self, 'config_spec', None)
        if config_spec is None:
            raise TypeError(f'{type(self).__qualname__}.config_spec is not set')
        return config_spec
