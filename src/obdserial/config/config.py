"""
Loads the connection options from configuration files.

A configuration is made up of several layered files, all named after the configuration:

    <name>.default.cfg      shipped defaults
    <name>.<os>.cfg         platform specifics, e.g. obdserial.linux.cfg
    ~/<name>.cfg            the user's overrides
    <name>.cfg              the local configuration

Later files override earlier ones. The result is validated against the connection schema, which converts
the serial options to the types pyserial expects. Serial options that are not set are left to pyserial's defaults.

    [connection]
    serial_path = /dev/ttyUSB0
    init_commands = ATZ, ATE0, ATSP0
        [[serial_opts]]
        baudrate = 38400
        timeout = 1.0
"""
import os
import platform

from configobj import ConfigObj, ConfigObjError, flatten_errors
from validate import Validator

# The default extension for configuration files
config_extension = '.cfg'

connection_schema = """
[connection]
serial_path = string
init_commands = string_list(default=list())
    [[serial_opts]]
    baudrate = integer(min=1, default=38400)
    timeout = float(min=0, default=1.0)
    bytesize = integer(5, 8, default=None)
    parity = option('N', 'E', 'O', 'M', 'S', default=None)
    stopbits = float(1, 2, default=None)
    write_timeout = float(min=0, default=None)
    inter_byte_timeout = float(min=0, default=None)
    xonxoff = boolean(default=None)
    rtscts = boolean(default=None)
    dsrdtr = boolean(default=None)
    exclusive = boolean(default=None)
""".strip().splitlines()


def config_flavor(name, flavor=None):
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory):
    return os.path.join(directory, name + config_extension)


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, flavor=None) -> ConfigObj:
    """
    Loads a specialization of a config file, named after the base followed by a period and the
    specialization. Missing files give an empty configuration.
    """
    return load_config_file_base(config_filename(config_flavor(name, flavor), directory), False)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def user_config_file(name):
    return os.path.expanduser(os.path.join('~', name + config_extension))


def load_config(name, directory):
    """
    Loads and merges all the configuration files for the given name, then validates the result
    against the connection schema.
    :param name: the base name of the configuration files
    :param directory: the directory containing the configuration files
    :return: the validated ConfigObj, with values converted to their schema types.
    """
    config = ConfigObj(configspec=connection_schema)
    for layer in (config_flavor_file(name, directory, 'default'),
                  config_flavor_file(name, directory, os_name()),
                  load_config_file_base(user_config_file(name), must_exist=False),
                  config_flavor_file(name, directory)):
        config.merge(layer)

    result = config.validate(Validator(), preserve_errors=True)
    if result is not True:
        problems = []
        for sections, key, error in flatten_errors(config, result):
            location = '.'.join(sections + ([key] if key is not None else []))
            problems.append("%s: %s" % (location, error or 'missing'))
        raise ConfigObjError("the config file %s failed validation: %s" % (name, ', '.join(problems)))
    return config


def connection_options(config):
    """
    Extracts the options for ConnectionBroker.configure from a validated configuration.
    Serial options without a value are omitted.
    """
    section = config['connection']
    serial_opts = {k: v for k, v in section['serial_opts'].dict().items() if v is not None}
    return {
        'serial_path': section['serial_path'],
        'serial_opts': serial_opts,
    }


def init_commands(config):
    return list(config['connection']['init_commands'])
