"""
Session configuration files.

A Configuration can be built from a set of layered configuration files, in the configobj format. For a
configuration named `debuglink` the files are, in increasing order of precedence:

- debuglink.default.cfg     - shipped defaults
- debuglink.<platform>.cfg  - platform specialization, e.g. debuglink.darwin.cfg
- ~/debuglink.cfg           - the user override
- debuglink.cfg             - the local configuration

Missing files are skipped. The merged configuration is validated against debuglink.schema.cfg.
"""
import logging
import os
import platform
import uuid

from configobj import ConfigObj, ConfigObjError, flatten_errors
from validate import Validator

from debuglink.package import Configuration

logger = logging.getLogger(__name__)

# The default extension for configuration files
config_extension = '.cfg'

default_config_name = 'debuglink'


def config_flavor(name, flavor=None):
    """
    >>> config_flavor('debuglink', 'default')
    'debuglink.default'
    >>> config_flavor('debuglink')
    'debuglink'
    """
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory=None):
    """
    Determines the location of a config file. By default, config files are found beside this module.
    """
    if directory is None:
        directory = os.path.dirname(os.path.abspath(__file__))
    return os.path.join(directory, name + config_extension)


def load_config_file_base(file, must_exist=False):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    if must_exist or os.path.exists(file):
        return ConfigObj(file, file_error=must_exist)
    return ConfigObj()


def config_flavor_file(name, directory=None, flavor=None) -> ConfigObj:
    """
    Loads a specialization of a config file. The configuration file is expected to be named
    after the base, followed by a period and then the specialization, if the specialization is given,
    otherwise just the base name.
    """
    return load_config_file_base(config_filename(config_flavor(name, flavor), directory))


def load_config(name=default_config_name, directory=None) -> ConfigObj:
    """
    Loads all the configuration files that relate to the given name, merges them and validates the result.
    Raises ConfigObjError if the merged configuration does not validate.
    :param name: the base name of the configuration to load.
    :param directory: the directory holding the configuration files. Defaults to the directory of this module.
    """
    schema = config_filename(config_flavor(name, 'schema'), directory)
    config = ConfigObj(configspec=schema if os.path.exists(schema) else None)
    config.merge(config_flavor_file(name, directory, 'default'))
    config.merge(config_flavor_file(name, directory, platform.system().lower()))
    config.merge(load_config_file_base(os.path.expanduser('~/' + name + config_extension)))
    config.merge(config_flavor_file(name, directory))

    if config.configspec is None:
        return config
    result = config.validate(Validator())
    if result is not True:
        for section_list, key, res in flatten_errors(config, result):
            if key is not None:
                logger.error('The "%s" key in the section "%s" failed validation: %s' %
                             (key, ', '.join(section_list), res))
            else:
                logger.error('The following section was missing: %s' % ', '.join(section_list))
        raise ConfigObjError("the %s configuration failed validation" % name)
    return config


def configuration_from_section(section) -> Configuration:
    """
    Builds a session Configuration from a configuration section with the keys
    id, project_name, device_name and an optional metadata subsection.
    A session id is generated when none is configured.
    """
    device_name = section.get('device_name') or platform.node() or None
    return Configuration(section.get('id') or uuid.uuid4().hex,
                         project_name=section.get('project_name'),
                         device_name=device_name,
                         metadata=dict(section.get('metadata', {})))


def load_configuration(name=default_config_name, directory=None, section='session') -> Configuration:
    """
    Loads the session Configuration from the named configuration files.
    :param section: the section holding the session settings
    """
    config = load_config(name, directory)
    return configuration_from_section(config.get(section, {}))
