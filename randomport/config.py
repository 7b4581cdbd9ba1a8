import os
from configparser import ConfigParser

from .pool import Pool, DEFAULT_LIMIT, DEFAULT_START


def read_config(path):
    if not os.path.isfile(path):
        raise FileNotFoundError('Config file not exist on %s.' % path)
    config = ConfigParser()
    config.read(path)
    return config


def pool_options(config, section='Pool'):
    """Keyword arguments for Pool from an INI section.

    Keys missing from the section fall back to DEFAULT, then to the Pool
    defaults. A missing section reads DEFAULT only.
    """
    if config.has_section(section):
        options = config[section]
    else:
        options = config['DEFAULT']
    return {
        'sync': options.getboolean('sync', True),
        'limit': options.getint('limit', DEFAULT_LIMIT),
        'start': options.getint('start', DEFAULT_START),
    }


def pool_from_config(config, section='Pool'):
    return Pool(**pool_options(config, section))
