"""Miscellaneous non-optics, non-math stuff."""
import os
import yaml

CONFIG_FILENAME = 'obench.yml'


def load_config() -> dict:
    """Load obench.yml from the current directory or, failing that, the home directory.

    Returns an empty dictionary if neither exists.
    """
    for path in os.curdir, os.path.expanduser('~'):
        try:
            with open(os.path.join(path, CONFIG_FILENAME), 'rt') as file:
                return yaml.load(file, Loader=yaml.FullLoader) or {}
        except FileNotFoundError:
            pass
    return {}
