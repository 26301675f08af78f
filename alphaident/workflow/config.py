"""This module is responsible for creating and storing the configuration.

The default configuration is shipped as `constants/default.yaml` and can be updated with one or more user configs.
Later configs overwrite earlier values, lists are always overwritten completely.
New keys and values whose type differs from the default are rejected.

On demand, the updated config can be logged in a tree-like structure with all changes highlighted.
"""

import json
import logging
import os
from collections import UserDict, defaultdict
from copy import deepcopy

import yaml

from alphaident.constants.keys import ConfigKeys
from alphaident.exceptions import KeyAddedConfigError, TypeMismatchConfigError

logger = logging.getLogger()

DEFAULT = "default"
USER_DEFINED = "user defined"

DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)), "constants", "default.yaml"
)


class Config(UserDict):
    """Dict-like config which is read from yaml or json files and can only be changed through `update`."""

    def __init__(self, data: dict = None, name: str = DEFAULT) -> None:
        # UserDict.__init__ would route through our update()
        self.data = {**data} if data is not None else {}
        self.name = name

    @classmethod
    def load_default(cls) -> "Config":
        """Create a config holding the shipped default values."""
        config = cls(name=DEFAULT)
        config.from_yaml(DEFAULT_CONFIG_PATH)
        return config

    def from_yaml(self, path: str) -> None:
        with open(path) as f:
            self.data = yaml.safe_load(f)

    def from_json(self, path: str) -> None:
        with open(path) as f:
            self.data = json.load(f)

    def to_yaml(self, path: str) -> None:
        with open(path, "w") as f:
            yaml.dump(self.data, f, sort_keys=False)

    def __setitem__(self, key, item):
        if key != ConfigKeys.OUTPUT_DIRECTORY:
            raise NotImplementedError("Use update() to update the config.")
        return super().__setitem__(key, item)

    def __delitem__(self, key):
        raise NotImplementedError("Use update() to update the config.")

    def copy(self):
        raise NotImplementedError("Use deepcopy() to copy the config.")

    def update(self, configs: list["Config"], do_print: bool = False):
        """
        Updates the config with one or more other config objects.

        Parameters
        ----------
        configs : list of configs
            Configs to update the current config with, the last one wins.

        do_print : bool, optional
            Whether to log the updated config. Default is False.

        Raises
        ------
        KeyAddedConfigError
            If one of the configs defines a key which is not part of the current config.

        TypeMismatchConfigError
            If one of the configs defines a value with a type different from the current value.
        """
        default_config = deepcopy(self.data)

        def _recursive_defaultdict():
            return defaultdict(_recursive_defaultdict)

        tracking_dict = defaultdict(_recursive_defaultdict)

        current_config = deepcopy(self.data)
        for config in configs:
            logger.info(f"Updating config with '{config.name}'")
            _update(current_config, config.data, tracking_dict, config.name)

        self.data = current_config

        if do_print:
            _pretty_print(
                current_config,
                default_config=default_config,
                tracking_dict=tracking_dict,
            )


def _update(
    target_config: dict,
    update_config: dict,
    tracking_dict: dict,
    config_name: str,
    parent_keys: str = "",
) -> None:
    """
    Recursively update target_config in-place with values from update_config.

    Parameters
    ----------
    target_config:
        The config dictionary to be modified
    update_config:
        The config dictionary containing update values
    tracking_dict:
        Nested dictionary whose leaves are set to `config_name` for every value that was overwritten.
    config_name:
        The name of the current config object
    parent_keys:
        Names of the parent keys, separated by dots. Used only for exception messages.

    Raises
    ------
    KeyAddedConfigError
        A key is not found in the target_config
    TypeMismatchConfigError
        The type of the update value does not match the type of the target value
    """
    for key, update_value in update_config.items():
        full_key = f"{parent_keys}.{key}" if parent_keys else key

        if key not in target_config:
            raise KeyAddedConfigError(full_key, update_value, config_name)

        target_value = target_config[key]

        if isinstance(update_value, str) and update_value.lower() in ("true", "false"):
            update_value = update_value.lower() == "true"

        numeric = isinstance(target_value, int | float) and isinstance(
            update_value, int | float
        )
        if (
            target_value is not None
            and type(target_value) != type(update_value)
            and not numeric
        ):
            raise TypeMismatchConfigError(
                full_key,
                update_value,
                config_name,
                f"{type(update_value)} != {type(target_value)}",
            )

        if isinstance(target_value, dict):
            _update(
                target_value,
                update_value,
                tracking_dict[key],
                config_name,
                parent_keys=full_key,
            )
        else:
            target_config[key] = update_value
            tracking_dict[key] = config_name


def _pretty_print(
    config: dict,
    *,
    default_config: dict | None,
    tracking_dict: dict | str,
    prefix: str = "",
) -> None:
    """Recursively log a configuration dictionary in a tree-like structure."""
    items = list(config.items())
    for i, (key, value) in enumerate(items):
        is_last_item = i == len(items) - 1
        current_prefix = "└──" if is_last_item else "├──"
        next_prefix = prefix + ("    " if is_last_item else "│   ")

        default_value = (
            default_config.get(key) if isinstance(default_config, dict) else None
        )
        tracking_value = (
            tracking_dict if isinstance(tracking_dict, str) else tracking_dict[key]
        )

        if isinstance(value, dict):
            logger.info(f"{prefix}{current_prefix}{key}")
            _pretty_print(
                value,
                default_config=default_value,
                tracking_dict=tracking_value,
                prefix=next_prefix,
            )
            continue

        msg = f"{prefix}{current_prefix}{key}: {value}"
        if value != default_value:
            source = tracking_value if isinstance(tracking_value, str) else DEFAULT
            msg = f"\x1b[32;20m{msg} [{source}, default: {default_value}]\x1b[0m"
        logger.info(msg)
