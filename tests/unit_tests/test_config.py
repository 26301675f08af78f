import json
import os
import tempfile

import pytest

from alphaident.constants.keys import ConfigKeys
from alphaident.exceptions import KeyAddedConfigError, TypeMismatchConfigError
from alphaident.workflow.config import USER_DEFINED, Config


def test_default_config_is_loaded():
    # given, when
    config = Config.load_default()

    # then
    assert config[ConfigKeys.GENERAL][ConfigKeys.THREAD_COUNT] == 10
    assert config[ConfigKeys.SEARCH]["acceptors"] == [
        {"type": "ppm_around_zero", "tolerance": 5.0}
    ]
    assert config[ConfigKeys.PARSIMONY]["enabled"] is True
    assert config[ConfigKeys.PROTEIN_SCORING]["merge_indistinguishable_groups"] is False


def test_update_overwrites_nested_values():
    # given
    config = Config.load_default()
    user_config = Config(
        {
            "general": {"thread_count": 2},
            "search": {"fragment_tolerance": 10, "non_specific": {"enabled": True}},
        },
        USER_DEFINED,
    )

    # when
    config.update([user_config], do_print=True)

    # then
    assert config["general"]["thread_count"] == 2
    assert config["search"]["fragment_tolerance"] == 10
    assert config["search"]["non_specific"]["enabled"] is True
    assert config["search"]["non_specific"]["terminus"] == "N"
    assert config["general"]["log_level"] == "INFO"


def test_update_later_configs_win():
    # given
    config = Config.load_default()
    first = Config({"fdr": {"psm_qval_cutoff": 0.05}}, "first")
    second = Config({"fdr": {"psm_qval_cutoff": 0.1}}, "second")

    # when
    config.update([first, second])

    # then
    assert config["fdr"]["psm_qval_cutoff"] == 0.1


def test_update_replaces_lists():
    # given
    config = Config.load_default()
    acceptors = [
        {"type": "dot", "mass_offsets": [0.0, 1.0029], "tolerance": 5.0},
        {"type": "open"},
    ]
    user_config = Config({"search": {"acceptors": acceptors}}, USER_DEFINED)

    # when
    config.update([user_config])

    # then
    assert config["search"]["acceptors"] == acceptors


def test_update_converts_boolean_strings():
    # given
    config = Config.load_default()
    user_config = Config({"parsimony": {"enabled": "False"}}, USER_DEFINED)

    # when
    config.update([user_config])

    # then
    assert config["parsimony"]["enabled"] is False


def test_update_rejects_new_keys():
    # given
    config = Config.load_default()
    user_config = Config({"search": {"unknown_key": 1}}, USER_DEFINED)

    # when, then
    with pytest.raises(KeyAddedConfigError):
        config.update([user_config])

    assert "unknown_key" not in config["search"]


def test_update_rejects_type_mismatch():
    # given
    config = Config.load_default()
    user_config = Config({"general": {"thread_count": "many"}}, USER_DEFINED)

    # when, then
    with pytest.raises(TypeMismatchConfigError):
        config.update([user_config])


def test_config_can_only_be_changed_through_update():
    config = Config.load_default()

    with pytest.raises(NotImplementedError):
        config["general"] = {}

    with pytest.raises(NotImplementedError):
        del config["general"]

    with pytest.raises(NotImplementedError):
        config.copy()

    config[ConfigKeys.OUTPUT_DIRECTORY] = "/tmp/output"
    assert config[ConfigKeys.OUTPUT_DIRECTORY] == "/tmp/output"


def test_yaml_round_trip():
    # given
    config = Config.load_default()
    config.update([Config({"general": {"thread_count": 3}}, USER_DEFINED)])

    with tempfile.TemporaryDirectory() as temp_folder:
        path = os.path.join(temp_folder, "config.yaml")

        # when
        config.to_yaml(path)
        loaded = Config(name=USER_DEFINED)
        loaded.from_yaml(path)

    # then
    assert loaded.data == config.data


def test_json_config_updates_default():
    # given
    config = Config.load_default()

    with tempfile.TemporaryDirectory() as temp_folder:
        path = os.path.join(temp_folder, "config.json")
        with open(path, "w") as f:
            json.dump({"protein_scoring": {"no_one_hit_wonders": True}}, f)

        user_config = Config(name=USER_DEFINED)
        user_config.from_json(path)

    # when
    config.update([user_config])

    # then
    assert config["protein_scoring"]["no_one_hit_wonders"] is True
