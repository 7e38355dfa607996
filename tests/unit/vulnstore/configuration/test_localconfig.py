import os

import pytest

from vulnstore.configuration.localconfig import (
    DEFAULT_CONFIG,
    ENV_FILE_VARIABLE,
    get_config,
    get_env_overrides,
    load_config,
    load_defaults,
    substitute_env,
    update_merge,
    validate_config,
)

DEFAULT_CONFIG_FN = "config.yaml"

CONFIG_TEXT = """
log_level: ${VULNSTORE_TEST_LOG_LEVEL}
credentials:
  database:
    db_connect: ${VULNSTORE_TEST_DB_CONNECT}
loader:
  abort_on_error: true
"""


@pytest.fixture
def clean_env(monkeypatch):
    for key in list(os.environ.keys()):
        if key.startswith("VULNSTORE"):
            monkeypatch.delenv(key)
    yield monkeypatch
    get_config().clear()


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / DEFAULT_CONFIG_FN).write_text(CONFIG_TEXT)
    return tmp_path


def test_load_defaults(tmp_path):
    config = load_defaults(configdir=str(tmp_path))
    try:
        assert config["service_dir"] == str(tmp_path)
        assert config["loader"] == DEFAULT_CONFIG["loader"]
        assert config["bootstrap"]["default_overrides"] is True

        # defaults are copied, not shared
        config["loader"]["abort_on_error"] = True
        assert DEFAULT_CONFIG["loader"]["abort_on_error"] is False
    finally:
        get_config().clear()


def test_load_config_with_env(config_dir, clean_env):
    clean_env.setenv("VULNSTORE_TEST_LOG_LEVEL", "DEBUG")
    clean_env.setenv("VULNSTORE_TEST_DB_CONNECT", "sqlite:///vulnerability.db")

    config = load_config(configdir=str(config_dir))

    assert config["log_level"] == "DEBUG"
    assert config["credentials"]["database"]["db_connect"] == "sqlite:///vulnerability.db"
    assert config["loader"]["abort_on_error"] is True
    # merged over the defaults
    assert config["loader"]["progress_interval"] == 1000
    assert get_config() is config


def test_load_config_with_env_file(config_dir, tmp_path, clean_env):
    env_file = tmp_path / "vulnstore.env"
    env_file.write_text(
        "# comment\n"
        "VULNSTORE_TEST_LOG_LEVEL='WARN'\n"
        'VULNSTORE_TEST_DB_CONNECT="sqlite:///from-file.db"\n'
        "OTHER_VARIABLE=ignored\n"
        "not a valid line\n"
    )
    clean_env.setenv(ENV_FILE_VARIABLE, str(env_file))
    # the environment wins over the file
    clean_env.setenv("VULNSTORE_TEST_LOG_LEVEL", "ERROR")

    envs = get_env_overrides()
    assert "OTHER_VARIABLE" not in envs
    assert envs["VULNSTORE_TEST_DB_CONNECT"] == "sqlite:///from-file.db"

    config = load_config(configdir=str(config_dir))
    assert config["log_level"] == "ERROR"
    assert config["credentials"]["database"]["db_connect"] == "sqlite:///from-file.db"


def test_load_config_unset_variable(config_dir, clean_env):
    clean_env.setenv("VULNSTORE_TEST_LOG_LEVEL", "DEBUG")

    with pytest.raises(Exception) as err:
        load_config(configdir=str(config_dir))
    assert "${VULNSTORE_TEST_DB_CONNECT}" in str(err.value)


def test_load_config_missing_file(tmp_path, clean_env):
    with pytest.raises(Exception) as err:
        load_config(configdir=str(tmp_path))
    assert "not found" in str(err.value)


def test_substitute_env():
    assert (
        substitute_env("a: ${VULNSTORE_A}\nb: ${VULNSTORE_B}", {"VULNSTORE_A": "1"})
        == "a: 1\nb: ${VULNSTORE_B}"
    )


@pytest.mark.parametrize(
    "config, validate_params, message",
    [
        ({}, None, "credentials.database"),
        ({"credentials": {"database": {}}}, None, "credentials.database"),
        (
            {"credentials": {"database": {"db_connect": ""}}},
            None,
            "credentials.database.db_connect",
        ),
        (
            {
                "credentials": {"database": {"db_connect": "sqlite://"}},
                "loader": {"progress_interval": -1},
            },
            None,
            "progress_interval",
        ),
        (
            {"loader": {"progress_interval": "often"}},
            {"credentials": False},
            "progress_interval",
        ),
    ],
)
def test_validate_config_errors(config, validate_params, message):
    with pytest.raises(Exception) as err:
        validate_config(config, validate_params=validate_params)
    assert message in str(err.value)


def test_validate_config():
    assert validate_config(
        {
            "credentials": {"database": {"db_connect": "sqlite://"}},
            "loader": {"progress_interval": 0},
        }
    )
    assert validate_config({}, validate_params={"credentials": False})


def test_update_merge():
    base = {"a": {"b": 1, "c": 2}, "d": "x", "e": {"f": 1}}
    update_merge(base, {"a": {"b": 10}, "d": {"y": 1}, "g": 3})
    assert base == {"a": {"b": 10, "c": 2}, "d": {"y": 1}, "e": {"f": 1}, "g": 3}
