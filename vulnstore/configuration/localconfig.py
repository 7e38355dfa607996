import copy
import json
import os
import re

import yaml

from vulnstore.subsys import logger

DEFAULT_CONFIG = {
    "service_dir": os.path.join(
        "{}".format(os.getenv("HOME", "/tmp/vulnstoretmp")), ".vulnstore"
    ),
    "log_level": "INFO",
    "json_logging": False,
    "credentials": {},
    "loader": {
        "abort_on_error": False,
        "progress_interval": 1000,
    },
    "bootstrap": {
        "default_overrides": True,
    },
}

DEFAULT_CONFIG_FILENAME = "config.yaml"
ENV_PREFIX = "VULNSTORE"
ENV_FILE_VARIABLE = "VULNSTORE_ENV_FILE"

default_required_config_params = {"credentials": True}

localconfig = {}


def update_merge(base, override):
    if not isinstance(base, dict) or not isinstance(override, dict):
        return

    for k, v in override.items():
        if k in base and type(base[k]) != type(v):
            base[k] = v
        else:
            if k in base and isinstance(base[k], dict):
                update_merge(base[k], v)
            else:
                base[k] = v
    return


def load_defaults(configdir=None):
    global localconfig

    if not configdir:
        configdir = DEFAULT_CONFIG["service_dir"]

    localconfig.clear()
    localconfig.update(copy.deepcopy(DEFAULT_CONFIG))
    localconfig["service_dir"] = configdir

    return localconfig


def load_config(configdir=None, configfile=None, validate_params=None):
    global localconfig

    load_defaults(configdir=configdir)

    if not configfile:
        configfile = os.path.join(localconfig["service_dir"], DEFAULT_CONFIG_FILENAME)

    if not os.path.exists(configfile):
        raise Exception("config file (" + str(configfile) + ") not found")

    confdata = read_config(configfile=configfile)
    update_merge(localconfig, confdata)

    try:
        validate_config(localconfig, validate_params=validate_params)
    except Exception as err:
        raise Exception("invalid configuration: details - " + str(err))

    return localconfig


def _read_env_file(env_file):
    envs = {}
    with open(env_file, "r") as FH:
        secret_envbuf = FH.read()

    for line in secret_envbuf.splitlines():
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        try:
            (k, v) = line.split("=", 1)
        except ValueError as err:
            logger.warn(
                "cannot parse line from {} - exception: {}".format(
                    ENV_FILE_VARIABLE, err
                )
            )
            continue

        k = k.strip()
        v = re.sub("^(\"|')+", "", v.strip())
        v = re.sub("(\"|')+$", "", v)
        if re.match("^{}.*".format(ENV_PREFIX), k):
            envs[k] = str(v)

    return envs


def get_env_overrides():
    """
    VULNSTORE_* variables from the optional env file, then from the environment (the environment wins)
    """
    envs = {}
    env_file = os.environ.get(ENV_FILE_VARIABLE)
    if env_file and os.path.exists(env_file):
        envs.update(_read_env_file(env_file))

    for e in list(os.environ.keys()):
        if re.match("^{}.*".format(ENV_PREFIX), e):
            envs[e] = str(os.environ[e])

    return envs


def substitute_env(confbuf, envs):
    for e in list(envs.keys()):
        confbuf = confbuf.replace("${" + str(e) + "}", envs[e])
    return confbuf


def read_config(configfile=None):
    ret = {}

    if not configfile or not os.path.exists(configfile):
        raise Exception("no config file (" + str(configfile) + ") can be found to load")

    with open(configfile, "r") as FH:
        confbuf = FH.read()

    envs = get_env_overrides()
    if envs:
        confbuf = substitute_env(confbuf, envs)

    confdata = yaml.safe_load(confbuf)
    if confdata:
        ret.update(confdata)

    return ret


def validate_config(config, validate_params=None):
    """
    Validate the configuration with required keys and values

    :param config: the config dict to validate
    :param validate_params: dict of top level config properties and boolean flag
    :return: true if passes validation, raises otherwise
    """
    if validate_params is None:
        validate_params = default_required_config_params

    # ensure there aren't any left over unset variables
    confbuf = json.dumps(config, default=str)
    patt = re.match(r".*(\${" + ENV_PREFIX + r".*?}).*", confbuf, re.DOTALL)
    if patt:
        raise Exception(
            "variable overrides found in configuration file that are unset ("
            + str(patt.group(1))
            + ")"
        )

    if validate_params.get("credentials"):
        credentials = config.get("credentials") or {}
        database = credentials.get("database") or {}
        if not database:
            raise Exception(
                "no 'credentials.database' definition in configuration file"
            )
        if not database.get("db_connect"):
            raise Exception(
                "no 'credentials.database.db_connect' value in configuration file"
            )

    loader_config = config.get("loader") or {}
    progress_interval = loader_config.get("progress_interval", 0)
    try:
        if int(progress_interval) < 0:
            raise ValueError(progress_interval)
    except (TypeError, ValueError):
        raise Exception(
            "'loader.progress_interval' must be a non-negative integer, found {!r}".format(
                progress_interval
            )
        )

    return True


def get_config():
    global localconfig
    return localconfig


def get_versions():
    from vulnstore import version

    ret = {}
    ret["service_version"] = version.version
    ret["schema_version"] = version.schema_version

    return ret
