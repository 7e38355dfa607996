"""
Database bootstrap: connection setup from configuration and the default specifier overrides seeded into a new database.
"""
from vulnstore.configuration import localconfig
from vulnstore.db import (
    db_specifier_overrides,
    initialize,
    read_session_scope,
    session_scope,
)
from vulnstore.db.entities import upgrade
from vulnstore.subsys import logger

# query-time ecosystem -> ecosystem stored in the packages table
DEFAULT_PACKAGE_OVERRIDES = [
    ("golang", "go-module"),
    ("go", "go-module"),
    ("cargo", "rust-crate"),
    ("composer", "php-composer"),
    ("pub", "dart-pub"),
    ("node", "npm"),
    ("pip", "pypi"),
    ("python", "pypi"),
    ("rubygems", "gem"),
    ("java", "maven"),
    ("java-archive", "maven"),
]

# os-release values -> os identity stored in the operating_systems table
DEFAULT_OS_OVERRIDES = [
    # rhel clones share the redhat data
    {"alias": "rhel", "replacement_name": "redhat"},
    {"alias": "centos", "replacement_name": "redhat"},
    {"alias": "rocky", "replacement_name": "redhat"},
    {"alias": "rockylinux", "replacement_name": "redhat"},
    {"alias": "alma", "replacement_name": "redhat"},
    {"alias": "almalinux", "replacement_name": "redhat"},
    {"alias": "ol", "replacement_name": "oracle"},
    {"alias": "oraclelinux", "replacement_name": "oracle"},
    {"alias": "amzn", "replacement_name": "amazon"},
    {"alias": "amazonlinux", "replacement_name": "amazon"},
    {"alias": "azurelinux", "replacement_name": "mariner"},
    # alpine pre-releases are tracked as edge
    {
        "alias": "alpine",
        "version_pattern": r"_alpha",
        "replacement_major_version": "",
        "replacement_minor_version": "",
        "replacement_label_version": "edge",
    },
    {
        "alias": "debian",
        "codename": "sid",
        "replacement_major_version": "",
        "replacement_minor_version": "",
        "replacement_label_version": "unstable",
    },
    # rolling distros only have data keyed by name
    {"alias": "wolfi", "rolling": True},
    {"alias": "chainguard", "rolling": True},
    {"alias": "arch", "rolling": True},
    {"alias": "archlinux", "replacement_name": "arch", "rolling": True},
]


def seed_overrides(session, package_overrides=None, os_overrides=None):
    """
    Add any missing override rows, existing rows are left untouched.

    :return: tuple of (package override rows added, os override rows added)
    """
    if package_overrides is None:
        package_overrides = DEFAULT_PACKAGE_OVERRIDES
    if os_overrides is None:
        os_overrides = DEFAULT_OS_OVERRIDES

    pkg_added = 0
    for ecosystem, replacement in package_overrides:
        result = db_specifier_overrides.add_package_override(
            session, ecosystem, replacement
        )
        if result.created:
            pkg_added += 1
        else:
            logger.debug(
                "package override for {} already present, skipping".format(ecosystem)
            )

    os_added = 0
    for override in os_overrides:
        result = db_specifier_overrides.add_os_override(session, **override)
        if result.created:
            os_added += 1
        else:
            logger.debug(
                "os override for {} already present, skipping".format(override["alias"])
            )

    return pkg_added, os_added


def init_db_content():
    """
    Initialize the db content with the default specifier overrides, unless disabled by bootstrap.default_overrides
    """
    bootstrap_config = localconfig.get_config().get("bootstrap") or {}
    if not bootstrap_config.get("default_overrides", True):
        logger.info("Skipping default specifier override bootstrap as configured")
        return 0, 0

    with session_scope() as db:
        pkg_added, os_added = seed_overrides(db)

    logger.info(
        "Default specifier overrides initialized: added {} package and {} os overrides".format(
            pkg_added, os_added
        )
    )
    return pkg_added, os_added


def init_store(config=None, configdir=None, configfile=None, create=False):
    """
    Bring up logging and the db connection from configuration.

    With create, a db without a metadata row gets its tables and default overrides. A db that has been built is
    checked for schema compatibility instead.

    :param config: already loaded configuration dict, otherwise it is loaded from configdir/configfile
    :param create: create tables and seed overrides when the db is not yet built
    :return: tuple of (code_versions, db_versions) dicts
    """
    if config is None:
        config = localconfig.load_config(configdir=configdir, configfile=configfile)

    logger.configure_logging(
        config.get("log_level", "INFO"),
        json_logging_enabled=config.get("json_logging", False),
    )

    initialize(localconfig=config)

    code_versions, db_versions = upgrade.get_versions()
    if not db_versions:
        if create:
            logger.info("DB not built: initializing tables")
            upgrade.do_create_tables()
            init_db_content()
        else:
            logger.warn("DB has no metadata row, it has not been finalized")
    else:
        with read_session_scope() as db:
            upgrade.check_compatibility(db)
        logger.info(
            "DB schema v{}.{}.{} built at {}".format(
                *db_versions["schema_version"], db_versions["build_timestamp"]
            )
        )

    return code_versions, db_versions
