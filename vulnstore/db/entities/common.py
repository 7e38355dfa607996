"""
Common functions and variables for all entity types including some bootstrap and init functions
"""
import datetime
import time
from contextlib import contextmanager

import sqlalchemy
from sqlalchemy import event, types
from sqlalchemy.orm import declarative_base, sessionmaker

from vulnstore.subsys import logger

Session = None  # Standard session maker
engine = None
Base = declarative_base()

DB_CONNECT_RETRY_MAX = 5
DB_CONNECT_RETRY_SLEEP_SECONDS = 2


class UtilMixin(object):
    """
    Common mixin class for functions that all db entities (or most) should have
    """

    def update(self, inobj):
        for a in list(inobj.keys()):
            if hasattr(self, a):
                setattr(self, a, inobj[a])

    def to_json(self):
        """
        Returns json-encodable dict representation of the object's members. If datetime.datetime object is found, converts it to iso8601 format

        :return: dict
        """

        return dict(
            (
                key,
                value if type(value) != datetime.datetime else value.isoformat(),
            )
            for key, value in vars(self).items()
            if not key.startswith("_")
        )

    def to_dict(self):
        """
        Returns a dictionary version of the object. Basically the same as to_json(), but leaves types unchanged

        :return:
        """

        return dict(
            (key, value) for key, value in vars(self).items() if not key.startswith("_")
        )


def now_datetime():
    return datetime.datetime.now(datetime.timezone.utc)


# some DB management funcs
def get_engine():
    global engine
    return engine


def test_connection():
    global engine

    test_connection = None
    try:
        test_connection = engine.connect()
    except Exception as err:
        raise Exception("test connection failed - exception: " + str(err))
    finally:
        if test_connection:
            test_connection.close()
    return True


def do_connect(db_params):
    global engine, Session

    db_connect = db_params.get("db_connect", None)
    db_connect_args = db_params.get("db_connect_args", None) or {}
    db_engine_args = db_params.get("db_engine_args")
    if db_engine_args is None:
        db_engine_args = {}

    if "db_echo" in db_params:
        db_engine_args["echo"] = db_params.get("db_echo", False)

    if not db_connect:
        raise Exception(
            "could not locate db_connect string from configuration: add db_connect parameter to configuration file"
        )

    try:
        if db_connect.startswith("sqlite"):
            # the built database file is sqlite, pool sizing does not apply
            engine = sqlalchemy.create_engine(
                db_connect, connect_args=db_connect_args, **db_engine_args
            )
            _enable_sqlite_savepoints(engine)
        else:
            if db_params.get("db_pool_size", None):
                db_engine_args["pool_size"] = db_params.get("db_pool_size", 30)
            if db_params.get("db_pool_max_overflow", None):
                db_engine_args["max_overflow"] = db_params.get(
                    "db_pool_max_overflow", 100
                )

            logger.debug(
                "db_connect_args {} db_engine_args={}".format(
                    db_connect_args, db_engine_args
                )
            )
            engine = sqlalchemy.create_engine(
                db_connect, connect_args=db_connect_args, **db_engine_args
            )
    except Exception as err:
        raise Exception("could not connect to DB - exception: " + str(err))

    # set up the global session
    try:
        Session = sessionmaker(bind=engine)
    except Exception as err:
        raise Exception("could not create DB session - exception: " + str(err))

    return True


def _enable_sqlite_savepoints(sqlite_engine):
    """
    The pysqlite driver defers BEGIN on its own, which breaks SAVEPOINT handling. Disable the driver transaction
    handling and emit BEGIN explicitly so nested transactions behave.
    """

    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def do_disconnect():
    global engine, Session
    if engine:
        engine.dispose()
    engine = None
    Session = None


def get_params(localconfig):
    try:
        db_auth = localconfig["credentials"]["database"]
    except (KeyError, TypeError):
        raise Exception(
            "could not locate credentials->database entry from configuration: add 'database' section to 'credentials' section in configuration file"
        )

    db_params = {
        "db_connect": db_auth.get("db_connect"),
        "db_connect_args": db_auth.get("db_connect_args", {}),
        "db_pool_size": int(db_auth.get("db_pool_size", 30)),
        "db_pool_max_overflow": int(db_auth.get("db_pool_max_overflow", 75)),
        "db_echo": db_auth.get("db_echo", False) in [True, "True", "true"],
        "db_engine_args": db_auth.get("db_engine_args", None),
    }
    ret = normalize_db_params(db_params)
    return ret


def normalize_db_params(db_params):
    db_connect = db_params.get("db_connect")
    if not db_connect:
        raise Exception("input db_connect must be set")

    db_connect_args = db_params.get("db_connect_args", None) or {}

    if db_connect.startswith("postgresql") and "+pg8000" not in db_connect:
        if "timeout" in db_connect_args:
            timeout = db_connect_args.pop("timeout")
            db_connect_args["connect_timeout"] = int(timeout)
        if "ssl" in db_connect_args:
            ssl = db_connect_args.pop("ssl")
            if ssl:
                db_connect_args["sslmode"] = "require"

    db_params["db_connect_args"] = db_connect_args
    return db_params


def do_create(specific_tables=None, base=Base):
    engine = get_engine()
    try:
        if specific_tables:
            logger.info(
                "Initializing only a subset of tables as requested: {}".format(
                    specific_tables
                )
            )
            base.metadata.create_all(engine, tables=specific_tables)
        else:
            base.metadata.create_all(engine)
    except Exception as err:
        raise Exception("could not create/re-create DB tables - exception: " + str(err))


def initialize(localconfig=None):
    """
    Initialize the db for use

    :param localconfig: the global configuration
    :return:
    """

    # get params from configuration
    db_params = get_params(localconfig)

    # enter loop to try connecting to the DB
    for count in range(0, DB_CONNECT_RETRY_MAX):
        try:
            do_connect(db_params)
            test_connection()
            break
        except Exception as err:
            if count + 1 >= DB_CONNECT_RETRY_MAX:
                raise Exception(
                    "could not establish connection to DB after retries - last exception: "
                    + str(err)
                )
            else:
                logger.warn(
                    "could not connect to/initialize db, retrying in {} seconds - exception: {}".format(
                        DB_CONNECT_RETRY_SLEEP_SECONDS, err
                    )
                )
                time.sleep(DB_CONNECT_RETRY_SLEEP_SECONDS)

    return True


def get_session():
    global Session
    return Session()


@contextmanager
def session_scope():
    """Provide a transactional scope around a series of operations."""
    global Session
    session = Session()

    logger.spew("DB: opening session: " + str(session))
    try:
        yield session
        session.commit()
        logger.spew("DB: committing session: " + str(session))
    except BaseException:
        logger.spew("DB: rollbacking session: " + str(session))
        session.rollback()
        raise
    finally:
        logger.spew("DB: closing session: " + str(session))
        session.close()


@contextmanager
def read_session_scope():
    """
    Session scope for read-only use. Nothing is committed, the session is only guaranteed to be closed after use.
    Objects loaded in the scope keep their loaded attributes once detached.
    """
    global Session
    session = Session()

    logger.spew("DB: opening read session: " + str(session))
    try:
        yield session
    finally:
        logger.spew("DB: closing read session: " + str(session))
        session.close()


def to_utc(dt_obj):
    """
    Normalize a datetime to an aware UTC datetime. Naive values are assumed to already be UTC.
    """
    if dt_obj is None:
        return None
    if dt_obj.tzinfo is None:
        return dt_obj.replace(tzinfo=datetime.timezone.utc)
    return dt_obj.astimezone(datetime.timezone.utc)


class UtcDateTime(types.TypeDecorator):
    """
    Datetime column stored as naive UTC (sqlite has no tz support) and returned as aware UTC so values compare equal
    regardless of the backing dialect.
    """

    impl = types.DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            value = to_utc(value).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        return to_utc(value)
