import datetime
import inspect
import logging
import sys
import threading

from pythonjsonlogger import jsonlogger

DEFAULT_TESTLOG_FORMAT = "[{}] %(asctime)s [-] [%(name)s] [%(levelname)s] %(message)s"
DEFAULT_FORMAT = "%(asctime)s [-] [%(name)s] [%(levelname)s] %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S+0000"

LOGGER_NAME = "vulnstore"

# Below DEBUG, used for per-session db tracing
SPEW = 5
logging.addLevelName(SPEW, "SPEW")

DEFAULT_LOGGERS = [logging.getLogger(), logging.getLogger(LOGGER_NAME)]

SUPPRESSED_LIBRARY_LOGGERS = ["sqlalchemy.engine.Engine", "sqlalchemy.pool"]

_logger = logging.getLogger(LOGGER_NAME)


def enable_test_logging(level="WARN", outfile=None):
    """
    Use the bootstrap logger for logging in test code (as root logger), for
    intercept by pytest etc. This code should *only* ever be called in code
    from tests/

    :return:
    """
    prefix = "test"
    if outfile:
        logging.basicConfig(
            level=level,
            filename=outfile,
            format=DEFAULT_TESTLOG_FORMAT.format(prefix),
            datefmt=DEFAULT_DATE_FORMAT,
        )
    else:
        logging.basicConfig(
            level=level,
            stream=sys.stdout,
            format=DEFAULT_TESTLOG_FORMAT.format(prefix),
            datefmt=DEFAULT_DATE_FORMAT,
        )


def configure_logging(new_log_level, json_logging_enabled=False):
    """
    Setup standard lib logging
    :param new_log_level: a string name of log level, e.g. 'INFO', 'DEBUG'
    :param json_logging_enabled: whether to enable json logging or not
    :return:
    """
    logging.basicConfig(level=new_log_level, force=True)
    for logger in DEFAULT_LOGGERS:
        if json_logging_enabled:
            formatter = VulnStoreJsonLogFormatter()
        else:
            formatter = logging.Formatter(DEFAULT_FORMAT)
            formatter.datefmt = DEFAULT_DATE_FORMAT

        setup_log_handler(new_log_level, logger, formatter)

    # sqlalchemy echo output is only wanted when explicitly requested via db_echo
    for logger_name in SUPPRESSED_LIBRARY_LOGGERS:
        logger = logging.getLogger(logger_name)
        logger.setLevel(logging.WARNING)

    logging.getLogger().info("Logging Configuration complete")


def setup_log_handler(level, logger, formatter):

    logger.handlers = []
    logger.propagate = logger is logging.getLogger()
    log_handler = logging.StreamHandler(sys.stdout)
    log_handler.setFormatter(formatter)
    log_handler.setLevel(level)
    logger.addHandler(log_handler)


class VulnStoreJsonLogFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super(VulnStoreJsonLogFormatter, self).add_fields(
            log_record, record, message_dict
        )
        if not log_record.get("timestamp"):
            # this doesn't use record.created, so it is slightly off
            now = datetime.datetime.now(datetime.timezone.utc).strftime(
                DEFAULT_DATE_FORMAT
            )
            log_record["timestamp"] = now

        if log_record.get("level"):
            log_record["level"] = log_record["level"].upper()
        else:
            log_record["level"] = record.levelname

        thread_name, caller_file, caller_name = self.get_caller_log_data()
        log_record["vulnstore_data"] = {
            "thread": thread_name,
            "file": caller_file,
            "name": caller_name,
        }

    @staticmethod
    def get_caller_log_data():
        tname = threading.current_thread().name
        caller_file = "-"
        caller_name = "-"
        try:
            current_frame = inspect.currentframe()
            outer_frame = inspect.getouterframes(current_frame, 3)
            frame = inspect.stack()[3]
            module = inspect.getmodule(frame[0])
            caller_file = module.__name__
            caller_name = outer_frame[3][3]
        except Exception:
            pass

        return tname, caller_file, caller_name


def spew(msg, *args, **kwargs):
    _logger.log(SPEW, msg, *args, **kwargs)


def debug(msg, *args, **kwargs):
    _logger.debug(msg, *args, **kwargs)


def info(msg, *args, **kwargs):
    _logger.info(msg, *args, **kwargs)


def warn(msg, *args, **kwargs):
    _logger.warning(msg, *args, **kwargs)


def error(msg, *args, **kwargs):
    _logger.error(msg, *args, **kwargs)


def exception(msg, *args, **kwargs):
    _logger.exception(msg, *args, **kwargs)
