# Configuration settings are stored as class variables of SARest
# Environment variables with the same name take precedence, get_config handles the lookup
import os
import sys
import math
import logging
from functools import lru_cache
from typing import Any, Optional


class SARest:
    """Default configuration of the request handler

    The values can be changed by assigning the class variables before a RequestHandler is created,
    or by setting an environment variable with the same name.
    """

    # Default page[limit], also the maximum page size a client can request
    # math.inf disables pagination
    DEFAULT_PAGE_SIZE = 100
    JSONAPI_VERSION = "1.1"
    LOGLEVEL = logging.WARNING
    # Integers outside this range can't be represented by javascript clients and are sent as strings
    MAX_SAFE_INTEGER = 2**53 - 1

    @staticmethod
    def init_logging(loglevel: int = logging.WARNING) -> logging.Logger:
        """
        Specify the log format used in the request handler logs
        The host server will catch stderr so we redirect eveything there
        """
        log = logging.getLogger("sarest")
        if log.level == logging.NOTSET:
            handler = logging.StreamHandler(sys.stderr)
            formatter = logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s")
            handler.setFormatter(formatter)
            log.setLevel(loglevel)
            log.addHandler(handler)
        return log


def _parse_env_value(raw: str, default: Any) -> Any:
    """Convert an environment variable string to the type of the default setting"""
    if isinstance(default, bool):
        return raw.lower() in ("1", "true", "yes")
    if isinstance(default, (int, float)):
        if raw.lower() in ("inf", "infinity"):
            return math.inf
        return int(raw) if raw.lstrip("-").isdigit() else float(raw)
    return raw


@lru_cache(maxsize=128)
def get_config(option: str) -> Optional[Any]:
    """Retrieve a configuration parameter
    :param option: configuration parameter name, eg. "DEFAULT_PAGE_SIZE"
    :return: configuration value, None if the option doesn't exist
    """
    default = getattr(SARest, option, None)
    raw = os.environ.get(option, None)
    if raw is None:
        return default
    try:
        return _parse_env_value(raw, default)
    except ValueError:
        log.warning(f'Invalid value for {option} in the environment: "{raw}"')
        return default


def is_debug() -> bool:
    """
    We use the loglevel to check whether we're running in debug mode
    :return: whether the handler is in debug mode
    """
    return log.getEffectiveLevel() < logging.INFO


try:
    DEBUG = os.getenv("DEBUG", logging.WARNING)
    LOGLEVEL = int(DEBUG)
except ValueError:  # pragma: no cover
    print(f'Invalid LogLevel in DEBUG Environment Variable! "{DEBUG}"')
    LOGLEVEL = logging.INFO

log = SARest.init_logging(LOGLEVEL)
