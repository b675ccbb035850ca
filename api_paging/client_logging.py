import logging
import json
import os

from typing import Any, Dict, List, Optional

_LOGGING_INITIALIZED = False
_BASE_LOGGER_NAME = "api_paging"
_LOGGING_SCOPE_ENV = "API_PAGING_LOGGING_SCOPE"

_recognized_logging_fields = [
    "pageNumber",
    "pageToken",
    "pageSize",
    "numItems",
    "rpcName",
]  # Additional fields to be Logged.


def logger_configured(logger):
    return (
        logger.handlers != [] or logger.level != logging.NOTSET or not logger.propagate
    )


def initialize_logging():
    global _LOGGING_INITIALIZED
    if _LOGGING_INITIALIZED:
        return
    scopes = os.getenv(_LOGGING_SCOPE_ENV, "")
    setup_logging(scopes)
    _LOGGING_INITIALIZED = True


def parse_logging_scopes(scopes: Optional[str] = None) -> List[str]:
    """Split a comma separated list of logger names.

    ``"api_paging.page_iterator, api_paging.grpc_helpers"`` enables logging
    for both modules. Blank entries are ignored.
    """
    if not scopes:
        return []
    return [scope.strip() for scope in scopes.split(",") if scope.strip()]


def configure_defaults(logger):
    if not logger_configured(logger):
        console_handler = logging.StreamHandler()
        logger.setLevel("DEBUG")
        logger.propagate = False
        formatter = StructuredLogFormatter()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)


def setup_logging(scopes=""):

    for namespace in parse_logging_scopes(scopes):
        # Either a module level logger or the base logger itself.
        logger = logging.getLogger(namespace)

        # Configure default settings.
        configure_defaults(logger)

    # disable log propagation at base logger level to the root logger only if a base logger is not already configured via code changes.
    base_logger = logging.getLogger(_BASE_LOGGER_NAME)
    if not logger_configured(base_logger):
        base_logger.propagate = False


def page_fields(
    page_number: Optional[int] = None,
    page_token: Optional[str] = None,
    page_size: Optional[int] = None,
    num_items: Optional[int] = None,
    rpc_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the ``extra`` mapping of a paging log record.

    Unset values are left out, so the formatter only emits what is known.
    """
    fields = {
        "pageNumber": page_number,
        "pageToken": page_token,
        "pageSize": page_size,
        "numItems": num_items,
        "rpcName": rpc_name,
    }
    return {name: value for name, value in fields.items() if value is not None}


class StructuredLogFormatter(logging.Formatter):
    def format(self, record):
        log_obj = {
            "timestamp": self.formatTime(record),
            "severity": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        for field_name in _recognized_logging_fields:
            value = getattr(record, field_name, None)
            if value is not None:
                log_obj[field_name] = value
        return json.dumps(log_obj)
