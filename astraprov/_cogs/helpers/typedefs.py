"""
Type definitions shared across the codebase.

Some stdlib types are generics only in the type-sheds, not at runtime
(e.g. ``logging.LoggerAdapter``), so they are defined here once and reused.
"""
import logging
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# As publicly exposed: we only promise that it is based on one of the built-in loggable classes.
Logger = Union[logging.Logger, LoggerAdapter]
