# ride_matcher/common/__init__.py
"""
Общие утилиты, константы, исключения и логгер.
"""

from ride_matcher.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from ride_matcher.common.constants import TypeMsg
from ride_matcher.common.localization import get_text, load_lang_dict

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
    "get_text",
    "load_lang_dict",
]
