"""
Error classification.

Every backend reports failures in its own vocabulary (Youdao "errorCode",
Baidu "error_code", plain HTTP statuses for DeepL/Google/Caiyun). The tables
below fold all of them into one ErrorKind so the dispatcher can treat
backends uniformly.
"""

import logging
from enum import Enum
from typing import Dict, Optional

from .languages import Backend

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    UNSUPPORTED_LANGUAGE_PAIR = "unsupported_language_pair"
    QUERY_REJECTED = "query_rejected"
    TIMEOUT = "timeout"
    NETWORK_FAILURE = "network_failure"
    UNKNOWN = "unknown"


class ProviderError(Exception):
    """A backend answered, but with a documented error code."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or f"error code {code}")
        self.code = str(code)
        self.message = message


# https://ai.youdao.com/DOCSIRMA/html/trans/api/wbfy/index.html (error codes)
YOUDAO_CODES: Dict[str, ErrorKind] = {
    "0": ErrorKind.SUCCESS,
    "102": ErrorKind.UNSUPPORTED_LANGUAGE_PAIR,
    "103": ErrorKind.QUERY_REJECTED,  # Text too long
    "207": ErrorKind.RATE_LIMITED,
    "302": ErrorKind.QUERY_REJECTED,  # Translation query failed, e.g. "con"
    "401": ErrorKind.QUOTA_EXHAUSTED,
    "411": ErrorKind.RATE_LIMITED,
    "412": ErrorKind.RATE_LIMITED,  # Long request too frequent
}

# https://fanyi-api.baidu.com/doc/21
BAIDU_CODES: Dict[str, ErrorKind] = {
    "0": ErrorKind.SUCCESS,  # Language detection endpoint
    "52000": ErrorKind.SUCCESS,
    "52001": ErrorKind.TIMEOUT,
    "52002": ErrorKind.NETWORK_FAILURE,  # System error, retry later
    "54000": ErrorKind.QUERY_REJECTED,  # Missing required parameter
    "54003": ErrorKind.RATE_LIMITED,
    "54004": ErrorKind.QUOTA_EXHAUSTED,
    "54005": ErrorKind.RATE_LIMITED,  # Long query too frequent
    "58001": ErrorKind.UNSUPPORTED_LANGUAGE_PAIR,
}

# https://www.deepl.com/docs-api/api-access/general-information
DEEPL_CODES: Dict[str, ErrorKind] = {
    "400": ErrorKind.QUERY_REJECTED,
    "413": ErrorKind.QUERY_REJECTED,
    "456": ErrorKind.QUOTA_EXHAUSTED,
}

CAIYUN_CODES: Dict[str, ErrorKind] = {
    "400": ErrorKind.QUERY_REJECTED,
    "402": ErrorKind.QUOTA_EXHAUSTED,
}

GOOGLE_CODES: Dict[str, ErrorKind] = {
    "400": ErrorKind.QUERY_REJECTED,
}

# Shared fallback for transport-level statuses, consulted after the backend table.
HTTP_STATUS_CODES: Dict[str, ErrorKind] = {
    "408": ErrorKind.TIMEOUT,
    "429": ErrorKind.RATE_LIMITED,
    "502": ErrorKind.NETWORK_FAILURE,
    "503": ErrorKind.NETWORK_FAILURE,
    "504": ErrorKind.TIMEOUT,
}

BACKEND_CODES: Dict[Backend, Dict[str, ErrorKind]] = {
    Backend.YOUDAO: YOUDAO_CODES,
    Backend.BAIDU: BAIDU_CODES,
    Backend.DEEPL: DEEPL_CODES,
    Backend.CAIYUN: CAIYUN_CODES,
    Backend.GOOGLE: GOOGLE_CODES,
}

ERROR_MESSAGES: Dict[Backend, Dict[str, str]] = {
    Backend.YOUDAO: {
        "0": "Success",
        "102": "Target language not supported",
        "103": "Query text too long",
        "207": "Access frequency limited",
        "302": "Translation query failed",
        "401": "Insufficient account balance",
        "411": "Access frequency limited",
    },
    Backend.BAIDU: {
        "52000": "Success",
        "52001": "Request timed out",
        "52002": "System error",
        "54003": "Access frequency limited",
        "54004": "Insufficient account balance",
        "54005": "Long query too frequent",
        "58001": "Target language not supported",
    },
    Backend.DEEPL: {
        "456": "Quota exceeded",
    },
}

KIND_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.SUCCESS: "Success",
    ErrorKind.RATE_LIMITED: "Too many requests",
    ErrorKind.QUOTA_EXHAUSTED: "Quota exhausted",
    ErrorKind.UNSUPPORTED_LANGUAGE_PAIR: "Language pair not supported",
    ErrorKind.QUERY_REJECTED: "Query rejected",
    ErrorKind.TIMEOUT: "Request timed out",
    ErrorKind.NETWORK_FAILURE: "Network failure",
    ErrorKind.UNKNOWN: "Unknown error",
}


def classify(backend: Backend, raw_code: Optional[str]) -> ErrorKind:
    """Map a backend-specific status/error code to an ErrorKind. Never raises."""
    if raw_code is None:
        return ErrorKind.UNKNOWN
    code = str(raw_code).strip()
    kind = BACKEND_CODES.get(backend, {}).get(code) or HTTP_STATUS_CODES.get(code)
    if kind is None:
        logger.warning("Unmapped %s error code %r, classified as unknown", backend.value, code)
        return ErrorKind.UNKNOWN
    return kind


def describe(backend: Backend, raw_code: Optional[str], kind: ErrorKind) -> str:
    """Human-readable message for a failure, preferring the backend's own wording."""
    if raw_code is not None:
        message = ERROR_MESSAGES.get(backend, {}).get(str(raw_code))
        if message:
            return message
    return KIND_MESSAGES[kind]
