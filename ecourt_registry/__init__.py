from .client import EcourtsWebClient
from .errors import (CaptchaRejectedError, NetworkError, ParseError,
                     RegistryError, StorageDecodeError, StorageError)
from .html_parser import (parse_app_token, parse_captcha_image_url,
                          parse_case_details, parse_case_results,
                          parse_complex_options, parse_options,
                          parse_state_options)
from .models import (Captcha, CaptchaChallenge, CaseSummary, ComplexOption,
                     CourtType, Option, RecentEntries, SearchResult,
                     SearchSuccess, Session, TokenResult, TrackedCase,
                     TrackingInfo)
from .poller import StatusPoller, StatusUpdate
from .result import Result
from .tracking_store import (JsonFileBackend, MemoryBackend, SupabaseBackend,
                             TrackingStore, default_tracking_store)

__all__ = [
    "Captcha",
    "CaptchaChallenge",
    "CaptchaRejectedError",
    "CaseSummary",
    "ComplexOption",
    "CourtType",
    "EcourtsWebClient",
    "JsonFileBackend",
    "MemoryBackend",
    "NetworkError",
    "Option",
    "ParseError",
    "RecentEntries",
    "RegistryError",
    "Result",
    "SearchResult",
    "SearchSuccess",
    "Session",
    "StatusPoller",
    "StatusUpdate",
    "StorageDecodeError",
    "StorageError",
    "SupabaseBackend",
    "TokenResult",
    "TrackedCase",
    "TrackingInfo",
    "TrackingStore",
    "default_tracking_store",
    "parse_app_token",
    "parse_captcha_image_url",
    "parse_case_details",
    "parse_case_results",
    "parse_complex_options",
    "parse_options",
    "parse_state_options",
]
