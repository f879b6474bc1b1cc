import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple, Union

from pydantic import ValidationError

from supabase import Client, create_client

from . import config
from .errors import StorageDecodeError, StorageError
from .models import CourtType, RecentEntries, TrackingInfo
from .result import Result

logger = logging.getLogger(__name__)

PREFIX = "ecourt_tracking_"
DELIMITER = "||"
FIELD_COUNT = 10
FIELD_COUNT_WITH_ESTABLISHMENT = 11

RECENT_DELIMITER = "|"
RECENT_LIMIT = 6
KEY_RECENT_STATE_CODES = "ecourt_recent_state_codes"
KEY_RECENT_DISTRICT_CODES = "ecourt_recent_district_codes"
KEY_RECENT_COURT_CODES = "ecourt_recent_court_codes"
KEY_RECENT_CASE_TYPES = "ecourt_recent_case_types"
KEY_LAST_APP_TOKEN = "ecourt_last_app_token"


class KeyValueBackend(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def items(self, prefix: str = "") -> Iterable[Tuple[str, str]]: ...


class MemoryBackend:
    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def items(self, prefix: str = "") -> Iterable[Tuple[str, str]]:
        return [(key, value) for key, value in self.data.items() if key.startswith(prefix)]


class JsonFileBackend:
    """All keys in one JSON object on disk, rewritten whole on every change."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise StorageError(f"{self.path} does not hold a JSON object")
        return data

    def _dump(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._dump(data)

    def items(self, prefix: str = "") -> Iterable[Tuple[str, str]]:
        return [
            (key, value)
            for key, value in self._load().items()
            if key.startswith(prefix) and isinstance(value, str)
        ]


def get_supabase_client() -> Client:
    if not config.SUPABASE_URL or not config.SUPABASE_KEY:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set.")
    return create_client(config.SUPABASE_URL, config.SUPABASE_KEY)


class SupabaseBackend:
    """Key/value rows in a Supabase table with `key` (primary key) and `value` text columns."""

    def __init__(self, client: Optional[Client] = None, table: Optional[str] = None):
        self.client = client or get_supabase_client()
        self.table = table or config.TRACKING_TABLE

    def get(self, key: str) -> Optional[str]:
        result = self.client.table(self.table).select("value").eq("key", key).limit(1).execute()
        if result.data:
            return result.data[0].get("value")
        return None

    def set(self, key: str, value: str) -> None:
        self.client.table(self.table).upsert({"key": key, "value": value}).execute()

    def delete(self, key: str) -> None:
        self.client.table(self.table).delete().eq("key", key).execute()

    def items(self, prefix: str = "") -> Iterable[Tuple[str, str]]:
        query = self.client.table(self.table).select("key,value")
        if prefix:
            query = query.like("key", f"{prefix}%")
        result = query.execute()
        return [(row.get("key"), row.get("value")) for row in result.data or []]


def serialize_tracking_info(info: TrackingInfo) -> str:
    fields = [
        info.state_code,
        info.district_code,
        info.court_code,
        info.case_type_code,
        info.case_number,
        info.year,
        info.court_name,
        info.court_type.value if info.court_type else "",
        info.last_stage or "",
        info.last_next_date or "",
    ]
    if info.establishment_code:
        fields.insert(3, info.establishment_code)
    for field in fields:
        # "|" at a field edge merges with the delimiter and shifts the split
        if DELIMITER in field or field.startswith("|") or field.endswith("|"):
            raise ValueError(f"Tracking field may not contain '||' or start/end with '|': {field!r}")
    return DELIMITER.join(fields)


def deserialize_tracking_info(raw: str) -> TrackingInfo:
    """
    Decode a stored record. Ten fields is the plain shape; eleven or more
    carries the establishment code as the fourth field, and anything past the
    eleventh is ignored so records written by newer versions still read.
    """
    parts = (raw or "").split(DELIMITER)
    if len(parts) < FIELD_COUNT:
        raise StorageDecodeError(f"Expected at least {FIELD_COUNT} fields, got {len(parts)}")

    establishment_code = None
    if len(parts) >= FIELD_COUNT_WITH_ESTABLISHMENT:
        parts = parts[:FIELD_COUNT_WITH_ESTABLISHMENT]
        establishment_code = parts.pop(3) or None

    (state_code, district_code, court_code, case_type_code, case_number, year,
     court_name, court_type, last_stage, last_next_date) = parts
    try:
        return TrackingInfo(
            state_code=state_code,
            district_code=district_code,
            court_code=court_code,
            case_type_code=case_type_code,
            case_number=case_number,
            year=year,
            court_name=court_name,
            court_type=CourtType(court_type) if court_type else None,
            last_stage=last_stage or None,
            last_next_date=last_next_date or None,
            establishment_code=establishment_code,
        )
    except (ValueError, ValidationError) as exc:
        raise StorageDecodeError(f"Invalid tracking record: {exc}") from exc


def _decode_list(raw: Optional[str]) -> List[str]:
    if not raw or not raw.strip():
        return []
    return [item.strip() for item in raw.split(RECENT_DELIMITER) if item.strip()]


def _update_list(existing: Optional[str], value: str) -> str:
    trimmed = (value or "").strip()
    if not trimmed:
        return existing or ""
    items = [item for item in _decode_list(existing) if item.lower() != trimmed.lower()]
    items.insert(0, trimmed)
    return RECENT_DELIMITER.join(items[:RECENT_LIMIT])


class TrackingStore:
    """
    Persists a `TrackingInfo` per tracked case under `ecourt_tracking_<case_id>`.

    `update_status` is a plain read-modify-write: two workers updating the same
    case concurrently race and the last writer wins.
    """

    def __init__(self, backend: Optional[KeyValueBackend] = None):
        self.backend = backend if backend is not None else MemoryBackend()

    @staticmethod
    def key(case_id: str) -> str:
        return f"{PREFIX}{case_id}"

    def save(self, case_id: str, info: TrackingInfo) -> Result[None]:
        try:
            self.backend.set(self.key(case_id), serialize_tracking_info(info))
        except Exception as exc:
            logger.warning("Failed to save tracking info for case %s: %s", case_id, exc)
            return Result.failure(StorageError(str(exc)), f"Failed to save tracking info for {case_id}")
        return Result.success()

    def update_status(
        self, case_id: str, stage: Optional[str], next_date: Optional[str]
    ) -> Result[None]:
        current = self.get(case_id)
        if current is None:
            logger.debug("No tracking info for case %s, skipping status update", case_id)
            return Result.success()
        updated = current.model_copy(
            update={"last_stage": stage or None, "last_next_date": next_date or None}
        )
        return self.save(case_id, updated)

    def get(self, case_id: str) -> Optional[TrackingInfo]:
        try:
            raw = self.backend.get(self.key(case_id))
        except Exception as exc:
            logger.warning("Failed to read tracking info for case %s: %s", case_id, exc)
            return None
        if raw is None:
            return None
        try:
            return deserialize_tracking_info(raw)
        except StorageDecodeError as exc:
            logger.warning("Discarding tracking record for case %s: %s", case_id, exc)
            return None

    def get_all(self) -> Dict[str, TrackingInfo]:
        try:
            rows = list(self.backend.items(PREFIX))
        except Exception as exc:
            logger.warning("Failed to list tracking records: %s", exc)
            return {}

        tracked: Dict[str, TrackingInfo] = {}
        for key, value in rows:
            if not key or not key.startswith(PREFIX) or not isinstance(value, str):
                continue
            case_id = key[len(PREFIX):]
            try:
                tracked[case_id] = deserialize_tracking_info(value)
            except StorageDecodeError as exc:
                logger.warning("Skipping tracking record %s: %s", key, exc)
        return tracked

    def delete(self, case_id: str) -> Result[None]:
        try:
            self.backend.delete(self.key(case_id))
        except Exception as exc:
            logger.warning("Failed to delete tracking info for case %s: %s", case_id, exc)
            return Result.failure(StorageError(str(exc)), f"Failed to delete tracking info for {case_id}")
        return Result.success()

    def recent_entries(self) -> RecentEntries:
        try:
            return RecentEntries(
                state_codes=_decode_list(self.backend.get(KEY_RECENT_STATE_CODES)),
                district_codes=_decode_list(self.backend.get(KEY_RECENT_DISTRICT_CODES)),
                court_codes=_decode_list(self.backend.get(KEY_RECENT_COURT_CODES)),
                case_type_codes=_decode_list(self.backend.get(KEY_RECENT_CASE_TYPES)),
            )
        except Exception as exc:
            logger.warning("Failed to read recent entries: %s", exc)
            return RecentEntries()

    def save_recent_entries(
        self, state_code: str, district_code: str, court_code: str, case_type_code: str
    ) -> Result[None]:
        try:
            for key, value in (
                (KEY_RECENT_STATE_CODES, state_code),
                (KEY_RECENT_DISTRICT_CODES, district_code),
                (KEY_RECENT_COURT_CODES, court_code),
                (KEY_RECENT_CASE_TYPES, case_type_code),
            ):
                self.backend.set(key, _update_list(self.backend.get(key), value))
        except Exception as exc:
            logger.warning("Failed to save recent entries: %s", exc)
            return Result.failure(StorageError(str(exc)), "Failed to save recent entries")
        return Result.success()

    def save_last_app_token(self, token: str) -> Result[None]:
        try:
            self.backend.set(KEY_LAST_APP_TOKEN, token)
        except Exception as exc:
            logger.warning("Failed to save last app token: %s", exc)
            return Result.failure(StorageError(str(exc)), "Failed to save last app token")
        return Result.success()

    def get_last_app_token(self) -> Optional[str]:
        try:
            return self.backend.get(KEY_LAST_APP_TOKEN)
        except Exception as exc:
            logger.warning("Failed to read last app token: %s", exc)
            return None


def default_tracking_store() -> TrackingStore:
    """Supabase when credentials are configured, otherwise the local JSON file."""
    if config.SUPABASE_URL and config.SUPABASE_KEY:
        return TrackingStore(SupabaseBackend())
    return TrackingStore(JsonFileBackend(config.TRACKING_FILE))
