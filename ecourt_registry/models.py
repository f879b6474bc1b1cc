from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


class CourtType(str, Enum):
    DISTRICT = "DISTRICT"
    HIGH = "HIGH"
    SUPREME = "SUPREME"
    TRIBUNAL = "TRIBUNAL"


class Option(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    label: str


class ComplexOption(BaseModel):
    """
    A court complex entry. The registry packs three values into the option
    value as `complex_code@court_codes@Y`.
    """

    model_config = ConfigDict(frozen=True)

    complex_code: str
    court_codes: str = ""
    requires_establishment: bool = False
    label: str


class Session(BaseModel):
    token: str
    states: List[Option] = []


class TokenResult(BaseModel, Generic[T]):
    """Every lookup re-issues the token; `token` is the only one valid for the next call."""

    token: str
    data: T


class Captcha(BaseModel):
    token: str
    image_url: str
    image_bytes: bytes = b""


class SearchSuccess(BaseModel):
    kind: Literal["success"] = "success"
    token: str
    case_html: str


class CaptchaChallenge(BaseModel):
    """The registry refused the search and handed back a fresh captcha."""

    kind: Literal["captcha"] = "captcha"
    token: str
    captcha: Captcha


SearchOutcome = Annotated[Union[SearchSuccess, CaptchaChallenge], Field(discriminator="kind")]


class SearchResult(BaseModel):
    token: str
    case_html: str = ""
    captcha_image_url: Optional[str] = None
    captcha_image_bytes: Optional[bytes] = None

    @property
    def is_challenge(self) -> bool:
        return bool(self.captcha_image_url or self.captcha_image_bytes)

    @property
    def is_success(self) -> bool:
        return not self.is_challenge and bool(self.case_html.strip())

    def outcome(self) -> Union[SearchSuccess, CaptchaChallenge]:
        if self.is_challenge:
            return CaptchaChallenge(
                token=self.token,
                captcha=Captcha(
                    token=self.token,
                    image_url=self.captcha_image_url or "",
                    image_bytes=self.captcha_image_bytes or b"",
                ),
            )
        return SearchSuccess(token=self.token, case_html=self.case_html)


class CaseSummary(BaseModel):
    """One row of the case-number search result table."""

    case_number: str
    case_title: str
    parties: str = ""
    next_hearing_date: str = ""
    stage: str = ""
    court_name: str = ""
    court_type: Optional[CourtType] = None
    client_name: str = ""
    cino: Optional[str] = None
    details_params: Optional[Dict[str, str]] = None
    detail_link: Optional[str] = None


class TrackedCase(BaseModel):
    model_config = ConfigDict(frozen=True)

    track_id: str
    case_title: str
    case_number: str
    year: str = ""
    court_name: str = ""
    court_type: Optional[CourtType] = None
    parties: str = ""
    stage: Optional[str] = None
    next_hearing_date: Optional[str] = None
    case_details: List[str] = []
    case_status: List[str] = []
    petitioner_advocate: List[str] = []
    respondent_advocate: List[str] = []
    acts: List[str] = []
    case_history: List[str] = []
    transfer_details: List[str] = []
    created_at: datetime = Field(default_factory=datetime.now)


class TrackingInfo(BaseModel):
    """
    What is needed to re-run a status check for one tracked case without the
    dropdown lookups. Only `last_stage` and `last_next_date` change after creation.
    """

    model_config = ConfigDict(frozen=True)

    state_code: str
    district_code: str
    court_code: str
    case_type_code: str
    case_number: str
    year: str
    court_name: str = ""
    court_type: Optional[CourtType] = None
    last_stage: Optional[str] = None
    last_next_date: Optional[str] = None
    establishment_code: Optional[str] = None

    @field_validator("state_code", "district_code", "court_code", "case_type_code")
    @classmethod
    def _code_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("code must not be blank")
        return value

    @field_validator("last_stage", "last_next_date", "establishment_code", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class RecentEntries(BaseModel):
    state_codes: List[str] = []
    district_codes: List[str] = []
    court_codes: List[str] = []
    case_type_codes: List[str] = []
