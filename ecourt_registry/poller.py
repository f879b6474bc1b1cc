import asyncio
import logging
import re
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from .client import EcourtsWebClient
from .errors import (CaptchaRejectedError, ParseError, RegistryError,
                     StorageError)
from .html_parser import parse_case_details, parse_case_results
from .models import Captcha, CaseSummary, SearchSuccess, TrackingInfo
from .result import Result
from .tracking_store import TrackingStore

logger = logging.getLogger(__name__)

# Shows the captcha to a person and returns what they typed; None or "" gives up.
CaptchaSolver = Callable[[Captcha], Optional[str]]


class StatusUpdate(BaseModel):
    case_id: str
    previous_stage: Optional[str] = None
    previous_next_date: Optional[str] = None
    stage: Optional[str] = None
    next_date: Optional[str] = None
    summary: Optional[CaseSummary] = None

    @property
    def changed(self) -> bool:
        return self.stage != self.previous_stage or self.next_date != self.previous_next_date


def _case_tokens(value: str) -> List[str]:
    return [part.lstrip("0") or "0" for part in re.split(r"[\s/\-]+", value or "") if part]


def match_summary(summaries: List[CaseSummary], info: TrackingInfo) -> Optional[CaseSummary]:
    """Pick the result row for the tracked case number and year."""
    wanted_number = (info.case_number or "").strip().lstrip("0") or "0"
    for summary in summaries:
        tokens = _case_tokens(summary.case_number)
        if wanted_number in tokens and (not info.year or info.year in tokens):
            return summary
    if len(summaries) == 1:
        return summaries[0]
    return None


class StatusPoller:
    """
    Re-checks stage and next hearing date for tracked cases.

    Each case runs its own chain (session, captcha, search) on a fresh client,
    so concurrent polls never share a token lineage. `max_attempts` bounds how
    many captchas are tried per case.
    """

    def __init__(
        self,
        store: TrackingStore,
        captcha_solver: CaptchaSolver,
        client_factory: Callable[[], EcourtsWebClient] = EcourtsWebClient,
        max_attempts: int = 1,
    ):
        self.store = store
        self.captcha_solver = captcha_solver
        self.client_factory = client_factory
        self.max_attempts = max(1, max_attempts)

    def _search(self, client: EcourtsWebClient, info: TrackingInfo) -> Result[SearchSuccess]:
        session = client.fetch_session()
        if not session.ok:
            return Result.failure(session.error, session.msg)

        captcha_result = client.fetch_captcha(session.data.token)
        for attempt in range(1, self.max_attempts + 1):
            if not captcha_result.ok:
                return Result.failure(captcha_result.error, captcha_result.msg)
            captcha = captcha_result.data

            captcha_text = (self.captcha_solver(captcha) or "").strip()
            if not captcha_text:
                return Result.failure(CaptchaRejectedError("No captcha text entered"))

            result = client.search(
                captcha.token,
                info.state_code,
                info.district_code,
                info.court_code,
                info.establishment_code,
                info.case_type_code,
                info.case_number,
                info.year,
                captcha_text,
            )
            if not result.ok:
                return Result.failure(result.error, result.msg)

            outcome = result.data.outcome()
            if isinstance(outcome, SearchSuccess):
                return Result.success(outcome)

            logger.info(
                "Captcha rejected for case %s/%s (attempt %s of %s)",
                info.case_number,
                info.year,
                attempt,
                self.max_attempts,
            )
            if outcome.captcha.image_bytes:
                captcha_result = Result.success(outcome.captcha)
            else:
                captcha_result = client.fetch_captcha(outcome.token)

        return Result.failure(
            CaptchaRejectedError(f"Captcha rejected {self.max_attempts} time(s)")
        )

    def poll_case(self, case_id: str) -> Result[StatusUpdate]:
        info = self.store.get(case_id)
        if info is None:
            return Result.failure(StorageError(f"Case {case_id} is not tracked"))

        with self.client_factory() as client:
            return self._poll_with_client(client, case_id, info)

    def _poll_with_client(
        self, client: EcourtsWebClient, case_id: str, info: TrackingInfo
    ) -> Result[StatusUpdate]:
        searched = self._search(client, info)
        if not searched.ok:
            logger.warning("Status check for case %s failed: %s", case_id, searched.msg)
            return Result.failure(searched.error, searched.msg)

        success = searched.data
        summaries = parse_case_results(
            success.case_html,
            case_number=info.case_number,
            court_name=info.court_name,
            court_type=info.court_type,
        )
        summary = match_summary(summaries, info)
        if summary is None:
            msg = f"Case {info.case_number}/{info.year} not found in search result"
            logger.warning("Status check for case %s: %s", case_id, msg)
            return Result.failure(ParseError(msg))

        stage = summary.stage or None
        next_date = summary.next_hearing_date or None
        detail_link = summary.details_params or summary.detail_link
        if detail_link and not (stage and next_date):
            details = client.fetch_case_details(success.token, detail_link)
            if details.ok:
                tracked = parse_case_details(details.data.data, summary, track_id=case_id, year=info.year)
                stage = stage or tracked.stage
                next_date = next_date or tracked.next_hearing_date
            else:
                logger.info("Case %s detail page unavailable: %s", case_id, details.msg)

        stage = stage or info.last_stage
        next_date = next_date or info.last_next_date
        saved = self.store.update_status(case_id, stage, next_date)
        if not saved.ok:
            return Result.failure(saved.error, saved.msg)

        update = StatusUpdate(
            case_id=case_id,
            previous_stage=info.last_stage,
            previous_next_date=info.last_next_date,
            stage=stage,
            next_date=next_date,
            summary=summary,
        )
        if update.changed:
            logger.info(
                "Case %s changed: stage %s -> %s, next date %s -> %s",
                case_id,
                info.last_stage,
                stage,
                info.last_next_date,
                next_date,
            )
        return Result.success(update)

    async def poll_all(self) -> Dict[str, Result[StatusUpdate]]:
        case_ids = list(self.store.get_all())
        if not case_ids:
            return {}

        outcomes = await asyncio.gather(
            *(asyncio.to_thread(self.poll_case, case_id) for case_id in case_ids),
            return_exceptions=True,
        )
        results: Dict[str, Result[StatusUpdate]] = {}
        for case_id, outcome in zip(case_ids, outcomes):
            if isinstance(outcome, Exception):
                logger.error("Status check for case %s raised: %s", case_id, outcome, exc_info=outcome)
                results[case_id] = Result.failure(RegistryError(str(outcome)))
            else:
                results[case_id] = outcome
        return results
