import logging
from typing import Any, Dict, List, Mapping, Optional, Union

import requests
import urllib3
from tenacity import (retry, retry_if_exception_type, stop_after_attempt,
                      wait_exponential)

from . import config
from .errors import NetworkError, ParseError, RegistryError
from .html_parser import (parse_app_token, parse_captcha_image_url,
                          parse_complex_options, parse_options,
                          parse_state_options, resolve_url)
from .models import (Captcha, ComplexOption, Option, SearchResult, Session,
                     TokenResult)
from .result import Result

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
logger = logging.getLogger(__name__)

_transport_retry = retry(
    retry=retry_if_exception_type(
        (requests.exceptions.ConnectionError, requests.exceptions.Timeout)
    ),
    stop=stop_after_attempt(config.HTTP_RETRIES),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _build_session() -> requests.Session:
    new_session = requests.Session()
    new_session.headers.update({
        "User-Agent": config.USER_AGENT,
        "Accept": "*/*",
        "Accept-Language": "en-US,en;q=0.9",
        "X-Requested-With": "XMLHttpRequest",
    })
    return new_session


def _is_ok(payload: Dict[str, Any]) -> bool:
    return str(payload.get("status")).strip().lower() in ("1", "true")


class EcourtsWebClient:
    """
    Client for the services.ecourts.gov.in case-status pages.

    Every lookup re-issues the `app_token`. The client never holds on to it:
    each call takes the token returned by the previous step and hands back the
    next one, so a chain is fully described by the values the caller threads
    through. One client (one cookie jar) per chain.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        origin: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.base_url = (base_url or config.ECOURTS_BASE_URL).rstrip("/")
        self.origin = (origin or config.ECOURTS_ORIGIN).rstrip("/")
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self._owns_session = session is None
        self.session = session or _build_session()

    def close(self) -> None:
        """Release the connection pool. A session passed in by the caller is left open."""
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "EcourtsWebClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/?p={path}"

    @_transport_retry
    def _get(self, url: str, timeout: Optional[int] = None, **kwargs) -> requests.Response:
        response = self.session.get(
            url, verify=config.VERIFY_SSL, timeout=timeout or self.timeout, **kwargs
        )
        response.raise_for_status()
        return response

    def _post(self, path: str, token: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        form = dict(data or {})
        form["app_token"] = token
        form["ajax_req"] = "true"
        try:
            response = self.session.post(
                self._url(path), data=form, verify=config.VERIFY_SSL, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            raise NetworkError(f"Request to {path} failed: {exc}", status_code) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(f"Invalid JSON response from {path}") from exc
        if not isinstance(payload, dict):
            raise ParseError(f"Unexpected response shape from {path}")
        return payload

    def _fetch_image(self, url: str) -> Optional[bytes]:
        try:
            return self._get(url, timeout=config.CAPTCHA_TIMEOUT).content
        except requests.exceptions.RequestException as exc:
            logger.error("Failed to fetch captcha image %s: %s", url, exc)
            return None

    def _lookup(self, path: str, token: str, data: Dict[str, Any], field: str, parser, label: str) -> Result:
        try:
            payload = self._post(path, token, data)
        except RegistryError as exc:
            logger.warning("Failed to load %s: %s", label, exc)
            return Result.failure(exc, f"Failed to load {label}")

        if not _is_ok(payload):
            msg = payload.get("errormsg") or f"Failed to load {label}"
            logger.warning("Registry rejected %s lookup: %s", label, msg)
            return Result.failure(NetworkError(msg), msg)

        new_token = payload.get("app_token") or token
        return Result.success(TokenResult(token=new_token, data=parser(payload.get(field) or "")))

    # -- lookup chain -----------------------------------------------------

    def fetch_session(self) -> Result[Session]:
        """Load the case-status landing page for a fresh token and the state list."""
        try:
            response = self._get(self._url("casestatus/index"))
        except requests.exceptions.RequestException as exc:
            logger.error("Failed to load eCourts session: %s", exc)
            status_code = exc.response.status_code if exc.response is not None else None
            return Result.failure(
                NetworkError(f"Failed to load eCourts session: {exc}", status_code)
            )

        markup = response.text
        token = parse_app_token(markup)
        if not token:
            logger.error("Could not find app_token in case-status page")
            return Result.failure(ParseError("eCourts session token missing"))
        return Result.success(Session(token=token, states=parse_state_options(markup)))

    def fetch_districts(self, token: str, state_code: str) -> Result[TokenResult[List[Option]]]:
        return self._lookup(
            "casestatus/fillDistrict",
            token,
            {"state_code": state_code},
            "dist_list",
            parse_options,
            "districts",
        )

    def fetch_court_complexes(
        self, token: str, state_code: str, district_code: str
    ) -> Result[TokenResult[List[ComplexOption]]]:
        return self._lookup(
            "casestatus/fillcomplex",
            token,
            {"state_code": state_code, "dist_code": district_code},
            "complex_list",
            parse_complex_options,
            "court complexes",
        )

    def fetch_establishments(
        self, token: str, state_code: str, district_code: str, court_complex_code: str
    ) -> Result[TokenResult[List[Option]]]:
        """Only meaningful for complexes whose `requires_establishment` is set."""
        return self._lookup(
            "casestatus/fillCourtEstablishment",
            token,
            {
                "state_code": state_code,
                "dist_code": district_code,
                "court_complex_code": court_complex_code,
            },
            "establishment_list",
            parse_options,
            "establishments",
        )

    def fetch_case_types(
        self,
        token: str,
        state_code: str,
        district_code: str,
        court_complex_code: str,
        establishment_code: Optional[str] = None,
    ) -> Result[TokenResult[List[Option]]]:
        return self._lookup(
            "casestatus/fillCaseType",
            token,
            {
                "state_code": state_code,
                "dist_code": district_code,
                "court_complex_code": court_complex_code,
                "est_code": establishment_code or "",
                "search_type": "c_no",
            },
            "casetype_list",
            parse_options,
            "case types",
        )

    # -- captcha and search -----------------------------------------------

    def fetch_captcha(self, token: str) -> Result[Captcha]:
        try:
            payload = self._post("casestatus/getCaptcha", token)
        except RegistryError as exc:
            logger.warning("Failed to load captcha: %s", exc)
            return Result.failure(exc, "Failed to load captcha")

        image_url = parse_captcha_image_url(payload.get("div_captcha") or "", self.origin)
        if not image_url:
            msg = payload.get("errormsg") or "Failed to load captcha"
            return Result.failure(ParseError(msg), msg)

        image = self._fetch_image(image_url)
        if image is None:
            return Result.failure(NetworkError(f"Failed to fetch captcha image {image_url}"))

        new_token = payload.get("app_token") or token
        return Result.success(Captcha(token=new_token, image_url=image_url, image_bytes=image))

    def search(
        self,
        token: str,
        state_code: str,
        district_code: str,
        court_complex_code: str,
        establishment_code: Optional[str],
        case_type_code: str,
        case_number: str,
        year: str,
        captcha_text: str,
    ) -> Result[SearchResult]:
        """
        Submit a case-number search.

        A rejected search (wrong captcha, stale token) is still a successful
        call: the result carries the re-issued captcha and its token, and the
        caller restarts from the captcha step with that token. There is no
        retry here.
        """
        data = {
            "state_code": state_code,
            "dist_code": district_code,
            "court_complex_code": court_complex_code,
            "est_code": establishment_code or "",
            "case_type": case_type_code,
            "case_no": case_number,
            "search_case_no": case_number,
            "rgyear": year,
            "case_captcha_code": captcha_text,
        }
        try:
            payload = self._post("casestatus/submitCaseNo", token, data)
        except RegistryError as exc:
            logger.warning("eCourts search failed: %s", exc)
            return Result.failure(exc, "eCourts search failed")

        new_token = payload.get("app_token") or token
        case_html = payload.get("case_data") or ""
        captcha_url = parse_captcha_image_url(payload.get("div_captcha") or "", self.origin)
        if captcha_url:
            logger.info("Search for case %s/%s rejected, captcha re-issued", case_number, year)
            return Result.success(
                SearchResult(
                    token=new_token,
                    case_html=case_html,
                    captcha_image_url=captcha_url,
                    captcha_image_bytes=self._fetch_image(captcha_url),
                )
            )

        if not _is_ok(payload):
            msg = payload.get("errormsg") or "eCourts search failed"
            logger.warning("Registry rejected search: %s", msg)
            return Result.failure(NetworkError(msg), msg)

        return Result.success(SearchResult(token=new_token, case_html=case_html))

    def fetch_case_details(
        self, token: str, detail_link: Union[str, Mapping[str, str]]
    ) -> Result[TokenResult[str]]:
        """
        Fetch the detail page behind a search row. `detail_link` is either the
        row's `viewHistory(...)` parameters or a link/path from the row.
        """
        if isinstance(detail_link, Mapping):
            try:
                payload = self._post("home/viewHistory", token, dict(detail_link))
            except RegistryError as exc:
                logger.warning("Failed to fetch case details: %s", exc)
                return Result.failure(exc, "Failed to fetch case details")
            raw_html = payload.get("data_list")
            if not raw_html:
                msg = payload.get("errormsg") or "Failed to fetch case details"
                return Result.failure(NetworkError(msg), msg)
            return Result.success(TokenResult(token=payload.get("app_token") or token, data=raw_html))

        link = (detail_link or "").strip()
        if not link:
            return Result.failure(ParseError("No case detail link provided"))
        if link.startswith("?"):
            url = f"{self.base_url}/{link}"
        else:
            url = resolve_url(link, self.origin)

        try:
            response = self._get(url, params={"app_token": token})
        except requests.exceptions.RequestException as exc:
            logger.warning("Failed to fetch case details from %s: %s", url, exc)
            status_code = exc.response.status_code if exc.response is not None else None
            return Result.failure(NetworkError(f"Failed to fetch case details: {exc}", status_code))

        raw_html = response.text
        return Result.success(TokenResult(token=parse_app_token(raw_html) or token, data=raw_html))


if __name__ == "__main__":
    import argparse
    import tempfile

    from .html_parser import parse_case_results

    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="Search eCourts cases by Case Number")
    parser.add_argument("--state", required=True, help="State Code")
    parser.add_argument("--district", required=True, help="District Code")
    parser.add_argument("--complex", required=True, help="Court Complex Code")
    parser.add_argument("--casetype", required=True, help="Case Type Code")
    parser.add_argument("--caseno", required=True, help="Case Number")
    parser.add_argument("--year", required=True, help="Registration Year")
    parser.add_argument("--est", default="", help="Establishment Code (if applicable)")
    args = parser.parse_args()

    client = EcourtsWebClient()
    session = client.fetch_session().unwrap()
    token = session.token
    while True:
        captcha = client.fetch_captcha(token).unwrap()
        with tempfile.NamedTemporaryFile(delete=False, suffix=".png") as image_file:
            image_file.write(captcha.image_bytes)
        captcha_text = input(f"Captcha saved to {image_file.name}, enter text (blank to quit): ").strip()
        if not captcha_text:
            break
        result = client.search(
            captcha.token,
            args.state,
            args.district,
            args.complex,
            args.est or None,
            args.casetype,
            args.caseno,
            args.year,
            captcha_text,
        ).unwrap()
        if result.is_challenge:
            print("Captcha rejected, try again.")
            token = result.token
            continue
        for summary in parse_case_results(result.case_html, case_number=args.caseno):
            print(summary.model_dump_json(indent=2))
        break
