"""
Extractors for the fragments the eCourts case-status pages send back.

The registry's markup is hand-written and inconsistent (attribute quoting,
entity encoding, HTML embedded in escaped JSON), so every function here works
on raw text, tolerates garbage and degrades to `None` / `[]` instead of raising.
"""

import html
import logging
import re
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from . import config
from .models import CaseSummary, ComplexOption, CourtType, Option, TrackedCase

logger = logging.getLogger(__name__)

CAPTCHA_FILENAME = "securimage_show.php"
STATE_SELECT_ID = "sess_state_code"
COMPLEX_CODE_FIELDS = 3

_FLAGS = re.IGNORECASE | re.DOTALL

APP_TOKEN_RE = re.compile(r"app_token=([a-f0-9]{32,})", re.IGNORECASE)
APP_TOKEN_INPUT_RE = re.compile(
    r"""<input[^>]*id\s*=\s*['"]?app_token['"]?[^>]*value\s*=\s*['"]?([a-f0-9]{32,})""",
    re.IGNORECASE,
)
OPTION_RE = re.compile(
    r"""<option[^>]*value\s*=\s*['"]?([^'">\s]+)['"]?[^>]*>(.*?)</option>""", _FLAGS
)
STATE_SELECT_RE = re.compile(
    r"""<select[^>]*id\s*=\s*['"]%s['"][^>]*>(.*?)</select>""" % STATE_SELECT_ID, _FLAGS
)
TAG_RE = re.compile(r"<[^>]+>")
ESCAPED_CHAR_RE = re.compile(r"""\\+(["/'])""")
CAPTCHA_SRC_RE = re.compile(
    r"""src['"]?\s*[=:]\s*['"]?([^'"\s>]*%s[^'"\s>]*)""" % re.escape(CAPTCHA_FILENAME),
    re.IGNORECASE,
)
CAPTCHA_PATH_RE = re.compile(
    r"""([^'"\s>=:]*%s[^'"\s>]*)""" % re.escape(CAPTCHA_FILENAME), re.IGNORECASE
)
DATE_RE = re.compile(r"\b\d{2}[/-]\d{2}[/-]\d{4}\b")
VIEW_HISTORY_RE = re.compile(r"viewHistory\((.*?)\)", _FLAGS)
PARTY_SPLIT_RE = re.compile(r"\s+(?:vs\.?|v\.|versus)\s+", re.IGNORECASE)

VIEW_HISTORY_KEYS = (
    "case_no",
    "cino",
    "court_code",
    "hideparty",
    "search_flag",
    "state_code",
    "dist_code",
    "court_complex_code",
    "search_by",
)

# Detail page sections: heading text, and the table class the page uses when present.
DETAIL_SECTIONS = {
    "case_details": ("Case Details", "case_details_table"),
    "case_status": ("Case Status", "case_status_table"),
    "petitioner_advocate": ("Petitioner and Advocate", "Petitioner_Advocate_table"),
    "respondent_advocate": ("Respondent and Advocate", "Respondent_Advocate_table"),
    "acts": (r"\bActs\b", "acts_table"),
    "case_history": ("Case History", "history_table"),
    "transfer_details": ("Case Transfer Details within Establishment", "transfer_table"),
}


def clean_label(value: str) -> str:
    """Option labels: drop nested tags, decode the two entities the registry emits, trim."""
    return TAG_RE.sub("", value or "").replace("&nbsp;", " ").replace("&amp;", "&").strip()


def clean_text(value: str) -> str:
    text = TAG_RE.sub(" ", value or "")
    text = html.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def _is_placeholder(label: str) -> bool:
    return label.lower().startswith("select")


def parse_app_token(markup: str) -> Optional[str]:
    if not markup:
        return None
    match = APP_TOKEN_RE.search(markup) or APP_TOKEN_INPUT_RE.search(markup)
    return match.group(1) if match else None


def _iter_options(markup: str):
    for match in OPTION_RE.finditer(markup or ""):
        code = match.group(1).strip()
        label = clean_label(match.group(2))
        if not code or not label or _is_placeholder(label):
            continue
        yield code, label


def parse_options(markup: str) -> List[Option]:
    return [Option(code=code, label=label) for code, label in _iter_options(markup)]


def parse_state_options(markup: str) -> List[Option]:
    match = STATE_SELECT_RE.search(markup or "")
    if not match:
        return []
    return parse_options(match.group(1))


def decode_complex_code(raw: str) -> Optional[Tuple[str, str, bool]]:
    """
    Split `complex@courts@Y` into (complex code, court codes, establishment flag).
    Missing trailing segments default to "" / False; extra ones are ignored.
    """
    parts = (raw or "").strip().split("@")
    if len(parts) > COMPLEX_CODE_FIELDS:
        logger.debug("Ignoring extra segments in court complex code: %s", raw)
        parts = parts[:COMPLEX_CODE_FIELDS]
    parts += [""] * (COMPLEX_CODE_FIELDS - len(parts))
    complex_code, court_codes, flag = (part.strip() for part in parts)
    if not complex_code:
        return None
    return complex_code, court_codes, flag.upper() == "Y"


def parse_complex_options(markup: str) -> List[ComplexOption]:
    complexes = []
    for raw_code, label in _iter_options(markup):
        decoded = decode_complex_code(raw_code)
        if decoded is None:
            continue
        complex_code, court_codes, requires_establishment = decoded
        complexes.append(
            ComplexOption(
                complex_code=complex_code,
                court_codes=court_codes,
                requires_establishment=requires_establishment,
                label=label,
            )
        )
    return complexes


def resolve_url(path: str, origin: Optional[str] = None) -> str:
    origin = (origin or config.ECOURTS_ORIGIN).rstrip("/")
    if path.lower().startswith(("http://", "https://")):
        return path
    if path.startswith("//"):
        return f"https:{path}"
    return f"{origin}/{path.lstrip('/')}"


def parse_captcha_image_url(markup: str, origin: Optional[str] = None) -> Optional[str]:
    if not markup:
        return None
    normalized = ESCAPED_CHAR_RE.sub(r"\1", markup)
    normalized = normalized.replace("&quot;", '"').replace("&#34;", '"')
    match = CAPTCHA_SRC_RE.search(normalized) or CAPTCHA_PATH_RE.search(normalized)
    if not match:
        return None
    path = match.group(1).replace("&amp;", "&")
    return resolve_url(path, origin)


def extract_client_name(parties: str) -> str:
    if not parties:
        return ""
    return PARTY_SPLIT_RE.split(parties.strip(), maxsplit=1)[0].strip()


def _parse_view_history(onclick: str) -> Optional[Dict[str, str]]:
    match = VIEW_HISTORY_RE.search(onclick or "")
    if not match:
        return None
    args = [arg.strip().strip("'\"") for arg in match.group(1).split(",")]
    if len(args) < len(VIEW_HISTORY_KEYS):
        return None
    return dict(zip(VIEW_HISTORY_KEYS, args))


def _header_index(headers: List[str], *needles: str) -> Optional[int]:
    for idx, header in enumerate(headers):
        lowered = header.lower()
        if all(needle in lowered for needle in needles):
            return idx
    return None


def parse_case_results(
    case_html: str,
    case_number: str = "",
    court_name: str = "",
    court_type: Optional[CourtType] = None,
) -> List[CaseSummary]:
    """
    Turn the `case_data` table from a successful search into case summaries.

    Columns are located by header text when the table has a header row
    ("Case Type/Case Number/Case Year", "Petitioner Name versus Respondent Name",
    ...). Without one, the first non-numeric cell is the title, the next the
    parties, and a trailing extra cell the stage.
    """
    if not case_html or "record not found" in case_html.lower():
        return []

    soup = BeautifulSoup(case_html, "html.parser")
    headers: List[str] = []
    summaries: List[CaseSummary] = []

    for row in soup.find_all("tr"):
        header_cells = row.find_all("th")
        data_cells = row.find_all("td")
        if header_cells and not data_cells:
            headers = [clean_text(th.get_text(" ")) for th in header_cells]
            continue

        details_params = None
        detail_link = None
        values = []
        for cell in data_cells:
            for control in cell.find_all(["a", "button"]):
                details_params = details_params or _parse_view_history(control.get("onclick", ""))
                href = (control.get("href") or "").strip()
                if href and not href.lower().startswith(("javascript", "#")):
                    detail_link = detail_link or href
            values.append(clean_text(cell.get_text(" ")))

        if not any(values):
            continue
        # court-name banner rows (`<td colspan=...>`) between result rows
        if headers and len(data_cells) == 1 and not details_params and not detail_link:
            continue

        next_date = next((value for value in values if DATE_RE.fullmatch(value)), None)
        if next_date is None:
            date_match = DATE_RE.search(row.get_text(" "))
            next_date = date_match.group(0) if date_match else ""

        title = parties = stage = ""
        number_idx = _header_index(headers, "case number")
        party_idx = _header_index(headers, "petitioner")
        if number_idx is not None and number_idx < len(values):
            title = values[number_idx]
            number = title
            if party_idx is not None and party_idx < len(values):
                parties = values[party_idx]
            stage_idx = _header_index(headers, "stage")
            if stage_idx is None:
                stage_idx = _header_index(headers, "status")
            if stage_idx is not None and stage_idx < len(values):
                stage = values[stage_idx]
        else:
            cells = [value for value in values if value]
            start = 1 if cells[0].isdigit() else 0
            title = cells[start] if len(cells) > start else ""
            parties = cells[start + 1] if len(cells) > start + 1 else ""
            if len(cells) > start + 2:
                stage = cells[-1]
            number = next(
                (cell for cell in cells if ("/" in cell or "-" in cell) and cell != next_date),
                "",
            )

        if not title and not parties:
            continue

        summaries.append(
            CaseSummary(
                case_number=number or case_number,
                case_title=title or number or case_number,
                parties=parties,
                next_hearing_date=next_date,
                stage=stage,
                court_name=court_name,
                court_type=court_type,
                client_name=extract_client_name(parties),
                cino=details_params.get("cino") if details_params else None,
                details_params=details_params,
                detail_link=detail_link,
            )
        )

    return summaries


def _table_to_lines(table) -> List[str]:
    lines = []
    for row in table.find_all("tr"):
        cells = [clean_text(cell.get_text(" ")) for cell in row.find_all(["td", "th"])]
        cells = [cell for cell in cells if cell]
        if not cells:
            continue
        if len(cells) == 2:
            lines.append(f"{cells[0]}: {cells[1]}")
        else:
            lines.append(" | ".join(cells))
    return lines


def _extract_section(soup: BeautifulSoup, heading: str, table_class: str) -> List[str]:
    table = soup.find("table", class_=table_class)
    if table is None:
        label = soup.find(string=re.compile(heading, re.IGNORECASE))
        table = label.find_next("table") if label is not None else None
    if table is None:
        return []
    return _table_to_lines(table)


def _status_value(lines: List[str], *labels: str) -> Optional[str]:
    for line in lines:
        label, sep, value = line.partition(":")
        if not sep:
            continue
        if label.strip().lower() in labels and value.strip():
            return value.strip()
    return None


def parse_case_details(
    raw_html: str,
    summary: CaseSummary,
    track_id: str,
    year: str = "",
) -> TrackedCase:
    """
    Build the durable record from a case detail page. Sections missing from
    the page come back as empty lists; stage and next date fall back to what
    the search row showed.
    """
    soup = BeautifulSoup(raw_html or "", "html.parser")
    sections = {
        name: _extract_section(soup, heading, table_class)
        for name, (heading, table_class) in DETAIL_SECTIONS.items()
    }

    status_lines = sections["case_status"]
    stage = _status_value(status_lines, "case stage", "stage of case", "case status") or summary.stage
    next_date = _status_value(status_lines, "next hearing date") or summary.next_hearing_date

    return TrackedCase(
        track_id=track_id,
        case_title=summary.case_title,
        case_number=summary.case_number,
        year=year,
        court_name=summary.court_name,
        court_type=summary.court_type,
        parties=summary.parties,
        stage=stage or None,
        next_hearing_date=next_date or None,
        **sections,
    )
