"""Shared fixtures: a fake eCourts registry standing in for requests.Session."""

from __future__ import annotations

import json

import pytest
import requests

from ecourt_registry.client import EcourtsWebClient
from ecourt_registry.models import CourtType, TrackingInfo
from ecourt_registry.tracking_store import MemoryBackend, TrackingStore

BASE_URL = "https://services.ecourts.gov.in/ecourtindia_v6"
ORIGIN = "https://services.ecourts.gov.in"
CAPTCHA_PNG = b"\x89PNG fake captcha"

LANDING_HTML = """
<html><body>
<script>var url = "?p=casestatus/index&app_token=%s";</script>
<select name="sess_state_code" id="sess_state_code" class="form-control">
  <option value="">Select state</option>
  <option value="1">Maharashtra</option>
  <option value="29">Karnataka</option>
</select>
<select id="sess_language"><option value="en">English</option></select>
</body></html>
"""

DISTRICT_LIST = (
    '<option value="">Select district</option>'
    '<option value="25">Pune</option>'
    '<option value="26">Nashik</option>'
)

COMPLEX_LIST = (
    '<option value="">Select court complex</option>'
    '<option value="1010001@1,2@N">Pune District Court</option>'
    '<option value="1010002@3@Y">Baramati Courts</option>'
)

ESTABLISHMENT_LIST = (
    '<option value="">Select establishment</option>'
    '<option value="7">Civil Judge Senior Division, Baramati</option>'
)

CASETYPE_LIST = (
    "<option value=''>Select case type</option>"
    "<option value='2'>CS - Civil Suit</option>"
    "<option value='4'>RCA - Regular Civil Appeal</option>"
)

CAPTCHA_DIV = (
    '<div><img id="captcha_image" '
    'src="/ecourtindia_v6/vendor/securimage/securimage_show.php?6b1a" alt="CAPTCHA"></div>'
)

CASE_RESULT_HTML = """
<table id="search_res_table">
<tr><th>Sr No</th><th>Case Type/Case Number/Case Year</th>
<th>Petitioner Name versus Respondent Name</th><th>View</th></tr>
<tr><td>1</td><td>CS/123/2023</td><td>Ramesh Kumar Vs Suresh Patil</td>
<td><a href="#" onclick="viewHistory(200100001232023,'MHPU010012342023',1,'','CScaseNumber',1,25,1010001,'CScaseNumber')">View</a></td></tr>
</table>
"""

DETAIL_HTML = """
<h2>Case Details</h2>
<table class="case_details_table">
<tr><td>Case Type</td><td>CS - Civil Suit</td></tr>
<tr><td>Filing Number</td><td>100/2023</td></tr>
</table>
<h2>Case Status</h2>
<table class="case_status_table">
<tr><td>First Hearing Date</td><td>01st February 2023</td></tr>
<tr><td>Next Hearing Date</td><td>20th March 2024</td></tr>
<tr><td>Case Stage</td><td>Arguments</td></tr>
</table>
<h2>Petitioner and Advocate</h2>
<table class="Petitioner_Advocate_table">
<tr><td>1) Ramesh Kumar<br>Advocate- A. Deshmukh</td></tr>
</table>
<h2>Acts</h2>
<table id="act_table">
<tr><th>Under Act(s)</th><th>Under Section(s)</th></tr>
<tr><td>Code of Civil Procedure</td><td>9</td></tr>
</table>
<h2>Case History</h2>
<table class="history_table">
<tr><th>Judge</th><th>Business on Date</th><th>Hearing Date</th><th>Purpose of hearing</th></tr>
<tr><td>Civil Judge</td><td>01-02-2023</td><td>15-03-2023</td><td>Appearance</td></tr>
</table>
"""


def make_response(status_code=200, *, json_body=None, text=None, content=None, url=BASE_URL):
    response = requests.Response()
    response.status_code = status_code
    response.reason = "OK" if status_code < 400 else "Error"
    response.url = url
    response.encoding = "utf-8"
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    elif content is not None:
        response._content = content
        response.headers["Content-Type"] = "image/png"
    else:
        response._content = (text or "").encode("utf-8")
        response.headers["Content-Type"] = "text/html"
    return response


class FakeRegistry:
    """
    Duck-typed requests.Session for the case-status endpoints.

    Each page load or accepted POST rotates the token; a POST carrying any
    other token is answered the way the registry does, with `status: 0`.
    """

    def __init__(self, captcha_answer="abc12"):
        self.headers = {}
        self.captcha_answer = captcha_answer
        self.issued = 0
        self.valid_token = None
        self.calls = []
        self.landing_html = LANDING_HTML
        self.landing_status = 200
        self.case_data = CASE_RESULT_HTML
        self.detail_html = DETAIL_HTML
        self.broken_json = False

    def _next_token(self):
        self.issued += 1
        self.valid_token = f"{self.issued:032x}"
        return self.valid_token

    def get(self, url, params=None, verify=None, timeout=None, **kwargs):
        self.calls.append(("GET", url, dict(params or {})))
        if "securimage_show.php" in url:
            return make_response(content=CAPTCHA_PNG, url=url)
        if "casestatus/index" in url:
            if self.landing_status != 200:
                return make_response(self.landing_status, text="Server error", url=url)
            token = self._next_token()
            html = self.landing_html % token if "%s" in self.landing_html else self.landing_html
            return make_response(text=html, url=url)
        if "caseDetail" in url:
            return make_response(text=self.detail_html, url=url)
        return make_response(404, text="Not found", url=url)

    def post(self, url, data=None, verify=None, timeout=None, **kwargs):
        data = dict(data or {})
        self.calls.append(("POST", url, data))
        if self.broken_json:
            return make_response(text="<html>Service unavailable</html>", url=url)
        if data.get("app_token") != self.valid_token:
            return make_response(json_body={"status": 0, "errormsg": "Invalid Request"}, url=url)

        path = url.split("?p=", 1)[-1]
        token = self._next_token()
        if path == "casestatus/fillDistrict":
            body = {"status": 1, "dist_list": DISTRICT_LIST}
        elif path == "casestatus/fillcomplex":
            body = {"status": 1, "complex_list": COMPLEX_LIST}
        elif path == "casestatus/fillCourtEstablishment":
            body = {"status": 1, "establishment_list": ESTABLISHMENT_LIST}
        elif path == "casestatus/fillCaseType":
            body = {"status": 1, "casetype_list": CASETYPE_LIST}
        elif path == "casestatus/getCaptcha":
            body = {"div_captcha": CAPTCHA_DIV}
        elif path == "casestatus/submitCaseNo":
            if data.get("case_captcha_code") != self.captcha_answer:
                body = {"status": 0, "errormsg": "Invalid Captcha", "div_captcha": CAPTCHA_DIV}
            else:
                body = {"status": 1, "case_data": self.case_data}
        elif path == "home/viewHistory":
            body = {"status": 1, "data_list": self.detail_html}
        else:
            return make_response(404, text="Not found", url=url)
        body["app_token"] = token
        return make_response(json_body=body, url=url)

    def posted_paths(self):
        return [url.split("?p=", 1)[-1] for method, url, _ in self.calls if method == "POST"]


@pytest.fixture()
def registry():
    return FakeRegistry()


@pytest.fixture()
def client(registry):
    return EcourtsWebClient(session=registry, base_url=BASE_URL, origin=ORIGIN)


@pytest.fixture()
def tracking_info():
    return TrackingInfo(
        state_code="1",
        district_code="25",
        court_code="1010001",
        case_type_code="2",
        case_number="123",
        year="2023",
        court_name="Pune District Court",
        court_type=CourtType.DISTRICT,
        last_stage="Evidence",
        last_next_date="01/03/2024",
    )


@pytest.fixture()
def store():
    return TrackingStore(MemoryBackend())
