"""
Shared fixtures for the provisioner tests.

HTTP never leaves the process: a ``ScriptedAdapter`` is mounted on the
``requests.Session`` inside ``AdminSession`` and answers from a routing
table of canned replies, recording every request it sees.
"""

import io
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, urlparse

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from provisioner import AdminSession, ProvisionerRunConfig, RemoteInstance

BASE_URL = "https://sbc.example.test"

# Rails-style tokens (base64 alphabet, no code-like fragments)
TOKEN = "k7Qx2LmN9pRt4VwYz8BcDfGh3JsK5eUa1oIy6TnHq0E="
LOGIN_TOKEN = "LgN4Tk8mWq2Zr6Xv0Bs3Dc7Fh1Jp5Ly9Ke2Mu4Ow8A="

INSTANCE = RemoteInstance(
    id="1",
    name="Lab SBC",
    base_url="sbc.example.test",
    username="admin",
    password="s3cret",
)


# ====================================================================
# Scripted transport
# ====================================================================

@dataclass
class Reply:
    status: int = 200
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    url: Optional[str] = None
    raises: Optional[Exception] = None


@dataclass
class RecordedCall:
    method: str
    path: str
    form: List[Tuple[str, str]]
    headers: Dict[str, str]
    timeout: object


def build_response(request, reply: Reply) -> requests.Response:
    response = requests.Response()
    response.status_code = reply.status
    response.reason = "OK" if reply.status < 400 else "Error"
    response.headers = CaseInsensitiveDict(reply.headers)
    response._content = reply.body.encode("utf-8")
    response._content_consumed = True
    response.raw = io.BytesIO(response._content)
    response.encoding = "utf-8"
    response.url = reply.url or (request.url if request is not None else BASE_URL + "/")
    response.request = request
    cookie = reply.headers.get("Set-Cookie")
    if cookie:
        name, _, rest = cookie.partition("=")
        response.cookies.set(name.strip(), rest.split(";", 1)[0])
    return response


def fake_response(status=200, body="", headers=None, url=None) -> requests.Response:
    """A standalone response (no transport) for pure classification tests."""
    return build_response(None, Reply(status=status, body=body, headers=headers or {}, url=url))


class ScriptedAdapter(BaseAdapter):
    """Answers ``(method, path)`` from queued replies.

    With several replies queued for a route they are consumed in order; the
    last one then keeps answering.  Unrouted requests get a 404.
    """

    def __init__(self):
        super().__init__()
        self.routes: Dict[Tuple[str, str], List[Reply]] = {}
        self.calls: List[RecordedCall] = []

    def add(self, method, path, status=200, body="", headers=None, url=None, raises=None):
        self.routes.setdefault((method.upper(), path), []).append(
            Reply(status=status, body=body, headers=headers or {}, url=url, raises=raises)
        )
        return self

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        path = urlparse(request.url).path
        body = request.body or ""
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        self.calls.append(RecordedCall(
            method=request.method,
            path=path,
            form=parse_qsl(body, keep_blank_values=True),
            headers=dict(request.headers),
            timeout=timeout,
        ))
        queue = self.routes.get((request.method, path))
        if not queue:
            reply = Reply(status=404, body="<h1>Not Found</h1>")
        elif len(queue) > 1:
            reply = queue.pop(0)
        else:
            reply = queue[0]
        if reply.raises is not None:
            raise reply.raises
        return build_response(request, reply)

    def close(self):
        pass

    def calls_to(self, method, path) -> List[RecordedCall]:
        return [c for c in self.calls if c.method == method and c.path == path]

    def paths(self, method="GET") -> List[str]:
        return [c.path for c in self.calls if c.method == method]


def make_session(adapter, config=None, base_url=BASE_URL) -> AdminSession:
    cfg = config or ProvisionerRunConfig()
    http = requests.Session()
    http.mount("https://", adapter)
    http.mount("http://", adapter)
    return AdminSession(base_url, timeouts=cfg.timeouts(), http=http)


# ====================================================================
# HTML builders
# ====================================================================

def login_page(token=LOGIN_TOKEN) -> str:
    return f"""<html><body>
<form action="/login/check" method="post">
  <input name="authenticity_token" type="hidden" value="{token}" />
  <input id="user_name" name="user[name]" type="text" />
  <input id="user_pass" name="user[pass]" type="password" />
  <input name="commit" type="submit" value="Login" />
</form></body></html>"""


def section_page(token=TOKEN) -> str:
    return f"""<html><body>
<h1>SIP configuration</h1>
<a href="/naps">Network Access Points</a>
<form action="/naps" method="post">
  <input name="authenticity_token" type="hidden" value="{token}" />
</form></body></html>"""


def nap_list_page(rows=()) -> str:
    body = "".join(
        f'<tr><td><a class="edit_link" href="/naps/{nap_id}/edit">{name}</a></td>'
        f"<td>SIP</td></tr>"
        for nap_id, name in rows
    )
    return (
        "<html><body><h1>NAPs</h1><table>"
        "<tr><th>Name</th><th>Type</th></tr>"
        f"{body}</table></body></html>"
    )


# ====================================================================
# Fixtures
# ====================================================================

@pytest.fixture
def adapter():
    return ScriptedAdapter()


@pytest.fixture
def config():
    return ProvisionerRunConfig(id_retry_delay_s=0, id_retry_attempts=1)


@pytest.fixture
def session(adapter, config):
    s = make_session(adapter, config)
    s.establish("abc123", LOGIN_TOKEN)
    return s
