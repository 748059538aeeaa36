"""
Shared test fixtures for Markbook.
The API client talks to the Flask app through Flask's test client, so the
client, routes and store are exercised together.
Zero network calls. All data lives in an in-memory store.
"""
import json
import time
import concurrent.futures
from types import SimpleNamespace
from urllib.parse import urlsplit

import jwt
import pytest

from markbook.app import create_app
from markbook.models import Assessment, Student
from markbook.services.api_client import MarkbookClient, Session
from markbook.store import MarkbookStore

JWT_SECRET = "markbook-test-secret-0123456789abcdef"
BASE_URL = "http://testserver/api"


class FlaskResponse:
    """The parts of requests.Response the client reads."""

    def __init__(self, response):
        self.status_code = response.status_code
        self.headers = response.headers
        self.text = response.get_data(as_text=True)

    def json(self):
        return json.loads(self.text)


class FlaskHTTP:
    """Stands in for requests.Session, routing calls into a Flask test client.

    Records every call and can be told to fail the next matching one.
    """

    def __init__(self, app):
        self.test_client = app.test_client()
        self.calls = []
        self._failures = []

    def fail_next(self, method, path_fragment, exc):
        self._failures.append((method, path_fragment, exc))

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append((method, path, json))
        for failure in self._failures:
            f_method, fragment, exc = failure
            if f_method == method and fragment in path:
                self._failures.remove(failure)
                raise exc
        response = self.test_client.open(
            path, method=method, query_string=params, json=json, headers=headers,
        )
        return FlaskResponse(response)

    def count(self, method, path_fragment=""):
        return sum(1 for m, p, _ in self.calls if m == method and path_fragment in p)


class ManualExecutor:
    """Executor that runs submitted jobs only when the test says so."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args):
        future = concurrent.futures.Future()
        self.jobs.append((future, fn, args))
        return future

    def run(self, index=0):
        future, fn, args = self.jobs.pop(index)
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)
        return future


def _make_token(secret=JWT_SECRET, expires_in=3600):
    return jwt.encode({
        "sub": "teacher-1",
        "email": "teacher@example.com",
        "aud": "authenticated",
        "exp": int(time.time()) + expires_in,
    }, secret, algorithm="HS256")


@pytest.fixture
def store():
    return MarkbookStore()


@pytest.fixture
def app(store):
    return create_app(store, jwt_secret=JWT_SECRET)


@pytest.fixture
def http(app):
    return FlaskHTTP(app)


@pytest.fixture
def session():
    return Session(_make_token())


@pytest.fixture
def client(session, http):
    return MarkbookClient(session, base_url=BASE_URL, http=http)


@pytest.fixture
def seeded(store):
    """A class of three students with one 20-mark quiz."""
    cls = store.create_class("10-9 Maths", "10-9")
    students = []
    for first, last in [("John", "Brown"), ("Kayla", "Smith"), ("Tyrone", "Peters")]:
        record = store.create_student(first, last, "10-9")
        store.add_to_class(cls["id"], record["id"])
        students.append(Student(**record))
    quiz = Assessment(**store.create_assessment(cls["id"], "Fractions Quiz", "Quiz", 20, "2026-09-01"))
    return SimpleNamespace(class_id=cls["id"], students=students, quiz=quiz)


@pytest.fixture
def manual_executor():
    return ManualExecutor()


@pytest.fixture
def make_token():
    """Factory for signed bearer tokens; pass secret= or expires_in= to spoil one."""
    return _make_token
