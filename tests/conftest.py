import os
import random
import sys

import pytest
import requests

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'backend')))

from app import create_app
from config import Config
from quiz_engine import QuizEngine, QuizRegistry, Track


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SPOTIFY_TOKEN_URL = 'https://accounts.example.test/api/token'
    SPOTIFY_API_BASE = 'https://api.example.test'
    SKIP_TRACKS_WITHOUT_PREVIEW = True


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def tick(self, seconds):
        self.now += seconds


class ScheduledCall:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Collects delayed callbacks so tests decide when they fire."""

    def __init__(self):
        self.calls = []

    def call_later(self, delay, callback):
        call = ScheduledCall(delay, callback)
        self.calls.append(call)
        return call

    def run_pending(self):
        calls, self.calls = self.calls, []
        for call in calls:
            if not call.cancelled:
                call.callback()


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


def make_tracks(*names, preview=True):
    return [Track(name=n, preview_url=f"https://p.scdn.co/mp3-preview/{i}" if preview else None)
            for i, n in enumerate(names)]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def engine(clock, scheduler):
    return QuizEngine(clock=clock, rng=random.Random(1234), scheduler=scheduler)


@pytest.fixture
def tracks():
    return make_tracks("Song A", "Song B", "Song C", "Song D", "Song E")


@pytest.fixture
def app(clock, scheduler):
    app = create_app(TestConfig)
    app.extensions['quiz_registry'] = QuizRegistry(
        lambda: QuizEngine(clock=clock, rng=random.Random(7), scheduler=scheduler,
                           advance_delay=app.config['ADVANCE_DELAY_SECONDS'])
    )
    yield app


@pytest.fixture
def client(app):
    return app.test_client()
