import heapq
import itertools
import json
import os
import random
import sys
from collections import defaultdict

import pytest

# Ensure the backend root (containing the `duohunt` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from duohunt.config import Config
from duohunt.game.catalog import ChallengeCatalog
from duohunt.game.engine import RoundEngine
from duohunt.game.scheduling import ScheduledTask
from duohunt.game.service import RoomRegistry


class ManualScheduler:
    """Virtual clock; callbacks only run when the test advances time."""

    def __init__(self, start_ms=1_000_000):
        self.clock_ms = start_ms
        self._queue = []
        self._seq = itertools.count()

    def now_ms(self):
        return self.clock_ms

    def call_later(self, delay_sec, fn, *args):
        task = ScheduledTask()
        due = self.clock_ms + int(round(delay_sec * 1000))
        heapq.heappush(self._queue, (due, next(self._seq), task, fn, args))
        return task

    def advance(self, seconds):
        target = self.clock_ms + int(round(seconds * 1000))
        while self._queue and self._queue[0][0] <= target:
            due, _, task, fn, args = heapq.heappop(self._queue)
            self.clock_ms = due
            if not task.cancelled:
                fn(*args)
        self.clock_ms = target

    def pending(self):
        return sum(1 for item in self._queue if not item[2].cancelled)


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self.groups = defaultdict(set)

    def to_room(self, room_id, event, payload):
        self.sent.append(('room', room_id, event, payload))

    def to_connection(self, sid, event, payload):
        self.sent.append(('sid', sid, event, payload))

    def join(self, sid, room_id):
        self.groups[room_id].add(sid)

    def leave(self, sid, room_id):
        self.groups[room_id].discard(sid)

    def events(self, name, target=None):
        return [
            payload for _, to, event, payload in self.sent
            if event == name and (target is None or to == target)
        ]

    def names(self):
        return [event for _, _, event, _ in self.sent]

    def clear(self):
        self.sent.clear()


def flat(title, level, value, base=100, limit=60, view_a=None, view_b=None):
    return {
        'title': title,
        'level': level,
        'baseScore': base,
        'timeLimitSec': limit,
        'roles': {
            'A': {'view': view_a or f'{title} A-side'},
            'B': {'view': view_b or f'{title} B-side'},
        },
        'answer': {'type': 'exact', 'value': value},
    }


def nested(title, level, answers, base=100, limit=60):
    return {
        'title': title,
        'level': level,
        'baseScore': base,
        'timeLimitSec': limit,
        'subquestions': [
            {
                'roles': {'A': {'view': f'{title} q{i} A'}, 'B': {'view': f'{title} q{i} B'}},
                'answer': {'type': 'exact', 'value': answer},
            }
            for i, answer in enumerate(answers)
        ],
    }


DEFAULT_RECORDS = [
    flat('Easy one', 'easy', 'alpha'),
    flat('Normal one', 'normal', 'bravo'),
    flat('Normal two', 'normal', 'charlie'),
    flat('Normal three', 'normal', 'delta'),
    flat('Hard one', 'hard', 'echo'),
]


class Harness:
    def __init__(self, records=None, **overrides):
        self.scheduler = ManualScheduler()
        self.notifier = RecordingNotifier()
        self.catalog = ChallengeCatalog.from_records(DEFAULT_RECORDS if records is None else records)
        self.registry = RoomRegistry(self.scheduler, unused_ttl_sec=60)
        self.engine = RoundEngine(
            self.registry,
            self.catalog,
            self.notifier,
            self.scheduler,
            config=overrides,
            rng=random.Random(7),
        )

    def room(self, room_id):
        return self.registry.get_room(room_id)

    def start_game(self, mode='Normal', a='sid-a', b='sid-b'):
        room_id = self.engine.create_room()['roomId']
        assert self.engine.join_room(room_id, a)['ok']
        assert self.engine.join_room(room_id, b)['ok']
        self.engine.player_ready(a, preferred_role='A', mode=mode)
        ack = self.engine.player_ready(b, preferred_role='B', mode=mode)
        assert ack['started'] is True
        self.scheduler.advance(1.5)
        return room_id

    def answer_for(self, room_id):
        current = self.room(room_id).current
        if hasattr(current, 'subquestion'):
            return current.subquestion.answer.value
        return current.definition.answer.value


@pytest.fixture()
def harness():
    return Harness()


@pytest.fixture()
def make_harness():
    return Harness


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def challenges_file(tmp_path):
    path = tmp_path / 'challenges.json'
    path.write_text(json.dumps(DEFAULT_RECORDS), encoding='utf-8')
    return path


@pytest.fixture()
def app_bundle(challenges_file):
    from duohunt.server import create_app

    class TestConfig(Config):
        TESTING = True
        SECRET_KEY = 'test-secret'
        SOCKETIO_ASYNC_MODE = 'threading'
        TRUST_PROXY_HEADERS = False
        CHALLENGES_PATH = str(challenges_file)

    sched = ManualScheduler()
    application, sio = create_app(TestConfig, scheduler=sched)
    return application, sio, sched


@pytest.fixture()
def client(app_bundle):
    application, _, _ = app_bundle
    return application.test_client()
