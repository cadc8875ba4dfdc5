import asyncio
import copy

import pytest

from simplisafe_local.account import SENSOR_TYPES
from simplisafe_local.config import PlatformConfig
from simplisafe_local.errors import DuplicateAccessoryError
from simplisafe_local.ratelimit import RateLimitGate


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeAccount:
    """In-memory account service; failures are queued per method."""

    def __init__(self, subscription=None, sensors=None, locks=None, cameras=None, authenticated=True):
        self.subscription = subscription if subscription is not None else {
            'location': {'system': {'serial': 'SYS1', 'alarmState': 'OFF'}},
        }
        self.sensors = sensors if sensors is not None else []
        self.locks = locks if locks is not None else []
        self.cameras = cameras if cameras is not None else []
        self.authenticated = authenticated
        self.calls = []
        self.failures = {}
        self.callback = None
        self.alarm_states = []
        self.lock_states = []
        self.default_subscription = None
        # Seconds each call takes before answering
        self.delays = {}

    def fail(self, method: str, error: Exception, times: int = 1):
        self.failures.setdefault(method, []).extend([error] * times)

    async def _call(self, name, value):
        self.calls.append(name)
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        pending = self.failures.get(name)
        if pending:
            raise pending.pop(0)
        return copy.deepcopy(value)

    def set_default_subscription(self, subscription_id):
        self.calls.append('set_default_subscription')
        self.default_subscription = subscription_id

    async def refresh_credentials(self):
        await self._call('refresh_credentials', None)
        self.authenticated = True

    def is_authenticated(self):
        return self.authenticated

    async def get_subscription(self):
        return await self._call('get_subscription', self.subscription)

    async def get_sensors(self, force_refresh=False):
        return await self._call('get_sensors', self.sensors)

    async def get_locks(self, force_refresh=False):
        return await self._call('get_locks', self.locks)

    async def get_cameras(self, force_refresh=False):
        return await self._call('get_cameras', self.cameras)

    async def set_alarm_state(self, state):
        self.alarm_states.append(state)
        return await self._call('set_alarm_state', {'state': state})

    async def set_lock_state(self, serial, state):
        self.lock_states.append((serial, state))
        return await self._call('set_lock_state', {'state': state})

    async def start_listening(self, callback):
        self.callback = callback

    async def stop_listening(self):
        self.callback = None


class FakeBridge:
    def __init__(self, cached=None):
        self.cached = list(cached or [])
        self.registered = []
        self.unregistered = []
        self.reject = set()

    def cached_accessories(self):
        return list(self.cached)

    def register_platform_accessories(self, accessories):
        for accessory in accessories:
            if accessory.uuid in self.reject or any(a.uuid == accessory.uuid for a in self.registered):
                raise DuplicateAccessoryError(f"Accessory {accessory.uuid} is already registered")
        self.registered.extend(accessories)

    def unregister_platform_accessories(self, accessories):
        self.unregistered.extend(accessories)


def entry_sensor(serial='S1', **extra):
    return {'serial': serial, 'type': SENSOR_TYPES['ENTRY_SENSOR'], 'name': extra.pop('name', None),
            'status': {'triggered': False}, 'flags': {'lowBattery': False}, **extra}


def motion_sensor(serial='S2', off=1, home=1, away=1, **extra):
    return {'serial': serial, 'type': SENSOR_TYPES['MOTION_SENSOR'], 'name': extra.pop('name', None),
            'setting': {'off': off, 'home': home, 'away': away}, 'flags': {'lowBattery': False}, **extra}


def camera(uuid='cam-1', serial='CSER1', provider=None, model='SS001', **extra):
    data = {
        'uuid': uuid,
        'serial': serial,
        'model': model,
        'status': 'online',
        'cameraSettings': {'cameraName': extra.pop('name', None), 'admin': {'firmwareVersion': '2.0.1'}},
        'currentState': {'webrtcProvider': provider} if provider is not None else {},
        'supportedFeatures': {},
    }
    data.update(extra)
    return data


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gate(clock):
    return RateLimitGate(clock=clock)


@pytest.fixture
def account():
    return FakeAccount()


@pytest.fixture
def config():
    return PlatformConfig()
