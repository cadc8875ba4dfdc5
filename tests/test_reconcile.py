import logging

import pytest

from simplisafe_local.accessory import generate_uuid
from simplisafe_local.account import SENSOR_TYPES
from simplisafe_local.camera import KINESIS
from simplisafe_local.config import PlatformConfig
from simplisafe_local.devices import DeviceKind
from simplisafe_local.errors import RateLimitError, SimpliSafeError
from simplisafe_local.reconcile import DeviceRegistry, Reconciler

from conftest import FakeAccount, camera, entry_sensor, motion_sensor


def make_reconciler(account, gate, config=None):
    registry = DeviceRegistry()
    return Reconciler(account, gate, registry, config or PlatformConfig()), registry


@pytest.mark.asyncio
async def test_alarm_and_sensors_discovered(gate):
    account = FakeAccount(sensors=[entry_sensor('S1'), motion_sensor('S2')])
    reconciler, registry = make_reconciler(account, gate)

    created = await reconciler.reconcile()

    assert [(d.kind, d.id) for d in created] == [
        (DeviceKind.ALARM, 'SYS1'),
        (DeviceKind.ENTRY_SENSOR, 'S1'),
        (DeviceKind.MOTION_SENSOR, 'S2'),
    ]
    assert registry.devices == created
    assert created[0].name == 'SimpliSafe 3'
    assert created[1].name == 'Entry Sensor S1'
    assert created[1].uuid == generate_uuid('S1')


@pytest.mark.asyncio
async def test_motion_sensor_without_secret_alerts_is_skipped(gate, caplog):
    account = FakeAccount(sensors=[entry_sensor('S1'), motion_sensor('S2', away=0, name='Hall')])
    reconciler, registry = make_reconciler(account, gate)

    with caplog.at_level(logging.WARNING):
        created = await reconciler.reconcile()

    assert [d.id for d in created] == ['SYS1', 'S1']
    assert "Motion Sensor 'Hall' requires secret alerts" in caplog.text


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(gate):
    account = FakeAccount(sensors=[entry_sensor('S1')], locks=[{'serial': 'L1', 'status': {'lockState': 1}}])
    reconciler, registry = make_reconciler(account, gate)

    first = await reconciler.reconcile()
    second = await reconciler.reconcile()

    assert len(first) == 3
    assert second == []
    assert len(registry.devices) == 3


@pytest.mark.asyncio
async def test_ignored_and_unsupported_sensor_types(gate, caplog):
    sensors = [
        {'serial': 'K1', 'type': SENSOR_TYPES['KEYPAD'], 'name': 'Keypad'},
        {'serial': 'X1', 'type': 99, 'name': 'Mystery'},
        entry_sensor('S1'),
    ]
    reconciler, _ = make_reconciler(FakeAccount(sensors=sensors), gate)

    with caplog.at_level(logging.WARNING):
        created = await reconciler.reconcile()

    assert [d.id for d in created] == ['SYS1', 'S1']
    assert "Sensor not (yet) supported: Mystery" in caplog.text
    assert 'Keypad' not in caplog.text


@pytest.mark.asyncio
async def test_excluded_devices(gate):
    account = FakeAccount(sensors=[entry_sensor('S1'), entry_sensor('S3')],
                          cameras=[camera('cam-1', serial='CSER1'), camera('cam-2', serial='CSER2')])
    config = PlatformConfig(cameras=True, excluded_devices=['S3', 'CSER2'])
    reconciler, _ = make_reconciler(account, gate, config)

    created = await reconciler.reconcile()

    assert [d.id for d in created] == ['SYS1', 'S1', 'cam-1']


@pytest.mark.asyncio
async def test_cameras_only_when_enabled(gate):
    account = FakeAccount(cameras=[camera()])
    reconciler, _ = make_reconciler(account, gate)

    created = await reconciler.reconcile()

    assert [d.kind for d in created] == [DeviceKind.ALARM]
    assert 'get_cameras' not in account.calls


@pytest.mark.asyncio
async def test_camera_device(gate):
    account = FakeAccount(cameras=[camera('cam-1', provider='kvs', name='Porch'), camera('cam-2', status='offline')])
    config = PlatformConfig(cameras=True, camera_options={'ffmpegPath': '/opt/ffmpeg'})
    reconciler, _ = make_reconciler(account, gate, config)

    created = await reconciler.reconcile()
    porch, other = created[1], created[2]

    assert porch.name == 'Porch'
    assert porch.uuid == generate_uuid('cam-1')
    assert porch.streaming.strategy == KINESIS
    assert porch.streaming.ffmpeg_path == '/opt/ffmpeg'
    assert other.name == 'Camera cam-2'
    assert not other.reachable


@pytest.mark.asyncio
async def test_locks_named_by_serial(gate):
    account = FakeAccount(locks=[{'serial': 'L1', 'status': {'lockState': 0}}])
    reconciler, _ = make_reconciler(account, gate)

    created = await reconciler.reconcile()

    assert created[1].kind == DeviceKind.DOOR_LOCK
    assert created[1].name == 'Smart Lock L1'


@pytest.mark.asyncio
async def test_rate_limit_commits_nothing(gate, clock):
    account = FakeAccount(sensors=[entry_sensor('S1')])
    account.fail('get_locks', RateLimitError(retry_after=30))
    reconciler, registry = make_reconciler(account, gate)

    with pytest.raises(RateLimitError):
        await reconciler.reconcile()

    assert registry.devices == []
    assert gate.is_blocked()
    assert gate.next_attempt() == clock.now + 30


@pytest.mark.asyncio
async def test_missing_system_serial(gate):
    account = FakeAccount(subscription={'location': {'system': None}})
    reconciler, registry = make_reconciler(account, gate)

    with pytest.raises(SimpliSafeError, match="System serial not found."):
        await reconciler.reconcile()
    assert registry.devices == []


@pytest.mark.asyncio
async def test_known_accessories_are_not_recreated(gate):
    from simplisafe_local.accessory import PlatformAccessory

    account = FakeAccount(sensors=[entry_sensor('S1')])
    reconciler, registry = make_reconciler(account, gate)
    registry.bind(PlatformAccessory('Front Door', generate_uuid('S1')))

    created = await reconciler.reconcile()

    assert [d.id for d in created] == ['SYS1']
