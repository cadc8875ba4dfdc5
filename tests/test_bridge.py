import pytest

from simplisafe_local.accessory import PlatformAccessory, SERVICE_CONTACT_SENSOR, generate_uuid
from simplisafe_local.bridge import AccessoryBridge
from simplisafe_local.errors import DuplicateAccessoryError
from simplisafe_local.store import AccessoryStore


class RecordingServer:
    def __init__(self):
        self.added = []
        self.removed = []

    def add(self, accessory, aid=None):
        if any(a == aid for _, a in self.added):
            raise ValueError("Duplicate AID found when attempting to add accessory")
        self.added.append((accessory.uuid, aid))

    def remove(self, uuid):
        self.removed.append(uuid)


@pytest.fixture
def store(tmp_path):
    return AccessoryStore(str(tmp_path / "state.db"))


def sensor(serial):
    accessory = PlatformAccessory(f"Entry Sensor {serial}", generate_uuid(serial))
    accessory.add_service(SERVICE_CONTACT_SENSOR)
    return accessory


def test_register_persists_and_exposes(store):
    server = RecordingServer()
    bridge = AccessoryBridge(store, server)

    bridge.register_platform_accessories([sensor('S1'), sensor('S2')])

    assert server.added == [(generate_uuid('S1'), 2), (generate_uuid('S2'), 3)]
    assert bridge.get(generate_uuid('S1')) is not None
    assert len(store.load_all()) == 2


def test_duplicate_uuid_rejected(store):
    bridge = AccessoryBridge(store)
    bridge.register_platform_accessories([sensor('S1')])

    with pytest.raises(DuplicateAccessoryError):
        bridge.register_platform_accessories([sensor('S1')])
    assert len(bridge.accessories()) == 1


def test_cached_accessories_exposed_with_stored_aids(store):
    store.save(sensor('S1'))
    store.save(sensor('S2'))
    server = RecordingServer()
    bridge = AccessoryBridge(store, server)

    cached = bridge.cached_accessories()
    # Loaded once
    assert bridge.cached_accessories() == cached

    assert [a.uuid for a in cached] == [generate_uuid('S1'), generate_uuid('S2')]
    assert server.added == [(generate_uuid('S1'), 2), (generate_uuid('S2'), 3)]


def test_server_aid_conflict_becomes_duplicate_error(store):
    server = RecordingServer()
    server.added.append(('other', 2))
    bridge = AccessoryBridge(store, server)

    with pytest.raises(DuplicateAccessoryError):
        bridge.register_platform_accessories([sensor('S1')])


def test_unregister(store):
    server = RecordingServer()
    bridge = AccessoryBridge(store, server)
    accessory = sensor('S1')
    bridge.register_platform_accessories([accessory])

    bridge.unregister_platform_accessories([accessory])

    assert bridge.accessories() == []
    assert server.removed == [accessory.uuid]
    assert store.load_all() == []


def test_update_persists_values(store):
    bridge = AccessoryBridge(store)
    accessory = sensor('S1')
    bridge.register_platform_accessories([accessory])

    accessory.get_service(SERVICE_CONTACT_SENSOR).set_characteristic('ContactSensorState', 1)
    bridge.update_platform_accessories()

    restored = store.load_all()[0]
    assert restored.get_service(SERVICE_CONTACT_SENSOR).get_characteristic('ContactSensorState').value == 1
