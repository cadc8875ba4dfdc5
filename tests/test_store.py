import sqlite3

import pytest

from simplisafe_local.accessory import PlatformAccessory, SERVICE_CONTACT_SENSOR, generate_uuid
from simplisafe_local.database import SUPPORTED_SCHEMA_VERSION, ensure_schema_and_migrate
from simplisafe_local.store import AccessoryStore


def sensor_accessory(serial='S1', name='Front Door'):
    accessory = PlatformAccessory(name, generate_uuid(serial), context={'id': serial})
    accessory.add_service(SERVICE_CONTACT_SENSOR).set_characteristic('ContactSensorState', 1)
    return accessory


def test_new_database_has_current_schema(tmp_path):
    db_file = str(tmp_path / "state.db")
    ensure_schema_and_migrate(db_file)
    # Running again on an up to date database is a no-op
    ensure_schema_and_migrate(db_file)

    conn = sqlite3.connect(db_file)
    assert conn.execute("PRAGMA user_version").fetchone()[0] == SUPPORTED_SCHEMA_VERSION
    cols = [r[1] for r in conn.execute("PRAGMA table_info(platform_accessories)").fetchall()]
    assert 'aid' in cols
    conn.close()


def test_aids_are_unique(tmp_path):
    db_file = str(tmp_path / "state.db")
    AccessoryStore(db_file).save(sensor_accessory('S1'))

    conn = sqlite3.connect(db_file)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute("INSERT INTO platform_accessories (uuid, display_name, platform, services, aid) VALUES (?,?,?,?,?)",
                     ('other', 'Other', 'SimpliSafe 3', '[]', 2))
    conn.close()


def test_newer_schema_is_refused(tmp_path):
    db_file = str(tmp_path / "future.db")
    conn = sqlite3.connect(db_file)
    conn.execute("PRAGMA user_version = 99")
    conn.commit()
    conn.close()

    with pytest.raises(RuntimeError):
        AccessoryStore(db_file)


def test_save_assigns_stable_aids(tmp_path):
    store = AccessoryStore(str(tmp_path / "state.db"))

    first = store.save(sensor_accessory('S1'))
    second = store.save(sensor_accessory('S2', 'Back Door'))
    again = store.save(sensor_accessory('S1', 'Renamed'))

    assert (first, second, again) == (2, 3, 2)
    assert store.aids() == {generate_uuid('S1'): 2, generate_uuid('S2'): 3}


def test_load_all_restores_accessories(tmp_path):
    db_file = str(tmp_path / "state.db")
    store = AccessoryStore(db_file)
    store.save(sensor_accessory('S2', 'Back Door'))
    store.save(sensor_accessory('S1'))

    loaded = AccessoryStore(db_file).load_all()

    assert [a.display_name for a in loaded] == ['Back Door', 'Front Door']
    front = loaded[1]
    assert front.context == {'id': 'S1'}
    assert front.get_service(SERVICE_CONTACT_SENSOR).get_characteristic('ContactSensorState').value == 1


def test_unreadable_rows_are_skipped(tmp_path):
    db_file = str(tmp_path / "state.db")
    store = AccessoryStore(db_file)
    store.save(sensor_accessory('S1'))

    conn = sqlite3.connect(db_file)
    conn.execute("INSERT INTO platform_accessories (uuid, display_name, platform, services, aid) VALUES (?,?,?,?,?)",
                 ('broken', 'Broken', 'SimpliSafe 3', 'not json', 9))
    conn.commit()
    conn.close()

    assert [a.uuid for a in store.load_all()] == [generate_uuid('S1')]


def test_delete(tmp_path):
    store = AccessoryStore(str(tmp_path / "state.db"))
    accessory = sensor_accessory('S1')
    store.save(accessory)

    assert store.delete(accessory.uuid) is True
    assert store.delete(accessory.uuid) is False
    assert store.aids() == {}
