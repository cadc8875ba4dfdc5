import asyncio
from unittest.mock import MagicMock, patch

import pytest
from pyhap.const import CATEGORY_ALARM_SYSTEM, CATEGORY_DOOR_LOCK, CATEGORY_SENSOR

from simplisafe_local.accessory import (
    PlatformAccessory, SERVICE_CONTACT_SENSOR, SERVICE_LOCK_MECHANISM, SERVICE_SECURITY_SYSTEM, generate_uuid,
)
from simplisafe_local.devices import Device, DeviceKind, SECURITY_DISARMED
from simplisafe_local.hap import HapAccessory, HapServer, category_for


def platform_accessory(service=SERVICE_SECURITY_SYSTEM):
    accessory = PlatformAccessory('SimpliSafe 3', generate_uuid('SYS1'))
    accessory.add_service(service)
    return accessory


def configure_calls(hap_accessory):
    hap_service = hap_accessory.accessory.add_preload_service.return_value
    return {c.args[0]: c.kwargs for c in hap_service.configure_char.call_args_list}


def test_category_for():
    assert category_for(platform_accessory()) == CATEGORY_ALARM_SYSTEM
    assert category_for(platform_accessory(SERVICE_LOCK_MECHANISM)) == CATEGORY_DOOR_LOCK
    assert category_for(platform_accessory(SERVICE_CONTACT_SENSOR)) == CATEGORY_SENSOR


@patch('simplisafe_local.hap.Accessory')
def test_services_mirrored_with_callbacks(mock_accessory):
    accessory = platform_accessory()
    hap = HapAccessory(MagicMock(), accessory, aid=5)

    mock_accessory.assert_called_once()
    assert mock_accessory.call_args.kwargs['aid'] == 5
    hap.accessory.add_preload_service.assert_called_once_with(SERVICE_SECURITY_SYSTEM)

    calls = configure_calls(hap)
    assert calls['SecuritySystemTargetState']['setter_callback'] is not None
    assert calls['SecuritySystemCurrentState']['setter_callback'] is None

    current = accessory.get_service(SERVICE_SECURITY_SYSTEM).get_characteristic('SecuritySystemCurrentState')
    current.value = 3
    assert calls['SecuritySystemCurrentState']['getter_callback']() == 3


@patch('simplisafe_local.hap.Accessory')
def test_pushed_values_notify_hap(mock_accessory):
    accessory = platform_accessory()
    hap = HapAccessory(MagicMock(), accessory)
    hap_char = hap.accessory.add_preload_service.return_value.configure_char.return_value

    accessory.get_service(SERVICE_SECURITY_SYSTEM).update_characteristic('StatusFault', 1)

    hap_char.set_value.assert_called_with(1)


@pytest.mark.asyncio
@patch('simplisafe_local.hap.Accessory')
async def test_async_set_handler_is_scheduled(mock_accessory):
    accessory = platform_accessory()
    written = []

    async def handler(value):
        written.append(value)

    accessory.get_service(SERVICE_SECURITY_SYSTEM).get_characteristic('SecuritySystemTargetState').on_set(handler)
    hap = HapAccessory(MagicMock(), accessory)

    configure_calls(hap)['SecuritySystemTargetState']['setter_callback'](1)
    # One pass runs the handler, the next commits the value
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert written == [1]
    target = accessory.get_service(SERVICE_SECURITY_SYSTEM).get_characteristic('SecuritySystemTargetState')
    assert target.value == 1


@pytest.mark.asyncio
@patch('simplisafe_local.hap.Accessory')
async def test_rejected_write_reverts_controller_value(mock_accessory, account, gate):
    device = Device(DeviceKind.ALARM, 'SimpliSafe 3', 'SYS1', account, gate,
                    details={'location': {'system': {'serial': 'SYS1', 'alarmState': 'OFF'}}})
    accessory = device.create_accessory()
    hap = HapAccessory(MagicMock(), accessory)
    hap_char = hap.accessory.add_preload_service.return_value.configure_char.return_value
    target = accessory.get_service(SERVICE_SECURITY_SYSTEM).get_characteristic('SecuritySystemTargetState')
    assert target.value == SECURITY_DISARMED

    gate.record_failure(30)
    configure_calls(hap)['SecuritySystemTargetState']['setter_callback'](1)
    for _ in range(3):
        await asyncio.sleep(0)

    assert account.alarm_states == []
    assert target.value == SECURITY_DISARMED
    hap_char.set_value.assert_called_with(SECURITY_DISARMED)


@patch('simplisafe_local.hap.Accessory')
def test_identify_forwarded(mock_accessory):
    accessory = platform_accessory()
    identified = []
    accessory.on_identify(lambda: identified.append(True))
    hap = HapAccessory(MagicMock(), accessory)

    info = hap.accessory.get_service.return_value
    identify = [c for c in info.configure_char.call_args_list if c.args[0] == 'Identify'][0]
    identify.kwargs['setter_callback'](1)

    assert identified == [True]


@patch('simplisafe_local.hap.Accessory')
@patch('simplisafe_local.hap.Bridge')
def test_server_add_and_remove(mock_bridge, mock_accessory):
    driver = MagicMock()
    server = HapServer('SimpliSafe 3', driver=driver)
    driver.add_accessory.assert_called_once_with(accessory=mock_bridge.return_value)

    accessory = platform_accessory()
    server.add(accessory, 2)
    mock_bridge.return_value.add_accessory.assert_called_once()
    assert accessory.uuid in server.accessories

    server.remove(accessory.uuid)
    assert server.accessories == {}
    # Not started yet, nothing to re-advertise
    driver.config_changed.assert_not_called()
