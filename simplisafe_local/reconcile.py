#
# Copyright 2025 The SimpliSafeLocal contributors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""Reconciliation of the account's device inventory against known accessories.

Reconcile Flow:
===============

1. Fetch subscription, sensors, locks and (when enabled) cameras through
   the RateLimitGate.
2. Create the alarm panel keyed by the system serial.
3. Create sensors, skipping types without state of their own, excluded
   serials and motion sensors without secret alerts.
4. Create locks keyed by serial.
5. Create cameras keyed by uuid (exclusion is checked on serial).

The pass is additive and create-if-absent: a device that already has a
bound accessory, or is already known, is never created again. Nothing is
committed to the registry unless every step succeeds.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from .accessory import PlatformAccessory, generate_uuid
from .account import IGNORED_SENSOR_TYPES, SENSOR_TYPES
from .camera import CameraStreaming
from .config import PlatformConfig
from .devices import Device, DeviceKind, PROFILES, SENSOR_KINDS
from .errors import RateLimitError, SimpliSafeError
from .ratelimit import RateLimitGate

logger = logging.getLogger(__name__)

ALARM_NAME = 'SimpliSafe 3'


class DeviceRegistry:
    """Known devices and the accessories currently bound to them."""

    def __init__(self):
        self.devices: List[Device] = []
        self.accessories: List[PlatformAccessory] = []

    def find_device(self, uuid: str) -> Optional[Device]:
        for device in self.devices:
            if device.uuid == uuid:
                return device
        return None

    def find_accessory(self, uuid: str) -> Optional[PlatformAccessory]:
        for accessory in self.accessories:
            if accessory.uuid == uuid:
                return accessory
        return None

    def knows(self, uuid: str) -> bool:
        return self.find_accessory(uuid) is not None or self.find_device(uuid) is not None

    def add_devices(self, devices: List[Device]):
        for device in devices:
            if self.find_device(device.uuid) is None:
                self.devices.append(device)

    def bind(self, accessory: PlatformAccessory):
        if self.find_accessory(accessory.uuid) is None:
            self.accessories.append(accessory)

    def release(self, accessory: PlatformAccessory):
        self.accessories = [a for a in self.accessories if a is not accessory]

    def unbound_devices(self) -> List[Device]:
        return [d for d in self.devices if self.find_accessory(d.uuid) is None]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'devices': len(self.devices),
            'accessories': len(self.accessories),
            'unbound': len(self.unbound_devices()),
        }


class Reconciler:
    """
    Creates devices for everything the account reports that is not known yet.

    Args:
        account: Account service
        gate: Shared RateLimitGate every fetch goes through
        registry: DeviceRegistry the new devices are committed to
        config: PlatformConfig (cameras, cameraOptions, excludedDevices)
        uuid_fn: Derives the accessory uuid from a device id
    """

    def __init__(self, account, gate: RateLimitGate, registry: DeviceRegistry, config: PlatformConfig,
                 uuid_fn: Callable[[str], str] = generate_uuid):
        self.account = account
        self.gate = gate
        self.registry = registry
        self.config = config
        self.uuid_fn = uuid_fn

    def create_device(self, kind: str, name: str, device_id: str, **kwargs) -> Device:
        return Device(kind, name, device_id, self.account, self.gate, uuid_fn=self.uuid_fn, **kwargs)

    async def reconcile(self) -> List[Device]:
        """
        Run one reconciliation pass.

        Returns:
            The devices created by this pass (already added to the registry)

        Raises:
            RateLimitError: The account is throttling us; nothing was committed
            SimpliSafeError: Any other failure; nothing was committed
        """
        logger.debug("Discovering devices from SimpliSafe")
        created: List[Device] = []

        def absent(device_id: str) -> bool:
            uuid = self.uuid_fn(str(device_id))
            return not self.registry.knows(uuid) and all(d.uuid != uuid for d in created)

        try:
            subscription = await self.gate.call(self.account.get_subscription)
            system = ((subscription or {}).get('location') or {}).get('system') or {}
            serial = system.get('serial')
            if serial is None:
                raise SimpliSafeError("System serial not found.")
            if absent(serial):
                alarm = self.create_device(DeviceKind.ALARM, ALARM_NAME, serial)
                alarm.apply_status(subscription)
                created.append(alarm)

            sensors = await self.gate.call(self.account.get_sensors)
            for sensor in sensors or []:
                device = self._sensor_device(sensor, absent)
                if device is not None:
                    created.append(device)

            locks = await self.gate.call(self.account.get_locks)
            for lock in locks or []:
                lock_name = lock.get('name') or f"Smart Lock {lock['serial']}"
                logger.debug(f"Discovered door lock '{lock_name}' from SimpliSafe: {lock}")
                if absent(lock['serial']):
                    device = self.create_device(DeviceKind.DOOR_LOCK, lock_name, lock['serial'], details=lock)
                    device.apply_status(lock)
                    created.append(device)

            if self.config.cameras:
                cameras = await self.gate.call(self.account.get_cameras)
                for camera in cameras or []:
                    device = self._camera_device(camera, absent)
                    if device is not None:
                        created.append(device)
        except RateLimitError as e:
            logger.error(f"Accessory refresh failed due to rate limiting or connectivity: {e.to_dict()}")
            logger.info("Note: this error can also occur if you are not signed up for a SimpliSafe monitoring plan.")
            raise
        except Exception as e:
            logger.error(f"An error occurred while refreshing accessories: {e}")
            raise

        self.registry.add_devices(created)
        if created:
            logger.info(f"Discovered {len(created)} new SimpliSafe device(s)")
        return created

    def _sensor_device(self, sensor: Dict[str, Any], absent) -> Optional[Device]:
        sensor_type = sensor.get('type')
        if sensor_type in IGNORED_SENSOR_TYPES:
            return None

        serial = sensor.get('serial')
        logger.debug(f"Discovered sensor '{sensor.get('name')}' from SimpliSafe: {sensor}")
        if serial and serial in self.config.excluded_devices:
            logger.info(f"Excluding sensor with serial '{serial}'")
            return None

        kind = SENSOR_KINDS.get(sensor_type)
        if kind is None:
            logger.warning(f"Sensor not (yet) supported: {sensor.get('name')} (type {sensor_type})")
            return None

        name = sensor.get('name') or f"{PROFILES[kind].label} {serial}"
        if sensor_type == SENSOR_TYPES['MOTION_SENSOR']:
            setting = sensor.get('setting') or {}
            if setting.get('off') == 0 or setting.get('home') == 0 or setting.get('away') == 0:
                logger.warning(f"Motion Sensor '{name}' requires secret alerts to be enabled in SimpliSafe "
                               f"before it can be added")
                return None

        if not absent(serial):
            return None
        device = self.create_device(kind, name, serial, details=sensor)
        device.apply_status(sensor)
        return device

    def _camera_device(self, camera: Dict[str, Any], absent) -> Optional[Device]:
        camera_uuid = camera.get('uuid')
        name = (camera.get('cameraSettings') or {}).get('cameraName') or f"Camera {camera_uuid}"
        logger.debug(f"Discovered camera '{name}' from SimpliSafe: {camera}")

        serial = camera.get('serial')
        if serial and serial in self.config.excluded_devices:
            logger.info(f"Excluding camera with serial '{serial}'")
            return None

        if not absent(camera_uuid):
            return None
        streaming = CameraStreaming.for_camera(camera, self.config.camera_options)
        device = self.create_device(DeviceKind.CAMERA, name, camera_uuid, details=camera, streaming=streaming)
        device.reachable = camera.get('status', 'online') == 'online'
        return device
