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

"""SimpliSafe devices and how their state maps onto accessory characteristics."""

import logging
from typing import Any, Callable, Dict, Optional

from .account import (
    ALARM_ALARM, ALARM_AWAY, ALARM_AWAY_COUNT, ALARM_HOME, ALARM_HOME_COUNT, ALARM_OFF,
    SENSOR_TYPES,
)
from .accessory import (
    PlatformAccessory, generate_uuid,
    SERVICE_ACCESSORY_INFORMATION, SERVICE_BATTERY, SERVICE_CARBON_MONOXIDE_SENSOR,
    SERVICE_CONTACT_SENSOR, SERVICE_DOORBELL, SERVICE_LEAK_SENSOR, SERVICE_LOCK_MECHANISM,
    SERVICE_MOTION_SENSOR, SERVICE_SECURITY_SYSTEM, SERVICE_SMOKE_SENSOR, SERVICE_TEMPERATURE_SENSOR,
)
from .camera import CameraStreaming, DOORBELL_MODEL
from .events import DOORBELL, MOTION, TransientEvent
from .ratelimit import RateLimitGate

logger = logging.getLogger(__name__)

MANUFACTURER = 'SimpliSafe'

# HomeKit characteristic values
SECURITY_STAY_ARM = 0
SECURITY_AWAY_ARM = 1
SECURITY_NIGHT_ARM = 2
SECURITY_DISARMED = 3
SECURITY_ALARM_TRIGGERED = 4

LOCK_UNSECURED = 0
LOCK_SECURED = 1
LOCK_JAMMED = 2
LOCK_UNKNOWN = 3

BATTERY_LEVEL_NORMAL = 0
BATTERY_LEVEL_LOW = 1
NOT_CHARGING = 0
CHARGING = 1

CAMERA_LOW_BATTERY_PERCENT = 20

# Account alarm state -> (current, target)
ALARM_STATES = {
    ALARM_OFF: (SECURITY_DISARMED, SECURITY_DISARMED),
    ALARM_HOME: (SECURITY_STAY_ARM, SECURITY_STAY_ARM),
    ALARM_AWAY: (SECURITY_AWAY_ARM, SECURITY_AWAY_ARM),
    ALARM_HOME_COUNT: (SECURITY_DISARMED, SECURITY_STAY_ARM),
    ALARM_AWAY_COUNT: (SECURITY_DISARMED, SECURITY_AWAY_ARM),
    ALARM_ALARM: (SECURITY_ALARM_TRIGGERED, None),
}

# HomeKit target -> account alarm state (no night mode on SimpliSafe)
ALARM_TARGETS = {
    SECURITY_STAY_ARM: ALARM_HOME,
    SECURITY_AWAY_ARM: ALARM_AWAY,
    SECURITY_NIGHT_ARM: ALARM_HOME,
    SECURITY_DISARMED: ALARM_OFF,
}


class DeviceKind:
    ALARM = 'alarm'
    ENTRY_SENSOR = 'entry_sensor'
    CO_DETECTOR = 'co_detector'
    SMOKE_DETECTOR = 'smoke_detector'
    WATER_SENSOR = 'water_sensor'
    FREEZE_SENSOR = 'freeze_sensor'
    MOTION_SENSOR = 'motion_sensor'
    DOOR_LOCK = 'door_lock'
    CAMERA = 'camera'


class DeviceProfile:
    """Static description of one device kind."""

    def __init__(self, label: str, service: str, state_characteristic: str, event_kinds=(), has_battery_flag=True):
        self.label = label
        self.service = service
        self.state_characteristic = state_characteristic
        self.event_kinds = tuple(event_kinds)
        self.has_battery_flag = has_battery_flag


PROFILES: Dict[str, DeviceProfile] = {
    DeviceKind.ALARM: DeviceProfile('SimpliSafe 3', SERVICE_SECURITY_SYSTEM, 'SecuritySystemCurrentState',
                                    has_battery_flag=False),
    DeviceKind.ENTRY_SENSOR: DeviceProfile('Entry Sensor', SERVICE_CONTACT_SENSOR, 'ContactSensorState'),
    DeviceKind.CO_DETECTOR: DeviceProfile('CO Detector', SERVICE_CARBON_MONOXIDE_SENSOR, 'CarbonMonoxideDetected'),
    DeviceKind.SMOKE_DETECTOR: DeviceProfile('Smoke Detector', SERVICE_SMOKE_SENSOR, 'SmokeDetected'),
    DeviceKind.WATER_SENSOR: DeviceProfile('Water Sensor', SERVICE_LEAK_SENSOR, 'LeakDetected'),
    DeviceKind.FREEZE_SENSOR: DeviceProfile('Freeze Sensor', SERVICE_TEMPERATURE_SENSOR, 'CurrentTemperature'),
    DeviceKind.MOTION_SENSOR: DeviceProfile('Motion Sensor', SERVICE_MOTION_SENSOR, 'MotionDetected',
                                            event_kinds=(MOTION,)),
    DeviceKind.DOOR_LOCK: DeviceProfile('Smart Lock', SERVICE_LOCK_MECHANISM, 'LockCurrentState',
                                        has_battery_flag=False),
    DeviceKind.CAMERA: DeviceProfile('Camera', SERVICE_MOTION_SENSOR, 'MotionDetected',
                                     event_kinds=(MOTION, DOORBELL), has_battery_flag=False),
}

# Sensor type code -> device kind, for the sensors we expose
SENSOR_KINDS = {
    SENSOR_TYPES['ENTRY_SENSOR']: DeviceKind.ENTRY_SENSOR,
    SENSOR_TYPES['CO_SENSOR']: DeviceKind.CO_DETECTOR,
    SENSOR_TYPES['SMOKE_SENSOR']: DeviceKind.SMOKE_DETECTOR,
    SENSOR_TYPES['WATER_SENSOR']: DeviceKind.WATER_SENSOR,
    SENSOR_TYPES['FREEZE_SENSOR']: DeviceKind.FREEZE_SENSOR,
    SENSOR_TYPES['MOTION_SENSOR']: DeviceKind.MOTION_SENSOR,
}


def fahrenheit_to_celsius(value: float) -> float:
    return round((float(value) - 32.0) * 5.0 / 9.0, 1)


class Device:
    """
    One alarm panel, sensor, lock or camera of the account.

    Args:
        kind: One of DeviceKind
        name: Display name
        device_id: Stable id from the account (serial, or uuid for cameras)
        account: Account service used for writes
        gate: Shared RateLimitGate consulted on every read
        details: Raw record the device was discovered from
        streaming: CameraStreaming for camera devices
        uuid_fn: Derives the accessory uuid from the device id
        uuid: Explicit accessory uuid, overrides uuid_fn
    """

    def __init__(self, kind: str, name: str, device_id: str, account, gate: RateLimitGate,
                 details: Optional[Dict[str, Any]] = None, streaming: Optional[CameraStreaming] = None,
                 uuid_fn: Callable[[str], str] = generate_uuid, uuid: Optional[str] = None):
        if kind not in PROFILES:
            raise ValueError(f"Unknown device kind: {kind}")
        self.kind = kind
        self.name = name
        self.id = str(device_id)
        self.uuid = uuid or uuid_fn(self.id)
        self.account = account
        self.gate = gate
        self.details: Dict[str, Any] = details or {}
        self.streaming = streaming
        self.accessory: Optional[PlatformAccessory] = None
        self.triggered = False
        self.reachable = True
        self.fault = False

    @property
    def profile(self) -> DeviceProfile:
        return PROFILES[self.kind]

    @property
    def event_kinds(self):
        if self.kind == DeviceKind.CAMERA and not self.is_doorbell:
            return (MOTION,)
        return self.profile.event_kinds

    @property
    def is_doorbell(self) -> bool:
        return self.kind == DeviceKind.CAMERA and self.details.get('model') == DOORBELL_MODEL

    @property
    def has_battery_service(self) -> bool:
        return self.kind == DeviceKind.CAMERA and (self.details.get('supportedFeatures') or {}).get('battery') is True

    def supports_privacy_shutter(self) -> bool:
        return bool((self.details.get('supportedFeatures') or {}).get('privacyShutter'))

    def identify(self):
        logger.debug(f"Identify request for {self.name}")

    def create_accessory(self) -> PlatformAccessory:
        """Create a new accessory for this device and bind to it."""
        accessory = PlatformAccessory(self.name, self.uuid, context={'id': self.id, 'kind': self.kind})
        self.bind(accessory)
        return accessory

    def bind(self, accessory: PlatformAccessory):
        """Take ownership of an accessory (new or cached) and attach handlers."""
        self.accessory = accessory
        accessory.context.update({'id': self.id, 'kind': self.kind})
        accessory.on_identify(self.identify)

        info = accessory.get_or_add_service(SERVICE_ACCESSORY_INFORMATION)
        info.set_characteristic('Manufacturer', MANUFACTURER)
        info.set_characteristic('Model', self.details.get('model') or self.profile.label)
        info.set_characteristic('SerialNumber', self.id)
        info.set_characteristic('Name', self.name)
        firmware = ((self.details.get('cameraSettings') or {}).get('admin') or {}).get('firmwareVersion')
        if firmware:
            info.set_characteristic('FirmwareRevision', firmware)

        self._attach_reads(self.profile.service)
        if self.kind == DeviceKind.ALARM:
            accessory.get_service(SERVICE_SECURITY_SYSTEM).get_characteristic(
                'SecuritySystemTargetState').on_set(self._set_alarm_target)
        elif self.kind == DeviceKind.DOOR_LOCK:
            accessory.get_service(SERVICE_LOCK_MECHANISM).get_characteristic(
                'LockTargetState').on_set(self._set_lock_target)
        elif self.kind == DeviceKind.CAMERA:
            if self.is_doorbell:
                self._attach_reads(SERVICE_DOORBELL)
            if self.has_battery_service:
                self._attach_reads(SERVICE_BATTERY, f"{self.name} Battery")
                self._update_battery()

        if self.details:
            self.apply_status(self.details)
        if self.fault:
            self.set_fault()

    def _attach_reads(self, service_type: str, name: Optional[str] = None):
        service = self.accessory.get_or_add_service(service_type, name)
        for char in service.characteristics.values():
            if char.readable:
                char.on_get(lambda s=service_type, c=char.name: self.read(s, c))

    def read(self, service_type: str, characteristic: str) -> Any:
        """
        Current value of a characteristic.

        Raises RateLimitError while requests are blocked rather than
        returning a value that may be stale.
        """
        self.gate.check()
        service = self.accessory.get_service(service_type) if self.accessory else None
        if service is None:
            return None
        return service.get_characteristic(characteristic).value

    def _update(self, service_type: str, characteristic: str, value: Any):
        if not self.accessory:
            return
        service = self.accessory.get_service(service_type)
        if service is not None:
            service.update_characteristic(characteristic, value)

    def handle_event(self, event: TransientEvent):
        if event.kind == MOTION:
            self.set_motion(True)
        elif event.kind == DOORBELL:
            self._update(SERVICE_DOORBELL, 'ProgrammableSwitchEvent', 0)

    def set_motion(self, detected: bool):
        self.triggered = detected
        self._update(SERVICE_MOTION_SENSOR, 'MotionDetected', detected)

    def reset_motion(self):
        self.set_motion(False)

    def set_fault(self):
        """Flag the alarm panel as faulted (used when the account cannot be reached)."""
        self.fault = True
        self._update(SERVICE_SECURITY_SYSTEM, 'StatusFault', 1)

    async def _set_alarm_target(self, value):
        state = ALARM_TARGETS.get(int(value))
        if state is None:
            raise ValueError(f"Unsupported security system target state: {value}")
        logger.info(f"Setting alarm state to {state}")
        await self.gate.call(self.account.set_alarm_state, state)
        self._update(SERVICE_SECURITY_SYSTEM, 'SecuritySystemCurrentState', int(value))

    async def _set_lock_target(self, value):
        state = 'lock' if int(value) == LOCK_SECURED else 'unlock'
        logger.info(f"Setting lock '{self.name}' to {state}")
        await self.gate.call(self.account.set_lock_state, self.id, state)
        self._update(SERVICE_LOCK_MECHANISM, 'LockCurrentState', int(value))

    def apply_status(self, raw: Dict[str, Any]):
        """Apply a refreshed record (subscription, sensor, lock or camera) to the accessory."""
        if self.kind == DeviceKind.ALARM:
            self.details = raw
            self._apply_alarm(raw)
            return

        self.details = raw if self.kind != DeviceKind.CAMERA else {**self.details, **raw}
        status = raw.get('status') or {}
        flags = raw.get('flags') or {}
        service = self.profile.service

        if self.kind == DeviceKind.ENTRY_SENSOR:
            self._update(service, 'ContactSensorState', 1 if status.get('triggered') else 0)
        elif self.kind in (DeviceKind.CO_DETECTOR, DeviceKind.SMOKE_DETECTOR, DeviceKind.WATER_SENSOR):
            self._update(service, self.profile.state_characteristic, 1 if status.get('triggered') else 0)
        elif self.kind == DeviceKind.FREEZE_SENSOR:
            if status.get('temperature') is not None:
                self._update(service, 'CurrentTemperature', fahrenheit_to_celsius(status['temperature']))
        elif self.kind == DeviceKind.DOOR_LOCK:
            lock_state = status.get('lockState')
            current = lock_state if lock_state in (LOCK_UNSECURED, LOCK_SECURED, LOCK_JAMMED) else LOCK_UNKNOWN
            self._update(service, 'LockCurrentState', current)
            if current in (LOCK_UNSECURED, LOCK_SECURED):
                self._update(service, 'LockTargetState', current)
        elif self.kind == DeviceKind.CAMERA:
            if 'status' in raw:
                self.reachable = raw['status'] == 'online'
            self._update_battery()

        if self.profile.has_battery_flag:
            low = BATTERY_LEVEL_LOW if flags.get('lowBattery') else BATTERY_LEVEL_NORMAL
            self._update(service, 'StatusLowBattery', low)
        elif self.kind == DeviceKind.DOOR_LOCK and 'lockLowBattery' in status:
            self._update(SERVICE_LOCK_MECHANISM, 'StatusLowBattery',
                         BATTERY_LEVEL_LOW if status['lockLowBattery'] else BATTERY_LEVEL_NORMAL)

    def _apply_alarm(self, subscription: Dict[str, Any]):
        system = (subscription.get('location') or {}).get('system') or {}
        current, target = ALARM_STATES.get(system.get('alarmState'), (None, None))
        if system.get('isAlarming'):
            current = SECURITY_ALARM_TRIGGERED
        if current is not None:
            self._update(SERVICE_SECURITY_SYSTEM, 'SecuritySystemCurrentState', current)
        if target is not None:
            self._update(SERVICE_SECURITY_SYSTEM, 'SecuritySystemTargetState', target)

    def battery_level(self) -> int:
        level = (self.details.get('cameraStatus') or {}).get('batteryPercentage')
        return 100 if level is None else level

    def _update_battery(self):
        if not self.has_battery_service:
            return
        level = self.battery_level()
        charging = (self.details.get('currentState') or {}).get('batteryCharging') is True
        self._update(SERVICE_BATTERY, 'BatteryLevel', level)
        self._update(SERVICE_BATTERY, 'ChargingState', CHARGING if charging else NOT_CHARGING)
        self._update(SERVICE_BATTERY, 'StatusLowBattery',
                     BATTERY_LEVEL_LOW if level <= CAMERA_LOW_BATTERY_PERCENT else BATTERY_LEVEL_NORMAL)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'uuid': self.uuid,
            'name': self.name,
            'kind': self.kind,
            'bound': self.accessory is not None,
            'triggered': self.triggered,
            'reachable': self.reachable,
            'fault': self.fault,
        }
        if self.streaming is not None:
            data['streaming'] = self.streaming.to_dict()
        if self.kind == DeviceKind.CAMERA:
            data['privacy_shutter'] = self.supports_privacy_shutter()
            data['doorbell'] = self.is_doorbell
        return data

    def __repr__(self) -> str:
        return f"<Device {self.kind} '{self.name}' {self.id}>"
