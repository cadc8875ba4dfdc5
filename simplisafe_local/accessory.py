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

"""Platform accessory model: accessories, services and characteristics.

This is the state the platform reads and writes. It is persisted by the
store and mirrored onto HAP-python by the hap module, so service and
characteristic names use the HAP names HAP-python loads.
"""

import hashlib
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

PLATFORM_NAME = 'SimpliSafe 3'

PERM_READ = 'pr'
PERM_WRITE = 'pw'
PERM_NOTIFY = 'ev'

READ_NOTIFY = (PERM_READ, PERM_NOTIFY)
READ_WRITE_NOTIFY = (PERM_READ, PERM_WRITE, PERM_NOTIFY)

# Service types
SERVICE_ACCESSORY_INFORMATION = 'AccessoryInformation'
SERVICE_SECURITY_SYSTEM = 'SecuritySystem'
SERVICE_CONTACT_SENSOR = 'ContactSensor'
SERVICE_MOTION_SENSOR = 'MotionSensor'
SERVICE_CARBON_MONOXIDE_SENSOR = 'CarbonMonoxideSensor'
SERVICE_SMOKE_SENSOR = 'SmokeSensor'
SERVICE_LEAK_SENSOR = 'LeakSensor'
SERVICE_TEMPERATURE_SENSOR = 'TemperatureSensor'
SERVICE_LOCK_MECHANISM = 'LockMechanism'
SERVICE_BATTERY = 'BatteryService'
SERVICE_DOORBELL = 'Doorbell'

# Characteristics each service carries, with their permissions
SERVICE_CHARACTERISTICS: Dict[str, Dict[str, tuple]] = {
    SERVICE_ACCESSORY_INFORMATION: {
        'Identify': (PERM_WRITE,),
        'Manufacturer': (PERM_READ,),
        'Model': (PERM_READ,),
        'Name': (PERM_READ,),
        'SerialNumber': (PERM_READ,),
        'FirmwareRevision': (PERM_READ,),
    },
    SERVICE_SECURITY_SYSTEM: {
        'SecuritySystemCurrentState': READ_NOTIFY,
        'SecuritySystemTargetState': READ_WRITE_NOTIFY,
        'StatusFault': READ_NOTIFY,
    },
    SERVICE_CONTACT_SENSOR: {
        'ContactSensorState': READ_NOTIFY,
        'StatusLowBattery': READ_NOTIFY,
    },
    SERVICE_MOTION_SENSOR: {
        'MotionDetected': READ_NOTIFY,
        'StatusLowBattery': READ_NOTIFY,
    },
    SERVICE_CARBON_MONOXIDE_SENSOR: {
        'CarbonMonoxideDetected': READ_NOTIFY,
        'StatusLowBattery': READ_NOTIFY,
    },
    SERVICE_SMOKE_SENSOR: {
        'SmokeDetected': READ_NOTIFY,
        'StatusLowBattery': READ_NOTIFY,
    },
    SERVICE_LEAK_SENSOR: {
        'LeakDetected': READ_NOTIFY,
        'StatusLowBattery': READ_NOTIFY,
    },
    SERVICE_TEMPERATURE_SENSOR: {
        'CurrentTemperature': READ_NOTIFY,
        'StatusLowBattery': READ_NOTIFY,
    },
    SERVICE_LOCK_MECHANISM: {
        'LockCurrentState': READ_NOTIFY,
        'LockTargetState': READ_WRITE_NOTIFY,
    },
    SERVICE_BATTERY: {
        'BatteryLevel': READ_NOTIFY,
        'ChargingState': READ_NOTIFY,
        'StatusLowBattery': READ_NOTIFY,
    },
    SERVICE_DOORBELL: {
        'ProgrammableSwitchEvent': READ_NOTIFY,
    },
}


def generate_uuid(data: str) -> str:
    """
    Derive a stable accessory UUID from a device id.

    Same derivation as HAP-NodeJS uuid.generate (SHA-1 digest laid out as a
    version 4 UUID), so accessories cached by older bridges keep their ids.

    Example: generate_uuid('S1') always returns the same lowercase UUID string
    """
    digest = hashlib.sha1(str(data).encode('utf-8')).hexdigest()
    out = []
    i = 0
    for c in 'xxxxxxxx-xxxx-4xxx-yxxx-xxxxxxxxxxxx':
        if c == 'x':
            out.append(digest[i])
            i += 1
        elif c == 'y':
            out.append(format((int(digest[i], 16) & 0x3) | 0x8, 'x'))
            i += 1
        else:
            out.append(c)
    return ''.join(out)


class Characteristic:
    """A single piece of accessory state with optional get/set handlers."""

    def __init__(self, name: str, perms: tuple = READ_NOTIFY, value: Any = None):
        self.name = name
        self.perms = tuple(perms)
        self.value = value
        self.get_handler: Optional[Callable[[], Any]] = None
        self.set_handler: Optional[Callable[[Any], Any]] = None
        self._listeners: List[Callable[[Any], None]] = []

    @property
    def readable(self) -> bool:
        return PERM_READ in self.perms

    @property
    def writable(self) -> bool:
        return PERM_WRITE in self.perms

    def on_get(self, handler: Callable[[], Any]) -> 'Characteristic':
        self.get_handler = handler
        return self

    def on_set(self, handler: Callable[[Any], Any]) -> 'Characteristic':
        self.set_handler = handler
        return self

    def remove_handlers(self):
        self.get_handler = None
        self.set_handler = None

    def subscribe(self, listener: Callable[[Any], None]):
        """Register a callback invoked with every pushed value."""
        self._listeners.append(listener)

    def get_value(self) -> Any:
        """Read the value, going through the get handler when one is bound."""
        if self.get_handler:
            return self.get_handler()
        return self.value

    async def handle_set(self, value: Any):
        """Apply a write from a controller, going through the set handler when one is bound."""
        if self.set_handler:
            result = self.set_handler(value)
            if inspect.isawaitable(result):
                await result
        self.value = value

    def update_value(self, value: Any):
        """Push a new value to the accessory and notify listeners."""
        self.value = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                logger.error(f"Error notifying listener for {self.name}: {e}")

    def __repr__(self) -> str:
        return f"<Characteristic {self.name}={self.value!r}>"


class AccessoryService:
    """A service groups the characteristics of one function of an accessory."""

    def __init__(self, service_type: str, name: Optional[str] = None):
        self.type = service_type
        self.name = name
        self.characteristics: Dict[str, Characteristic] = {}
        for char_name, perms in SERVICE_CHARACTERISTICS.get(service_type, {}).items():
            self.characteristics[char_name] = Characteristic(char_name, perms)

    def get_characteristic(self, name: str) -> Characteristic:
        """Get a characteristic, adding it (read/notify) if the service does not have it yet."""
        char = self.characteristics.get(name)
        if char is None:
            char = Characteristic(name)
            self.characteristics[name] = char
        return char

    def set_characteristic(self, name: str, value: Any) -> 'AccessoryService':
        self.get_characteristic(name).value = value
        return self

    def update_characteristic(self, name: str, value: Any) -> 'AccessoryService':
        self.get_characteristic(name).update_value(value)
        return self


class PlatformAccessory:
    """
    The externally visible, persisted representation of one device.

    Args:
        display_name: Name shown in the Home app
        uuid: Stable identifier derived from the device id
        platform: Name of the platform that owns the accessory
        context: Free-form data persisted with the accessory
    """

    def __init__(self, display_name: str, uuid: str, platform: str = PLATFORM_NAME,
                 context: Optional[Dict[str, Any]] = None):
        self.display_name = display_name
        self.uuid = uuid
        self.platform = platform
        self.context: Dict[str, Any] = context or {}
        self.services: List[AccessoryService] = []
        self.identify_handler: Optional[Callable[[], None]] = None

        info = self.add_service(SERVICE_ACCESSORY_INFORMATION)
        info.set_characteristic('Name', display_name)

    def add_service(self, service_type: str, name: Optional[str] = None) -> AccessoryService:
        service = AccessoryService(service_type, name)
        self.services.append(service)
        return service

    def get_service(self, service_type: str) -> Optional[AccessoryService]:
        for service in self.services:
            if service.type == service_type:
                return service
        return None

    def get_or_add_service(self, service_type: str, name: Optional[str] = None) -> AccessoryService:
        return self.get_service(service_type) or self.add_service(service_type, name)

    def has_service(self, service_type: str) -> bool:
        return self.get_service(service_type) is not None

    def on_identify(self, handler: Callable[[], None]):
        self.identify_handler = handler

    def identify(self):
        """Forward an identify request to whatever is bound to the accessory."""
        if self.identify_handler:
            self.identify_handler()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for persistence (handlers are not persisted)."""
        return {
            'uuid': self.uuid,
            'display_name': self.display_name,
            'platform': self.platform,
            'context': self.context,
            'services': [
                {
                    'type': service.type,
                    'name': service.name,
                    'characteristics': {
                        char.name: {'perms': list(char.perms), 'value': char.value}
                        for char in service.characteristics.values()
                    },
                }
                for service in self.services
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlatformAccessory':
        """Restore a cached accessory from its persisted form."""
        accessory = cls(data['display_name'], data['uuid'], data.get('platform', PLATFORM_NAME), data.get('context'))
        accessory.services = []
        for service_data in data.get('services', []):
            service = accessory.add_service(service_data['type'], service_data.get('name'))
            for char_name, char_data in service_data.get('characteristics', {}).items():
                char = service.get_characteristic(char_name)
                char.perms = tuple(char_data.get('perms', char.perms))
                char.value = char_data.get('value')
        if not accessory.has_service(SERVICE_ACCESSORY_INFORMATION):
            accessory.services.insert(0, AccessoryService(SERVICE_ACCESSORY_INFORMATION))
        return accessory

    def __repr__(self) -> str:
        return f"<PlatformAccessory '{self.display_name}' {self.uuid}>"
