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

"""HomeKit exposure of platform accessories through HAP-python.

Each PlatformAccessory is mirrored by one HAP-python Accessory on a
Bridge. Reads and writes from controllers go through the platform
characteristic handlers, and values pushed by devices are forwarded to
HAP-python so subscribed controllers are notified.
"""

import asyncio
import inspect
import logging
from typing import Dict, Optional

from pyhap.accessory import Accessory, Bridge
from pyhap.accessory_driver import AccessoryDriver
from pyhap.const import (
    CATEGORY_ALARM_SYSTEM, CATEGORY_CAMERA, CATEGORY_DOOR_LOCK, CATEGORY_SENSOR,
)

from .accessory import (
    PlatformAccessory, SERVICE_ACCESSORY_INFORMATION, SERVICE_LOCK_MECHANISM,
    SERVICE_SECURITY_SYSTEM, SERVICE_DOORBELL,
)

logger = logging.getLogger('simplisafe-local')

DEFAULT_HAP_PORT = 51826
INFO_CHARACTERISTICS = ('Manufacturer', 'Model', 'SerialNumber', 'FirmwareRevision')


def category_for(accessory: PlatformAccessory) -> int:
    if accessory.has_service(SERVICE_SECURITY_SYSTEM):
        return CATEGORY_ALARM_SYSTEM
    if accessory.has_service(SERVICE_LOCK_MECHANISM):
        return CATEGORY_DOOR_LOCK
    if accessory.has_service(SERVICE_DOORBELL) or accessory.context.get('kind') == 'camera':
        return CATEGORY_CAMERA
    return CATEGORY_SENSOR


class HapAccessory:
    """
    HAP-python accessory mirroring one PlatformAccessory.

    Args:
        driver: AccessoryDriver the accessory is served by
        platform_accessory: Accessory whose services are exposed
        aid: Stable HomeKit accessory id
    """

    def __init__(self, driver, platform_accessory: PlatformAccessory, aid: Optional[int] = None):
        self.driver = driver
        self.platform_accessory = platform_accessory
        self.accessory = Accessory(driver, platform_accessory.display_name, aid=aid)
        self.accessory.category = category_for(platform_accessory)
        self._configure()

    def _configure(self):
        for service in self.platform_accessory.services:
            if service.type == SERVICE_ACCESSORY_INFORMATION:
                self._configure_info(service)
                continue

            try:
                hap_service = self.accessory.add_preload_service(service.type)
            except KeyError:
                logger.warning(f"Service {service.type} is not known to HAP-python, not exposing it")
                continue

            for char in service.characteristics.values():
                try:
                    hap_service.get_characteristic(char.name)
                except ValueError:
                    try:
                        hap_service.add_characteristic(self.driver.loader.get_char(char.name))
                    except KeyError:
                        logger.warning(f"Characteristic {char.name} is not known to HAP-python, not exposing it")
                        continue

                hap_char = hap_service.configure_char(
                    char.name,
                    value=char.value,
                    getter_callback=self._getter(char) if char.readable else None,
                    setter_callback=self._setter(char) if char.writable else None,
                )
                char.subscribe(self._notifier(hap_char))

    def _configure_info(self, service):
        info = self.accessory.get_service('AccessoryInformation')
        for name in INFO_CHARACTERISTICS:
            value = service.characteristics.get(name).value if name in service.characteristics else None
            if value:
                try:
                    info.configure_char(name, value=str(value))
                except ValueError as e:
                    logger.debug(f"Ignoring {name} for {self.platform_accessory.display_name}: {e}")
        info.configure_char('Identify', setter_callback=self._identify)

    def _identify(self, _value):
        self.platform_accessory.identify()

    @staticmethod
    def _getter(char):
        # Exceptions (rate limited, unreachable) are reported to controllers
        # by HAP-python as a communication failure
        return char.get_value

    @staticmethod
    def _setter(char):
        def setter(value):
            if char.set_handler is None:
                char.value = value
                return
            # Synchronous failures (unreachable) propagate to HAP-python
            result = char.set_handler(value)
            if not inspect.isawaitable(result):
                char.value = value
                return
            task = asyncio.ensure_future(result)
            task.add_done_callback(lambda t: _finish_set(t, char, value))
        return setter

    @staticmethod
    def _notifier(hap_char):
        def notify(value):
            if value is None:
                return
            hap_char.set_value(value)
        return notify


def _finish_set(task: asyncio.Task, char, value):
    """Commit a write the account accepted, or push the last applied value back to controllers."""
    if task.cancelled():
        error = "cancelled"
    else:
        error = task.exception()
    if error is None:
        char.value = value
        return
    logger.error(f"Failed to set {char.name}: {error}")
    char.update_value(char.value)


class HapServer:
    """
    Serves the bridged accessories to HomeKit controllers.

    Args:
        name: Bridge display name
        port: HAP port
        persist_file: Where HAP-python keeps pairing state
        loop: Event loop the driver runs on
    """

    def __init__(self, name: str, port: int = DEFAULT_HAP_PORT, persist_file: str = 'simplisafe-local.state',
                 loop: Optional[asyncio.AbstractEventLoop] = None, driver=None):
        self.driver = driver or AccessoryDriver(port=port, persist_file=persist_file, loop=loop)
        self.bridge = Bridge(self.driver, name)
        self.driver.add_accessory(accessory=self.bridge)
        self.accessories: Dict[str, HapAccessory] = {}
        self._started = False

    def add(self, accessory: PlatformAccessory, aid: Optional[int] = None):
        hap_accessory = HapAccessory(self.driver, accessory, aid)
        self.bridge.add_accessory(hap_accessory.accessory)
        self.accessories[accessory.uuid] = hap_accessory
        if self._started:
            self.driver.config_changed()
        logger.debug(f"Exposed '{accessory.display_name}' on HAP (aid {hap_accessory.accessory.aid})")

    def remove(self, uuid: str):
        hap_accessory = self.accessories.pop(uuid, None)
        if hap_accessory is None:
            return
        self.bridge.accessories.pop(hap_accessory.accessory.aid, None)
        if self._started:
            self.driver.config_changed()

    async def start(self):
        await self.driver.async_start()
        self._started = True
        logger.info(f"HomeKit bridge running with {len(self.accessories)} accessories, "
                    f"setup code {self.driver.state.pincode.decode()}")

    async def stop(self):
        if self._started:
            await self.driver.async_stop()
            self._started = False
