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

"""Platform controller: accessory lifecycle, rate limit recovery and state refresh.

Accessory Lifecycle:
====================

Every cached accessory goes through configure_accessory() once the
initial load (credential refresh + reconcile) has finished:

- requests blocked      -> UnreachableSubstitute until the retry succeeds
- matching device       -> bound to the device
- alarm panel, account
  not authenticated     -> bound to a fault-flagged alarm device
- otherwise             -> removed (unless persistAccessories is set)

Devices without an accessory get a new one from
create_new_platform_accessories(). A rate limited initial load or retry
schedules a single retry of the whole reconciliation at next_attempt.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .accessory import PLATFORM_NAME, PlatformAccessory, SERVICE_SECURITY_SYSTEM, generate_uuid
from .config import PlatformConfig
from .devices import Device, DeviceKind
from .errors import RateLimitError
from .events import EventDispatcher
from .ratelimit import RateLimitGate
from .reconcile import ALARM_NAME, DeviceRegistry, Reconciler
from .unreachable import UnreachableSubstitute

logger = logging.getLogger('simplisafe-local')

FAULT_ALARM_ID = '000'


class PlatformController:
    """
    Wires the account, the bridge and the device registry together.

    Args:
        config: PlatformConfig
        account: Account service
        bridge: AccessoryBridge (or anything with the same three methods)
        gate: Shared RateLimitGate, created if not given
        dispatcher: EventDispatcher, created if not given
        uuid_fn: Derives accessory uuids from device ids
    """

    def __init__(self, config: PlatformConfig, account, bridge, gate: Optional[RateLimitGate] = None,
                 dispatcher: Optional[EventDispatcher] = None, uuid_fn: Callable[[str], str] = generate_uuid):
        self.config = config
        self.account = account
        self.bridge = bridge
        self.gate = gate or RateLimitGate()
        self.dispatcher = dispatcher or EventDispatcher()
        self.registry = DeviceRegistry()
        self.reconciler = Reconciler(account, self.gate, self.registry, config, uuid_fn=uuid_fn)
        self.substitutes: List[UnreachableSubstitute] = []

        self.initial_load: Optional[asyncio.Task] = None
        self.retry_task: Optional[asyncio.Task] = None
        self.retry_delay: Optional[float] = None
        self.background_tasks: List[asyncio.Task] = []
        self.listening = False
        self.is_shutting_down = False
        self.last_refresh: Optional[float] = None
        self.last_error: Optional[Dict[str, Any]] = None

    async def start(self):
        """Load cached accessories, run the initial load and bring up events and refresh."""
        cached = self.bridge.cached_accessories()
        logger.debug(f"Found {len(cached)} cached accessories to be configured")
        if self.config.subscription_id:
            logger.info(f"Using SimpliSafe subscription {self.config.subscription_id}")
            self.account.set_default_subscription(self.config.subscription_id)
        self.initial_load = asyncio.create_task(self._initial_load())

        for accessory in cached:
            await self.configure_accessory(accessory)
        await self.initial_load

        if not self.account.is_authenticated():
            logger.error("Initial accessories refresh failed: not authenticated with SimpliSafe")
            return
        await self._start_services()
        self.create_new_platform_accessories()

    async def _initial_load(self):
        logger.debug("Attempting initial SimpliSafe credentials refresh")
        try:
            await self.gate.call(self.account.refresh_credentials)
            await self.discover()
        except RateLimitError as e:
            self.last_error = e.to_dict()
            logger.error("Initial load failed due to rate limiting or connectivity, trying again later")
            self.schedule_retry()
        except Exception as e:
            self.last_error = {'type': type(e).__name__, 'message': str(e)}
            logger.error(f"SimpliSafe login failed with error: {e}")

    async def discover(self) -> List[Device]:
        """Reconcile and subscribe the new devices to the event stream."""
        created = await self.reconciler.reconcile()
        for device in created:
            if device.event_kinds:
                self.dispatcher.subscribe(device, device.event_kinds)
            if device.kind == DeviceKind.CAMERA and device.streaming is not None:
                logger.debug(f"Camera '{device.name}' using {device.streaming.strategy} streaming")
        return created

    async def configure_accessory(self, accessory: PlatformAccessory):
        """Bind a cached accessory once the initial load is done."""
        if self.initial_load is not None:
            await self.initial_load

        if self.gate.is_blocked():
            self.substitutes.append(UnreachableSubstitute(accessory))
            return

        device = self.registry.find_device(accessory.uuid)
        if device is not None:
            logger.debug(f"Initializing device '{device.name}' with cached accessory")
            device.bind(accessory)
            self.registry.bind(accessory)
            return

        logger.debug(f"Cached accessory {accessory.uuid} not matched to a SimpliSafe device")
        if (not self.account.is_authenticated() and accessory.has_service(SERVICE_SECURITY_SYSTEM)
                and accessory.platform == PLATFORM_NAME):
            # Show a faulted alarm rather than dropping the accessory
            alarm = self.reconciler.create_device(DeviceKind.ALARM, ALARM_NAME, FAULT_ALARM_ID, uuid=accessory.uuid)
            self.registry.add_devices([alarm])
            alarm.bind(accessory)
            alarm.set_fault()
            self.registry.bind(accessory)
        else:
            self.remove_accessory(accessory)

    def remove_accessory(self, accessory: Optional[PlatformAccessory]):
        if accessory is None:
            return
        if not self.config.persist_accessories and not self.gate.is_blocked():
            logger.debug(f"Removing accessory {accessory.display_name or accessory.uuid}")
            self.bridge.unregister_platform_accessories([accessory])
        self.registry.release(accessory)

    def create_new_platform_accessories(self) -> List[PlatformAccessory]:
        """Create and register an accessory for every device that has none."""
        registered = []
        for device in self.registry.unbound_devices():
            logger.debug(f"Initializing SimpliSafe device '{device.name}' with new accessory")
            accessory = device.create_accessory()
            try:
                self.bridge.register_platform_accessories([accessory])
            except Exception as e:
                logger.error(f"An error occurred while adding accessory '{device.name}': {e}")
                continue
            self.registry.bind(accessory)
            registered.append(accessory)
        return registered

    def schedule_retry(self) -> bool:
        """Schedule retry_blocked_accessories at next_attempt, unless one is already pending."""
        if self.is_shutting_down:
            return False
        # A retry that fails again reschedules from inside its own task
        pending = self.retry_task
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            return False
        self.retry_delay = self.gate.seconds_until_retry()
        logger.info(f"Retrying SimpliSafe in {self.retry_delay:.0f}s")
        self.retry_task = asyncio.create_task(self._retry_later(self.retry_delay))
        return True

    async def _retry_later(self, delay: float):
        # retry_task keeps pointing at this task until it finishes so stop() can cancel it
        await asyncio.sleep(delay)
        self.retry_delay = None
        await self.retry_blocked_accessories()

    async def retry_blocked_accessories(self) -> bool:
        """
        Recover from rate limiting.

        Returns:
            True when the account could be reached and substitutes were rebound
        """
        try:
            await self.gate.call(self.account.refresh_credentials)
            logger.info("Recovered from rate limit")
            await self.discover()

            substitutes, self.substitutes = self.substitutes, []
            for substitute in substitutes:
                substitute.clear()
                await self.configure_accessory(substitute.accessory)

            if self.is_shutting_down:
                return False
            self.create_new_platform_accessories()
            if self.account.is_authenticated():
                await self._start_services()
            self.last_error = None
            return True
        except RateLimitError as e:
            self.last_error = e.to_dict()
            logger.error("Credentials refresh attempt failed, still rate limited")
            self.schedule_retry()
        except Exception as e:
            self.last_error = {'type': type(e).__name__, 'message': str(e)}
            logger.error(f"An error occurred while refreshing credentials again: {e}")
        return False

    async def _start_services(self):
        if self.is_shutting_down:
            return
        if not self.listening:
            await self.account.start_listening(self.dispatcher.publish)
            self.listening = True
            logger.info("Listening for SimpliSafe events")
        if not any(not t.done() for t in self.background_tasks):
            self.background_tasks.append(asyncio.create_task(self._refresh_loop()))

    async def _refresh_loop(self):
        while not self.is_shutting_down:
            await asyncio.sleep(self.config.sensor_refresh)
            try:
                await self.refresh_device_states()
            except Exception as e:
                logger.error(f"Device refresh error: {e}")

    async def refresh_device_states(self) -> bool:
        """Fetch the current state of every device and apply it to the bound accessories."""
        try:
            sensors = await self.gate.call(self.account.get_sensors, True)
            locks = await self.gate.call(self.account.get_locks, True)
            subscription = await self.gate.call(self.account.get_subscription)
            cameras = await self.gate.call(self.account.get_cameras, True) if self.config.cameras else []
        except RateLimitError as e:
            logger.warning(f"Skipping device refresh: {e}")
            return False

        for record in list(sensors or []) + list(locks or []):
            self._apply(record.get('serial'), record)

        system = ((subscription or {}).get('location') or {}).get('system') or {}
        if system.get('serial') is not None:
            self._apply(system['serial'], subscription)

        seen_cameras = set()
        for camera in cameras or []:
            seen_cameras.add(camera.get('uuid'))
            self._apply(camera.get('uuid'), camera)
        for device in self.registry.devices:
            if device.kind == DeviceKind.CAMERA and device.id not in seen_cameras and self.config.cameras:
                device.reachable = False

        self.bridge_update()
        self.last_refresh = time.time()
        return True

    def _apply(self, device_id, record: Dict[str, Any]):
        if device_id is None:
            return
        device = self.registry.find_device(self.reconciler.uuid_fn(str(device_id)))
        if device is not None:
            device.apply_status(record)

    def bridge_update(self):
        update = getattr(self.bridge, 'update_platform_accessories', None)
        if update is not None:
            update(list(self.registry.accessories))

    async def stop(self):
        """Cancel background work and stop listening for events."""
        logger.info("Stopping SimpliSafe platform...")
        self.is_shutting_down = True
        tasks = list(self.background_tasks)
        if self.retry_task is not None:
            tasks.append(self.retry_task)
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.background_tasks.clear()
        self.retry_task = None
        self.dispatcher.close()

        if self.listening:
            try:
                await self.account.stop_listening()
            except Exception as e:
                logger.warning(f"Error while stopping event stream: {e}")
            self.listening = False
        self.bridge_update()
        logger.info("SimpliSafe platform stopped")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.config.name,
            'authenticated': self.account.is_authenticated(),
            'listening': self.listening,
            'rate_limit': self.gate.to_dict(),
            'retry_scheduled': self.retry_task is not None and not self.retry_task.done(),
            'registry': self.registry.to_dict(),
            'unreachable': len(self.substitutes),
            'pending_motion_resets': self.dispatcher.pending_resets(),
            'last_refresh': self.last_refresh,
            'last_error': self.last_error,
        }
