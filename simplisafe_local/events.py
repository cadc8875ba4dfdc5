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

"""Routing of pushed account events to devices.

Event Routing:
==============

- Raw MOTION and CAMERA_MOTION events become motion events, DOORBELL
  becomes a doorbell event. Anything else is ignored.
- An event reaches a device when its sensorSerial, or the camera it is
  linked to (internal.mainCamera), equals the device id.
- Motion sets the device's triggered flag and schedules a reset 5 seconds
  later. Every motion event schedules its own reset; resets are not
  merged, so the first one to fire clears the flag.
- A doorbell pulses a single switch event and has no reset.
- Malformed and unmatched events are dropped without error.
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, Iterable, List, Optional

from .account import EVENT_CAMERA_MOTION, EVENT_DOORBELL, EVENT_MOTION

logger = logging.getLogger(__name__)

MOTION = 'motion'
DOORBELL = 'doorbell'

EVENT_KINDS = {
    EVENT_MOTION: MOTION,
    EVENT_CAMERA_MOTION: MOTION,
    EVENT_DOORBELL: DOORBELL,
}

MOTION_RESET_SECONDS = 5.0


class TransientEvent:
    """A pushed motion or doorbell event; never persisted."""

    __slots__ = ('kind', 'target_id', 'linked_id', 'raw_type')

    def __init__(self, kind: str, target_id: str, linked_id: Optional[str] = None, raw_type: Optional[str] = None):
        self.kind = kind
        self.target_id = target_id
        self.linked_id = linked_id
        self.raw_type = raw_type

    @classmethod
    def from_payload(cls, event_type: str, payload: Optional[Dict[str, Any]]) -> Optional['TransientEvent']:
        """Build an event from the raw stream message, or None if it is not usable."""
        kind = EVENT_KINDS.get(event_type)
        if kind is None or not isinstance(payload, dict):
            return None
        target_id = payload.get('sensorSerial')
        if not target_id:
            return None
        internal = payload.get('internal')
        linked_id = internal.get('mainCamera') if isinstance(internal, dict) else None
        return cls(kind, str(target_id), str(linked_id) if linked_id else None, event_type)

    def matches(self, device_id: str) -> bool:
        return device_id == self.target_id or (self.linked_id is not None and device_id == self.linked_id)

    def __repr__(self) -> str:
        return f"<TransientEvent {self.kind} target={self.target_id} linked={self.linked_id}>"


class EventDispatcher:
    """
    Subscriber table per event kind plus the pending motion resets.

    Args:
        reset_delay: Seconds a motion event keeps the triggered flag set
        loop: Event loop for the reset timers, defaults to the running loop
    """

    def __init__(self, reset_delay: float = MOTION_RESET_SECONDS, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.reset_delay = reset_delay
        self._loop = loop
        self._channels: Dict[str, Dict[str, Any]] = {MOTION: {}, DOORBELL: {}}
        self._pending: Dict[int, asyncio.TimerHandle] = {}
        self._tokens = itertools.count()

    def subscribe(self, device, kinds: Iterable[str]):
        """Register a device (anything with .id and .handle_event) for the given kinds."""
        for kind in kinds:
            if kind not in self._channels:
                raise ValueError(f"Unknown event kind: {kind}")
            self._channels[kind][device.id] = device
            logger.debug(f"Subscribed {device.id} to {kind} events")

    def unsubscribe(self, device_id: str):
        for subscribers in self._channels.values():
            subscribers.pop(device_id, None)

    def subscribers(self, kind: str) -> List[Any]:
        return list(self._channels.get(kind, {}).values())

    def publish(self, event_type: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """
        Deliver a raw stream event.

        Returns:
            Number of devices the event reached
        """
        event = TransientEvent.from_payload(event_type, payload)
        if event is None:
            return 0

        delivered = 0
        for device_id, device in list(self._channels[event.kind].items()):
            if not event.matches(device_id):
                continue
            logger.debug(f"{device_id} received event: {event.raw_type}")
            device.handle_event(event)
            if event.kind == MOTION:
                self._schedule_reset(device_id)
            delivered += 1
        return delivered

    def _schedule_reset(self, device_id: str):
        loop = self._loop or asyncio.get_running_loop()
        token = next(self._tokens)
        self._pending[token] = loop.call_later(self.reset_delay, self._reset_motion, token, device_id)

    def _reset_motion(self, token: int, device_id: str):
        self._pending.pop(token, None)
        device = self._channels[MOTION].get(device_id)
        if device is None:
            # Unsubscribed since the event arrived
            return
        device.reset_motion()

    def pending_resets(self) -> int:
        return len(self._pending)

    def close(self):
        """Cancel every pending motion reset."""
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
