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
"""Accessory bridge: registration, removal and the cached accessory source."""

import logging
from typing import Dict, List, Optional

from .accessory import PlatformAccessory
from .errors import DuplicateAccessoryError
from .store import AccessoryStore

logger = logging.getLogger('simplisafe-local')


class AccessoryBridge:
    """
    Registered accessories, persisted in the store and exposed on HomeKit.

    Args:
        store: AccessoryStore holding the cached accessories
        server: Optional HapServer; without one accessories are only persisted
    """

    def __init__(self, store: AccessoryStore, server=None):
        self.store = store
        self.server = server
        self._accessories: Dict[str, PlatformAccessory] = {}
        self._loaded = False

    def cached_accessories(self) -> List[PlatformAccessory]:
        """Restore the accessories registered by a previous run (loaded once)."""
        if not self._loaded:
            aids = self.store.aids()
            for accessory in self.store.load_all():
                self._accessories[accessory.uuid] = accessory
                self._expose(accessory, aids.get(accessory.uuid))
            self._loaded = True
        return list(self._accessories.values())

    def accessories(self) -> List[PlatformAccessory]:
        return list(self._accessories.values())

    def get(self, uuid: str) -> Optional[PlatformAccessory]:
        return self._accessories.get(uuid)

    def register_platform_accessories(self, accessories: List[PlatformAccessory]):
        """
        Register new accessories.

        Raises:
            DuplicateAccessoryError: An accessory with the same uuid is already registered
        """
        for accessory in accessories:
            if accessory.uuid in self._accessories:
                raise DuplicateAccessoryError(f"Accessory {accessory.uuid} is already registered")

        for accessory in accessories:
            aid = self.store.save(accessory)
            self._accessories[accessory.uuid] = accessory
            self._expose(accessory, aid)
            logger.info(f"Registered accessory '{accessory.display_name}'")

    def unregister_platform_accessories(self, accessories: List[PlatformAccessory]):
        for accessory in accessories:
            self._accessories.pop(accessory.uuid, None)
            self.store.delete(accessory.uuid)
            if self.server is not None:
                self.server.remove(accessory.uuid)
            logger.info(f"Removed accessory '{accessory.display_name}'")

    def update_platform_accessories(self, accessories: Optional[List[PlatformAccessory]] = None):
        """Persist current characteristic values (all registered accessories by default)."""
        for accessory in accessories if accessories is not None else self.accessories():
            if accessory.uuid in self._accessories:
                self.store.save(accessory)

    def _expose(self, accessory: PlatformAccessory, aid: Optional[int]):
        if self.server is None:
            return
        try:
            self.server.add(accessory, aid)
        except ValueError as e:
            # HAP-python refuses duplicate aids
            raise DuplicateAccessoryError(str(e)) from e
