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

"""Placeholder binding for cached accessories while requests are blocked."""

import logging

from .accessory import PlatformAccessory, SERVICE_ACCESSORY_INFORMATION
from .errors import AccessoryUnreachableError, SimpliSafeError

logger = logging.getLogger(__name__)


class UnreachableSubstitute:
    """
    Answers every read and write of an accessory with AccessoryUnreachableError.

    Accessory information is left alone so the Home app can still show the
    accessory. clear() detaches the handlers so the real device can bind.
    """

    def __init__(self, accessory: PlatformAccessory):
        self.accessory = accessory
        self._attach()
        logger.debug(f"Accessory '{accessory.display_name}' marked unreachable")

    def _intercepted(self):
        for service in self.accessory.services:
            if service.type == SERVICE_ACCESSORY_INFORMATION:
                continue
            for char in service.characteristics.values():
                yield char

    def _attach(self):
        self.accessory.on_identify(self.identify)
        for char in self._intercepted():
            if char.readable:
                char.on_get(self.unreachable)
            if char.writable:
                char.on_set(self.unreachable)

    def identify(self):
        raise SimpliSafeError("Identify not supported")

    def unreachable(self, *_args):
        raise AccessoryUnreachableError()

    def clear(self):
        for char in self._intercepted():
            char.remove_handlers()
        if self.accessory.identify_handler == self.identify:
            self.accessory.identify_handler = None

    def to_dict(self):
        return {'uuid': self.accessory.uuid, 'name': self.accessory.display_name, 'state': 'unreachable'}
