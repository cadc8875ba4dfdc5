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
"""SimpliSafe Local - HomeKit bridge for SimpliSafe 3 security systems."""

from .__version__ import __version__

__author__ = "SimpliSafe Local Contributors"
__description__ = "HomeKit bridge for SimpliSafe 3 security systems"

from .accessory import PlatformAccessory, generate_uuid
from .camera import CameraStreaming, select_streaming_strategy
from .config import PlatformConfig
from .devices import Device, DeviceKind
from .errors import AccessoryUnreachableError, DuplicateAccessoryError, RateLimitError, SimpliSafeError
from .events import EventDispatcher, TransientEvent
from .platform import PlatformController
from .ratelimit import RateLimitGate
from .reconcile import DeviceRegistry, Reconciler
from .unreachable import UnreachableSubstitute

__all__ = [
    "__version__",
    "PlatformAccessory",
    "generate_uuid",
    "CameraStreaming",
    "select_streaming_strategy",
    "PlatformConfig",
    "Device",
    "DeviceKind",
    "AccessoryUnreachableError",
    "DuplicateAccessoryError",
    "RateLimitError",
    "SimpliSafeError",
    "EventDispatcher",
    "TransientEvent",
    "PlatformController",
    "RateLimitGate",
    "DeviceRegistry",
    "Reconciler",
    "UnreachableSubstitute",
]
