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

"""Contract with the SimpliSafe account service.

The transport itself (authentication, HTTP and WebSocket calls) lives
outside this package. Implementations are loaded from an import path on
the command line and must raise RateLimitError on throttling.
"""

import importlib
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

# Sensor type codes reported by the account
SENSOR_TYPES = {
    'APP': 0,
    'KEYPAD': 1,
    'KEYCHAIN': 2,
    'PANIC_BUTTON': 3,
    'MOTION_SENSOR': 4,
    'ENTRY_SENSOR': 5,
    'GLASSBREAK_SENSOR': 6,
    'CO_SENSOR': 7,
    'SMOKE_SENSOR': 8,
    'WATER_SENSOR': 9,
    'FREEZE_SENSOR': 10,
    'SIREN': 11,
    'SIREN_2': 13,
    'DOORLOCK': 16,
    'DOORLOCK_2': 253,
}

# Sensors with no state of their own; locks are listed separately
IGNORED_SENSOR_TYPES = frozenset(SENSOR_TYPES[name] for name in (
    'KEYPAD', 'KEYCHAIN', 'PANIC_BUTTON', 'GLASSBREAK_SENSOR',
    'SIREN', 'SIREN_2', 'DOORLOCK', 'DOORLOCK_2',
))

# Raw event types pushed by the event stream
EVENT_MOTION = 'MOTION'
EVENT_CAMERA_MOTION = 'CAMERA_MOTION'
EVENT_DOORBELL = 'DOORBELL'

# Alarm states as the account names them
ALARM_OFF = 'OFF'
ALARM_HOME = 'HOME'
ALARM_AWAY = 'AWAY'
ALARM_HOME_COUNT = 'HOME_COUNT'
ALARM_AWAY_COUNT = 'AWAY_COUNT'
ALARM_ALARM = 'ALARM'

EventCallback = Callable[[str, Optional[Dict[str, Any]]], None]


@runtime_checkable
class AccountService(Protocol):
    """Cloud account operations used by the platform."""

    def set_default_subscription(self, subscription_id: str) -> None: ...

    async def refresh_credentials(self) -> None: ...

    def is_authenticated(self) -> bool: ...

    async def get_subscription(self) -> Dict[str, Any]: ...

    async def get_sensors(self, force_refresh: bool = False) -> List[Dict[str, Any]]: ...

    async def get_locks(self, force_refresh: bool = False) -> List[Dict[str, Any]]: ...

    async def get_cameras(self, force_refresh: bool = False) -> List[Dict[str, Any]]: ...

    async def set_alarm_state(self, state: str) -> Dict[str, Any]: ...

    async def set_lock_state(self, serial: str, state: str) -> Dict[str, Any]: ...

    async def start_listening(self, callback: EventCallback) -> None: ...

    async def stop_listening(self) -> None: ...


def load_account_factory(path: str) -> Callable[..., AccountService]:
    """
    Resolve a 'module:factory' import path to the account factory.

    Args:
        path: Import path such as 'mypkg.simplisafe:create_account'

    Returns:
        The callable, which is invoked with the parsed PlatformConfig
    """
    module_name, sep, attr = path.partition(':')
    if not sep or not module_name or not attr:
        raise ValueError(f"Account factory must be given as 'module:factory', got '{path}'")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ValueError(f"'{attr}' in module '{module_name}' is not callable")
    return factory
