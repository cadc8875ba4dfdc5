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

"""Platform configuration, read from a JSON file.

Keys use the camelCase names of the JSON file; attributes use snake_case.
Unknown keys are kept, so a file shared with other tools still loads.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator

DEFAULT_NAME = 'SimpliSafe 3'
DEFAULT_SENSOR_REFRESH = 15


class PlatformConfig(BaseModel):
    """
    Recognized platform options.

    Attributes:
        name: Platform name used in logs
        cameras: Enable camera discovery
        camera_options: Passed untouched to the streaming strategies (ffmpegPath is read here)
        sensor_refresh: Seconds between device state refreshes
        persist_accessories: Keep cached accessories that no longer match a device
        excluded_devices: Serials never exposed (sensors and cameras)
        subscription_id: Pin a specific account subscription
        debug: Verbose logging

    Invalid values raise pydantic's ValidationError (a ValueError) naming the key.
    """

    model_config = ConfigDict(populate_by_name=True, extra='allow')

    name: StrictStr = DEFAULT_NAME
    cameras: StrictBool = False
    camera_options: Dict[str, Any] = Field(default_factory=dict, alias='cameraOptions')
    # strict keeps bools and numeric strings out; ints are accepted
    sensor_refresh: float = Field(default=DEFAULT_SENSOR_REFRESH, gt=0, strict=True, alias='sensorRefresh')
    persist_accessories: StrictBool = Field(default=True, alias='persistAccessories')
    excluded_devices: List[StrictStr] = Field(default_factory=list, alias='excludedDevices')
    subscription_id: Optional[str] = Field(default=None, alias='subscriptionId')
    debug: StrictBool = False

    @field_validator('subscription_id', mode='before')
    @classmethod
    def validate_subscription_id(cls, v: Any) -> Optional[str]:
        """Subscription ids appear as numbers or strings in the account, store them as strings."""
        if v is None:
            return None
        if isinstance(v, bool) or not isinstance(v, (str, int)):
            raise ValueError('subscriptionId must be a string or an integer')
        return str(v)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlatformConfig':
        return cls.model_validate(data)

    @classmethod
    def from_file(cls, path: str) -> 'PlatformConfig':
        return cls.model_validate_json(Path(path).expanduser().read_text(encoding='utf-8'))

    @property
    def raw(self) -> Dict[str, Any]:
        """The options as read, including keys this package does not use."""
        return self.model_dump(by_alias=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, include={
            'name', 'cameras', 'sensor_refresh', 'persist_accessories',
            'excluded_devices', 'subscription_id', 'debug',
        })
