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

"""Exception types shared by the platform, devices and account services."""

from typing import Any, Dict, Optional


class SimpliSafeError(Exception):
    """Generic failure talking to the SimpliSafe account or the bridge."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for logging and status reporting."""
        return {'type': type(self).__name__, 'message': str(self)}


class RateLimitError(SimpliSafeError):
    """
    Upstream throttling, or connectivity loss severe enough to be treated the same.

    Args:
        message: Human readable reason
        retry_after: Seconds the upstream asked us to wait, if it said so
    """

    def __init__(self, message: str = "Request blocked (rate limited)", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['retry_after'] = self.retry_after
        return data


class AccessoryUnreachableError(SimpliSafeError):
    """Raised by characteristic handlers of an accessory that cannot be reached."""

    def __init__(self, message: str = "Accessory unreachable"):
        super().__init__(message)


class DuplicateAccessoryError(SimpliSafeError):
    """The bridge already has an accessory registered with this uuid."""
