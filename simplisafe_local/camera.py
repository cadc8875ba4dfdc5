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

"""Camera streaming strategy selection.

Streaming itself is handled outside this package; this only decides which
transport a camera uses. The choice is made once when the camera device
is built and is not revisited on refresh.
"""

import logging
import shutil
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

STANDARD = 'STANDARD'
KINESIS = 'KINESIS'
LIVEKIT = 'LIVEKIT'

# Upper-cased provider code -> strategy
PROVIDER_STRATEGIES = {
    'KVS': KINESIS,
    'MIST': LIVEKIT,
}

DOORBELL_MODEL = 'SS002'


def select_streaming_strategy(provider: Optional[str]) -> str:
    """
    Map a camera's webrtcProvider code to a streaming strategy.

    Example: 'kvs', 'KVS' and 'Kvs' all give KINESIS; None gives STANDARD
    """
    if not isinstance(provider, str):
        return STANDARD
    return PROVIDER_STRATEGIES.get(provider.upper(), STANDARD)


def default_ffmpeg_path() -> str:
    return shutil.which('ffmpeg') or 'ffmpeg'


class CameraStreaming:
    """
    Streaming configuration of one camera, fixed at construction.

    Args:
        strategy: STANDARD, KINESIS or LIVEKIT
        provider: Raw provider code as reported by the account
        ffmpeg_path: ffmpeg binary used by the streaming delegate
        options: cameraOptions from the config, passed through untouched
    """

    __slots__ = ('_strategy', '_provider', '_ffmpeg_path', '_options')

    def __init__(self, strategy: str, provider: Optional[str] = None,
                 ffmpeg_path: Optional[str] = None, options: Optional[Dict[str, Any]] = None):
        if strategy not in (STANDARD, KINESIS, LIVEKIT):
            raise ValueError(f"Unknown streaming strategy: {strategy}")
        self._strategy = strategy
        self._provider = provider
        self._ffmpeg_path = ffmpeg_path or default_ffmpeg_path()
        self._options = dict(options or {})

    @classmethod
    def for_camera(cls, details: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> 'CameraStreaming':
        """Build the streaming value for a camera record from get_cameras()."""
        options = options or {}
        provider = (details.get('currentState') or {}).get('webrtcProvider')
        strategy = select_streaming_strategy(provider)
        ffmpeg_path = options.get('ffmpegPath') or default_ffmpeg_path()
        logger.debug(f"Camera {details.get('uuid')} uses {strategy} streaming (provider: {provider})")
        return cls(strategy, provider, ffmpeg_path, options)

    @property
    def strategy(self) -> str:
        return self._strategy

    @property
    def provider(self) -> Optional[str]:
        return self._provider

    @property
    def ffmpeg_path(self) -> str:
        return self._ffmpeg_path

    @property
    def options(self) -> Dict[str, Any]:
        return dict(self._options)

    @property
    def is_webrtc(self) -> bool:
        return self._strategy in (KINESIS, LIVEKIT)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy': self._strategy,
            'provider': self._provider,
            'ffmpeg_path': self._ffmpeg_path,
        }

    def __eq__(self, other) -> bool:
        if not isinstance(other, CameraStreaming):
            return NotImplemented
        return (self._strategy, self._provider, self._ffmpeg_path, self._options) == \
            (other._strategy, other._provider, other._ffmpeg_path, other._options)

    def __hash__(self):
        return hash((self._strategy, self._provider, self._ffmpeg_path))

    def __repr__(self) -> str:
        return f"<CameraStreaming {self._strategy} provider={self._provider!r}>"
