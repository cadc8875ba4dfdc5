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

"""FastAPI route handlers for the read-only SimpliSafe Local status API."""

import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .__version__ import __version__

logger = logging.getLogger(__name__)

# Security
security = HTTPBearer(auto_error=False)

# API key configuration (from environment variable)
# Multiple keys can be specified, space-separated
API_KEYS_RAW = os.environ.get('SIMPLISAFE_LOCAL_API_KEYS', '').strip()
API_KEYS = set(key.strip() for key in API_KEYS_RAW.split() if key.strip()) if API_KEYS_RAW else set()


def get_api_key(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[str]:
    """
    Validate API key from Authorization header.

    If API keys are configured (SIMPLISAFE_LOCAL_API_KEYS environment variable),
    checks the Bearer token. Otherwise authentication is disabled.

    Raises:
        HTTPException 401 if authentication fails
    """
    if not API_KEYS:
        return None

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if credentials.credentials not in API_KEYS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return credentials.credentials


def create_app():
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="SimpliSafe Local",
        description="Status API for the SimpliSafe HomeKit bridge",
        version=__version__
    )

    if API_KEYS:
        logger.info(f"API authentication enabled ({len(API_KEYS)} key(s) configured)")
    else:
        logger.info("API authentication disabled (no SIMPLISAFE_LOCAL_API_KEYS configured)")

    return app


def register_routes(app: FastAPI, get_controller):
    """Register all API routes.

    Args:
        app: FastAPI application instance
        get_controller: Callable that returns the current PlatformController
    """

    def _controller():
        controller = get_controller()
        if controller is None:
            raise HTTPException(status_code=503, detail="Platform not started")
        return controller

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "SimpliSafe Local",
            "version": __version__,
            "documentation": "/docs",
            "endpoints": {
                "status": "/status",
                "devices": "/devices",
                "accessories": "/accessories",
                "refresh": "/refresh",
            }
        }

    @app.get("/status", tags=["Status"])
    async def get_status(api_key: Optional[str] = Depends(get_api_key)):
        """Platform status, including the rate limit state."""
        controller = _controller()
        data = controller.to_dict()
        data["version"] = __version__
        data["status"] = "rate_limited" if controller.gate.is_blocked() else "ok"
        return data

    @app.get("/devices", tags=["Devices"])
    async def get_devices(api_key: Optional[str] = Depends(get_api_key)):
        """All known devices."""
        controller = _controller()
        return {"devices": [device.to_dict() for device in controller.registry.devices]}

    @app.get("/devices/{device_id}", tags=["Devices"])
    async def get_device(device_id: str, api_key: Optional[str] = Depends(get_api_key)):
        controller = _controller()
        for device in controller.registry.devices:
            if device.id == device_id:
                return device.to_dict()
        raise HTTPException(status_code=404, detail=f"Device {device_id} not found")

    @app.get("/accessories", tags=["HomeKit"])
    async def get_accessories(api_key: Optional[str] = Depends(get_api_key)):
        """Bound accessories and the ones waiting behind an unreachable placeholder."""
        controller = _controller()
        return {
            "accessories": [accessory.to_dict() for accessory in controller.registry.accessories],
            "unreachable": [substitute.to_dict() for substitute in controller.substitutes],
        }

    @app.post("/refresh", tags=["Admin"])
    async def refresh_data(api_key: Optional[str] = Depends(get_api_key)):
        """Refresh device state from SimpliSafe now."""
        controller = _controller()
        if controller.gate.is_blocked():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Requests to SimpliSafe are blocked, retry in {controller.gate.seconds_until_retry():.0f}s",
            )
        refreshed = await controller.refresh_device_states()
        return {"refreshed": refreshed, "rate_limit": controller.gate.to_dict()}
