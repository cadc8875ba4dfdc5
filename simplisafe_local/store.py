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

"""SQLite-backed cache of platform accessories."""

import json
import logging
import sqlite3
from typing import Dict, List

from .accessory import PlatformAccessory
from .database import ensure_schema_and_migrate

logger = logging.getLogger(__name__)


class AccessoryStore:
    """Persists accessories between runs so they can be restored before discovery."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        ensure_schema_and_migrate(self.db_path)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def load_all(self) -> List[PlatformAccessory]:
        """Load every cached accessory, ordered by aid."""
        accessories = []
        conn = self._connect()
        try:
            cursor = conn.execute("""
                SELECT uuid, display_name, platform, services, context
                FROM platform_accessories
                ORDER BY aid
            """)
            for uuid, display_name, platform, services, context in cursor.fetchall():
                try:
                    accessories.append(PlatformAccessory.from_dict({
                        'uuid': uuid,
                        'display_name': display_name,
                        'platform': platform,
                        'services': json.loads(services),
                        'context': json.loads(context) if context else {},
                    }))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(f"Skipping unreadable cached accessory {uuid}: {e}")
        finally:
            conn.close()
        logger.info(f"Loaded {len(accessories)} cached accessories")
        return accessories

    def save(self, accessory: PlatformAccessory) -> int:
        """
        Insert or update an accessory.

        Returns:
            The accessory's aid (assigned on first save, stable afterwards)
        """
        data = accessory.to_dict()
        conn = self._connect()
        try:
            row = conn.execute("SELECT aid FROM platform_accessories WHERE uuid = ?", (accessory.uuid,)).fetchone()
            if row:
                aid = row[0]
                conn.execute("""
                    UPDATE platform_accessories
                    SET display_name = ?, platform = ?, services = ?, context = ?, updated_at = CURRENT_TIMESTAMP
                    WHERE uuid = ?
                """, (accessory.display_name, accessory.platform, json.dumps(data['services']),
                      json.dumps(data['context']), accessory.uuid))
            else:
                aid = (conn.execute("SELECT MAX(aid) FROM platform_accessories").fetchone()[0] or 1) + 1
                conn.execute("""
                    INSERT INTO platform_accessories (uuid, display_name, platform, services, context, aid)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (accessory.uuid, accessory.display_name, accessory.platform, json.dumps(data['services']),
                      json.dumps(data['context']), aid))
            conn.commit()
        finally:
            conn.close()
        return aid

    def delete(self, uuid: str) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM platform_accessories WHERE uuid = ?", (uuid,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def aids(self) -> Dict[str, int]:
        conn = self._connect()
        try:
            return dict(conn.execute("SELECT uuid, aid FROM platform_accessories").fetchall())
        finally:
            conn.close()
