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

"""Database schema for SimpliSafe Local."""

import sqlite3

# Supported schema version for this codebase. A database reporting a higher
# user_version is refused.
SUPPORTED_SCHEMA_VERSION = 1

# aid is the HomeKit accessory id, stable across restarts (1 is the bridge)
DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS platform_accessories (
    uuid TEXT PRIMARY KEY,
    aid INTEGER NOT NULL,
    display_name TEXT NOT NULL,
    platform TEXT NOT NULL,
    services TEXT NOT NULL,
    context TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_accessories_platform ON platform_accessories(platform);
CREATE UNIQUE INDEX IF NOT EXISTS idx_accessories_aid ON platform_accessories(aid);
"""


def ensure_schema_and_migrate(db_path: str):
    """Ensure the schema exists and record its version in PRAGMA user_version.

    Future schema changes add a migration step per version here.
    """
    conn = sqlite3.connect(db_path)
    try:
        current_version = conn.execute("PRAGMA user_version").fetchone()[0]
        if current_version > SUPPORTED_SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version ({current_version}) is newer than supported ({SUPPORTED_SCHEMA_VERSION})")

        conn.executescript(DB_SCHEMA)
        if current_version < SUPPORTED_SCHEMA_VERSION:
            conn.execute(f"PRAGMA user_version = {SUPPORTED_SCHEMA_VERSION}")
        conn.commit()
    finally:
        conn.close()
