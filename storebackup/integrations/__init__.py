# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI admin endpoints.
"""

from storebackup.integrations.fastapi import (
    backup_lifespan,
    get_backup_state,
    register_backup_routes,
)

__all__ = [
    "backup_lifespan",
    "get_backup_state",
    "register_backup_routes",
]
