# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Schema Registry - Static declaration of backed-up tables and buckets.

Every table the engine touches is declared here by hand. Tables are
never auto-discovered: a table that is not declared can never be wiped
by a restore, only merged into.
"""

from dataclasses import dataclass, field
from typing import List, Tuple

from storebackup.config import BackupType, TableKind


@dataclass(frozen=True)
class TableSpec:
    """Declaration of one relational table."""

    name: str
    kind: TableKind
    # Included in data_only backups (full backups include every table)
    in_data_backup: bool = False
    primary_key: str = "id"


@dataclass(frozen=True)
class SchemaRegistry:
    """Ordered table declarations plus the buckets of a full backup."""

    tables: Tuple[TableSpec, ...]
    buckets: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        names = [t.name for t in self.tables]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            from storebackup.exceptions import ConfigurationError

            raise ConfigurationError(
                "Duplicate table declarations in schema registry",
                details={"tables": duplicates},
            )

    def get(self, table_name: str) -> TableSpec | None:
        for spec in self.tables:
            if spec.name == table_name:
                return spec
        return None


def _config(name: str) -> TableSpec:
    return TableSpec(name, TableKind.CONFIGURATION, in_data_backup=True)


def _data(name: str) -> TableSpec:
    return TableSpec(name, TableKind.TRANSACTIONAL, in_data_backup=True)


def _transactional(name: str) -> TableSpec:
    return TableSpec(name, TableKind.TRANSACTIONAL)


DEFAULT_REGISTRY = SchemaRegistry(
    tables=(
        # Reference data managed from the admin screens
        _config("available_colors"),
        _config("bank_details"),
        _config("coupons"),
        _config("product_categories"),
        _config("system_settings"),
        # Catalogue: part of data backups but merged on restore
        _data("shop_products"),
        _data("shop_product_images"),
        # User and order data
        _transactional("profiles"),
        _transactional("user_roles"),
        _transactional("orders"),
        _transactional("order_items"),
        _transactional("payment_slips"),
        _transactional("gallery_posts"),
        _transactional("reviews"),
        _transactional("shop_orders"),
        _transactional("shop_order_items"),
        _transactional("shop_payment_slips"),
        _transactional("shop_cart_items"),
        _transactional("user_coupons"),
        _transactional("sms_campaigns"),
        _transactional("sms_campaign_recipients"),
        _transactional("notifications"),
    ),
    buckets=("shop-products", "site-assets", "payment-slips"),
)


def list_tables_for(registry: SchemaRegistry, backup_type: BackupType) -> List[str]:
    """
    List the tables included in a backup of the given type, in declaration order.

    data_only backups hold the fixed reference subset; full backups hold
    every declared table.
    """
    if backup_type == BackupType.FULL:
        return [t.name for t in registry.tables]
    return [t.name for t in registry.tables if t.in_data_backup]


def classify(registry: SchemaRegistry, table_name: str) -> TableKind:
    """
    Classify a table for restore.

    Undeclared tables are treated as transactional so a restore never
    wipes a table it does not know about.
    """
    spec = registry.get(table_name)
    if spec is None:
        return TableKind.TRANSACTIONAL
    return spec.kind


def primary_key_for(registry: SchemaRegistry, table_name: str) -> str:
    """Primary key column used for upsert (``id`` for undeclared tables)."""
    spec = registry.get(table_name)
    return spec.primary_key if spec else "id"


def list_buckets(registry: SchemaRegistry) -> List[str]:
    """Buckets included in full backups."""
    return list(registry.buckets)
