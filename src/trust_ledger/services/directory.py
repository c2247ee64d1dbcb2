"""Lease directory backed by in-memory records."""

from __future__ import annotations

import json
from collections.abc import Iterable
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

from trust_ledger.domain.reports import LeaseDeposit, LeaseRecord
from trust_ledger.domain.value_objects import to_amount
from trust_ledger.exceptions import ValidationError
from trust_ledger.services.interfaces import LeaseDirectory


class InMemoryLeaseDirectory(LeaseDirectory):
    def __init__(self, records: Iterable[LeaseRecord] = ()) -> None:
        self._records = list(records)

    def add(
        self,
        property_id: UUID,
        lease: LeaseDeposit,
        is_active: bool = True,
    ) -> None:
        self._records.append(LeaseRecord(property_id, lease, is_active))

    def list_active_leases(self, property_id: UUID) -> list[LeaseDeposit]:
        return [
            record.lease
            for record in self._records
            if record.property_id == property_id and record.is_active
        ]

    def find_active_lease(self, tenant_id: UUID) -> LeaseRecord | None:
        return next(
            (
                record
                for record in self._records
                if record.lease.tenant_id == tenant_id and record.is_active
            ),
            None,
        )

    @classmethod
    def from_json(cls, path: str | Path) -> InMemoryLeaseDirectory:
        """Load leases from a JSON array.

        Each element needs ``property_id``, ``lease_id``, ``tenant_id`` and
        ``required_deposit``; ``tenant_name``, ``unit_number`` and ``status``
        (default ``"active"``) are optional.
        """
        with open(path) as f:
            data = json.load(f, parse_float=Decimal)
        if not isinstance(data, list):
            raise ValidationError(f"Lease file must contain a JSON array: {path}")
        return cls(_parse_record(item) for item in data)


def _parse_record(item: dict[str, Any]) -> LeaseRecord:
    try:
        required = item["required_deposit"]
        lease = LeaseDeposit(
            lease_id=UUID(item["lease_id"]),
            tenant_id=UUID(item["tenant_id"]),
            required_deposit=to_amount(required) if required is not None else Decimal("0"),
            tenant_name=item.get("tenant_name", ""),
            unit_number=item.get("unit_number", ""),
        )
        return LeaseRecord(
            property_id=UUID(item["property_id"]),
            lease=lease,
            is_active=item.get("status", "active") == "active",
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid lease record: {exc}") from exc
