"""In-memory request store.

Dict-backed ``RequestStore`` for tests and single-process deployments
without a database. Records are copied on the way in and out so callers
never hold a reference to stored state. ``conditional_update`` does its
check-and-set without awaiting, which makes it atomic on one event loop.
"""

import copy
import dataclasses
import uuid
from collections.abc import Mapping
from typing import Any

from sosrelay.models.emergency_request import EmergencyRecord
from sosrelay.services.request_store import UpdateResult, check_fields


class MemoryRequestStore:
    """Dict-backed RequestStore."""

    def __init__(self) -> None:
        self._records: dict[str, EmergencyRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    async def create(self, record: EmergencyRecord) -> str:
        request_id = str(uuid.uuid4())
        self._records[request_id] = dataclasses.replace(
            copy.deepcopy(record), id=request_id
        )
        return request_id

    async def get(self, request_id: str) -> EmergencyRecord | None:
        record = self._records.get(request_id)
        return copy.deepcopy(record) if record is not None else None

    async def query_by_status(self, status: str) -> list[EmergencyRecord]:
        # dicts preserve insertion order, which is creation order here
        return [
            copy.deepcopy(record)
            for record in self._records.values()
            if record.status == status
        ]

    async def conditional_update(
        self,
        request_id: str,
        expected_index: int,
        expected_status: str,
        fields: Mapping[str, Any],
    ) -> UpdateResult:
        check_fields(fields)
        record = self._records.get(request_id)
        if record is None:
            return UpdateResult.MISSING
        if (
            record.current_priority_index != expected_index
            or record.status != expected_status
        ):
            return UpdateResult.CONFLICT
        self._records[request_id] = dataclasses.replace(record, **fields)
        return UpdateResult.APPLIED

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass
