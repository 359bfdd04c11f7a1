"""
Generic table access over the ``?action=read|create|update|delete`` API.

Every primitive returns a ``StoreResult`` instead of raising, so callers
decide which failures are fatal. Nothing here is transactional: a
multi-step write that fails halfway leaves the earlier steps in place.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar
from loguru import logger

from .client import ApiClient, ApiConnectionError, ApiResponseError
from .errors import ErrorInfo, ErrorKind, NotFoundError, StoreError, classify_error, format_error

T = TypeVar("T")


@dataclass
class StoreResult(Generic[T]):
    """Outcome of a store primitive: ``data`` on success, ``error`` otherwise."""

    data: Optional[T] = None
    error: Optional[ErrorInfo] = None
    id: Optional[str] = None
    # ids written before a multi-row operation stopped
    written_ids: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self, operation: str) -> T:
        """
        Return ``data`` or raise.

        Raises:
            NotFoundError: If the store reported a missing record, or a
                single-row read found nothing
            StoreError: For any other failure
        """
        if self.error is not None:
            exc = NotFoundError if self.error.kind is ErrorKind.NOT_FOUND else StoreError
            raise exc(format_error(self.error, operation), info=self.error)
        return self.data

    def require(self, operation: str) -> T:
        """Like ``unwrap`` but also treats an empty result as not found."""
        data = self.unwrap(operation)
        if data is None:
            info = ErrorInfo(kind=ErrorKind.NOT_FOUND, message="Record not found")
            raise NotFoundError(format_error(info, operation), info=info)
        return data


def _failure(table: str, operation: str, e: Exception, **kwargs) -> StoreResult:
    info = classify_error(e)
    logger.error(f"{operation} on {table} failed ({info.kind.value}): {info.message}")
    return StoreResult(error=info, **kwargs)


class DataStore:
    """
    CRUD primitives for the API's generic table actions.

    Reads send the filter as the JSON body; updates and deletes address
    rows through the ``where`` query parameter.
    """

    def __init__(self, client: ApiClient):
        self.client = client

    def select(self, table: str, filter: Optional[dict] = None) -> StoreResult[list[dict]]:
        try:
            response = self.client.call("read", table=table, data=filter or {})
        except (ApiConnectionError, ApiResponseError) as e:
            return _failure(table, "select", e, data=[])
        rows = response.data if isinstance(response.data, list) else []
        logger.debug(f"select {table} {filter or {}} -> {len(rows)} rows")
        return StoreResult(data=rows)

    def select_by(self, table: str, filter: dict) -> StoreResult[list[dict]]:
        return self.select(table, filter)

    def select_one(self, table: str, id: str) -> StoreResult[dict]:
        result = self.select(table, {"id": id})
        if not result.ok:
            return StoreResult(error=result.error)
        rows = result.data or []
        return StoreResult(data=rows[0] if rows else None, id=str(id))

    def insert(self, table: str, data: dict) -> StoreResult[dict]:
        try:
            response = self.client.call("create", table=table, data=data)
        except (ApiConnectionError, ApiResponseError) as e:
            return _failure(table, "insert", e)
        if not response.id:
            info = ErrorInfo(
                kind=ErrorKind.INVALID_RESPONSE,
                message=f"Insert into {table} returned no id",
            )
            logger.error(info.message)
            return StoreResult(error=info)
        logger.debug(f"insert {table} -> id {response.id}")
        return StoreResult(data=response.data, id=response.id)

    def insert_many(self, table: str, rows: list[dict]) -> StoreResult[list[str]]:
        """
        Insert rows one at a time, stopping at the first failure.

        The result's ``written_ids`` lists the rows created before the
        failure, so the caller can remove them again.
        """
        written: list[str] = []
        for row in rows:
            result = self.insert(table, row)
            if not result.ok:
                return StoreResult(error=result.error, written_ids=written)
            written.append(result.id)
        return StoreResult(
            data=written,
            id=written[0] if written else None,
            written_ids=written,
        )

    def update(self, table: str, id: str, data: dict) -> StoreResult[Any]:
        try:
            response = self.client.call(
                "update", table=table, data=data, where={"id": id}, method="PUT"
            )
        except (ApiConnectionError, ApiResponseError) as e:
            return _failure(table, f"update {id}", e)
        logger.debug(f"update {table} {id} fields={sorted(data)}")
        return StoreResult(data=response.data, id=str(id))

    def delete(self, table: str, id: str) -> StoreResult[Any]:
        try:
            self.client.call("delete", table=table, where={"id": id}, method="DELETE")
        except (ApiConnectionError, ApiResponseError) as e:
            return _failure(table, f"delete {id}", e)
        logger.debug(f"delete {table} {id}")
        return StoreResult(id=str(id))

    def delete_many(self, table: str, filter: dict) -> StoreResult[list[str]]:
        """Delete every row matching ``filter``, one row at a time."""
        found = self.select(table, filter)
        if not found.ok:
            return StoreResult(error=found.error)
        deleted: list[str] = []
        for row in found.data:
            result = self.delete(table, str(row["id"]))
            if not result.ok:
                return StoreResult(error=result.error, written_ids=deleted)
            deleted.append(str(row["id"]))
        return StoreResult(data=deleted, written_ids=deleted)
