"""``requests``-based gateway for a PostgREST (Supabase-style) REST endpoint.

Resources: ``/books``, ``/transactions`` and ``/user_metadata`` under the
configured base URL (for Supabase, ``https://<project>.supabase.co/rest/v1``).
Every request carries the project API key and a bearer token obtained from
``token_supplier`` at request time; the caller refreshes the token before a
sync cycle, this class never does.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Any

import requests
from ledger_db.types import format_timestamp
from pydantic import ValidationError

from ..gateway import GatewayError
from ..logging_setup import get_logger
from ..models import RecordKind, RemoteBookRow, RemoteRow, RemoteTransactionRow

_logger = get_logger("ledger_sync.gateways.postgrest")

_MERGE_DUPLICATES = "resolution=merge-duplicates,return=minimal"


class PostgrestGateway:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        token_supplier: Callable[[], str | None],
        *,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._token_supplier = token_supplier
        self._timeout = timeout
        self._session = session if session is not None else requests.Session()

    # -- transport ---------------------------------------------------------

    def _headers(self, prefer: str | None) -> dict[str, str]:
        token = self._token_supplier() or self._api_key
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        resource: str,
        *,
        params: Mapping[str, str] | None = None,
        payload: Any = None,
        prefer: str | None = None,
    ) -> requests.Response:
        url = f"{self._base_url}/{resource}"
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=payload,
                headers=self._headers(prefer),
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            body = exc.response.text[:500] if exc.response is not None else ""
            raise GatewayError(
                f"{method} /{resource} failed ({status}): {body}", status=status
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise GatewayError(f"{method} /{resource} failed: {exc}") from exc
        return response

    def _json_rows(self, response: requests.Response, resource: str) -> list[dict[str, Any]]:
        try:
            data = response.json()
        except ValueError as exc:
            raise GatewayError(f"/{resource} returned a non-JSON body") from exc
        if not isinstance(data, list):
            raise GatewayError(f"/{resource} returned {type(data).__name__}, expected a list")
        return data

    # -- gateway contract ----------------------------------------------------

    def select_where(
        self, kind: RecordKind, user_id: str, updated_after: datetime
    ) -> Sequence[RemoteRow]:
        resource = kind.collection
        response = self._request(
            "GET",
            resource,
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "updated_at": f"gt.{format_timestamp(updated_after)}",
                "order": "updated_at.asc,id.asc",
            },
        )
        model = RemoteBookRow if kind is RecordKind.BOOK else RemoteTransactionRow
        rows: list[RemoteRow] = []
        for raw in self._json_rows(response, resource):
            try:
                rows.append(model.model_validate(raw))
            except ValidationError as exc:
                row_id = raw.get("id") if isinstance(raw, dict) else None
                _logger.warning("Dropping malformed %s row %r: %s", kind.value, row_id, exc)
        return rows

    def find_book_by_name(self, user_id: str, name: str) -> RemoteBookRow | None:
        response = self._request(
            "GET",
            "books",
            params={
                "select": "*",
                "user_id": f"eq.{user_id}",
                "name": f"eq.{name}",
                "deleted": "is.false",
                "order": "created_at.asc",
                "limit": "1",
            },
        )
        data = self._json_rows(response, "books")
        if not data:
            return None
        try:
            return RemoteBookRow.model_validate(data[0])
        except ValidationError as exc:
            raise GatewayError(f"malformed book row from name lookup: {exc}") from exc

    def insert(self, kind: RecordKind, row: RemoteRow) -> None:
        self._request(
            "POST",
            kind.collection,
            payload=row.model_dump(mode="json", by_alias=True),
            prefer="return=minimal",
        )

    def upsert(self, kind: RecordKind, row: RemoteRow) -> None:
        self._request(
            "POST",
            kind.collection,
            params={"on_conflict": "id"},
            payload=row.model_dump(mode="json", by_alias=True),
            prefer=_MERGE_DUPLICATES,
        )

    def touch_user_metadata(self, user_id: str, last_sync: datetime) -> None:
        self._request(
            "POST",
            "user_metadata",
            params={"on_conflict": "user_id"},
            payload={
                "user_id": user_id,
                "initialized": True,
                "last_sync": format_timestamp(last_sync),
            },
            prefer=_MERGE_DUPLICATES,
        )


__all__ = ["PostgrestGateway"]
