"""
Card store, review log and card content backed by a hosted PostgREST endpoint
(Supabase REST).

Numeric columns come back as strings (``"2.50"``) and timestamps as ISO text;
rows are passed through as-is and cleaned up by ``normalize_state``.
"""

from __future__ import annotations

import datetime as dt
import os
from typing import Any, Dict, List, Optional, Sequence

import requests

from srs.db.interfaces import CardStore, ContentReader, ReviewLog
from srs.errors import CardNotFoundError, CardStoreError, ReviewLogError
from srs.utils.logging_config import get_logger
from srs.utils.scheduler import SchedulingState, new_card_state
from srs.utils.timeutils import ensure_utc, to_iso
from srs.utils.types import CARD_STATUSES, CardRecord, ReviewEvent

logger = get_logger(__name__)

CARD_COLUMNS = (
    "id,user_id,origin_type,origin_id,document_id,quiz_question_id,chunk_id,"
    "due_at,last_reviewed_at,interval_days,ease_factor,repetitions,status"
)
QUESTION_COLUMNS = "id,question_type,prompt,options,correct_answer,explanation,chunk_id"
CHUNK_COLUMNS = "id,document_id,text,page_number,slide_number"
DEFAULT_TIMEOUT = 10.0


def postgrest_settings() -> Dict[str, str]:
    settings = {
        "url": os.getenv("SUPABASE_URL", ""),
        "key": os.getenv("SUPABASE_KEY", ""),
    }
    missing = [f"SUPABASE_{key.upper()}" for key, value in settings.items() if not value]
    if missing:
        raise RuntimeError(f"Missing Supabase REST settings: {', '.join(missing)}")
    return settings


class PostgrestClient:
    """Thin wrapper over ``requests`` for the ``/rest/v1`` table API."""

    def __init__(self, base_url: str, api_key: str, *, session: Optional[requests.Session] = None, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    @classmethod
    def from_env(cls) -> "PostgrestClient":
        cfg = postgrest_settings()
        return cls(cfg["url"], cfg["key"])

    def request(self, method: str, table: str, *, params: Any = None, json: Any = None, prefer: str | None = None) -> List[Dict[str, Any]]:
        headers = {"Prefer": prefer} if prefer else None
        resp = self.session.request(
            method,
            f"{self.base_url}/{table}",
            params=params,
            json=json,
            headers=headers,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        if not resp.content:
            return []
        data = resp.json()
        if isinstance(data, dict):
            return [data]
        return list(data or [])


class PostgrestCardStore(CardStore):
    def __init__(self, client: PostgrestClient, table: str = "srs_cards"):
        self.client = client
        self.table = table

    def _fetch(self, params: list[tuple[str, str]], what: str) -> List[Dict[str, Any]]:
        try:
            return self.client.request("GET", self.table, params=[("select", CARD_COLUMNS), *params])
        except requests.RequestException as exc:
            logger.error("PostgREST card query failed | %s", what, exc_info=True)
            raise CardStoreError(f"Failed to load {what}") from exc

    def get_card(self, card_id: str, user_id: str | None = None) -> CardRecord | None:
        params = [("id", f"eq.{card_id}"), ("limit", "1")]
        if user_id is not None:
            params.append(("user_id", f"eq.{user_id}"))
        rows = self._fetch(params, f"card {card_id}")
        return CardRecord.from_row(rows[0]) if rows else None

    def list_due_cards(self, user_id: str, now: dt.datetime, limit: int = 200) -> list[CardRecord]:
        rows = self._fetch(
            [
                ("user_id", f"eq.{user_id}"),
                ("status", "eq.active"),
                ("due_at", f"lte.{to_iso(now)}"),
                ("order", "due_at.asc"),
                ("limit", str(limit)),
            ],
            f"due cards for user {user_id}",
        )
        return [CardRecord.from_row(row) for row in rows]

    def list_cards_due_by(self, user_id: str, until: dt.datetime) -> list[CardRecord]:
        rows = self._fetch(
            [
                ("user_id", f"eq.{user_id}"),
                ("status", "eq.active"),
                ("due_at", f"lte.{to_iso(until)}"),
                ("order", "due_at.asc"),
            ],
            f"upcoming cards for user {user_id}",
        )
        return [CardRecord.from_row(row) for row in rows]

    def _patch(self, card_id: str, payload: Dict[str, Any]) -> None:
        try:
            rows = self.client.request(
                "PATCH",
                self.table,
                params={"id": f"eq.{card_id}"},
                json=payload,
                prefer="return=representation",
            )
        except requests.RequestException as exc:
            logger.error("PostgREST card update failed | card=%s", card_id, exc_info=True)
            raise CardStoreError(f"Failed to update card {card_id}") from exc
        if not rows:
            raise CardNotFoundError(card_id)

    def save_state(self, card_id: str, state: SchedulingState) -> None:
        self._patch(card_id, state.to_dict())

    def set_status(self, card_id: str, status: str) -> None:
        if status not in CARD_STATUSES:
            raise ValueError(f"Unknown card status: {status}")
        self._patch(card_id, {"status": status})

    def add_card(
        self,
        user_id: str,
        origin_type: str,
        origin_id: str,
        *,
        document_id: str | None = None,
        quiz_question_id: str | None = None,
        chunk_id: str | None = None,
        now: dt.datetime | None = None,
    ) -> CardRecord:
        payload = {
            "user_id": user_id,
            "origin_type": origin_type,
            "origin_id": origin_id,
            "document_id": document_id,
            "quiz_question_id": quiz_question_id,
            "chunk_id": chunk_id,
            "status": "active",
            **new_card_state(now).to_dict(),
        }
        try:
            # Upsert on the (user_id, origin_type, origin_id) unique key keeps enrollment idempotent.
            rows = self.client.request(
                "POST",
                self.table,
                params={"on_conflict": "user_id,origin_type,origin_id"},
                json=payload,
                prefer="resolution=ignore-duplicates,return=representation",
            )
        except requests.RequestException as exc:
            logger.error("PostgREST card enrollment failed | user=%s origin=%s:%s", user_id, origin_type, origin_id, exc_info=True)
            raise CardStoreError("Failed to enroll card") from exc
        if rows:
            return CardRecord.from_row(rows[0])
        existing = self._fetch(
            [
                ("user_id", f"eq.{user_id}"),
                ("origin_type", f"eq.{origin_type}"),
                ("origin_id", f"eq.{origin_id}"),
                ("limit", "1"),
            ],
            f"card for origin {origin_type}:{origin_id}",
        )
        if not existing:
            raise CardStoreError(f"Card for origin {origin_type}:{origin_id} was not created")
        return CardRecord.from_row(existing[0])


class PostgrestReviewLog(ReviewLog):
    def __init__(self, client: PostgrestClient, table: str = "srs_reviews"):
        self.client = client
        self.table = table

    def append(self, event: ReviewEvent) -> None:
        try:
            self.client.request("POST", self.table, json=event.to_row(), prefer="return=minimal")
        except requests.RequestException as exc:
            raise ReviewLogError(f"Failed to record review for card {event.card_id}") from exc

    def list_review_times(self, user_id: str, since: dt.datetime, limit: int = 5000) -> list[dt.datetime]:
        params = [
            ("select", "id,reviewed_at,card_id,srs_cards!inner(user_id)"),
            ("srs_cards.user_id", f"eq.{user_id}"),
            ("reviewed_at", f"gte.{to_iso(since)}"),
            ("order", "reviewed_at.desc"),
            ("limit", str(limit)),
        ]
        try:
            rows = self.client.request("GET", self.table, params=params)
        except requests.RequestException as exc:
            raise ReviewLogError(f"Failed to read review history for user {user_id}") from exc
        return [ts for ts in (ensure_utc(row.get("reviewed_at")) for row in rows) if ts is not None]


def _in_filter(ids: Sequence[str]) -> str:
    return "in.(" + ",".join(ids) + ")"


class PostgrestContentReader(ContentReader):
    """Card content over REST: ``quiz_questions``, ``document_chunks`` and ``documents``."""

    def __init__(self, client: PostgrestClient):
        self.client = client

    def _fetch(self, table: str, columns: str, ids: Sequence[str]) -> List[Dict[str, Any]]:
        if not ids:
            return []
        try:
            return self.client.request("GET", table, params=[("select", columns), ("id", _in_filter(ids))])
        except requests.RequestException as exc:
            logger.error("PostgREST content query failed | table=%s ids=%s", table, len(ids), exc_info=True)
            raise CardStoreError(f"Failed to load {table}") from exc

    def get_quiz_questions(self, question_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        rows = self._fetch("quiz_questions", QUESTION_COLUMNS, question_ids)
        return {str(row["id"]): row for row in rows}

    def get_chunks(self, chunk_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        rows = self._fetch("document_chunks", CHUNK_COLUMNS, chunk_ids)
        return {str(row["id"]): row for row in rows}

    def get_document_titles(self, document_ids: Sequence[str]) -> Dict[str, str]:
        rows = self._fetch("documents", "id,title", document_ids)
        return {str(row["id"]): row.get("title") for row in rows}
