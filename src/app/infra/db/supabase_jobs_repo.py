from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from supabase import Client

from src.app.deps import get_supabase
from src.app.domain.errors import JobNotFoundError, JobRepositoryError
from src.app.domain.models import ExtractionJob, ExtractionStatus, Platform
from src.app.infra.db.base import ExtractionJobRepository
from src.app.infra.db.rows import STORAGE_ERRORS, first_row, now_utc, parse_datetime, safe_int, safe_str

logger = logging.getLogger(__name__)


def _row_to_job(row: dict) -> ExtractionJob:
    chat_id = row.get("telegram_chat_id")
    return ExtractionJob(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        source_url=str(row["source_url"]),
        normalized_url=str(row.get("normalized_url") or row["source_url"]),
        platform=Platform(str(row.get("platform") or Platform.OTHER.value)),
        target_language=str(row.get("target_language") or "original"),
        status=ExtractionStatus(str(row["status"])),
        progress=safe_int(row.get("progress")),
        status_message=safe_str(row.get("status_message")),
        recipe_id=safe_str(row.get("recipe_id")),
        error=safe_str(row.get("error")),
        telegram_chat_id=int(chat_id) if chat_id is not None else None,
        created_at=parse_datetime(row.get("created_at")),
        updated_at=parse_datetime(row.get("updated_at")),
    )


class SupabaseExtractionJobRepository(ExtractionJobRepository):
    TABLE_NAME = "extraction_jobs"

    def __init__(self, client: Client | None = None):
        self._client = client or get_supabase()

    def create_job(
        self,
        user_id: str,
        source_url: str,
        normalized_url: str,
        platform: Platform,
        target_language: str,
        telegram_chat_id: Optional[int] = None,
    ) -> ExtractionJob:
        now = now_utc().isoformat()
        job_data = {
            "id": str(uuid4()),
            "user_id": user_id,
            "source_url": source_url,
            "normalized_url": normalized_url,
            "platform": platform.value,
            "target_language": target_language,
            "status": ExtractionStatus.PENDING.value,
            "progress": 0,
            "created_at": now,
            "updated_at": now,
        }
        if telegram_chat_id is not None:
            job_data["telegram_chat_id"] = telegram_chat_id

        try:
            result = self._client.table(self.TABLE_NAME).insert(job_data).execute()
        except STORAGE_ERRORS as error:
            logger.error("Error creating extraction job: user=%s error=%s", user_id, error)
            raise JobRepositoryError("create", str(error)) from error

        row = first_row(result)
        if not row:
            raise JobRepositoryError("create", "insert returned no row")

        job = _row_to_job(row)
        logger.info("Created extraction job: id=%s user=%s url=%s", job.id, user_id, normalized_url)
        return job

    def get_job(self, job_id: str) -> ExtractionJob | None:
        try:
            result = self._client.table(self.TABLE_NAME).select("*").eq("id", job_id).limit(1).execute()
        except STORAGE_ERRORS as error:
            logger.error("Error getting extraction job: id=%s error=%s", job_id, error)
            raise JobRepositoryError("get", str(error)) from error

        row = first_row(result)
        return _row_to_job(row) if row else None

    def update_job(self, job: ExtractionJob) -> None:
        update_data = {
            "status": job.status.value,
            "progress": job.progress,
            "status_message": job.status_message,
            "recipe_id": job.recipe_id,
            "error": job.error,
            "updated_at": (job.updated_at or now_utc()).isoformat(),
        }

        try:
            result = self._client.table(self.TABLE_NAME).update(update_data).eq("id", job.id).execute()
        except STORAGE_ERRORS as error:
            logger.error("Error updating extraction job: id=%s status=%s error=%s", job.id, job.status.value, error)
            raise JobRepositoryError("update", str(error)) from error

        if not result.data:
            raise JobNotFoundError(job.id)

        logger.debug("Job updated: id=%s status=%s progress=%d", job.id, job.status.value, job.progress)
