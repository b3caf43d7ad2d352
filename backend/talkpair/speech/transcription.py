# talkpair/speech/transcription.py
import logging
import time
from dataclasses import dataclass
from typing import Optional

import requests
from asgiref.sync import sync_to_async
from django.conf import settings

logger = logging.getLogger(__name__)

ASSEMBLYAI_API_URL = "https://api.assemblyai.com/v2"
REQUEST_TIMEOUT_SEC = 10


class TranscriptionError(Exception):
    pass


@dataclass
class TranscriptionResult:
    text: str
    confidence: Optional[float] = None


class AssemblyAITranscriber:
    """
    AssemblyAI 비동기 전사: 업로드 -> job 생성 -> 완료될 때까지 polling
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.ASSEMBLYAI_API_KEY
        self.poll_interval = (
            poll_interval
            if poll_interval is not None
            else settings.ASSEMBLYAI_POLL_INTERVAL_SEC
        )
        self.max_attempts = (
            max_attempts
            if max_attempts is not None
            else settings.ASSEMBLYAI_MAX_POLL_ATTEMPTS
        )
        self.session = session or requests.Session()

    async def transcribe(self, audio: bytes) -> Optional[TranscriptionResult]:
        return await sync_to_async(self.transcribe_sync, thread_sensitive=False)(audio)

    def transcribe_sync(self, audio: bytes) -> Optional[TranscriptionResult]:
        if not self.api_key:
            raise TranscriptionError("ASSEMBLYAI_API_KEY not set")

        upload_url = self._upload(audio)
        transcript_id = self._create_job(upload_url)

        for _ in range(self.max_attempts):
            data = self._get(f"/transcript/{transcript_id}")
            status = data.get("status")
            if status == "completed":
                text = (data.get("text") or "").strip()
                if not text:
                    return None
                return TranscriptionResult(text=text, confidence=data.get("confidence"))
            if status == "error":
                raise TranscriptionError(f"transcription failed: {data.get('error')}")
            time.sleep(self.poll_interval)

        logger.warning("transcription %s not ready after %s polls", transcript_id, self.max_attempts)
        return None

    # ---- helpers ----

    def _headers(self) -> dict:
        return {"Authorization": self.api_key}

    def _upload(self, audio: bytes) -> str:
        resp = self.session.post(
            f"{ASSEMBLYAI_API_URL}/upload",
            headers=self._headers(),
            data=audio,
            timeout=REQUEST_TIMEOUT_SEC,
        )
        if resp.status_code != 200:
            raise TranscriptionError(f"upload failed: HTTP {resp.status_code}")
        return resp.json()["upload_url"]

    def _create_job(self, audio_url: str) -> str:
        resp = self.session.post(
            f"{ASSEMBLYAI_API_URL}/transcript",
            headers=self._headers(),
            json={
                "audio_url": audio_url,
                "language_code": "en",
                "punctuate": True,
                "format_text": True,
            },
            timeout=REQUEST_TIMEOUT_SEC,
        )
        if resp.status_code != 200:
            raise TranscriptionError(f"job creation failed: HTTP {resp.status_code}")
        return resp.json()["id"]

    def _get(self, path: str) -> dict:
        resp = self.session.get(
            f"{ASSEMBLYAI_API_URL}{path}",
            headers=self._headers(),
            timeout=REQUEST_TIMEOUT_SEC,
        )
        if resp.status_code != 200:
            raise TranscriptionError(f"poll failed: HTTP {resp.status_code}")
        return resp.json()
