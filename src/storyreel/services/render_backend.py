"""Rendering backend client."""

import json
import logging
from typing import List, Optional, Sequence

import requests

from ..config import config
from ..errors import SubmissionRejectedError
from ..models.job import JobStatusReport

logger = logging.getLogger(__name__)


class RenderBackendClient:
    """Client for the video rendering backend.

    The backend accepts one multipart job containing ordered clips,
    ordered narration files, optional music and JSON metadata, and then
    reports job status at ``/job-status/{job_id}``. This client performs
    exactly one request per call and never retries.
    """

    SUBMIT_PATH = "/generate-video"
    STATUS_PATH = "/job-status/{job_id}"
    DEFAULT_SUBMIT_TIMEOUT = 300.0
    DEFAULT_POLL_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        submit_timeout: float = DEFAULT_SUBMIT_TIMEOUT,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
    ) -> None:
        """Initialize the backend client.

        Args:
            base_url: Backend base URL. Defaults to STORYREEL_RENDER_URL.
            api_key: Optional bearer token. Defaults to STORYREEL_RENDER_API_KEY.
            session: Optional requests session (injected in tests).
            submit_timeout: Timeout for the upload request in seconds.
            poll_timeout: Timeout for each status request in seconds.
        """
        self._base_url = (base_url or config.render_backend_url).rstrip("/")
        if not self._base_url:
            raise ValueError("Render backend URL not provided. Set STORYREEL_RENDER_URL env var.")

        self._api_key = api_key if api_key is not None else config.render_api_key
        self._session = session or requests.Session()
        self._submit_timeout = submit_timeout
        self._poll_timeout = poll_timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> dict:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    def submit(
        self,
        clips: Sequence[bytes],
        narrations: Sequence[bytes],
        music: Optional[bytes],
        metadata: dict,
    ) -> str:
        """Submit a render job.

        Returns:
            The backend-assigned job id.

        Raises:
            SubmissionRejectedError: On transport errors, non-2xx responses
                or an unsuccessful acceptance body.
        """
        files: List[tuple] = []
        for i, clip in enumerate(clips):
            files.append(("clips", (f"clip_{i}.mp4", clip, "video/mp4")))
        for i, narration in enumerate(narrations):
            files.append(("voiceovers", (f"voiceover_{i}.mp3", narration, "audio/mpeg")))
        if music is not None:
            files.append(("music", ("music.mp3", music, "audio/mpeg")))

        url = f"{self._base_url}{self.SUBMIT_PATH}"
        logger.info(
            f"Submitting render job: {len(clips)} clip(s), {len(narrations)} voiceover(s), "
            f"music={'yes' if music is not None else 'no'}"
        )

        try:
            response = self._session.post(
                url,
                files=files,
                data={"metadata": json.dumps(metadata)},
                headers=self._headers(),
                timeout=self._submit_timeout,
            )
        except requests.RequestException as e:
            raise SubmissionRejectedError(f"Render backend unreachable: {e}") from e

        if not 200 <= response.status_code < 300:
            raise SubmissionRejectedError(
                f"Render backend rejected job ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise SubmissionRejectedError(
                "Render backend returned a non-JSON response", status_code=response.status_code
            ) from e

        job_id = body.get("job_id")
        if not body.get("success") or not job_id:
            raise SubmissionRejectedError(
                f"Render backend did not accept the job: {body.get('error') or body}",
                status_code=response.status_code,
            )

        logger.info(f"Render job accepted: {job_id}")
        return str(job_id)

    def get_status(self, job_id: str) -> JobStatusReport:
        """Fetch the current status of a job.

        Raises:
            requests.RequestException: On transport or HTTP errors.
            ValueError: If the response body is not a valid status.
        """
        url = f"{self._base_url}{self.STATUS_PATH.format(job_id=job_id)}"
        response = self._session.get(url, headers=self._headers(), timeout=self._poll_timeout)
        response.raise_for_status()
        return JobStatusReport.from_payload(response.json())
