"""
Client module for communicating with the job processing API server.

This module provides a simple interface to:
- Submit audio for transcription and text for summarization
- Check job progress, cancel jobs and retrieve results
- Query and manage the job history
"""

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

import requests
from requests.exceptions import ConnectionError, RequestException

TERMINAL_STATES = {"completed", "failed", "cancelled"}


class APIClient:
    """Client for communicating with the job processing API server."""

    def __init__(self, base_url: str = "http://localhost:5001", timeout: int = 30):
        """
        Args:
            base_url: Server root, e.g. http://localhost:5001
            timeout: Seconds to wait for any single request
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def health_check(self) -> Dict[str, Any]:
        """
        Ping the server.

        Raises:
            ConnectionError: If the server cannot be reached
        """
        try:
            return self._request("GET", "/health")
        except RequestException as e:
            raise ConnectionError(f"API server unreachable at {self.base_url}: {e}")

    def transcribe_file(
        self, file_path: str, options: Optional[Dict[str, Any]] = None, timeout: int = 300
    ) -> Dict[str, Any]:
        """
        Upload a raw PCM recording and start a transcription job.

        Args:
            file_path: Recording to upload
            options: Transcription options (model_variant, language, return_timestamps)
            timeout: Upload timeout in seconds, longer than the default for big files

        Returns:
            The job_id with the job's initial status

        Raises:
            FileNotFoundError: If there is no file at file_path
            RequestException: If the server rejects the upload
        """
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"No recording at {path}")

        data = {}
        if options:
            data["options"] = json.dumps(options)

        try:
            with path.open("rb") as recording:
                files = {"file": (path.name, recording)}
                response = self.session.post(f"{self.base_url}/transcribe", files=files, data=data, timeout=timeout)
                response.raise_for_status()
                return response.json()
        except RequestException as e:
            raise RequestException(f"Could not upload {path.name}: {e}")

    def summarize_text(
        self,
        text: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        transcription_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Submit text for summarization.

        Args:
            text: Text to summarize; may be omitted when transcription_id is given
            options: Summarization options (model_variant, target_length, max_length, ...)
            transcription_id: History record to summarize and attach the summary to

        Returns:
            The job_id with the job's initial status
        """
        payload: Dict[str, Any] = {"options": options or {}}
        if text is not None:
            payload["text"] = text
        if transcription_id:
            payload["transcription_id"] = transcription_id
        return self._request("POST", "/summarize", "Failed to submit text", json=payload)

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        """Get the state and progress of a job."""
        return self._request("GET", f"/status/{job_id}", "Failed to get job status")

    def cancel_job(self, job_id: str) -> Dict[str, Any]:
        """Cancel a running job."""
        return self._request("POST", f"/cancel/{job_id}", "Failed to cancel job")

    def get_job_result(self, job_id: str) -> Dict[str, Any]:
        """Get the result of a completed job."""
        return self._request("GET", f"/result/{job_id}", "Failed to get job result")

    def list_history(
        self,
        language: Optional[str] = None,
        model: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """
        Query the job history.

        Returns:
            Dictionary containing items, total, has_more and the pagination window
        """
        params = {"limit": limit, "offset": offset}
        filters = {"language": language, "model": model, "date_from": date_from, "date_to": date_to, "search": search}
        params.update({key: value for key, value in filters.items() if value})
        return self._request("GET", "/history", "Failed to query history", params=params)

    def get_history_stats(self) -> Dict[str, Any]:
        """Get aggregate statistics over the history."""
        return self._request("GET", "/history/stats", "Failed to get history statistics")

    def get_history_record(self, record_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/history/{record_id}", "Failed to get history record")

    def delete_history_record(self, record_id: str) -> Dict[str, Any]:
        """Delete a history record and its summary."""
        return self._request("DELETE", f"/history/{record_id}", "Failed to delete history record")

    def get_history_summary(self, record_id: str) -> Dict[str, Any]:
        """Get the summary attached to a history record."""
        return self._request("GET", f"/history/{record_id}/summary", "Failed to get summary")

    def clear_history(self) -> Dict[str, Any]:
        """Delete every record, summary and user preference."""
        return self._request("DELETE", "/history", "Failed to clear history")

    def get_preferences(self) -> Dict[str, str]:
        return self._request("GET", "/preferences", "Failed to get preferences")

    def get_preference(self, key: str) -> Dict[str, Any]:
        return self._request("GET", f"/preferences/{key}", "Failed to get preference")

    def set_preference(self, key: str, value: str) -> Dict[str, Any]:
        """Insert or replace a user preference."""
        return self._request("PUT", f"/preferences/{key}", "Failed to set preference", json={"value": value})

    def delete_preference(self, key: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/preferences/{key}", "Failed to delete preference")

    def detect_language(self, text: str) -> Dict[str, Any]:
        """
        Detect the language of a text.

        Returns:
            Dictionary with language, confidence, alternatives, is_reliable and recommended
        """
        return self._request("POST", "/language/detect", "Failed to detect language", json={"text": text})

    def wait_for_completion(self, job_id: str, poll_interval: float = 2, timeout: int = 3600) -> Dict[str, Any]:
        """
        Poll a job until it reaches a terminal state.

        Args:
            job_id: Job to follow
            poll_interval: Seconds between status requests
            timeout: Seconds to give up after

        Returns:
            The job result once the job completed

        Raises:
            TimeoutError: If the job is still running after timeout seconds
            RequestException: If the job failed or was cancelled, or any API call fails
        """
        deadline = time.monotonic() + timeout

        while time.monotonic() < deadline:
            status = self.get_job_status(job_id)
            state = status.get("state")

            if state == "completed":
                return self.get_job_result(job_id)
            if state in TERMINAL_STATES:
                raise RequestException(f"Job {state}: {status.get('error', 'no details')}")

            time.sleep(poll_interval)

        raise TimeoutError(f"Job {job_id} still running after {timeout} seconds")

    def _request(self, method: str, path: str, failure: str = "Request failed", **kwargs) -> Dict[str, Any]:
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, f"{self.base_url}{path}", **kwargs)
            response.raise_for_status()
            return response.json()
        except RequestException as e:
            raise RequestException(f"{failure}: {e}")


# Convenience function for one-shot summaries
def summarize_and_wait(
    text: str,
    options: Optional[Dict[str, Any]] = None,
    api_url: str = "http://localhost:5001",
    poll_interval: float = 2,
    timeout: int = 3600,
) -> Dict[str, Any]:
    """
    Submit text for summarization and wait for the result.

    Args:
        text: Text to summarize
        options: Summarization options
        api_url: API server URL
        poll_interval: Seconds between status requests
        timeout: Seconds to give up after

    Returns:
        Dictionary containing the summarization result
    """
    api = APIClient(api_url)
    job_id = api.summarize_text(text, options)["job_id"]
    return api.wait_for_completion(job_id, poll_interval=poll_interval, timeout=timeout)
