"""
Exam service API client.

HTTP client for the server that selects and grades questions. The client does
no randomization and no scoring of its own: questions come back in canonical
order and score/total are taken as the server reports them.

Usage:
    async with ExamApiClient(settings.api) as client:
        questions = await client.start_exam("Algebra")
        result = await client.submit_exam(answers)
        batch = await client.fetch_adaptive_exam(result.id, used_ids)
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable
from urllib.parse import quote

import httpx
from loguru import logger

from .config import ApiConfig
from .errors import TransientCollaboratorError
from .models import (
    AdaptiveResponse,
    AIStatus,
    Answer,
    ExamInfo,
    ExamResult,
    Question,
    QuestionId,
)


class ExamApiClient:
    """
    Async client for the exam service.

    Timeouts, connection errors and 5xx responses are retried with
    exponential backoff; 4xx responses are not. Every failure that reaches
    the caller is a TransientCollaboratorError.
    """

    def __init__(self, config: ApiConfig | None = None, backoff_base: float = 1.0):
        self.config = config or ApiConfig()
        self.retry_attempts = max(1, self.config.retry_attempts)
        self.backoff_base = backoff_base
        self.client = httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(self.config.timeout_seconds),
            follow_redirects=True,
        )

    async def __aenter__(self) -> "ExamApiClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        last_error: Exception | None = None
        send = getattr(self.client, method)

        for attempt in range(self.retry_attempts):
            try:
                response = await send(url, **kwargs)
                response.raise_for_status()
                return response

            except httpx.HTTPStatusError as e:
                last_error = e
                status = e.response.status_code
                if status < 500:
                    logger.error(f"{operation}: client error {status}")
                    raise TransientCollaboratorError(operation, f"HTTP {status}", status) from e
                logger.warning(
                    f"{operation}: server error {status} on attempt "
                    f"{attempt + 1}/{self.retry_attempts}"
                )

            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(f"{operation}: timeout on attempt {attempt + 1}/{self.retry_attempts}")

            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    f"{operation}: request error on attempt {attempt + 1}/{self.retry_attempts}: {e}"
                )

            if attempt < self.retry_attempts - 1:
                wait_time = self.backoff_base * 2 ** attempt  # 1s, 2s, 4s
                if wait_time > 0:
                    await asyncio.sleep(wait_time)

        logger.error(f"{operation} failed after {self.retry_attempts} attempts: {last_error}")
        status_code = None
        if isinstance(last_error, httpx.HTTPStatusError):
            status_code = last_error.response.status_code
        raise TransientCollaboratorError(operation, str(last_error), status_code) from last_error

    @staticmethod
    def _decode(operation: str, response: httpx.Response, parse):
        try:
            return parse(response.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"{operation}: malformed response body: {e}")
            raise TransientCollaboratorError(operation, f"malformed response: {e}") from e

    # =========================================================================
    # Exam rounds
    # =========================================================================

    async def start_exam(self, topic: str | None = None) -> list[Question]:
        """Fetch the first batch for a topic (or all topics when None)."""
        params = {"topic": topic} if topic else None
        response = await self._request("start", "get", self.config.start_endpoint, params=params)
        questions = self._decode(
            "start", response, lambda data: [Question.from_dict(q) for q in data]
        )
        logger.debug(f"Started exam with {len(questions)} questions (topic={topic!r})")
        return questions

    async def submit_exam(self, answers: Iterable[Answer]) -> ExamResult:
        """Send a round's answers for grading."""
        payload = {"answers": [a.to_dict() for a in answers]}
        response = await self._request("submit", "post", self.config.submit_endpoint, json=payload)
        result = self._decode("submit", response, lambda data: ExamResult.from_dict(data["result"]))
        logger.info(f"Round graded: {result.score}/{result.total}")
        return result

    async def fetch_adaptive_exam(
        self,
        result_id: QuestionId | None = None,
        excluded_ids: Iterable[QuestionId] | None = None,
    ) -> AdaptiveResponse:
        """
        Ask the selector for the next round.

        The selector must not return any id in excluded_ids.
        """
        payload: dict[str, Any] = {"resultId": result_id}
        if excluded_ids is not None:
            payload["excludedQuestionIds"] = list(excluded_ids)
        response = await self._request(
            "adaptive", "post", self.config.adaptive_endpoint, json=payload
        )
        batch = self._decode("adaptive", response, AdaptiveResponse.from_dict)
        logger.debug(
            f"Adaptive batch: {len(batch.questions)} questions, "
            f"{len(payload.get('excludedQuestionIds', []))} excluded"
        )
        return batch

    # =========================================================================
    # History
    # =========================================================================

    async def fetch_history(self) -> list[ExamResult]:
        response = await self._request("history", "get", self.config.history_endpoint)
        return self._decode(
            "history", response, lambda data: [ExamResult.from_dict(r) for r in data]
        )

    async def fetch_history_item(self, result_id: QuestionId) -> ExamResult:
        url = f"{self.config.history_endpoint}/{quote(str(result_id), safe='')}"
        response = await self._request("history item", "get", url)
        return self._decode("history item", response, ExamResult.from_dict)

    async def clear_history(self) -> None:
        await self._request("clear history", "delete", self.config.history_endpoint)

    # =========================================================================
    # Service info
    # =========================================================================

    async def fetch_status(self) -> AIStatus:
        response = await self._request("status", "get", self.config.status_endpoint)
        return self._decode("status", response, AIStatus.from_dict)

    async def fetch_exam_info(self) -> ExamInfo:
        response = await self._request("exam info", "get", self.config.exams_endpoint)
        return self._decode("exam info", response, ExamInfo.from_dict)
