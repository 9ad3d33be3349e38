"""
Text-completion capability backed by Gemini

Every caller in the pipeline goes through ``complete_with_retry``: one bounded
request, at most one retry with exponential backoff, then the error
surfaces so the caller can apply its deterministic fallback.
"""
import asyncio
import logging
from typing import Optional, Protocol

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import settings
from app.exceptions import AuthError, CompletionTimeout, NetworkError, RateLimited

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (CompletionTimeout, NetworkError, RateLimited)


class CompletionClient(Protocol):
    """Protocol for text completion.

    Implementations raise NetworkError, AuthError or RateLimited for
    transport failures and return the raw model text otherwise.
    """

    model_name: str

    async def complete(self, prompt: str) -> str:
        ...


class GeminiCompletionClient:
    """Completion client for the Gemini API"""

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self.model_name = model_name or settings.GEMINI_MODEL
        genai.configure(api_key=api_key or settings.GEMINI_API_KEY)
        self.model = genai.GenerativeModel(self.model_name)

    async def complete(self, prompt: str) -> str:
        """
        Generate a completion for a single prompt

        Args:
            prompt: Full prompt text

        Returns:
            Raw response text ("" when the response carries no text part)
        """
        try:
            response = await self.model.generate_content_async(prompt)
        except (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied) as e:
            raise AuthError(f"Gemini rejected credentials: {str(e)}") from e
        except (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests) as e:
            raise RateLimited(f"Gemini rate limit hit: {str(e)}") from e
        except google_exceptions.GoogleAPICallError as e:
            raise NetworkError(f"Gemini request failed: {str(e)}") from e

        try:
            return response.text or ""
        except ValueError:
            # Blocked or empty candidates have no text accessor
            logger.warning("Gemini response contained no text part")
            return ""


async def complete_with_retry(
    client: CompletionClient,
    prompt: str,
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    backoff: Optional[float] = None,
) -> str:
    """
    Call the completion capability with a timeout and bounded retries

    Args:
        client: Completion client
        prompt: Prompt text
        timeout: Per-call timeout in seconds
        max_retries: Retries after the first attempt (default 1)
        backoff: Base backoff in seconds

    Returns:
        Raw completion text

    Raises:
        CompletionTimeout, NetworkError, RateLimited: after retries are exhausted
        AuthError: immediately, auth failures are never retried
    """
    timeout = timeout if timeout is not None else settings.COMPLETION_TIMEOUT_SECONDS
    max_retries = max_retries if max_retries is not None else settings.COMPLETION_MAX_RETRIES
    backoff = backoff if backoff is not None else settings.COMPLETION_RETRY_BACKOFF_SECONDS

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=backoff, max=backoff * 8),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        reraise=True,
    )

    text = ""
    async for attempt in retrying:
        with attempt:
            number = attempt.retry_state.attempt_number
            if number > 1:
                logger.info(f"Retrying completion call (attempt {number})")
            try:
                text = await asyncio.wait_for(client.complete(prompt), timeout=timeout)
            except asyncio.TimeoutError as e:
                logger.warning(f"Completion call timed out after {timeout}s")
                raise CompletionTimeout(f"Completion timed out after {timeout}s") from e
    return text
