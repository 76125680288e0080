"""
Summarify Backend — Google Gemini Service Implementation
==========================================================

What:  Concrete AI completion service that writes meeting summaries with
       Google Gemini.
How:   Sends prompt + cleaned transcript to Gemini with a retry policy, a
       circuit breaker and latency logging. Provider errors are translated
       into LLMServiceError.
Who:   Instantiated once at import; called by JobRunner for each summary job.
When:  After a job is claimed, never inside a database transaction.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient
       failures (network, rate limit, 5xx). Refusals and empty answers are
       not retried.
    2. Circuit breaker that rejects calls instantly while Gemini is down.
    3. Per-call request timeout.

The retry policy lives in this adapter. The job runner above it performs no
retry of its own: whatever escapes generate() marks the job failed.
"""

import logging
import time
import uuid
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from summarify.config import settings
from summarify.exceptions import CircuitBreakerOpenError, LLMServiceError
from summarify.services.llm_base import LLMService

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    ConnectionError,
    TimeoutError,
    google_exceptions.ResourceExhausted,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding the Gemini API.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; one uvicorn worker runs all coroutines on one loop.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through.

        Raises:
            CircuitBreakerOpenError if the circuit is OPEN and the recovery
            timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.monotonic() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=max(1, remaining))

        # HALF_OPEN: let the probe through
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (probe request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Gemini Service
# ══════════════════════════════════════════════════════════════════════════

class GeminiService(LLMService):
    """
    Google Gemini implementation of the AI completion contract.

    Error Handling Chain:
        API call fails with a transient error → tenacity retries
        → All retries fail → record circuit breaker failure → LLMServiceError
        → Circuit breaker threshold reached → future calls rejected instantly
        → Recovery timeout elapses → one probe call (HALF_OPEN)
        → Probe succeeds → resume normal operation (CLOSED)
    """

    def __init__(self):
        if settings.gemini_api_key:
            genai.configure(api_key=settings.gemini_api_key)

        self.model = genai.GenerativeModel(settings.gemini_model)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "GeminiService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            settings.gemini_model,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    async def generate(self, content: str, prompt: str) -> str:
        """
        Generate text for `prompt` applied to `content`.

        Flow:
            1. Check circuit breaker → may raise CircuitBreakerOpenError
            2. Call Gemini with retry on transient errors
            3. Record success/failure in the circuit breaker
            4. Return the generated text

        Raises:
            CircuitBreakerOpenError: circuit is open
            LLMServiceError: Gemini failed, refused, or returned nothing
        """
        request_id = str(uuid.uuid4())[:8]

        self.circuit_breaker.can_execute()

        logger.info(
            "[%s] Starting Gemini generation: %d chars of content",
            request_id,
            len(content),
        )

        try:
            result = await self._call_gemini_with_retry(content, prompt, request_id)
        except LLMServiceError:
            self.circuit_breaker.record_failure()
            raise
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Gemini generation failed: %s", request_id, str(e), exc_info=True)
            raise self._translate_error(e, request_id) from e

        self.circuit_breaker.record_success()
        return result

    @staticmethod
    def _translate_error(error: Exception, request_id: str) -> LLMServiceError:
        """Map a provider exception to a client-safe LLMServiceError."""
        text = str(error)
        context = {"request_id": request_id, "error_type": type(error).__name__}

        if isinstance(error, google_exceptions.ResourceExhausted) or "QUOTA" in text.upper():
            return LLMServiceError(
                message="Gemini API quota exceeded. Please try again later.",
                retry_after=settings.cb_recovery_timeout,
                context=context,
            )
        if isinstance(error, (google_exceptions.PermissionDenied, google_exceptions.Unauthenticated)) or "API_KEY" in text:
            return LLMServiceError(
                message="Invalid Gemini API key configuration",
                context=context,
            )
        if isinstance(error, TRANSIENT_ERRORS):
            return LLMServiceError(
                message="AI summary generation failed after multiple attempts. Please try again later.",
                retry_after=settings.cb_recovery_timeout,
                context={**context, "attempts": settings.retry_max_attempts},
            )
        return LLMServiceError(
            message=f"Failed to generate AI summary: {text or 'Unknown error'}",
            context=context,
        )

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.retry_max_attempts),
        # attempt 1 → ~2s, attempt 2 → ~4s, attempt 3 → ~8s (+jitter)
        wait=wait_exponential_jitter(
            multiplier=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call_gemini_with_retry(self, content: str, prompt: str, request_id: str) -> str:
        """
        One Gemini API call; tenacity re-invokes it on transient errors.

        Kept apart from generate() so only the API call is retried, never
        the circuit breaker check.
        """
        start_time = time.time()

        try:
            response = await self.model.generate_content_async(
                [prompt, content],
                request_options={"timeout": 60},
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "[%s] Gemini API call failed after %.0fms: %s",
                request_id,
                duration_ms,
                str(e),
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        # .text raises ValueError when the candidate was blocked by safety filters
        try:
            generated = (response.text or "").strip()
        except ValueError:
            raise LLMServiceError(
                message="Content filtered by Gemini safety filters",
                context={"request_id": request_id},
            )

        if not generated:
            raise LLMServiceError(
                message="Empty response from Gemini API",
                context={"request_id": request_id},
            )

        logger.info(
            "[%s] Gemini generation completed in %.0fms, produced %d chars",
            request_id,
            duration_ms,
            len(generated),
        )
        return generated

    async def health_check(self) -> bool:
        """
        Check if the Gemini API is reachable.

        How:     Lists available models (no token cost).
        Returns: True if reachable and authenticated, False otherwise.
        """
        try:
            models = genai.list_models()
            model_names = [m.name for m in models]
            target = f"models/{settings.gemini_model}"
            if target not in model_names:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state shared by every job
gemini_service = GeminiService()
