"""
Summarify Backend — Abstract AI Completion Service Interface
==============================================================

What:  Contract for the AI completion collaborator that writes meeting summaries.
How:   Concrete providers inherit from LLMService and implement generate()
       and health_check(). The job runner depends only on this interface,
       so tests swap in a fake and a different provider needs no caller change.
Who:   Called by JobRunner for every claimed summary job.
When:  After the job is claimed, outside any database transaction.
"""

from abc import ABC, abstractmethod


class LLMService(ABC):
    """
    Abstract interface for AI text completion.

    Contract:
        - generate() returns the model's text for `prompt` applied to `content`
        - Implementations own their retry policy and translate provider
          errors into LLMServiceError / CircuitBreakerOpenError
        - Callers treat any exception as a failed job; they never retry

    Implementations:
        - GeminiService: Google Gemini (default)
    """

    @abstractmethod
    async def generate(self, content: str, prompt: str) -> str:
        """
        Run one completion.

        Args:
            content: The material to work on (a cleaned transcript).
            prompt:  Instructions for the model.

        Returns:
            str: Non-empty generated text.

        Raises:
            LLMServiceError: the provider failed, refused (content filter,
                quota) or returned nothing after the adapter's retries.
            CircuitBreakerOpenError: too many recent failures; the call was
                rejected without reaching the provider.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Lightweight reachability check (does not consume generation quota).

        Who:     Called by the health check endpoint.
        Returns: True if the service is reachable, False otherwise.
        """
        ...
