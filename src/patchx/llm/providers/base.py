"""Provider protocol shared by every AI-assist backend."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class LLMProvider(Protocol):
    """Synchronous text-generation backend.

    Implementations raise LLMError subclasses on failure. The resolution
    engine runs ``generate`` in a worker thread under a deadline.
    """

    def generate(self, prompt: str, max_tokens: int = 2000) -> str:
        """Return the model's completion for ``prompt``."""
        ...
