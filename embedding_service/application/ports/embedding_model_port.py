# embedding_service/application/ports/embedding_model_port.py
import abc
from typing import List, Tuple, Dict, Any, Optional


class EmbeddingError(Exception):
    """Base exception for embedding errors."""
    pass

class ModelLoadError(EmbeddingError):
    """The encoder model could not be loaded. Fatal at startup."""
    pass

class InferenceError(EmbeddingError):
    """A single inference run failed (bad input shape, runtime error, bad output)."""
    pass

class BatchCancelledError(EmbeddingError):
    """Raised when a caller cancels a batch between chunks."""

    def __init__(self, completed: Optional[List[List[float]]] = None, total: int = 0):
        self.completed = completed or []
        self.total = total
        super().__init__(f"Batch cancelled after {len(self.completed)} of {total} texts.")


class EmbeddingModelPort(abc.ABC):
    """
    Abstract port defining the interface for an embedding model.
    """

    @abc.abstractmethod
    async def embed_text(self, text: str) -> List[float]:
        """
        Generates the embedding for one text.

        Args:
            text: The string to embed.

        Returns:
            A unit-norm list of floats. Implementations must not raise for
            per-text failures; they return a degraded vector instead.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def get_model_info(self) -> Dict[str, Any]:
        """
        Returns information about the loaded embedding model.

        Returns:
            A dictionary containing model_name, dimension, etc.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def health_check(self) -> Tuple[bool, str]:
        """
        Checks the health of the embedding model.

        Returns:
            A tuple (is_healthy: bool, status_message: str).
        """
        raise NotImplementedError
