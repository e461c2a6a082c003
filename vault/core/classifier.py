"""
Image classifier interface.

The vault never calls a vision model itself; a Classifier implementation is
handed in by the caller. MockClassifier stands in for development and tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional


@dataclass
class ClassificationResult:
    """A classifier's guess at what the photographed item is."""
    subject: str
    category: Optional[str] = None
    year: Optional[int] = None
    year_range_start: Optional[int] = None
    year_range_end: Optional[int] = None
    tag_brand: Optional[str] = None
    description: Optional[str] = None
    confidence: float = 0.0  # 0-100

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Classifier(ABC):
    """
    Abstract base class for image classifiers.
    Implementations may call external services and raise any exception on failure.
    """

    def __init__(self, model_name: str):
        self.model_name = model_name

    @abstractmethod
    def classify(self, images: List[str]) -> ClassificationResult:
        """
        Classify an item from its photos.

        Args:
            images: Image URLs or data URIs, front view first

        Returns:
            ClassificationResult: best guess for the item
        """
        pass

    def get_status(self) -> Dict[str, Any]:
        """Get current status of this classifier."""
        return {
            "model_name": self.model_name,
            "type": self.__class__.__name__,
        }


class MockClassifier(Classifier):
    """
    Classifier returning a fixed result without external dependencies.
    Pass `error` to simulate an unavailable upstream service.
    """

    DEFAULT_RESULT = ClassificationResult(
        subject="Unknown",
        category="Other",
        description="Mock classification",
        confidence=0.0,
    )

    def __init__(self, result: Optional[ClassificationResult] = None,
                 error: Optional[Exception] = None, model_name: str = "mock-classifier"):
        super().__init__(model_name)
        self.result = result or self.DEFAULT_RESULT
        self.error = error
        self.calls: List[List[str]] = []

    def classify(self, images: List[str]) -> ClassificationResult:
        self.calls.append(list(images))
        if self.error is not None:
            raise self.error
        return self.result
