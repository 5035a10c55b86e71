from abc import ABC, abstractmethod
from typing import List

class Suggester(ABC):
    """Proposes a primary-locale value for each missing key.

    Items are dicts with at least "namespace", "key" and "context".
    """

    @abstractmethod
    def suggest_batch(self, items: List[dict]) -> List[str]:
        ...
