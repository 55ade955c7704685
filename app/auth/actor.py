from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Actor:
    """
    Identity and capability of whoever invokes a mutation

    is_elevated is decided once by the calling layer; services never look at
    role names to derive it.
    """
    id: Optional[int]
    is_elevated: bool = False

    @classmethod
    def system(cls) -> "Actor":
        """Actor used by seeds and maintenance scripts"""
        return cls(id=None, is_elevated=True)
