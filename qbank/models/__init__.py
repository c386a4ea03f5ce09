"""SQLAlchemy database models."""
from qbank.models.base import Base
from qbank.models.question import Question

__all__ = [
    "Base",
    "Question",
]
