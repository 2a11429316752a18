"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
before tables are created.
"""

from fortyfive.models.generation import Generation, GenerationStatus
from fortyfive.models.template import Template
from fortyfive.models.transaction import Transaction, TransactionType
from fortyfive.models.user import User

__all__ = [
    "Generation",
    "GenerationStatus",
    "Template",
    "Transaction",
    "TransactionType",
    "User",
]
