"""Repository layer for the fortyfive backend.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from fortyfive.repositories.generation import GenerationRepository
from fortyfive.repositories.template import TemplateRepository
from fortyfive.repositories.transaction import TransactionRepository
from fortyfive.repositories.user import UserRepository

__all__ = [
    "GenerationRepository",
    "TemplateRepository",
    "TransactionRepository",
    "UserRepository",
]
