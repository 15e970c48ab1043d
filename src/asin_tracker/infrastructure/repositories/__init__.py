"""Repository implementations."""

from asin_tracker.infrastructure.repositories.in_memory_product_repository import (
    InMemoryProductRepository,
)
from asin_tracker.infrastructure.repositories.postgres_product_repository import (
    PostgresProductRepository,
)

__all__ = ["InMemoryProductRepository", "PostgresProductRepository"]
