"""
catalog/models.py -- Domain dataclasses for the Shopfront catalog.

These are pure data containers with zero logic. Business rules (category
must exist, soft delete) live in catalog/service.py and catalog/store.py.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Category:
    """A named product grouping. Names are unique.

    id is None before the record is written to the database.
    """

    name: str
    description: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Product:
    """A sellable item that belongs to exactly one Category.

    is_deleted is the soft-delete flag: deleted products stay in the table
    but disappear from every read path.

    id is None before the record is written to the database.
    """

    category_id: int
    name: str
    description: str
    id: Optional[int] = None
    is_deleted: bool = False
    created_at: str = ""  # ISO 8601
    updated_at: str = ""  # ISO 8601
