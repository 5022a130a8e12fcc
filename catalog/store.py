"""
catalog/store.py -- SQLAlchemy-backed persistence layer for the Shopfront catalog.

Uses SQLAlchemy Core (not ORM) so the dataclasses in catalog/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. CatalogStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = CatalogStore()                               # DATABASE_URL default
    store = CatalogStore("postgresql://user:pw@host/db") # PostgreSQL
    category_id = store.create_category(Category(name="Shoes"))
    product_id = store.create_product(Product(category_id=category_id, name="Runner", description="Light"))
    store.update_product(product_id, name="Runner 2")
    store.soft_delete_product(product_id)
    store.close()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from catalog.models import Category, Product
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
)

_products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("category_id", Integer, nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False),
    Column("is_deleted", Integer, nullable=False, server_default="0"),  # boolean stored as 0/1
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CatalogStore:
    # Fields update_product() accepts. Anything else is a programming error.
    _PRODUCT_FIELDS: set = {"category_id", "name", "description"}

    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # The ASGI server runs sync handlers on a thread pool, so one
            # connection may be used from several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def create_category(self, category: Category) -> int:
        """Insert a category and return its ID.

        Raises sqlalchemy.exc.IntegrityError if the name is already taken.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _categories.insert().values(
                    name=category.name,
                    description=category.description,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_category(self, category_id: int) -> Optional[Category]:
        with self.engine.connect() as conn:
            row = conn.execute(_categories.select().where(_categories.c.id == category_id)).fetchone()
        return _row_to_category(row) if row is not None else None

    def list_categories(self) -> list[Category]:
        """Return all categories ordered by name."""
        with self.engine.connect() as conn:
            rows = conn.execute(_categories.select().order_by(_categories.c.name)).fetchall()
        return [_row_to_category(r) for r in rows]

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def create_product(self, product: Product) -> int:
        """Insert a product and return its ID. The caller checks the category exists."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _products.insert().values(
                    category_id=product.category_id,
                    name=product.name,
                    description=product.description,
                    is_deleted=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_product(self, product_id: int) -> Optional[Product]:
        """Return a live product by ID, or None if missing or soft-deleted."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _products.select().where((_products.c.id == product_id) & (_products.c.is_deleted == 0))
            ).fetchone()
        return _row_to_product(row) if row is not None else None

    def list_products(self) -> list[Product]:
        """Return all live products, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _products.select().where(_products.c.is_deleted == 0).order_by(_products.c.id)
            ).fetchall()
        return [_row_to_product(r) for r in rows]

    def count_products(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_products).where(_products.c.is_deleted == 0)
            ).scalar()
        return result or 0

    def update_product(self, product_id: int, **fields) -> bool:
        """Update mutable fields on a live product.

        Accepted fields: category_id, name, description. Unknown keys raise
        ValueError rather than being silently ignored.

        Returns True if a row was updated, False if product_id was not found
        or the product is deleted.
        """
        unknown = set(fields) - self._PRODUCT_FIELDS
        if unknown:
            raise ValueError(f"Unknown product fields: {unknown!r}")
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _products.update()
                .where((_products.c.id == product_id) & (_products.c.is_deleted == 0))
                .values(**fields)
            )
            conn.commit()
        return result.rowcount > 0

    def soft_delete_product(self, product_id: int) -> bool:
        """Flag a product as deleted. Returns False if not found or already deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _products.update()
                .where((_products.c.id == product_id) & (_products.c.is_deleted == 0))
                .values(is_deleted=1, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_category(row) -> Category:
    return Category(
        id=row.id,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
    )


def _row_to_product(row) -> Product:
    return Product(
        id=row.id,
        category_id=row.category_id,
        name=row.name,
        description=row.description,
        is_deleted=bool(row.is_deleted),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
