"""
catalog/service.py -- Product operations with the catalog's business rules.

Every method is one store call plus the rule that gives it
meaning (a product's category must exist, deleted products are gone). Errors
are auth.errors.ServiceError subclasses so the API renders them like every
other service failure.
"""

from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.errors import BadRequestError, ConflictError, NotFoundError
from catalog.models import Category, Product
from catalog.store import CatalogStore

CATEGORY_NOT_FOUND = "Cannot find category"
DATA_NOT_FOUND = "Data not found"
DATA_NOT_FOUND_OR_DELETED = "Data not found or data already deleted"


class ProductService:
    def __init__(self, store: CatalogStore) -> None:
        self.store = store

    def create_category(self, name: str, description: Optional[str] = None) -> Category:
        try:
            category_id = self.store.create_category(Category(name=name, description=description))
        except IntegrityError as exc:
            raise ConflictError("A category with that name already exists.") from exc
        return self.store.get_category(category_id)

    def list_categories(self) -> list[Category]:
        return self.store.list_categories()

    def create(self, category_id: int, name: str, description: str) -> Product:
        """Create a product. Raises BadRequestError if the category does not exist."""
        if self.store.get_category(category_id) is None:
            raise BadRequestError(CATEGORY_NOT_FOUND)
        product_id = self.store.create_product(Product(category_id=category_id, name=name, description=description))
        return self.store.get_product(product_id)

    def find_all(self) -> list[Product]:
        """Return every live product. Raises NotFoundError when there are none."""
        products = self.store.list_products()
        if not products:
            raise NotFoundError(DATA_NOT_FOUND)
        return products

    def count(self) -> int:
        """Return the number of live products. Raises NotFoundError when it is zero."""
        total = self.store.count_products()
        if total == 0:
            raise NotFoundError(DATA_NOT_FOUND)
        return total

    def find_by_id(self, product_id: int) -> Product:
        product = self.store.get_product(product_id)
        if product is None:
            raise NotFoundError(DATA_NOT_FOUND)
        return product

    def update(self, product_id: int, **fields) -> Product:
        """Apply a partial update.

        Raises NotFoundError for a missing product and BadRequestError when
        moving it to a category that does not exist.
        """
        if self.store.get_product(product_id) is None:
            raise NotFoundError(DATA_NOT_FOUND)
        if "category_id" in fields and self.store.get_category(fields["category_id"]) is None:
            raise BadRequestError(CATEGORY_NOT_FOUND)
        if not self.store.update_product(product_id, **fields):
            # Deleted between the read and the write.
            raise NotFoundError(DATA_NOT_FOUND)
        return self.store.get_product(product_id)

    def delete(self, product_id: int) -> None:
        if not self.store.soft_delete_product(product_id):
            raise NotFoundError(DATA_NOT_FOUND_OR_DELETED)
