"""
api/routes/products.py -- Product CRUD routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /products               -- create product (admin)
  GET    /products               -- list live products
  GET    /products/count         -- number of live products (before /{id})
  GET    /products/{product_id}  -- product detail
  PATCH  /products/{product_id}  -- partial update (admin)
  DELETE /products/{product_id}  -- soft delete (admin)

Every success is the {statusCode, message, data} envelope. An empty catalog
is a 404 on list and count, matching the detail route's "Data not found".
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import Envelope, ProductCreate, ProductOut, ProductPatch
from auth.dependencies import require_admin
from auth.errors import BadRequestError
from catalog.service import ProductService

# Auth policy:
# - GET routes:              public -- the catalog is browsable without login
# - POST / PATCH / DELETE:   requires admin (require_admin)
router = APIRouter()

_SUCCESS = "success"


@router.post("/products", response_model=Envelope[ProductOut], dependencies=[Depends(require_admin)])
@limiter.limit("30/minute")
def create_product(request: Request, body: ProductCreate) -> Envelope[ProductOut]:
    """Create a product in an existing category. 400 if the category is unknown."""
    service: ProductService = request.app.state.product_service
    product = service.create(body.category_id, body.name, body.description)
    return Envelope[ProductOut](status_code=200, message="Product created", data=ProductOut.from_domain(product))


@router.get("/products", response_model=Envelope[list[ProductOut]])
@limiter.limit("60/minute")
def list_products(request: Request) -> Envelope[list[ProductOut]]:
    service: ProductService = request.app.state.product_service
    products = service.find_all()
    return Envelope[list[ProductOut]](
        status_code=200,
        message=_SUCCESS,
        data=[ProductOut.from_domain(p) for p in products],
    )


@router.get("/products/count", response_model=Envelope[int])
@limiter.limit("60/minute")
def count_products(request: Request) -> Envelope[int]:
    service: ProductService = request.app.state.product_service
    return Envelope[int](status_code=200, message=_SUCCESS, data=service.count())


@router.get("/products/{product_id}", response_model=Envelope[ProductOut])
@limiter.limit("60/minute")
def get_product(request: Request, product_id: int) -> Envelope[ProductOut]:
    service: ProductService = request.app.state.product_service
    product = service.find_by_id(product_id)
    return Envelope[ProductOut](status_code=200, message=_SUCCESS, data=ProductOut.from_domain(product))


@router.patch("/products/{product_id}", response_model=Envelope[ProductOut], dependencies=[Depends(require_admin)])
@limiter.limit("30/minute")
def update_product(request: Request, product_id: int, body: ProductPatch) -> Envelope[ProductOut]:
    """Change any of categoryId, name, description. Fields left out are untouched."""
    service: ProductService = request.app.state.product_service
    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise BadRequestError("No fields to update.")
    product = service.update(product_id, **updates)
    return Envelope[ProductOut](status_code=200, message="Product updated", data=ProductOut.from_domain(product))


@router.delete("/products/{product_id}", response_model=Envelope[None], dependencies=[Depends(require_admin)])
@limiter.limit("30/minute")
def delete_product(request: Request, product_id: int) -> Envelope[None]:
    """Soft-delete a product. 404 if it is missing or already deleted."""
    service: ProductService = request.app.state.product_service
    service.delete(product_id)
    return Envelope[None](status_code=200, message="Product deleted")
