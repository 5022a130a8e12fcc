"""
api/routes/categories.py -- Category routes. Products reference categories by id.

Routes:
  POST /categories  -- create category (admin); 409 on a duplicate name
  GET  /categories  -- list categories ordered by name
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import CategoryCreate, CategoryOut, Envelope
from auth.dependencies import require_admin
from catalog.service import ProductService

router = APIRouter()


@router.post("/categories", response_model=Envelope[CategoryOut], dependencies=[Depends(require_admin)])
@limiter.limit("30/minute")
def create_category(request: Request, body: CategoryCreate) -> Envelope[CategoryOut]:
    service: ProductService = request.app.state.product_service
    category = service.create_category(body.name, body.description)
    return Envelope[CategoryOut](status_code=200, message="Category created", data=CategoryOut.from_domain(category))


@router.get("/categories", response_model=Envelope[list[CategoryOut]])
@limiter.limit("60/minute")
def list_categories(request: Request) -> Envelope[list[CategoryOut]]:
    service: ProductService = request.app.state.product_service
    return Envelope[list[CategoryOut]](
        status_code=200,
        message="success",
        data=[CategoryOut.from_domain(c) for c in service.list_categories()],
    )
