"""HTTP routes for the orders API.

Routes are kept intentionally small: they validate requests (via Pydantic),
map them to domain values, delegate to the order service stored on
``app.state.order_service`` and render the result. Domain errors propagate
to the handlers in ``gateway.errors``.

Idempotency: an ``Idempotency-Key`` header, when present, takes precedence
over the ``idempotencyKey`` body field. The first create answers 201;
a retry that resolves to an existing order answers 200 with the original
body and an ``Idempotent-Replay: true`` header.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status

from .domain import OrderStatus
from .schemas import CreateOrderDTO, OrderPageDTO, OrderReadDTO, StatusUpdateDTO

router = APIRouter(prefix="/api/orders", tags=["orders"])


def get_order_service(request: Request):
    return request.app.state.order_service


def _render(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


@router.get("/ping")
def ping():
    """Minimal liveness endpoint for the orders module."""
    return {"ok": True}


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_order(
    dto: CreateOrderDTO,
    response: Response,
    service=Depends(get_order_service),
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
):
    """Create an order, or replay the one already created for the same key.

    Returns:
        201 with the order when it was created; 200 with the original order
        and ``Idempotent-Replay: true`` when the request was a duplicate.
    """
    key = idempotency_key or dto.idempotency_key
    order, created = service.create_or_replay(
        dto.customer_id, [i.to_domain() for i in dto.items], key
    )
    if not created:
        response.status_code = status.HTTP_200_OK
        response.headers["Idempotent-Replay"] = "true"
    return _render(OrderReadDTO.from_domain(order))


@router.get("/")
def list_orders(
    service=Depends(get_order_service),
    status_filter: Annotated[Optional[OrderStatus], Query(alias="status")] = None,
    page: Annotated[int, Query(ge=0)] = 0,
    size: Annotated[int, Query(ge=1, le=200)] = 20,
):
    """List orders newest first, optionally filtered by status."""
    result = service.list(status_filter, page, size)
    return _render(OrderPageDTO.from_domain(result))


@router.get("/customer/{customer_id}")
def list_customer_orders(
    customer_id: str,
    service=Depends(get_order_service),
    page: Annotated[int, Query(ge=0)] = 0,
    size: Annotated[int, Query(ge=1, le=200)] = 20,
):
    result = service.list_by_customer(customer_id, page, size)
    return _render(OrderPageDTO.from_domain(result))


@router.get("/{order_id}")
def get_order(order_id: UUID, service=Depends(get_order_service)):
    return _render(OrderReadDTO.from_domain(service.get_by_id(order_id)))


@router.patch("/{order_id}/status")
def update_order_status(order_id: UUID, dto: StatusUpdateDTO, service=Depends(get_order_service)):
    """Advance an order to the next status (PROCESSING -> SHIPPED -> DELIVERED)."""
    return _render(OrderReadDTO.from_domain(service.update_status(order_id, dto.status)))


@router.post("/{order_id}/cancel")
def cancel_order(order_id: UUID, service=Depends(get_order_service)):
    """Cancel a PENDING order. Its status stays PENDING; ``canceled`` becomes true."""
    return _render(OrderReadDTO.from_domain(service.cancel(order_id)))
