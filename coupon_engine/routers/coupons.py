"""Coupon administration, apply and usage endpoints."""

import logging
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from coupon_engine.core.auth import get_current_organization
from coupon_engine.core.database import get_db
from coupon_engine.models.coupon import Coupon, DiscountType
from coupon_engine.models.coupon_usage import CouponUsageRecord
from coupon_engine.models.shared import as_utc
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.repositories.coupon_usage_repository import CouponUsageRepository
from coupon_engine.schemas.coupon import (
    ApplyCouponRequest,
    ApplyCouponResponse,
    CouponAnalyticsResponse,
    CouponCreate,
    CouponResponse,
    CouponUpdate,
    CouponUsageRecordResponse,
    RecordCouponUsageRequest,
    RecordCouponUsageResponse,
    validate_code_format,
)
from coupon_engine.services.coupon_errors import (
    CouponErrorCode,
    CouponFirstOrderError,
    CouponNotFoundError,
    CouponUsageLimitError,
)
from coupon_engine.services.coupon_service import CouponValidationService
from coupon_engine.services.coupon_usage_service import CouponUsageService

logger = logging.getLogger(__name__)

router = APIRouter()

DUPLICATE_CODE_DETAIL = "Coupon with this code already exists"


def _get_coupon_or_404(repo: CouponRepository, id_or_code: str, organization_id: UUID) -> Coupon:
    coupon = repo.get_by_id_or_code(id_or_code, organization_id)
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


@router.post(
    "/",
    response_model=CouponResponse,
    status_code=201,
    summary="Create coupon",
    responses={
        409: {"description": "Coupon with this code already exists"},
        422: {"description": "Validation error"},
    },
)
async def create_coupon(
    data: CouponCreate,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> Coupon:
    """Create a new coupon."""
    repo = CouponRepository(db)
    if repo.get_by_code(data.code, organization_id):
        raise HTTPException(status_code=409, detail=DUPLICATE_CODE_DETAIL)
    coupon = repo.create(data, organization_id)
    logger.info("Created coupon %s for organization %s", coupon.code, organization_id)
    return coupon


@router.get(
    "/",
    response_model=list[CouponResponse],
    summary="List coupons",
)
async def list_coupons(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    order_by: str | None = Query(default=None),
    search: str | None = Query(default=None),
    is_active: bool | None = None,
    discount_type: DiscountType | None = None,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> list[Coupon]:
    """List coupons with optional search and filters."""
    repo = CouponRepository(db)
    filters = {"search": search, "is_active": is_active, "discount_type": discount_type}
    response.headers["X-Total-Count"] = str(repo.count(organization_id, **filters))
    return repo.get_all(organization_id, skip=skip, limit=limit, order_by=order_by, **filters)


@router.post(
    "/apply",
    response_model=ApplyCouponResponse,
    summary="Validate a coupon code against a cart",
    responses={500: {"description": "Coupon store unavailable"}},
)
async def apply_coupon(
    data: ApplyCouponRequest,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> ApplyCouponResponse | JSONResponse:
    """Validate a coupon for a cart and return the discount it is worth.

    Declined coupons are a 200 with ``success=false`` and an ``error_code``.
    """
    result = CouponValidationService(db).apply_coupon(organization_id, data)
    if result.error_code == CouponErrorCode.SERVER_ERROR.value:
        return JSONResponse(status_code=500, content=result.model_dump(mode="json"))
    return result


@router.post(
    "/usage",
    response_model=RecordCouponUsageResponse,
    status_code=201,
    summary="Record coupon usage for a finalized order",
    responses={
        200: {"description": "Usage already recorded for this order"},
        404: {"description": "Coupon not found"},
        409: {"description": "Usage limit reached or not a first order"},
    },
)
async def record_coupon_usage(
    data: RecordCouponUsageRequest,
    response: Response,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> RecordCouponUsageResponse:
    """Record a redemption. Safe to retry: the same order is only counted once."""
    service = CouponUsageService(db)
    try:
        outcome = service.record_usage(organization_id, data)
    except CouponNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from None
    except (CouponUsageLimitError, CouponFirstOrderError) as exc:
        raise HTTPException(
            status_code=409, detail={"error_code": exc.error_code.value, "message": str(exc)}
        ) from None

    if outcome.replayed:
        response.status_code = 200
    return RecordCouponUsageResponse(
        success=True,
        replayed=outcome.replayed,
        usage_record=CouponUsageRecordResponse.model_validate(outcome.record),
    )


@router.get(
    "/{id_or_code}",
    response_model=CouponResponse,
    summary="Get coupon",
    responses={404: {"description": "Coupon not found"}},
)
async def get_coupon(
    id_or_code: str,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> Coupon:
    """Get a coupon by ID or code."""
    return _get_coupon_or_404(CouponRepository(db), id_or_code, organization_id)


@router.put(
    "/{id_or_code}",
    response_model=CouponResponse,
    summary="Update coupon",
    responses={
        404: {"description": "Coupon not found"},
        409: {"description": "Coupon with this code already exists"},
        422: {"description": "Validation error"},
    },
)
async def update_coupon(
    id_or_code: str,
    data: CouponUpdate,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> Coupon:
    """Update a coupon by ID or code."""
    repo = CouponRepository(db)
    coupon = _get_coupon_or_404(repo, id_or_code, organization_id)

    if data.code and data.code != coupon.code:
        other = repo.get_by_code(data.code, organization_id)
        if other and other.id != coupon.id:
            raise HTTPException(status_code=409, detail=DUPLICATE_CODE_DETAIL)

    fields = data.model_fields_set
    start_at = as_utc(data.start_at if "start_at" in fields else coupon.start_at)
    expires_at = as_utc(data.expires_at if "expires_at" in fields else coupon.expires_at)
    if start_at and expires_at and expires_at <= start_at:
        raise HTTPException(status_code=422, detail="expires_at must be after start_at")

    percentage_types = (DiscountType.PERCENTAGE.value, DiscountType.FIRST_ORDER.value)
    if (
        data.discount_value is not None
        and coupon.discount_type in percentage_types
        and data.discount_value > 100
    ):
        raise HTTPException(
            status_code=422, detail="Percentage discount must be between 0 and 100"
        )

    if "buy_x_get_y" in fields:
        is_buy_x_get_y = coupon.discount_type == DiscountType.BUY_X_GET_Y.value
        if is_buy_x_get_y and data.buy_x_get_y is None:
            raise HTTPException(
                status_code=422, detail="buy_x_get_y is required for discount_type 'buy_x_get_y'"
            )
        if not is_buy_x_get_y and data.buy_x_get_y is not None:
            raise HTTPException(
                status_code=422,
                detail="buy_x_get_y is only allowed for discount_type 'buy_x_get_y'",
            )

    coupon = repo.update(coupon, data)
    logger.info("Updated coupon %s for organization %s", coupon.code, organization_id)
    return coupon


@router.delete(
    "/{id_or_code}",
    status_code=204,
    summary="Delete coupon",
    responses={
        404: {"description": "Coupon not found"},
        409: {"description": "Coupon has recorded usage"},
    },
)
async def delete_coupon(
    id_or_code: str,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> None:
    """Delete a coupon that has never been redeemed."""
    repo = CouponRepository(db)
    coupon = _get_coupon_or_404(repo, id_or_code, organization_id)
    if CouponUsageRepository(db).count_by_coupon_id(organization_id, coupon.id):  # type: ignore[arg-type]
        raise HTTPException(
            status_code=409, detail="Coupon has recorded usage; deactivate it instead"
        )
    repo.delete(coupon)
    logger.info("Deleted coupon %s for organization %s", id_or_code, organization_id)


@router.post(
    "/{id_or_code}/duplicate",
    response_model=CouponResponse,
    status_code=201,
    summary="Duplicate coupon",
    responses={
        404: {"description": "Coupon not found"},
        409: {"description": "Duplicate code already exists"},
        422: {"description": "Copy would not be a valid coupon"},
    },
)
async def duplicate_coupon(
    id_or_code: str,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> Coupon:
    """Create an inactive copy of a coupon under the code ``<CODE>_COPY``."""
    repo = CouponRepository(db)
    coupon = _get_coupon_or_404(repo, id_or_code, organization_id)

    new_code = f"{coupon.code}_COPY"
    try:
        validate_code_format(new_code)
    except ValueError as exc:
        raise HTTPException(
            status_code=422, detail=f"Cannot duplicate coupon as '{new_code}': {exc}"
        ) from None
    if repo.get_by_code(new_code, organization_id):
        raise HTTPException(
            status_code=409, detail=f"Coupon with code '{new_code}' already exists"
        )

    source = CouponResponse.model_validate(coupon).model_dump(
        include=set(CouponCreate.model_fields) - {"code", "name", "is_active"}
    )
    try:
        create_data = CouponCreate(
            **source,
            code=new_code,
            name=f"{coupon.name} (Copy)",
            is_active=False,
        )
    except ValidationError as exc:
        detail = "; ".join(error["msg"] for error in exc.errors())
        raise HTTPException(status_code=422, detail=detail) from None
    return repo.create(create_data, organization_id)


@router.get(
    "/{id_or_code}/usage",
    response_model=list[CouponUsageRecordResponse],
    summary="List coupon usage records",
    responses={404: {"description": "Coupon not found"}},
)
async def list_coupon_usage(
    id_or_code: str,
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=1000),
    order_by: str | None = Query(default=None),
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> list[CouponUsageRecord]:
    """List the redemptions of a coupon, newest first."""
    coupon = _get_coupon_or_404(CouponRepository(db), id_or_code, organization_id)
    usage_repo = CouponUsageRepository(db)
    coupon_id: UUID = coupon.id  # type: ignore[assignment]
    response.headers["X-Total-Count"] = str(usage_repo.count_by_coupon_id(organization_id, coupon_id))
    return usage_repo.get_all_by_coupon_id(
        organization_id, coupon_id, skip=skip, limit=limit, order_by=order_by
    )


@router.get(
    "/{id_or_code}/analytics",
    response_model=CouponAnalyticsResponse,
    summary="Get coupon analytics",
    responses={404: {"description": "Coupon not found"}},
)
async def get_coupon_analytics(
    id_or_code: str,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> CouponAnalyticsResponse:
    """Get usage analytics for a coupon."""
    coupon = _get_coupon_or_404(CouponRepository(db), id_or_code, organization_id)
    usage_repo = CouponUsageRepository(db)
    coupon_id: UUID = coupon.id  # type: ignore[assignment]

    used_count = int(coupon.used_count or 0)
    total_revenue = Decimal(str(coupon.total_revenue or 0))
    average = total_revenue / used_count if used_count else Decimal("0")

    remaining_uses: int | None = None
    if coupon.total_uses_limit is not None:
        remaining_uses = max(int(coupon.total_uses_limit) - used_count, 0)

    return CouponAnalyticsResponse(
        times_used=used_count,
        total_discount_applied=usage_repo.sum_discount_by_coupon_id(organization_id, coupon_id),
        total_revenue=total_revenue,
        average_order_value=average.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        unique_customers=usage_repo.count_distinct_customers(organization_id, coupon_id),
        remaining_uses=remaining_uses,
    )
