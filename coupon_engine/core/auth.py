from uuid import UUID

from fastapi import HTTPException, Request

from coupon_engine.models.shared import DEFAULT_ORGANIZATION_ID


def get_current_organization(request: Request) -> UUID:
    """Resolve the tenant (organization) a request is scoped to.

    Store resolution and authentication happen upstream; the gateway forwards
    the resolved tenant in the ``X-Organization-Id`` header. Requests without
    the header fall back to the default organization.
    """
    org_id_header = request.headers.get("X-Organization-Id")
    if not org_id_header:
        return DEFAULT_ORGANIZATION_ID

    try:
        return UUID(org_id_header)
    except ValueError:
        raise HTTPException(
            status_code=400, detail="Invalid X-Organization-Id header"
        ) from None
