from __future__ import annotations

from fastapi import APIRouter, Depends

from eventdesk.api.dependencies.auth import require_staff_capability
from eventdesk.api.dependencies.database import require_database
from eventdesk.core.errors import SchemaNotReady, StorageError
from eventdesk.core.logging import log_error
from eventdesk.core.schema import classify_missing_schema
from eventdesk.repositories import tenant_members as tenant_members_repo
from eventdesk.schemas.auth import TenantListResponse, TenantModel
from eventdesk.security.context import AuthContext
from eventdesk.services.authorization import Capability

router = APIRouter(prefix="/api/admin/tenants", tags=["Tenants"])


@router.get("", response_model=TenantListResponse, summary="List every tenant")
async def list_tenants(
    _: AuthContext = Depends(require_staff_capability(Capability.VIEW_ALL_TENANTS)),
    __: None = Depends(require_database),
) -> TenantListResponse:
    try:
        tenants = await tenant_members_repo.list_tenants()
    except Exception as exc:
        missing = classify_missing_schema(exc)
        if missing is not None and missing.migration:
            raise SchemaNotReady(missing.migration) from exc
        log_error("Failed to list tenants", error=repr(exc))
        raise StorageError() from exc
    return TenantListResponse(tenants=[TenantModel.model_validate(tenant) for tenant in tenants])
