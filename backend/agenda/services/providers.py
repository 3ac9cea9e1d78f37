from __future__ import annotations

import uuid
from typing import Tuple, Union

from agenda.core.errors import NotAuthorized, NotFound
from agenda.models import Provider, Tenant
from agenda.services.db_service import DBService


async def load_provider_for_tenant(
    db: DBService, tenant_id: uuid.UUID, provider_id: Union[str, uuid.UUID]
) -> Tuple[Provider, Tenant]:
    """Provider plus its tenant; rejects callers from another tenant."""
    provider = await db.get_provider(provider_id)
    if provider is None:
        raise NotFound("Provider not found")
    if provider.tenant_id != tenant_id:
        raise NotAuthorized("Provider belongs to another tenant")
    tenant = await db.get_tenant(provider.tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found")
    return provider, tenant
