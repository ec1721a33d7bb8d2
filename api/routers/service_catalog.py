"""Service catalog endpoints."""

from fastapi import APIRouter, Depends

from routers.deps import catalog as get_catalog
from schemas import ServiceResponse
from services.catalog import Catalog, ServiceInfo
from services.money import cents_to_dollars

router = APIRouter()


def service_response(info: ServiceInfo) -> ServiceResponse:
    return ServiceResponse(
        id=info.id,
        name=info.name,
        description=info.description,
        base_price=cents_to_dollars(info.base_price_cents),
        kind=info.kind.value,
    )


@router.get("/", response_model=list[ServiceResponse])
async def list_services(catalog: Catalog = Depends(get_catalog)):
    """Active services in display order."""
    return [service_response(s) for s in catalog.ordered_services()]


@router.get("/{name}", response_model=ServiceResponse)
async def get_service(name: str, catalog: Catalog = Depends(get_catalog)):
    """Look up one active service by its catalog name, e.g. `standard_bag`."""
    return service_response(catalog.service_by_name(name))
