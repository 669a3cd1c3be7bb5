"""
Postal code lookup used by the address fields of the forms.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..exceptions import ServiceUnavailableException
from ..services import postal_service

router = APIRouter(prefix="/api/postal", tags=["Postal"])


@router.get("/{postal_code}")
async def lookup_postal_code(postal_code: str) -> JSONResponse:
    try:
        address = await postal_service.lookup(postal_code)
    except ServiceUnavailableException as error:
        return JSONResponse(status_code=503, content={"found": False, "message": error.message})

    if address is None:
        return JSONResponse(status_code=404, content={"found": False})
    return JSONResponse(
        {
            "found": True,
            "prefecture": address.prefecture,
            "city": address.city,
            "town": address.town,
            "address": address.full,
        }
    )
