"""
Mount point for the quantification module (/q/quantify).

Quantification jobs are served by the raptor workers; this router only
reports that the module is reachable for an authenticated caller.
"""

from fastapi import APIRouter, Depends

from auth.guards import verify_jwt_token

router = APIRouter(prefix="/quantify", tags=["quantify"])


@router.get("/")
async def quantify_status(user: dict = Depends(verify_jwt_token)):
    return {
        "module": "quantify",
        "status": "available",
        "user": user.get("sub"),
    }
