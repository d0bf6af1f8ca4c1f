"""API endpoints for anonymous portal sessions."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db_session, require_public_claims
from app.schemas.auth import PublicTokenRequest, PublicTokenResponse
from app.schemas.ticket import TicketListResponse, TicketResponse
from app.services.tickets import list_public_tickets
from app.utils.jwt_manager import PublicClaims, sign_public_token

router = APIRouter()


@router.post("/token", response_model=PublicTokenResponse, summary="Start an anonymous session")
async def create_public_token(
    payload: Optional[PublicTokenRequest] = None,
) -> PublicTokenResponse:
    tenant_id = payload.tenant_id if payload else None
    issued = sign_public_token(tenant_id=str(tenant_id) if tenant_id else None)
    return PublicTokenResponse(token=issued.token, public_id=issued.public_id)


@router.get("/tickets", response_model=TicketListResponse, summary="Tickets of an anonymous session")
async def get_public_tickets(
    claims: PublicClaims = Depends(require_public_claims),
    db: AsyncSession = Depends(get_db_session),
) -> TicketListResponse:
    tickets = await list_public_tickets(db, claims.public_id)
    return TicketListResponse(
        tickets=[TicketResponse.model_validate(t) for t in tickets]
    )
