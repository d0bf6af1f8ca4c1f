"""API endpoints for tenant portals."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_audit_recorder,
    get_auth_context,
    get_broadcaster,
    get_db_session,
    get_notifier,
    get_public_claims,
)
from app.exceptions import Unauthorized
from app.models.audit import AuditEventType
from app.schemas.tenant import TenantResponse
from app.schemas.ticket import (
    PublicTicketCreated,
    TenantTicketCreate,
    TicketListResponse,
    TicketResponse,
)
from app.services.audit import AuditRecorder, request_meta_from
from app.services.auth_context import AuthContext
from app.services.notifications import NotificationSink
from app.services.realtime import RealtimeBroadcaster
from app.services.tenants import get_tenant_by_slug, is_valid_category
from app.services.tickets import create_ticket, list_public_tickets, list_tickets_for
from app.utils.jwt_manager import PublicClaims, sign_public_token

router = APIRouter()


@router.get("/{slug}", response_model=TenantResponse, summary="Get a tenant portal")
async def get_tenant(
    slug: str, db: AsyncSession = Depends(get_db_session)
) -> TenantResponse:
    return TenantResponse.from_tenant(await get_tenant_by_slug(db, slug))


@router.get("/{slug}/tickets", response_model=TicketListResponse, summary="Tickets filed in a tenant")
async def list_tenant_tickets(
    slug: str,
    ctx: Optional[AuthContext] = Depends(get_auth_context),
    claims: Optional[PublicClaims] = Depends(get_public_claims),
    db: AsyncSession = Depends(get_db_session),
) -> TicketListResponse:
    """
    Signed-in users see the tenant's tickets visible to them; anonymous callers
    see the tickets of their public session, or nothing.
    """
    tenant = await get_tenant_by_slug(db, slug)
    if ctx is not None:
        tickets = await list_tickets_for(db, ctx, tenant_id=tenant.id)
    elif claims is not None:
        tickets = await list_public_tickets(db, claims.public_id, tenant_id=tenant.id)
    else:
        tickets = []
    return TicketListResponse(tickets=[TicketResponse.model_validate(t) for t in tickets])


@router.post(
    "/{slug}/tickets",
    status_code=status.HTTP_201_CREATED,
    response_model=PublicTicketCreated,
    summary="Submit a ticket to a tenant",
)
async def submit_tenant_ticket(
    slug: str,
    payload: TenantTicketCreate,
    request: Request,
    ctx: Optional[AuthContext] = Depends(get_auth_context),
    claims: Optional[PublicClaims] = Depends(get_public_claims),
    db: AsyncSession = Depends(get_db_session),
    notifier: NotificationSink = Depends(get_notifier),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> PublicTicketCreated:
    """
    Tenants that require login reject anonymous submissions. Otherwise an
    anonymous ticket is filed under the caller's public session, and a new
    session token is returned when the caller had none.
    """
    tenant = await get_tenant_by_slug(db, slug)
    if tenant.requires_login and ctx is None:
        raise Unauthorized("Login required")
    if not is_valid_category(tenant, payload.category):
        raise HTTPException(status_code=400, detail="Invalid category")

    public_token = None
    public_id = None
    requester_email = payload.requester_email
    if ctx is None:
        if not requester_email:
            raise HTTPException(status_code=400, detail="Requester email is required")
        if claims is not None:
            public_id = claims.public_id
        else:
            issued = sign_public_token(tenant_id=str(tenant.id))
            public_token, public_id = issued.token, issued.public_id
    else:
        requester_email = requester_email or ctx.email

    ticket = await create_ticket(
        db,
        subject=payload.subject,
        description=payload.description,
        priority=payload.priority,
        category=payload.category,
        tenant_id=tenant.id,
        organization_id=tenant.organization_id,
        requester_id=ctx.user_id if ctx else None,
        requester_email=requester_email.lower(),
        requester_name=payload.requester_name,
        public_token_id=public_id,
        custom_fields=payload.custom_fields,
        notifier=notifier,
        broadcaster=broadcaster,
    )

    metadata = {"ticketNumber": ticket.ticket_number, "tenantId": tenant.id}
    if tenant.organization_id is not None:
        metadata["organizationId"] = tenant.organization_id
    await recorder.record(
        AuditEventType.TICKET_CREATED,
        "ticket",
        ticket.id,
        ctx.user_id if ctx else None,
        requester_email.lower(),
        f"Ticket {ticket.ticket_number} submitted to tenant {tenant.slug}",
        metadata,
        request_meta_from(request),
    )
    return PublicTicketCreated(
        ticket=TicketResponse.model_validate(ticket), public_token=public_token
    )
