"""API endpoints for ticket management."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_audit_recorder,
    get_broadcaster,
    get_current_context,
    get_db_session,
    get_notifier,
    require,
)
from app.exceptions import Forbidden
from app.models.audit import AuditEventType
from app.models.ticket import Ticket, TicketPriority, TicketStatus
from app.schemas.ticket import (
    AssignTicketRequest,
    EscalateTicketRequest,
    EscalationCandidate,
    EscalationOptions,
    TicketCreate,
    TicketListResponse,
    TicketResponse,
    TicketUpdate,
)
from app.services.audit import AuditRecorder, request_meta_from
from app.services.auth_context import AuthContext
from app.services.escalation import (
    ESCALATION_ROLES,
    escalate_ticket,
    escalation_candidates,
)
from app.services.notifications import NotificationSink
from app.services.policy import Operation, require_operation, require_tenant_access
from app.services.realtime import RealtimeBroadcaster
from app.services.routing import (
    assign_ticket_to_agent,
    require_assignable_user,
    route_ticket,
)
from app.services.tenants import get_tenant, is_valid_category
from app.services.tickets import (
    can_view_ticket,
    create_ticket,
    get_ticket,
    list_tickets_for,
    update_ticket,
)

router = APIRouter()


def _ticket_metadata(ticket: Ticket, **extra) -> dict:
    metadata = {"ticketNumber": ticket.ticket_number, **extra}
    if ticket.organization_id is not None:
        metadata["organizationId"] = ticket.organization_id
    return metadata


async def _visible_ticket(db: AsyncSession, ctx: AuthContext, ticket_id: uuid.UUID) -> Ticket:
    ticket = await get_ticket(db, ticket_id)
    if not await can_view_ticket(db, ctx, ticket):
        raise Forbidden("You do not have access to this ticket")
    return ticket


@router.get("", response_model=TicketListResponse, summary="List visible tickets")
async def list_tickets(
    status_filter: Optional[TicketStatus] = Query(None, alias="status"),
    priority: Optional[TicketPriority] = None,
    tenant_id: Optional[uuid.UUID] = None,
    assignee_id: Optional[uuid.UUID] = None,
    ctx: AuthContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
) -> TicketListResponse:
    tickets = await list_tickets_for(
        db,
        ctx,
        status=status_filter,
        priority=priority,
        tenant_id=tenant_id,
        assignee_id=assignee_id,
    )
    return TicketListResponse(tickets=[TicketResponse.model_validate(t) for t in tickets])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=TicketResponse,
    summary="Create a ticket",
)
async def create(
    payload: TicketCreate,
    request: Request,
    ctx: AuthContext = Depends(require(Operation.CREATE_TICKET)),
    db: AsyncSession = Depends(get_db_session),
    notifier: NotificationSink = Depends(get_notifier),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> TicketResponse:
    if payload.assignee_id is not None:
        require_operation(ctx, Operation.ASSIGN_TICKET)

    organization_id = ctx.organization_id
    if payload.tenant_id is not None:
        await require_tenant_access(ctx, payload.tenant_id, db)
        tenant = await get_tenant(db, payload.tenant_id)
        if not is_valid_category(tenant, payload.category):
            raise HTTPException(status_code=400, detail="Invalid category")
        organization_id = tenant.organization_id

    ticket = await create_ticket(
        db,
        subject=payload.subject,
        description=payload.description,
        priority=payload.priority,
        category=payload.category,
        tenant_id=payload.tenant_id,
        organization_id=organization_id,
        requester_id=ctx.user_id,
        requester_email=ctx.email,
        custom_fields=payload.custom_fields,
        assignee_id=payload.assignee_id,
        notifier=notifier,
        broadcaster=broadcaster,
    )
    await recorder.record(
        AuditEventType.TICKET_CREATED,
        "ticket",
        ticket.id,
        ctx.user_id,
        ctx.email,
        f"Ticket {ticket.ticket_number} created",
        _ticket_metadata(ticket, assigneeId=ticket.assignee_id),
        request_meta_from(request),
    )
    return TicketResponse.model_validate(ticket)


@router.get("/{ticket_id}", response_model=TicketResponse, summary="Get a ticket")
async def get(
    ticket_id: uuid.UUID,
    ctx: AuthContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
) -> TicketResponse:
    return TicketResponse.model_validate(await _visible_ticket(db, ctx, ticket_id))


@router.patch("/{ticket_id}", response_model=TicketResponse, summary="Update a ticket")
async def update(
    ticket_id: uuid.UUID,
    payload: TicketUpdate,
    request: Request,
    ctx: AuthContext = Depends(require(Operation.UPDATE_TICKET)),
    db: AsyncSession = Depends(get_db_session),
    notifier: NotificationSink = Depends(get_notifier),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> TicketResponse:
    changes = payload.model_dump(exclude_unset=True)
    if "assignee_id" in changes:
        require_operation(ctx, Operation.ASSIGN_TICKET)

    ticket = await _visible_ticket(db, ctx, ticket_id)
    ticket, diff = await update_ticket(db, ticket.id, changes, notifier, broadcaster)
    if diff:
        await recorder.record(
            AuditEventType.TICKET_UPDATED,
            "ticket",
            ticket.id,
            ctx.user_id,
            ctx.email,
            f"Ticket {ticket.ticket_number} updated",
            _ticket_metadata(ticket, changes=diff),
            request_meta_from(request),
        )
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/assign", response_model=TicketResponse, summary="Assign a ticket")
async def assign(
    ticket_id: uuid.UUID,
    payload: AssignTicketRequest,
    request: Request,
    ctx: AuthContext = Depends(require(Operation.ASSIGN_TICKET)),
    db: AsyncSession = Depends(get_db_session),
    notifier: NotificationSink = Depends(get_notifier),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> TicketResponse:
    ticket = await _visible_ticket(db, ctx, ticket_id)
    agent = await require_assignable_user(db, payload.agent_id)
    ticket = await assign_ticket_to_agent(db, ticket.id, agent.id, notifier, broadcaster)
    await recorder.record(
        AuditEventType.TICKET_ASSIGNED,
        "ticket",
        ticket.id,
        ctx.user_id,
        ctx.email,
        f"Ticket {ticket.ticket_number} assigned to {agent.email}",
        _ticket_metadata(ticket, assigneeId=agent.id),
        request_meta_from(request),
    )
    return TicketResponse.model_validate(ticket)


@router.post(
    "/{ticket_id}/route",
    response_model=TicketResponse,
    summary="Route a ticket to the least loaded eligible agent",
)
async def route(
    ticket_id: uuid.UUID,
    request: Request,
    ctx: AuthContext = Depends(require(Operation.ASSIGN_TICKET)),
    db: AsyncSession = Depends(get_db_session),
    notifier: NotificationSink = Depends(get_notifier),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> TicketResponse:
    ticket = await _visible_ticket(db, ctx, ticket_id)
    assignee_id = await route_ticket(db, ticket.tenant_id, ticket.category)
    if assignee_id is None:
        return TicketResponse.model_validate(ticket)

    ticket = await assign_ticket_to_agent(db, ticket.id, assignee_id, notifier, broadcaster)
    await recorder.record(
        AuditEventType.TICKET_ASSIGNED,
        "ticket",
        ticket.id,
        ctx.user_id,
        ctx.email,
        f"Ticket {ticket.ticket_number} routed to {assignee_id}",
        _ticket_metadata(ticket, assigneeId=assignee_id, routed=True),
        request_meta_from(request),
    )
    return TicketResponse.model_validate(ticket)


@router.get(
    "/{ticket_id}/escalate",
    response_model=EscalationOptions,
    summary="List roles and users a ticket can be escalated to",
)
async def escalation_options(
    ticket_id: uuid.UUID,
    ctx: AuthContext = Depends(require(Operation.ESCALATE_TICKET)),
    db: AsyncSession = Depends(get_db_session),
) -> EscalationOptions:
    ticket = await _visible_ticket(db, ctx, ticket_id)
    candidates = await escalation_candidates(db, ticket)
    return EscalationOptions(
        available_roles=list(ESCALATION_ROLES),
        available_users=[EscalationCandidate.model_validate(user) for user in candidates],
    )


@router.post("/{ticket_id}/escalate", response_model=TicketResponse, summary="Escalate a ticket")
async def escalate(
    ticket_id: uuid.UUID,
    payload: EscalateTicketRequest,
    request: Request,
    ctx: AuthContext = Depends(require(Operation.ESCALATE_TICKET)),
    db: AsyncSession = Depends(get_db_session),
    notifier: NotificationSink = Depends(get_notifier),
    recorder: AuditRecorder = Depends(get_audit_recorder),
) -> TicketResponse:
    ticket = await _visible_ticket(db, ctx, ticket_id)
    ticket = await escalate_ticket(
        db,
        ticket.id,
        ctx.user_id,
        notifier,
        to_user_id=payload.escalated_to_user_id,
        to_role=payload.escalated_to_role,
        note=payload.escalation_note,
    )
    target = payload.escalated_to_user_id or payload.escalated_to_role.value
    await recorder.record(
        AuditEventType.TICKET_ESCALATED,
        "ticket",
        ticket.id,
        ctx.user_id,
        ctx.email,
        f"Ticket {ticket.ticket_number} escalated to {target}",
        _ticket_metadata(
            ticket,
            escalatedToUserId=payload.escalated_to_user_id,
            escalatedToRole=payload.escalated_to_role,
            escalationNote=payload.escalation_note,
        ),
        request_meta_from(request),
    )
    return TicketResponse.model_validate(ticket)
