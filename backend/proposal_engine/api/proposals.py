"""
Proposal management API endpoints (owner surface).

WHAT: RESTful API for proposal CRUD, templates and the owner side of
the lifecycle.

WHY: Proposals are the contract documents owners send to clients:
1. Formalize scope (sections) and pricing (line items, discount, tax)
2. Track the client's progress (sent, viewed, accepted ...)
3. Show whether signed content was changed afterwards

HOW: FastAPI router with:
- Account-scoped queries (multi-tenancy); another account's proposal is
  reported as not found
- All business rules in ProposalService; handlers only translate
- Specific error codes (owners may see why an operation failed)
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status

from proposal_engine.core.config import settings
from proposal_engine.core.deps import Owner, get_current_owner, get_proposal_service
from proposal_engine.models.proposal import Proposal, ProposalStatus
from proposal_engine.schemas.proposal import (
    FromTemplateRequest,
    PricingTotalsResponse,
    ProposalCreate,
    ProposalListResponse,
    ProposalResponse,
    ProposalStats,
    ProposalStatusUpdate,
    ProposalUpdate,
    SaveAsTemplateRequest,
    SignatureResponse,
)
from proposal_engine.services.integrity import IntegrityStatus
from proposal_engine.services.lifecycle import can_sign, is_editable
from proposal_engine.services.pricing import totals_for_proposal
from proposal_engine.services.proposal_service import ProposalService


router = APIRouter(prefix="/proposals", tags=["proposals"])


async def _proposal_to_response(service: ProposalService, proposal: Proposal) -> ProposalResponse:
    """
    Convert a Proposal model to ProposalResponse.

    WHY: Totals, the formatted number and the integrity status are
    derived on every read, never stored.
    """
    signature = proposal.signature
    return ProposalResponse(
        id=proposal.id,
        token=proposal.token,
        account_id=proposal.account_id,
        is_template=proposal.is_template,
        template_name=proposal.template_name,
        title=proposal.title,
        proposal_date=proposal.proposal_date,
        expiration_date=proposal.expiration_date,
        client_first_name=proposal.client_first_name,
        client_last_name=proposal.client_last_name,
        client_email=proposal.client_email,
        client_company=proposal.client_company,
        contact_id=proposal.contact_id,
        business_name=proposal.business_name,
        business_email=proposal.business_email,
        business_phone=proposal.business_phone,
        business_address=proposal.business_address,
        custom_sections=proposal.custom_sections or [],
        line_items=proposal.line_items or [],
        terms_content=proposal.terms_content,
        show_pricing=proposal.show_pricing,
        show_terms=proposal.show_terms,
        show_sow_number=proposal.show_sow_number,
        require_signature=proposal.require_signature,
        pricing_type=proposal.pricing_type,
        discount_type=proposal.discount_type,
        discount_value=float(proposal.discount_value or 0),
        tax_rate=float(proposal.tax_rate or 0),
        totals=PricingTotalsResponse.from_totals(totals_for_proposal(proposal)),
        sow_number=proposal.sow_number,
        formatted_sow_number=await service.formatted_sow_number(proposal),
        status=proposal.status,
        sent_at=proposal.sent_at,
        viewed_at=proposal.viewed_at,
        accepted_at=proposal.accepted_at,
        declined_at=proposal.declined_at,
        created_at=proposal.created_at,
        updated_at=proposal.updated_at,
        signature=SignatureResponse.model_validate(signature) if signature else None,
        integrity_status=service.integrity_status(proposal) if signature else None,
        is_editable=is_editable(proposal.status),
        can_sign=(
            not proposal.is_template
            and can_sign(proposal.status, proposal.require_signature, signature is not None)
        ),
        public_url=(
            None if proposal.is_template
            else f"{settings.public_proposal_base_url}/{proposal.token}"
        ),
    )


@router.post(
    "",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create proposal",
    description="Create a draft proposal (numbered) or a template (never numbered)",
)
async def create_proposal(
    data: ProposalCreate,
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    """
    Create a new proposal.

    Raises:
        InvalidPrefixError (400): If sow_prefix is not 1-10 digits
        SowNumberAllocationError (503): If numbering kept colliding
    """
    proposal = await service.create_proposal(owner.account_id, data)
    return await _proposal_to_response(service, proposal)


@router.get(
    "",
    response_model=ProposalListResponse,
    status_code=status.HTTP_200_OK,
    summary="List proposals",
)
async def list_proposals(
    skip: int = Query(default=0, ge=0, description="Number of items to skip"),
    limit: int = Query(default=20, ge=1, le=100, description="Maximum items to return"),
    status_filter: Optional[ProposalStatus] = Query(
        default=None,
        alias="status",
        description="Filter by proposal status",
    ),
    is_template: Optional[bool] = Query(
        default=None,
        description="true for templates, false for proposals, omit for both",
    ),
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> ProposalListResponse:
    proposals, total = await service.list_proposals(
        owner.account_id,
        is_template=is_template,
        status=status_filter,
        skip=skip,
        limit=limit,
    )
    return ProposalListResponse(
        items=[await _proposal_to_response(service, p) for p in proposals],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/stats",
    response_model=ProposalStats,
    status_code=status.HTTP_200_OK,
    summary="Get proposal statistics",
)
async def get_proposal_stats(
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> ProposalStats:
    return ProposalStats(**await service.get_stats(owner.account_id))


@router.post(
    "/from-template/{template_id}",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create proposal from template",
)
async def create_from_template(
    template_id: int,
    data: Optional[FromTemplateRequest] = None,
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    proposal = await service.create_from_template(owner.account_id, template_id, data)
    return await _proposal_to_response(service, proposal)


@router.get(
    "/{proposal_id}",
    response_model=ProposalResponse,
    status_code=status.HTTP_200_OK,
    summary="Get proposal",
)
async def get_proposal(
    proposal_id: int,
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    proposal = await service.get_proposal(owner.account_id, proposal_id)
    return await _proposal_to_response(service, proposal)


@router.put(
    "/{proposal_id}",
    response_model=ProposalResponse,
    status_code=status.HTTP_200_OK,
    summary="Update proposal",
    description="Edit content while the proposal is draft, sent, viewed or on hold",
)
async def update_proposal(
    proposal_id: int,
    data: ProposalUpdate,
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    """
    Update a proposal.

    Raises:
        ProposalNotFoundError (404): If not found in the owner's account
        EditNotAllowedError (409): If accepted, declined or expired
    """
    proposal = await service.update_proposal(owner.account_id, proposal_id, data)
    return await _proposal_to_response(service, proposal)


@router.delete(
    "/{proposal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete proposal",
    description="Delete an unsigned draft or a template",
)
async def delete_proposal(
    proposal_id: int,
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> Response:
    await service.delete_proposal(owner.account_id, proposal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{proposal_id}/send",
    response_model=ProposalResponse,
    status_code=status.HTTP_200_OK,
    summary="Send proposal",
)
async def send_proposal(
    proposal_id: int,
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    proposal = await service.send_proposal(owner.account_id, proposal_id)
    return await _proposal_to_response(service, proposal)


@router.post(
    "/{proposal_id}/status",
    response_model=ProposalResponse,
    status_code=status.HTTP_200_OK,
    summary="Change proposal status",
    description="Set draft, sent, on_hold, accepted or declined (viewed and expired are system-only)",
)
async def change_status(
    proposal_id: int,
    data: ProposalStatusUpdate,
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    """
    Raises:
        InvalidTransitionError (409): For system-only targets or terminal proposals
    """
    proposal = await service.set_status(owner.account_id, proposal_id, data.status)
    return await _proposal_to_response(service, proposal)


@router.post(
    "/{proposal_id}/decline",
    response_model=ProposalResponse,
    status_code=status.HTTP_200_OK,
    summary="Decline proposal on the client's behalf",
)
async def decline_proposal(
    proposal_id: int,
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    proposal = await service.decline_as_owner(owner.account_id, proposal_id)
    return await _proposal_to_response(service, proposal)


@router.get(
    "/{proposal_id}/integrity",
    status_code=status.HTTP_200_OK,
    summary="Check signed content integrity",
    description="verified, modified (changed after signing) or unknown",
)
async def check_integrity(
    proposal_id: int,
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> dict:
    result: IntegrityStatus = await service.verify_integrity(owner.account_id, proposal_id)
    return {"proposal_id": proposal_id, "integrity_status": result.value}


@router.post(
    "/{proposal_id}/save-as-template",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save proposal as template",
)
async def save_as_template(
    proposal_id: int,
    data: SaveAsTemplateRequest,
    owner: Owner = Depends(get_current_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    template = await service.save_as_template(owner.account_id, proposal_id, data.template_name)
    return await _proposal_to_response(service, template)
