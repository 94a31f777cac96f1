"""
Public proposal API endpoints (recipient surface).

WHAT: Token-addressed read, sign and decline for the client who received
the proposal link.

WHY: Recipients have no account. The token in the link is their only
credential, so:
1. Proposals are addressed by token, never by internal id
2. Hidden pricing, terms and SOW number are left out of the payload
3. Failures carry a generic message; recipients never learn whether a
   failure was internal or a validation problem

HOW: Every AppException is logged with its real cause and re-raised as
PublicRequestError. Not-found (404) and conflict (409, e.g. already
signed) keep their status code so the page can react; everything else
is reported as 400.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, status

from proposal_engine.core.deps import Owner, get_optional_owner, get_proposal_service
from proposal_engine.core.exceptions import AppException, PublicRequestError
from proposal_engine.models.proposal import Proposal
from proposal_engine.schemas.proposal import (
    PricingTotalsResponse,
    PublicProposalResponse,
    SignatureSummary,
    SignRequest,
    StyleConfig,
)
from proposal_engine.services.lifecycle import can_sign
from proposal_engine.services.pricing import totals_for_proposal
from proposal_engine.services.proposal_service import ProposalService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public/proposals", tags=["public"])

PASSTHROUGH_STATUS_CODES = {404, 409}


def _public_error(exc: AppException, token: str) -> PublicRequestError:
    logger.info(
        f"Public proposal request failed for token {token[:6]}...: "
        f"{exc.__class__.__name__}: {exc.message}"
    )
    status_code = exc.status_code if exc.status_code in PASSTHROUGH_STATUS_CODES else 400
    return PublicRequestError(status_code=status_code)


async def _public_response(
    service: ProposalService,
    proposal: Proposal,
    is_owner_preview: bool,
) -> PublicProposalResponse:
    style_settings = await service.account_style(proposal.account_id)
    signature = proposal.signature

    return PublicProposalResponse(
        token=proposal.token,
        title=proposal.title,
        proposal_date=proposal.proposal_date,
        expiration_date=proposal.expiration_date,
        status=proposal.status,
        client_first_name=proposal.client_first_name,
        client_last_name=proposal.client_last_name,
        client_email=proposal.client_email,
        client_company=proposal.client_company,
        business_name=proposal.business_name,
        business_email=proposal.business_email,
        business_phone=proposal.business_phone,
        business_address=proposal.business_address,
        custom_sections=proposal.custom_sections or [],
        line_items=(proposal.line_items or []) if proposal.show_pricing else None,
        totals=(
            PricingTotalsResponse.from_totals(totals_for_proposal(proposal))
            if proposal.show_pricing
            else None
        ),
        pricing_type=proposal.pricing_type,
        terms_content=proposal.terms_content if proposal.show_terms else None,
        formatted_sow_number=(
            await service.formatted_sow_number(proposal) if proposal.show_sow_number else None
        ),
        show_pricing=proposal.show_pricing,
        show_terms=proposal.show_terms,
        show_sow_number=proposal.show_sow_number,
        require_signature=proposal.require_signature,
        signature=SignatureSummary.model_validate(signature) if signature else None,
        style=StyleConfig.model_validate(style_settings or {}),
        can_sign=can_sign(proposal.status, proposal.require_signature, signature is not None),
        is_owner_preview=is_owner_preview,
    )


@router.get(
    "/{token}",
    response_model=PublicProposalResponse,
    status_code=status.HTTP_200_OK,
    summary="View proposal",
    description="Recipient view; the first non-owner view marks a sent proposal as viewed",
)
async def view_proposal(
    token: str,
    owner: Optional[Owner] = Depends(get_optional_owner),
    service: ProposalService = Depends(get_proposal_service),
) -> PublicProposalResponse:
    try:
        proposal, is_owner = await service.record_public_view(
            token, owner.account_id if owner else None
        )
        return await _public_response(service, proposal, is_owner)
    except AppException as e:
        raise _public_error(e, token) from e


@router.post(
    "/{token}/sign",
    response_model=PublicProposalResponse,
    status_code=status.HTTP_200_OK,
    summary="Sign proposal",
)
async def sign_proposal(
    token: str,
    data: SignRequest,
    service: ProposalService = Depends(get_proposal_service),
) -> PublicProposalResponse:
    try:
        await service.sign_proposal(
            token,
            signer_name=data.signer_name,
            signer_email=data.signer_email,
            signature_image=data.signature_image,
            accepted_terms=data.accepted_terms,
        )
        proposal, _ = await service.record_public_view(token)
        return await _public_response(service, proposal, False)
    except AppException as e:
        raise _public_error(e, token) from e


@router.post(
    "/{token}/decline",
    response_model=PublicProposalResponse,
    status_code=status.HTTP_200_OK,
    summary="Decline proposal",
)
async def decline_proposal(
    token: str,
    service: ProposalService = Depends(get_proposal_service),
) -> PublicProposalResponse:
    try:
        proposal = await service.decline_as_recipient(token)
        return await _public_response(service, proposal, False)
    except AppException as e:
        raise _public_error(e, token) from e
