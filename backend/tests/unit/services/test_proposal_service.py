"""
Unit tests for ProposalService.

WHAT: Tests the proposal lifecycle against a real (SQLite) session:
creation and numbering, edits, first view, signing, expiry, templates
and deletion.

WHY: This is where the state machine, the conditional writes and the
notifications meet. A regression here lets a signed proposal be edited,
a number be issued twice, or a notification fire for an owner preview.
"""

import pytest
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_engine.core.exceptions import (
    AlreadySignedError,
    BusinessRuleViolation,
    EditNotAllowedError,
    InvalidPrefixError,
    InvalidTransitionError,
    ProposalNotFoundError,
    SignatureImageError,
    SignatureNotAllowedError,
    TermsNotAcceptedError,
)
from proposal_engine.dao.proposal import ProposalDAO
from proposal_engine.models.proposal import ProposalStatus
from proposal_engine.schemas.proposal import FromTemplateRequest, ProposalCreate, ProposalUpdate
from proposal_engine.services.integrity import IntegrityStatus
from proposal_engine.services.proposal_service import ProposalService, normalize_sections
from tests.factories import (
    TINY_PNG_DATA_URL,
    ProposalFactory,
    SignatureFactory,
    SowPrefixFactory,
)


@pytest.fixture
def service(db_session: AsyncSession, notification_service, signature_storage) -> ProposalService:
    return ProposalService(
        db_session,
        notifications=notification_service,
        signature_storage=signature_storage,
    )


def slack_texts(mock_slack):
    return [call.args[0] for call in mock_slack.send_message_safe.await_args_list]


async def sign(service, proposal, accepted_terms=True, image=TINY_PNG_DATA_URL):
    return await service.sign_proposal(
        proposal.token,
        signer_name="Ada Lovelace",
        signer_email="ada@example.com",
        signature_image=image,
        accepted_terms=accepted_terms,
    )


class TestCreateProposal:
    """Draft and template creation."""

    @pytest.mark.asyncio
    async def test_first_proposal_gets_number_one_and_locks_prefix(
        self, service, test_account, sample_proposal_data
    ):
        """
        Test the first numbered proposal of an account.

        WHY: Issuing a number latches the prefix; "031" + 1 displays as 0311.
        """
        proposal = await service.create_proposal(
            test_account.id, ProposalCreate(**sample_proposal_data, sow_prefix="031")
        )

        assert proposal.sow_number == 1
        assert proposal.status == ProposalStatus.DRAFT
        assert await service.formatted_sow_number(proposal) == "0311"
        prefix = await service.numbering.get_prefix(test_account.id)
        assert prefix.locked is True

    @pytest.mark.asyncio
    async def test_numbers_increase_per_account(
        self, service, test_account, other_account, sample_proposal_data
    ):
        first = await service.create_proposal(test_account.id, ProposalCreate(**sample_proposal_data))
        second = await service.create_proposal(test_account.id, ProposalCreate(**sample_proposal_data))
        other = await service.create_proposal(other_account.id, ProposalCreate(**sample_proposal_data))

        assert (first.sow_number, second.sow_number, other.sow_number) == (1, 2, 1)

    @pytest.mark.asyncio
    async def test_snapshots_business_identity(self, service, test_account, sample_proposal_data):
        proposal = await service.create_proposal(test_account.id, ProposalCreate(**sample_proposal_data))

        assert proposal.business_name == "Acme Automation"
        assert proposal.business_email == "hello@acme.test"

    @pytest.mark.asyncio
    async def test_normalizes_content(self, service, test_account, sample_proposal_data):
        proposal = await service.create_proposal(test_account.id, ProposalCreate(**sample_proposal_data))

        assert [s["title"] for s in proposal.custom_sections] == ["Scope", "Timeline"]
        assert all(s["id"] for s in proposal.custom_sections)
        assert all(item["id"] for item in proposal.line_items)
        assert proposal.proposal_date == date.today()
        assert len(proposal.token) >= 32

    @pytest.mark.asyncio
    async def test_template_has_no_number_or_client(self, service, test_account, sample_proposal_data):
        """
        Test that templates are unnumbered and anonymous.

        WHY: Templates are reusable skeletons; they must not consume a SOW
        number or carry one client's identity into the next proposal.
        """
        data = ProposalCreate(**sample_proposal_data, is_template=True, template_name="Standard")

        template = await service.create_proposal(test_account.id, data)

        assert template.is_template is True
        assert template.sow_number is None
        assert template.client_email is None
        assert template.client_first_name is None
        assert await service.numbering.get_prefix(test_account.id) is None

    @pytest.mark.asyncio
    async def test_invalid_prefix_rejected(self, service, test_account, sample_proposal_data):
        with pytest.raises(InvalidPrefixError):
            await service.create_proposal(
                test_account.id, ProposalCreate(**sample_proposal_data, sow_prefix="AB1")
            )

    @pytest.mark.asyncio
    async def test_existing_prefix_kept(self, service, test_account, sample_proposal_data):
        await SowPrefixFactory.create(service.session, test_account, prefix="031")

        proposal = await service.create_proposal(
            test_account.id, ProposalCreate(**sample_proposal_data, sow_prefix="099")
        )

        assert await service.formatted_sow_number(proposal) == "0311"


class TestNormalizeSections:
    def test_positions_are_dense_and_ordered(self):
        sections = normalize_sections(
            [
                {"title": "B", "position": 7},
                {"title": "A", "position": 2},
                {"title": "C"},
            ]
        )

        assert [s["title"] for s in sections] == ["A", "B", "C"]
        assert [s["position"] for s in sections] == [0, 1, 2]

    def test_equal_and_missing_positions_keep_submission_order(self):
        sections = normalize_sections(
            [
                {"title": "D"},
                {"title": "B", "position": 1},
                {"title": "E"},
                {"title": "C", "position": 1},
                {"title": "A", "position": 0},
            ]
        )

        assert [s["title"] for s in sections] == ["A", "B", "C", "D", "E"]

    def test_ids_kept_unless_fresh(self):
        kept = normalize_sections([{"id": "sec-1", "title": "Scope"}])
        fresh = normalize_sections([{"id": "sec-1", "title": "Scope"}], fresh_ids=True)

        assert kept[0]["id"] == "sec-1"
        assert fresh[0]["id"] != "sec-1"

    def test_reviews_only_on_review_sections(self):
        review = {"author": "Grace", "text": "Great work"}
        sections = normalize_sections(
            [
                {"title": "Text", "reviews": [review]},
                {"title": "Praise", "type": "reviews", "reviews": [review]},
            ]
        )

        assert sections[0]["reviews"] == []
        assert sections[1]["reviews"][0]["author"] == "Grace"


class TestUpdateProposal:
    """Content edits."""

    @pytest.mark.asyncio
    async def test_update_fields(self, service, test_account):
        proposal = await ProposalFactory.create(service.session, test_account, sow_number=1)

        updated = await service.update_proposal(
            test_account.id,
            proposal.id,
            ProposalUpdate(title="Revised", tax_rate=5, show_terms=True),
        )

        assert updated.title == "Revised"
        assert float(updated.tax_rate) == 5
        assert updated.show_terms is True

    @pytest.mark.asyncio
    async def test_null_for_required_field_ignored(self, service, test_account):
        proposal = await ProposalFactory.create(service.session, test_account, sow_number=1)

        updated = await service.update_proposal(
            test_account.id, proposal.id, ProposalUpdate(title=None, expiration_date=None)
        )

        assert updated.title == "Website Automation"
        assert updated.expiration_date is None

    @pytest.mark.asyncio
    async def test_sections_renumbered(self, service, test_account):
        proposal = await ProposalFactory.create(service.session, test_account, sow_number=1)

        updated = await service.update_proposal(
            test_account.id,
            proposal.id,
            ProposalUpdate(
                custom_sections=[
                    {"id": "b", "title": "Second", "position": 9},
                    {"id": "a", "title": "First", "position": 3},
                ]
            ),
        )

        assert [(s["id"], s["position"]) for s in updated.custom_sections] == [("a", 0), ("b", 1)]

    @pytest.mark.asyncio
    async def test_template_ignores_client_fields(self, service, test_account):
        template = await ProposalFactory.create(
            service.session, test_account, is_template=True, template_name="Std"
        )

        updated = await service.update_proposal(
            test_account.id,
            template.id,
            ProposalUpdate(client_email="ada@example.com", template_name="Renamed"),
        )

        assert updated.client_email is None
        assert updated.template_name == "Renamed"

    @pytest.mark.parametrize(
        "status",
        [ProposalStatus.ACCEPTED, ProposalStatus.DECLINED, ProposalStatus.EXPIRED],
    )
    @pytest.mark.asyncio
    async def test_terminal_proposal_not_editable(self, service, test_account, status):
        """
        Test that terminal proposals reject edits.

        WHY: Once signed, declined or expired, the content is final.
        """
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=status
        )

        with pytest.raises(EditNotAllowedError):
            await service.update_proposal(test_account.id, proposal.id, ProposalUpdate(title="X"))

    @pytest.mark.asyncio
    async def test_other_account_cannot_edit(self, service, test_account, other_account):
        proposal = await ProposalFactory.create(service.session, test_account, sow_number=1)

        with pytest.raises(ProposalNotFoundError):
            await service.update_proposal(other_account.id, proposal.id, ProposalUpdate(title="X"))


class TestSendAndStatus:
    """Owner status changes."""

    @pytest.mark.asyncio
    async def test_send_sets_sent_at_and_notifies(self, service, test_account, mock_slack):
        proposal = await ProposalFactory.create(service.session, test_account, sow_number=1)

        sent = await service.send_proposal(test_account.id, proposal.id)

        assert sent.status == ProposalStatus.SENT
        assert sent.sent_at is not None
        assert slack_texts(mock_slack)[0].startswith("Proposal Sent")

    @pytest.mark.asyncio
    async def test_template_cannot_be_sent(self, service, test_account):
        template = await ProposalFactory.create(service.session, test_account, is_template=True)

        with pytest.raises(InvalidTransitionError):
            await service.send_proposal(test_account.id, template.id)

    @pytest.mark.asyncio
    async def test_set_on_hold(self, service, test_account):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )

        updated = await service.set_status(test_account.id, proposal.id, ProposalStatus.ON_HOLD)

        assert updated.status == ProposalStatus.ON_HOLD

    @pytest.mark.parametrize("target", [ProposalStatus.VIEWED, ProposalStatus.EXPIRED])
    @pytest.mark.asyncio
    async def test_system_statuses_not_settable(self, service, test_account, target):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )

        with pytest.raises(InvalidTransitionError):
            await service.set_status(test_account.id, proposal.id, target)

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, service, test_account):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.ACCEPTED
        )

        with pytest.raises(InvalidTransitionError):
            await service.set_status(test_account.id, proposal.id, ProposalStatus.DRAFT)

    @pytest.mark.asyncio
    async def test_owner_decline(self, service, test_account, mock_slack):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.VIEWED
        )

        declined = await service.decline_as_owner(test_account.id, proposal.id)

        assert declined.status == ProposalStatus.DECLINED
        assert declined.declined_at is not None
        blocks = mock_slack.send_message_safe.await_args.args[1]
        assert any(
            b["type"] == "context" and b["elements"][0]["text"] == "By owner" for b in blocks
        )


class TestPublicView:
    """First-view tracking."""

    @pytest.mark.asyncio
    async def test_first_view_marks_viewed_once(self, service, test_account, mock_slack):
        """
        Test that repeated loads produce one transition and one notification.

        WHY: Recipients reload pages; the owner should hear about it once.
        """
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )

        viewed, is_owner = await service.record_public_view(proposal.token)
        await service.record_public_view(proposal.token)

        assert is_owner is False
        assert viewed.status == ProposalStatus.VIEWED
        assert viewed.viewed_at is not None
        assert len(slack_texts(mock_slack)) == 1
        assert slack_texts(mock_slack)[0].startswith("Proposal Viewed")

    @pytest.mark.asyncio
    async def test_owner_preview_not_counted(self, service, test_account, mock_slack):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )

        viewed, is_owner = await service.record_public_view(proposal.token, test_account.id)

        assert is_owner is True
        assert viewed.status == ProposalStatus.SENT
        assert viewed.viewed_at is None
        mock_slack.send_message_safe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_account_viewer_counts(self, service, test_account, other_account):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )

        viewed, is_owner = await service.record_public_view(proposal.token, other_account.id)

        assert is_owner is False
        assert viewed.status == ProposalStatus.VIEWED

    @pytest.mark.asyncio
    async def test_draft_view_changes_nothing(self, service, test_account):
        proposal = await ProposalFactory.create(service.session, test_account, sow_number=1)

        viewed, _ = await service.record_public_view(proposal.token)

        assert viewed.status == ProposalStatus.DRAFT

    @pytest.mark.asyncio
    async def test_template_token_not_found(self, service, test_account):
        template = await ProposalFactory.create(service.session, test_account, is_template=True)

        with pytest.raises(ProposalNotFoundError):
            await service.record_public_view(template.token)

    @pytest.mark.asyncio
    async def test_unknown_token(self, service):
        with pytest.raises(ProposalNotFoundError):
            await service.record_public_view("no-such-token")


class TestSignProposal:
    """Recipient signing."""

    @pytest.mark.asyncio
    async def test_sign_accepts_and_fingerprints(
        self, service, test_account, mock_slack, signature_storage
    ):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.VIEWED
        )

        signature = await sign(service, proposal)

        assert signature.proposal_id == proposal.id
        assert len(signature.document_hash) == 64
        assert signature.accepted_terms is True
        assert signature.signature_image_url.startswith("s3://proposal-signatures/")
        assert proposal.status == ProposalStatus.ACCEPTED
        assert proposal.accepted_at is not None
        assert proposal.signature is not None
        signature_storage.s3_client.put_object.assert_called_once()
        assert slack_texts(mock_slack)[0].startswith("Proposal Signed")

    @pytest.mark.asyncio
    async def test_second_signature_rejected(self, service, test_account):
        """
        Test that a proposal can be signed only once.

        WHY: A signature is a legal record; a second one would overwrite
        who agreed and when.
        """
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )
        await sign(service, proposal)

        with pytest.raises(AlreadySignedError):
            await sign(service, proposal)

    @pytest.mark.asyncio
    async def test_terms_required(self, service, test_account, signature_storage):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )

        with pytest.raises(TermsNotAcceptedError):
            await sign(service, proposal, accepted_terms=False)

        assert proposal.status == ProposalStatus.SENT
        signature_storage.s3_client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_signature_not_required(self, service, test_account):
        proposal = await ProposalFactory.create(
            service.session,
            test_account,
            sow_number=1,
            status=ProposalStatus.SENT,
            require_signature=False,
        )

        with pytest.raises(SignatureNotAllowedError):
            await sign(service, proposal)

    @pytest.mark.parametrize("status", [ProposalStatus.DRAFT, ProposalStatus.DECLINED])
    @pytest.mark.asyncio
    async def test_status_must_allow_signing(self, service, test_account, status):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=status
        )

        with pytest.raises(InvalidTransitionError):
            await sign(service, proposal)

    @pytest.mark.asyncio
    async def test_invalid_image_leaves_proposal_unsigned(self, service, test_account):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )

        with pytest.raises(SignatureImageError):
            await sign(service, proposal, image="data:image/png;base64,AAAA")

        assert proposal.status == ProposalStatus.SENT
        assert proposal.signature is None

    @pytest.mark.asyncio
    async def test_first_view_while_signing_still_accepts(
        self, service, test_account, signature_storage, monkeypatch
    ):
        """
        Test signing when the recipient's first view lands mid-request.

        WHY: The page load and the signature post can overlap. Sent and
        viewed are both signable, so the view must not make a valid
        signature fail.
        """
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )
        store = signature_storage.store

        async def store_after_first_view(*args, **kwargs):
            assert await ProposalDAO(service.session).mark_viewed(proposal.id, datetime.utcnow())
            return await store(*args, **kwargs)

        monkeypatch.setattr(signature_storage, "store", store_after_first_view)

        signature = await sign(service, proposal)

        assert proposal.status == ProposalStatus.ACCEPTED
        assert proposal.viewed_at is not None
        assert proposal.signature.id == signature.id

    @pytest.mark.asyncio
    async def test_image_deleted_when_status_write_loses(
        self, service, test_account, signature_storage, monkeypatch
    ):
        """
        Test that the uploaded image is removed if the proposal cannot be accepted.

        WHY: The request rolls back, so an image left in S3 would belong
        to no signature.
        """
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )
        store = signature_storage.store

        async def store_then_owner_declines(*args, **kwargs):
            await ProposalDAO(service.session).compare_and_set_status(
                proposal.id, [ProposalStatus.SENT], ProposalStatus.DECLINED
            )
            return await store(*args, **kwargs)

        monkeypatch.setattr(signature_storage, "store", store_then_owner_declines)

        with pytest.raises(InvalidTransitionError):
            await sign(service, proposal)

        s3_client = signature_storage.s3_client
        key = s3_client.put_object.call_args.kwargs["Key"]
        s3_client.delete_object.assert_called_once_with(Bucket="proposal-signatures", Key=key)

    @pytest.mark.asyncio
    async def test_image_deleted_when_concurrent_signature_wins(
        self, service, test_account, signature_storage, monkeypatch
    ):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )
        # Another request inserted its signature after this one checked
        await SignatureFactory.create(service.session, proposal)
        monkeypatch.setattr(
            service.signature_dao, "get_for_proposal", AsyncMock(return_value=None)
        )

        with pytest.raises(AlreadySignedError):
            await sign(service, proposal)

        s3_client = signature_storage.s3_client
        key = s3_client.put_object.call_args.kwargs["Key"]
        s3_client.delete_object.assert_called_once_with(Bucket="proposal-signatures", Key=key)

    @pytest.mark.asyncio
    async def test_successful_sign_keeps_image(self, service, test_account, signature_storage):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )

        await sign(service, proposal)

        signature_storage.s3_client.delete_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_recipient_decline(self, service, test_account, mock_slack):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )

        declined = await service.decline_as_recipient(proposal.token)

        assert declined.status == ProposalStatus.DECLINED
        assert slack_texts(mock_slack)[0].startswith("Proposal Declined")

    @pytest.mark.asyncio
    async def test_signed_proposal_cannot_be_declined(self, service, test_account):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )
        await sign(service, proposal)

        with pytest.raises(InvalidTransitionError):
            await service.decline_as_recipient(proposal.token)


class TestExpiry:
    """Lazy expiration on read."""

    @pytest.mark.asyncio
    async def test_lapsed_proposal_expires_on_read(self, service, test_account):
        proposal = await ProposalFactory.create(
            service.session,
            test_account,
            sow_number=1,
            status=ProposalStatus.SENT,
            expiration_date=date.today() - timedelta(days=1),
        )

        loaded = await service.get_proposal(test_account.id, proposal.id)

        assert loaded.status == ProposalStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_expiration_day_counts_as_expired(self, service, test_account):
        proposal = await ProposalFactory.create(
            service.session,
            test_account,
            sow_number=1,
            status=ProposalStatus.VIEWED,
            expiration_date=date.today(),
        )

        loaded, _ = await service.record_public_view(proposal.token)

        assert loaded.status == ProposalStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_expired_proposal_cannot_be_signed(self, service, test_account):
        proposal = await ProposalFactory.create(
            service.session,
            test_account,
            sow_number=1,
            status=ProposalStatus.SENT,
            expiration_date=date.today() - timedelta(days=3),
        )

        with pytest.raises(InvalidTransitionError):
            await sign(service, proposal)

    @pytest.mark.asyncio
    async def test_accepted_proposal_never_expires(self, service, test_account):
        proposal = await ProposalFactory.create(
            service.session,
            test_account,
            sow_number=1,
            status=ProposalStatus.ACCEPTED,
            expiration_date=date.today() - timedelta(days=3),
        )

        loaded = await service.get_proposal(test_account.id, proposal.id)

        assert loaded.status == ProposalStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_listing_expires_lapsed(self, service, test_account):
        await ProposalFactory.create(
            service.session,
            test_account,
            sow_number=1,
            status=ProposalStatus.SENT,
            expiration_date=date.today() - timedelta(days=1),
        )

        proposals, total = await service.list_proposals(test_account.id)

        assert total == 1
        assert proposals[0].status == ProposalStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_stats(self, service, test_account):
        await ProposalFactory.create(service.session, test_account, sow_number=1)
        await ProposalFactory.create(
            service.session, test_account, sow_number=2, status=ProposalStatus.SENT
        )
        await ProposalFactory.create(
            service.session,
            test_account,
            sow_number=3,
            status=ProposalStatus.VIEWED,
            expiration_date=date.today() - timedelta(days=1),
        )
        await ProposalFactory.create(service.session, test_account, is_template=True)

        stats = await service.get_stats(test_account.id)

        assert stats["total"] == 3
        assert stats["by_status"] == {"draft": 1, "sent": 1, "expired": 1}
        assert stats["pending_count"] == 1
        assert stats["template_count"] == 1


class TestTemplates:
    """Save-as-template and create-from-template."""

    @pytest.mark.asyncio
    async def test_save_as_template_copies_content(self, service, test_account):
        source = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )

        template = await service.save_as_template(test_account.id, source.id, "Standard Build")

        assert template.is_template is True
        assert template.template_name == "Standard Build"
        assert template.sow_number is None
        assert template.client_email is None
        assert template.title == source.title
        assert template.custom_sections[0]["title"] == source.custom_sections[0]["title"]
        assert template.custom_sections[0]["id"] != source.custom_sections[0]["id"]
        assert template.line_items[0]["id"] != source.line_items[0]["id"]
        assert source.status == ProposalStatus.SENT

    @pytest.mark.asyncio
    async def test_create_from_template(self, service, test_account):
        template = await ProposalFactory.create(
            service.session, test_account, is_template=True, template_name="Std"
        )

        proposal = await service.create_from_template(
            test_account.id,
            template.id,
            FromTemplateRequest(client_email="grace@example.com", sow_prefix="031"),
        )

        assert proposal.is_template is False
        assert proposal.status == ProposalStatus.DRAFT
        assert proposal.sow_number == 1
        assert proposal.client_email == "grace@example.com"
        assert proposal.template_name is None
        assert proposal.line_items[0]["unit_price"] == template.line_items[0]["unit_price"]
        assert await service.formatted_sow_number(proposal) == "0311"

    @pytest.mark.asyncio
    async def test_from_template_requires_template(self, service, test_account):
        proposal = await ProposalFactory.create(service.session, test_account, sow_number=1)

        with pytest.raises(BusinessRuleViolation):
            await service.create_from_template(test_account.id, proposal.id)


class TestDeleteProposal:
    """Deletion rules."""

    @pytest.mark.asyncio
    async def test_delete_draft(self, service, test_account):
        proposal = await ProposalFactory.create(service.session, test_account, sow_number=1)

        await service.delete_proposal(test_account.id, proposal.id)

        with pytest.raises(ProposalNotFoundError):
            await service.get_proposal(test_account.id, proposal.id)

    @pytest.mark.asyncio
    async def test_delete_template(self, service, test_account):
        template = await ProposalFactory.create(service.session, test_account, is_template=True)

        await service.delete_proposal(test_account.id, template.id)

        _, total = await service.list_proposals(test_account.id, is_template=True)
        assert total == 0

    @pytest.mark.asyncio
    async def test_sent_proposal_not_deletable(self, service, test_account):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )

        with pytest.raises(BusinessRuleViolation):
            await service.delete_proposal(test_account.id, proposal.id)


class TestIntegrity:
    """Signed-content verification."""

    @pytest.mark.asyncio
    async def test_unsigned_is_unknown(self, service, test_account):
        proposal = await ProposalFactory.create(service.session, test_account, sow_number=1)

        assert await service.verify_integrity(test_account.id, proposal.id) == IntegrityStatus.UNKNOWN

    @pytest.mark.asyncio
    async def test_signed_is_verified(self, service, test_account):
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )
        await sign(service, proposal)

        assert await service.verify_integrity(test_account.id, proposal.id) == IntegrityStatus.VERIFIED

    @pytest.mark.asyncio
    async def test_tampered_content_is_modified(self, service, test_account):
        """
        Test that content changed behind the API is detected.

        WHY: Signed proposals are immutable through the service, so a
        mismatch means the row was changed directly. The check reports
        it but never changes state.
        """
        proposal = await ProposalFactory.create(
            service.session, test_account, sow_number=1, status=ProposalStatus.SENT
        )
        await sign(service, proposal)

        proposal.line_items = [
            {"id": "item-1", "description": "Build", "quantity": 1, "unit_price": 1, "pricing_type": "fixed"}
        ]
        await service.session.flush()

        assert await service.verify_integrity(test_account.id, proposal.id) == IntegrityStatus.MODIFIED
        assert proposal.status == ProposalStatus.ACCEPTED
