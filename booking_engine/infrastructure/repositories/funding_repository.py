# booking_engine/infrastructure/repositories/funding_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from booking_engine.domain import models as domain
from booking_engine.domain.models import VoucherStatus
from booking_engine.domain.money import from_minor_units
from booking_engine.infrastructure.db.models import Organization, ProgramTicketBalance, Voucher


class FundingRepository:
    """Organization balances and vouchers. Writes only happen under row locks."""

    def __init__(self, db: Session):
        self.db = db

    def get_organization(self, organization_id: str) -> Organization | None:
        stmt = select(Organization).where(Organization.id == organization_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_funding(self, organization_id: str) -> domain.FundingSnapshot | None:
        organization = self.get_organization(organization_id)
        if not organization:
            return None

        balances_stmt = select(ProgramTicketBalance).where(
            ProgramTicketBalance.organization_id == organization_id
        )
        program_balances = {
            row.program_tag: row.tickets
            for row in self.db.execute(balances_stmt).scalars().all()
        }

        vouchers_stmt = (
            select(Voucher)
            .where(Voucher.organization_id == organization_id)
            .where(Voucher.status == VoucherStatus.ACTIVE)
            .where(Voucher.value_pence > 0)
            .order_by(Voucher.created_at)
        )
        vouchers = tuple(
            domain.Voucher(
                id=row.id,
                organization_id=row.organization_id,
                value=from_minor_units(row.value_pence),
                status=row.status,
            )
            for row in self.db.execute(vouchers_stmt).scalars().all()
        )

        return domain.FundingSnapshot(
            balances=domain.OrganizationBalances(
                training_fund_balance=from_minor_units(organization.training_fund_pence),
                program_ticket_balances=program_balances,
            ),
            vouchers=vouchers,
            vouchers_enabled=organization.vouchers_enabled,
            training_fund_enabled=organization.training_fund_enabled,
        )

    def lock_organization(self, organization_id: str) -> Organization | None:
        """
        SELECT ... FOR UPDATE
        Serializes balance decrements for one organization.
        """
        stmt = (
            select(Organization)
            .where(Organization.id == organization_id)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_program_balance(self, organization_id: str, program_tag: str) -> ProgramTicketBalance | None:
        stmt = (
            select(ProgramTicketBalance)
            .where(ProgramTicketBalance.organization_id == organization_id)
            .where(ProgramTicketBalance.program_tag == program_tag)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_vouchers(self, organization_id: str, voucher_ids: list[str]) -> list[Voucher]:
        if not voucher_ids:
            return []
        stmt = (
            select(Voucher)
            .where(Voucher.id.in_(voucher_ids))
            .where(Voucher.organization_id == organization_id)
            .with_for_update()
        )
        return list(self.db.execute(stmt).scalars().all())
