"""
AccountRegistry -- chart of accounts and system account resolution.

Responsibility:
    Owns the per-hospital chart of accounts and the mapping from the closed
    SystemAccountKey enumeration to concrete accounts.  Every posting that
    names a semantic key goes through resolve().

Architecture position:
    Kernel > Services.  Called by JournalWriter and by administrative setup.

Invariants enforced:
    - A key used by a posting must resolve to exactly one active account of
      the same hospital; otherwise ConfigurationError.  Never defaulted.
    - Account codes are unique per hospital.
    - Accounts are deactivated, never deleted.

Failure modes:
    - ConfigurationError: key unmapped, or mapped to an inactive account.
    - DuplicateAccountCodeError, AccountNotFoundError, InvalidAccountError.
"""

from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountDefinition, AccountInfo, enum_value
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    ConfigurationError,
    DuplicateAccountCodeError,
    InvalidAccountError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import (
    Account,
    AccountType,
    NormalBalance,
    SystemAccountKey,
    SystemAccountMapping,
)
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_registry")


class AccountRegistry(BaseService[Account]):
    """
    Chart of accounts plus system-key resolution for one session.

    Contract:
        Mutating methods flush only.  Nothing is cached between calls:
        resolve() and get_account() reload mapping and account rows, so a
        deactivation or remap committed elsewhere is seen on the next post.
    """

    # =========================================================================
    # Chart of accounts
    # =========================================================================

    def create_account(
        self,
        hospital_id: UUID,
        code: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        normal_balance: NormalBalance | None = None,
        parent_id: UUID | None = None,
    ) -> AccountInfo:
        """
        Create an account in the hospital's chart.

        The normal balance follows the account type unless given explicitly
        (contra accounts).

        Raises:
            DuplicateAccountCodeError: code already used in this hospital.
            InvalidAccountError: parent belongs to another hospital.
        """
        account_type = AccountType(account_type)
        if self._find_by_code(hospital_id, code) is not None:
            raise DuplicateAccountCodeError(str(hospital_id), code)

        if parent_id is not None:
            parent = self.session.get(Account, parent_id)
            if parent is None:
                raise AccountNotFoundError(str(parent_id))
            if parent.hospital_id != hospital_id:
                raise InvalidAccountError(str(parent_id), "parent belongs to another hospital")

        side = NormalBalance(normal_balance) if normal_balance else account_type.default_normal_balance
        account = Account(
            hospital_id=hospital_id,
            code=code,
            name=name,
            account_type=account_type.value,
            normal_balance=side.value,
            parent_id=parent_id,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_created",
            extra={
                "hospital_id": str(hospital_id),
                "account_code": code,
                "account_type": account_type.value,
            },
        )
        return AccountInfo.from_model(account)

    def deactivate_account(self, account_id: UUID, actor_id: UUID) -> AccountInfo:
        """Stop new postings to an account; history stays intact."""
        account = self.get_account(account_id)
        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "account_deactivated",
            extra={"account_id": str(account_id), "account_code": account.code},
        )
        return AccountInfo.from_model(account)

    def get_account(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id, populate_existing=True)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def list_accounts(self, hospital_id: UUID, active_only: bool = False) -> list[AccountInfo]:
        stmt = select(Account).where(Account.hospital_id == hospital_id)
        if active_only:
            stmt = stmt.where(Account.is_active.is_(True))
        accounts = self.session.execute(stmt.order_by(Account.code)).scalars().all()
        return [AccountInfo.from_model(a) for a in accounts]

    def _find_by_code(self, hospital_id: UUID, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.hospital_id == hospital_id, Account.code == code)
        ).scalar_one_or_none()

    # =========================================================================
    # System account mappings
    # =========================================================================

    def map_system_account(
        self,
        hospital_id: UUID,
        key: SystemAccountKey,
        account_id: UUID,
        actor_id: UUID,
    ) -> None:
        """
        Bind ``key`` to ``account_id`` for the hospital, replacing any
        previous binding.

        Raises:
            AccountNotFoundError / InvalidAccountError: account missing or
                owned by another hospital.
        """
        key = SystemAccountKey(key)
        account = self.get_account(account_id)
        if account.hospital_id != hospital_id:
            raise InvalidAccountError(str(account_id), "account belongs to another hospital")

        mapping = self.session.execute(
            select(SystemAccountMapping).where(
                SystemAccountMapping.hospital_id == hospital_id,
                SystemAccountMapping.key == key.value,
            )
        ).scalar_one_or_none()

        if mapping is None:
            mapping = SystemAccountMapping(
                hospital_id=hospital_id,
                key=key.value,
                account_id=account_id,
                created_by_id=actor_id,
            )
            self.session.add(mapping)
        else:
            mapping.account_id = account_id
            mapping.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "system_account_mapped",
            extra={
                "hospital_id": str(hospital_id),
                "key": key.value,
                "account_code": account.code,
            },
        )

    def resolve(self, hospital_id: UUID, key: SystemAccountKey) -> Account:
        """
        Resolve a semantic key to the hospital's active account.

        Raises:
            ConfigurationError: no mapping, or the mapped account is inactive.
        """
        key = SystemAccountKey(key)
        mapping = self.session.execute(
            select(SystemAccountMapping)
            .where(
                SystemAccountMapping.hospital_id == hospital_id,
                SystemAccountMapping.key == key.value,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if mapping is None:
            logger.error(
                "system_account_missing",
                extra={"hospital_id": str(hospital_id), "key": key.value},
            )
            raise ConfigurationError(str(hospital_id), key.value)

        account = self.get_account(mapping.account_id)
        if not account.is_active:
            logger.error(
                "system_account_inactive",
                extra={
                    "hospital_id": str(hospital_id),
                    "key": key.value,
                    "account_code": account.code,
                },
            )
            raise ConfigurationError(
                str(hospital_id), key.value, f"mapped account {account.code} is inactive"
            )

        return account

    def require_keys(self, hospital_id: UUID, keys: Iterable[SystemAccountKey]) -> None:
        """Pre-flight: raise ConfigurationError for the first unusable key."""
        for key in keys:
            self.resolve(hospital_id, key)

    def mappings(self, hospital_id: UUID) -> dict[str, str]:
        """key -> account code for every mapped key of the hospital."""
        rows = self.session.execute(
            select(SystemAccountMapping).where(SystemAccountMapping.hospital_id == hospital_id)
        ).scalars().all()
        return {enum_value(m.key): m.account.code for m in rows}

    # =========================================================================
    # Seeding
    # =========================================================================

    def seed_chart(
        self,
        hospital_id: UUID,
        definitions: Sequence[AccountDefinition],
        actor_id: UUID,
    ) -> int:
        """
        Create any missing accounts from ``definitions`` and bind their
        system keys.  Existing codes are left untouched, so seeding twice is
        a no-op.

        Returns:
            Number of accounts created.
        """
        created = 0
        for definition in definitions:
            account = self._find_by_code(hospital_id, definition.code)
            if account is None:
                info = self.create_account(
                    hospital_id=hospital_id,
                    code=definition.code,
                    name=definition.name,
                    account_type=AccountType(definition.account_type),
                    normal_balance=(
                        NormalBalance(definition.normal_balance)
                        if definition.normal_balance
                        else None
                    ),
                    actor_id=actor_id,
                )
                account_id = info.id
                created += 1
            else:
                account_id = account.id

            if definition.system_key:
                self.map_system_account(
                    hospital_id,
                    SystemAccountKey(definition.system_key),
                    account_id,
                    actor_id,
                )

        logger.info(
            "chart_seeded",
            extra={"hospital_id": str(hospital_id), "accounts_created": created},
        )
        return created
