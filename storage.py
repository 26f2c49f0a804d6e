import logging
from datetime import date
from typing import Optional, List, Iterable

from sqlalchemy import create_engine, desc, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker, Session as DBSession

from models import (
    Base, User, Transaction, Budget, Loan, LoanPayment, LendingTransaction,
    RecurringPayment, UserSettings,
    UpsertUserSchema, InsertTransactionSchema, InsertBudgetSchema, InsertLoanSchema,
    InsertLoanPaymentSchema, InsertLendingSchema, InsertRecurringSchema
)

logger = logging.getLogger(__name__)


class DuplicateRecordError(Exception):
    """Raised when a write violates a uniqueness rule (e.g. two budgets for one category)."""


class Storage:
    def __init__(self, database_url: str):
        connect_args = {}
        if database_url.startswith('sqlite'):
            connect_args = {'check_same_thread': False}
        self.engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def _get_session(self) -> DBSession:
        return self.SessionLocal()

    def _commit(self, db: DBSession, message: str) -> None:
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning("Integrity error: %s", e.orig)
            raise DuplicateRecordError(message) from e

    @staticmethod
    def _apply(obj, data: dict) -> None:
        for key, value in data.items():
            if key in ('id', 'user_id', 'created_at'):
                continue
            if hasattr(obj, key):
                setattr(obj, key, value)

    # Users

    def get_user(self, user_id: str) -> Optional[User]:
        db = self._get_session()
        try:
            return db.query(User).filter(User.id == user_id).first()
        finally:
            db.close()

    def upsert_user(self, user_data: UpsertUserSchema) -> User:
        db = self._get_session()
        try:
            user = db.query(User).filter(User.id == user_data.id).first()
            if user:
                for key, value in user_data.model_dump(exclude_unset=True).items():
                    setattr(user, key, value)
            else:
                user = User(**user_data.model_dump())
                db.add(user)
            self._commit(db, "User already exists")
            db.refresh(user)
            return user
        finally:
            db.close()

    # Transactions

    def create_transaction(self, transaction_data: InsertTransactionSchema) -> Transaction:
        db = self._get_session()
        try:
            transaction = Transaction(**transaction_data.model_dump())
            db.add(transaction)
            self._commit(db, "Transaction already exists")
            db.refresh(transaction)
            return transaction
        finally:
            db.close()

    def get_transactions_by_user_id(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        type: Optional[str] = None,
        category: Optional[str] = None,
        loan_id: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Transaction]:
        db = self._get_session()
        try:
            query = db.query(Transaction).filter(Transaction.user_id == user_id)
            if start_date:
                query = query.filter(Transaction.date >= start_date)
            if end_date:
                query = query.filter(Transaction.date <= end_date)
            if type:
                query = query.filter(Transaction.type == type)
            if category:
                query = query.filter(Transaction.category == category)
            if loan_id:
                query = query.filter(Transaction.loan_id == loan_id)
            if search:
                pattern = f"%{search}%"
                query = query.filter(or_(
                    Transaction.description.ilike(pattern),
                    Transaction.category.ilike(pattern),
                    Transaction.person.ilike(pattern),
                ))
            query = query.order_by(desc(Transaction.date), desc(Transaction.created_at))
            if limit:
                query = query.limit(limit)
            return query.all()
        finally:
            db.close()

    def get_transaction_by_id(self, user_id: str, transaction_id: str) -> Optional[Transaction]:
        db = self._get_session()
        try:
            return db.query(Transaction).filter(
                Transaction.id == transaction_id,
                Transaction.user_id == user_id
            ).first()
        finally:
            db.close()

    def get_transactions_by_ids(self, user_id: str, transaction_ids: Iterable[str]) -> List[Transaction]:
        ids = list(transaction_ids)
        if not ids:
            return []
        db = self._get_session()
        try:
            return db.query(Transaction).filter(
                Transaction.user_id == user_id,
                Transaction.id.in_(ids)
            ).all()
        finally:
            db.close()

    def update_transaction(self, user_id: str, transaction_id: str, transaction_data: dict) -> Optional[Transaction]:
        db = self._get_session()
        try:
            transaction = db.query(Transaction).filter(
                Transaction.id == transaction_id,
                Transaction.user_id == user_id
            ).first()
            if transaction:
                self._apply(transaction, transaction_data)
                self._commit(db, "Transaction already exists")
                db.refresh(transaction)
            return transaction
        finally:
            db.close()

    def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        db = self._get_session()
        try:
            transaction = db.query(Transaction).filter(
                Transaction.id == transaction_id,
                Transaction.user_id == user_id
            ).first()
            if not transaction:
                return False
            db.delete(transaction)
            db.commit()
            return True
        finally:
            db.close()

    def bulk_create_transactions(self, user_id: str, transactions_list: List[InsertTransactionSchema]) -> List[Transaction]:
        """Insert imported rows, skipping any whose external_id is already stored
        for this user or repeats earlier in the same batch."""
        db = self._get_session()
        try:
            external_ids = [t.external_id for t in transactions_list if t.external_id]
            existing_ids = set()
            if external_ids:
                rows = db.query(Transaction.external_id).filter(
                    Transaction.user_id == user_id,
                    Transaction.external_id.in_(external_ids)
                ).all()
                existing_ids = {row[0] for row in rows}

            created_transactions = []
            for transaction_data in transactions_list:
                if transaction_data.external_id:
                    if transaction_data.external_id in existing_ids:
                        continue
                    existing_ids.add(transaction_data.external_id)
                transaction = Transaction(**transaction_data.model_dump())
                db.add(transaction)
                created_transactions.append(transaction)

            self._commit(db, "Duplicate transaction in import")
            for transaction in created_transactions:
                db.refresh(transaction)

            return created_transactions
        finally:
            db.close()

    def get_transaction_months(self, user_id: str) -> List[date]:
        db = self._get_session()
        try:
            rows = db.query(Transaction.date).filter(Transaction.user_id == user_id).all()
            return [row[0] for row in rows]
        finally:
            db.close()

    # Budgets

    def create_budget(self, budget_data: InsertBudgetSchema) -> Budget:
        db = self._get_session()
        try:
            budget = Budget(**budget_data.model_dump())
            db.add(budget)
            self._commit(db, f"A budget for {budget_data.category} already exists")
            db.refresh(budget)
            return budget
        finally:
            db.close()

    def get_budgets_by_user_id(self, user_id: str) -> List[Budget]:
        db = self._get_session()
        try:
            return db.query(Budget).filter(Budget.user_id == user_id).order_by(Budget.category).all()
        finally:
            db.close()

    def get_budget_by_id(self, user_id: str, budget_id: str) -> Optional[Budget]:
        db = self._get_session()
        try:
            return db.query(Budget).filter(Budget.id == budget_id, Budget.user_id == user_id).first()
        finally:
            db.close()

    def update_budget(self, user_id: str, budget_id: str, budget_data: dict) -> Optional[Budget]:
        db = self._get_session()
        try:
            budget = db.query(Budget).filter(Budget.id == budget_id, Budget.user_id == user_id).first()
            if budget:
                self._apply(budget, budget_data)
                self._commit(db, f"A budget for {budget_data.get('category')} already exists")
                db.refresh(budget)
            return budget
        finally:
            db.close()

    def delete_budget(self, user_id: str, budget_id: str) -> bool:
        db = self._get_session()
        try:
            budget = db.query(Budget).filter(Budget.id == budget_id, Budget.user_id == user_id).first()
            if not budget:
                return False
            db.delete(budget)
            db.commit()
            return True
        finally:
            db.close()

    # Loans

    def create_loan(self, loan_data: InsertLoanSchema, monthly_emi) -> Loan:
        db = self._get_session()
        try:
            loan = Loan(**loan_data.model_dump(), monthly_emi=monthly_emi)
            db.add(loan)
            self._commit(db, "Loan already exists")
            db.refresh(loan)
            return loan
        finally:
            db.close()

    def get_loans_by_user_id(self, user_id: str, status: Optional[str] = None) -> List[Loan]:
        db = self._get_session()
        try:
            query = db.query(Loan).filter(Loan.user_id == user_id)
            if status:
                query = query.filter(Loan.status == status)
            return query.order_by(desc(Loan.created_at)).all()
        finally:
            db.close()

    def get_loan_by_id(self, user_id: str, loan_id: str) -> Optional[Loan]:
        db = self._get_session()
        try:
            return db.query(Loan).filter(Loan.id == loan_id, Loan.user_id == user_id).first()
        finally:
            db.close()

    def update_loan(self, user_id: str, loan_id: str, loan_data: dict) -> Optional[Loan]:
        db = self._get_session()
        try:
            loan = db.query(Loan).filter(Loan.id == loan_id, Loan.user_id == user_id).first()
            if loan:
                self._apply(loan, loan_data)
                self._commit(db, "Loan already exists")
                db.refresh(loan)
            return loan
        finally:
            db.close()

    def delete_loan(self, user_id: str, loan_id: str) -> bool:
        db = self._get_session()
        try:
            loan = db.query(Loan).filter(Loan.id == loan_id, Loan.user_id == user_id).first()
            if not loan:
                return False
            # SQLite does not enforce ON DELETE without the foreign_keys pragma
            db.query(LoanPayment).filter(LoanPayment.loan_id == loan_id).delete()
            db.query(Transaction).filter(Transaction.loan_id == loan_id).update({Transaction.loan_id: None})
            db.delete(loan)
            db.commit()
            return True
        finally:
            db.close()

    # Loan payments are owned through their loan

    def get_loan_payments(self, user_id: str, loan_id: str) -> Optional[List[LoanPayment]]:
        db = self._get_session()
        try:
            loan = db.query(Loan).filter(Loan.id == loan_id, Loan.user_id == user_id).first()
            if not loan:
                return None
            return db.query(LoanPayment).filter(
                LoanPayment.loan_id == loan_id
            ).order_by(LoanPayment.payment_date, LoanPayment.created_at).all()
        finally:
            db.close()

    def create_loan_payment(self, user_id: str, payment_data: InsertLoanPaymentSchema,
                            close_loan: bool = False) -> Optional[LoanPayment]:
        db = self._get_session()
        try:
            loan = db.query(Loan).filter(Loan.id == payment_data.loan_id, Loan.user_id == user_id).first()
            if not loan:
                return None
            payment = LoanPayment(**payment_data.model_dump())
            db.add(payment)
            if close_loan:
                loan.status = 'closed'
            self._commit(db, "Loan payment already exists")
            db.refresh(payment)
            return payment
        finally:
            db.close()

    def update_loan_payment(self, user_id: str, loan_id: str, payment_id: str, payment_data: dict) -> Optional[LoanPayment]:
        db = self._get_session()
        try:
            payment = db.query(LoanPayment).join(Loan, Loan.id == LoanPayment.loan_id).filter(
                LoanPayment.id == payment_id,
                LoanPayment.loan_id == loan_id,
                Loan.user_id == user_id
            ).first()
            if payment:
                self._apply(payment, {k: v for k, v in payment_data.items() if k != 'loan_id'})
                self._commit(db, "Loan payment already exists")
                db.refresh(payment)
            return payment
        finally:
            db.close()

    def delete_loan_payment(self, user_id: str, loan_id: str, payment_id: str) -> bool:
        db = self._get_session()
        try:
            payment = db.query(LoanPayment).join(Loan, Loan.id == LoanPayment.loan_id).filter(
                LoanPayment.id == payment_id,
                LoanPayment.loan_id == loan_id,
                Loan.user_id == user_id
            ).first()
            if not payment:
                return False
            db.delete(payment)
            db.commit()
            return True
        finally:
            db.close()

    # Lending

    def create_lending(self, lending_data: InsertLendingSchema) -> LendingTransaction:
        db = self._get_session()
        try:
            lending = LendingTransaction(**lending_data.model_dump())
            db.add(lending)
            self._commit(db, "Lending record already exists")
            db.refresh(lending)
            return lending
        finally:
            db.close()

    def get_lending_by_user_id(self, user_id: str, person_name: Optional[str] = None,
                               type: Optional[str] = None) -> List[LendingTransaction]:
        db = self._get_session()
        try:
            query = db.query(LendingTransaction).filter(LendingTransaction.user_id == user_id)
            if person_name:
                query = query.filter(LendingTransaction.person_name == person_name)
            if type:
                query = query.filter(LendingTransaction.type == type)
            return query.order_by(desc(LendingTransaction.date), desc(LendingTransaction.created_at)).all()
        finally:
            db.close()

    def get_lending_by_id(self, user_id: str, lending_id: str) -> Optional[LendingTransaction]:
        db = self._get_session()
        try:
            return db.query(LendingTransaction).filter(
                LendingTransaction.id == lending_id,
                LendingTransaction.user_id == user_id
            ).first()
        finally:
            db.close()

    def update_lending(self, user_id: str, lending_id: str, lending_data: dict) -> Optional[LendingTransaction]:
        db = self._get_session()
        try:
            lending = db.query(LendingTransaction).filter(
                LendingTransaction.id == lending_id,
                LendingTransaction.user_id == user_id
            ).first()
            if lending:
                self._apply(lending, lending_data)
                self._commit(db, "Lending record already exists")
                db.refresh(lending)
            return lending
        finally:
            db.close()

    def delete_lending(self, user_id: str, lending_id: str) -> bool:
        db = self._get_session()
        try:
            lending = db.query(LendingTransaction).filter(
                LendingTransaction.id == lending_id,
                LendingTransaction.user_id == user_id
            ).first()
            if not lending:
                return False
            db.delete(lending)
            db.commit()
            return True
        finally:
            db.close()

    # Recurring payments

    def create_recurring(self, recurring_data: InsertRecurringSchema) -> RecurringPayment:
        db = self._get_session()
        try:
            recurring = RecurringPayment(**recurring_data.model_dump())
            db.add(recurring)
            self._commit(db, "Recurring payment already exists")
            db.refresh(recurring)
            return recurring
        finally:
            db.close()

    def get_recurring_by_user_id(self, user_id: str, active_only: bool = False) -> List[RecurringPayment]:
        db = self._get_session()
        try:
            query = db.query(RecurringPayment).filter(RecurringPayment.user_id == user_id)
            if active_only:
                query = query.filter(RecurringPayment.is_active.is_(True))
            return query.order_by(RecurringPayment.next_due_date).all()
        finally:
            db.close()

    def get_recurring_by_id(self, user_id: str, recurring_id: str) -> Optional[RecurringPayment]:
        db = self._get_session()
        try:
            return db.query(RecurringPayment).filter(
                RecurringPayment.id == recurring_id,
                RecurringPayment.user_id == user_id
            ).first()
        finally:
            db.close()

    def update_recurring(self, user_id: str, recurring_id: str, recurring_data: dict) -> Optional[RecurringPayment]:
        db = self._get_session()
        try:
            recurring = db.query(RecurringPayment).filter(
                RecurringPayment.id == recurring_id,
                RecurringPayment.user_id == user_id
            ).first()
            if recurring:
                self._apply(recurring, recurring_data)
                self._commit(db, "Recurring payment already exists")
                db.refresh(recurring)
            return recurring
        finally:
            db.close()

    def delete_recurring(self, user_id: str, recurring_id: str) -> bool:
        db = self._get_session()
        try:
            recurring = db.query(RecurringPayment).filter(
                RecurringPayment.id == recurring_id,
                RecurringPayment.user_id == user_id
            ).first()
            if not recurring:
                return False
            db.delete(recurring)
            db.commit()
            return True
        finally:
            db.close()

    def record_recurring_payment(self, user_id: str, recurring_id: str,
                                 transaction_data: InsertTransactionSchema, next_due_date: date):
        """Store the paid transaction and roll the due date in one commit."""
        db = self._get_session()
        try:
            recurring = db.query(RecurringPayment).filter(
                RecurringPayment.id == recurring_id,
                RecurringPayment.user_id == user_id
            ).first()
            if not recurring:
                return None, None
            transaction = Transaction(**transaction_data.model_dump())
            db.add(transaction)
            recurring.next_due_date = next_due_date
            self._commit(db, "Transaction already exists")
            db.refresh(transaction)
            db.refresh(recurring)
            return recurring, transaction
        finally:
            db.close()

    # Settings

    def get_settings(self, user_id: str) -> UserSettings:
        db = self._get_session()
        try:
            settings = db.query(UserSettings).filter(UserSettings.user_id == user_id).first()
            if not settings:
                settings = UserSettings(user_id=user_id)
                db.add(settings)
                self._commit(db, "Settings already exist")
                db.refresh(settings)
            return settings
        finally:
            db.close()

    def update_settings(self, user_id: str, settings_data: dict) -> UserSettings:
        db = self._get_session()
        try:
            settings = db.query(UserSettings).filter(UserSettings.user_id == user_id).first()
            if not settings:
                settings = UserSettings(user_id=user_id)
                db.add(settings)
            self._apply(settings, settings_data)
            self._commit(db, "Settings already exist")
            db.refresh(settings)
            return settings
        finally:
            db.close()
