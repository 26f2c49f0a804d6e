import uuid
from sqlalchemy import (
    Column, String, Numeric, Text, DateTime, Date, ForeignKey, Integer, Boolean,
    Float, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from pydantic import BaseModel, ConfigDict, Field
import datetime as dt
from datetime import date, datetime
from typing import Optional, Literal
from decimal import Decimal

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = 'users'

    id = Column(String, primary_key=True, default=new_id)
    email = Column(String, unique=True)
    first_name = Column('first_name', String)
    last_name = Column('last_name', String)
    profile_image_url = Column('profile_image_url', String)
    created_at = Column('created_at', DateTime, server_default=func.now())
    updated_at = Column('updated_at', DateTime, server_default=func.now(), onupdate=func.now())


class Transaction(Base):
    __tablename__ = 'transactions'

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column('user_id', String, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    type = Column(Text, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    date = Column(Date, nullable=False)
    status = Column(String, nullable=True, default='completed')
    loan_id = Column('loan_id', String, ForeignKey('loans.id', ondelete='SET NULL'), nullable=True)
    person = Column(String, nullable=True)
    source = Column(String, nullable=True)
    external_id = Column('external_id', String, nullable=True)
    confidence = Column(Float, nullable=True)
    created_at = Column('created_at', DateTime, server_default=func.now(), nullable=False)
    updated_at = Column('updated_at', DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('IDX_transactions_user_date', 'user_id', 'date'),
    )


class Budget(Base):
    __tablename__ = 'budgets'

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column('user_id', String, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    category = Column(Text, nullable=False)
    monthly_limit = Column('monthly_limit', Numeric(12, 2), nullable=False)
    created_at = Column('created_at', DateTime, server_default=func.now(), nullable=False)
    updated_at = Column('updated_at', DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'category', name='uq_budget_user_category'),
    )


class Loan(Base):
    __tablename__ = 'loans'

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column('user_id', String, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    loan_name = Column('loan_name', Text, nullable=False)
    lender_name = Column('lender_name', Text, nullable=True)
    loan_type = Column('loan_type', String, nullable=True, default='personal')
    principal_amount = Column('principal_amount', Numeric(14, 2), nullable=False)
    interest_rate = Column('interest_rate', Numeric(6, 3), nullable=False)
    tenure_months = Column('tenure_months', Integer, nullable=False)
    monthly_emi = Column('monthly_emi', Numeric(12, 2), nullable=False)
    start_date = Column('start_date', Date, nullable=False)
    status = Column(String, nullable=False, default='active')
    created_at = Column('created_at', DateTime, server_default=func.now(), nullable=False)
    updated_at = Column('updated_at', DateTime, server_default=func.now(), onupdate=func.now())


class LoanPayment(Base):
    __tablename__ = 'loan_payments'

    id = Column(String, primary_key=True, default=new_id)
    loan_id = Column('loan_id', String, ForeignKey('loans.id', ondelete='CASCADE'), nullable=False)
    payment_date = Column('payment_date', Date, nullable=False)
    amount_paid = Column('amount_paid', Numeric(12, 2), nullable=False)
    principal_component = Column('principal_component', Numeric(12, 2), nullable=True)
    interest_component = Column('interest_component', Numeric(12, 2), nullable=True)
    outstanding_balance = Column('outstanding_balance', Numeric(14, 2), nullable=True)
    status = Column(String, nullable=False, default='completed')
    payment_method = Column('payment_method', String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column('created_at', DateTime, server_default=func.now(), nullable=False)


class LendingTransaction(Base):
    __tablename__ = 'lending_transactions'

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column('user_id', String, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    type = Column(String, nullable=False)
    person_name = Column('person_name', Text, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(Date, nullable=False)
    due_date = Column('due_date', Date, nullable=True)
    status = Column(String, nullable=False, default='active')
    related_transaction_id = Column('related_transaction_id', String, nullable=True)
    created_at = Column('created_at', DateTime, server_default=func.now(), nullable=False)
    updated_at = Column('updated_at', DateTime, server_default=func.now(), onupdate=func.now())


class RecurringPayment(Base):
    __tablename__ = 'recurring_payments'

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column('user_id', String, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    title = Column(Text, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(Text, nullable=False)
    frequency = Column(String, nullable=False, default='monthly')
    next_due_date = Column('next_due_date', Date, nullable=False)
    is_active = Column('is_active', Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)
    created_at = Column('created_at', DateTime, server_default=func.now(), nullable=False)
    updated_at = Column('updated_at', DateTime, server_default=func.now(), onupdate=func.now())


class UserSettings(Base):
    __tablename__ = 'user_settings'

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column('user_id', String, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    currency = Column(String, nullable=False, default='INR')
    theme = Column(String, nullable=False, default='system')
    language = Column(String, nullable=False, default='en')
    notifications_email = Column(Boolean, nullable=False, default=True)
    notifications_budget_alerts = Column(Boolean, nullable=False, default=True)
    notifications_loan_reminders = Column(Boolean, nullable=False, default=True)
    created_at = Column('created_at', DateTime, server_default=func.now(), nullable=False)
    updated_at = Column('updated_at', DateTime, server_default=func.now(), onupdate=func.now())


TransactionType = Literal['expense', 'income', 'lend', 'borrow', 'investment', 'emi']
TransactionStatus = Literal['pending', 'completed', 'received']
LendingType = Literal['lent', 'borrowed', 'repaid_by_them', 'repaid_by_me']
LendingStatus = Literal['active', 'settled', 'partial']
LoanType = Literal['personal', 'home', 'car', 'education', 'business', 'gold', 'other']
LoanStatus = Literal['active', 'closed', 'defaulted']
Frequency = Literal['daily', 'weekly', 'biweekly', 'monthly', 'quarterly', 'yearly']
CurrencyCode = Literal['INR', 'USD', 'EUR', 'GBP', 'JPY']

# Closed label set for AI categorization of imported statements
AI_CATEGORIES = [
    "Food", "Travel", "EMI", "Rent", "Shopping", "Salary", "Investment",
    "Entertainment", "Bills", "Healthcare", "Education", "Other"
]

# Category names used when computing the investment breakdown
INVESTMENT_CATEGORIES = {
    "Mutual Funds": {"key": "mutualFunds", "risk": "Moderate"},
    "Stocks": {"key": "stocks", "risk": "High"},
    "Insurance": {"key": "insurancePolicy", "risk": "Low"},
    "Chit Funds": {"key": "chitFunds", "risk": "Very Low"},
    "Gold": {"key": "gold", "risk": "Low"},
    "Crypto": {"key": "crypto", "risk": "Very High"},
    "Policy": {"key": "policy", "risk": "Low"},
    "Investment": {"key": "generalInvestment", "risk": "Moderate"},
}


def _category(name, type_, icon, color):
    return {"name": name, "type": type_, "icon": icon, "color": color}


CATEGORIES = [
    _category("Groceries", "expense", "ShoppingCart", "#FF6384"),
    _category("Restaurants", "expense", "Utensils", "#36A2EB"),
    _category("Food & Drinks", "expense", "Coffee", "#FF6384"),
    _category("Household Supplies", "expense", "Home", "#FFCE56"),
    _category("Personal Care", "expense", "Bath", "#4BC0C0"),
    _category("Clothing", "expense", "Shirt", "#9966FF"),
    _category("Rent/Mortgage", "expense", "Building", "#FF9F40"),
    _category("Electricity", "expense", "Zap", "#FF6384"),
    _category("Water", "expense", "Droplet", "#36A2EB"),
    _category("Internet", "expense", "Wifi", "#FFCE56"),
    _category("Phone", "expense", "Smartphone", "#4BC0C0"),
    _category("Recharges", "expense", "Smartphone", "#FFCE56"),
    _category("Subscriptions", "expense", "Receipt", "#FF9F40"),
    _category("Fuel", "expense", "Car", "#FF6384"),
    _category("Public Transport", "expense", "Bus", "#36A2EB"),
    _category("Vehicle Maintenance", "expense", "Wrench", "#FFCE56"),
    _category("Loans & EMIs", "expense", "CreditCard", "#4BC0C0"),
    _category("EMI Payment", "expense", "CreditCard", "#FF6384"),
    _category("Insurance", "investment", "Shield", "#9966FF"),
    _category("Doctor/Pharmacy", "expense", "Stethoscope", "#FF9F40"),
    _category("Health & Wellbeing", "expense", "Heart", "#36A2EB"),
    _category("Gym", "expense", "Dumbbell", "#FF6384"),
    _category("Movies/Events", "expense", "Film", "#FFCE56"),
    _category("Travel", "expense", "Plane", "#4BC0C0"),
    _category("Shopping", "expense", "ShoppingBag", "#9966FF"),
    _category("Electronics Devices", "expense", "Laptop", "#9966FF"),
    _category("Gifts", "expense", "Gift", "#FF9F40"),
    _category("Donations", "expense", "Handshake", "#FF6384"),
    _category("Education", "expense", "GraduationCap", "#36A2EB"),
    _category("Fees", "expense", "FileText", "#36A2EB"),
    _category("Other", "both", "MoreHorizontal", "#FFCE56"),
    _category("Investment", "investment", "LineChart", "#36A2EB"),
    _category("Mutual Funds", "investment", "TrendingUp", "#36A2EB"),
    _category("Stocks", "investment", "LineChart", "#FFCE56"),
    _category("Gold", "investment", "PiggyBank", "#FFD700"),
    _category("Crypto", "investment", "WalletMinimal", "#000000"),
    _category("Chit Funds", "investment", "PiggyBank", "#FF8C00"),
    _category("Policy", "investment", "Shield", "#1E90FF"),
    _category("Money Lent", "lending", "ArrowUpRight", "#4BC0C0"),
    _category("Money Borrowed", "lending", "ArrowDownRight", "#9966FF"),
    _category("Repayment", "lending", "ArrowDownLeft", "#FF9F40"),
    _category("Salary", "income", "BriefcaseBusiness", "#00C853"),
    _category("Freelance", "income", "Briefcase", "#FFD600"),
    _category("Investments Income", "income", "Landmark", "#6200EA"),
    _category("Gift Income", "income", "Gift", "#FF8A80"),
    _category("Other Income", "income", "MoreHorizontal", "#757575"),
]


class UserSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UpsertUserSchema(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None


class InsertTransactionSchema(BaseModel):
    user_id: str
    type: TransactionType
    amount: Decimal = Field(gt=0, decimal_places=2)
    category: str = Field(min_length=1)
    description: Optional[str] = None
    date: date
    status: TransactionStatus = 'completed'
    loan_id: Optional[str] = None
    person: Optional[str] = None
    source: Optional[str] = 'manual'
    external_id: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)


class UpdateTransactionSchema(BaseModel):
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    category: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    date: Optional[dt.date] = None
    status: Optional[TransactionStatus] = None
    loan_id: Optional[str] = None
    person: Optional[str] = None


class InsertBudgetSchema(BaseModel):
    user_id: str
    category: str = Field(min_length=1)
    monthly_limit: Decimal = Field(gt=0, decimal_places=2)


class UpdateBudgetSchema(BaseModel):
    category: Optional[str] = Field(default=None, min_length=1)
    monthly_limit: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)


class InsertLoanSchema(BaseModel):
    user_id: str
    loan_name: str = Field(min_length=1)
    lender_name: Optional[str] = None
    loan_type: LoanType = 'personal'
    principal_amount: Decimal = Field(gt=0)
    interest_rate: Decimal = Field(ge=0, le=100)
    tenure_months: int = Field(gt=0, le=600)
    start_date: date
    status: LoanStatus = 'active'


class UpdateLoanSchema(BaseModel):
    loan_name: Optional[str] = Field(default=None, min_length=1)
    lender_name: Optional[str] = None
    loan_type: Optional[LoanType] = None
    principal_amount: Optional[Decimal] = Field(default=None, gt=0)
    interest_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    tenure_months: Optional[int] = Field(default=None, gt=0, le=600)
    start_date: Optional[date] = None
    status: Optional[LoanStatus] = None


class InsertLoanPaymentSchema(BaseModel):
    loan_id: str
    payment_date: date
    amount_paid: Decimal = Field(gt=0)
    principal_component: Optional[Decimal] = None
    interest_component: Optional[Decimal] = None
    outstanding_balance: Optional[Decimal] = None
    status: str = 'completed'
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class UpdateLoanPaymentSchema(BaseModel):
    payment_date: Optional[date] = None
    amount_paid: Optional[Decimal] = Field(default=None, gt=0)
    principal_component: Optional[Decimal] = None
    interest_component: Optional[Decimal] = None
    outstanding_balance: Optional[Decimal] = None
    status: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None


class InsertLendingSchema(BaseModel):
    user_id: str
    type: LendingType
    person_name: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    description: Optional[str] = None
    date: date
    due_date: Optional[date] = None
    status: LendingStatus = 'active'
    related_transaction_id: Optional[str] = None


class UpdateLendingSchema(BaseModel):
    type: Optional[LendingType] = None
    person_name: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[Decimal] = Field(default=None, gt=0)
    description: Optional[str] = None
    due_date: Optional[dt.date] = None
    date: Optional[dt.date] = None
    status: Optional[LendingStatus] = None


class InsertRecurringSchema(BaseModel):
    user_id: str
    title: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    category: str = Field(min_length=1)
    frequency: Frequency = 'monthly'
    next_due_date: date
    is_active: bool = True
    description: Optional[str] = None


class UpdateRecurringSchema(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[Decimal] = Field(default=None, gt=0)
    category: Optional[str] = Field(default=None, min_length=1)
    frequency: Optional[Frequency] = None
    next_due_date: Optional[date] = None
    is_active: Optional[bool] = None
    description: Optional[str] = None


class UpdateSettingsSchema(BaseModel):
    currency: Optional[CurrencyCode] = None
    theme: Optional[Literal['light', 'dark', 'system']] = None
    language: Optional[str] = Field(default=None, min_length=2, max_length=8)
    notifications_email: Optional[bool] = None
    notifications_budget_alerts: Optional[bool] = None
    notifications_loan_reminders: Optional[bool] = None


class EMICalculationSchema(BaseModel):
    principal_amount: Decimal = Field(gt=0)
    interest_rate: Decimal = Field(ge=0, le=100)
    tenure_months: int = Field(gt=0, le=600)
    start_date: Optional[date] = None
