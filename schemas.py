import datetime as dt
from decimal import Decimal
from typing import Any, Mapping, Optional, Type, TypeVar, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
)

from errors import ValidationError
from models import (
    AccountType,
    BillFrequency,
    TransactionStatus,
    TransactionType,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

# References arrive from forms and PDF candidates as ints or numeric strings.
EntityRef = Optional[Union[int, str]]


def _format_errors(exc: PydanticValidationError) -> list[str]:
    messages: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return messages


def validate_input(model: Type[ModelT], payload: Union[ModelT, Mapping[str, Any]]) -> ModelT:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        messages = _format_errors(exc)
        raise ValidationError("; ".join(messages), errors=messages) from exc


class TransactionIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    date: dt.date
    time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    amount_cents: int = Field(
        ..., ge=0, validation_alias=AliasChoices("amount_cents", "amount")
    )
    type: TransactionType
    status: Optional[TransactionStatus] = None
    account_id: EntityRef = None
    budget_category_id: EntityRef = None
    savings_goal_id: EntityRef = None
    savings_amount_cents: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("savings_amount_cents", "savings_amount"),
    )
    recurring_bill_id: EntityRef = None


class TransactionImportIn(TransactionIn):
    category: Optional[str] = Field(default=None, max_length=100)


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    date: Optional[dt.date] = None
    time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    amount_cents: Optional[int] = Field(
        default=None, ge=0, validation_alias=AliasChoices("amount_cents", "amount")
    )
    type: Optional[TransactionType] = None
    status: Optional[TransactionStatus] = None
    account_id: EntityRef = None
    budget_category_id: EntityRef = None
    savings_goal_id: EntityRef = None
    savings_amount_cents: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("savings_amount_cents", "savings_amount"),
    )
    recurring_bill_id: EntityRef = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: str
    date: dt.date
    time: Optional[str]
    amount_cents: int
    type: TransactionType
    status: TransactionStatus = TransactionStatus.completed
    account_id: Optional[int]
    budget_category_id: Optional[int]
    savings_goal_id: Optional[int]
    savings_amount_cents: Optional[int]
    recurring_bill_id: Optional[int]

    @field_validator("status", mode="before")
    @classmethod
    def _unset_status_is_completed(cls, value: object) -> object:
        return TransactionStatus.completed if value is None else value


class TransactionImportRequest(BaseModel):
    transactions: list[dict[str, Any]]


class RecategorizeIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    transaction_name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)


class AccountIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance_cents: int = 0
    limit_cents: Optional[int] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, max_length=8)
    bank_name: Optional[str] = Field(default=None, max_length=100)
    account_number: Optional[str] = Field(default=None, max_length=34)
    color: Optional[str] = Field(default=None, max_length=9)
    icon: Optional[str] = Field(default=None, max_length=50)
    is_active: bool = True
    notes: Optional[str] = None


class AccountUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[AccountType] = None
    balance_cents: Optional[int] = None
    limit_cents: Optional[int] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, max_length=8)
    bank_name: Optional[str] = Field(default=None, max_length=100)
    account_number: Optional[str] = Field(default=None, max_length=34)
    color: Optional[str] = Field(default=None, max_length=9)
    icon: Optional[str] = Field(default=None, max_length=50)
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: AccountType
    balance_cents: int
    limit_cents: Optional[int]
    currency: str
    bank_name: Optional[str]
    account_number: Optional[str]
    color: Optional[str]
    icon: Optional[str]
    is_active: bool
    notes: Optional[str]


class BudgetCategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    budget_cents: int = Field(..., ge=0)
    icon: str = Field(default="", max_length=50)
    color: str = Field(default="", max_length=9)


class BudgetCategoryUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    budget_cents: Optional[int] = Field(default=None, ge=0)
    spent_cents: Optional[int] = Field(default=None, ge=0)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=9)


class BudgetCategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    budget_cents: int
    spent_cents: int
    icon: str
    color: str


class SavingsGoalIn(BaseModel):
    """Money fields are major units (dollars); the service stores cents."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(default="", max_length=50)
    color: str = Field(default="", max_length=9)
    current: Decimal = Field(default=Decimal("0"), ge=0)
    target: Decimal = Field(..., ge=0)
    monthly_contribution: Decimal = Field(default=Decimal("0"), ge=0)
    due_date: dt.date


class SavingsGoalUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=9)
    current: Optional[Decimal] = Field(default=None, ge=0)
    target: Optional[Decimal] = Field(default=None, ge=0)
    monthly_contribution: Optional[Decimal] = Field(default=None, ge=0)
    due_date: Optional[dt.date] = None


class SavingsGoalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    icon: str
    color: str
    current_cents: int
    target_cents: int
    monthly_contribution_cents: int
    due_date: dt.date


class RecurringBillIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., ge=0)
    frequency: BillFrequency
    next_due_date: dt.date
    category: str = Field(..., min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=9)
    is_active: bool = True
    notes: Optional[str] = None
    budget_category_id: Optional[int] = None


class RecurringBillUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    frequency: Optional[BillFrequency] = None
    next_due_date: Optional[dt.date] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=9)
    is_active: Optional[bool] = None
    notes: Optional[str] = None
    budget_category_id: Optional[int] = None
    last_paid_date: Optional[dt.date] = None


class RecurringBillOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount_cents: int
    frequency: BillFrequency
    next_due_date: dt.date
    category: str
    icon: Optional[str]
    color: Optional[str]
    is_active: bool
    notes: Optional[str]
    budget_category_id: Optional[int]
    last_paid_date: Optional[dt.date]


class MarkPaidIn(BaseModel):
    paid_on: dt.date


class CustomCategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(..., min_length=1, max_length=9)


class CustomCategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    color: str
