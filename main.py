import logging
from dataclasses import asdict
from datetime import date
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from database import get_db
from errors import (
    AuthorizationError,
    DuplicateError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from models import TransactionType, UserRole
from periods import Period, resolve_period
from recurrence import local_today
from scheduler import SchedulerManager
from schemas import (
    AccountOut,
    BudgetCategoryOut,
    CustomCategoryOut,
    MarkPaidIn,
    RecategorizeIn,
    RecurringBillOut,
    SavingsGoalOut,
    TransactionImportRequest,
    TransactionOut,
    validate_input,
)
from services import (
    AccountService,
    BudgetCategoryService,
    CustomCategoryService,
    ReconciliationService,
    RecurringBillService,
    SavingsGoalService,
    TransactionService,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Ledger")

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc), "errors": exc.errors})


@app.exception_handler(DuplicateError)
async def duplicate_error_handler(request: Request, exc: DuplicateError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"storage_error: path={request.url.path} error={exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def _parse_user_id(value: Optional[str], header: str) -> Optional[int]:
    if value is None or not value.strip():
        return None
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid {header} header") from exc
    if parsed <= 0:
        raise HTTPException(status_code=401, detail=f"Invalid {header} header")
    return parsed


def current_user_id(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_view_as_user: Optional[str] = Header(default=None),
) -> int:
    """Resolve whose data the request acts on.

    The identity headers are set by the authenticating proxy in front of the
    app. Dev and admin users may act as another user via ``x-view-as-user``.
    """
    user_id = _parse_user_id(x_user_id, "x-user-id")
    if user_id is None:
        raise HTTPException(status_code=401, detail="Missing user")
    view_as = _parse_user_id(x_view_as_user, "x-view-as-user")
    if view_as is None or view_as == user_id:
        return user_id
    try:
        role = UserRole(x_user_role or UserRole.user.value)
    except ValueError:
        role = UserRole.user
    if role not in (UserRole.dev, UserRole.admin):
        raise AuthorizationError("Only dev or admin users can view other users")
    logger.info(f"view_as_user: user_id={user_id} role={role.value} target={view_as}")
    return view_as


def period_from_request(request: Request) -> Optional[Period]:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end, today=local_today())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def type_from_request(request: Request) -> Optional[TransactionType]:
    type_param = request.query_params.get("type")
    if not type_param:
        return None
    try:
        return TransactionType(type_param)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid transaction type") from exc


def date_param(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}") from exc


def month_param(value: Optional[str]) -> Optional[date]:
    """Accept ``YYYY-MM`` or a full ISO date inside the month."""
    if value and len(value.strip()) == 7:
        return date_param(f"{value.strip()}-01", "month")
    return date_param(value, "month")


# Transactions


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    period = period_from_request(request)
    txn_type = type_from_request(request)
    return TransactionService(db, user_id).list_all(period, txn_type)


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return TransactionService(db, user_id).create(payload)


@app.post("/api/transactions/import", status_code=201)
def import_transactions(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    request_data = validate_input(TransactionImportRequest, payload)
    created = TransactionService(db, user_id).import_many(request_data.transactions)
    return {
        "count": len(created),
        "transactions": [TransactionOut.model_validate(txn) for txn in created],
    }


@app.post("/api/transactions/update-category")
def recategorize_transactions(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    data = validate_input(RecategorizeIn, payload)
    modified = TransactionService(db, user_id).bulk_recategorize(
        data.transaction_name, data.category
    )
    return {"modified_count": modified}


@app.get("/api/transactions/unique")
def unique_transaction_names(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    groups = TransactionService(db, user_id).unique_names()
    return [
        {
            "name": group.name,
            "count": group.count,
            "dominant_category": group.dominant_category,
            "is_mixed": group.is_mixed,
            "categories": group.categories,
            "samples": group.samples,
        }
        for group in groups
    ]


@app.get("/api/transactions/suggestions")
def suggest_category(
    name: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = TransactionService(db, user_id)
    return {
        "category": service.suggest_category(name),
        "suggestions": [asdict(s) for s in service.category_suggestions(name)],
    }


@app.get("/api/transactions/export.csv")
def export_transactions_endpoint(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    period = period_from_request(request)
    csv_text = TransactionService(db, user_id).export_csv(period)
    if period:
        filename = f"transactions_{period.start}_{period.end}.csv"
    else:
        filename = "transactions_all.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return TransactionService(db, user_id).get(transaction_id)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return TransactionService(db, user_id).update(transaction_id, payload)


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    TransactionService(db, user_id).delete(transaction_id)
    return {"success": True}


# Accounts


@app.get("/api/accounts", response_model=list[AccountOut])
def list_accounts(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    return AccountService(db, user_id).list_all()


@app.post("/api/accounts", response_model=AccountOut, status_code=201)
def create_account(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return AccountService(db, user_id).create(payload)


@app.get("/api/accounts/{account_id}", response_model=AccountOut)
def get_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return AccountService(db, user_id).get(account_id)


@app.put("/api/accounts/{account_id}", response_model=AccountOut)
def update_account(
    account_id: int,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return AccountService(db, user_id).update(account_id, payload)


@app.delete("/api/accounts/{account_id}")
def delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    AccountService(db, user_id).delete(account_id)
    return {"success": True}


# Budget categories


@app.get("/api/budget-categories", response_model=list[BudgetCategoryOut])
def list_budget_categories(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BudgetCategoryService(db, user_id).list_all(month_param(month))


@app.post("/api/budget-categories/{category_id}/recompute")
def recompute_budget_category(
    category_id: int,
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    spent = BudgetCategoryService(db, user_id).recompute(category_id, month_param(month))
    return {"id": category_id, "spent_cents": spent}


@app.post("/api/budget-categories", response_model=BudgetCategoryOut, status_code=201)
def create_budget_category(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BudgetCategoryService(db, user_id).create(payload)


@app.put("/api/budget-categories/{category_id}", response_model=BudgetCategoryOut)
def update_budget_category(
    category_id: int,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return BudgetCategoryService(db, user_id).update(category_id, payload)


@app.delete("/api/budget-categories/{category_id}")
def delete_budget_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    BudgetCategoryService(db, user_id).delete(category_id)
    return {"success": True}


# Savings goals


@app.get("/api/savings-goals", response_model=list[SavingsGoalOut])
def list_savings_goals(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return SavingsGoalService(db, user_id).list_all()


@app.get("/api/savings-goals/summary")
def savings_summary_endpoint(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return asdict(SavingsGoalService(db, user_id).summary())


@app.get("/api/savings-goals/{goal_id}/progress")
def savings_goal_progress(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return asdict(SavingsGoalService(db, user_id).progress(goal_id))


@app.post("/api/savings-goals", response_model=SavingsGoalOut, status_code=201)
def create_savings_goal(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SavingsGoalService(db, user_id).create(payload)


@app.put("/api/savings-goals/{goal_id}", response_model=SavingsGoalOut)
def update_savings_goal(
    goal_id: int,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return SavingsGoalService(db, user_id).update(goal_id, payload)


@app.delete("/api/savings-goals/{goal_id}")
def delete_savings_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    SavingsGoalService(db, user_id).delete(goal_id)
    return {"success": True}


# Recurring bills


@app.get("/api/recurring-bills", response_model=list[RecurringBillOut])
def list_recurring_bills(
    active: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return RecurringBillService(db, user_id).list_all(active_only=active)


@app.get("/api/recurring-bills/kpis")
def recurring_bill_kpis(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return asdict(RecurringBillService(db, user_id).kpis())


@app.post("/api/recurring-bills", response_model=RecurringBillOut, status_code=201)
def create_recurring_bill(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return RecurringBillService(db, user_id).create(payload)


@app.put("/api/recurring-bills/{bill_id}", response_model=RecurringBillOut)
def update_recurring_bill(
    bill_id: int,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return RecurringBillService(db, user_id).update(bill_id, payload)


@app.post("/api/recurring-bills/{bill_id}/mark-paid", response_model=RecurringBillOut)
def mark_recurring_bill_paid(
    bill_id: int,
    payload: Optional[dict[str, Any]] = Body(default=None),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    paid_on = validate_input(MarkPaidIn, payload).paid_on if payload else None
    return RecurringBillService(db, user_id).mark_paid(bill_id, paid_on)


@app.delete("/api/recurring-bills/{bill_id}")
def delete_recurring_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    RecurringBillService(db, user_id).delete(bill_id)
    return {"success": True}


# Custom categories


@app.get("/api/custom-categories", response_model=list[CustomCategoryOut])
def list_custom_categories(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return CustomCategoryService(db, user_id).list_all()


@app.post("/api/custom-categories", response_model=CustomCategoryOut, status_code=201)
def create_custom_category(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return CustomCategoryService(db, user_id).create(payload)


@app.delete("/api/custom-categories/{name}")
def delete_custom_category(
    name: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CustomCategoryService(db, user_id).delete(name)
    return {"success": True}


@app.post("/api/reconcile")
def reconcile(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    return ReconciliationService(db, user_id).run()


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
