import logging
import threading
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterator, Literal, Optional

from fastapi import (
    APIRouter,
    Body,
    Depends,
    FastAPI,
    File,
    Form,
    Header,
    HTTPException,
    Query,
    Request,
    UploadFile,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import ValidationError

import aggregates
from alerts import AlertGenerator
from backup import ImportMode, backup_filename, export_backup, import_backup
from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from csv_utils import (
    build_import_rows,
    export_transactions,
    import_template,
    rows_to_transactions,
)
from database import make_engine, make_session_factory
from persistence import StateRepository, load_store
from recurrence import local_today, upcoming
from scheduler import SchedulerManager
from schemas import (
    AccountIn,
    AccountUpdate,
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    FilterOptions,
    GoalIn,
    GoalUpdate,
    LoginIn,
    SubcategoryIn,
    TransactionIn,
    TransactionUpdate,
    UserIn,
)
from store import Store

logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


class AppContext:
    def __init__(self, store: Store, repository: StateRepository) -> None:
        self.store = store
        self.repository = repository
        self.lock = threading.Lock()

    @contextmanager
    def mutate(self) -> Iterator[Store]:
        with self.lock:
            yield self.store
            self.repository.save(self.store.snapshot())


def build_context() -> AppContext:
    settings = get_settings()
    factory = make_session_factory(make_engine(settings.database_url))
    repository = StateRepository(factory, settings.storage_key)
    return AppContext(load_store(repository), repository)


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def require_csrf(x_csrf_token: Optional[str] = Header(default=None)) -> None:
    if not validate_csrf_token(x_csrf_token):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")


def filters_from_request(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    txn_type: Optional[str] = Query(default=None, alias="type"),
    category: list[str] = Query(default=[]),
    account: list[str] = Query(default=[]),
    amount_min: Optional[Decimal] = None,
    amount_max: Optional[Decimal] = None,
    q: Optional[str] = None,
) -> FilterOptions:
    try:
        return FilterOptions(
            date_from=date_from,
            date_to=date_to,
            type=txn_type or None,
            categories=category or None,
            accounts=account or None,
            amount_min=amount_min,
            amount_max=amount_max,
            search=q or None,
        )
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


async def read_upload(file: UploadFile) -> str:
    try:
        return (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="File must be UTF-8 text") from exc


def not_found(kind: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{kind} not found")


router = APIRouter(prefix="/api")
mutating = [Depends(require_csrf)]


@router.get("/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


@router.get("/csrf")
def csrf_token():
    return {"token": generate_csrf_token()}


# Session


@router.get("/session")
def session_state(ctx: AppContext = Depends(get_context)):
    state = ctx.store.state
    return {
        "user": state.user,
        "is_authenticated": state.is_authenticated,
        "theme": state.theme,
        "sidebar_open": state.sidebar_open,
        "current_filters": state.current_filters,
    }


@router.post("/login", dependencies=mutating)
def login(data: LoginIn, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        if store.state.user is None:
            store.set_user(UserIn(name=data.email.split("@", 1)[0], email=data.email))
        store.set_authenticated(True)
    return {"is_authenticated": True, "user": ctx.store.state.user}


@router.post("/logout", dependencies=mutating)
def logout(ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        store.set_authenticated(False)
    return {"is_authenticated": False}


@router.put("/settings/user", dependencies=mutating)
def update_user(data: UserIn, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        return store.set_user(data)


@router.post("/settings/theme", dependencies=mutating)
def toggle_theme(ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        return {"theme": store.toggle_theme()}


@router.post("/settings/sidebar", dependencies=mutating)
def set_sidebar(
    sidebar_open: bool = Body(..., embed=True, alias="open"),
    ctx: AppContext = Depends(get_context),
):
    with ctx.lock:
        ctx.store.set_sidebar_open(sidebar_open)
    return {"sidebar_open": sidebar_open}


@router.put("/filters", dependencies=mutating)
def set_filters(filters: FilterOptions, ctx: AppContext = Depends(get_context)):
    with ctx.lock:
        ctx.store.set_filters(filters)
    return filters


@router.delete("/filters", status_code=204, dependencies=mutating)
def clear_filters(ctx: AppContext = Depends(get_context)):
    with ctx.lock:
        ctx.store.clear_filters()
    return Response(status_code=204)


# Dashboard and reports


@router.get("/dashboard")
def dashboard(ctx: AppContext = Depends(get_context)):
    store = ctx.store
    today = local_today()
    income = store.get_total_income("month", today=today)
    expenses = store.get_total_expenses("month", today=today)
    active_goals = [g for g in store.goals if not g.is_completed][:3]
    return {
        "total_balance": store.get_total_balance(),
        "monthly_income": income,
        "monthly_expenses": expenses,
        "monthly_net": income - expenses,
        "recent_transactions": aggregates.recent_transactions(store.transactions),
        "category_spending": aggregates.category_spending_chart(
            store.transactions, store.categories
        ),
        "monthly_trend": aggregates.monthly_trend(store.transactions, today=today),
        "active_goals": [aggregates.goal_progress(g, today=today) for g in active_goals],
    }


@router.get("/reports")
def report(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    category: Optional[str] = None,
    account: Optional[str] = None,
    ctx: AppContext = Depends(get_context),
):
    filters = FilterOptions(
        date_from=date_from,
        date_to=date_to,
        categories=[category] if category and category != "all" else None,
        accounts=[account] if account and account != "all" else None,
    )
    return aggregates.build_report(ctx.store.transactions, ctx.store.categories, filters)


# Transactions


@router.get("/transactions")
def list_transactions(
    filters: FilterOptions = Depends(filters_from_request),
    ctx: AppContext = Depends(get_context),
):
    return ctx.store.get_filtered_transactions(filters)


@router.post("/transactions", status_code=201, dependencies=mutating)
def create_transaction(data: TransactionIn, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        if store.get_account(data.account) is None:
            raise HTTPException(status_code=400, detail="Account not found")
        return store.add_transaction(data)


@router.patch("/transactions/{transaction_id}", dependencies=mutating)
def update_transaction(
    transaction_id: str, changes: TransactionUpdate, ctx: AppContext = Depends(get_context)
):
    with ctx.mutate() as store:
        updated = store.update_transaction(transaction_id, changes)
    if updated is None:
        raise not_found("Transaction")
    return updated


@router.delete("/transactions/{transaction_id}", status_code=204, dependencies=mutating)
def delete_transaction(transaction_id: str, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        removed = store.delete_transaction(transaction_id)
    if not removed:
        raise not_found("Transaction")
    return Response(status_code=204)


@router.get("/transactions/recurring")
def recurring_transactions(ctx: AppContext = Depends(get_context)):
    return [
        {"transaction": txn, "next_due": due}
        for txn, due in upcoming(ctx.store.transactions)
    ]


@router.get("/transactions/export.csv")
def export_csv(
    filters: FilterOptions = Depends(filters_from_request),
    ctx: AppContext = Depends(get_context),
):
    store = ctx.store
    csv_text = export_transactions(
        store.get_filtered_transactions(filters), store.categories, store.accounts
    )
    filename = f"transactions_{local_today().isoformat()}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/transactions/import/template")
def csv_template():
    return StreamingResponse(
        iter([import_template()]),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transaction-template.csv"'},
    )


@router.post("/transactions/import/preview", dependencies=mutating)
async def import_preview(file: UploadFile = File(...), ctx: AppContext = Depends(get_context)):
    content = await read_upload(file)
    try:
        rows = build_import_rows(content, ctx.store.categories, ctx.store.accounts)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"rows": rows}


@router.post("/transactions/import/commit", dependencies=mutating)
async def import_commit(
    file: UploadFile = File(...),
    skip: list[int] = Form(default=[]),
    ctx: AppContext = Depends(get_context),
):
    content = await read_upload(file)
    with ctx.mutate() as store:
        try:
            rows = build_import_rows(content, store.categories, store.accounts)
            for index in skip:
                if 0 <= index < len(rows):
                    rows[index].is_selected = False
            payloads = rows_to_transactions(rows, store.categories)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        created = [store.add_transaction(payload) for payload in payloads]
    logger.info(f"csv_import: rows={len(rows)} imported={len(created)}")
    return {"imported": len(created)}


# Categories


@router.get("/categories")
def list_categories(ctx: AppContext = Depends(get_context)):
    return ctx.store.categories


@router.post("/categories", status_code=201, dependencies=mutating)
def create_category(data: CategoryIn, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        return store.add_category(data)


@router.patch("/categories/{category_id}", dependencies=mutating)
def update_category(
    category_id: str, changes: CategoryUpdate, ctx: AppContext = Depends(get_context)
):
    with ctx.mutate() as store:
        updated = store.update_category(category_id, changes)
    if updated is None:
        raise not_found("Category")
    return updated


@router.delete("/categories/{category_id}", status_code=204, dependencies=mutating)
def delete_category(category_id: str, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        removed = store.delete_category(category_id)
    if not removed:
        raise not_found("Category")
    return Response(status_code=204)


@router.post("/categories/{category_id}/subcategories", status_code=201, dependencies=mutating)
def add_subcategory(
    category_id: str, data: SubcategoryIn, ctx: AppContext = Depends(get_context)
):
    with ctx.mutate() as store:
        category = next((c for c in store.categories if c.id == category_id), None)
        if category is None:
            raise not_found("Category")
        existing = [SubcategoryIn(**sub.model_dump()) for sub in category.subcategories]
        return store.update_category(
            category_id, CategoryUpdate(subcategories=[*existing, data])
        )


@router.delete(
    "/categories/{category_id}/subcategories/{subcategory_id}",
    dependencies=mutating,
)
def delete_subcategory(
    category_id: str, subcategory_id: str, ctx: AppContext = Depends(get_context)
):
    with ctx.mutate() as store:
        category = next((c for c in store.categories if c.id == category_id), None)
        if category is None or all(s.id != subcategory_id for s in category.subcategories):
            raise not_found("Subcategory")
        remaining = [
            SubcategoryIn(**sub.model_dump())
            for sub in category.subcategories
            if sub.id != subcategory_id
        ]
        return store.update_category(category_id, CategoryUpdate(subcategories=remaining))


# Accounts


@router.get("/accounts")
def list_accounts(ctx: AppContext = Depends(get_context)):
    return {
        "accounts": ctx.store.accounts,
        "total_balance": ctx.store.get_total_balance(),
    }


@router.get("/accounts/{account_id}/transactions")
def account_transactions(account_id: str, ctx: AppContext = Depends(get_context)):
    if ctx.store.get_account(account_id) is None:
        raise not_found("Account")
    return {
        "balance": ctx.store.get_account_balance(account_id),
        "transactions": ctx.store.get_transactions_by_account(account_id),
    }


@router.post("/accounts", status_code=201, dependencies=mutating)
def create_account(data: AccountIn, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        return store.add_account(data)


@router.patch("/accounts/{account_id}", dependencies=mutating)
def update_account(
    account_id: str, changes: AccountUpdate, ctx: AppContext = Depends(get_context)
):
    with ctx.mutate() as store:
        updated = store.update_account(account_id, changes)
    if updated is None:
        raise not_found("Account")
    return updated


@router.delete("/accounts/{account_id}", status_code=204, dependencies=mutating)
def delete_account(account_id: str, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        removed = store.delete_account(account_id)
    if not removed:
        raise not_found("Account")
    return Response(status_code=204)


# Budgets


@router.get("/budgets")
def list_budgets(ctx: AppContext = Depends(get_context)):
    store = ctx.store
    today = local_today()
    progress = [
        aggregates.budget_progress(b, store.transactions, store.categories, today=today)
        for b in store.budgets
    ]
    return {
        "budgets": [
            {
                "budget": p.budget,
                "category": p.category.name if p.category else None,
                "spent": p.spent,
                "percentage": p.percentage,
                "display_percentage": p.display_percentage,
                "remaining": p.remaining,
                "is_over_budget": p.is_over_budget,
                "is_near_limit": p.is_near_limit,
            }
            for p in progress
        ],
        "summary": aggregates.budget_summary(store.budgets, progress),
    }


@router.post("/budgets", status_code=201, dependencies=mutating)
def create_budget(data: BudgetIn, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        return store.add_budget(data)


@router.patch("/budgets/{budget_id}", dependencies=mutating)
def update_budget(budget_id: str, changes: BudgetUpdate, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        updated = store.update_budget(budget_id, changes)
    if updated is None:
        raise not_found("Budget")
    return updated


@router.delete("/budgets/{budget_id}", status_code=204, dependencies=mutating)
def delete_budget(budget_id: str, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        removed = store.delete_budget(budget_id)
    if not removed:
        raise not_found("Budget")
    return Response(status_code=204)


# Goals


@router.get("/goals")
def list_goals(
    status: Literal["all", "active", "completed"] = "all",
    ctx: AppContext = Depends(get_context),
):
    goals = ctx.store.goals
    if status == "active":
        shown = [g for g in goals if not g.is_completed]
    elif status == "completed":
        shown = [g for g in goals if g.is_completed]
    else:
        shown = list(goals)
    today = local_today()
    return {
        "goals": [aggregates.goal_progress(g, today=today) for g in shown],
        "summary": aggregates.goals_summary(goals),
    }


@router.post("/goals", status_code=201, dependencies=mutating)
def create_goal(data: GoalIn, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        return store.add_goal(data)


@router.patch("/goals/{goal_id}", dependencies=mutating)
def update_goal(goal_id: str, changes: GoalUpdate, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        updated = store.update_goal(goal_id, changes)
    if updated is None:
        raise not_found("Goal")
    return updated


@router.post("/goals/{goal_id}/complete", dependencies=mutating)
def complete_goal(goal_id: str, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        updated = store.update_goal(goal_id, GoalUpdate(is_completed=True))
    if updated is None:
        raise not_found("Goal")
    return updated


@router.delete("/goals/{goal_id}", status_code=204, dependencies=mutating)
def delete_goal(goal_id: str, ctx: AppContext = Depends(get_context)):
    with ctx.mutate() as store:
        removed = store.delete_goal(goal_id)
    if not removed:
        raise not_found("Goal")
    return Response(status_code=204)


# Alerts


@router.get("/alerts")
def list_alerts(
    status: Literal["all", "unread", "read"] = "all",
    ctx: AppContext = Depends(get_context),
):
    alerts = ctx.store.alerts
    if status == "unread":
        shown = [a for a in alerts if not a.is_read]
    elif status == "read":
        shown = [a for a in alerts if a.is_read]
    else:
        shown = list(alerts)
    counts: dict[str, int] = {}
    for alert in alerts:
        counts[alert.type.value] = counts.get(alert.type.value, 0) + 1
    return {
        "alerts": shown,
        "unread_count": sum(1 for a in alerts if not a.is_read),
        "counts_by_type": counts,
    }


@router.post("/alerts/scan", dependencies=mutating)
def scan_alerts(ctx: AppContext = Depends(get_context)):
    settings = get_settings()
    with ctx.lock:
        created = AlertGenerator(
            ctx.store,
            goal_reminder_days=settings.goal_reminder_days,
            bill_due_days=settings.bill_due_days,
        ).run()
    return {"created": created}


@router.post("/alerts/{alert_id}/read", dependencies=mutating)
def mark_alert_read(alert_id: str, ctx: AppContext = Depends(get_context)):
    with ctx.lock:
        found = ctx.store.mark_alert_as_read(alert_id)
    if not found:
        raise not_found("Alert")
    return {"id": alert_id, "is_read": True}


@router.delete("/alerts/{alert_id}", status_code=204, dependencies=mutating)
def delete_alert(alert_id: str, ctx: AppContext = Depends(get_context)):
    with ctx.lock:
        removed = ctx.store.delete_alert(alert_id)
    if not removed:
        raise not_found("Alert")
    return Response(status_code=204)


@router.delete("/alerts", status_code=204, dependencies=mutating)
def clear_alerts(ctx: AppContext = Depends(get_context)):
    with ctx.lock:
        ctx.store.clear_alerts()
    return Response(status_code=204)


# Backup


@router.get("/backup")
def download_backup(ctx: AppContext = Depends(get_context)):
    return JSONResponse(
        export_backup(ctx.store),
        headers={"Content-Disposition": f'attachment; filename="{backup_filename()}"'},
    )


@router.post("/backup", dependencies=mutating)
async def restore_backup(
    file: UploadFile = File(...),
    mode: ImportMode = Form(ImportMode.replace),
    ctx: AppContext = Depends(get_context),
):
    content = await read_upload(file)
    with ctx.mutate() as store:
        try:
            counts = import_backup(store, content, mode)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"mode": mode.value, "imported": counts}


def create_app(
    context: Optional[AppContext] = None, *, enable_scheduler: bool = True
) -> FastAPI:
    app = FastAPI(title="Finance Tracker", version=APP_VERSION)
    app.state.context = context or build_context()
    app.include_router(router)

    if enable_scheduler:
        scheduler_manager = SchedulerManager(app.state.context.store, app.state.context.lock)

        @app.on_event("startup")
        def startup_event():
            scheduler_manager.start()

        @app.on_event("shutdown")
        def shutdown_event():
            scheduler_manager.stop()

    return app


def main():
    import uvicorn

    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
