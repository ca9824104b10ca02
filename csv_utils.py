import csv
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Optional, Sequence

from pydantic import ValidationError
from rapidfuzz.distance import Levenshtein

from entities import Account, Category, Transaction
from models import TransactionType
from schemas import TransactionIn

logger = logging.getLogger(__name__)

IMPORT_HEADERS = ["date", "description", "amount", "type", "category", "account"]
REQUIRED_HEADERS = {"date", "description", "amount"}
EXPORT_HEADERS = ["Date", "Description", "Amount", "Type", "Category", "Account"]


class CSVFormatError(ValueError):
    pass


@dataclass
class ImportRow:
    description: str
    amount: Decimal
    date: date
    type: TransactionType
    category: Optional[str]
    account: Optional[str]
    suggested_type: TransactionType
    suggested_category: Optional[str]
    is_selected: bool = True


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_date(value: str) -> date:
    value = value.strip()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return datetime.strptime(value, "%d.%m.%Y").date()


def parse_amount(value: str) -> Decimal:
    """Signed amount from a CSV cell; anything unparseable counts as zero."""
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation:
        return Decimal("0")
    if not amount.is_finite():
        return Decimal("0")
    return amount


def read_rows(content: str) -> list[dict[str, str]]:
    """Rows keyed by lower-cased header; rows without description or amount are dropped."""
    try:
        records = [row for row in csv.reader(StringIO(content)) if any(c.strip() for c in row)]
    except csv.Error as exc:
        raise CSVFormatError(f"Could not parse CSV: {exc}") from exc
    if not records:
        raise CSVFormatError("CSV file is empty")
    headers = [h.strip().lower() for h in records[0]]
    missing = REQUIRED_HEADERS - set(headers)
    if missing:
        raise CSVFormatError(f"Missing columns: {', '.join(sorted(missing))}")

    rows: list[dict[str, str]] = []
    for values in records[1:]:
        row = {
            header: (values[idx].strip() if idx < len(values) else "")
            for idx, header in enumerate(headers)
        }
        if not row.get("description") or not row.get("amount"):
            continue
        rows.append(row)
    return rows


def match_category(name: str, categories: Sequence[Category]) -> Optional[str]:
    wanted = name.strip().lower()
    if not wanted:
        return None
    for category in categories:
        if category.name.lower() == wanted or category.id == name.strip():
            return category.id

    best_distance: Optional[int] = None
    best: list[Category] = []
    for category in categories:
        dist = int(Levenshtein.distance(wanted, category.name.strip().lower()))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [category]
        elif dist == best_distance:
            best.append(category)
    if best_distance is not None and best_distance <= 1:
        if len(best) > 1:
            options = ", ".join(sorted({c.name for c in best}))
            logger.info(f"csv_category_ambiguous: value={name!r} matches={options}")
            return None
        return best[0].id
    return None


def suggest_category(description: str, categories: Sequence[Category]) -> Optional[str]:
    text = description.lower()
    for category in categories:
        if category.name.lower() in text:
            return category.id
    return None


def resolve_account(value: str, accounts: Sequence[Account]) -> Optional[str]:
    wanted = value.strip().lower()
    if wanted:
        for account in accounts:
            if account.id == value.strip() or account.name.lower() == wanted:
                return account.id
    return accounts[0].id if accounts else None


def build_import_rows(
    content: str,
    categories: Sequence[Category],
    accounts: Sequence[Account],
    *,
    today: Optional[date] = None,
) -> list[ImportRow]:
    today = today or date.today()
    rows: list[ImportRow] = []
    for idx, raw in enumerate(read_rows(content), start=1):
        raw_amount = parse_amount(raw["amount"])
        suggested_type = (
            TransactionType.income if raw_amount > 0 else TransactionType.expense
        )
        description = raw["description"]
        suggested_category = None
        if raw.get("category"):
            suggested_category = match_category(raw["category"], categories)
        if suggested_category is None:
            suggested_category = suggest_category(description, categories)
        try:
            day = parse_date(raw["date"]) if raw.get("date") else today
        except ValueError as exc:
            raise CSVFormatError(f"Row {idx}: invalid date '{raw['date']}'") from exc
        rows.append(
            ImportRow(
                description=description,
                amount=abs(raw_amount),
                date=day,
                type=suggested_type,
                category=suggested_category,
                account=resolve_account(raw.get("account", ""), accounts),
                suggested_type=suggested_type,
                suggested_category=suggested_category,
            )
        )
    return rows


def rows_to_transactions(
    rows: Sequence[ImportRow], categories: Sequence[Category]
) -> list[TransactionIn]:
    """Validate the selected rows up front so a bad row leaves the store untouched."""
    fallback_category = categories[0].id if categories else ""
    payloads: list[TransactionIn] = []
    errors: list[str] = []
    for idx, row in enumerate(rows, start=1):
        if not row.is_selected:
            continue
        try:
            payloads.append(
                TransactionIn(
                    description=row.description,
                    amount=row.amount,
                    date=row.date,
                    category=row.category or fallback_category,
                    type=row.type,
                    account=row.account or "",
                )
            )
        except ValidationError as exc:
            fields = ", ".join(str(err["loc"][0]) for err in exc.errors())
            errors.append(f"Row {idx}: invalid {fields}")
    if errors:
        raise CSVFormatError("; ".join(errors))
    return payloads


def export_transactions(
    transactions: Sequence[Transaction],
    categories: Sequence[Category],
    accounts: Sequence[Account],
) -> str:
    category_names = {c.id: c.name for c in categories}
    account_names = {a.id: a.name for a in accounts}
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_HEADERS)
    for txn in transactions:
        writer.writerow(
            [
                txn.date.isoformat(),
                sanitize_csv_value(txn.description),
                f"{txn.amount:.2f}",
                txn.type.value,
                sanitize_csv_value(category_names.get(txn.category, "")),
                sanitize_csv_value(account_names.get(txn.account, "")),
            ]
        )
    return output.getvalue()


def import_template() -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(IMPORT_HEADERS)
    writer.writerow(["2024-01-01", "Sample Transaction", "-100.00", "expense", "Food", "Main Account"])
    writer.writerow(["2024-01-02", "Salary", "2500.00", "income", "Salary", "Main Account"])
    return output.getvalue()
