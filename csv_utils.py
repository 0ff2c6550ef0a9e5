import csv
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from io import StringIO
from typing import Sequence, Union

from models import Transaction, TransactionStatus


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
        r"^bash\s*",
        r"^sh\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_amount(value: str, *, allow_negative: bool = False) -> int:
    clean = value.strip().replace("C$", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", "")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    return to_cents(amount, allow_negative=allow_negative)


def to_cents(value: Union[Decimal, int, str], *, allow_negative: bool = False) -> int:
    """Major units (dollars) to integer cents, rounding half up."""
    if isinstance(value, str):
        return parse_amount(value, allow_negative=allow_negative)
    amount = Decimal(value)
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    whole, rest = divmod(abs(cents), 100)
    return f"{sign}{whole}.{rest:02d}"


def export_transactions(transactions: Sequence[Transaction], currency: str = "C$") -> str:
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL)
    writer.writerow(
        ["ID", "Name", "Category", "Type", f"Amount ({currency})", "Date", "Time", "Status"]
    )
    for txn in transactions:
        status = txn.status or TransactionStatus.completed
        writer.writerow(
            [
                str(txn.id),
                sanitize_csv_value(txn.name),
                sanitize_csv_value(txn.category),
                txn.type.value,
                format_cents(txn.amount_cents),
                txn.date.isoformat(),
                txn.time or "",
                status.value,
            ]
        )
    return output.getvalue()
