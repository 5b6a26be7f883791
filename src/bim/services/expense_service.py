from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from bim.domain.errors import ValidationError
from bim.domain.models import Expense
from bim.domain.money import to_money
from bim.services.customer_service import store_upload


class ExpenseService:
    def __init__(self, repo, uploads_dir: Path | str):
        self.repo = repo
        self.uploads_dir = Path(uploads_dir)

    def list_expenses(self) -> list[Expense]:
        return self.repo.list_expenses()

    def add_expense(
        self,
        description: str,
        amount,
        category: str,
        date: Optional[str] = None,
        attachment: Optional[tuple[str, bytes]] = None,
    ) -> Expense:
        description = (description or "").strip()
        category = (category or "").strip()
        if not description:
            raise ValidationError("Description is required.")
        if not category:
            raise ValidationError("Category is required.")
        amount = to_money(amount, "Amount")
        if amount < 0:
            raise ValidationError("Amount must be >= 0.")
        if date:
            try:
                date_iso = datetime.fromisoformat(date.strip()).date().isoformat()
            except ValueError as e:
                raise ValidationError(f"Invalid date: {date}") from e
        else:
            date_iso = datetime.now().date().isoformat()

        expense_id = self.repo.add_expense(description, amount, date_iso, category)

        if attachment is not None:
            filename, content = attachment
            target_dir = self.uploads_dir / "expenses" / str(expense_id)
            target_dir.mkdir(parents=True, exist_ok=True)
            target = store_upload(target_dir, filename, content)
            self.repo.set_expense_attachment(expense_id, str(target.relative_to(self.uploads_dir)))

        return next(e for e in self.repo.list_expenses() if e.id == expense_id)
