from __future__ import annotations

from datetime import date as date_cls
from typing import Optional

from bim.domain.errors import ValidationError
from bim.domain.models import Employee
from bim.domain.money import to_money


class PersonnelService:
    def __init__(self, repo):
        self.repo = repo

    def list_employees(self) -> list[Employee]:
        return self.repo.list_employees()

    def add_employee(
        self,
        name: str,
        position: str,
        email: str,
        phone: str,
        salary,
        hire_date: Optional[str] = None,
    ) -> Employee:
        name = (name or "").strip()
        position = (position or "").strip()
        if not name or not position:
            raise ValidationError("Name and position are required.")
        salary = to_money(salary, "Salary")
        if salary < 0:
            raise ValidationError("Salary must be >= 0.")
        if hire_date:
            try:
                hire_iso = date_cls.fromisoformat(hire_date.strip()).isoformat()
            except ValueError as e:
                raise ValidationError(f"Invalid hire date: {hire_date}") from e
        else:
            hire_iso = date_cls.today().isoformat()

        eid = self.repo.add_employee(name, position, (email or "").strip(), (phone or "").strip(), salary, hire_iso)
        return next(e for e in self.repo.list_employees() if e.id == eid)
