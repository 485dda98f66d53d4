"""
Sequential code generation for journal entry numbers and child account codes
"""
from typing import Iterable, Optional
from sqlalchemy.orm import Session

from obraledger.models import Account, JournalEntry


def next_sequence(values: Iterable[Optional[str]], width: int) -> str:
    """Return max(numeric values) + 1, zero padded; non numeric values are ignored"""
    highest = 0
    for value in values:
        if not value:
            continue
        try:
            number = int(value)
        except ValueError:
            continue
        highest = max(highest, number)
    return f"{highest + 1:0{width}d}"


class CodeService:
    ENTRY_NUMBER_WIDTH = 6
    CHILD_CODE_WIDTH = 2

    def __init__(self, db: Session):
        self.db = db

    def next_entry_number(self, organization_id: int) -> str:
        numbers = self.db.query(JournalEntry.entry_number).filter(
            JournalEntry.organization_id == organization_id
        ).distinct().all()
        return next_sequence((row[0] for row in numbers), self.ENTRY_NUMBER_WIDTH)

    def next_child_code(self, parent: Account) -> str:
        """1.1 -> 1.1.07 when 1.1.06 is the highest child code"""
        prefix = f"{parent.code}."
        codes = self.db.query(Account.code).filter(
            Account.organization_id == parent.organization_id,
            Account.parent_id == parent.id
        ).all()
        suffixes = [
            code[len(prefix):] for (code,) in codes
            if code.startswith(prefix) and "." not in code[len(prefix):]
        ]
        return f"{prefix}{next_sequence(suffixes, self.CHILD_CODE_WIDTH)}"
