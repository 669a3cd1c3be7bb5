"""
Finance company priority ordering for clinic settings.

Priorities are 1-based positions in the list; every change renumbers the
whole list.
"""

from typing import List, Sequence

from ..models import FinanceCompany


def renumber(companies: Sequence[FinanceCompany]) -> List[FinanceCompany]:
    return [
        company.model_copy(update={"priority": index})
        for index, company in enumerate(companies, start=1)
    ]


def reorder(companies: Sequence[FinanceCompany], source: int, destination: int) -> List[FinanceCompany]:
    """
    Move the company at ``source`` to ``destination`` (both 0-based).

    Raises:
        IndexError: If ``source`` is out of range
    """
    items = list(companies)
    moved = items.pop(source)
    items.insert(destination, moved)
    return renumber(items)


def apply_priority_edit(
    companies: Sequence[FinanceCompany], edited: FinanceCompany
) -> List[FinanceCompany]:
    """
    Apply an edited company to the list.

    A changed priority moves the company to that position and renumbers the
    list; otherwise the company is replaced where it is.
    """
    current = next((c for c in companies if c.id == edited.id), None)
    old_priority = current.priority if current is not None else 1

    if old_priority != edited.priority:
        items = [c for c in companies if c.id != edited.id]
        items.insert(max(edited.priority - 1, 0), edited)
        return renumber(items)

    return [edited if c.id == edited.id else c for c in companies]
