from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from timeclock.schemas import PageRead
from timeclock.services.common import Page


def page_response(page: Page[Any], schema: type[BaseModel]) -> PageRead[Any]:
    return PageRead[schema](  # type: ignore[valid-type]
        items=[schema.model_validate(item) for item in page.items],
        total=page.total,
        page=page.page,
        per_page=page.per_page,
    )
