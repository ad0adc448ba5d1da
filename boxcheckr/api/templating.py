from __future__ import annotations

from datetime import datetime
from pathlib import Path

from fastapi.templating import Jinja2Templates

from boxcheckr.models.base import utcnow

TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates"


def format_dt(value: datetime | None, fmt: str = "%b %d, %Y %H:%M UTC") -> str:
    if value is None:
        return "Never"
    return value.strftime(fmt)


templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
templates.env.filters["dt"] = format_dt
templates.env.globals["now"] = utcnow


def is_htmx(request) -> bool:
    return request.headers.get("hx-request") == "true"
