import json
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder for template values and task outputs."""

    def default(self, obj):
        from jinja2 import Undefined
        if isinstance(obj, Undefined):
            return None
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json", by_alias=True)
        return super().default(obj)


def to_json(data, indent=None) -> str:
    return json.dumps(data, cls=DateTimeEncoder, ensure_ascii=False, indent=indent)
