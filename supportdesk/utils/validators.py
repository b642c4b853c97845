# supportdesk/utils/validators.py
from typing import Iterable, List, Union
from urllib.parse import urlparse
from uuid import UUID

from supportdesk.utils.exceptions import InvalidInput


def parse_uuid(value: Union[str, UUID, None], field: str = "id") -> UUID:
    """Validate UUID format."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid UUID for {field}: {value}", {"field": field})


def parse_uuid_list(values: Iterable[Union[str, UUID]], field: str = "ids") -> List[UUID]:
    return [parse_uuid(value, field) for value in values]


def validate_http_url(url: str) -> str:
    """Only absolute http(s) URLs can be crawled."""
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidInput(f"URL must be http(s): {url}", {"field": "url"})
    return url.strip()
