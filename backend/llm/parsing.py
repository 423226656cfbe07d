from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

SYSTEM_DATA_DELIMITER = "---SYSTEM_DATA_FOLLOWS---"
LEGACY_DELIMITER = "SYSTEM_UPDATE:"

JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)
DATA_REQUEST_PATTERN = re.compile(r"SW5E_DATA_REQUEST:\s*([a-zA-Z0-9.-]+)")


class ResponseParseError(ValueError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to parse response: {detail}")
        self.detail = detail


@dataclass(frozen=True)
class SplitResponse:
    narrative: str
    system_text: str | None
    delimiter: str | None


@dataclass(frozen=True)
class DataRequest:
    category: str
    item_id: str | None


def split_response(text: str) -> SplitResponse:
    raw = text or ""
    for delimiter in (SYSTEM_DATA_DELIMITER, LEGACY_DELIMITER):
        if delimiter in raw:
            narrative, _, system_text = raw.partition(delimiter)
            return SplitResponse(
                narrative=narrative.strip(),
                system_text=system_text.strip(),
                delimiter=delimiter,
            )
    return SplitResponse(narrative=raw.strip(), system_text=None, delimiter=None)


def extract_json(text: str) -> dict[str, Any]:
    match = JSON_OBJECT_PATTERN.search(text or "")
    if match is None:
        raise ResponseParseError("no JSON object found")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"{exc.msg} at line {exc.lineno} column {exc.colno}") from exc
    if not isinstance(data, dict):
        raise ResponseParseError("system data is not a JSON object")
    return data


def parse_whole_text(text: str) -> dict[str, Any] | None:
    stripped = (text or "").strip()
    if not stripped.startswith("{"):
        return None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def find_data_requests(text: str) -> list[DataRequest]:
    requests = []
    for match in DATA_REQUEST_PATTERN.finditer(text or ""):
        category, _, item_id = match.group(1).partition(".")
        requests.append(DataRequest(category=category, item_id=item_id or None))
    return requests
