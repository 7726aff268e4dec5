"""Row store: spreadsheet tabs used as header-plus-rows tables.

Row numbers are 1-based and row 1 always holds the header, so the first data
row is row 2. Every cell is written and read back as a string; callers own
any type coercion.
"""

import copy
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx
from authlib.integrations.httpx_client import AssertionClient

from lending_library.config import Settings, settings

logger = logging.getLogger(__name__)

SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

Row = List[str]


def column_letter(index: int) -> str:
    """Translate a zero-based column index into spreadsheet letters (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"Column index must be >= 0, got {index}")
    letters = ""
    n = index
    while n >= 0:
        letters = chr(ord("A") + n % 26) + letters
        n = n // 26 - 1
    return letters


def to_cell(value: Any) -> str:
    return "" if value is None else str(value)


class RowStore(ABC):
    """Table interface over a spreadsheet: read-all, append, overwrite, delete."""

    @abstractmethod
    def read_table(self, name: str) -> List[Row]:
        """Return every row of the table, header included at index 0."""

    @abstractmethod
    def append_row(self, name: str, values: Sequence[Any]) -> None:
        ...

    @abstractmethod
    def append_rows(self, name: str, rows: Sequence[Sequence[Any]]) -> None:
        """Append all rows with a single write; an empty batch writes nothing."""

    @abstractmethod
    def update_row(self, name: str, row_number: int, values: Sequence[Any]) -> None:
        ...

    @abstractmethod
    def update_cell(self, name: str, row_number: int, col_index: int, value: Any) -> None:
        ...

    @abstractmethod
    def delete_row(self, name: str, row_number: int) -> None:
        ...

    @abstractmethod
    def ensure_table(self, name: str, header: Sequence[str]) -> bool:
        """Create the table and its header row if missing. Returns True when anything was written."""


class MemoryRowStore(RowStore):
    """Process-local tables with the same addressing rules as the spreadsheet."""

    def __init__(self, tables: Optional[Dict[str, List[Sequence[Any]]]] = None) -> None:
        self.tables: Dict[str, List[Row]] = {}
        for name, rows in (tables or {}).items():
            self.tables[name] = [[to_cell(v) for v in row] for row in rows]

    def read_table(self, name: str) -> List[Row]:
        return copy.deepcopy(self.tables.get(name, []))

    def append_row(self, name: str, values: Sequence[Any]) -> None:
        self.tables.setdefault(name, []).append([to_cell(v) for v in values])

    def append_rows(self, name: str, rows: Sequence[Sequence[Any]]) -> None:
        if not rows:
            return
        table = self.tables.setdefault(name, [])
        table.extend([to_cell(v) for v in row] for row in rows)

    def update_row(self, name: str, row_number: int, values: Sequence[Any]) -> None:
        row = self._row(name, row_number)
        for i, value in enumerate(values):
            if i < len(row):
                row[i] = to_cell(value)
            else:
                row.append(to_cell(value))

    def update_cell(self, name: str, row_number: int, col_index: int, value: Any) -> None:
        row = self._row(name, row_number)
        while len(row) <= col_index:
            row.append("")
        row[col_index] = to_cell(value)

    def delete_row(self, name: str, row_number: int) -> None:
        if name not in self.tables:
            raise LookupError(f'Sheet "{name}" not found')
        del self.tables[name][row_number - 1]

    def ensure_table(self, name: str, header: Sequence[str]) -> bool:
        table = self.tables.setdefault(name, [])
        if table:
            return False
        table.append(list(header))
        return True

    def _row(self, name: str, row_number: int) -> Row:
        table = self.tables.setdefault(name, [])
        # Writing below the last row grows the table, as a spreadsheet would
        while len(table) < row_number:
            table.append([])
        return table[row_number - 1]


class SheetsRowStore(RowStore):
    """Google Sheets REST v4 adapter. Errors from the API propagate as httpx exceptions."""

    def __init__(self, spreadsheet_id: str, client: httpx.Client, base_url: Optional[str] = None) -> None:
        self.spreadsheet_id = spreadsheet_id
        self._client = client
        self._base = f"{(base_url or settings.sheets_base_url).rstrip('/')}/{spreadsheet_id}"

    @classmethod
    def from_settings(cls, config: Settings) -> "SheetsRowStore":
        if not config.spreadsheet_id:
            raise RuntimeError("SPREADSHEET_ID is not set")
        info = load_service_account_info(config)
        token_uri = info.get("token_uri", GOOGLE_TOKEN_URI)
        client = AssertionClient(
            token_endpoint=token_uri,
            issuer=info["client_email"],
            subject=None,
            audience=token_uri,
            claims={"scope": SHEETS_SCOPE},
            key=info["private_key"],
            header={"alg": "RS256", "kid": info.get("private_key_id")},
            timeout=config.sheets_timeout,
        )
        logger.info("Sheets client created for service account %s", info["client_email"])
        return cls(config.spreadsheet_id, client, config.sheets_base_url)

    def _values_url(self, range_: str) -> str:
        return f"{self._base}/values/{quote(range_, safe='!')}"

    def read_table(self, name: str) -> List[Row]:
        response = self._client.get(self._values_url(name))
        response.raise_for_status()
        return response.json().get("values", [])

    def append_row(self, name: str, values: Sequence[Any]) -> None:
        self.append_rows(name, [values])

    def append_rows(self, name: str, rows: Sequence[Sequence[Any]]) -> None:
        if not rows:
            return
        response = self._client.post(
            f"{self._values_url(name)}:append",
            params={"valueInputOption": "RAW"},
            json={"values": [[to_cell(v) for v in row] for row in rows]},
        )
        response.raise_for_status()

    def update_row(self, name: str, row_number: int, values: Sequence[Any]) -> None:
        self._put_values(f"{name}!A{row_number}", [[to_cell(v) for v in values]])

    def update_cell(self, name: str, row_number: int, col_index: int, value: Any) -> None:
        self._put_values(f"{name}!{column_letter(col_index)}{row_number}", [[to_cell(value)]])

    def delete_row(self, name: str, row_number: int) -> None:
        sheet_id = self._sheet_id(name)
        if sheet_id is None:
            raise LookupError(f'Sheet "{name}" not found')
        self._batch_update([
            {
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": row_number - 1,
                        "endIndex": row_number,
                    }
                }
            }
        ])

    def ensure_table(self, name: str, header: Sequence[str]) -> bool:
        created = False
        if self._sheet_id(name) is None:
            self._batch_update([{"addSheet": {"properties": {"title": name}}}])
            created = True
        if not self.read_table(name):
            self.append_row(name, header)
            created = True
        return created

    def _put_values(self, range_: str, values: List[Row]) -> None:
        response = self._client.put(
            self._values_url(range_),
            params={"valueInputOption": "RAW"},
            json={"values": values},
        )
        response.raise_for_status()

    def _sheet_id(self, name: str) -> Optional[int]:
        response = self._client.get(self._base, params={"fields": "sheets.properties"})
        response.raise_for_status()
        for sheet in response.json().get("sheets", []):
            props = sheet.get("properties", {})
            if props.get("title") == name:
                return props.get("sheetId", 0)
        return None

    def _batch_update(self, requests: List[Dict[str, Any]]) -> None:
        response = self._client.post(f"{self._base}:batchUpdate", json={"requests": requests})
        response.raise_for_status()


def load_service_account_info(config: Settings) -> Dict[str, Any]:
    if config.service_account_json:
        return json.loads(config.service_account_json)
    if config.service_account_file:
        with open(config.service_account_file, "r", encoding="utf-8") as f:
            return json.load(f)
    raise RuntimeError(
        "Google service account credentials are not configured "
        "(GOOGLE_SERVICE_ACCOUNT_JSON or GOOGLE_SERVICE_ACCOUNT_FILE)"
    )


# Process-wide store, built on first use and reused while the worker lives
_global_store: Optional[RowStore] = None


def get_row_store() -> RowStore:
    global _global_store
    if _global_store is None:
        if settings.row_store == "memory":
            _global_store = MemoryRowStore()
        elif settings.row_store == "sheets":
            _global_store = SheetsRowStore.from_settings(settings)
        else:
            raise ValueError(f"Unknown ROW_STORE backend: {settings.row_store}")
    return _global_store


def set_row_store(store: Optional[RowStore]) -> None:
    global _global_store
    _global_store = store


def reset_row_store() -> None:
    global _global_store
    if isinstance(_global_store, SheetsRowStore):
        _global_store._client.close()
    _global_store = None
