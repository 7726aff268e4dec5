import logging

from lending_library.database import RowStore
from lending_library.models import ROLE_ADMIN, ROLE_USER, USERS_TABLE, cell, now_iso

logger = logging.getLogger(__name__)

ROLE_COL = 1


class UserRepository:
    def __init__(self, store: RowStore) -> None:
        self.store = store

    def resolve_role(self, email: str) -> str:
        """'admin' only for an existing admin row; anyone else, listed or not, is a plain user."""
        for row in self.store.read_table(USERS_TABLE)[1:]:
            if cell(row, 0) == email:
                return ROLE_ADMIN if cell(row, ROLE_COL) == ROLE_ADMIN else ROLE_USER
        return ROLE_USER

    def set_role(self, email: str, role: str) -> bool:
        """Operator-side role assignment. Returns True when a new row was appended."""
        if role not in (ROLE_ADMIN, ROLE_USER):
            raise ValueError(f"Unknown role: {role}")
        for i, row in enumerate(self.store.read_table(USERS_TABLE)[1:], start=2):
            if cell(row, 0) == email:
                self.store.update_cell(USERS_TABLE, i, ROLE_COL, role)
                logger.info("Role of %s set to %s", email, role)
                return False
        self.store.append_row(USERS_TABLE, [email, role, now_iso()])
        logger.info("User %s added with role %s", email, role)
        return True
