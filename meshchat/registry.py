import logging
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Maps live connections to asserted usernames and back.

    A username may own several connections at once (tabs, devices). The
    registry also remembers every username ever seen; that list only grows.
    """

    def __init__(self):
        self._user_by_conn: Dict[str, str] = {}
        self._conns_by_user: Dict[str, Set[str]] = {}
        self._known_users: Dict[str, None] = {}  # insertion-ordered set

    def register(self, conn_id: str, username: str) -> Optional[str]:
        """Attach ``conn_id`` to ``username``. Returns the username it was previously attached to, if any."""
        previous = self._user_by_conn.get(conn_id)
        if previous is not None and previous != username:
            self._detach(conn_id, previous)
        self._user_by_conn[conn_id] = username
        self._conns_by_user.setdefault(username, set()).add(conn_id)
        self._known_users.setdefault(username, None)
        logger.info("registered %s on %s", username, conn_id)
        return previous

    def unregister(self, conn_id: str) -> Optional[str]:
        username = self._user_by_conn.pop(conn_id, None)
        if username is not None:
            self._detach(conn_id, username)
            logger.info("unregistered %s from %s", username, conn_id)
        return username

    def _detach(self, conn_id, username):
        conns = self._conns_by_user.get(username)
        if conns is None:
            return
        conns.discard(conn_id)
        if not conns:
            del self._conns_by_user[username]

    def username_of(self, conn_id: str) -> Optional[str]:
        return self._user_by_conn.get(conn_id)

    def resolve(self, username: str) -> Set[str]:
        return set(self._conns_by_user.get(username, ()))

    def list_users(self):
        return list(self._known_users)

    def connections(self) -> Set[str]:
        return set(self._user_by_conn)
