import threading


class SessionStore:
    """Login state shared by the services of one client: tokens, user id and agency database"""

    def __init__(self, token=None, refresh_token=None, user_id=None, agency_database=None):
        self._lock = threading.Lock()
        self.token = token
        self.refresh_token = refresh_token
        self.user_id = user_id
        self.agency_database = agency_database

    @property
    def is_authenticated(self):
        return bool(self.token)

    def save_login(self, payload):
        """Store the tokens and user of a login or two-factor response"""
        user = payload.get('user') or {}
        with self._lock:
            self.token = payload.get('access')
            self.refresh_token = payload.get('refresh', self.refresh_token)
            if user:
                self.user_id = user.get('id')
                self.agency_database = user.get('agency_database')

    def clear(self):
        with self._lock:
            self.token = None
            self.refresh_token = None
            self.user_id = None
            self.agency_database = None
