class SessionStoreError(Exception):
    pass


class SessionStoreUnauthorizedError(SessionStoreError):
    pass
