class AuthError(Exception):
    pass


class CredentialUnavailableError(AuthError):
    pass
