"""Authentication module (JWT bearer tokens).

Services:
    - TokenService: issue and verify signed tokens.
    - ConnectionAuthenticator: resolve a token to a live identity.
"""
