"""Configuration helpers."""

import secrets
from pathlib import Path

TOKEN_FILE = ".api_token"


def load_api_token(token_file: str = TOKEN_FILE) -> str:
    """Load the API bearer token from the token file.

    If there is no token file, create one with a random token.
    """
    path = Path(token_file)
    if path.exists():
        with path.open("r") as f:
            return f.read().strip()
    token = secrets.token_urlsafe(32)
    with path.open("w") as f:
        f.write(token)
    return token
