"""HTTP basic authentication for write endpoints.

Credentials live in the ``authorizations`` table. Without any credentials
the API runs read-only and the write endpoints are not registered at all.
"""

import logging
import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

log = logging.getLogger("differ.auth")

security = HTTPBasic()


def require_auth(
    request: Request, credentials: HTTPBasicCredentials = Depends(security)
) -> str:
    """Check the request's basic auth credentials.

    Returns:
        The authenticated user name

    Raises:
        HTTPException: 401 if the credentials are unknown or wrong
    """
    authorizations: dict[str, str] = request.app.state.authorizations
    expected = authorizations.get(credentials.username)

    if expected is None or not secrets.compare_digest(
        credentials.password.encode(), expected.encode()
    ):
        log.info(f"Rejected credentials for {credentials.username!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username
