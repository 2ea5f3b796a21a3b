import logging
from typing import Optional

from jose import JWTError, jwt

from certprep.errors import Unauthorized

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def verify_bearer(authorization: Optional[str], secret: Optional[str], audience: Optional[str] = None) -> str:
    """
    `Authorization: Bearer <jwt>` -> stable user id (the `sub` claim).
    Tokens are issued by the identity provider; we only verify them.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized()
    if not secret:
        # 서명 검증 없이 신원을 받아들이지 않음
        logger.error("CERTPREP_JWT_SECRET is not configured; rejecting bearer token")
        raise Unauthorized()

    token = authorization[len("Bearer "):].strip()
    if not token:
        raise Unauthorized()

    options = {"verify_aud": audience is not None}
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM], audience=audience, options=options)
    except JWTError as e:
        logger.info("rejected bearer token: %s", e)
        raise Unauthorized()

    sub = claims.get("sub")
    if not isinstance(sub, str) or not sub:
        raise Unauthorized()
    return sub
