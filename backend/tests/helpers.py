"""Identities and request helpers shared by the test modules."""

from typing import Dict

from dreamweaver.auth import create_access_token

USER_ID = "user-alice"
OTHER_USER_ID = "user-bob"


def auth_headers(user_id: str = USER_ID) -> Dict[str, str]:
    """Authorization header carrying a freshly signed token for `user_id`."""
    return {"Authorization": f"Bearer {create_access_token(user_id, username=user_id)}"}
