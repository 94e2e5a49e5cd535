import asyncio
import sys

from tunnel_switcher.auth import AuthService
from tunnel_switcher.config import ADMIN_DEFAULT_PASSWORD, ADMIN_USERNAME, PASSWORD_POLICY, USERS_PATH
from tunnel_switcher.credentials import CredentialStore
from tunnel_switcher.exceptions import SwitcherError


async def reset_password(new_password, username=ADMIN_USERNAME):
    service = AuthService(CredentialStore(USERS_PATH), PASSWORD_POLICY, ADMIN_USERNAME, ADMIN_DEFAULT_PASSWORD)
    print(f"Updating credential store at {USERS_PATH}...")
    await service.reset_password(username, new_password)
    print(f"Password for '{username}' reset. It must be changed at next login.")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python reset_password.py <new_password> [username]")
        sys.exit(1)

    new_pass = sys.argv[1]
    user = sys.argv[2] if len(sys.argv) > 2 else ADMIN_USERNAME
    try:
        asyncio.run(reset_password(new_pass, user))
    except SwitcherError as e:
        print(f"Error: {e}")
        sys.exit(1)
