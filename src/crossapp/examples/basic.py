"""
Call a protected MCP server using enterprise-managed authorization.

Set these environment variables (a .env file works too):
- CROSSAPP_IDP_ISSUER_URL, CROSSAPP_IDP_CLIENT_ID, CROSSAPP_IDP_CLIENT_SECRET
- CROSSAPP_MCP_CLIENT_ID, CROSSAPP_MCP_CLIENT_SECRET
- CROSSAPP_ID_TOKEN: ID token obtained from the IdP during SSO
- CROSSAPP_RESOURCE_URL: URL of the protected resource to call
"""

import asyncio
import logging
import os

from dotenv import load_dotenv

from crossapp.auth.client.models.config import CrossAppAccessConfig
from crossapp.auth.client.models.tokens import AccessTokenResponse
from crossapp.transport.http import create_cross_app_access_client


async def get_id_token() -> str:
    return os.environ["CROSSAPP_ID_TOKEN"]


async def log_token(token: AccessTokenResponse) -> None:
    logging.info(f"Received access token, expires in {token.expires_in}s")


async def main():
    config = CrossAppAccessConfig.from_env(
        get_id_token, on_access_token_received=log_token
    )

    async with create_cross_app_access_client(config) as client:
        response = await client.get(os.environ["CROSSAPP_RESOURCE_URL"])
        logging.info(f"Status: {response.status_code}")
        print(response.text)


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
