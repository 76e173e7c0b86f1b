"""Application factory: wires clients, stores and the flow into a FastAPI app."""

import logging
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from api.errors import register_error_handlers
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import get_database_url, get_email_config, get_valkey_url
from identity.api import create_identity_router
from identity.config import IdentityConfig
from identity.credentials import CredentialGuard
from identity.database import IdentityDatabase
from identity.flow import FlowOrchestrator
from identity.mailer import MailDispatcher
from identity.security_logger import SecurityLogger
from identity.security_middleware import SessionMiddleware
from identity.session import SessionStore
from identity.tokens import TokenIssuer
from identity.validators import EmailValidator

logger = logging.getLogger(__name__)


def build_orchestrator(
    config: IdentityConfig,
    postgres: PostgresClient,
    email_client: EmailGatewayClient,
    mail_executor: ThreadPoolExecutor | None = None,
) -> FlowOrchestrator:
    """Assemble the flow on PostgreSQL storage."""
    store = IdentityDatabase(postgres)
    security_logger = SecurityLogger(postgres)
    return FlowOrchestrator(
        config=config,
        users=store,
        token_issuer=TokenIssuer(store, config),
        credential_guard=CredentialGuard(min_length=config.password_min_length),
        email_validator=EmailValidator(),
        mailer=MailDispatcher(email_client, config, security_logger, executor=mail_executor),
        security_logger=security_logger,
    )


def create_app(config: IdentityConfig | None = None) -> FastAPI:
    """Production app. Secrets come from Vault; VAULT_* may come from a .env file."""
    load_dotenv(Path.cwd() / ".env")
    config = config or IdentityConfig()

    postgres = PostgresClient(get_database_url())
    valkey = ValkeyClient(get_valkey_url())
    email_client = EmailGatewayClient(**get_email_config())
    mail_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="identity-mail")

    orchestrator = build_orchestrator(config, postgres, email_client, mail_executor)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        mail_executor.shutdown(wait=True)
        valkey.close()
        postgres.close()

    app = FastAPI(title=f"{config.app_name} identity", lifespan=lifespan)
    register_error_handlers(app)
    app.add_middleware(SessionMiddleware, session_store=SessionStore(valkey, config), config=config)
    app.include_router(create_identity_router(orchestrator), prefix="/users")

    @app.get("/health")
    async def health():
        valkey.ping()
        return {"status": "ok"}

    logger.info("Identity app created for %s", config.app_base_url)
    return app
