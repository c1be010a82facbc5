from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

import asyncpg
from fastapi import FastAPI

from maintdesk.api.errors import register_exception_handlers
from maintdesk.api.routes import attachments, categories, people, ping, tickets
from maintdesk.attachments.migrator import AttachmentMigrator
from maintdesk.attachments.service import AttachmentService
from maintdesk.categories.service import CategoryService
from maintdesk.core.config import Settings, get_settings
from maintdesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from maintdesk.locations.directory import LocationCatalog, LocationDirectory, RemoteLocationDirectory
from maintdesk.notifications import EmailNotificationDispatcher, LoggingNotificationDispatcher, NotificationDispatcher
from maintdesk.people.repository import PersonRepository
from maintdesk.people.service import PersonService
from maintdesk.storage.documents import DocumentRepository, PostgresDocumentStore
from maintdesk.storage.files import S3FileStore
from maintdesk.tickets.assignment import TicketAssignmentResolver
from maintdesk.tickets.factory import TicketFactory
from maintdesk.tickets.repository import TicketRepository
from maintdesk.tickets.service import TicketService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    tickets: TicketService
    attachments: AttachmentService
    people: PersonService
    categories: CategoryService


def build_location_directory(settings: Settings) -> LocationDirectory:
    if settings.location_catalog_path:
        catalog = LocationCatalog.from_file(
            settings.location_catalog_path,
            email_domains=settings.location_email_domains,
        )
    else:
        catalog = LocationCatalog(email_domains=settings.location_email_domains)
    if settings.location_api_base_url:
        return RemoteLocationDirectory(settings.location_api_base_url, fallback=catalog)
    return catalog


def build_notifier(settings: Settings) -> NotificationDispatcher:
    if settings.notification_function_url:
        return EmailNotificationDispatcher(settings.notification_function_url, timeout=settings.notification_timeout)
    return LoggingNotificationDispatcher()


def build_services(
    settings: Settings,
    *,
    ticket_store: DocumentRepository,
    person_store: DocumentRepository,
    category_store: DocumentRepository,
    files: S3FileStore,
    locations: LocationDirectory,
    notifier: NotificationDispatcher,
) -> Services:
    people = PersonRepository(person_store)
    ticket_repository = TicketRepository(ticket_store)
    migrator = AttachmentMigrator(
        files,
        root_marker=files.root_marker,
        concurrency=settings.batch_concurrency,
    )
    ticket_service = TicketService(
        ticket_repository,
        TicketFactory(people, locations),
        TicketAssignmentResolver(people, locations),
        notifier,
        concurrency=settings.batch_concurrency,
    )
    return Services(
        tickets=ticket_service,
        attachments=AttachmentService(ticket_repository, files, migrator),
        people=PersonService(people, concurrency=settings.batch_concurrency),
        categories=CategoryService(category_store),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    app_logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = app_logger
    app.state.tracer_provider = tracer_provider
    for name in ("ticket_service", "attachment_service", "person_service", "category_service"):
        setattr(app.state, name, None)

    pool: asyncpg.Pool | None = None
    locations: LocationDirectory | None = None
    notifier: NotificationDispatcher | None = None
    try:
        pool = await asyncpg.create_pool(dsn=settings.postgres_dsn, min_size=1, max_size=10)
        ticket_store = PostgresDocumentStore(pool, "tickets")
        await ticket_store.ensure_schema()
        files = S3FileStore(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            region=settings.s3_region,
        )
        await files.ensure_bucket()
        locations = build_location_directory(settings)
        notifier = build_notifier(settings)
        services = build_services(
            settings,
            ticket_store=ticket_store,
            person_store=PostgresDocumentStore(pool, "persons"),
            category_store=PostgresDocumentStore(pool, "categories"),
            files=files,
            locations=locations,
            notifier=notifier,
        )
        app.state.ticket_service = services.tickets
        app.state.attachment_service = services.attachments
        app.state.person_service = services.people
        app.state.category_service = services.categories
    except Exception:  # pragma: no cover - service initialisation best effort
        app_logger.exception("Service initialisation failed; API will answer 503")
    try:
        yield
    finally:
        if isinstance(locations, RemoteLocationDirectory):
            await locations.aclose()
        if isinstance(notifier, EmailNotificationDispatcher):
            await notifier.aclose()
        if pool is not None:
            await pool.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(attachments.router)
    app.include_router(people.router)
    app.include_router(categories.router)
    return app


app = create_app()
