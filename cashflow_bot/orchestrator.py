"""
Main Orchestrator for the Cash Flow Bot

This module ties together all the components: the Google Sheets directory
and ledger, the Cloudinary receipt store, the audit logger and the
conversation engine. A transport adapter (a Telegram bot, a CLI, a test)
builds the engine once and feeds it events:

    engine, client = create_app_components()
    prompts = await engine.handle(user_id, event_from_action("expense", message_id))

DESIGN DECISION: The engine never sees gspread or Cloudinary directly.
Everything it talks to is injected here, so swapping a backend means
changing this file only.
"""

import structlog

from cashflow_bot.audit import AuditLogger
from cashflow_bot.config import get_settings
from cashflow_bot.engine import ConversationEngine, SessionStore
from cashflow_bot.services.attachments import CloudinaryAttachmentService
from cashflow_bot.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDirectory,
    GoogleSheetsLedger,
)


logger = structlog.get_logger(__name__)


def diagnose_spreadsheet(client: GoogleSheetsClient) -> list[str]:
    """
    Log what the configured spreadsheet contains.

    Meant to be run once at startup, so a misnamed sheet shows up in the
    logs before the first user hits it.

    Returns:
        Configured sheet names that are missing from the spreadsheet
    """
    title, sheet_titles = client.describe()
    logger.info("spreadsheet_found", title=title, sheets=sheet_titles)

    missing = []
    for role, name in client.configured_sheet_names().items():
        if name not in sheet_titles:
            logger.warning("configured_sheet_missing", role=role, sheet=name)
            missing.append(name)

    if not missing:
        logger.info("spreadsheet_ready", title=title)
    return missing


def create_app_components(
    use_audit_storage: bool = True,
) -> tuple[ConversationEngine, GoogleSheetsClient]:
    """
    Factory function to create all application components.

    Args:
        use_audit_storage: Whether to persist audit events to the audit sheet.
                    Set to False to only log locally.

    Returns:
        (engine, sheets_client)
    """
    settings = get_settings()
    app_settings = settings.app
    sheets_client = GoogleSheetsClient(settings.google_sheets)

    if use_audit_storage:
        audit_logger = AuditLogger(
            GoogleSheetsAuditStorage(sheets_client),
            timeout_seconds=app_settings.external_call_timeout_seconds,
        )
    else:
        audit_logger = AuditLogger()  # Local-only logging

    engine = ConversationEngine(
        directory=GoogleSheetsDirectory(sheets_client),
        ledger=GoogleSheetsLedger(sheets_client),
        attachments=CloudinaryAttachmentService(settings.cloudinary, app_settings),
        sessions=SessionStore(),
        audit_logger=audit_logger,
        settings=app_settings,
    )
    return engine, sheets_client


__all__ = [
    "create_app_components",
    "diagnose_spreadsheet",
]
