"""
Conversation Engine

Turns one user event into zero or more prompts, driving the per-user state
machine and the ledger writes it leads to.

FLOW for every event:
1. Drop redelivered messages (same identity + message_id)
2. Re-check the user against the directory (never cached)
3. Dispatch: overlays first (custom date, receipt upload), then by step
4. Commit the resulting session value, or evict it when the operation ended

Handlers never mutate a session. They return a Transition holding the new
session value, and the store is only updated after the handler returned.
An exception anywhere leaves the stored session exactly as it was.

KNOWN LIMITATIONS (accepted, see DESIGN.md):
- Ledger rows are placed by scanning for the first free row, not by an
  atomic append. Concurrent writers outside this process can collide.
- A transfer is two independent appends. If the second one fails the
  ledger holds only the inbound leg. The engine raises a reconciliation
  alert and lets the user retry just the missing leg; it never deletes
  the committed one.
"""

import asyncio
from datetime import date, timedelta
from typing import Awaitable, Callable, NamedTuple, Optional, TypeVar

import structlog

from cashflow_bot import errors
from cashflow_bot.audit import AuditLogger
from cashflow_bot.config import AppSettings, get_settings
from cashflow_bot.engine import prompts
from cashflow_bot.engine.session_store import ProcessedMessages, SessionStore
from cashflow_bot.errors import (
    AttachmentError,
    AuthorizationError,
    DirectoryError,
    ExternalServiceError,
    LedgerWriteError,
    ValidationError,
)
from cashflow_bot.models.conversation import (
    INFLOW,
    OUTFLOW,
    SELECTION_STEPS,
    OperationKind,
    Step,
    UserSession,
    next_step,
)
from cashflow_bot.models.events import (
    AttachmentChoice,
    AttachmentDecision,
    Cancel,
    DatePreset,
    DatePresetChoice,
    Event,
    FreeTextInput,
    ImageSubmitted,
    OperationChosen,
    Prompt,
    SelectionChosen,
    Start,
)
from cashflow_bot.models.ledger import (
    LedgerRecord,
    UserProfile,
    fallback_transfer_category,
    transfer_legs,
)
from cashflow_bot.services.attachments import AttachmentInterface, ReceiptRejectedError
from cashflow_bot.services.storage import DirectoryInterface, LedgerInterface
from cashflow_bot.validation import FieldValidator


logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Genitive list names for the "list is empty" message
_LIST_NAMES = {
    Step.AWAITING_WALLET: "кошельков",
    Step.AWAITING_SOURCE_WALLET: "кошельков",
    Step.AWAITING_DESTINATION_WALLET: "кошельков",
    Step.AWAITING_DIRECTION: "направлений",
    Step.AWAITING_CATEGORY: "статей",
}

_TIMEOUT_ERRORS = {
    "directory": DirectoryError,
    "ledger": LedgerWriteError,
    "attachments": AttachmentError,
}


class Transition(NamedTuple):
    """Handler result: the session to store (None ends it) and the replies."""
    session: Optional[UserSession]
    prompts: list[Prompt]


class ConversationEngine:
    """
    Per-user conversation state machine.

    Collaborators are injected so tests can use in-memory fakes. The engine
    assumes the transport delivers at most one in-flight event per user;
    events of different users may be handled concurrently.
    """

    def __init__(
        self,
        directory: DirectoryInterface,
        ledger: LedgerInterface,
        attachments: AttachmentInterface,
        sessions: Optional[SessionStore] = None,
        validator: Optional[FieldValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        today_provider: Callable[[], date] = date.today,
    ):
        self._directory = directory
        self._ledger = ledger
        self._attachments = attachments
        self._sessions = sessions if sessions is not None else SessionStore()
        self._validator = validator or FieldValidator()
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app
        self._today = today_provider
        self._processed = ProcessedMessages(self._settings.processed_message_cache_size)

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    async def handle(self, identity: int, event: Event) -> list[Prompt]:
        """
        Handle one inbound event for one user.

        Returns:
            Prompts to deliver, in order. Empty for ignored duplicates.
        """
        if event.message_id is not None and self._processed.check_and_remember(
            identity, event.message_id
        ):
            await self._audit.log_duplicate_message(identity, event.message_id)
            return []

        session = self._sessions.get(identity)
        correlation_id = session.correlation_id if session else None

        try:
            user = await self._authorize(identity)
        except AuthorizationError as e:
            await self._audit.log_access_denied(identity)
            return [prompts.message(e.message)]
        except ExternalServiceError as e:
            await self._report_service_error(e, identity, correlation_id)
            return [prompts.message(errors.GENERIC_FAILURE_MESSAGE)]

        try:
            transition = await self._dispatch(user, session, event)
        except ValidationError as e:
            await self._audit.log_validation_rejected(
                identity,
                session.step.value if session else "no_session",
                e.message,
                correlation_id,
            )
            return self._rejection(session, e)
        except ExternalServiceError as e:
            await self._report_service_error(e, identity, correlation_id)
            return [prompts.message(errors.GENERIC_FAILURE_MESSAGE, cancellable=session is not None)]

        if transition.session is None:
            self._sessions.evict(identity)
        else:
            self._sessions.put(transition.session)
        return transition.prompts

    async def _call(self, awaitable: Awaitable[T], service: str) -> T:
        """Await a collaborator call, bounded by the configured timeout."""
        timeout = self._settings.external_call_timeout_seconds
        if timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError:
            raise _TIMEOUT_ERRORS[service](f"{service} call timed out after {timeout}s")

    async def _authorize(self, identity: int) -> UserProfile:
        user = await self._call(self._directory.lookup_user(identity), "directory")
        if user is None:
            raise AuthorizationError(identity)
        return user

    async def _report_service_error(
        self,
        error: ExternalServiceError,
        identity: int,
        correlation_id,
    ) -> None:
        logger.error("external_service_failed", service=error.service, error=str(error))
        await self._audit.log_external_service_error(
            error.service, str(error), user_id=identity, correlation_id=correlation_id
        )

    def _rejection(self, session: Optional[UserSession], error: ValidationError) -> list[Prompt]:
        """Error text, plus the list again when the user must pick from one."""
        if session is not None and session.expects_selection and session.pending_selection:
            return [prompts.message(error.message), prompts.step_prompt(session)]
        return [prompts.message(error.message, cancellable=session is not None)]

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def _dispatch(
        self,
        user: UserProfile,
        session: Optional[UserSession],
        event: Event,
    ) -> Transition:
        if isinstance(event, Start):
            return Transition(None, [prompts.greeting(user)])

        if isinstance(event, Cancel):
            await self._audit.log_session_cancelled(
                user.identity,
                session.step.value if session else None,
                session.correlation_id if session else None,
            )
            if session is not None and session.ledger_row is not None:
                # Rows already written stay in the ledger
                if session.step in (
                    Step.AWAITING_ATTACHMENT_DECISION,
                    Step.AWAITING_ATTACHMENT_UPLOAD,
                ):
                    return Transition(
                        None, [prompts.finished_without_attachment(user, session.ledger_row)]
                    )
                return Transition(None, [prompts.cancelled(user, session.ledger_row)])
            return Transition(None, [prompts.cancelled(user)])

        if isinstance(event, OperationChosen):
            return await self._start_operation(user, session, event.kind)

        if session is None:
            return Transition(None, [prompts.no_active_session(isinstance(event, FreeTextInput))])

        # Overlays take the next matching event before per-step dispatch
        if session.awaiting_freeform_date and isinstance(event, FreeTextInput):
            return await self._on_custom_date(user, session, event.text)
        if session.awaiting_attachment and isinstance(event, ImageSubmitted):
            return await self._on_receipt(user, session, event.data)

        if isinstance(event, DatePreset):
            return await self._on_date_preset(user, session, event.preset)
        if isinstance(event, AttachmentDecision):
            return await self._on_attachment_decision(user, session, event.decision)
        if isinstance(event, ImageSubmitted):
            raise ValidationError("❌ Сейчас фото не ожидается.")

        if isinstance(event, FreeTextInput):
            handler = self._text_handlers.get(session.step)
            if handler is None:
                raise ValidationError(self._wrong_input_message(session))
            return await handler(self, user, session, event.text)

        if isinstance(event, SelectionChosen):
            handler = self._selection_handlers.get(session.step)
            if handler is None:
                if session.expects_free_text:
                    raise ValidationError("❌ Сейчас нужно ввести значение текстом.")
                raise ValidationError(self._wrong_input_message(session))
            value = self._validator.resolve_selection(event.index, session.pending_selection)
            return await handler(self, user, session, value)

        raise ValidationError("❌ Неподдерживаемое действие.")

    def _wrong_input_message(self, session: UserSession) -> str:
        if session.step in SELECTION_STEPS:
            return "❌ Выберите вариант из списка."
        if session.step == Step.AWAITING_ATTACHMENT_UPLOAD:
            return "❌ Отправьте фото чека или нажмите «Пропустить»."
        return "❌ Выберите действие кнопкой."

    async def _start_operation(
        self,
        user: UserProfile,
        session: Optional[UserSession],
        kind: OperationKind,
    ) -> Transition:
        if kind == OperationKind.TRANSFER and not user.is_admin:
            return Transition(session, [prompts.admin_only()])

        # Choosing an operation discards whatever was in progress
        new_session = UserSession.start(user.identity, kind)
        await self._audit.log_session_started(
            user.identity, kind.value, new_session.correlation_id
        )
        return Transition(new_session, [prompts.step_prompt(new_session)])

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def _fetch_options(self, kind: OperationKind, step: Step) -> tuple[str, ...]:
        """Fetch the reference list a selection step chooses from."""
        if step in (
            Step.AWAITING_WALLET,
            Step.AWAITING_SOURCE_WALLET,
            Step.AWAITING_DESTINATION_WALLET,
        ):
            items = await self._call(self._directory.list_wallets(), "directory")
        elif step == Step.AWAITING_DIRECTION:
            items = await self._call(self._directory.list_directions(), "directory")
        elif step == Step.AWAITING_CATEGORY:
            items = await self._call(
                self._directory.list_categories(
                    kind.category_type,
                    exclude_marker=self._settings.transfer_marker,
                ),
                "directory",
            )
        else:
            raise ValueError(f"{step.value} does not choose from a list")
        return self._validator.ensure_not_empty(items, _LIST_NAMES[step])

    async def _advance(self, session: UserSession, **fields) -> Transition:
        """
        Record fields and move to the next step.

        If the next step picks from a list, the list is fetched first; an
        empty list raises ValidationError and nothing is recorded.
        """
        step = next_step(session.operation_kind, session.step)
        options = None
        if step in SELECTION_STEPS:
            options = await self._fetch_options(session.operation_kind, step)
        new_session = session.advance(pending_selection=options, **fields)
        return Transition(new_session, [prompts.step_prompt(new_session)])

    # Free text steps

    async def _on_date(self, user: UserProfile, session: UserSession, text: str) -> Transition:
        return await self._advance(session, date=self._validator.validate_date(text))

    async def _on_custom_date(self, user: UserProfile, session: UserSession, text: str) -> Transition:
        return await self._on_date(user, session, text)

    async def _on_date_preset(
        self,
        user: UserProfile,
        session: UserSession,
        preset: DatePresetChoice,
    ) -> Transition:
        if session.step != Step.AWAITING_DATE:
            raise ValidationError("❌ Дата уже выбрана.")
        if preset == DatePresetChoice.CUSTOM:
            return Transition(
                session.expecting_custom_date(),
                [prompts.custom_date_prompt(session.operation_kind)],
            )

        day = self._today()
        if preset == DatePresetChoice.YESTERDAY:
            day -= timedelta(days=1)
        return await self._advance(session, date=self._validator.format_date(day))

    async def _on_amount(self, user: UserProfile, session: UserSession, text: str) -> Transition:
        amount = self._validator.validate_amount(text)
        if session.operation_kind == OperationKind.EXPENSE and amount:
            amount = amount.copy_negate()
        return await self._advance(session, amount=amount)

    async def _on_counterparty(self, user: UserProfile, session: UserSession, text: str) -> Transition:
        return await self._advance(
            session, counterparty=self._validator.validate_text(text, "counterparty")
        )

    async def _on_purpose(self, user: UserProfile, session: UserSession, text: str) -> Transition:
        return await self._advance(
            session, purpose=self._validator.validate_text(text, "purpose")
        )

    # Selection steps

    async def _on_wallet(self, user: UserProfile, session: UserSession, value: str) -> Transition:
        return await self._advance(session, wallet=value)

    async def _on_direction(self, user: UserProfile, session: UserSession, value: str) -> Transition:
        return await self._advance(session, direction=value)

    async def _on_source_wallet(self, user: UserProfile, session: UserSession, value: str) -> Transition:
        return await self._advance(session, source_wallet=value)

    async def _on_category(self, user: UserProfile, session: UserSession, value: str) -> Transition:
        """Last single-entry field: write the base record, then offer a receipt."""
        draft = session.draft.with_fields(category=value)
        record = LedgerRecord.from_draft(draft, session.operation_kind, user)

        row = await self._call(self._ledger.append_record(record), "ledger")
        await self._audit.log_record_appended(record, row, session.correlation_id)

        new_session = session.advance(category=value, ledger_row=row)
        return Transition(
            new_session,
            [prompts.record_saved(record, row), prompts.attachment_decision_prompt()],
        )

    async def _on_destination_wallet(
        self,
        user: UserProfile,
        session: UserSession,
        value: str,
    ) -> Transition:
        """Last transfer field: write the inbound leg, then the outbound leg."""
        try:
            self._validator.validate_transfer_wallets(session.draft.source_wallet, value)
        except ValidationError as e:
            wallets = await self._fetch_options(session.operation_kind, session.step)
            retry_session = session.reprompt(wallets)
            return Transition(
                retry_session,
                [prompts.message(e.message), prompts.step_prompt(retry_session)],
            )

        draft = session.draft.with_fields(destination_wallet=value)
        inbound, outbound = transfer_legs(
            draft,
            user,
            inbound_category=await self._transfer_category(INFLOW),
            outbound_category=await self._transfer_category(OUTFLOW),
        )

        # ledger_row is set when the inbound leg went in on an earlier attempt
        inbound_row = session.ledger_row
        if inbound_row is None:
            inbound_row = await self._call(self._ledger.append_record(inbound), "ledger")
            await self._audit.log_record_appended(inbound, inbound_row, session.correlation_id)

        try:
            outbound_row = await self._call(self._ledger.append_record(outbound), "ledger")
        except ExternalServiceError as e:
            logger.error(
                "transfer_partially_committed",
                inbound_row=inbound_row,
                error=str(e),
            )
            await self._audit.log_transfer_partially_committed(
                inbound_row, outbound, str(e), session.correlation_id
            )
            # Only the wallet already written as destination can be retried
            retry_session = session.model_copy(update={
                "ledger_row": inbound_row,
                "pending_selection": (value,),
                "draft": draft,
            })
            return Transition(
                retry_session,
                [
                    prompts.transfer_partially_saved(inbound, inbound_row),
                    prompts.step_prompt(retry_session),
                ],
            )

        await self._audit.log_record_appended(outbound, outbound_row, session.correlation_id)
        await self._audit.log_transfer_committed(
            user.identity, inbound_row, outbound_row, session.correlation_id
        )
        return Transition(
            None,
            [prompts.transfer_done(user, inbound, outbound, inbound_row, outbound_row)],
        )

    async def _transfer_category(self, category_type: str) -> str:
        """First category of the type naming a transfer, or a synthesized name."""
        marker = self._settings.transfer_marker
        categories = await self._call(
            self._directory.list_categories(category_type), "directory"
        )
        for category in categories:
            if marker in category:
                return category
        return fallback_transfer_category(category_type, marker)

    # Receipt overlay

    async def _on_attachment_decision(
        self,
        user: UserProfile,
        session: UserSession,
        decision: AttachmentChoice,
    ) -> Transition:
        if session.step not in (
            Step.AWAITING_ATTACHMENT_DECISION,
            Step.AWAITING_ATTACHMENT_UPLOAD,
        ):
            raise ValidationError("❌ Чек можно прикрепить только после сохранения записи.")

        if decision == AttachmentChoice.SKIP:
            return Transition(None, [prompts.finished_without_attachment(user, session.ledger_row)])

        if session.step == Step.AWAITING_ATTACHMENT_UPLOAD:
            return Transition(session, [prompts.attachment_upload_prompt()])
        return Transition(session.advance(), [prompts.attachment_upload_prompt()])

    async def _on_receipt(self, user: UserProfile, session: UserSession, data: bytes) -> Transition:
        """
        Upload the receipt and link it to the committed base row.

        Failures keep the session on the upload step: the base record is
        already in the ledger and stays there whatever happens here.
        """
        draft = session.draft
        row = session.ledger_row
        display_name = f"{draft.date}_{draft.counterparty}"
        description = (
            f"{session.operation_kind.label} {draft.amount:f} | {draft.wallet} | "
            f"{draft.counterparty} | {draft.purpose} | строка {row}"
        )

        try:
            link = await self._call(
                self._attachments.upload(data, display_name, description), "attachments"
            )
        except ReceiptRejectedError as e:
            return Transition(session, [prompts.attachment_upload_prompt(e.message)])
        except ExternalServiceError as e:
            await self._audit.log_attachment_failed(
                user.identity, row, str(e), session.correlation_id
            )
            return Transition(session, [prompts.attachment_upload_prompt(
                "❌ Не удалось загрузить чек. Запись уже сохранена без него.\n"
                "Попробуйте отправить фото еще раз или нажмите «Пропустить»."
            )])

        try:
            await self._call(self._ledger.attach_link(row, link), "ledger")
        except ExternalServiceError as e:
            await self._audit.log_attachment_failed(
                user.identity, row, str(e), session.correlation_id
            )
            return Transition(session, [prompts.attachment_upload_prompt(
                "❌ Чек загружен, но ссылку не удалось записать в таблицу.\n"
                "Попробуйте отправить фото еще раз или нажмите «Пропустить»."
            )])

        await self._audit.log_attachment_linked(user.identity, row, link, session.correlation_id)
        return Transition(None, [prompts.attachment_linked(user, row)])

    _text_handlers = {
        Step.AWAITING_DATE: _on_date,
        Step.AWAITING_AMOUNT: _on_amount,
        Step.AWAITING_COUNTERPARTY: _on_counterparty,
        Step.AWAITING_PURPOSE: _on_purpose,
    }

    _selection_handlers = {
        Step.AWAITING_WALLET: _on_wallet,
        Step.AWAITING_DIRECTION: _on_direction,
        Step.AWAITING_CATEGORY: _on_category,
        Step.AWAITING_SOURCE_WALLET: _on_source_wallet,
        Step.AWAITING_DESTINATION_WALLET: _on_destination_wallet,
    }
