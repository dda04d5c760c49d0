"""
Prompt rendering.

All user-facing wording lives here. The engine decides what to ask; these
functions decide how it reads.
"""

from typing import Optional, Sequence

from cashflow_bot.models.conversation import (
    DATA_ENTRY_STEPS,
    OperationKind,
    Step,
    UserSession,
)
from cashflow_bot.models.events import (
    ACTION_CANCEL,
    SELECT_PREFIX,
    AttachmentChoice,
    DatePresetChoice,
    Prompt,
    PromptOption,
)
from cashflow_bot.models.ledger import LedgerRecord, UserProfile


CANCEL_OPTION = PromptOption(label="❌ Отмена", action=ACTION_CANCEL)

_STEP_TITLES = {
    Step.AWAITING_DATE: ("📅", "Дата"),
    Step.AWAITING_AMOUNT: ("💰", "Сумма"),
    Step.AWAITING_WALLET: ("👛", "Кошелек"),
    Step.AWAITING_DIRECTION: ("🎯", "Направление бизнеса"),
    Step.AWAITING_COUNTERPARTY: ("🤝", "Контрагент"),
    Step.AWAITING_PURPOSE: ("📝", "Назначение платежа"),
    Step.AWAITING_SOURCE_WALLET: ("📤", "Кошелек выбытия"),
    Step.AWAITING_DESTINATION_WALLET: ("📥", "Кошелек поступления"),
}

_STEP_BODIES = {
    Step.AWAITING_DATE: "Выберите дату или введите её в формате ДД.ММ.ГГГГ\nНапример: 30.08.2025",
    Step.AWAITING_AMOUNT: "Введите сумму (только число):\nНапример: 50000",
    Step.AWAITING_WALLET: "Выберите кошелек:",
    Step.AWAITING_DIRECTION: "Выберите направление:",
    Step.AWAITING_COUNTERPARTY: "Введите название контрагента:",
    Step.AWAITING_PURPOSE: "Введите назначение платежа:",
    Step.AWAITING_CATEGORY: "Выберите статью:",
    Step.AWAITING_SOURCE_WALLET: "Выберите кошелек, С которого переводятся средства:",
    Step.AWAITING_DESTINATION_WALLET: "Выберите кошелек, НА который переводятся средства:",
}

_TRANSFER_AMOUNT_BODY = "Введите сумму перевода:\nНапример: 50000"


def message(text: str, cancellable: bool = False) -> Prompt:
    """A plain notice, optionally with a cancel button."""
    return Prompt(text=text, options=(CANCEL_OPTION,) if cancellable else ())


def _menu_options(user: UserProfile) -> tuple[PromptOption, ...]:
    options = [
        PromptOption(label="📤 Расход", action=OperationKind.EXPENSE.value),
        PromptOption(label="📥 Поступление", action=OperationKind.INCOME.value),
    ]
    if user.is_admin:
        options.append(PromptOption(label="🔄 Перевод", action=OperationKind.TRANSFER.value))
    return tuple(options)


def main_menu(user: UserProfile, text: str = "Выберите тип операции:") -> Prompt:
    """Operation choice. Transfer is offered to admins only."""
    return Prompt(text=text, options=_menu_options(user))


def greeting(user: UserProfile) -> Prompt:
    return main_menu(
        user,
        f"👋 Здравствуйте, {user.display_name}!\n\n"
        "Этот бот поможет вам вносить данные о финансовых операциях.\n\n"
        "Выберите тип операции:",
    )


def cancelled(user: UserProfile, committed_row: Optional[int] = None) -> Prompt:
    """Back to the menu. committed_row names a row that was written anyway."""
    if committed_row is None:
        return main_menu(user, "❌ Операция отменена")
    return main_menu(
        user,
        f"❌ Операция отменена.\nСтрока {committed_row} уже записана в таблицу и не удалена.",
    )


def _header(kind: OperationKind, step: Step) -> str:
    if step == Step.AWAITING_CATEGORY:
        return f"📊 {kind.label} - Выбор статьи"
    emoji, title = _STEP_TITLES[step]
    steps = DATA_ENTRY_STEPS[kind]
    return f"{emoji} {kind.label} - Шаг {steps.index(step) + 1} из {len(steps)}: {title}"


def selection_options(items: Sequence[str]) -> tuple[PromptOption, ...]:
    options = [
        PromptOption(label=item, action=f"{SELECT_PREFIX}{index}")
        for index, item in enumerate(items)
    ]
    options.append(CANCEL_OPTION)
    return tuple(options)


def step_prompt(session: UserSession) -> Prompt:
    """
    The question for the session's current data-entry step.

    Selection steps render session.pending_selection.
    """
    kind, step = session.operation_kind, session.step
    body = _STEP_BODIES[step]
    if step == Step.AWAITING_AMOUNT and kind == OperationKind.TRANSFER:
        body = _TRANSFER_AMOUNT_BODY
    text = f"{_header(kind, step)}\n\n{body}"

    if session.expects_selection:
        return Prompt(text=text, options=selection_options(session.pending_selection or ()))

    if step == Step.AWAITING_DATE:
        return Prompt(
            text=text,
            options=(
                PromptOption(label="Сегодня", action=f"date_{DatePresetChoice.TODAY.value}"),
                PromptOption(label="Вчера", action=f"date_{DatePresetChoice.YESTERDAY.value}"),
                PromptOption(label="Другая дата", action=f"date_{DatePresetChoice.CUSTOM.value}"),
                CANCEL_OPTION,
            ),
            expects_free_text=True,
        )

    return Prompt(text=text, options=(CANCEL_OPTION,), expects_free_text=True)


def custom_date_prompt(kind: OperationKind) -> Prompt:
    return Prompt(
        text=(
            f"{_header(kind, Step.AWAITING_DATE)}\n\n"
            "Введите дату в формате ДД.ММ.ГГГГ\nНапример: 30.08.2025"
        ),
        options=(CANCEL_OPTION,),
        expects_free_text=True,
    )


def record_saved(record: LedgerRecord, row: int) -> Prompt:
    return Prompt(text=(
        "✅ Запись успешно добавлена!\n\n"
        f"📅 Дата: {record.date}\n"
        f"💰 Сумма: {record.amount_text}\n"
        f"👛 Кошелек: {record.wallet}\n"
        f"🎯 Направление: {record.direction}\n"
        f"🤝 Контрагент: {record.counterparty}\n"
        f"📝 Назначение: {record.purpose}\n"
        f"📊 Статья: {record.category}\n\n"
        f"Строка: {row}"
    ))


def attachment_decision_prompt() -> Prompt:
    return Prompt(
        text="📎 Прикрепить фото чека к записи?",
        options=(
            PromptOption(label="📎 Прикрепить чек", action=AttachmentChoice.ATTACH.value),
            PromptOption(label="➡️ Пропустить", action=AttachmentChoice.SKIP.value),
            CANCEL_OPTION,
        ),
    )


def attachment_upload_prompt(notice: Optional[str] = None) -> Prompt:
    text = "📷 Отправьте фото чека одним изображением."
    if notice:
        text = f"{notice}\n\n{text}"
    return Prompt(
        text=text,
        options=(
            PromptOption(label="➡️ Пропустить", action=AttachmentChoice.SKIP.value),
            CANCEL_OPTION,
        ),
    )


def attachment_linked(user: UserProfile, row: int) -> Prompt:
    return main_menu(user, f"✅ Чек прикреплен к записи (строка {row}).")


def finished_without_attachment(user: UserProfile, row: Optional[int]) -> Prompt:
    suffix = f" (строка {row})" if row else ""
    return main_menu(user, f"✅ Запись сохранена без чека{suffix}.")


def transfer_done(
    user: UserProfile,
    inbound: LedgerRecord,
    outbound: LedgerRecord,
    inbound_row: int,
    outbound_row: int,
) -> Prompt:
    return main_menu(user, (
        "✅ Перевод успешно выполнен!\n\n"
        f"📅 Дата: {inbound.date}\n"
        f"💰 Сумма: {inbound.amount_text}\n"
        f"🎯 Направление: {inbound.direction}\n\n"
        f"📤 Из кошелька: {outbound.wallet} (строка {outbound_row})\n"
        f"📥 В кошелек: {inbound.wallet} (строка {inbound_row})"
    ))


def transfer_partially_saved(inbound: LedgerRecord, inbound_row: int) -> Prompt:
    return message(
        "⚠️ Поступление записано "
        f"({inbound.wallet}, строка {inbound_row}), "
        "но запись выбытия сохранить не удалось.\n\n"
        "Нажмите на кошелек ниже, чтобы повторить запись выбытия, "
        "или сообщите администратору."
    )


def admin_only() -> Prompt:
    return message("❌ Эта функция доступна только администраторам.")


def no_active_session(free_text: bool) -> Prompt:
    if free_text:
        return message("Используйте /start для начала работы")
    return message("❌ Ошибка. Начните заново с /start")
