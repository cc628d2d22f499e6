"""
User-facing messages (Arabic by default, English on request).

Messages are non-technical: they never include exception text, stack traces
or internal identifiers. The only variable part of an error message is the
name of the offending field for validation errors.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from domain.errors import SalesEngineError, ValidationError
from domain.notification import NotificationType

DEFAULT_LANGUAGE = "ar"
SUPPORTED_LANGUAGES = ("ar", "en")

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "validation_error": {
        "ar": "قيمة غير صالحة في الحقل: {field}",
        "en": "Invalid value for field: {field}",
    },
    "not_found": {
        "ar": "العنصر المطلوب غير موجود",
        "en": "The requested item was not found",
    },
    "conflict": {
        "ar": "تم تعديل البيانات من قبل مستخدم آخر. يرجى التحديث والمحاولة مرة أخرى",
        "en": "The data was changed by someone else. Please refresh and try again",
    },
    "piece_unavailable": {
        "ar": "القطعة غير متاحة للبيع حالياً",
        "en": "This piece is not available for sale",
    },
    "invalid_transition": {
        "ar": "لا يمكن تنفيذ هذه العملية في حالة البيع الحالية",
        "en": "This action is not allowed in the sale's current status",
    },
    "transient": {
        "ar": "تعذر الاتصال بالخادم. يرجى المحاولة مرة أخرى",
        "en": "Could not reach the server. Please try again",
    },
    "storage_error": {
        "ar": "حدث خطأ أثناء حفظ البيانات",
        "en": "An error occurred while saving data",
    },
    "invalid_schedule": {
        "ar": "لا يمكن إنشاء جدول الأقساط بهذه الشروط",
        "en": "An installment schedule cannot be built with these terms",
    },
    "operation_failed": {
        "ar": "فشلت العملية ولم يتم حفظ أي تغيير",
        "en": "The operation failed and no change was saved",
    },
    "operation_partially_failed": {
        "ar": "فشلت العملية وقد تحتاج البيانات إلى مراجعة يدوية",
        "en": "The operation failed and the data may need a manual review",
    },
    "load_superseded": {
        "ar": "تم استبدال هذا الطلب بطلب أحدث",
        "en": "This request was replaced by a newer one",
    },
    "engine_error": {
        "ar": "حدث خطأ غير متوقع",
        "en": "An unexpected error occurred",
    },
}

_NOTIFICATION_TEXTS: Dict[str, Dict[str, Tuple[str, str]]] = {
    NotificationType.SALE_CREATED: {
        "ar": ("بيع جديد", "تم إنشاء بيع جديد للقطعة {piece} بمبلغ {amount} DT"),
        "en": ("New sale", "A new sale was created for piece {piece} ({amount} DT)"),
    },
    NotificationType.SALE_CONFIRMED: {
        "ar": ("تأكيد بيع", "تم تأكيد بيع القطعة {piece}"),
        "en": ("Sale confirmed", "The sale of piece {piece} was confirmed"),
    },
    NotificationType.SALE_CANCELLED: {
        "ar": ("إلغاء بيع", "تم إلغاء بيع القطعة {piece}"),
        "en": ("Sale cancelled", "The sale of piece {piece} was cancelled"),
    },
    NotificationType.SALE_REVERTED: {
        "ar": ("إرجاع بيع", "تمت إعادة بيع القطعة {piece} إلى الانتظار"),
        "en": ("Sale reverted", "The sale of piece {piece} was moved back to pending"),
    },
    NotificationType.PROMISE_PAYMENT_RECEIVED: {
        "ar": ("دفعة وعد بالبيع", "تم استلام دفعة بمبلغ {amount} DT للقطعة {piece}"),
        "en": ("Promise payment", "A payment of {amount} DT was received for piece {piece}"),
    },
    NotificationType.INSTALLMENT_DUE: {
        "ar": ("قسط مستحق", "قسط بمبلغ {amount} DT مستحق للقطعة {piece}"),
        "en": ("Installment due", "An installment of {amount} DT is due for piece {piece}"),
    },
}


def resolve_language(accept_language: Optional[str]) -> str:
    """
    Pick the first supported language from an Accept-Language header.

    Example:
        resolve_language("en-US,en;q=0.9")  # "en"
    """

    if not accept_language:
        return DEFAULT_LANGUAGE
    for part in accept_language.split(","):
        tag = part.split(";")[0].strip().lower()
        primary = tag.split("-")[0]
        if primary in SUPPORTED_LANGUAGES:
            return primary
    return DEFAULT_LANGUAGE


def error_message(code: str, language: str = DEFAULT_LANGUAGE, field: Optional[str] = None) -> str:
    texts = _ERROR_MESSAGES.get(code, _ERROR_MESSAGES["engine_error"])
    text = texts.get(language, texts[DEFAULT_LANGUAGE])
    return text.format(field=field or "")


def message_for_error(exc: BaseException, language: str = DEFAULT_LANGUAGE) -> str:
    if isinstance(exc, ValidationError):
        return error_message(exc.code, language, field=exc.field)
    if isinstance(exc, SalesEngineError):
        return error_message(exc.code, language)
    return error_message("engine_error", language)


def notification_text(
    type_: str,
    language: str = DEFAULT_LANGUAGE,
    *,
    piece: str = "",
    amount: str = "",
) -> Tuple[str, str]:
    """Title and message for an owner notification."""

    texts = _NOTIFICATION_TEXTS[type_]
    title, template = texts.get(language, texts[DEFAULT_LANGUAGE])
    return title, template.format(piece=piece, amount=amount)


__all__ = [
    "DEFAULT_LANGUAGE",
    "SUPPORTED_LANGUAGES",
    "error_message",
    "message_for_error",
    "notification_text",
    "resolve_language",
]
