"""Notification texts for order events.

Customers receive Turkish e-mails, so every order status maps to a localized
label and, for most statuses, an extra sentence explaining what happens next.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UNKNOWN_STATUS = "Bilinmiyor"

STATUS_TEXT = {
    "PENDING": "Beklemede",
    "CONFIRMED": "Onaylandı",
    "PROCESSING": "Hazırlanıyor",
    "SHIPPED": "Kargoya Verildi",
    "DELIVERED": "Teslim Edildi",
    "CANCELLED": "İptal Edildi",
}

STATUS_MESSAGE = {
    "CONFIRMED": "Siparişiniz onaylandı ve hazırlık aşamasına geçti.",
    "PROCESSING": "Siparişiniz hazırlanıyor. Kısa süre içinde kargoya verilecektir.",
    "SHIPPED": "Siparişiniz kargoya verildi! Kargo takip numaranızı kısa süre içinde alacaksınız.",
    "DELIVERED": "Siparişiniz teslim edildi! Alışverişinizden memnun kaldıysanız değerlendirme yapabilirsiniz.",
    "CANCELLED": "Siparişiniz iptal edildi. Ödeme iadeniz 3-5 iş günü içinde hesabınıza yansıyacaktır.",
}


class _Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_id: UUID
    order_id: UUID
    user_id: UUID
    user_email: str = Field(min_length=1)
    user_name: str = ""


class OrderItemInfo(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: Optional[UUID] = None
    product_name: str
    quantity: int
    price: Decimal
    subtotal: Decimal


class OrderCreated(_Event):
    total_amount: Decimal
    shipping_address: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    phone_number: Optional[str] = None
    order_date: Optional[datetime] = None
    order_items: List[OrderItemInfo] = Field(default_factory=list)


class OrderStatusChanged(_Event):
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    changed_at: Optional[datetime] = None


@dataclass(frozen=True)
class Notification:
    """An e-mail ready to be handed to the sender."""
    recipient: str
    subject: str
    body: str
    user_id: UUID
    order_id: UUID
    kind: str = "EMAIL"


def status_text(status: Optional[str]) -> str:
    """Localized label for a status; unknown statuses are returned as-is."""
    if status is None:
        return UNKNOWN_STATUS
    return STATUS_TEXT.get(status.upper(), status)


def status_message(status: Optional[str]) -> Optional[str]:
    if status is None:
        return None
    return STATUS_MESSAGE.get(status.upper())


def short_id(order_id: UUID) -> str:
    return str(order_id)[:8]


def _fmt_date(value: Optional[datetime]) -> str:
    return value.strftime("%d.%m.%Y %H:%M") if value else "-"


def order_created(event: OrderCreated) -> Notification:
    lines = [
        f"Merhaba {event.user_name},",
        "",
        "Siparişiniz başarıyla oluşturuldu!",
        "",
        "Sipariş Bilgileri:",
        f"- Sipariş No: #{short_id(event.order_id)}",
        f"- Toplam Tutar: {event.total_amount} TL",
        f"- Sipariş Tarihi: {_fmt_date(event.order_date)}",
        "",
        "Sipariş Detayları:",
    ]
    lines += [f"- {i.product_name} x {i.quantity} = {i.subtotal} TL" for i in event.order_items]
    lines += [
        "",
        "Teslimat Adresi:",
        event.shipping_address or "-",
        f"{event.city or ''} {event.zip_code or ''}".strip() or "-",
        f"Tel: {event.phone_number or '-'}",
        "",
        "Siparişinizin durumunu takip edebilirsiniz.",
        "",
        "Teşekkürler!",
    ]
    return Notification(
        recipient=event.user_email,
        subject=f"Siparişiniz Oluşturuldu - #{short_id(event.order_id)}",
        body="\n".join(lines),
        user_id=event.user_id,
        order_id=event.order_id,
    )


def order_status_changed(event: OrderStatusChanged) -> Notification:
    lines = [
        f"Merhaba {event.user_name},",
        "",
        "Siparişinizin durumu güncellendi.",
        "",
        "Sipariş Bilgileri:",
        f"- Sipariş No: #{short_id(event.order_id)}",
        f"- Eski Durum: {status_text(event.old_status)}",
        f"- Yeni Durum: {status_text(event.new_status)}",
        f"- Güncelleme Tarihi: {_fmt_date(event.changed_at)}",
        "",
    ]
    extra = status_message(event.new_status)
    if extra:
        lines += [extra, ""]
    lines.append("Teşekkürler!")
    return Notification(
        recipient=event.user_email,
        subject=f"Sipariş Durumu Güncellendi - #{short_id(event.order_id)} - {status_text(event.new_status)}",
        body="\n".join(lines),
        user_id=event.user_id,
        order_id=event.order_id,
    )
