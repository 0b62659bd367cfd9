from __future__ import annotations

from decimal import Decimal

from mp_checkout.services import notifications
from mp_checkout.services.notifications import created_notification, emit_notification, status_notification
from mp_checkout.storage.models import Notification


def test_status_templates():
    assert status_notification("approved", Decimal("1234.5"), "pix", "Ana Souza") == (
        "payment_approved",
        "✅ Pagamento aprovado! Ana Souza pagou R$ 1.234,50 via pix",
    )
    assert status_notification("pending", Decimal("50"), "bolbradesco") == (
        "payment_pending",
        "⏳ Pagamento pendente - R$ 50,00 via bolbradesco",
    )
    assert status_notification("rejected", Decimal("50"), "visa")[1] == "❌ Pagamento rejeitado - R$ 50,00 via visa"


def test_approved_without_payer_name_uses_placeholder():
    _, message = status_notification("approved", Decimal("10"), None)

    assert message == "✅ Pagamento aprovado! Cliente pagou R$ 10,00 via -"


def test_unknown_status_falls_back_to_generic_update():
    assert status_notification("charged_back", Decimal("10"), "visa") == (
        "payment_status_update",
        "Status do pagamento atualizado: charged_back - R$ 10,00",
    )


def test_created_notification_message():
    assert created_notification(Decimal("120.00"), "BRL", "pending") == (
        "payment_created",
        "Novo pagamento de 120,00 BRL - pending",
    )


def test_read_state_and_cleanup(fetch_all):
    first = emit_notification("payment_created", "Novo pagamento", None).notification
    emit_notification("payment_approved", "Aprovado", None)

    assert notifications.unread_count() == 2
    assert notifications.mark_as_read(first.id).is_read is True
    assert notifications.unread_count() == 1
    assert notifications.mark_as_read("missing") is None

    assert notifications.mark_all_as_read() == 1
    assert notifications.unread_count() == 0

    assert len(notifications.list_notifications(limit=1)) == 1
    assert notifications.delete_all_notifications() == 2
    assert fetch_all(Notification) == []
