from typing import Optional
from orderflow.models.order import Order
from orderflow.models.counterpart import Counterpart

def _format_amount(amount: float, currency: str) -> str:
    # es-AR grouping: 12.345,67
    text = f"{amount:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{currency} {text}"

def order_details(order: Order, counterpart: Counterpart, today: str) -> str:
    if order.line_items:
        items = "\n".join(
            f"• {item.description}: {item.quantity:g} {item.unit} - {_format_amount(item.line_total, order.currency)}"
            for item in order.line_items
        )
    else:
        items = "No hay items especificados"

    return (
        f"📋 *DETALLES DEL PEDIDO - {today} - {counterpart.display_name}*\n"
        f"🆔 *Número de Orden:* {order.order_id}\n"
        f"📝 *Notas:* {order.notes or 'Sin notas especiales'}\n"
        f"📦 *Items del pedido:*\n"
        f"{items}\n"
        "---\n"
        "📄 *SOLICITUD DE FACTURA*\n\n"
        "Gracias por recibir el pedido. Por favor, envíe la factura correspondiente para proceder con el pago.\n\n"
        "Saludos!"
    )

def invoice_received(order: Order) -> str:
    return (
        "✅ *FACTURA RECIBIDA*\n\n"
        f"La factura para la orden {order.order_id} ha sido procesada exitosamente.\n\n"
        "Ahora puede proceder con el pago y subir el comprobante correspondiente.\n\n"
        "Saludos!"
    )

def proof_forwarded(order: Order, receipt_url: Optional[str]) -> str:
    link = f"\n{receipt_url}\n" if receipt_url else ""
    return (
        "💳 *COMPROBANTE DE PAGO*\n\n"
        f"Adjuntamos el comprobante de pago de la orden {order.order_id} "
        f"por {_format_amount(order.total_amount, order.currency)}.\n"
        f"{link}\n"
        "Saludos!"
    )

def order_completed(order: Order) -> str:
    return (
        "🎉 *ORDEN COMPLETADA*\n\n"
        f"La orden {order.order_id} ha sido completada exitosamente.\n\n"
        "¡Gracias por utilizar nuestros servicios!\n\n"
        "Saludos!"
    )
