from __future__ import annotations

import logging
from html import escape

from plantasy.domain.orders.aggregates import Order
from plantasy.storage.objects import ObjectStore, StoredObject

logger = logging.getLogger(__name__)

_STYLE = """
      body { font-family: system-ui, -apple-system, 'Segoe UI', sans-serif; padding: 24px; color: #111827; }
      h3 { margin: 0 0 8px; }
      .section { margin-bottom: 16px; }
      table { width: 100%; border-collapse: collapse; margin-top: 8px; }
      th, td { padding: 6px 8px; border: 1px solid #e5e7eb; font-size: 13px; }
      th { background: #f3f4f6; text-align: left; }
      .totals td { font-weight: 600; }
      .muted { color: #6b7280; font-size: 13px; }
      .title { font-size: 20px; font-weight: 700; }
"""


def _rupees(value) -> str:
    return f"&#8377;{value:.2f}"


def invoice_object_key(order_id: str) -> str:
    return f"invoices/{order_id}.html"


def render_invoice_html(order: Order) -> str:
    address = order.delivery_address
    pricing = order.pricing

    rows = "".join(
        "<tr>"
        f"<td>{escape(item.product_name or 'Product')}</td>"
        f"<td style=\"text-align:center;\">{item.quantity}</td>"
        f"<td style=\"text-align:right;\">{_rupees(item.price)}</td>"
        f"<td style=\"text-align:right;\">{_rupees(item.total_price)}</td>"
        "</tr>"
        for item in order.items
    )

    totals = [("Subtotal", _rupees(pricing.sub_total)), ("Tax", _rupees(pricing.tax))]
    if pricing.discount > 0:
        label = f"Discount ({escape(pricing.coupon_code)})" if pricing.coupon_code else "Discount"
        totals.append((label, f"-{_rupees(pricing.discount)}"))
    totals.append(("Shipping", _rupees(pricing.shipping_charge)))
    totals.append(("Grand Total", _rupees(pricing.grand_total)))
    totals_rows = "".join(
        f"<tr class=\"totals\"><td colspan=\"3\" style=\"text-align:right;\">{label}</td>"
        f"<td style=\"text-align:right;\">{value}</td></tr>"
        for label, value in totals
    )

    line2 = f"{escape(address.address_line2)}<br/>" if address.address_line2 else ""
    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8" />
    <title>Invoice - {escape(order.order_id)}</title>
    <style>{_STYLE}</style>
  </head>
  <body>
    <div class="section">
      <div class="title">INVOICE {escape(order.invoice_id)}</div>
      <div class="muted">Order ID: {escape(order.order_id)}</div>
      <div class="muted">Status: {order.order_status.value} | Payment: {escape(order.payment.payment_status or 'N/A')}</div>
    </div>
    <div class="section">
      <h3>Billing Information</h3>
      <div class="muted">
        {escape(address.first_name)} {escape(address.last_name)}<br/>
        {escape(address.address_line1)}<br/>
        {line2}
        {escape(address.city)}, {escape(address.region)} {escape(address.zip)}<br/>
        {escape(address.country)}<br/>
        Phone: {escape(address.phone)}
      </div>
    </div>
    <div class="section">
      <h3>Order Details</h3>
      <table>
        <thead>
          <tr><th>Product</th><th style="text-align:center;">Qty</th><th style="text-align:right;">Price</th><th style="text-align:right;">Total</th></tr>
        </thead>
        <tbody>{rows}{totals_rows}</tbody>
      </table>
    </div>
  </body>
</html>
"""


class InvoiceService:
    def __init__(self, objects: ObjectStore):
        self.objects = objects

    def archive(self, order: Order) -> StoredObject:
        stored = self.objects.put_text(
            invoice_object_key(order.order_id),
            render_invoice_html(order),
            content_type="text/html; charset=utf-8",
        )
        logger.info("invoice archived: order_id=%s key=%s backend=%s", order.order_id, stored.object_key, stored.backend)
        return stored
