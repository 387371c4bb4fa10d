"""
HTML email templates for Book & Move job distribution events.

Every public function returns a complete HTML string ready for sending via
the ``send_email`` helper in ``notifications.py``.

Design tokens:
  - Primary accent: #2563EB (blue)
  - Background:     #f8fafc
  - Card:           #ffffff
  - Text dark:      #111827
  - Text muted:     #4b5563 / #6b7280

All styles are inlined for email-client compatibility. No external
resources (fonts, images, scripts) are referenced.
"""

from html import escape as _esc


# ---------------------------------------------------------------------------
# Shared layout helpers
# ---------------------------------------------------------------------------

def _header():
    return (
        '<div style="text-align:center;margin-bottom:30px;">'
        '<h1 style="color:#2563EB;font-size:28px;margin:0;font-family:Arial,sans-serif;font-weight:700;">Book &amp; Move</h1>'
        '<p style="color:#6b7280;margin:5px 0 0;font-size:14px;">Moving &amp; Cleaning Marketplace</p>'
        '</div>'
    )


def _footer():
    return (
        '<div style="text-align:center;margin-top:30px;padding-top:20px;border-top:1px solid #e5e7eb;color:#9ca3af;font-size:12px;line-height:1.6;">'
        '<p style="margin:0 0 4px;">Book &amp; Move</p>'
        '<p style="margin:0;">support@bookandmove.com</p>'
        '</div>'
    )


def _wrap(body_html):
    """Wrap inner content in the common email shell (background, card, header, footer)."""
    return (
        '<!DOCTYPE html>'
        '<html lang="en"><head><meta charset="utf-8">'
        '<meta name="viewport" content="width=device-width,initial-scale=1.0">'
        '<title>Book &amp; Move</title></head>'
        '<body style="margin:0;padding:0;background-color:#f3f4f6;">'
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;background:#f8fafc;padding:40px 20px;">'
        + _header()
        + '<div style="background:#ffffff;border-radius:12px;padding:30px;box-shadow:0 1px 3px rgba(0,0,0,0.1);">'
        + body_html
        + '</div>'
        + _footer()
        + '</div></body></html>'
    )


def _detail_row(label, value, is_last=False, highlight_last=True):
    """Single key-value row for detail tables."""
    emphasise = is_last and highlight_last
    border = 'border-top:1px solid #BFDBFE;' if emphasise else ''
    pad_top = '12px' if emphasise else '8px'
    val_color = '#2563EB' if emphasise else '#111827'
    val_size = '18px' if emphasise else '14px'
    return (
        '<tr style="{border}">'
        '<td style="padding:{pt} 0 8px;color:#6b7280;font-size:14px;">{label}</td>'
        '<td style="padding:{pt} 0 8px;color:{vc};font-size:{vs};font-weight:600;text-align:right;">{value}</td>'
        '</tr>'
    ).format(border=border, pt=pad_top, label=_esc(str(label)),
             value=_esc(str(value)), vc=val_color, vs=val_size)


def _detail_table(rows, highlight_last=True):
    """Blue-tinted detail box. *rows* is a list of (label, value) tuples."""
    inner = ''
    for i, (label, value) in enumerate(rows):
        inner += _detail_row(label, value, is_last=(i == len(rows) - 1),
                             highlight_last=highlight_last)
    return (
        '<div style="background:#EFF6FF;border:1px solid #BFDBFE;border-radius:8px;padding:20px;margin:20px 0;">'
        '<table style="width:100%;border-collapse:collapse;">'
        + inner
        + '</table></div>'
    )


def _button(url, label):
    """Call-to-action button."""
    return (
        '<div style="text-align:center;margin:28px 0 12px;">'
        '<a href="{url}" style="display:inline-block;background:#2563EB;color:#ffffff;'
        'text-decoration:none;padding:14px 36px;border-radius:8px;font-size:16px;'
        'font-weight:600;line-height:1;">'.format(url=_esc(str(url)))
        + _esc(str(label))
        + '</a></div>'
    )


def _paragraph(text, muted=False):
    color = '#6b7280' if muted else '#4b5563'
    return '<p style="color:{};font-size:14px;line-height:1.6;">{}</p>'.format(color, text)


def _greeting(name):
    return '<p style="color:#4b5563;line-height:1.6;">Hi {},</p>'.format(
        _esc(str(name)) if name else 'there'
    )


def _title(text):
    return '<h2 style="color:#111827;margin:0 0 12px;font-size:22px;">{}</h2>'.format(_esc(text))


def format_money(value):
    """Dollar amounts are rendered with two decimals; anything else verbatim."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return '${:.2f}'.format(float(value))
    return str(value) if value not in (None, '') else 'To be determined'


def short_id(job_id):
    return str(job_id)[:8] if job_id else 'N/A'


# ---------------------------------------------------------------------------
# 1. New job alert (to provider)
# ---------------------------------------------------------------------------

def job_alert_html(provider_name, job_id, move_date, move_time, pickup, dropoff,
                   home_size=None, estimated_duration=None, services=None,
                   dashboard_url=None):
    """Return HTML for a new-job alert sent to a matching provider."""
    body = _title('New Job Available in Your Area')
    body += _greeting(provider_name)
    body += _paragraph(
        'A customer has paid their deposit and is looking for a mover. '
        'The first provider to accept gets the job.'
    )

    rows = [
        ('Job', '#{}'.format(short_id(job_id))),
        ('Move Date', move_date or 'TBD'),
        ('Time', move_time or 'TBD'),
        ('From', pickup),
        ('To', dropoff),
        ('Home Size', home_size or 'Not specified'),
    ]
    if estimated_duration:
        rows.append(('Estimated Duration', '{} hours'.format(estimated_duration)))
    if services:
        rows.append(('Services', ', '.join(str(s) for s in services)))
    body += _detail_table(rows, highlight_last=False)

    if dashboard_url:
        body += _button(dashboard_url, 'View & Accept Job')

    body += _paragraph('This alert expires in 24 hours.', muted=True)
    return _wrap(body)


# ---------------------------------------------------------------------------
# 2. Job claimed (to customer)
# ---------------------------------------------------------------------------

def job_claimed_html(customer_name, job_id, provider_name, provider_phone,
                     provider_email, move_date, move_time, pickup, dropoff, job_amount):
    """Return HTML telling the customer which mover accepted the job."""
    body = _title('Mover Assigned!')
    body += _greeting(customer_name)
    body += _paragraph(
        'Great news! <strong>{}</strong> has accepted your move and will be in touch '
        'to confirm the details.'.format(_esc(str(provider_name or 'A mover')))
    )

    body += _detail_table([
        ('Job', '#{}'.format(short_id(job_id))),
        ('Mover', provider_name or 'N/A'),
        ('Mover Phone', provider_phone or 'N/A'),
        ('Mover Email', provider_email or 'N/A'),
        ('Move Date', move_date or 'TBD'),
        ('Time', move_time or 'TBD'),
        ('From', pickup),
        ('To', dropoff),
        ('Remaining Balance', format_money(job_amount)),
    ])

    body += _paragraph(
        'Your deposit has already been applied. The remaining balance is paid '
        'directly to your mover on moving day.', muted=True
    )
    return _wrap(body)


# ---------------------------------------------------------------------------
# 3. Job completed (customer and provider)
# ---------------------------------------------------------------------------

def job_completed_customer_html(customer_name, provider_name, job_id, move_date,
                                completion_date, pickup, dropoff, payment_amount,
                                review_url=None):
    """Return HTML confirming completion to the customer."""
    body = _title('Move Completed!')
    body += _greeting(customer_name)
    body += _paragraph(
        'Your move with <strong>{}</strong> has been marked as completed. '
        'Thank you for booking with us!'.format(_esc(str(provider_name or 'your mover')))
    )

    body += _detail_table([
        ('Job', '#{}'.format(short_id(job_id))),
        ('Move Date', move_date),
        ('Completed On', completion_date),
        ('From', pickup),
        ('To', dropoff),
        ('Amount', format_money(payment_amount)),
    ])

    if review_url:
        body += _button(review_url, 'Leave a Review')
    return _wrap(body)


def job_completed_provider_html(provider_name, customer_name, job_id, move_date,
                                completion_date, pickup, dropoff, payment_amount):
    """Return HTML confirming completion to the provider."""
    body = _title('Job Completed Successfully!')
    body += _greeting(provider_name)
    body += _paragraph(
        'You have completed the move for <strong>{}</strong>. Nice work!'.format(
            _esc(str(customer_name or 'your customer'))
        )
    )

    body += _detail_table([
        ('Job', '#{}'.format(short_id(job_id))),
        ('Customer', customer_name or 'N/A'),
        ('Move Date', move_date),
        ('Completed On', completion_date),
        ('From', pickup),
        ('To', dropoff),
        ('Job Amount', format_money(payment_amount)),
    ])
    return _wrap(body)


# ---------------------------------------------------------------------------
# 4. Assignment window expired (to customer)
# ---------------------------------------------------------------------------

def job_expired_html(customer_name, job_id, move_date, support_email=None):
    """Return HTML for a job whose assignment window lapsed without a mover."""
    body = _title('Job Assignment Expired')
    body += _greeting(customer_name)
    body += _paragraph(
        'Unfortunately no mover accepted your job for {} in time. '
        'Our team will reach out to help you find a mover or arrange a refund '
        'of your deposit.'.format(_esc(str(move_date or 'your move date')))
    )
    body += _detail_table([
        ('Job', '#{}'.format(short_id(job_id))),
        ('Move Date', move_date or 'TBD'),
    ], highlight_last=False)
    if support_email:
        body += _paragraph('Questions? Contact us at {}.'.format(_esc(support_email)), muted=True)
    return _wrap(body)


# ---------------------------------------------------------------------------
# 5. Unpaid booking cancelled (to customer)
# ---------------------------------------------------------------------------

def booking_cancelled_html(customer_name, job_id, move_date, reason, rebook_url=None):
    """Return HTML for a booking removed because the deposit was never paid."""
    body = _title('Booking Cancelled')
    body += _greeting(customer_name)
    body += _paragraph(
        'Your booking for {} has been cancelled.'.format(_esc(str(move_date or 'your move')))
    )
    body += _detail_table([
        ('Job', '#{}'.format(short_id(job_id))),
        ('Move Date', move_date or 'TBD'),
        ('Reason', reason),
    ], highlight_last=False)
    if rebook_url:
        body += _button(rebook_url, 'Book Again')
    return _wrap(body)


# ---------------------------------------------------------------------------
# 6. Long-distance intake (customer and coordination team)
# ---------------------------------------------------------------------------

def long_distance_confirmation_html(customer_name, job_id, move_date, pickup, dropoff):
    """Return HTML acknowledging a long-distance request to the customer."""
    body = _title('We Received Your Long-Distance Move')
    body += _greeting(customer_name)
    body += _paragraph(
        'Long-distance moves are handled personally by our coordination team. '
        'A coordinator will contact you within one business day to plan your move.'
    )
    body += _detail_table([
        ('Job', '#{}'.format(short_id(job_id))),
        ('Move Date', move_date or 'TBD'),
        ('From', pickup),
        ('To', dropoff),
    ], highlight_last=False)
    return _wrap(body)


def long_distance_team_html(job_id, customer_name, customer_email, customer_phone,
                            move_date, move_time, pickup, dropoff, home_size=None,
                            quote_subtotal=None):
    """Return HTML notifying the coordination team about a long-distance job."""
    body = _title('New Long-Distance Job')
    body += _paragraph('A long-distance booking needs manual coordination.')
    body += _detail_table([
        ('Job', '#{}'.format(short_id(job_id))),
        ('Customer', customer_name or 'N/A'),
        ('Email', customer_email or 'N/A'),
        ('Phone', customer_phone or 'N/A'),
        ('Move Date', move_date or 'TBD'),
        ('Time', move_time or 'TBD'),
        ('From', pickup),
        ('To', dropoff),
        ('Home Size', home_size or 'Not specified'),
        ('Quote', format_money(quote_subtotal)),
    ], highlight_last=False)
    return _wrap(body)


# ---------------------------------------------------------------------------
# Formatting helpers shared with the engine
# ---------------------------------------------------------------------------

def format_location(city, state):
    """"City, ST" or "Location not specified"."""
    if city and state:
        return '{}, {}'.format(city, state)
    return city or state or 'Location not specified'


def format_date(value):
    return value.strftime('%B %d, %Y') if value else 'TBD'
