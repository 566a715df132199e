import csv
from io import BytesIO, StringIO

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

HEADER = ['ID', 'Restaurant', 'Guest', 'Email', 'Phone', 'Party', 'Date', 'Time', 'Status']


def _row(booking):
    return [
        booking.id,
        booking.restaurant.name,
        booking.user_name,
        booking.user_email,
        booking.user_phone or '',
        booking.party_size,
        booking.booking_date.isoformat(),
        booking.booking_time,
        booking.status,
    ]


def bookings_csv(bookings):
    si = StringIO()
    cw = csv.writer(si)
    cw.writerow(HEADER)
    for b in bookings:
        cw.writerow(_row(b))
    return si.getvalue()


def bookings_pdf(bookings):
    buffer = BytesIO()
    p = canvas.Canvas(buffer, pagesize=A4)
    p.setTitle('Reservations Report')
    y = 800
    p.setFont('Helvetica-Bold', 14)
    p.drawString(50, y, 'Reservations Report')
    y -= 30
    p.setFont('Helvetica', 10)
    for b in bookings:
        line = (f'{b.id} | {b.restaurant.name} | {b.booking_date.isoformat()} {b.booking_time}'
                f' | {b.user_name} ({b.party_size}) | {b.status}')
        p.drawString(50, y, line)
        y -= 18
        if y < 50:
            p.showPage()
            p.setFont('Helvetica', 10)
            y = 800
    p.save()
    return buffer.getvalue()
