import os
from threading import Thread

from flask import current_app
from flask_mail import Mail, Message
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail as SGMail

from models import STATUS_APROVADA

mail = Mail()

# ============================================
# E-MAIL
# ============================================

def _async(app, target, *args, **kwargs):
    def _run():
        with app.app_context():
            target(*args, **kwargs)
    t = Thread(target=_run, daemon=True)
    t.start()
    return t


def send_email(subject: str, recipients: list[str], body: str, html: str | None = None, *, async_send: bool = False) -> bool:
    app = current_app._get_current_object()

    def _send_via_api() -> bool:
        api_key = os.getenv("SENDGRID_API_KEY")
        sender = app.config.get("MAIL_DEFAULT_SENDER")
        if not api_key or not sender:
            app.logger.error("Config SendGrid incompleta.")
            return False
        try:
            sg = SendGridAPIClient(api_key)
            msg = SGMail(
                from_email=sender,
                to_emails=recipients,
                subject=subject,
                html_content=html if html else None,
                plain_text_content=body if not html else None,
            )
            resp = sg.send(msg)
            ok = 200 <= resp.status_code < 300
            if ok:
                app.logger.info("E-mail enviado por SendGrid API.")
            else:
                app.logger.error(f"SendGrid falhou: {resp.status_code} {resp.body}")
            return ok
        except Exception as e:
            app.logger.exception(f"Erro SendGrid API: {e}")
            return False

    def _send_via_smtp() -> bool:
        try:
            msg = Message(subject=subject, recipients=recipients)
            msg.body = body
            if html:
                msg.html = html
            mail.send(msg)
            app.logger.info("E-mail enviado por SMTP.")
            return True
        except Exception as e:
            app.logger.exception(f"Erro SMTP: {e}")
            return False

    if not recipients:
        app.logger.warning(f"E-mail '{subject}' sem destinatários; ignorado.")
        return False

    def _do_send():
        return _send_via_api() if os.getenv("SENDGRID_API_KEY") else _send_via_smtp()

    if async_send:
        _async(app, _do_send)
        return True
    return _do_send()


def notificar_status_reserva(reserva, async_send: bool = True) -> bool:
    morador = reserva.morador
    area = reserva.area_comum
    if not morador or not morador.email:
        return False

    quando = f"{reserva.reservation_date.strftime('%d/%m/%Y')} das {reserva.start_time:%H:%M} às {reserva.end_time:%H:%M}"
    if reserva.status == STATUS_APROVADA:
        assunto = f"Reserva aprovada: {area.nome}"
        corpo = f"Olá, {morador.nome_completo}. Sua reserva de {area.nome} para {quando} foi aprovada!"
    else:
        assunto = f"Reserva recusada: {area.nome}"
        corpo = f"Olá, {morador.nome_completo}. Sua reserva de {area.nome} para {quando} foi recusada."
        if reserva.motivo_recusa:
            corpo += f" Motivo: {reserva.motivo_recusa}"

    return send_email(assunto, [morador.email], corpo, async_send=async_send)
