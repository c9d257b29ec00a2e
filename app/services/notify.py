# app/services/notify.py
from __future__ import annotations

import os
import json
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from urllib import request as urlrequest

log = logging.getLogger("notify")


class Notifier:
    """
    Notifiche admin sulle dirette:
      - Console/log (sempre)
      - Email SMTP (se configurato)
      - Webhook HTTP POST (se configurato)
    Variabili d'ambiente:
      SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, SMTP_FROM, SMTP_TO, SMTP_TLS (1/0)
      NOTIFY_WEBHOOK_URL
    """
    def __init__(self, subject_prefix: str = "[Party Live]"):
        self.subject_prefix = subject_prefix
        self.smtp_host = os.getenv("SMTP_HOST")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user = os.getenv("SMTP_USER")
        self.smtp_pass = os.getenv("SMTP_PASS")
        self.smtp_from = os.getenv("SMTP_FROM")
        self.smtp_to   = os.getenv("SMTP_TO")
        self.smtp_tls  = os.getenv("SMTP_TLS", "1") not in ("0", "false", "False", "")

        self.webhook_url: Optional[str] = os.getenv("NOTIFY_WEBHOOK_URL") or None

    # ---------------------- channels ----------------------

    def _console(self, title: str, payload: dict):
        log.info("[ADMIN-NOTIFY] %s :: %s", title, json.dumps(payload, ensure_ascii=False, default=str))

    def _email(self, subject: str, payload: dict):
        if not (self.smtp_host and self.smtp_from and self.smtp_to):
            return False
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.smtp_from
        msg["To"] = self.smtp_to
        msg.set_content(json.dumps(payload, indent=2, ensure_ascii=False, default=str))

        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as s:
            if self.smtp_tls:
                s.starttls()
            if self.smtp_user and self.smtp_pass:
                s.login(self.smtp_user, self.smtp_pass)
            s.send_message(msg)
        return True

    def _webhook(self, payload: dict):
        if not self.webhook_url:
            return False
        data = json.dumps(payload, default=str).encode("utf-8")
        req = urlrequest.Request(
            self.webhook_url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        with urlrequest.urlopen(req, timeout=10) as resp:  # nosec - trusted admin URL
            resp.read()
        return True

    # ---------------------- public API ----------------------

    def notify(self, title: str, payload: dict) -> dict:
        """Invia su tutti i canali configurati; un canale in errore non blocca gli altri."""
        sent = {"console": False, "email": False, "webhook": False}
        self._console(title, payload)
        sent["console"] = True
        try:
            sent["email"] = bool(self._email(f"{self.subject_prefix} {title}", payload))
        except (smtplib.SMTPException, OSError):
            log.exception("[ADMIN-NOTIFY] email channel failed")
        try:
            sent["webhook"] = bool(self._webhook({"title": title, "payload": payload}))
        except OSError:
            log.exception("[ADMIN-NOTIFY] webhook channel failed")
        return sent
