"""
Email Service

Sends LGPD transactional e-mails through the Resend HTTP API.
Bodies are rendered from Jinja2 templates in zona_fiscal/templates/emails.
Sends never raise: failures are logged and reported as False.
"""

import logging
from datetime import datetime
from pathlib import Path

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from zona_fiscal.config import Settings, settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "emails"

REQUEST_TIMEOUT_SECONDS = 10.0


class EmailService:
    """Service for sending templated e-mails via Resend"""

    def __init__(
        self,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or settings
        self._transport = transport
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def render(self, template_name: str, **context) -> str:
        context.setdefault("app_url", self.config.app_url.rstrip("/"))
        context.setdefault("dpo_email", self.config.dpo_email)
        context.setdefault("year", datetime.now().year)
        return self.env.get_template(template_name).render(**context)

    async def _send_email(
        self,
        *,
        sender: str,
        to_email: str | list[str],
        subject: str,
        html_body: str,
    ) -> bool:
        """
        POST one message to Resend.

        Args:
            sender: "Name <address>" from header
            to_email: Recipient address(es)
            subject: E-mail subject
            html_body: Rendered HTML body

        Returns:
            bool: True if Resend accepted the message, False otherwise
        """
        if not self.config.resend_api_key:
            logger.warning("RESEND_API_KEY not configured; e-mail %r not sent", subject)
            return False

        recipients = [to_email] if isinstance(to_email, str) else list(to_email)
        payload = {"from": sender, "to": recipients, "subject": subject, "html": html_body}

        try:
            async with httpx.AsyncClient(
                base_url=self.config.resend_api_url,
                transport=self._transport,
                timeout=REQUEST_TIMEOUT_SECONDS,
            ) as client:
                response = await client.post(
                    "/emails",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.config.resend_api_key}"},
                )
        except httpx.HTTPError as exc:
            logger.warning("Failed to send e-mail %r: %s", subject, exc)
            return False

        if response.status_code >= 400:
            logger.warning(
                "Resend rejected e-mail %r: status=%d body=%s",
                subject,
                response.status_code,
                response.text[:500],
            )
            return False

        logger.info("E-mail %r sent to %d recipient(s)", subject, len(recipients))
        return True

    async def send_reactivation_email(
        self,
        email: str,
        token: str,
        user_name: str | None = None,
    ) -> bool:
        """Ask an anonymized user to re-submit their data."""
        reactivation_link = f"{self.config.app_url.rstrip('/')}/reativar-conta?token={token}"
        html = self.render(
            "reactivation_request.html",
            user_name=user_name or "Usuário",
            reactivation_link=reactivation_link,
            token_days=self.config.reactivation_token_days,
        )
        return await self._send_email(
            sender=self.config.email_from_dpo,
            to_email=email,
            subject="Solicitação de Reativação de Conta - Zona Fiscal",
            html_body=html,
        )

    async def send_deadline_reminder(
        self,
        admin_email: str,
        request_type: str,
        days_remaining: int,
        request_date: datetime,
        admin_name: str | None = None,
    ) -> bool:
        html = self.render(
            "lgpd_deadline_reminder.html",
            user_name=admin_name or "Administrador",
            request_type=request_type,
            days_remaining=days_remaining,
            request_date=request_date.strftime("%d/%m/%Y"),
            deadline_days=self.config.lgpd_response_deadline_days,
        )
        return await self._send_email(
            sender=self.config.email_from_system,
            to_email=admin_email,
            subject=f"Prazo LGPD: {days_remaining} dias restantes - {request_type}",
            html_body=html,
        )

    async def send_data_deletion_confirmation(
        self,
        email: str,
        user_name: str | None = None,
        delete_type: str = "permanent",
    ) -> bool:
        anonymize = delete_type == "anonymize"
        subject = (
            "Seus Dados Foram Anonimizados - Zona Fiscal"
            if anonymize
            else "Sua Conta Foi Excluída - Zona Fiscal"
        )
        html = self.render(
            "data_deletion_confirmation.html",
            user_name=user_name or "Usuário",
            anonymize=anonymize,
        )
        return await self._send_email(
            sender=self.config.email_from_dpo,
            to_email=email,
            subject=subject,
            html_body=html,
        )


def get_email_service() -> EmailService:
    return EmailService()
