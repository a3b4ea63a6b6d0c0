import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from pathlib import Path
from typing import Optional
import logging

from jinja2 import Template
from app.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Serviço para envio de emails via SMTP."""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.SMTP_FROM_EMAIL or settings.SMTP_USER
        self.from_name = settings.SMTP_FROM_NAME
        self.frontend_url = settings.FRONTEND_URL

    def _get_template_path(self, template_name: str) -> Path:
        """Retorna o caminho do template."""
        base_path = Path(__file__).parent.parent
        return base_path / "templates" / "emails" / template_name

    def _render_template(self, template_name: str, context: dict) -> str:
        """Renderiza um template HTML com o contexto fornecido."""
        template_path = self._get_template_path(template_name)

        if not template_path.exists():
            raise FileNotFoundError(f"Template não encontrado: {template_path}")

        with open(template_path, "r", encoding="utf-8") as f:
            template_content = f.read()

        template = Template(template_content)
        return template.render(**context)

    def _send_email(
        self,
        to: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """Envia email via SMTP."""
        if not self.smtp_user or not self.smtp_password:
            logger.error("Credenciais SMTP não configuradas")
            return False

        try:
            message = MIMEMultipart("alternative")
            message["Subject"] = subject
            message["From"] = f"{self.from_name} <{self.from_email}>"
            message["To"] = to

            message.attach(MIMEText(html_content, "html", "utf-8"))
            if text_content:
                message.attach(MIMEText(text_content, "plain", "utf-8"))

            context = ssl.create_default_context()

            with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context) as server:
                server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, [to], message.as_string())

            logger.info(f"Email enviado com sucesso para: {to}")
            return True

        except smtplib.SMTPException as e:
            logger.error(f"Erro SMTP ao enviar email para {to}: {e}")
            return False
        except Exception as e:
            logger.error(f"Erro inesperado ao enviar email para {to}: {e}")
            return False

    def send_purchase_completed_email(self, user_email: str, user_name: Optional[str], plan_name: str) -> bool:
        """Envia a confirmação de compra depois que o plano foi ativado."""
        try:
            dashboard_url = f"{self.frontend_url}/dashboard"
            context = {
                "user_name": user_name or "Usuário",
                "plan_name": plan_name,
                "dashboard_url": dashboard_url,
                "support_email": settings.SUPPORT_EMAIL,
            }
            html_content = self._render_template("purchase_confirmation.html", context)

            text_content = f"""
Olá {user_name or 'Usuário'},

Seu pagamento foi confirmado e o plano {plan_name} já está ativo.

Acesse a plataforma:

{dashboard_url}

Dúvidas? Fale com {settings.SUPPORT_EMAIL}.
"""
            return self._send_email(
                to=user_email,
                subject=f"Pagamento confirmado - {plan_name}",
                html_content=html_content,
                text_content=text_content,
            )
        except Exception as e:
            logger.error(f"Erro ao enviar confirmação de compra para {user_email}: {e}")
            return False
