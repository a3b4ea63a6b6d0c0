from typing import Optional, Dict

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database (PostgreSQL em produção; SQLite aceito em dev/testes)
    DATABASE_URL: str

    # JWT
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 24

    # App Configuration
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Billing Reconciler"
    ENVIRONMENT: str = "development"

    # Redis (broker/backend do Celery)
    REDIS_URL: Optional[str] = None
    REDIS_PASSWORD: Optional[str] = None

    # Executa tasks do Celery na própria thread (testes / dev sem worker)
    CELERY_TASK_ALWAYS_EAGER: bool = False

    @model_validator(mode='after')
    def assemble_redis_url(self) -> 'Settings':
        if self.REDIS_PASSWORD and self.REDIS_URL:
            # Se a URL já contiver senha (ex: :password@...), não fazemos nada
            if "@" in self.REDIS_URL:
                return self

            import urllib.parse
            if "redis://" in self.REDIS_URL:
                encoded_pwd = urllib.parse.quote_plus(self.REDIS_PASSWORD)
                # Formato: redis://:PASSWORD@HOST:PORT/DB
                self.REDIS_URL = self.REDIS_URL.replace("redis://", f"redis://:{encoded_pwd}@", 1)
        return self

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    # Consulta o status do PaymentIntent na Stripe quando o ledger ainda está pendente
    VERIFY_WITH_PROCESSOR: bool = True

    # PIX
    PIX_EXPIRY_SECONDS: int = 30 * 60
    PIX_PLAN_TYPES: Dict[str, str] = {
        "monthly": "Premium Mensal",
        "annual": "Premium Anual",
    }

    # Produto companheiro do bundle (bot de WhatsApp)
    COMPANION_API_URL: Optional[str] = None
    COMPANION_API_SECRET: Optional[str] = None
    COMPANION_BUNDLE_DAYS: int = 30

    def get_pix_plan_name(self, plan_type: str) -> Optional[str]:
        """Retorna o nome de exibição de um plano PIX ou None se não existir."""
        return self.PIX_PLAN_TYPES.get(plan_type)

    # Email / SMTP Configuration
    SMTP_HOST: str = "smtp.hostinger.com"
    SMTP_PORT: int = 465
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_FROM_NAME: str = "Billing Reconciler"
    FRONTEND_URL: str = "http://localhost:3000"
    # Contato exibido quando a ativação manual falha
    SUPPORT_EMAIL: str = "suporte@example.com"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
