import logging
import os


def configure_logging() -> None:
    """Configura o logging padrão da aplicação (nível via LOG_LEVEL)."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # SQLAlchemy e urllib3 são muito verbosos em INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
