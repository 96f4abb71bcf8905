from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from app.core.config import settings

config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Every model must be imported so autogenerate sees its table
from app.core.database import Base
from app.models.user import User
from app.models.clinic import Clinic, ClinicUser
from app.models.lead import Lead
from app.models.sequence import Sequence, SequenceStep, SequenceEnrollment
from app.models.campaign import Campaign, CampaignLead
from app.models.booking import DemoBooking, PatientBooking
from app.models.demo_access import DemoAccessToken
from app.models.chatbot import ChatbotThread, ChatbotMessage
from app.models.message import OutboundMessage
from app.models.genius import GeniusEngineState
from app.models.automation_job import AutomationJob
from app.models.job_lease import JobLease
target_metadata = Base.metadata

DATABASE_URL = settings.DATABASE_URL


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Emits the migration SQL to the script output without connecting.
    """
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        {"sqlalchemy.url": DATABASE_URL},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
