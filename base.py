# ========================================================
# base.py
# ========================================================
# ===================================================
# Declarative Base shared by db.py and models.py.
# The naming convention keeps constraint names stable
# across PostgreSQL and SQLite so IntegrityErrors can
# be matched by name.
# ===================================================

from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))
