from fastapi_users_db_sqlalchemy import SQLAlchemyBaseUserTableUUID
from .database import Base


class User(SQLAlchemyBaseUserTableUUID, Base):
    """Staff / admin account. is_superuser marks admins allowed to adjust stock."""
    __tablename__ = "users"
