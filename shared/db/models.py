import uuid as _uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Enum as SAEnum, JSON, Text
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AccountType(str, Enum):
    admin = "admin"
    user = "user"


class LogLevel(str, Enum):
    debug = "debug"
    info = "info"
    warn = "warn"
    error = "error"


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(UUID(as_uuid=True), primary_key=True, default=_uuid.uuid4)
    email = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)
    account_type = Column(SAEnum(AccountType), default=AccountType.user, nullable=False)
    profile_image_url = Column(String, nullable=True)  # public URL or social-login avatar
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Farm(Base):
    __tablename__ = "farms"
    id = Column(UUID(as_uuid=True), primary_key=True, default=_uuid.uuid4)
    farm_name = Column(String, nullable=False)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class VisitorEntry(Base):
    __tablename__ = "visitor_entries"
    id = Column(UUID(as_uuid=True), primary_key=True, default=_uuid.uuid4)
    farm_id = Column(UUID(as_uuid=True), ForeignKey("farms.id"), nullable=False)
    visitor_name = Column(String, nullable=False)
    visit_datetime = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    profile_photo_url = Column(String, nullable=True)  # URL embedding the visitor-photos object path
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SystemLog(Base):
    __tablename__ = "system_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=_uuid.uuid4)
    level = Column(SAEnum(LogLevel), default=LogLevel.info, nullable=False)
    action = Column(String, nullable=False, index=True)
    message = Column(Text, nullable=False)
    user_id = Column(UUID(as_uuid=True), nullable=True)
    user_email = Column(String, nullable=True)
    user_ip = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    resource_type = Column(String, nullable=True)
    resource_id = Column(String, nullable=True)
    log_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
