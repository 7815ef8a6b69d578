# src/assocpay/models/identity.py

from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, DateTime, func, UniqueConstraint
)
from sqlalchemy.orm import relationship
from assocpay.db.base import Base
from assocpay.utils.id_generator import generate_uuid

class User(Base):
    """用户表 - 由认证子系统维护，本模块只读。"""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True, index=True)
    username = Column(String(100), nullable=False)
    display_name = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    profiles = relationship("Profile", back_populates="user")

class Profile(Base):
    """用户的名片档案。一个用户可以有多个，最多一个为默认档案。"""
    __tablename__ = 'profiles'

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=generate_uuid)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    user = relationship("User", back_populates="profiles")
    badges = relationship("ProfileBadge", back_populates="profile", cascade="all, delete-orphan")

class ProfileBadge(Base):
    """展示在档案上的协会徽章。同一档案对同一协会只能有一个徽章。"""
    __tablename__ = 'profile_badges'

    id = Column(Integer, primary_key=True)
    profile_id = Column(Integer, ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False, index=True)
    association_id = Column(Integer, ForeignKey('associations.id', ondelete='CASCADE'), nullable=False, index=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_visible = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    profile = relationship("Profile", back_populates="badges")

    __table_args__ = (
        UniqueConstraint('profile_id', 'association_id', name='uq_profile_badges_profile_association'),
    )
