"""Declarative base shared by all UMS models."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
