# -*- coding: utf-8 -*-
"""
Database infrastructure.

Single Flask-SQLAlchemy instance shared by every model and service.
"""
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

__all__ = ["db"]
