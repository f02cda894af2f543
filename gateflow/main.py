# -*- coding: utf-8 -*-
"""WSGI entry point: gunicorn gateflow.main:app"""
from gateflow.factory import create_app

app = create_app()
