# -*- coding: utf-8 -*-
from flask import jsonify
from pydantic import ValidationError


def validation_error_response(e: ValidationError):
    """400 body for a pydantic ValidationError, one entry per invalid field."""
    details = [
        {
            'field': '.'.join(str(part) for part in err['loc']),
            'message': err['msg'],
        }
        for err in e.errors()
    ]
    body = {
        'error': 'validation_error',
        'message': 'Invalid request data',
        'details': details,
    }
    if details:
        body['field'] = details[0]['field']
    return jsonify(body), 400
