from functools import wraps

from flask import jsonify, request, current_app
from flask_jwt_extended import verify_jwt_in_request, current_user


def roles_required(*roles):
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            verify_jwt_in_request()
            if current_user is None or current_user['role'] not in roles:
                return jsonify({'error': 'Unauthorized'}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator

def api_key_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        expected = current_app.config.get('CUSTOMER_API_KEY')
        provided = request.headers.get('x-api-key')
        if not expected or provided != expected:
            current_app.logger.warning('Invalid API key on %s', request.path)
            return jsonify({'error': 'Unauthorized: Invalid API key'}), 401
        return f(*args, **kwargs)
    return decorated
