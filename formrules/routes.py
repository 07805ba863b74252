"""
Flask routes for the form rule engine.

JSON endpoints that let a rendering layer or a public submission endpoint
call the engine without linking against it:
- Document parsing
- Visibility evaluation
- Answer validation
- Publish-readiness checks
- Submission (validate, then keep visible answers only)
"""

from flask import Blueprint, request, jsonify, current_app

from formrules.parser import parse_form_definition, SchemaParseError
from formrules.readiness import check_form_readiness
from formrules.security import limiter, RATE_LIMITS, get_client_ip
from formrules.validation import validate_form, get_submission_values
from formrules.visibility import get_visible_fields


api_bp = Blueprint('api', __name__, url_prefix='/api')


class PayloadError(Exception):
    """A request body that cannot be processed; carries the response."""

    def __init__(self, errors, status_code):
        super().__init__(errors[0]['message'] if errors else 'Invalid payload')
        self.errors = errors
        self.status_code = status_code


def _error_response(field: str, message: str, code: str, status_code: int):
    return jsonify({
        'ok': False,
        'errors': [{'field': field, 'message': message, 'code': code}]
    }), status_code


def _get_payload() -> dict:
    payload = request.get_json(silent=True)
    if not payload or not isinstance(payload, dict):
        raise PayloadError(
            [{'field': '', 'message': 'No JSON payload provided', 'code': 'missing_payload'}], 400
        )
    return payload


def _load_definition(payload: dict):
    """Parse payload['definition'], raising PayloadError with every parse issue."""
    if 'definition' not in payload:
        raise PayloadError(
            [{'field': 'definition', 'message': 'This field is required', 'code': 'required'}], 400
        )
    try:
        result = parse_form_definition(payload['definition'])
    except SchemaParseError as e:
        raise PayloadError([i.to_dict() for i in e.issues], 422)

    if not result.is_valid:
        raise PayloadError([e.to_dict() for e in result.errors], 422)
    return result.definition, result


def _get_values(payload: dict) -> dict:
    values = payload.get('values')
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise PayloadError(
            [{'field': 'values', 'message': 'Values must be an object', 'code': 'type'}], 400
        )
    return values


@api_bp.errorhandler(PayloadError)
def payload_error(error):
    return jsonify({'ok': False, 'errors': error.errors}), error.status_code


# API Routes
@api_bp.route('/forms/parse', methods=['POST'])
@limiter.limit(RATE_LIMITS['parse'])
def api_parse():
    """
    Parse and normalize a form document.

    Returns:
        JSON response with the normalized document and any warnings
    """
    payload = _get_payload()
    try:
        definition, result = _load_definition(payload)
        return jsonify({
            'ok': True,
            'definition': definition.to_dict(),
            'warnings': [w.to_dict() for w in result.warnings],
        }), 200

    except PayloadError:
        raise
    except Exception as e:
        current_app.logger.error(f'Parse error: {str(e)}')
        return _error_response('', 'Internal parse error', 'internal_error', 500)


@api_bp.route('/forms/visibility', methods=['POST'])
@limiter.limit(RATE_LIMITS['visibility'])
def api_visibility():
    """Return the ids of the fields visible for the given answers."""
    payload = _get_payload()
    try:
        definition, _ = _load_definition(payload)
        values = _get_values(payload)
        visible = get_visible_fields(definition, values)
        return jsonify({'ok': True, 'visibleFieldIds': [f.id for f in visible]}), 200

    except PayloadError:
        raise
    except Exception as e:
        current_app.logger.error(f'Visibility error: {str(e)}')
        return _error_response('', 'Internal visibility error', 'internal_error', 500)


@api_bp.route('/forms/validate', methods=['POST'])
@limiter.limit(RATE_LIMITS['validate'])
def api_validate():
    """
    Validate answers against a form document.

    Returns:
        JSON response with per-field error messages (422 when invalid)
    """
    payload = _get_payload()
    try:
        definition, _ = _load_definition(payload)
        values = _get_values(payload)
        result = validate_form(definition, values)
        body = {'ok': result.is_valid}
        body.update(result.to_dict())
        return jsonify(body), 200 if result.is_valid else 422

    except PayloadError:
        raise
    except Exception as e:
        current_app.logger.error(f'Validation error: {str(e)}')
        return _error_response('', 'Internal validation error', 'internal_error', 500)


@api_bp.route('/forms/readiness', methods=['POST'])
@limiter.limit(RATE_LIMITS['readiness'])
def api_readiness():
    """Report what blocks a form from being published."""
    payload = _get_payload()
    try:
        definition, _ = _load_definition(payload)
        result = check_form_readiness(definition)
        body = {'ok': True}
        body.update(result.to_dict())
        return jsonify(body), 200

    except PayloadError:
        raise
    except Exception as e:
        current_app.logger.error(f'Readiness error: {str(e)}')
        return _error_response('', 'Internal readiness error', 'internal_error', 500)


@api_bp.route('/forms/submit', methods=['POST'])
@limiter.limit(RATE_LIMITS['submit'])
def api_submit():
    """
    Accept a submission.

    Answers are validated first; on success only the answers of visible
    input fields are returned for storage.
    """
    payload = _get_payload()
    try:
        definition, _ = _load_definition(payload)
        values = _get_values(payload)

        result = validate_form(definition, values)
        if not result.is_valid:
            current_app.logger.info(
                f'Rejected submission for form {definition.id} from {get_client_ip()}: '
                f'{len(result.field_errors)} field(s) invalid'
            )
            body = {'ok': False}
            body.update(result.to_dict())
            return jsonify(body), 422

        data = get_submission_values(definition, values)
        current_app.logger.info(
            f'Accepted submission for form {definition.id} from {get_client_ip()}'
        )
        return jsonify({'ok': True, 'data': data}), 200

    except PayloadError:
        raise
    except Exception as e:
        current_app.logger.error(f'Submission error: {str(e)}')
        return _error_response('', 'Internal submission error', 'internal_error', 500)


# Error handlers
@api_bp.errorhandler(404)
def not_found(error):
    """Handle 404 errors."""
    return jsonify({'ok': False, 'error': 'Not found'}), 404


@api_bp.errorhandler(413)
def payload_too_large(error):
    """Handle oversized request bodies."""
    return jsonify({'ok': False, 'error': 'Request body too large'}), 413


@api_bp.errorhandler(429)
def rate_limit_handler(error):
    """Handle rate limit errors."""
    return jsonify({
        'ok': False,
        'error': 'Rate limit exceeded. Please try again later.'
    }), 429
