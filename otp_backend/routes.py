"""
OTP BACKEND API ROUTES - FLASK BLUEPRINT

Endpoints called by the web form (and anything else that speaks JSON):

    GET  /get-otp        -> {"code": "123456", "expiresAt": 1700000010000}
    POST /validate-otp   {"otp": "123456"} -> {"valid": true, "message": "..."}
    GET  /health         -> status, settings summary (+ expected code in debug)
    GET  /otpauth_uri    -> provisioning URI        (debug endpoints only)
    GET  /qr_code        -> provisioning QR as PNG  (debug endpoints only)

EXAMPLES:
curl http://localhost:5000/get-otp
curl -X POST http://localhost:5000/validate-otp -H "Content-Type: application/json" -d '{"otp": "123456"}'
"""

import base64
import io
import logging

import qrcode
from flask import Blueprint, abort, current_app, jsonify, request

from otp_core.otp_core import format_otpauth_uri

logger = logging.getLogger(__name__)

VALIDATE_PATH = "/validate-otp"

otp_bp = Blueprint('otp', __name__)


def _service():
    return current_app.config["OTP_SERVICE"]


def _settings():
    return current_app.config["OTP_SETTINGS"]


def _reject(message: str, status: int = 400):
    return jsonify({"valid": False, "message": message}), status


@otp_bp.route('/get-otp', methods=['GET'])
def get_otp():
    """
    ISSUE THE CURRENT CODE

      curl http://localhost:5000/get-otp

    The same code is returned for every call within one time step; expiresAt
    (Unix ms) is the start of the next step.
    """
    issued = _service().generate()
    return jsonify(issued.to_json())


@otp_bp.route(VALIDATE_PATH, methods=['POST'])
def validate_otp():
    """
    VALIDATE A SUBMITTED CODE

    Input (JSON body):  {"otp": "123456"}
    Output:             {"valid": true|false, "message": "..."}

    Bad input shapes get 400 with a specific message; a wrong or expired code
    is a normal 200 answer with valid=false.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _reject("malformed body: expected a JSON object like {\"otp\": \"123456\"}")
    if "otp" not in data:
        return _reject("missing field: 'otp' is required")
    if not isinstance(data["otp"], str):
        return _reject("malformed otp: 'otp' must be a string")

    result = _service().validate(data["otp"])
    if result.is_shape_error:
        return _reject(result.message)
    return jsonify(result.to_json())


@otp_bp.route('/health', methods=['GET'])
def health():
    """
    HEALTH / DIAGNOSTICS

    With debug endpoints enabled the currently expected code is included.
    That is a valid code: never enable it on an untrusted network.
    """
    settings = _settings()
    service = _service()
    payload = {
        "status": "ok",
        "digits": service.digits,
        "period": service.period,
        "window": service.window,
        "clockSynced": service.clock_synced,
    }
    if settings.debug_endpoints:
        code, counter = service.expected()
        payload.update({"expectedCode": code, "counter": counter})
    return jsonify(payload)


def _require_debug():
    if not _settings().debug_endpoints:
        abort(404)


@otp_bp.route('/otpauth_uri', methods=['GET'])
def get_otpauth_uri():
    """
    URI FOR AUTHENTICATOR APPS

      curl "http://localhost:5000/otpauth_uri?account=user@gmail.com&issuer=MyApp"
    """
    _require_debug()
    settings = _settings()
    account = request.args.get('account', settings.account)
    issuer = request.args.get('issuer', settings.issuer)
    uri = format_otpauth_uri(settings.secret, account, issuer,
                             digits=settings.digits, period=settings.period)
    return jsonify({"totp_uri": uri})


@otp_bp.route('/qr_code', methods=['GET'])
def get_qr_code():
    """
    QR CODE FOR THE PROVISIONING URI (PNG as a data: URI)
    """
    _require_debug()
    settings = _settings()
    account = request.args.get('account', settings.account)
    issuer = request.args.get('issuer', settings.issuer)
    uri = format_otpauth_uri(settings.secret, account, issuer,
                             digits=settings.digits, period=settings.period)

    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    img_str = base64.b64encode(buffer.getvalue()).decode()
    return jsonify({"qr_code": f"data:image/png;base64,{img_str}", "uri": uri})
