"""
FLASK APP MAIN ENTRY POINT - OTP VALIDATION SERVER
==================================================

Sets up the Flask app, enables CORS for the web form and registers the OTP
routes.

MAIN FEATURES
- create_app() factory: settings and clock are injected, so tests run the
  app with their own secret and a frozen clock
- CORS enabled (the web form is served from another origin)
- every HTTP error is answered in JSON, never as an HTML page

Run:
    OTP_SECRET=JBSWY3DPEHPK3PXP OTP_DIGITS=4 otp-server --port 8080
"""
import argparse
import logging
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from otp_core.config import Settings, configure_logging, load_settings
from otp_core.protocol import OTPService

from .routes import VALIDATE_PATH, otp_bp

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, clock=None) -> Flask:
    """
    Build the Flask app.

    Arguments:
        settings: validated Settings; loaded from file/env when omitted
        clock: time provider for OTPService (system clock by default)
    """
    if settings is None:
        settings = load_settings()

    app = Flask(__name__)
    app.config["OTP_SETTINGS"] = settings
    app.config["OTP_SERVICE"] = OTPService.from_settings(settings, clock=clock)

    # CORS: the browser form lives on another origin and calls us with fetch()
    CORS(app, methods=["GET", "POST", "OPTIONS"], allow_headers=["Content-Type"])

    app.register_blueprint(otp_bp)
    app.register_error_handler(HTTPException, _handle_http_error)

    if settings.debug_endpoints:
        logger.warning("Debug endpoints enabled: /health exposes a valid code, "
                       "/otpauth_uri and /qr_code expose the secret")
    logger.info("OTP server ready: digits=%d period=%ds window=%d",
                settings.digits, settings.period, settings.window)
    return app


def _handle_http_error(e: HTTPException):
    payload = {"error": e.name, "message": e.description}
    # The web form only understands {valid, message} from the validate endpoint.
    if request.path == VALIDATE_PATH:
        payload = {"valid": False, "message": f"{e.name.lower()}: {e.description}"}
    response = jsonify(payload)
    response.status_code = e.code or 500
    return response


def main(argv=None) -> None:
    """
    Run the development server.

    - --host 0.0.0.0 listens on every interface
    - --config points to a JSON settings file (else $OTP_CONFIG_FILE / env vars)
    """
    parser = argparse.ArgumentParser(description="TOTP validation server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5000)
    parser.add_argument("--config", help="JSON settings file")
    parser.add_argument("--debug", action="store_true", help="Flask debug mode (auto reload)")
    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings.log_level)
    app = create_app(settings)
    app.run(debug=args.debug, host=args.host, port=args.port)


if __name__ == '__main__':
    main()
