#!/usr/bin/env python3
"""
otp_cli.py — CLI wrapper around otp_core

Subcommands:
- secret       : create a new Base32 secret (optionally save a config file)
- generate     : print the current code and when it expires
- watch        : show the code in real time
- verify       : check a code against the current time
- uri          : print the otpauth:// URI for authenticator apps
- check-config : validate settings, optionally against a peer's config file
- device       : run the token generator loop in the terminal (Enter = button)

Settings come from --config / $OTP_CONFIG_FILE / OTP_* env vars; --digits,
--period and --window override them.
"""

import argparse
import sys
import time

from . import otp_core
from .clock import SystemClock
from .config import Settings, configure_logging, ensure_compatible, load_settings, save_config
from .exceptions import ConfigError
from .protocol import OTPService


def _settings(args) -> Settings:
    return load_settings(
        args.config,
        digits=getattr(args, "digits", None),
        period=getattr(args, "period", None),
        window=getattr(args, "window", None),
    )


# --- CLI command handlers ---
def cmd_secret(args):
    secret = otp_core.generate_base32_secret()
    print(secret)
    if args.save:
        settings = load_settings(use_env=False, secret=secret, digits=args.digits, period=args.period)
        save_config(settings, args.save)
        print(f"[*] Settings saved to {args.save} (keep this file private)")


def cmd_generate(args):
    settings = _settings(args)
    issued = OTPService.from_settings(settings).generate()
    remaining = issued.expires_at / 1000 - time.time()
    print(f"TOTP ({settings.digits}d): {issued.code}  (valid ~{remaining:.0f}s, counter={issued.counter})")


def cmd_watch(args):
    settings = _settings(args)
    key = settings.key
    print(f"Press Ctrl+C to quit. Generating {settings.digits}-digit TOTP every {settings.period}s...\n")
    last_code = None
    try:
        while True:
            code, remaining = otp_core.totp(key, time.time(), settings.period, settings.digits)
            if code != last_code:
                print(f"TOTP ({settings.digits}d): {code}  (valid ~{remaining:2d}s)")
                last_code = code
            else:
                print(f".. {remaining:2d}s left", end='\r', flush=True)
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nBye.")


def cmd_verify(args):
    settings = _settings(args)
    result = OTPService.from_settings(settings).validate(args.code)
    if result.valid:
        print(f"[+] Code is VALID (offset {result.matched_offset:+d})")
        return 0
    print(f"[-] Code is INVALID: {result.message}")
    return 1


def cmd_uri(args):
    settings = _settings(args)
    uri = otp_core.format_otpauth_uri(
        settings.secret, args.account or settings.account, args.issuer or settings.issuer,
        digits=settings.digits, period=settings.period,
    )
    print(uri)


def cmd_check_config(args):
    settings = _settings(args)
    print(f"[*] Settings OK: digits={settings.digits} period={settings.period}s window={settings.window}")
    if args.peer:
        peer = load_settings(args.peer, use_env=False)
        ensure_compatible(settings, peer)
        print(f"[*] {args.peer} is compatible (secret, digits and period match)")
    return 0


def cmd_device(args):
    from otp_device.console import ConsoleDisplay, EnterButton
    from otp_device.token_generator import TokenGenerator

    settings = _settings(args)
    button = EnterButton()
    token = TokenGenerator.from_settings(settings, button, ConsoleDisplay(), SystemClock())
    print("Press Enter to show a code, Ctrl+C (or Ctrl+D) to quit.")
    try:
        token.run(should_stop=lambda: button.closed)
    except KeyboardInterrupt:
        print("\nBye.")


def cmd_help(args):
    print("'otp-cli -h' for help.")


# --- Argparse builder ---
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="TOTP generator / verifier CLI")
    p.add_argument("--config", help="JSON settings file (default: $OTP_CONFIG_FILE)")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd")
    p.set_defaults(func=cmd_help)

    def add_overrides(parser, window=False):
        parser.add_argument("--digits", type=int, help="Override number of digits")
        parser.add_argument("--period", type=int, help="Override TOTP period (seconds)")
        if window:
            parser.add_argument("--window", type=int, help="Allowed +/- step window")

    ps = sub.add_parser("secret", help="Generate a new Base32 secret")
    ps.add_argument("--save", metavar="PATH", help="Also write a settings file with the new secret")
    add_overrides(ps)
    ps.set_defaults(func=cmd_secret)

    pg = sub.add_parser("generate", help="Print the current code")
    add_overrides(pg)
    pg.set_defaults(func=cmd_generate)

    pw = sub.add_parser("watch", help="Show the code in real time")
    add_overrides(pw)
    pw.set_defaults(func=cmd_watch)

    pv = sub.add_parser("verify", help="Verify a code against the current time")
    pv.add_argument("code", help="Code to verify")
    add_overrides(pv, window=True)
    pv.set_defaults(func=cmd_verify)

    pu = sub.add_parser("uri", help="Print the otpauth URI")
    pu.add_argument("--account")
    pu.add_argument("--issuer")
    add_overrides(pu)
    pu.set_defaults(func=cmd_uri)

    pc = sub.add_parser("check-config", help="Validate settings (and compare with a peer)")
    pc.add_argument("--peer", metavar="PATH", help="Settings file of the other party (device/server)")
    add_overrides(pc, window=True)
    pc.set_defaults(func=cmd_check_config)

    pd = sub.add_parser("device", help="Run the token generator loop (Enter = button)")
    add_overrides(pd)
    pd.set_defaults(func=cmd_device)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "WARNING")
    try:
        return args.func(args) or 0
    except (ConfigError, FileNotFoundError) as e:
        print(f"[!] {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
