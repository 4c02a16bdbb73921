#!/usr/bin/env python3
import json
import os
import sys

from ubuntu_api.client import ApiClientError, UbuntuClient


BASE = os.getenv("UBUNTU_BASE_URL", "http://localhost:8080")
TOKEN = os.getenv("UBUNTU_TOKEN", "")
DEVICE_ID = os.getenv("UBUNTU_DEVICE_ID", "ubuntu-cli")


def _client() -> UbuntuClient:
    return UbuntuClient(BASE, token=TOKEN or None)


def request_otp(phone: str):
    with _client() as c:
        print(json.dumps(c.request_otp(phone)))


def verify_otp(phone: str, code: str):
    with _client() as c:
        data = c.verify_otp(phone, code, DEVICE_ID)
        print(json.dumps(data))


def me():
    if not TOKEN:
        print("Set UBUNTU_TOKEN to a valid Bearer token", file=sys.stderr)
        sys.exit(2)
    with _client() as c:
        print(json.dumps(c.me()))


def rename(display_name: str):
    if not TOKEN:
        print("Set UBUNTU_TOKEN to a valid Bearer token", file=sys.stderr)
        sys.exit(2)
    with _client() as c:
        print(json.dumps(c.update_profile(display_name)))


def help():
    print(
        "Usage:\n"
        "  ubuntu_cli.py request_otp <phone>\n"
        "  ubuntu_cli.py verify_otp <phone> <code>\n"
        "  ubuntu_cli.py me\n"
        "  ubuntu_cli.py rename <display_name>\n"
        "Env: UBUNTU_BASE_URL (default http://localhost:8080), UBUNTU_TOKEN (Bearer), UBUNTU_DEVICE_ID"
    )


def main():
    if len(sys.argv) < 2:
        help(); sys.exit(1)
    cmd = sys.argv[1]
    try:
        if cmd == "request_otp" and len(sys.argv) == 3:
            request_otp(sys.argv[2]); return
        if cmd == "verify_otp" and len(sys.argv) == 4:
            verify_otp(sys.argv[2], sys.argv[3]); return
        if cmd == "me" and len(sys.argv) == 2:
            me(); return
        if cmd == "rename" and len(sys.argv) == 3:
            rename(sys.argv[2]); return
    except ApiClientError as exc:
        print(f"error {exc.status_code} {exc.code}: {exc.message}", file=sys.stderr)
        sys.exit(1)
    help(); sys.exit(1)


if __name__ == "__main__":
    main()
