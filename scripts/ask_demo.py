#!/usr/bin/env python3
"""
Send one question to a running service and print the response.

    python scripts/ask_demo.py
    python scripts/ask_demo.py "How much did I spend at the ATM?" --url http://localhost:8000
"""

import argparse
import json
import os
import sys

import requests

DEFAULT_QUESTION = "What is my last transaction?"


def main() -> int:
    parser = argparse.ArgumentParser(description="POST a question to /ask.")
    parser.add_argument("question", nargs="?", default=DEFAULT_QUESTION)
    parser.add_argument("--url", default=os.environ.get("API_BASE", "http://localhost:8000"))
    parser.add_argument("--token", default=os.environ.get("API_TOKEN", ""), help="Bearer token if API_TOKEN is set on the server.")
    parser.add_argument("--timeout", type=float, default=60.0)
    args = parser.parse_args()

    headers = {"Content-Type": "application/json"}
    if args.token:
        headers["Authorization"] = f"Bearer {args.token}"
    try:
        r = requests.post(
            f"{args.url.rstrip('/')}/ask",
            json={"query": args.question},
            headers=headers,
            timeout=args.timeout,
        )
    except requests.RequestException as e:
        print(f"Request failed: {e}", file=sys.stderr)
        return 1

    print(f"Response ({r.status_code}):")
    try:
        print(json.dumps(r.json(), indent=2))
    except ValueError:
        print(r.text)
    return 0 if r.ok else 1


if __name__ == "__main__":
    sys.exit(main())
