#!/usr/bin/env python3
"""
Fake suggestion endpoint for local development and testing.

Answers Google-style suggest requests:
    GET /complete/search?client=firefox&q=<query>  ->  ["<query>", [...]]

Suggestions come from a small in-memory table keyed by the query's prefix;
queries ending in "zz" return HTTP 503 to exercise failure handling.

Run with: python scripts/fake_suggest.py --port 9010
Then set in suggest_miner.yaml:
    fetcher:
      base_url: "http://127.0.0.1:9010/complete/search"
"""

import argparse
import json
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

# Maps a root keyword to the completions offered for any query starting with it
FAKE_COMPLETIONS = {
    "ai tool": [
        "ai tool free",
        "ai tool online",
        "ai tool for writing essays",
        "ai tool for video editing",
        "ai tool to remove background",
    ],
    "running shoes": [
        "running shoes for flat feet",
        "running shoes for women",
        "best running shoes 2024",
        "trail running shoes men",
    ],
    "for flat feet": [
        "insoles for flat feet",
        "exercises for flat feet",
        "sandals for flat feet women",
    ],
}


def completions_for(query: str) -> list[str]:
    """Completions whose root prefixes the query, narrowed by the typed suffix."""
    query_lower = query.lower()
    results: list[str] = []
    for root, completions in FAKE_COMPLETIONS.items():
        if root.startswith(query_lower):
            results.extend(completions)
        elif query_lower.startswith(root):
            results.extend(c for c in completions if c.lower().startswith(query_lower))
    return results[:10]


class FakeSuggestHandler(BaseHTTPRequestHandler):
    """Handle suggest requests."""

    def _send_json(self, data, status: int = 200) -> None:
        body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path != "/complete/search":
            self._send_json({"error": "not found"}, status=404)
            return

        params = parse_qs(parsed.query)
        query = params.get("q", [""])[0]

        if query.endswith("zz"):
            self._send_json({"error": "unavailable"}, status=503)
            return

        self._send_json([query, completions_for(query)])

    def log_message(self, format, *args) -> None:
        print(f"[fake-suggest] {self.address_string()} {format % args}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Fake suggestion endpoint")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=9010, help="Port (default: 9010)")
    args = parser.parse_args()

    server = HTTPServer((args.host, args.port), FakeSuggestHandler)
    print(f"Fake suggest endpoint on http://{args.host}:{args.port}/complete/search")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down")
        server.server_close()


if __name__ == "__main__":
    main()
