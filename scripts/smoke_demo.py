from __future__ import annotations

import argparse
import json
import time
import urllib.error
import urllib.request
from typing import Any


def request(url: str, *, method: str = "GET", body: Any = None) -> tuple[int, bytes]:
    data = json.dumps(body).encode("utf-8") if body is not None else None
    req = urllib.request.Request(url, data=data, method=method)
    if data is not None:
        req.add_header("Content-Type", "application/json")
    with urllib.request.urlopen(req, timeout=10) as resp:
        return resp.status, resp.read()


def wait_for(url: str, timeout: int) -> bytes:
    deadline = time.time() + timeout
    last_error: Exception | None = None
    while time.time() < deadline:
        try:
            status, body = request(url)
            if status == 200:
                return body
        except (urllib.error.URLError, OSError) as exc:
            last_error = exc
        time.sleep(1)
    raise RuntimeError(f"Timed out waiting for {url}: {last_error}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Smoke test against a running diagram API.")
    parser.add_argument("--api", default="http://localhost:8080")
    parser.add_argument("--timeout", type=int, default=60)
    args = parser.parse_args()

    base = args.api.rstrip("/")
    wait_for(f"{base}/api/diagrams", args.timeout)

    blocks = [
        {
            "id": "a",
            "name": "A",
            "x": 40,
            "y": 20,
            "ports": [{"id": "o", "side": "right", "target": {"blockId": "b", "portId": "i"}}],
        },
        {"id": "b", "name": "B", "x": 240, "y": 20, "ports": [{"id": "i", "side": "left"}]},
        {"id": "c", "name": "C", "x": 440, "y": 20},
    ]
    status, body = request(
        f"{base}/api/diagrams", method="POST", body={"name": "Smoke", "blocks": blocks}
    )
    if status != 201:
        raise RuntimeError(f"Create failed with status {status}")
    diagram_id = json.loads(body.decode("utf-8"))["id"]

    status, body = request(
        f"{base}/api/diagrams/{diagram_id}/group", method="POST", body={"blockIds": ["b", "c"]}
    )
    result = json.loads(body.decode("utf-8"))
    if len(result.get("inbound", [])) != 1:
        raise RuntimeError("Grouping did not create an inbound proxy")

    xml = wait_for(f"{base}/api/diagrams/{diagram_id}/xml", args.timeout)
    if b"<subblocks>" not in xml:
        raise RuntimeError("XML export is missing the group's subblocks")

    request(f"{base}/api/diagrams/{diagram_id}", method="DELETE")
    print("Smoke test passed.")


if __name__ == "__main__":
    main()
