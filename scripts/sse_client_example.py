"""
Minimal SSE client for nest-mcp.

This proves:
- the stream can be opened and hands out a session id
- a tool can be invoked by POST
- the response arrives on the stream under the same correlation id

Run with: python -m scripts.sse_client_example [base_url]
"""

import json
import sys

import httpx


def main(base_url="http://localhost:8000"):
    with httpx.Client(base_url=base_url, timeout=None) as client:
        print("TOOLS:", [t["name"] for t in client.get("/tools").json()["tools"]])

        with client.stream("GET", "/sse") as stream:
            event = None
            for line in stream.iter_lines():
                if line.startswith("event:"):
                    event = line.split(":", 1)[1].strip()
                    continue
                if not line.startswith("data:"):
                    continue
                data = line.split(":", 1)[1].strip()

                if event == "endpoint":
                    accepted = client.post(data, json={
                        "session_id": data.split("session_id=", 1)[1],
                        "correlation_id": "search-1",
                        "tool_name": "company-search",
                        "arguments": {"name": "Volvo", "founded_after": 2000},
                    })
                    print("POST:", accepted.status_code, accepted.json())
                elif event == "message":
                    frame = json.loads(data)
                    print("RESULT:", json.dumps(frame, indent=2, ensure_ascii=False))
                    if frame["correlation_id"] == "search-1":
                        break


if __name__ == "__main__":
    main(*sys.argv[1:2])
