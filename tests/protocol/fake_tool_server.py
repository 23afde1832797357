"""Scripted stdio tool server used by the stdio transport tests.

Tools:
- echo: returns its arguments as a JSON text block
- slow: never answers
- fail: answers with a JSON-RPC error object
- crash: exits the process without answering
- split: answers in two writes with a pause between them
- env: returns the value of FAKE_SERVER_GREETING
- odd_ids: answers with malformed ids before the real response
"""

import json
import os
import sys
import time


def send(message):
    sys.stdout.write(json.dumps(message) + "\n")
    sys.stdout.flush()


def result(request_id, payload):
    send({"jsonrpc": "2.0", "id": request_id, "result": payload})


def text_result(request_id, text, is_error=False):
    result(request_id, {"content": [{"type": "text", "text": text}], "isError": is_error})


def handle_call(request_id, params):
    name = params.get("name")
    arguments = params.get("arguments") or {}
    if name == "echo":
        text_result(request_id, json.dumps(arguments))
    elif name == "slow":
        return
    elif name == "fail":
        send({"jsonrpc": "2.0", "id": request_id, "error": {"code": -32001, "message": "tool exploded"}})
    elif name == "crash":
        sys.exit(3)
    elif name == "split":
        line = json.dumps(
            {"jsonrpc": "2.0", "id": request_id, "result": {"content": [{"type": "text", "text": "joined"}]}}
        ) + "\n"
        half = len(line) // 2
        sys.stdout.write(line[:half])
        sys.stdout.flush()
        time.sleep(0.2)
        sys.stdout.write(line[half:])
        sys.stdout.flush()
    elif name == "env":
        text_result(request_id, os.environ.get("FAKE_SERVER_GREETING", ""))
    elif name == "odd_ids":
        for bogus in ([request_id], {"id": request_id}, True, str(request_id), None):
            result(bogus, {"content": [{"type": "text", "text": "bogus"}]})
        text_result(request_id, "real")
    else:
        text_result(request_id, f"unknown tool {name}", is_error=True)


def main():
    sys.stderr.write("fake tool server starting\n")
    sys.stderr.flush()
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        message = json.loads(line)
        method = message.get("method")
        request_id = message.get("id")
        if request_id is None:
            continue
        if method == "initialize":
            result(
                request_id,
                {
                    "protocolVersion": message["params"]["protocolVersion"],
                    "capabilities": {"tools": {}, "resources": {}},
                    "serverInfo": {"name": "fake-server", "version": "1.0.0"},
                },
            )
        elif method == "tools/list":
            result(
                request_id,
                {
                    "tools": [
                        {"name": "echo", "description": "Echo arguments", "inputSchema": {"type": "object"}},
                        {"name": "delete_everything", "description": "Remove all records"},
                    ]
                },
            )
        elif method == "tools/call":
            handle_call(request_id, message.get("params") or {})
        elif method == "resources/list":
            result(request_id, {"resources": [{"uri": "file:///readme", "name": "readme"}]})
        elif method == "resources/read":
            uri = (message.get("params") or {}).get("uri")
            result(request_id, {"contents": [{"uri": uri, "mimeType": "text/plain", "text": "hello"}]})
        else:
            send({"jsonrpc": "2.0", "id": request_id, "error": {"code": -32601, "message": "Method not found"}})


if __name__ == "__main__":
    main()
