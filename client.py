from __future__ import annotations

import argparse
import json
import mimetypes
import os
import sys
from typing import Any, Iterable, Iterator

import httpx


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat gateway client")
    parser.add_argument("--url", default="http://localhost:8000/api/chat")
    parser.add_argument("--model", default="gpt-5", help="Model id to request.")
    parser.add_argument(
        "--message",
        default="Explain how server-sent events work in two sentences.",
        help="User message to send.",
    )
    parser.add_argument(
        "--file",
        action="append",
        default=[],
        help="Attach a file (repeatable). Sent as multipart form data.",
    )
    parser.add_argument("--no-stream", action="store_true", help="Request a single JSON answer.")
    parser.add_argument("--extended-thinking", action="store_true")
    parser.add_argument("--thinking-budget", type=int, default=None)
    parser.add_argument("--no-web-search", action="store_true")
    parser.add_argument(
        "--user-id",
        default=os.getenv("CHAT_USER_ID", "local-dev"),
        help="Identity forwarded in the X-User-Id header.",
    )
    parser.add_argument("--professional-role", default=None)
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Print the request fields before sending.",
    )
    return parser.parse_args()


def iter_frames(lines: Iterable[str]) -> Iterator[dict[str, Any] | None]:
    """Yield decoded data frames; ``None`` marks the terminal [DONE] frame.

    Comment lines (keep-alives) are skipped.
    """
    for line in lines:
        if not line.startswith("data:"):
            continue
        data = line[len("data:") :].strip()
        if data == "[DONE]":
            yield None
            return
        yield json.loads(data)


def _print_warnings(frame: dict[str, Any]) -> None:
    for warning in frame.get("fileValidationWarnings") or []:
        print(f"[warn] {warning.get('fileName')}: {warning.get('reason')}")


def _handle_frame(frame: dict[str, Any]) -> None:
    _print_warnings(frame)
    if frame.get("error"):
        print(f"\n[error] {frame.get('content', '')}")
        return
    sys.stdout.write(frame.get("content", ""))
    sys.stdout.flush()
    if frame.get("isComplete"):
        usage = frame.get("usage")
        if usage:
            print(f"\n\n[usage] {usage}")
        if frame.get("isTruncated"):
            print("[info] response was truncated")


def _build_fields(args: argparse.Namespace) -> dict[str, str]:
    fields = {
        "model": args.model,
        "stream": "false" if args.no_stream else "true",
        "extended_thinking": "true" if args.extended_thinking else "false",
        "enable_web_search": "false" if args.no_web_search else "true",
    }
    if args.thinking_budget is not None:
        fields["thinking_budget_tokens"] = str(args.thinking_budget)
    return fields


def main() -> None:
    args = _parse_args()
    fields = _build_fields(args)
    fields["messages"] = json.dumps([{"role": "user", "content": args.message}])

    headers = {"X-User-Id": args.user_id}
    if args.professional_role:
        headers["X-Professional-Role"] = args.professional_role

    files = []
    for idx, path in enumerate(args.file):
        content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        with open(path, "rb") as handle:
            files.append((f"file_{idx}", (os.path.basename(path), handle.read(), content_type)))

    if args.debug:
        print(f"[debug] url={args.url}")
        print(f"[debug] fields={json.dumps(fields, ensure_ascii=False)}")

    with httpx.Client(timeout=None) as client:
        if args.no_stream:
            resp = client.post(args.url, data=fields, files=files or None, headers=headers)
            body = resp.json()
            if not body.get("success"):
                print(f"[error] {resp.status_code} {body.get('error')}")
                raise SystemExit(1)
            _print_warnings(body)
            print(body["data"]["content"])
            print(f"\n[usage] {body['data'].get('usage')}")
            return

        with client.stream(
            "POST", args.url, data=fields, files=files or None, headers=headers
        ) as resp:
            if resp.status_code >= 400:
                resp.read()
                print(resp.text)
                raise SystemExit(1)

            for frame in iter_frames(resp.iter_lines()):
                if frame is None:
                    print("\n[done]")
                    break
                _handle_frame(frame)


if __name__ == "__main__":
    main()
