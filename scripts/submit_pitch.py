#!/usr/bin/env python3
import argparse
import json
import time
from pathlib import Path

import httpx


TERMINAL_STATUSES = {"completed", "error"}


def main() -> None:
    parser = argparse.ArgumentParser(description="Submit a pitch to a running backend and wait for its analysis.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text-file", help="Path to a plain-text pitch.")
    source.add_argument("--deck", help="Path to a PDF or PPTX deck.")
    parser.add_argument("--user-id", default=None, help="Optional submitter id.")
    parser.add_argument("--api-base", default="http://127.0.0.1:8000", help="Backend base URL.")
    parser.add_argument("--timeout-seconds", type=int, default=120, help="Polling timeout.")
    parser.add_argument("--save-report", default=None, help="Write the HTML report to this path.")
    args = parser.parse_args()

    data = {"user_id": args.user_id} if args.user_id else {}

    with httpx.Client(timeout=30.0, trust_env=False) as client:
        if args.deck:
            deck_path = Path(args.deck).expanduser().resolve()
            if not deck_path.exists():
                raise FileNotFoundError(f"Deck file not found: {deck_path}")
            with deck_path.open("rb") as deck_file:
                files = {"deck": (deck_path.name, deck_file, "application/octet-stream")}
                create_resp = client.post(f"{args.api_base}/api/pitches", data=data, files=files)
        else:
            data["text"] = Path(args.text_file).expanduser().read_text(encoding="utf-8")
            create_resp = client.post(f"{args.api_base}/api/pitches", data=data)
        create_resp.raise_for_status()
        pitch_id = create_resp.json()["pitch_id"]
        print(f"created pitch: {pitch_id}")

        started = time.time()
        final_payload = None
        while time.time() - started < args.timeout_seconds:
            poll_resp = client.get(f"{args.api_base}/api/pitches/{pitch_id}")
            poll_resp.raise_for_status()
            payload = poll_resp.json()
            if payload.get("status") in TERMINAL_STATUSES:
                final_payload = payload
                break
            time.sleep(1)

        if not final_payload:
            raise TimeoutError(f"Timed out waiting for analysis: {pitch_id}")
        if final_payload.get("status") != "completed":
            raise RuntimeError(f"Analysis failed: {final_payload.get('error')}")

        analysis = final_payload["analysis"]
        print(json.dumps({"overall_score": analysis["overall_score"], "scores": analysis["scores"]}, indent=2))
        print(analysis["summary"])

        if args.save_report:
            report_resp = client.get(f"{args.api_base}/api/pitches/{pitch_id}/report")
            report_resp.raise_for_status()
            Path(args.save_report).write_text(report_resp.text, encoding="utf-8")
            print(f"report written to {args.save_report}")


if __name__ == "__main__":
    main()
