#!/usr/bin/env python3
"""
Smoke test for passvault deployments.

Registers a throwaway user and walks one record through its whole life:

1. Health check
2. Register + login
3. Add record
4. List records
5. Update record
6. Soft delete + trash listing
7. Restore
8. Export
9. Empty trash (cleanup)

Usage:
    ./scripts/smoke-test.py https://vault.example.com
    ./scripts/smoke-test.py https://vault.example.com --health-only
"""

import argparse
import json
import random
import secrets
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen


class ApiError(RuntimeError):
    def __init__(self, status_code: int, body: str):
        super().__init__(f"API error {status_code}: {body}")
        self.status_code = status_code
        self.body = body


DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRIES = 2
DEFAULT_RETRY_BACKOFF_SECONDS = 0.5
MAX_ERROR_BODY_CHARS = 10_000
BODY_PREVIEW_BYTES = 200
MAX_BACKOFF_SECONDS = 4.0


def log(msg: str) -> None:
    """Print timestamped log message."""
    print(f"[{datetime.now().strftime('%H:%M:%S')}] {msg}", flush=True)


def _preview_bytes(value: bytes, limit: int = BODY_PREVIEW_BYTES) -> bytes:
    return value[:limit]


def _decode_limited(value: bytes, max_chars: int = MAX_ERROR_BODY_CHARS) -> str:
    decoded = value.decode("utf-8", errors="replace")
    if len(decoded) <= max_chars:
        return decoded
    return decoded[:max_chars] + "…"


def _is_retryable_status(status_code: int) -> bool:
    # 429 excluded: auth is rate limited
    return status_code in {408, 502, 503, 504}


@dataclass
class HttpClient:
    base_url: str
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    retries: int = DEFAULT_RETRIES
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> tuple[int, bytes]:
        max_attempts = max(1, self.retries + 1)
        for attempt in range(1, max_attempts + 1):
            try:
                request = Request(url, data=body, headers=headers or {}, method=method)
                try:
                    with urlopen(request, timeout=self.timeout_seconds) as response:
                        return response.getcode(), response.read()
                except HTTPError as e:
                    error_body = e.read() if e.fp else b""
                    if attempt < max_attempts and _is_retryable_status(e.code):
                        self._sleep_backoff(attempt)
                        continue
                    return e.code, error_body
            except (URLError, TimeoutError) as e:
                if attempt < max_attempts:
                    self._sleep_backoff(attempt)
                    continue
                raise RuntimeError(f"Network error after {attempt} attempts: {e}") from e

        raise RuntimeError(f"No response after {max_attempts} attempts")

    def api_json(
        self,
        method: str,
        path: str,
        *,
        data: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        body_bytes = json.dumps(data).encode() if data is not None else None
        status, body = self.request(
            method, f"{self.base_url}/api{path}", headers=headers, body=body_bytes
        )
        if status < 200 or status >= 300:
            raise ApiError(status, _decode_limited(body))
        try:
            payload = json.loads(body.decode())
        except json.JSONDecodeError as e:
            raise RuntimeError(
                f"Invalid JSON response from {method} {path}: preview={_preview_bytes(body)!r}"
            ) from e
        if payload.get("success") is not True:
            raise RuntimeError(f"{method} {path} did not report success: {payload!r}")
        return payload

    def _sleep_backoff(self, attempt: int) -> None:
        base = self.retry_backoff_seconds * (2 ** (attempt - 1))
        jitter = random.random() * self.retry_backoff_seconds
        time.sleep(min(MAX_BACKOFF_SECONDS, base + jitter))


def wait_for_health(client: HttpClient, max_attempts: int = 30, delay: float = 2.0) -> bool:
    """Wait for /health to return healthy status."""
    url = f"{client.base_url}/health"

    for attempt in range(1, max_attempts + 1):
        try:
            status, body = client.request("GET", url)
            if status == 200 and json.loads(body.decode()).get("status") == "healthy":
                log(f"Health check passed (attempt {attempt})")
                return True
        except (json.JSONDecodeError, RuntimeError):
            pass

        if attempt < max_attempts:
            time.sleep(delay)

    return False


@dataclass
class SmokeContext:
    client: HttpClient
    max_health_attempts: int

    username: str = ""
    password: str = ""
    token: str | None = None
    record_id: str | None = None

    def require_token(self) -> str:
        if not self.token:
            raise RuntimeError("Missing token (step ordering bug)")
        return self.token

    def require_record_id(self) -> str:
        if not self.record_id:
            raise RuntimeError("Missing record_id (step ordering bug)")
        return self.record_id

    def records(self, method: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.client.api_json(method, "/records", data=data, token=self.require_token())


@dataclass(frozen=True)
class Step:
    name: str
    run: Callable[[SmokeContext], None]


@dataclass(frozen=True)
class StepResult:
    name: str
    status: str  # passed|failed
    seconds: float
    detail: str | None = None


def _print_summary(results: list[StepResult], total_seconds: float) -> None:
    log("Summary:")
    for result in results:
        suffix = f" - {result.detail}" if result.detail else ""
        log(f"  {result.status.upper():7} {result.name} ({result.seconds:.2f}s){suffix}")
    log(f"Total: {total_seconds:.2f}s")


def run_steps(ctx: SmokeContext, steps: list[Step]) -> bool:
    results: list[StepResult] = []
    overall_start = time.time()

    for step in steps:
        log(f"STEP: {step.name}")
        start = time.time()
        try:
            step.run(ctx)
        except Exception as e:
            results.append(StepResult(step.name, "failed", time.time() - start, str(e)))
            _print_summary(results, time.time() - overall_start)
            return False

        elapsed = time.time() - start
        results.append(StepResult(step.name, "passed", elapsed))
        log(f"OK: {step.name} ({elapsed:.2f}s)")

    _print_summary(results, time.time() - overall_start)
    return True


def step_health(ctx: SmokeContext) -> None:
    log(f"Checking health: {ctx.client.base_url}/health")
    if not wait_for_health(ctx.client, max_attempts=ctx.max_health_attempts):
        raise RuntimeError("Health check failed")


def step_register_login(ctx: SmokeContext) -> None:
    ctx.username = f"smoke_{secrets.token_hex(4)}"
    ctx.password = secrets.token_urlsafe(16)
    credentials = {"username": ctx.username, "password": ctx.password}

    ctx.client.api_json("POST", "/auth", data={"type": "register", **credentials})
    payload = ctx.client.api_json("POST", "/auth", data={"type": "login", **credentials})

    ctx.token = payload["data"]["token"]
    log(f"Logged in as {ctx.username}")


def step_add_record(ctx: SmokeContext) -> None:
    payload = ctx.records(
        "POST",
        {"platform": "smoke", "account": ctx.username, "password": secrets.token_hex(8)},
    )
    ctx.record_id = payload["data"]["id"]


def step_list_records(ctx: SmokeContext) -> None:
    ids = [item["id"] for item in ctx.records("GET")["data"]]
    if ids != [ctx.require_record_id()]:
        raise RuntimeError(f"Unexpected active records: {ids!r}")


def step_update_record(ctx: SmokeContext) -> None:
    payload = ctx.records("PUT", {"id": ctx.require_record_id(), "remark": "smoke-updated"})
    if payload["data"].get("remark") != "smoke-updated":
        raise RuntimeError(f"Update not applied: {payload['data']!r}")


def step_soft_delete(ctx: SmokeContext) -> None:
    ctx.records("DELETE", {"id": ctx.require_record_id()})

    if ctx.records("GET")["data"]:
        raise RuntimeError("Record still active after soft delete")
    trash = ctx.records("DELETE", {"action": "getTrash"})["data"]
    if [item["id"] for item in trash] != [ctx.require_record_id()]:
        raise RuntimeError(f"Record missing from trash: {trash!r}")


def step_restore(ctx: SmokeContext) -> None:
    ctx.records("DELETE", {"action": "restore", "id": ctx.require_record_id()})

    if ctx.records("DELETE", {"action": "getTrash"})["data"]:
        raise RuntimeError("Trash not empty after restore")
    step_list_records(ctx)


def step_export(ctx: SmokeContext) -> None:
    exported = ctx.records("POST", {"action": "export"})["data"]
    if len(exported) != 1 or "id" in exported[0]:
        raise RuntimeError(f"Unexpected export payload: {exported!r}")


def step_cleanup(ctx: SmokeContext) -> None:
    ctx.records("DELETE", {"id": ctx.require_record_id()})
    ctx.records("DELETE", {"action": "emptyTrash"})


def main() -> int:
    parser = argparse.ArgumentParser(description="passvault smoke test")
    parser.add_argument("base_url", help="Base URL (e.g., https://vault.example.com)")
    parser.add_argument(
        "--health-only",
        action="store_true",
        help="Only run health check, skip full flow",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help=f"HTTP timeout seconds (default: {DEFAULT_TIMEOUT_SECONDS:g})",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=DEFAULT_RETRIES,
        help=f"Retries for transient failures (default: {DEFAULT_RETRIES})",
    )
    parser.add_argument(
        "--max-health-attempts",
        type=int,
        default=30,
        help="Max health check attempts (default: 30)",
    )
    args = parser.parse_args()

    try:
        base_url = args.base_url.rstrip("/")
        client = HttpClient(base_url=base_url, timeout_seconds=args.timeout, retries=args.retries)
        ctx = SmokeContext(client=client, max_health_attempts=args.max_health_attempts)

        steps: list[Step] = [Step("health", step_health)]
        if args.health_only:
            log("Health-only mode: skipping full flow")
        else:
            steps.extend(
                [
                    Step("register + login", step_register_login),
                    Step("add record", step_add_record),
                    Step("list records", step_list_records),
                    Step("update record", step_update_record),
                    Step("soft delete", step_soft_delete),
                    Step("restore", step_restore),
                    Step("export", step_export),
                    Step("cleanup", step_cleanup),
                ]
            )

        return 0 if run_steps(ctx, steps) else 1
    except Exception as e:
        log(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
