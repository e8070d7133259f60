"""Remote transport: drive Meda through its HTTP API.

Endpoints used (relative to http://<meda_host>:<meda_port>):
- GET    /api/v1/images
- POST   /api/v1/images              create base image or snapshot a VM
- POST   /api/v1/images/pull
- POST   /api/v1/images/push
- DELETE /api/v1/images/{name}
- POST   /api/v1/vms
- POST   /api/v1/vms/{name}/start, /stop
- GET    /api/v1/vms/{name}/ip
- DELETE /api/v1/vms/{name}
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from meda_builder.transport.base import CommandResult, Transport, VMSpec
from meda_builder.transport.process import LineHandler

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# Timeout for short API requests (seconds)
DEFAULT_HTTP_TIMEOUT = 30.0


def _log_line(line: str) -> None:
    logger.info("%s", line)


class RemoteTransport(Transport):
    """Transport that talks to a Meda API server."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        client: httpx.Client | None = None,
        on_line: LineHandler | None = None,
    ) -> None:
        """Initialize RemoteTransport.

        Args:
            base_url: Meda API base URL, e.g. http://127.0.0.1:7777.
            timeout: Timeout for short requests in seconds.
            client: Optional preconfigured HTTPX client.
            on_line: Receives streamed response lines of long requests.
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)
        self.on_line = on_line or _log_line

    def url(self, path: str) -> str:
        """Build an absolute API URL."""
        return f"{self.base_url}{API_PREFIX}{path}"

    def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> CommandResult:
        url = self.url(path)
        description = f"{method} {url}"
        logger.debug("Requesting: %s", description)

        try:
            response = self.client.request(method, url, json=payload)
        except httpx.TimeoutException as e:
            return CommandResult(
                command=description, success=False, failure=f"request timed out: {e}"
            )
        except httpx.HTTPError as e:
            return CommandResult(
                command=description, success=False, failure=f"request failed: {e}"
            )

        success = response.is_success
        return CommandResult(
            command=description,
            success=success,
            exit_code=response.status_code,
            stdout=response.text,
            stderr="" if success else response.text,
            failure=None if success else f"HTTP {response.status_code}",
        )

    def _stream(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> CommandResult:
        """Issue a long-running request, forwarding body lines as they arrive.

        The whole body is buffered as diagnostic text so callers can scan it
        for denial markers regardless of the status code.
        """
        url = self.url(path)
        description = f"{method} {url}"
        logger.debug("Requesting (streaming): %s", description)

        lines: list[str] = []
        try:
            with self.client.stream(
                method, url, json=payload, timeout=None
            ) as response:
                for line in response.iter_lines():
                    lines.append(line)
                    self.on_line(line)
                status = response.status_code
                success = response.is_success
        except httpx.HTTPError as e:
            return CommandResult(
                command=description,
                success=False,
                stderr="".join(f"{line}\n" for line in lines),
                failure=f"request failed: {e}",
            )

        body = "".join(f"{line}\n" for line in lines)
        return CommandResult(
            command=description,
            success=success,
            exit_code=status,
            stdout=body,
            stderr=body,
            failure=None if success else f"HTTP {status}",
        )

    def image_exists(self, name: str) -> bool:
        result = self._request("GET", "/images")
        if not result.success:
            return False
        try:
            images = json.loads(result.stdout)
        except ValueError:
            return name in result.stdout
        if isinstance(images, dict):
            images = images.get("images", [])
        for image in images if isinstance(images, list) else []:
            if isinstance(image, dict):
                image_name = str(image.get("name", ""))
            else:
                image_name = str(image)
            if image_name == name or image_name.split(":", 1)[0] == name:
                return True
        return False

    def create_image(self, name: str, tag: str | None = None) -> CommandResult:
        return self._stream("POST", "/images", {"name": name, "tag": tag or "latest"})

    def pull_image(self, ref: str) -> CommandResult:
        return self._stream("POST", "/images/pull", {"image": ref})

    def create_vm(self, spec: VMSpec) -> CommandResult:
        return self._request(
            "POST",
            "/vms",
            {
                "name": spec.name,
                "base_image": spec.base_image,
                "memory": spec.memory,
                "cpus": spec.cpus,
                "disk": spec.disk_size,
                "force": False,
            },
        )

    def start_vm(self, name: str) -> CommandResult:
        return self._request("POST", f"/vms/{name}/start")

    def stop_vm(self, name: str) -> CommandResult:
        return self._request("POST", f"/vms/{name}/stop")

    def get_address(self, name: str) -> str | None:
        result = self._request("GET", f"/vms/{name}/ip")
        if not result.success:
            return None
        try:
            data = json.loads(result.stdout)
        except ValueError:
            return result.stdout
        if isinstance(data, dict):
            ip = data.get("ip")
            return None if ip is None else str(ip)
        return str(data)

    def snapshot(self, vm_name: str, name: str, tag: str) -> CommandResult:
        return self._stream(
            "POST", "/images", {"name": name, "tag": tag, "from_vm": vm_name}
        )

    def publish(
        self, image: str, target: str, registry: str, dry_run: bool = False
    ) -> CommandResult:
        return self._stream(
            "POST",
            "/images/push",
            {"name": image, "image": target, "registry": registry, "dry_run": dry_run},
        )

    def delete_vm(self, name: str) -> CommandResult:
        return self._request("DELETE", f"/vms/{name}")

    def delete_image(self, ref: str) -> CommandResult:
        return self._request("DELETE", f"/images/{ref}")

    def close(self) -> None:
        if self._owns_client:
            self.client.close()


__all__ = ["API_PREFIX", "RemoteTransport"]
