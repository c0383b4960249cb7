"""Vault API 클라이언트 (KV v2)."""

from typing import Any, Optional

import httpx

from vkvctl.config import Settings, settings
from vkvctl.tree import FlatSecretSet, join_path, normalize_path


class VaultError(Exception):
    """Vault API 오류."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class VaultClient:
    """HashiCorp Vault API client for KV v2 engines."""

    def __init__(
        self,
        addr: Optional[str] = None,
        token: Optional[str] = None,
        namespace: Optional[str] = None,
        config: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config or settings
        self.addr = (addr or self.config.vault_addr).rstrip("/")
        self.token = token or self.config.vault_token
        self.namespace = namespace or self.config.vault_namespace
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @property
    def client(self) -> httpx.Client:
        """HTTP 클라이언트 (lazy initialization)."""
        if self._client is None:
            headers: dict[str, str] = {}
            if self.token:
                headers["X-Vault-Token"] = self.token
            if self.namespace:
                headers["X-Vault-Namespace"] = self.namespace

            self._client = httpx.Client(
                base_url=self.addr,
                headers=headers,
                verify=not self.config.vault_skip_verify,
                timeout=self.config.timeout,
                transport=self._transport,
            )

        client = self._client
        assert client is not None
        return client

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        """API 요청 실행."""
        http_client = self.client
        try:
            response = http_client.request(
                method=method,
                url=f"/v1/{path}",
                json=data,
                params=params,
            )

            if response.status_code == 204:
                return {}

            result = response.json() if response.content else {}

            if response.status_code >= 400:
                errors = result.get("errors", [])
                error_msg = "; ".join(errors) if errors else f"HTTP {response.status_code}"
                raise VaultError(error_msg, response.status_code)

            return result

        except httpx.RequestError as e:
            raise VaultError(f"connection failed: {e}") from e

    def close(self) -> None:
        """클라이언트 종료."""
        if self._client is not None:
            self._client.close()
            self._client = None

    # ─────────────────────────────────────────────────────────────────────────
    # Secret engines
    # ─────────────────────────────────────────────────────────────────────────

    def mount_exists(self, path: str) -> bool:
        """Check whether a secret engine is mounted at ``path``."""
        result = self._request("GET", "sys/mounts")
        mounts = result.get("data", result)
        return f"{normalize_path(path)}/" in mounts

    def enable_kv2_engine(self, path: str, force: bool = False) -> None:
        """Enable a KV v2 engine at ``path``.

        An existing mount is an error unless ``force`` is set, in which case
        it is reused as is.
        """
        path = normalize_path(path)
        if self.mount_exists(path):
            if not force:
                raise VaultError(f'a secret engine is already enabled at "{path}", use --force to write into it')
            return

        self._request(
            "POST",
            f"sys/mounts/{path}",
            data={"type": "kv", "options": {"version": "2"}},
        )

    # ─────────────────────────────────────────────────────────────────────────
    # KV v2 Secrets Engine
    # ─────────────────────────────────────────────────────────────────────────

    def kv_get(self, mount: str, path: str) -> dict[str, Any]:
        """KV v2 시크릿 조회."""
        result = self._request("GET", f"{mount}/data/{path}")
        return (result.get("data") or {}).get("data") or {}

    def kv_put(self, mount: str, path: str, data: dict[str, Any]) -> dict[str, Any]:
        """KV v2 시크릿 저장."""
        return self._request("POST", f"{mount}/data/{path}", data={"data": data})

    def kv_list(self, mount: str, path: str = "") -> list[str]:
        """KV v2 경로 목록 조회."""
        try:
            result = self._request("LIST", f"{mount}/metadata/{path}")
            return result.get("data", {}).get("keys", [])
        except VaultError as e:
            if e.status_code == 404:
                return []
            raise

    def write_leaf(self, engine_path: str, sub_path: str, leaf: dict[str, Any]) -> None:
        """Write the key/value pairs of one path."""
        self.kv_put(normalize_path(engine_path), normalize_path(sub_path), leaf)

    def read_tree_recursive(
        self,
        engine_path: str,
        sub_path: str = "",
        include_metadata: bool = False,
    ) -> FlatSecretSet:
        """Read every secret below ``engine_path/sub_path``.

        Returns a flat map keyed by absolute path (mount included). Paths whose
        latest version has been deleted are listed in the metadata but cannot
        be read; with ``include_metadata`` they are returned as empty secrets,
        otherwise they are skipped. If ``sub_path`` has no children it is read
        as a single secret.
        """
        mount = normalize_path(engine_path)
        root = normalize_path(sub_path)

        result: FlatSecretSet = {}
        self._walk(mount, root, result, include_metadata)

        if not result and root:
            self._read_into(mount, root, result, include_metadata=False)

        return result

    def _walk(self, mount: str, path: str, result: FlatSecretSet, include_metadata: bool) -> None:
        for key in self.kv_list(mount, f"{path}/" if path else ""):
            child = join_path(path, key)
            if key.endswith("/"):
                self._walk(mount, child, result, include_metadata)
            else:
                self._read_into(mount, child, result, include_metadata)

    def _read_into(self, mount: str, path: str, result: FlatSecretSet, include_metadata: bool) -> None:
        try:
            data = self.kv_get(mount, path)
        except VaultError as e:
            if e.status_code != 404:
                raise
            if include_metadata:
                result[join_path(mount, path)] = {}
            return

        result[join_path(mount, path)] = data


def build_client() -> VaultClient:
    """Vault client configured from the global settings."""
    return VaultClient()
